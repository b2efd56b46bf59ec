"""Configuration management utilities for the form builder.

Provides:
- Constants describing the source sheet and the generated form
- A small Config base class with dict/JSON round-tripping
- BuilderConfig: run settings with environment-variable overrides
- DatabaseConfig: SQLite pragma settings

Settings are layered: class defaults < environment variables < JSON config
file (``BuilderConfig.load_json``) < command-line flags (run_pipeline.py).
"""

import json
import os
from pathlib import Path
from typing import Dict, Any


# ── Source / form constants ──────────────────────────────────────────────────

DEFAULT_SOURCE_PATH = Path("potty_data.xlsx")
DEFAULT_SHEET_NAME = "Raw Data"
DEFAULT_DB_PATH = Path("form_builder.sqlite")
DEFAULT_LOGS_DIR = Path("logs/pipeline")

DEFAULT_FORM_TITLE = "Potty Project Data Entry"

# Grouping columns, outermost first, and the title of the list selector that
# picks a value at each level.
DEFAULT_GROUP_COLUMNS = ("Borough", "Park Name")
DEFAULT_SELECTOR_TITLES = ("Borough", "Park Name")

# Column whose de-duplicated values become the "Potty Name" choices.
DEFAULT_NAME_COLUMN = "Name"

TYPE_CHOICES = ("Permanent", "Portapotty", "Trailer")

# Hosted script runners kill a run after roughly 5-6 minutes; stop after 4.
DEFAULT_TIME_BUDGET_SECONDS = 240.0


class Config:
    """Base configuration class for organizing application settings."""

    def __init__(self):
        """Initialize configuration with default values."""
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary.

        Returns:
            Dictionary of all config attributes
        """
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary.

        Keys missing from ``data`` keep their class defaults.

        Args:
            data: Configuration dictionary

        Returns:
            Config instance with values from dictionary
        """
        config = cls()
        for key, value in data.items():
            setattr(config, key, value)
        return config

    def save_json(self, path: Path) -> None:
        """Save configuration to JSON file.

        Args:
            path: Path to save configuration file
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_json(cls, path: Path) -> "Config":
        """Load configuration from JSON file.

        Args:
            path: Path to configuration file

        Returns:
            Config instance loaded from file

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file is not valid JSON
        """
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)


class DatabaseConfig(Config):
    """Configuration for database operations."""

    def __init__(self):
        """Initialize database configuration."""
        super().__init__()
        self.wal_mode = True
        self.synchronous = "NORMAL"
        self.temp_store = "MEMORY"
        self.cache_size = -16000


class BuilderConfig(Config):
    """Run settings for one bounded build.

    Environment variables:
        FORM_DB_PATH: SQLite file holding cursors and the form (default: form_builder.sqlite)
        FORM_SOURCE_PATH: Workbook or CSV with the raw records (default: potty_data.xlsx)
        FORM_SHEET_NAME: Worksheet to read (default: Raw Data)
        FORM_TIME_BUDGET: Seconds before a run stops and waits to be re-invoked (default: 240)
        FORM_LOGS_DIR: Directory for per-run logs and the ledger (default: logs/pipeline)
    """

    def __init__(self) -> None:
        super().__init__()
        self.db_path = Path(os.getenv("FORM_DB_PATH", str(DEFAULT_DB_PATH)))
        self.source_path = Path(os.getenv("FORM_SOURCE_PATH", str(DEFAULT_SOURCE_PATH)))
        self.sheet_name = os.getenv("FORM_SHEET_NAME", DEFAULT_SHEET_NAME)
        self.form_title = DEFAULT_FORM_TITLE
        self.group_columns: list[str] = list(DEFAULT_GROUP_COLUMNS)
        self.selector_titles: list[str] = list(DEFAULT_SELECTOR_TITLES)
        self.name_column = DEFAULT_NAME_COLUMN
        self.time_budget_seconds = float(
            os.getenv("FORM_TIME_BUDGET", str(DEFAULT_TIME_BUDGET_SECONDS))
        )
        self.logs_dir = Path(os.getenv("FORM_LOGS_DIR", str(DEFAULT_LOGS_DIR)))

    @classmethod
    def from_env(cls) -> "BuilderConfig":
        """Create a BuilderConfig instance populated from environment variables."""
        return cls()

    def validate(self) -> None:
        """Check the settings that would otherwise fail deep inside a run.

        Raises:
            ValueError: On an unusable combination of settings.
        """
        if not self.group_columns:
            raise ValueError("group_columns must name at least one column")
        if len(self.selector_titles) != len(self.group_columns):
            raise ValueError(
                f"selector_titles has {len(self.selector_titles)} entries but "
                f"group_columns has {len(self.group_columns)}"
            )
        if float(self.time_budget_seconds) <= 0:
            raise ValueError("time_budget_seconds must be positive")
