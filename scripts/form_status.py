"""
Form build status — inspect or reset the builder's persisted state.

Shows which form the cursors belong to, where each level's cursor stands and
how many items the form has.  Also clears cursors (forcing the next run to
walk the whole tree again, which is harmless because every write is
get-or-create) and dumps the form structure as JSON.

Usage:
    python scripts/form_status.py                         # status of form_builder.sqlite
    python scripts/form_status.py --db /data/form.sqlite
    python scripts/form_status.py --reset                 # clear all cursors
    python scripts/form_status.py --dump form.json        # write the form as JSON
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pipeline.checkpoint import CheckpointStore  # noqa: E402
from pipeline.fields import SECTION_BREAK, SELECTOR  # noqa: E402
from pipeline.form_store import FormStore  # noqa: E402
from utils.common import get_connection  # noqa: E402

_logger = logging.getLogger("form_status")

_DEFAULT_DB = Path(os.environ.get("FORM_DB_PATH", "form_builder.sqlite"))


def collect_status(checkpoints: CheckpointStore, store: FormStore | None) -> dict:
    """Status snapshot as a plain dict."""
    status = {
        "form_id": checkpoints.get_document_id(),
        "cursors": checkpoints.cursors(),
        "items": {},
    }
    if store is not None:
        status["items"] = {
            "total": store.count_items(),
            "selectors": store.count_items(SELECTOR),
            "sections": store.count_items(SECTION_BREAK),
        }
    return status


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Inspect or reset the form builder state")
    parser.add_argument("--db", type=Path, default=_DEFAULT_DB,
                        help=f"Builder database (default: {_DEFAULT_DB})")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--reset", action="store_true",
                       help="Clear every level cursor")
    group.add_argument("--dump", type=Path, default=None, metavar="PATH",
                       help="Write the form items as JSON to PATH")
    args = parser.parse_args(argv)

    logging.basicConfig(format="%(asctime)s %(levelname)s %(message)s", level=logging.INFO)

    conn = get_connection(args.db)
    try:
        checkpoints = CheckpointStore(conn)
        form_id = checkpoints.get_document_id()
        store = None
        if form_id:
            store = FormStore(conn)
            store.open_or_create_document(form_id)

        if args.reset:
            checkpoints.reset_cursors()
            _logger.info("Cursors cleared in %s", args.db)
            return 0

        if args.dump is not None:
            if store is None:
                _logger.error("No form has been created in %s yet", args.db)
                return 1
            args.dump.parent.mkdir(parents=True, exist_ok=True)
            args.dump.write_text(json.dumps(store.items(), indent=2, ensure_ascii=False),
                                 encoding="utf-8")
            _logger.info("Wrote %d item(s) to %s", store.count_items(), args.dump)
            return 0

        status = collect_status(checkpoints, store)
        print(f"Form:    {status['form_id'] or '(none)'}")
        for level, cursor in status["cursors"].items():
            print(f"Cursor:  {level} = {cursor!r}")
        for name, count in status["items"].items():
            print(f"Items:   {name} = {count}")
        return 0
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(main())
