#!/usr/bin/env python3

"""
Dump the manga SQLite store back into the CSV snapshot format
"""

import os
import sys
import argparse
from typing import List, Optional

from manga_config import MangaConfig, setup_manga_logger
from manga_csv import write_records
from manga_record import CorruptRecordError
from manga_store import MangaStore


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Export the manga store as a CSV snapshot")
    parser.add_argument("db", nargs="?", help="SQLite database (defaults to MANGA_DB_PATH)")
    parser.add_argument("-o", "--output", help="Output CSV; defaults to stdout")
    args = parser.parse_args(argv)

    config = MangaConfig.from_env()
    db_path = args.db or config.db_path
    if not db_path:
        print("Usage: python export_store.py <database.sqlite3> [-o snapshot.csv]", file=sys.stderr)
        return 1
    if not os.path.exists(db_path):
        print(f"❌ Database '{db_path}' not found", file=sys.stderr)
        return 1

    logger = setup_manga_logger(config.log_dir, config.log_level)
    store = MangaStore(db_path, logger.getChild('store'))

    print(f"📚 Loading records from: {db_path}", file=sys.stderr)
    try:
        records = store.select_records()
    except CorruptRecordError as e:
        logger.error(str(e))
        print(f"❌ Error reading store: {e}", file=sys.stderr)
        return 1

    if args.output:
        with open(args.output, 'w', encoding=config.encoding, newline='') as f:
            count = write_records(f, records)
        print(f"✅ Exported {count} records to {args.output}", file=sys.stderr)
    else:
        write_records(sys.stdout, records)
    return 0


if __name__ == "__main__":
    sys.exit(main())
