#!/usr/bin/env python3
"""
Manga Bookmark Reconciler
Flattens a browser bookmark export into manga records, reconciles them against
a prior CSV snapshot and writes unique records, a MARKER row, then duplicates.
"""

import json
import os
import sys
import shutil
import argparse
import logging
from datetime import datetime
from typing import Dict, List, Optional, TextIO

from tqdm import tqdm

from manga_config import MangaConfig, setup_manga_logger, LOGGER_NAME
from manga_csv import read_snapshot, write_merge_result
from manga_record import MangaRecord, CorruptRecordError, trim_quotes
from manga_store import MangaStore
from record_merger import MergeResult, reconcile

# Firefox node types
MOZ_PLACE = 'text/x-moz-place'
MOZ_CONTAINER = 'text/x-moz-place-container'
MOZ_SEPARATOR = 'text/x-moz-place-separator'

# Chrome/Edge timestamps count microseconds from 1601-01-01
WINDOWS_EPOCH_OFFSET_MICROS = 11644473600 * 1_000_000


class BookmarkTreeError(ValueError):
    """The bookmark export is not a bookmark tree we can walk"""


def _timestamp(node: Dict, *keys: str) -> int:
    """First non-zero timestamp among keys, 0 when none is set"""
    for key in keys:
        value = node.get(key)
        if value in (None, '', 0, '0'):
            continue
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise BookmarkTreeError(f"Bookmark timestamp {key}={value!r} is not a number") from e
    return 0


def status(message: str):
    """User-facing progress line; stdout may be the CSV output"""
    print(message, file=sys.stderr)


class MangaManager:
    def __init__(self, config: Optional[MangaConfig] = None, logger: Optional[logging.Logger] = None):
        self.config = config or MangaConfig()
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.bookmarks = None

    def load_bookmarks(self, stream: TextIO, source_name: str = "<stdin>") -> Dict:
        """Load a Firefox or Chrome/Edge bookmark export"""
        try:
            self.bookmarks = json.load(stream)
        except json.JSONDecodeError as e:
            raise BookmarkTreeError(f"Invalid JSON in {source_name}: {e}") from e
        if not isinstance(self.bookmarks, dict):
            raise BookmarkTreeError(f"{source_name} does not hold a bookmark tree")
        self.logger.info(f"Loaded bookmarks from {source_name}")
        return self.bookmarks

    def extract_all_bookmarks(self, node: Dict, path: str = "") -> List[Dict]:
        """Recursively extract all bookmark leaves with their folder paths"""
        if not isinstance(node, dict):
            raise BookmarkTreeError(f"Bookmark node under '{path}' is not an object")

        bookmarks = []
        node_type = node.get('type')

        if node_type == MOZ_PLACE:
            if 'uri' not in node:
                raise BookmarkTreeError(f"Bookmark '{node.get('title', '')}' under '{path}' has no uri")
            bookmarks.append({
                'title': node.get('title') or '',
                'uri': node['uri'],
                'last_modified': _timestamp(node, 'lastModified', 'dateAdded'),
                'folder_path': path,
            })
        elif node_type == 'url':
            if 'url' not in node:
                raise BookmarkTreeError(f"Bookmark '{node.get('name', '')}' under '{path}' has no url")
            modified = _timestamp(node, 'date_modified', 'date_added')
            bookmarks.append({
                'title': node.get('name') or '',
                'uri': node['url'],
                'last_modified': max(modified - WINDOWS_EPOCH_OFFSET_MICROS, 0),
                'folder_path': path,
            })
        elif node_type in (MOZ_CONTAINER, 'folder'):
            folder_name = node.get('title') or node.get('name') or ''
            new_path = f"{path}/{folder_name}" if path else folder_name
            children = node.get('children', [])
            if not isinstance(children, list):
                raise BookmarkTreeError(f"Children of folder '{new_path}' are not a list")
            for child in children:
                bookmarks.extend(self.extract_all_bookmarks(child, new_path))
        elif node_type == MOZ_SEPARATOR:
            pass
        else:
            raise BookmarkTreeError(f"Unknown bookmark node type {node_type!r} under '{path}'")

        return bookmarks

    def flatten(self, tree: Optional[Dict] = None) -> List[Dict]:
        """Flatten the whole export into bookmark leaves"""
        tree = tree if tree is not None else self.bookmarks
        if tree is None:
            raise BookmarkTreeError("No bookmarks loaded")

        all_bookmarks = []
        if 'roots' in tree:
            if not isinstance(tree['roots'], dict):
                raise BookmarkTreeError("'roots' of the bookmark file is not an object")
            # Chrome/Edge: roots holds bookmark_bar, other, synced
            for root_name, root_node in tree['roots'].items():
                if not isinstance(root_node, dict):
                    continue
                all_bookmarks.extend(
                    self.extract_all_bookmarks(root_node, root_name.replace('_', ' ').title()))
        else:
            all_bookmarks.extend(self.extract_all_bookmarks(tree))

        self.logger.info(f"Flattened {len(all_bookmarks)} bookmarks")
        return all_bookmarks

    def build_records(self, leaves: List[Dict]) -> List[MangaRecord]:
        """Turn bookmark leaves into records, sorted by url_with_chapter; blank leaves are skipped"""
        records = []
        for leaf in tqdm(leaves, desc="Building records", disable=not self.config.show_progress,
                         file=sys.stderr):
            if not trim_quotes(leaf['title'] or '') and not trim_quotes(leaf['uri'] or ''):
                self.logger.warning(f"Skipping bookmark with neither title nor url in '{leaf.get('folder_path', '')}'")
                continue
            record = MangaRecord.from_bookmark(leaf['title'], leaf['uri'], leaf['last_modified'])
            # Romanize here, while the progress bar is up
            record.romanized_title()
            records.append(record)
        records.sort(key=lambda r: r.url_with_chapter)
        return records

    def load_prior_snapshot(self, snapshot_file: str) -> List[MangaRecord]:
        """Load a previous run's CSV output, dropping its MARKER separator row"""
        with open(snapshot_file, 'r', encoding=self.config.encoding, newline='') as f:
            records = read_snapshot(f, snapshot_file)
        prior = [r for r in records if not r.is_marker()]
        if len(prior) != len(records):
            self.logger.debug(f"Dropped {len(records) - len(prior)} MARKER rows from {snapshot_file}")
        return prior

    def reconcile(self, fresh: List[MangaRecord], prior: Optional[List[MangaRecord]] = None) -> MergeResult:
        """Reconcile and put unique records in base URL order"""
        result = reconcile(fresh, prior)
        result.unique.sort(key=lambda r: (r.base_url(), r.romanized_title()))
        return result

    def create_backup(self, target_file: str) -> str:
        """Create a backup of an existing file"""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_file = f"{target_file}.backup_{timestamp}"
        shutil.copy2(target_file, backup_file)
        self.logger.info(f"Backup of {target_file} written to {backup_file}")
        return backup_file

    def save_result(self, result: MergeResult, stream: TextIO) -> int:
        return write_merge_result(stream, result)

    def run(self, input_file: Optional[str] = None, output_file: Optional[str] = None,
            snapshot_file: Optional[str] = None, db_path: Optional[str] = None,
            backup: bool = False) -> MergeResult:
        """Full pass: flatten -> build records -> merge with snapshot -> sort -> emit"""
        if input_file:
            with open(input_file, 'r', encoding=self.config.encoding) as f:
                self.load_bookmarks(f, input_file)
        else:
            self.load_bookmarks(sys.stdin)

        leaves = self.flatten()
        status(f"📚 Found {len(leaves)} bookmarks")
        fresh = self.build_records(leaves)

        prior = None
        if snapshot_file:
            prior = self.load_prior_snapshot(snapshot_file)
            status(f"📂 Loaded {len(prior)} records from prior snapshot {snapshot_file}")

        result = self.reconcile(fresh, prior)
        status(f"🔍 {len(result.unique)} unique, {len(result.duplicates)} duplicates")
        if result.residual:
            status(f"⚠️ {len(result.residual)} records could not be placed, appended after duplicates")

        if db_path:
            store = MangaStore(db_path, self.logger.getChild('store'))
            store.create_tables()
            store.upsert_records(list(result.unique) + list(result.duplicates) + list(result.residual))
            status(f"💾 Store updated: {db_path}")

        if output_file:
            if backup and os.path.exists(output_file):
                status(f"📄 Backup created: {self.create_backup(output_file)}")
            with open(output_file, 'w', encoding=self.config.encoding, newline='') as f:
                count = self.save_result(result, f)
            status(f"✅ Wrote {count} rows to {output_file}")
        else:
            self.save_result(result, sys.stdout)
            sys.stdout.flush()

        return result


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile manga bookmarks against a CSV snapshot")
    parser.add_argument("-i", "--input", help="Bookmark export (JSON); defaults to stdin")
    parser.add_argument("-o", "--output", help="Output CSV; defaults to stdout")
    parser.add_argument("-c", "--csv", dest="snapshot", help="Prior CSV snapshot to reconcile against")
    parser.add_argument("-d", "--db", help="SQLite database to upsert reconciled records into")
    parser.add_argument("--backup", action="store_true", help="Back up an existing output file before overwriting")
    parser.add_argument("--no-progress", action="store_true", help="Hide the progress bar")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug messages on the console")
    args = parser.parse_args(argv)

    config = MangaConfig.from_env()
    if args.no_progress:
        config.show_progress = False
    if args.db:
        config.db_path = args.db

    logger = setup_manga_logger(config.log_dir, "DEBUG" if args.verbose else config.log_level)

    for path in (args.input, args.snapshot):
        if path and not os.path.exists(path):
            status(f"❌ Error: file '{path}' not found.")
            return 1

    manager = MangaManager(config, logger)
    try:
        manager.run(args.input, args.output, args.snapshot, config.db_path, args.backup)
    except (BookmarkTreeError, CorruptRecordError) as e:
        logger.error(str(e))
        status(f"❌ Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
