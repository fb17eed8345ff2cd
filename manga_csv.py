"""
CSV snapshot format for manga records

Column order (never reorder, only append):
  title, url_with_chapter, chapter, last_modified, notes, tags, url, romanized_title
Older snapshots only carry the first six columns.
"""

import csv
import logging
from typing import Iterable, List, Optional, TextIO

from manga_record import MangaRecord

COLUMNS = ['title', 'url_with_chapter', 'chapter', 'last_modified', 'notes', 'tags', 'url', 'romanized_title']
LEGACY_COLUMN_COUNT = 6

logger = logging.getLogger('manga_bookmarks.csv')


def record_to_row(record: MangaRecord) -> List[str]:
    return [
        record.title,
        record.url_with_chapter,
        record.chapter,
        record.last_modified,
        record.notes,
        record.tags_str,
        record.base_url(),
        record.romanized_title(),
    ]


def row_to_record(row: List[str]) -> MangaRecord:
    """Build a record from one snapshot row; raises ValueError on a bad row"""
    if not LEGACY_COLUMN_COUNT <= len(row) <= len(COLUMNS):
        raise ValueError(f"expected {LEGACY_COLUMN_COUNT} to {len(COLUMNS)} columns, got {len(row)}")
    padded = list(row) + [''] * (len(COLUMNS) - len(row))
    title, url_with_chapter, chapter, last_modified, notes, tags, url, romanized_title = padded
    return MangaRecord(
        title,
        url_with_chapter,
        chapter=chapter,
        last_modified=last_modified,
        notes=notes,
        tags=tags,
        base_url=url or None,
        romanized_title=romanized_title or None,
    )


def _is_header(row: List[str]) -> bool:
    return (len(row) > 1 and row[0].strip().lower() == 'title'
            and row[1].strip().lower().startswith('url'))


def read_snapshot(stream: TextIO, source_name: str = "<snapshot>") -> List[MangaRecord]:
    """Read every parseable row of a snapshot, skipping and logging the rest"""
    records = []
    skipped = 0
    reader = csv.reader(stream)
    while True:
        try:
            row = next(reader)
        except StopIteration:
            break
        except csv.Error as e:
            skipped += 1
            logger.warning(f"{source_name}:{reader.line_num}: unreadable row skipped: {e}")
            continue

        if not row or all(not cell.strip() for cell in row):
            continue
        if reader.line_num == 1 and _is_header(row):
            continue

        try:
            records.append(row_to_record(row))
        except ValueError as e:
            skipped += 1
            logger.warning(f"{source_name}:{reader.line_num}: row skipped: {e}")

    logger.info(f"Read {len(records)} records from {source_name} ({skipped} skipped)")
    return records


def write_records(stream: TextIO, records: Iterable[MangaRecord]) -> int:
    """Write records in snapshot column order, every field quoted"""
    writer = csv.writer(stream, quoting=csv.QUOTE_ALL, lineterminator='\n')
    count = 0
    for record in records:
        writer.writerow(record_to_row(record))
        count += 1
    return count


def write_merge_result(stream: TextIO, result, marker: Optional[MangaRecord] = None) -> int:
    """Write a MergeResult: unique, marker, duplicates, residual"""
    return write_records(stream, result.rows(marker))
