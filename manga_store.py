"""
SQLite persistence for reconciled manga records
"""

import logging
import sqlite3
from contextlib import closing
from typing import Iterable, List, Optional, Tuple

from manga_record import MangaRecord, CorruptRecordError, TAG_DELIMITER

# Column order of the manga table never changes, new columns go at the end
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS manga (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    title_romanized TEXT,
    url TEXT NOT NULL,
    url_with_chapter TEXT,
    chapter TEXT,
    last_update TEXT,
    last_update_millis INTEGER,
    notes TEXT,
    tags TEXT,
    my_anime_list TEXT,
    UNIQUE(title, url)
);

CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tag TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS manga_to_tags_map (
    manga_id INTEGER,
    tag_id INTEGER,
    FOREIGN KEY(manga_id) REFERENCES manga(id),
    FOREIGN KEY(tag_id) REFERENCES tags(id),
    UNIQUE(manga_id, tag_id)
);
"""

# Columns appended after the first release, added to older databases on open
ADDED_COLUMNS = [
    ('my_anime_list', 'TEXT'),
]

UPSERT_SQL = """
INSERT INTO manga (title, title_romanized, url, url_with_chapter, chapter,
                   last_update, last_update_millis, notes, tags, my_anime_list)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(title, url) DO UPDATE SET
    title_romanized = excluded.title_romanized,
    url_with_chapter = excluded.url_with_chapter,
    chapter = excluded.chapter,
    last_update = excluded.last_update,
    last_update_millis = excluded.last_update_millis,
    notes = excluded.notes,
    tags = excluded.tags,
    my_anime_list = COALESCE(NULLIF(excluded.my_anime_list, ''), manga.my_anime_list)
"""

SELECT_SQL = """
SELECT m.id, m.title, m.title_romanized, m.url, m.url_with_chapter, m.chapter,
       m.last_update, m.notes, m.my_anime_list,
       (SELECT GROUP_CONCAT(t.tag, ?)
            FROM manga_to_tags_map AS mt
            JOIN tags AS t ON mt.tag_id = t.id
            WHERE mt.manga_id = m.id) AS tags
    FROM manga AS m {where}
"""


def _chapter_order(record: MangaRecord) -> Tuple[int, float, str]:
    """Numeric chapters in numeric order, anything else after them by text"""
    try:
        return 0, record.chapter_number(), record.chapter
    except CorruptRecordError:
        return 1, 0.0, record.chapter


class MangaStore:
    def __init__(self, db_path: str, logger: Optional[logging.Logger] = None):
        self.db_path = db_path
        self.logger = logger or logging.getLogger('manga_bookmarks.store')

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def create_tables(self):
        """Create the manga, tags and mapping tables if missing"""
        self.logger.info(f"Ensuring schema in {self.db_path}")
        with closing(self._connect()) as conn:
            conn.executescript(SCHEMA_SQL)
            existing = {row[1] for row in conn.execute("PRAGMA table_info(manga)")}
            for name, column_type in ADDED_COLUMNS:
                if name not in existing:
                    self.logger.info(f"Adding column manga.{name}")
                    conn.execute(f"ALTER TABLE manga ADD COLUMN {name} {column_type}")
            conn.commit()

    def upsert_records(self, records: Iterable[MangaRecord]) -> int:
        """Insert records, updating rows that already exist for the same (title, url)

        Timestamps are re-derived to epoch millis, so a corrupt timestamp
        aborts the whole write. An empty my_anime_list never clears a stored one.
        """
        count = 0
        with closing(self._connect()) as conn:
            with conn:
                for record in records:
                    if record.is_marker():
                        continue
                    conn.execute(UPSERT_SQL, (
                        record.title,
                        record.romanized_title(),
                        record.base_url(),
                        record.url_with_chapter,
                        record.chapter,
                        record.last_modified,
                        record.last_modified_millis(),
                        record.notes,
                        record.tags_str,
                        record.my_anime_list,
                    ))
                    manga_id = conn.execute(
                        "SELECT id FROM manga WHERE title = ? AND url = ?",
                        (record.title, record.base_url()),
                    ).fetchone()[0]
                    self._map_tags(conn, manga_id, record.tags)
                    count += 1
        self.logger.info(f"Upserted {count} records into {self.db_path}")
        return count

    def _map_tags(self, conn: sqlite3.Connection, manga_id: int, tags: List[str]):
        conn.execute("DELETE FROM manga_to_tags_map WHERE manga_id = ?", (manga_id,))
        for tag in tags:
            conn.execute("INSERT OR IGNORE INTO tags (tag) VALUES (?)", (tag,))
            tag_id = conn.execute("SELECT id FROM tags WHERE tag = ?", (tag,)).fetchone()[0]
            conn.execute(
                "INSERT OR IGNORE INTO manga_to_tags_map (manga_id, tag_id) VALUES (?, ?)",
                (manga_id, tag_id),
            )

    def select_records(self, where: str = "", params: tuple = ()) -> List[MangaRecord]:
        """Load records, ordered by base URL then chapter

        where - optional clause referring to the table as 'm', i.e. "WHERE m.title LIKE ?"
        """
        with closing(self._connect()) as conn:
            rows = conn.execute(SELECT_SQL.format(where=where), (TAG_DELIMITER,) + tuple(params)).fetchall()

        records = []
        for manga_id, title, romanized, url, url_with_chapter, chapter, last_update, notes, mal, tags in rows:
            records.append(MangaRecord(
                title,
                url_with_chapter or "",
                id_seed=manga_id,
                chapter=chapter,
                last_modified=last_update or "",
                notes=notes or "",
                tags=tags,
                base_url=url,
                romanized_title=romanized,
                my_anime_list=mal or "",
            ))
        records.sort(key=lambda r: (r.base_url(), _chapter_order(r)))
        self.logger.debug(f"Selected {len(records)} records from {self.db_path}")
        return records

    def select_by_id(self, manga_id: int) -> Optional[MangaRecord]:
        """The record stored under manga_id, None if there is none"""
        records = self.select_records("WHERE m.id = ?", (manga_id,))
        return records[0] if records else None

    def select_by_title_and_url(self, title: str, url: str) -> List[MangaRecord]:
        """Records whose title and base URL match the LIKE patterns, i.e. ("Gate", "%x.tld%")"""
        if not title or not url:
            raise ValueError(f"Title '{title}' and url '{url}' must both be given, use '%' to match anything")
        return self.select_records("WHERE m.title LIKE ? AND m.url LIKE ?", (title, url))

    def get_id(self, title: str, url: str) -> Optional[int]:
        """Row id for an exact (title, base URL) pair, None if not stored"""
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT id FROM manga WHERE title = ? AND url = ?", (title, url)).fetchone()
        return row[0] if row else None

    def delete_record(self, manga_id: int) -> bool:
        """Delete a row and its tag mappings; False when the id is not stored"""
        with closing(self._connect()) as conn:
            with conn:
                deleted = conn.execute("DELETE FROM manga WHERE id = ?", (manga_id,)).rowcount
                if not deleted:
                    self.logger.warning(f"No manga with id {manga_id} to delete in {self.db_path}")
                    return False
                conn.execute("DELETE FROM manga_to_tags_map WHERE manga_id = ?", (manga_id,))
        self.logger.info(f"Deleted manga {manga_id} from {self.db_path}")
        return True
