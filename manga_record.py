"""
Canonical in-memory record for one tracked manga bookmark
"""

import re
import zlib
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Union

import pykakasi
from dateutil.parser import parse as parse_date

from manga_normalizer import normalize, NO_CHAPTER

# Most CSV tools split on commas even inside quoted cells, so persisted text
# fields carry the ideographic comma instead.
COMMA_SUBSTITUTE = "、"
TAG_DELIMITER = "; "
# Fullwidth semicolon, stands in for ";" inside a single tag
TAG_SEPARATOR_SUBSTITUTE = "\uff1b"
MARKER = "MARKER"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

_CANONICAL_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}$")
# Hiragana, katakana, CJK ideographs and half-width katakana
_JAPANESE_SCRIPT = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uff66-\uff9f]")
_EPOCH = datetime(1970, 1, 1)

_kakasi = None


class CorruptRecordError(ValueError):
    """Raised when a persisted record field cannot be re-derived"""


def trim_quotes(text: str) -> str:
    """Trim whitespace and any surrounding double quotes"""
    return text.strip(' \t\r\n"')


def fix_comma_in_string(text: str) -> str:
    return text.replace(",", COMMA_SUBSTITUTE)


def needs_romanization(text: str) -> bool:
    """True if the text carries kana or kanji"""
    return bool(_JAPANESE_SCRIPT.search(text))


def romanize(text: str) -> str:
    """Transliterate Japanese text to Hepburn romaji"""
    global _kakasi
    if not text:
        return text
    if _kakasi is None:
        _kakasi = pykakasi.kakasi()
    parts = [item['hepburn'] for item in _kakasi.convert(text) if item['hepburn']]
    return " ".join(" ".join(parts).split())


def from_epoch_to_str(epoch_micros: int) -> str:
    """Format microseconds since the unix epoch as YYYY-MM-DDTHH:MM:SS"""
    return (_EPOCH + timedelta(microseconds=epoch_micros)).strftime(TIMESTAMP_FORMAT)


def str_to_epoch_micros(timestamp: str) -> int:
    if not _CANONICAL_TIMESTAMP.match(timestamp):
        raise CorruptRecordError(f"Timestamp '{timestamp}' is not in {TIMESTAMP_FORMAT} form")
    try:
        parsed = parse_date(timestamp)
    except (ValueError, OverflowError) as e:
        raise CorruptRecordError(f"Timestamp '{timestamp}' is not a valid date: {e}") from e
    return (parsed - _EPOCH) // timedelta(microseconds=1)


def str_to_epoch_millis(timestamp: str) -> int:
    return str_to_epoch_micros(timestamp) // 1000


def split_tags(tags: Union[str, Iterable[str], None]) -> List[str]:
    """Normalize tags given as a delimited string or a sequence"""
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(TAG_DELIMITER.strip())
    cleaned = []
    for tag in tags:
        tag = fix_comma_in_string(trim_quotes(tag)).replace(";", TAG_SEPARATOR_SUBSTITUTE)
        if tag:
            cleaned.append(tag)
    return cleaned


class MangaRecord:
    """One tracked manga, derived from a bookmark or read back from a snapshot

    Raw fields are read-only after construction. The base URL and the romanized
    title are computed on first access and memoized; values handed in at
    construction (from a snapshot's trailing columns) are taken as-is.
    """

    def __init__(self, title: str, url_with_chapter: str, id_seed: Optional[int] = None,
                 chapter: Optional[str] = None, last_modified: str = "", notes: str = "",
                 tags: Union[str, Iterable[str], None] = None,
                 base_url: Optional[str] = None, romanized_title: Optional[str] = None,
                 my_anime_list: str = ""):
        title = trim_quotes(title or "")
        if not title:
            raise ValueError(f"Record title is empty (url: '{url_with_chapter}')")
        url_with_chapter = trim_quotes(url_with_chapter or "")

        if chapter is None or not trim_quotes(chapter):
            chapter = normalize(url_with_chapter)[1]

        if id_seed is None:
            id_seed = zlib.crc32((url_with_chapter or title).encode('utf-8'))

        self._id = id_seed or 1
        self._title = fix_comma_in_string(title)
        self._url_with_chapter = url_with_chapter
        self._chapter = fix_comma_in_string(trim_quotes(chapter))
        self._last_modified = trim_quotes(last_modified or "")
        self._notes = fix_comma_in_string(trim_quotes(notes or ""))
        self._tags = tuple(split_tags(tags))
        # Store-only link, not part of the snapshot columns or record equality
        self.my_anime_list = trim_quotes(my_anime_list or "")

        # Memoized derived values, None until first computed
        self._base_url = None
        self._romanized_title = None
        if base_url and trim_quotes(base_url):
            self._base_url = trim_quotes(base_url)
        if romanized_title and trim_quotes(romanized_title):
            self._romanized_title = fix_comma_in_string(trim_quotes(romanized_title))

    @classmethod
    def from_bookmark(cls, title: str, uri: str, last_modified_micros: int) -> 'MangaRecord':
        """Build a fresh record from a bookmark leaf"""
        title = trim_quotes(title or "") or uri
        return cls(title, uri, last_modified=from_epoch_to_str(last_modified_micros))

    @classmethod
    def marker(cls) -> 'MangaRecord':
        """The terminator row separating unique records from duplicates"""
        return cls(MARKER, MARKER)

    @property
    def id(self) -> int:
        return self._id

    @property
    def title(self) -> str:
        return self._title

    @property
    def url_with_chapter(self) -> str:
        return self._url_with_chapter

    @property
    def chapter(self) -> str:
        return self._chapter

    @property
    def last_modified(self) -> str:
        return self._last_modified

    @property
    def notes(self) -> str:
        return self._notes

    @property
    def tags(self) -> List[str]:
        return list(self._tags)

    @property
    def tags_str(self) -> str:
        return TAG_DELIMITER.join(self._tags)

    def is_marker(self) -> bool:
        return self._url_with_chapter == MARKER and self._title == MARKER

    def base_url(self) -> str:
        if self._base_url is None:
            self._base_url = normalize(self._url_with_chapter)[0]
        return self._base_url

    def romanized_title(self) -> str:
        if self._romanized_title is None:
            if needs_romanization(self._title):
                self._romanized_title = fix_comma_in_string(romanize(self._title)) or self._title
            else:
                self._romanized_title = self._title
        return self._romanized_title

    def last_modified_micros(self) -> int:
        return str_to_epoch_micros(self._last_modified)

    def last_modified_millis(self) -> int:
        return str_to_epoch_millis(self._last_modified)

    def chapter_number(self) -> float:
        """Chapter as a number, i.e. "12.1" => 12.1"""
        try:
            return float(self._chapter or NO_CHAPTER)
        except ValueError as e:
            raise CorruptRecordError(f"Chapter '{self._chapter}' of '{self._title}' is not a number") from e

    def _raw_fields(self) -> tuple:
        return (self._title, self._url_with_chapter, self._chapter,
                self._last_modified, self._notes, self._tags)

    def __eq__(self, other) -> bool:
        if not isinstance(other, MangaRecord):
            return NotImplemented
        return (self._raw_fields() == other._raw_fields()
                and self.base_url() == other.base_url()
                and self.romanized_title() == other.romanized_title())

    def __hash__(self) -> int:
        return hash(self._raw_fields())

    def __repr__(self) -> str:
        return (f"MangaRecord(title={self._title!r}, url_with_chapter={self._url_with_chapter!r}, "
                f"chapter={self._chapter!r}, last_modified={self._last_modified!r})")
