"""
URL and chapter normalization for manga bookmark links
"""

from typing import Tuple

CHAPTER_MARKER = "chapter"
NO_CHAPTER = "0"


def normalize(url: str) -> Tuple[str, str]:
    """Split a bookmark URL into (base identity URL, chapter number)

    i.e. "https://x.tld/title-chapter-12-1/" => ("https://x.tld/title/", "12.1")
    """
    if not url:
        return url, NO_CHAPTER

    marker_at = url.lower().find(CHAPTER_MARKER)
    if marker_at < 0:
        return url, NO_CHAPTER

    # Everything past the marker is the chapter, "10-1" style numbers become "10.1"
    chapter = url.lower()[marker_at + len(CHAPTER_MARKER):]
    if chapter.startswith('-'):
        chapter = chapter[1:]
    if chapter.endswith('/'):
        chapter = chapter[:-1]
    chapter = chapter.replace('-', '.')

    # "title-chapter-10" leaves "title-" behind
    base = url[:marker_at]
    if base.endswith('-'):
        base = base[:-1]
    if url.endswith('/') and not base.endswith('/'):
        base += '/'

    return base, chapter
