import pytest

import manga_record
from manga_record import MangaRecord


@pytest.fixture
def fake_romanizer(monkeypatch):
    """Replace pykakasi with a predictable transliteration and count calls"""
    calls = []

    def romanize(text):
        calls.append(text)
        return f"romaji {len(text)}, {text}"

    monkeypatch.setattr(manga_record, 'romanize', romanize)
    return calls


@pytest.fixture
def make_record():
    def make(title, url, **kwargs):
        kwargs.setdefault('last_modified', "2023-07-16T15:00:00")
        return MangaRecord(title, url, **kwargs)
    return make
