import pytest

from manga_record import (
    COMMA_SUBSTITUTE,
    CorruptRecordError,
    MangaRecord,
    from_epoch_to_str,
    needs_romanization,
    romanize,
    str_to_epoch_micros,
    str_to_epoch_millis,
    trim_quotes,
)


def test_required_elements():
    record = MangaRecord("Gate", "https://x.tld/gate-chapter-10/", 42)
    assert record.id == 42
    assert record.title == "Gate"
    assert record.url_with_chapter == "https://x.tld/gate-chapter-10/"
    assert record.chapter == "10"
    assert record.base_url() == "https://x.tld/gate/"


def test_blank_title_is_rejected():
    with pytest.raises(ValueError):
        MangaRecord('  ""  ', "https://x.tld/gate/")


def test_id_defaults_to_url_checksum():
    a = MangaRecord("Gate", "https://x.tld/gate/")
    b = MangaRecord("Other title", "https://x.tld/gate/")
    assert a.id == b.id
    assert a.id != 0


def test_from_bookmark():
    record = MangaRecord.from_bookmark("Gate", "https://x.tld/gate-chapter-11/", 1689519634292000)
    assert record.last_modified == "2023-07-16T15:00:34"
    assert record.chapter == "11"
    assert record.notes == ""
    assert record.tags == []


def test_from_bookmark_without_title_uses_uri():
    record = MangaRecord.from_bookmark("", "https://x.tld/gate/", 0)
    assert record.title == "https://x.tld/gate/"
    assert record.last_modified == "1970-01-01T00:00:00"


def test_commas_are_substituted():
    record = MangaRecord("Gate, Jieitai", "https://x.tld/gate/", notes="read, later",
                         tags=["a,b", "c"], chapter="1,5")
    for value in (record.title, record.notes, record.tags_str, record.chapter):
        assert "," not in value
    assert record.title == f"Gate{COMMA_SUBSTITUTE} Jieitai"
    assert record.tags == [f"a{COMMA_SUBSTITUTE}b", "c"]


def test_tags_from_string():
    record = MangaRecord("Gate", "https://x.tld/gate/", tags="action; isekai;;  ")
    assert record.tags == ["action", "isekai"]
    assert record.tags_str == "action; isekai"


def test_latin_title_is_its_own_romanization(fake_romanizer):
    record = MangaRecord("One Piece", "https://x.tld/one-piece/")
    assert record.romanized_title() == "One Piece"
    assert fake_romanizer == []


def test_romanization_happens_once(fake_romanizer):
    record = MangaRecord("ゆるキャン△", "https://x.tld/yuru-camp/")
    first = record.romanized_title()
    second = record.romanized_title()
    assert first == second
    assert len(fake_romanizer) == 1
    assert "," not in first
    assert COMMA_SUBSTITUTE in first


def test_cached_values_are_authoritative(fake_romanizer):
    record = MangaRecord("ゆるキャン△", "https://x.tld/yuru-camp-chapter-3/",
                         base_url="https://elsewhere.tld/yuru/", romanized_title="yurukyan")
    assert record.base_url() == "https://elsewhere.tld/yuru/"
    assert record.romanized_title() == "yurukyan"
    assert fake_romanizer == []


def test_blank_cached_values_are_derived(fake_romanizer):
    record = MangaRecord("Gate", "https://x.tld/gate-chapter-2/", base_url="", romanized_title='""')
    assert record.base_url() == "https://x.tld/gate/"
    assert record.romanized_title() == "Gate"


def test_base_url_falls_back_to_url():
    record = MangaRecord("Downloads", "about:downloads")
    assert record.base_url() == "about:downloads"
    assert record.chapter == "0"


def test_equality_is_full_field(make_record):
    a = make_record("Gate", "https://x.tld/gate-chapter-1/")
    b = make_record("Gate", "https://x.tld/gate-chapter-1/")
    c = make_record("Gate", "https://x.tld/gate-chapter-1/", notes="different")
    assert a == b
    assert hash(a) == hash(b)
    assert a != c


def test_marker():
    marker = MangaRecord.marker()
    assert marker.title == "MARKER"
    assert marker.url_with_chapter == "MARKER"
    assert marker.is_marker()
    assert marker.notes == ""


def test_epoch_round_trip(make_record):
    record = make_record("Gate", "https://x.tld/gate/", last_modified="2021-07-22T12:34:56")
    micros = record.last_modified_micros()
    assert from_epoch_to_str(micros) == "2021-07-22T12:34:56"
    assert record.last_modified_millis() == micros // 1000
    assert str_to_epoch_millis("1970-01-01T00:00:01") == 1000


@pytest.mark.parametrize("value", ["", "2021-07-22", "2021-07-22 12:34:56", "2021-13-40T99:00:00", "yesterday"])
def test_corrupt_timestamp_is_fatal(value):
    with pytest.raises(CorruptRecordError):
        str_to_epoch_micros(value)


def test_chapter_number():
    assert MangaRecord("Gate", "https://x.tld/gate-chapter-12-1/").chapter_number() == 12.1
    assert MangaRecord("Gate", "https://x.tld/gate/").chapter_number() == 0.0
    with pytest.raises(CorruptRecordError):
        MangaRecord("Gate", "https://x.tld/gate-chapter-12-1-3/").chapter_number()


def test_trim_quotes():
    assert trim_quotes("") == ""
    assert trim_quotes(' " ') == ""
    assert trim_quotes(' " x     " ') == "x"


def test_needs_romanization():
    assert needs_romanization("ゲート―自衛隊彼の地にて、斯く戦えり")
    assert needs_romanization("ﾜﾝﾋﾟｰｽ")
    assert not needs_romanization("One Piece")
    assert not needs_romanization("")


def test_romanize_with_pykakasi():
    romaji = romanize("ゲート")
    assert romaji
    assert romaji.isascii()
    assert romanize("") == ""
