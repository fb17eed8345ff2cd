"""
Reconciliation of fresh bookmark records against a prior snapshot

Records are grouped twice: by base URL and by romanized title. A record is
unique only when it sits alone under both keys; everything else is reported
as a duplicate, with buckets that share members or keys merged together so a
series shows up as one group.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from manga_record import MangaRecord

logger = logging.getLogger('manga_bookmarks.merger')


@dataclass
class MergeResult:
    """Partition produced by reconcile()"""
    unique: List[MangaRecord] = field(default_factory=list)
    duplicates: List[MangaRecord] = field(default_factory=list)
    residual: List[MangaRecord] = field(default_factory=list)

    def rows(self, marker: Optional[MangaRecord] = None) -> Iterator[MangaRecord]:
        """Unique records, the marker, duplicates, then anything left over"""
        yield from self.unique
        yield marker if marker is not None else MangaRecord.marker()
        yield from self.duplicates
        yield from self.residual


def group_records(records: Sequence[MangaRecord],
                  key: Callable[[MangaRecord], str]) -> Dict[str, List[MangaRecord]]:
    """Group records by key, keeping first-seen order of keys and members"""
    groups: Dict[str, List[MangaRecord]] = {}
    for record in records:
        groups.setdefault(key(record), []).append(record)
    return groups


def split_singletons(groups: Dict[str, List[MangaRecord]]):
    """Split groups into (key -> lone record, key -> 2+ records)"""
    singletons = {k: v[0] for k, v in groups.items() if len(v) == 1}
    multi = {k: list(v) for k, v in groups.items() if len(v) > 1}
    return singletons, multi


def _collapse_exact_repeats(records: Sequence[MangaRecord]) -> List[MangaRecord]:
    kept: List[MangaRecord] = []
    seen = set()
    for record in records:
        if record in seen:
            logger.debug(f"Dropping exact repeat of '{record.title}' ({record.url_with_chapter})")
            continue
        seen.add(record)
        kept.append(record)
    return kept


def _absorb(bucket: List[MangaRecord], incoming: List[MangaRecord]):
    """Append incoming records that are not already in the bucket"""
    for record in incoming:
        if not any(record is member or record == member for member in bucket):
            bucket.append(record)


def _cross_pollinate(primary: Dict[str, List[MangaRecord]],
                     secondary: Dict[str, List[MangaRecord]],
                     opposite_keys: Callable[[MangaRecord], Sequence[str]]):
    """Pull secondary buckets into the primary bucket of any member that points at them

    Consumed secondary keys are removed, so each secondary bucket is merged
    at most once.
    """
    for key in list(primary):
        bucket = primary.get(key)
        if bucket is None:
            continue
        # bucket grows while absorbing, newly pulled members are inspected too
        index = 0
        while index < len(bucket):
            for other_key in opposite_keys(bucket[index]):
                pulled = secondary.pop(other_key, None)
                if pulled is not None:
                    logger.debug(f"Merging bucket '{other_key}' into '{key}'")
                    _absorb(bucket, pulled)
            index += 1


def reconcile(fresh: Sequence[MangaRecord],
              prior: Optional[Sequence[MangaRecord]] = None) -> MergeResult:
    """Partition prior + fresh records into unique records and duplicate groups

    Pure function: the input sequences are not modified and every call works
    on its own dicts.
    """
    working = _collapse_exact_repeats(list(prior or []) + list(fresh))
    working.sort(key=lambda r: r.base_url())

    by_url = group_records(working, lambda r: r.base_url())
    by_romaji = group_records(working, lambda r: r.romanized_title())

    url_singletons, url_multi = split_singletons(by_url)
    romaji_singletons, romaji_multi = split_singletons(by_romaji)

    # URL singletons first, romaji singletons overwrite; a record resolved
    # under both keys only keeps its romaji entry
    resolved: Dict[str, MangaRecord] = dict(url_singletons)
    resolved_key_of: Dict[int, str] = {id(r): k for k, r in url_singletons.items()}
    for key, record in romaji_singletons.items():
        previous_key = resolved_key_of.get(id(record))
        if previous_key is not None and resolved.get(previous_key) is record:
            del resolved[previous_key]
        resolved[key] = record
        resolved_key_of[id(record)] = key

    # Nothing that belongs to a multi-bucket may stay resolved, by key or by membership
    in_multi = {id(r) for bucket in url_multi.values() for r in bucket}
    in_multi.update(id(r) for bucket in romaji_multi.values() for r in bucket)
    for key in list(resolved):
        if key in url_multi or key in romaji_multi or id(resolved[key]) in in_multi:
            del resolved[key]

    _cross_pollinate(url_multi, romaji_multi,
                     lambda r: (r.romanized_title(), r.base_url()))
    _cross_pollinate(romaji_multi, url_multi,
                     lambda r: (r.base_url(), r.romanized_title()))

    consumed = set()
    unique: List[MangaRecord] = []
    for record in resolved.values():
        if id(record) not in consumed:
            consumed.add(id(record))
            unique.append(record)

    duplicates: List[MangaRecord] = []
    for bucket in list(url_multi.values()) + list(romaji_multi.values()):
        for record in bucket:
            if id(record) not in consumed:
                consumed.add(id(record))
                duplicates.append(record)
    duplicates.sort(key=lambda r: r.base_url())

    residual = [r for r in working if id(r) not in consumed]
    if residual:
        logger.warning(f"{len(residual)} records were neither unique nor duplicate, emitting them last")

    logger.info(f"Reconciled {len(working)} records: {len(unique)} unique, "
                f"{len(duplicates)} duplicates in {len(url_multi) + len(romaji_multi)} groups")
    return MergeResult(unique=unique, duplicates=duplicates, residual=residual)
