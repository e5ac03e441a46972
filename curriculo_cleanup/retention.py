"""Retention and deduplication of index records.

One forward pass over the records in index order. Each dedup key
(applicant, job posting) holds at most one candidate; a strictly newer
submission replaces it, an older or same-timestamp one is dropped. Anything
at or past the retention cutoff is dropped before dedup sees it.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable

from curriculo_cleanup.errors import InvalidFileUrlError
from curriculo_cleanup.log import get_logger
from curriculo_cleanup.models import Record, RemoteFileRef

log = get_logger(__name__)

REASON_EXPIRED = "expired"
REASON_SUPERSEDED = "superseded"

PathResolver = Callable[[str], str]


@dataclass
class FilterResult:
    kept: list[Record] = field(default_factory=list)
    to_delete: list[RemoteFileRef] = field(default_factory=list)
    expired: list[Record] = field(default_factory=list)
    superseded: list[Record] = field(default_factory=list)
    unresolved: list[Record] = field(default_factory=list)
    # files left alone because a kept record still points at them
    shared: list[RemoteFileRef] = field(default_factory=list)

    @property
    def removed(self) -> int:
        return len(self.expired) + len(self.superseded)

    @property
    def changed(self) -> bool:
        return self.removed > 0


def retention_cutoff(now: datetime, months: int) -> datetime:
    """``now`` moved back by whole calendar months, day clamped to month end."""
    total = now.year * 12 + (now.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def is_expired(record: Record, cutoff: datetime) -> bool:
    # inclusive: a record exactly at the cutoff has reached the window
    return record.submitted_at <= cutoff


def filter_records(
    records: Iterable[Record],
    now: datetime,
    retention_months: int = 2,
    resolve_path: PathResolver | None = None,
) -> FilterResult:
    """Partition ``records`` into the kept list and the files to delete.

    ``resolve_path`` maps a record's file URL to a repository path and raises
    InvalidFileUrlError when it cannot; such records still leave the index but
    their file is reported in ``unresolved`` instead of being deleted. A file
    that a kept record still points at is never queued; it goes to ``shared``.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    cutoff = retention_cutoff(now, retention_months)
    result = FilterResult()
    retained: dict[tuple[str, str], Record] = {}
    order: list[Record] = []
    replaced: set[int] = set()

    def _mark(record: Record, reason: str) -> None:
        if reason == REASON_EXPIRED:
            result.expired.append(record)
        else:
            result.superseded.append(record)
        if resolve_path is None:
            path = record.file_url
        else:
            try:
                path = resolve_path(record.file_url)
            except InvalidFileUrlError as exc:
                log.warning("Invalid file path for removal, %s: %s", record.describe(), exc)
                result.unresolved.append(record)
                return
        log.info("Marking for removal (%s): %s, file: %s", reason, record.describe(), path)
        result.to_delete.append(RemoteFileRef(path, record.display_name, reason))

    for record in records:
        if is_expired(record, cutoff):
            _mark(record, REASON_EXPIRED)
            continue

        key = record.identifier
        current = retained.get(key)
        if current is None:
            retained[key] = record
            order.append(record)
        elif record.submitted_at > current.submitted_at:
            _mark(current, REASON_SUPERSEDED)
            replaced.add(id(current))
            retained[key] = record
            order.append(record)
            log.debug("Replacing duplicate %s with newer submission", current.describe())
        else:
            _mark(record, REASON_SUPERSEDED)

    result.kept = [r for r in order if id(r) not in replaced]

    in_use: set[str] = set()
    for record in result.kept:
        try:
            in_use.add(record.file_url if resolve_path is None else resolve_path(record.file_url))
        except InvalidFileUrlError:
            continue
    if in_use:
        pending: list[RemoteFileRef] = []
        for ref in result.to_delete:
            if ref.path in in_use:
                log.warning("Keeping %s: still referenced by a kept record", ref.path)
                result.shared.append(ref)
            else:
                pending.append(ref)
        result.to_delete = pending
    return result
