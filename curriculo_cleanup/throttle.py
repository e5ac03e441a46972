"""Rate-limited, bounded-concurrency delete fan-out with cancellation."""
from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from curriculo_cleanup.errors import RunCancelled
from curriculo_cleanup.log import get_logger
from curriculo_cleanup.models import RemoteFileRef
from curriculo_cleanup.store import DELETED, FAILED, MISSING, DeleteOutcome

log = get_logger(__name__)

SKIPPED = "skipped"


class RateLimiter:
    """Spaces successive calls at least ``min_interval`` seconds apart."""

    def __init__(self, min_interval: float = 0.1) -> None:
        self.min_interval = max(0.0, min_interval)
        self._lock = threading.Lock()
        self._next_slot = 0.0

    def wait(self) -> None:
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.min_interval
        delay = slot - now
        if delay > 0:
            time.sleep(delay)


class CancelToken:
    """Set explicitly via cancel(), or implicitly once ``timeout`` seconds pass."""

    def __init__(self, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if not self._event.is_set() and self._deadline is not None and time.monotonic() >= self._deadline:
            log.warning("Run timeout reached")
            self._event.set()
        return self._event.is_set()

    def raise_if_cancelled(self, where: str) -> None:
        if self.cancelled:
            raise RunCancelled(f"cancelled {where}")


@dataclass
class DeleteReport:
    deleted: list[RemoteFileRef] = field(default_factory=list)
    missing: list[RemoteFileRef] = field(default_factory=list)
    failed: list[DeleteOutcome] = field(default_factory=list)
    skipped: list[RemoteFileRef] = field(default_factory=list)

    def add(self, outcome: DeleteOutcome) -> None:
        if outcome.status == DELETED:
            self.deleted.append(outcome.ref)
        elif outcome.status == MISSING:
            self.missing.append(outcome.ref)
        elif outcome.status == SKIPPED:
            self.skipped.append(outcome.ref)
        else:
            self.failed.append(outcome)


def _unique(refs: list[RemoteFileRef]) -> list[RemoteFileRef]:
    seen: set[str] = set()
    out: list[RemoteFileRef] = []
    for ref in refs:
        if ref.path not in seen:
            seen.add(ref.path)
            out.append(ref)
    return out


def delete_files(
    store,
    refs: list[RemoteFileRef],
    *,
    limiter: RateLimiter | None = None,
    max_workers: int = 4,
    cancel: CancelToken | None = None,
) -> DeleteReport:
    """Delete every ref independently; one failure never blocks the others.

    Raises RunCancelled once in-flight deletes have settled if ``cancel`` fired.
    """
    limiter = limiter or RateLimiter()
    cancel = cancel or CancelToken()
    report = DeleteReport()
    targets = _unique(refs)
    if not targets:
        return report

    def _delete_one(ref: RemoteFileRef) -> DeleteOutcome:
        if cancel.cancelled:
            return DeleteOutcome(ref, SKIPPED)
        limiter.wait()
        if cancel.cancelled:
            return DeleteOutcome(ref, SKIPPED)
        try:
            return store.delete_file(ref)
        except Exception as exc:
            log.error("Unexpected error removing %s: %s", ref.path, exc)
            return DeleteOutcome(ref, FAILED, str(exc))

    log.info("Deleting %d file(s) with %d worker(s)...", len(targets), max_workers)
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = {pool.submit(_delete_one, ref): ref for ref in targets}
        for future in as_completed(futures):
            report.add(future.result())

    log.info(
        "Delete summary: removed=%d, already gone=%d, failed=%d, skipped=%d",
        len(report.deleted), len(report.missing), len(report.failed), len(report.skipped),
    )
    for outcome in report.failed:
        log.error("  failed: %s (%s)", outcome.ref.path, outcome.error)

    if report.skipped:
        raise RunCancelled(f"cancelled with {len(report.skipped)} delete(s) not issued")
    cancel.raise_if_cancelled("during file deletion")
    return report
