"""
Résumé index cleanup.

Runs: read dados.json → drop expired / duplicate submissions → delete their files → rewrite dados.json.
"""
from __future__ import annotations

from datetime import datetime, timezone
from functools import partial
from typing import Any

from curriculo_cleanup.config import Settings
from curriculo_cleanup.log import get_logger
from curriculo_cleanup.paths import file_path_from_url
from curriculo_cleanup.retention import filter_records
from curriculo_cleanup.store import GitHubStore
from curriculo_cleanup.throttle import CancelToken, RateLimiter, delete_files

log = get_logger(__name__)


def _summary(**counts: Any) -> dict[str, Any]:
    base = {
        "records_read": 0, "kept": 0, "expired": 0, "superseded": 0,
        "malformed": 0, "unresolved": 0, "files_deleted": 0,
        "files_missing": 0, "files_failed": 0, "files_shared": 0,
        "index_written": False,
    }
    base.update(counts)
    return base


def run(
    settings: Settings,
    *,
    store: GitHubStore | None = None,
    now: datetime | None = None,
    cancel: CancelToken | None = None,
    limiter: RateLimiter | None = None,
) -> dict[str, Any]:
    """One full retention pass. Errors reading or writing the index propagate."""
    store = store or GitHubStore(settings)
    now = now or datetime.now(timezone.utc)
    cancel = cancel or CancelToken(settings.run_timeout)
    limiter = limiter or RateLimiter(settings.delete_interval)

    log.info("Starting résumé cleanup for %s@%s...", settings.repo_slug, settings.branch)

    # 1. Snapshot
    snapshot = store.read_index()
    if not snapshot.records:
        log.info("No records to process. Cleanup finished.")
        return _summary(records_read=len(snapshot), malformed=len(snapshot.malformed))

    # 2. Retention + dedup
    result = filter_records(
        snapshot.records,
        now,
        settings.retention_months,
        resolve_path=partial(file_path_from_url, settings=settings),
    )

    log.info("Cleanup summary:")
    log.info("  - Original records: %d", len(snapshot))
    log.info("  - Removed by age (>= %d months): %d", settings.retention_months, len(result.expired))
    log.info("  - Duplicates removed: %d", len(result.superseded))
    log.info("  - Malformed (left untouched): %d", len(snapshot.malformed))
    log.info("  - Records kept: %d", len(result.kept))
    log.info("  - Files to delete: %d", len(result.to_delete))
    if result.shared:
        log.info("  - Files kept, still in use: %d", len(result.shared))

    cancel.raise_if_cancelled("before file deletion")

    # 3. Delete superseded / expired files
    report = delete_files(
        store,
        result.to_delete,
        limiter=limiter,
        max_workers=settings.delete_workers,
        cancel=cancel,
    )

    summary = _summary(
        records_read=len(snapshot),
        kept=len(result.kept),
        expired=len(result.expired),
        superseded=len(result.superseded),
        malformed=len(snapshot.malformed),
        unresolved=len(result.unresolved),
        files_deleted=len(report.deleted),
        files_missing=len(report.missing),
        files_failed=len(report.failed),
        files_shared=len(result.shared),
    )

    # 4. Rewrite the index only if something left it
    if not result.changed:
        log.info("No cleanup needed.")
        return summary

    cancel.raise_if_cancelled("before writing the index")
    store.write_index(result.kept, snapshot.sha, malformed=snapshot.malformed)
    summary["index_written"] = True

    log.info(
        "Cleanup complete — kept=%d, expired=%d, duplicates=%d, files removed=%d, failed=%d",
        summary["kept"], summary["expired"], summary["superseded"],
        summary["files_deleted"], summary["files_failed"],
    )
    return summary
