"""GitHub contents API adapter for the index document and uploaded files.

Docs: https://docs.github.com/en/rest/repos/contents
"""
from __future__ import annotations

import base64
import json
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import requests

from curriculo_cleanup.config import Settings, ensure_scratch_dir
from curriculo_cleanup.errors import (
    IndexFormatError,
    MalformedRecordError,
    NotFoundError,
    RemoteError,
    RemoteTransientError,
    RemoteWriteConflict,
)
from curriculo_cleanup.log import get_logger
from curriculo_cleanup.models import IndexSnapshot, Record, RemoteContent, RemoteFileRef
from curriculo_cleanup.retry import retry

log = get_logger(__name__)

DELETED = "deleted"
MISSING = "missing"
FAILED = "failed"


@dataclass(frozen=True)
class DeleteOutcome:
    ref: RemoteFileRef
    status: str
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status != FAILED


def _retry_after(resp: requests.Response) -> float | None:
    """Seconds to wait according to Retry-After or X-RateLimit-Reset, if sent."""
    value = resp.headers.get("Retry-After")
    if value and value.isdigit():
        return float(value)
    reset = resp.headers.get("X-RateLimit-Reset")
    if reset and reset.isdigit():
        return max(0.0, float(reset) - time.time())
    return None


def _raise_for_response(resp: requests.Response, method: str, path: str) -> None:
    status = resp.status_code
    if status < 400:
        return
    try:
        detail = resp.json().get("message", "")
    except (ValueError, AttributeError):
        detail = resp.text[:200]
    msg = f"{method} {path}: {status} {detail}".strip()

    if status == 404:
        raise NotFoundError(msg, path=path, status=status)
    rate_limited = status == 403 and (
        resp.headers.get("X-RateLimit-Remaining") == "0" or "Retry-After" in resp.headers
    )
    if status == 429 or status >= 500 or rate_limited:
        raise RemoteTransientError(msg, path=path, status=status, retry_after=_retry_after(resp))
    if status in (409, 422):
        raise RemoteWriteConflict(msg, path=path, status=status)
    raise RemoteError(msg, path=path, status=status)


class GitHubStore:
    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"token {settings.token}",
            "Accept": "application/vnd.github.v3+json",
        })

    def _url(self, path: str) -> str:
        base = f"{self.settings.api_url}/repos/{self.settings.repo_slug}/contents"
        return f"{base}/{quote(path, safe='/')}"

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        try:
            resp = self.session.request(
                method, self._url(path), timeout=self.settings.http_timeout, **kwargs
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise RemoteTransientError(f"{method} {path}: {exc}", path=path) from exc
        except requests.RequestException as exc:
            raise RemoteError(f"{method} {path}: {exc}", path=path) from exc
        _raise_for_response(resp, method, path)
        return resp

    # -- primitives -------------------------------------------------------

    def get_content(self, path: str) -> RemoteContent:
        resp = self._request("GET", path, params={"ref": self.settings.branch})
        data = resp.json()
        if not isinstance(data, dict) or "sha" not in data:
            raise RemoteError(f"GET {path}: not a file", path=path, status=resp.status_code)
        if data.get("encoding") == "none":
            raise RemoteError(f"GET {path}: too large for the contents API", path=path, status=resp.status_code)
        raw = data.get("content") or ""
        content = base64.b64decode(raw) if raw else b""
        return RemoteContent(path=path, sha=data["sha"], content=content)

    def get_sha(self, path: str) -> str:
        """Current blob sha of ``path``. Works for files too large to inline."""
        resp = self._request("GET", path, params={"ref": self.settings.branch})
        data = resp.json()
        if not isinstance(data, dict) or not data.get("sha"):
            raise RemoteError(f"GET {path}: not a file", path=path, status=resp.status_code)
        return data["sha"]

    def put_content(self, path: str, content: bytes, message: str, sha: str | None = None) -> str:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.settings.branch,
        }
        if sha:
            body["sha"] = sha
        resp = self._request("PUT", path, json=body)
        return resp.json().get("content", {}).get("sha", "")

    def delete_content(self, path: str, sha: str, message: str) -> None:
        self._request(
            "DELETE",
            path,
            json={"message": message, "sha": sha, "branch": self.settings.branch},
        )

    # -- index ------------------------------------------------------------

    @retry(max_attempts=3, base_delay=1.0, retryable=(RemoteTransientError,))
    def read_index(self) -> IndexSnapshot:
        path = self.settings.index_path
        try:
            remote = self.get_content(path)
        except NotFoundError:
            log.warning("%s not found. Starting with empty records.", path)
            return IndexSnapshot(records=[])

        try:
            entries = json.loads(remote.content.decode("utf-8")) if remote.content.strip() else []
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise IndexFormatError(f"{path}: invalid JSON ({exc})", path=path) from exc
        if not isinstance(entries, list):
            raise IndexFormatError(f"{path}: expected a JSON array", path=path)

        records: list[Record] = []
        malformed: list[tuple[int, Any]] = []
        for pos, entry in enumerate(entries):
            try:
                records.append(Record.from_dict(entry))
            except MalformedRecordError as exc:
                log.warning("Skipping malformed record #%d in %s: %s", pos, path, exc)
                malformed.append((pos, entry))

        log.info("Total records loaded: %d (%d malformed)", len(records), len(malformed))
        return IndexSnapshot(records=records, sha=remote.sha, malformed=malformed)

    def stage_index(self, entries: list[Any]) -> bytes:
        """Write the serialized index to the scratch dir and return its bytes."""
        scratch = ensure_scratch_dir(self.settings)
        local_path = scratch / self.settings.index_path.rsplit("/", 1)[-1]
        payload = json.dumps(entries, indent=2, ensure_ascii=False).encode("utf-8")
        local_path.write_bytes(payload)
        log.debug("Staged %d record(s) at %s", len(entries), local_path)
        return local_path.read_bytes()

    @retry(max_attempts=3, base_delay=1.0, retryable=(RemoteTransientError,))
    def write_index(
        self,
        records: list[Record],
        sha: str | None,
        malformed: list[tuple[int, Any]] | None = None,
    ) -> str:
        """Overwrite the index, guarded by the sha it was read at.

        ``malformed`` entries go back in at their original index positions
        (clamped to the new length) so a rewrite does not reorder them.

        A rejected precondition surfaces as RemoteWriteConflict and is never
        retried: someone else changed the index and this run's view is stale.
        """
        path = self.settings.index_path
        entries: list[Any] = [r.to_dict() for r in records]
        for pos, entry in sorted(malformed or [], key=lambda item: item[0]):
            entries.insert(min(pos, len(entries)), entry)
        content = self.stage_index(entries)
        new_sha = self.put_content(path, content, self.settings.commit_messages["index"], sha=sha)
        log.info("%s updated on GitHub (%d records).", path, len(entries))
        return new_sha

    # -- uploaded files ---------------------------------------------------

    def delete_file(self, ref: RemoteFileRef) -> DeleteOutcome:
        """Best-effort delete. Never raises for per-file problems."""
        template = self.settings.commit_messages["delete"]
        message = template.format(nome=ref.display_name, path=ref.path, reason=ref.reason)
        try:
            sha = self.get_sha(ref.path)
        except NotFoundError:
            log.warning("File not found on GitHub: %s", ref.path)
            return DeleteOutcome(ref, MISSING)
        except RemoteError as exc:
            log.error("Error getting SHA for %s: %s", ref.path, exc)
            return DeleteOutcome(ref, FAILED, str(exc))

        try:
            self.delete_content(ref.path, sha, message)
        except NotFoundError:
            log.warning("File disappeared before delete: %s", ref.path)
            return DeleteOutcome(ref, MISSING)
        except RemoteError as exc:
            log.error("Error removing file %s: %s", ref.path, exc)
            return DeleteOutcome(ref, FAILED, str(exc))

        log.info("File removed: %s", ref.path)
        return DeleteOutcome(ref, DELETED)
