import threading
import time

import pytest

from curriculo_cleanup.errors import RunCancelled
from curriculo_cleanup.models import RemoteFileRef
from curriculo_cleanup.store import DELETED, FAILED, MISSING, DeleteOutcome
from curriculo_cleanup.throttle import CancelToken, RateLimiter, delete_files


class RecordingStore:
    def __init__(self, missing=(), failing=(), raising=()):
        self.missing = set(missing)
        self.failing = set(failing)
        self.raising = set(raising)
        self.calls = []
        self._lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def delete_file(self, ref):
        with self._lock:
            self.calls.append(ref.path)
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(0.01)
            if ref.path in self.raising:
                raise RuntimeError("unexpected")
            if ref.path in self.missing:
                return DeleteOutcome(ref, MISSING)
            if ref.path in self.failing:
                return DeleteOutcome(ref, FAILED, "500 boom")
            return DeleteOutcome(ref, DELETED)
        finally:
            with self._lock:
                self.active -= 1


def _refs(*paths):
    return [RemoteFileRef(p, "x") for p in paths]


def test_each_file_is_deleted_once():
    store = RecordingStore()
    report = delete_files(store, _refs("a", "b", "a", "c"), limiter=RateLimiter(0))
    assert sorted(store.calls) == ["a", "b", "c"]
    assert sorted(r.path for r in report.deleted) == ["a", "b", "c"]


def test_failures_do_not_block_other_deletes():
    store = RecordingStore(missing={"b"}, failing={"c"}, raising={"d"})
    report = delete_files(store, _refs("a", "b", "c", "d", "e"), limiter=RateLimiter(0))
    assert sorted(r.path for r in report.deleted) == ["a", "e"]
    assert [r.path for r in report.missing] == ["b"]
    assert sorted(o.ref.path for o in report.failed) == ["c", "d"]


def test_concurrency_is_bounded():
    store = RecordingStore()
    delete_files(store, _refs(*[f"f{i}" for i in range(12)]), limiter=RateLimiter(0), max_workers=3)
    assert len(store.calls) == 12
    assert store.peak <= 3


def test_empty_batch_issues_nothing():
    store = RecordingStore()
    report = delete_files(store, [])
    assert store.calls == []
    assert report.deleted == []


def test_cancelled_token_stops_new_deletes():
    store = RecordingStore()
    token = CancelToken()
    token.cancel()
    with pytest.raises(RunCancelled):
        delete_files(store, _refs("a", "b"), limiter=RateLimiter(0), cancel=token)
    assert store.calls == []


def test_cancel_midway_skips_remaining():
    token = CancelToken()

    class CancellingStore(RecordingStore):
        def delete_file(self, ref):
            outcome = super().delete_file(ref)
            token.cancel()
            return outcome

    store = CancellingStore()
    with pytest.raises(RunCancelled):
        delete_files(store, _refs(*[f"f{i}" for i in range(6)]), limiter=RateLimiter(0), max_workers=1, cancel=token)
    assert store.calls == ["f0"]


def test_token_expires_after_timeout(monkeypatch):
    clock = [100.0]
    monkeypatch.setattr("curriculo_cleanup.throttle.time.monotonic", lambda: clock[0])
    token = CancelToken(timeout=5)
    assert not token.cancelled
    clock[0] = 105.0
    assert token.cancelled
    with pytest.raises(RunCancelled):
        token.raise_if_cancelled("now")


def test_rate_limiter_spaces_calls(monkeypatch):
    clock = [0.0]
    sleeps = []
    monkeypatch.setattr("curriculo_cleanup.throttle.time.monotonic", lambda: clock[0])
    monkeypatch.setattr("curriculo_cleanup.throttle.time.sleep", sleeps.append)

    limiter = RateLimiter(0.1)
    limiter.wait()
    limiter.wait()
    limiter.wait()
    assert sleeps == pytest.approx([0.1, 0.2])
