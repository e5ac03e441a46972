import pytest

from curriculo_cleanup.retry import retry


class Flaky(Exception):
    pass


def test_retries_until_success():
    attempts = []

    @retry(max_attempts=3, retryable=(Flaky,))
    def op():
        attempts.append(1)
        if len(attempts) < 3:
            raise Flaky("again")
        return "ok"

    assert op() == "ok"
    assert len(attempts) == 3


def test_non_retryable_propagates_immediately():
    attempts = []

    @retry(max_attempts=5, retryable=(Flaky,))
    def op():
        attempts.append(1)
        raise ValueError("bad")

    with pytest.raises(ValueError):
        op()
    assert len(attempts) == 1


def test_backoff_delays(monkeypatch):
    delays = []
    monkeypatch.setattr("curriculo_cleanup.retry.time.sleep", delays.append)

    @retry(max_attempts=4, base_delay=1.0, backoff_factor=2.0, max_delay=3.0, jitter=False, retryable=(Flaky,))
    def op():
        raise Flaky("down")

    with pytest.raises(Flaky):
        op()
    assert delays == [1.0, 2.0, 3.0]


def test_retry_after_hint_extends_delay(monkeypatch):
    delays = []
    monkeypatch.setattr("curriculo_cleanup.retry.time.sleep", delays.append)
    calls = []

    class Throttled(Exception):
        retry_after = 7

    @retry(max_attempts=2, base_delay=1.0, max_delay=30.0, jitter=False, retryable=(Throttled,))
    def op():
        calls.append(1)
        if len(calls) == 1:
            raise Throttled("slow down")
        return "ok"

    assert op() == "ok"
    assert delays == [7.0]


def test_retry_after_hint_is_capped(monkeypatch):
    delays = []
    monkeypatch.setattr("curriculo_cleanup.retry.time.sleep", delays.append)

    class Throttled(Exception):
        retry_after = 3600

    @retry(max_attempts=2, max_delay=30.0, retryable=(Throttled,))
    def op():
        raise Throttled("reset in an hour")

    with pytest.raises(Throttled):
        op()
    assert delays == [30.0]
