"""
Tests for the retry executor and dump size validation.
"""
import pytest
from apprip.retry import with_retry, validate_dump
from apprip.types import Validation


def test_retry_backoff_delays_and_last_failure():
    sleeps = []
    raised = []

    def action():
        e = RuntimeError(f"attempt {len(raised) + 1}")
        raised.append(e)
        raise e

    with pytest.raises(RuntimeError) as exc:
        with_retry(action, max_attempts=3, initial_delay=5, sleep=sleeps.append)

    assert len(raised) == 3
    assert sleeps == [5, 10]
    assert exc.value is raised[-1]


def test_retry_returns_first_success():
    sleeps = []
    outcomes = [RuntimeError("boom"), "ok"]

    def action():
        r = outcomes.pop(0)
        if isinstance(r, Exception):
            raise r
        return r

    assert with_retry(action, sleep=sleeps.append) == "ok"
    assert sleeps == [5]


def test_retry_does_not_catch_unlisted_errors():
    calls = []

    def action():
        calls.append(1)
        raise KeyError("x")

    with pytest.raises(KeyError):
        with_retry(action, retry_on=(RuntimeError,), sleep=lambda s: None)
    assert len(calls) == 1


def test_retry_rejects_zero_attempts():
    with pytest.raises(ValueError):
        with_retry(lambda: None, max_attempts=0)


def test_validate_missing(tmp_path):
    assert validate_dump(tmp_path / "nope.dump", 1024) is Validation.MISSING


def test_validate_empty_rejected(tmp_path):
    p = tmp_path / "empty.dump"
    p.write_bytes(b"")
    result = validate_dump(p, 1024)
    assert result is Validation.EMPTY
    assert not result.accepted


def test_validate_one_below_minimum_is_accepted(tmp_path, caplog):
    p = tmp_path / "small.dump"
    p.write_bytes(b"x" * 1023)
    result = validate_dump(p, 1024)
    assert result is Validation.UNDERSIZED
    assert result.accepted
    assert "suspiciously small" in caplog.text


def test_validate_ok(tmp_path):
    p = tmp_path / "big.dump"
    p.write_bytes(b"x" * 1024)
    assert validate_dump(p, 1024) is Validation.OK
