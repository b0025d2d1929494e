import pytest

from tracker.config import TrackerConfig
from tracker.pin import LockState, PinLock


def locked(pin="1234", **kwargs):
    return PinLock(pin=pin, **kwargs)


def test_starts_awaiting_creation_without_pin():
    lock = PinLock()
    assert lock.state is LockState.AWAITING_CREATION
    assert locked().state is LockState.LOCKED


def test_creation_requires_configured_length_digits():
    lock = PinLock(pin_length=4)
    for bad in ("123", "12345", "12a4", ""):
        result = lock.submit(bad, now=0)
        assert not result.accepted
        assert lock.state is LockState.AWAITING_CREATION
        assert lock.pin is None
    result = lock.submit("1234", now=0)
    assert result.accepted
    assert lock.state is LockState.UNLOCKED
    assert lock.pin == "1234"


def test_six_digit_pin():
    lock = PinLock(pin_length=6)
    assert not lock.submit("1234", now=0).accepted
    assert lock.submit("123456", now=0).accepted


def test_invalid_pin_length_rejected():
    with pytest.raises(ValueError):
        PinLock(pin_length=3)
    with pytest.raises(ValueError):
        PinLock(pin_length=7)


def test_scenario_create_then_unlock_then_fail():
    lock = PinLock()
    assert lock.submit("1234", now=0).accepted
    # new session with the stored PIN
    session = locked(lock.pin)
    assert session.submit("1234", now=10).state is LockState.UNLOCKED
    other = locked(lock.pin)
    result = other.submit("0000", now=10)
    assert not result.accepted
    assert result.failed_attempts == 1
    assert other.state is LockState.LOCKED


def test_correct_pin_resets_failed_counter():
    lock = locked()
    for _ in range(4):
        lock.submit("0000", now=0)
    assert lock.failed_attempts == 4
    result = lock.submit("1234", now=1)
    assert result.accepted
    assert lock.failed_attempts == 0
    assert lock.state is LockState.UNLOCKED


def test_lockout_after_max_failures_then_expiry():
    lock = locked(max_failed_attempts=5, lockout_seconds=300)
    for i in range(5):
        result = lock.submit("9999", now=100)
    assert lock.state is LockState.LOCKED_OUT
    assert result.lockout_remaining == 300

    blocked = lock.submit("1234", now=300)
    assert not blocked.accepted
    assert blocked.lockout_remaining == 100
    assert lock.lockout_remaining(399.5) == 1

    assert lock.tick(400) is LockState.LOCKED
    assert lock.failed_attempts == 0
    assert lock.submit("1234", now=401).accepted


def test_inactivity_timeout_locks():
    lock = locked(lock_timeout_minutes=5)
    lock.submit("1234", now=0)
    assert lock.tick(299) is LockState.UNLOCKED
    lock.record_activity(200)
    assert lock.tick(499) is LockState.UNLOCKED
    assert lock.inactivity_deadline() == 500
    assert lock.tick(500) is LockState.LOCKED


def test_zero_timeout_disables_auto_lock():
    lock = locked(lock_timeout_minutes=0)
    lock.submit("1234", now=0)
    assert lock.tick(10 ** 6) is LockState.UNLOCKED
    assert lock.inactivity_deadline() is None


def test_manual_lock_and_set_timeout():
    lock = locked()
    lock.submit("1234", now=0)
    lock.set_timeout(1)
    assert lock.tick(60) is LockState.LOCKED
    lock.submit("1234", now=61)
    assert lock.lock() is LockState.LOCKED
    with pytest.raises(ValueError):
        lock.set_timeout(-1)


def test_reset_pin_requires_current_pin():
    lock = locked()
    lock.submit("1234", now=0)
    refused = lock.reset_pin("9999", now=1)
    assert not refused.accepted
    assert lock.pin == "1234"
    assert lock.failed_attempts == 1

    done = lock.reset_pin("1234", now=2)
    assert done.accepted
    assert lock.pin is None
    assert lock.state is LockState.AWAITING_CREATION


def test_change_pin_length():
    lock = locked()
    lock.submit("1234", now=0)
    assert not lock.change_pin_length("1234", 8, now=1).accepted
    assert lock.pin == "1234"
    result = lock.change_pin_length("1234", 6, now=1)
    assert result.accepted
    assert result.state is LockState.AWAITING_CREATION
    assert lock.pin_length == 6
    assert not lock.submit("1234", now=2).accepted
    assert lock.submit("654321", now=2).accepted


def test_from_config():
    config = TrackerConfig(pin_length=5, max_failed_attempts=3, lockout_seconds=60, lock_timeout_minutes=0)
    lock = PinLock.from_config(config, pin="12345")
    assert lock.pin_length == 5
    for _ in range(3):
        lock.submit("00000", now=0)
    assert lock.state is LockState.LOCKED_OUT
    assert lock.lockout_remaining(0) == 60
