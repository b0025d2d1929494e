"""PIN lock state machine.

The machine never reads a clock on its own: every operation takes ``now``
(seconds, monotonic or epoch, as long as the caller is consistent).  Timers
that drive ``tick`` live in :mod:`tracker.scheduling`.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import NamedTuple, Optional

from tracker.config import MAX_PIN_LENGTH, MIN_PIN_LENGTH, TrackerConfig

logger = logging.getLogger(__name__)


class LockState(str, Enum):
    AWAITING_CREATION = "awaiting_creation"
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    LOCKED_OUT = "locked_out"


class PinResult(NamedTuple):
    accepted: bool
    state: LockState
    message: str
    failed_attempts: int = 0
    lockout_remaining: int = 0


class PinLock:
    def __init__(
        self,
        pin: Optional[str] = None,
        pin_length: int = 4,
        max_failed_attempts: int = 5,
        lockout_seconds: float = 300,
        lock_timeout_minutes: float = 5,
    ):
        if not MIN_PIN_LENGTH <= pin_length <= MAX_PIN_LENGTH:
            raise ValueError(f"PIN length must be between {MIN_PIN_LENGTH} and {MAX_PIN_LENGTH}")
        self.pin = pin or None
        self.pin_length = pin_length
        self.max_failed_attempts = max_failed_attempts
        self.lockout_seconds = lockout_seconds
        self.lock_timeout = lock_timeout_minutes * 60
        self.state = LockState.LOCKED if self.pin else LockState.AWAITING_CREATION
        self.failed_attempts = 0
        self.lockout_until: Optional[float] = None
        self.last_activity: Optional[float] = None

    @classmethod
    def from_config(cls, config: TrackerConfig, pin: Optional[str] = None,
                    pin_length: Optional[int] = None,
                    lock_timeout_minutes: Optional[int] = None) -> "PinLock":
        return cls(
            pin=pin,
            pin_length=pin_length or config.pin_length,
            max_failed_attempts=config.max_failed_attempts,
            lockout_seconds=config.lockout_seconds,
            lock_timeout_minutes=(
                config.lock_timeout_minutes if lock_timeout_minutes is None else lock_timeout_minutes
            ),
        )

    @property
    def is_unlocked(self) -> bool:
        return self.state is LockState.UNLOCKED

    def _move(self, state: LockState) -> None:
        if state is not self.state:
            logger.debug("PIN lock %s -> %s", self.state.value, state.value)
            self.state = state

    def _result(self, accepted: bool, message: str, now: float) -> PinResult:
        return PinResult(
            accepted=accepted,
            state=self.state,
            message=message,
            failed_attempts=self.failed_attempts,
            lockout_remaining=self.lockout_remaining(now),
        )

    def lockout_remaining(self, now: float) -> int:
        if self.state is not LockState.LOCKED_OUT or self.lockout_until is None:
            return 0
        return max(0, math.ceil(self.lockout_until - now))

    def is_valid_candidate(self, candidate: str) -> bool:
        return (
            isinstance(candidate, str)
            and candidate.isdigit()
            and len(candidate) == self.pin_length
            and len(candidate) >= MIN_PIN_LENGTH
        )

    def submit(self, candidate: str, now: float) -> PinResult:
        self.tick(now)

        if self.state is LockState.AWAITING_CREATION:
            if not self.is_valid_candidate(candidate):
                return self._result(False, f"Le code PIN doit contenir {self.pin_length} chiffres", now)
            self.pin = candidate
            self.failed_attempts = 0
            self.last_activity = now
            self._move(LockState.UNLOCKED)
            return self._result(True, "Code PIN créé", now)

        if self.state is LockState.LOCKED_OUT:
            return self._result(False, "Trop de tentatives, veuillez patienter", now)

        if self.state is LockState.UNLOCKED:
            return self._result(True, "Déjà déverrouillé", now)

        if candidate == self.pin:
            self.failed_attempts = 0
            self.last_activity = now
            self._move(LockState.UNLOCKED)
            return self._result(True, "Déverrouillé", now)

        self._register_failure(now)
        if self.state is LockState.LOCKED_OUT:
            return self._result(False, "Trop de tentatives, veuillez patienter", now)
        left = self.max_failed_attempts - self.failed_attempts
        return self._result(False, f"Code PIN incorrect ({left} essai(s) restant(s))", now)

    def _register_failure(self, now: float) -> None:
        self.failed_attempts += 1
        if self.failed_attempts >= self.max_failed_attempts:
            self.lockout_until = now + self.lockout_seconds
            self._move(LockState.LOCKED_OUT)

    def tick(self, now: float) -> LockState:
        """Apply time-driven transitions: lockout expiry and inactivity lock."""
        if self.state is LockState.LOCKED_OUT and self.lockout_until is not None and now >= self.lockout_until:
            self.failed_attempts = 0
            self.lockout_until = None
            self._move(LockState.LOCKED)
        elif self.state is LockState.UNLOCKED and self.inactivity_expired(now):
            self._move(LockState.LOCKED)
        return self.state

    def inactivity_expired(self, now: float) -> bool:
        if self.lock_timeout <= 0 or self.last_activity is None:
            return False
        return now - self.last_activity >= self.lock_timeout

    def inactivity_deadline(self) -> Optional[float]:
        if self.state is not LockState.UNLOCKED or self.lock_timeout <= 0 or self.last_activity is None:
            return None
        return self.last_activity + self.lock_timeout

    def record_activity(self, now: float) -> None:
        if self.state is LockState.UNLOCKED and not self.inactivity_expired(now):
            self.last_activity = now

    def lock(self) -> LockState:
        if self.state is LockState.UNLOCKED:
            self._move(LockState.LOCKED)
        return self.state

    def set_timeout(self, minutes: float) -> None:
        if minutes < 0:
            raise ValueError("Lock timeout cannot be negative")
        self.lock_timeout = minutes * 60

    def _reauthenticate(self, current: str, now: float) -> Optional[PinResult]:
        self.tick(now)
        if self.state is LockState.AWAITING_CREATION:
            return self._result(False, "Aucun code PIN défini", now)
        if self.state is LockState.LOCKED_OUT:
            return self._result(False, "Trop de tentatives, veuillez patienter", now)
        if current != self.pin:
            self._register_failure(now)
            return self._result(False, "Code PIN actuel incorrect", now)
        return None

    def _clear(self) -> None:
        self.pin = None
        self.failed_attempts = 0
        self.lockout_until = None
        self.last_activity = None
        self._move(LockState.AWAITING_CREATION)

    def reset_pin(self, current: str, now: float) -> PinResult:
        refused = self._reauthenticate(current, now)
        if refused is not None:
            return refused
        self._clear()
        return self._result(True, "Code PIN réinitialisé", now)

    def change_pin_length(self, current: str, new_length: int, now: float) -> PinResult:
        if not MIN_PIN_LENGTH <= new_length <= MAX_PIN_LENGTH:
            return self._result(
                False, f"La longueur doit être entre {MIN_PIN_LENGTH} et {MAX_PIN_LENGTH}", now
            )
        refused = self._reauthenticate(current, now)
        if refused is not None:
            return refused
        self.pin_length = new_length
        self._clear()
        return self._result(True, f"Créez un nouveau code PIN à {new_length} chiffres", now)
