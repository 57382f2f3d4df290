"""
Tagged outcome type for decode and read paths.

Decoders never raise on bad bank payloads; they return an `Outcome` so callers can decide whether a degraded value is
good enough (balance, statement reads) or must surface as a failure (payment status).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class OutcomeStatus(StrEnum):
    OK = "ok"
    DEGRADED = "degraded"
    FAIL = "fail"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    status: OutcomeStatus
    value: Optional[T] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(status=OutcomeStatus.OK, value=value)

    @classmethod
    def degraded(cls, value: T, reason: str) -> "Outcome[T]":
        """A usable fallback value (zero balance, empty list) plus why it had to be used."""
        return cls(status=OutcomeStatus.DEGRADED, value=value, reason=reason)

    @classmethod
    def fail(cls, reason: str) -> "Outcome[T]":
        return cls(status=OutcomeStatus.FAIL, reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.status == OutcomeStatus.OK

    @property
    def is_degraded(self) -> bool:
        return self.status == OutcomeStatus.DEGRADED

    @property
    def is_fail(self) -> bool:
        return self.status == OutcomeStatus.FAIL

    def value_or(self, default: T) -> T:
        if self.value is None:
            return default
        return self.value
