"""Advert status lifecycle.

``sold`` is terminal. Any other status may move to any different configured
status, including straight to ``sold``.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

AVAILABLE = "available"
RESERVED = "reserved"
SOLD = "sold"
DEFAULT_STATUSES = (AVAILABLE, RESERVED, SOLD)
TERMINAL_STATUSES = frozenset({SOLD})


class TransitionVerdict(str, Enum):
    ALLOWED = "allowed"
    UNKNOWN_STATUS = "unknown_status"
    NO_OP = "no_op"
    TERMINAL = "terminal"

    @property
    def allowed(self) -> bool:
        return self is TransitionVerdict.ALLOWED


class AdvertLifecycle:
    def __init__(self, statuses: Iterable[str] = DEFAULT_STATUSES) -> None:
        ordered = tuple(dict.fromkeys(statuses))
        if AVAILABLE not in ordered or SOLD not in ordered:
            raise ValueError("advert statuses must include 'available' and 'sold'")
        self._statuses = ordered

    @property
    def statuses(self) -> tuple[str, ...]:
        return self._statuses

    @property
    def initial_status(self) -> str:
        return AVAILABLE

    def is_known(self, status: str | None) -> bool:
        return status in self._statuses

    def evaluate(self, current: str, requested: str | None) -> TransitionVerdict:
        if not self.is_known(requested):
            return TransitionVerdict.UNKNOWN_STATUS
        if current in TERMINAL_STATUSES:
            return TransitionVerdict.TERMINAL
        if requested == current:
            return TransitionVerdict.NO_OP
        return TransitionVerdict.ALLOWED
