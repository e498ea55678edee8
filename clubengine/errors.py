"""
Engine exceptions. Raised synchronously for caller mistakes and constraint violations;
idempotency conflicts are not errors and never surface here.
"""
from __future__ import annotations


class EngineError(ValueError):
    """Base class for competition engine errors."""


class NotFoundError(EngineError):
    """Referenced tournament, season, encounter, team or player does not exist."""


class TransitionError(EngineError):
    """Invalid status transition (e.g. completed -> in_progress)."""


class RegistrationError(EngineError):
    """Tournament registration refused (closed, full, level too low, ...)."""


class LineupError(EngineError):
    """Lineup violates a gender, roster, usage-cap or deadline constraint."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
