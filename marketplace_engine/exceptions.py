"""Custom exception hierarchy for marketplace-engine."""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base exception for all marketplace-engine errors."""


class EntityNotFoundError(EngineError):
    """Raised when a referenced entity does not exist."""


class PrerequisiteNotMet(EngineError):
    """Raised when a verification step skips an unmet prerequisite."""


class LedgerMismatchError(EngineError):
    """Raised when a verification event targets a different user's ledger."""


class LedgerIntegrityError(EngineError):
    """Raised when a ledger holds a flag combination that cannot occur."""


class IllegalTransition(EngineError):
    """Raised when an offer or payment state transition is not allowed."""

    def __init__(self, current: Any, target: Any, reason: str) -> None:
        self.current = current
        self.target = target
        self.reason = reason
        super().__init__(f"Illegal transition from {_label(current)} to {_label(target)}: {reason}")


class RejectionReasonRequired(IllegalTransition):
    """Raised when a rejection is requested without a reason."""


class UnauthorizedActor(EngineError):
    """Raised when an actor is not allowed to cause a transition."""


class NotPermitted(EngineError):
    """Raised when a user lacks the capability required by an operation."""


class OfferNotApproved(EngineError):
    """Raised when a payment or portfolio read targets a non-approved offer."""


class ConcurrentModification(EngineError):
    """Raised when a write is based on a stale entity version."""


class SideEffectFailed(EngineError):
    """Raised when a committed transition's side effect could not be delivered.

    The effect stays queued in the store outbox and can be retried.
    """

    def __init__(self, effect: Any, message: str) -> None:
        self.effect = effect
        super().__init__(message)


class EventLogError(EngineError):
    """Raised when an entity event log cannot be folded into a snapshot."""


class ConfigurationError(EngineError):
    """Raised when configuration is invalid or missing."""


class SinkError(EngineError):
    """Raised when a sink operation fails."""


def _label(value: Any) -> str:
    return getattr(value, "value", str(value))
