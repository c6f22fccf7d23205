"""Base models shared across entities."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Event:
    """Standard event envelope for the per-entity event log."""

    event_id: str
    event_type: str  # entity.action (e.g., offer.approved)
    event_time: datetime
    source: str  # Actor or subsystem that caused it
    subject: str  # Entity ID affected
    data: dict
    metadata: dict = field(default_factory=dict)
