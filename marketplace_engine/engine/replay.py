"""Rebuild entity snapshots by folding their append-only event logs.

Creation events (``*.created`` / ``*.submitted``) carry the full snapshot;
every later event carries only the fields it changed; ``*.deleted`` ends the
entity. The folded ``version`` equals the number of events applied.
"""

from __future__ import annotations

from dataclasses import fields, replace
from typing import Any, Iterable, TypeVar

from marketplace_engine.exceptions import EventLogError
from marketplace_engine.models.base import Event
from marketplace_engine.models.offer import Offer
from marketplace_engine.models.payment import Payment
from marketplace_engine.models.verification import VerificationLedger

T = TypeVar("T")

CREATE_ACTIONS = frozenset({"created", "submitted"})
DELETE_ACTION = "deleted"


def snapshot_fields(entity: Any) -> dict[str, Any]:
    """All fields of an entity except its version."""
    return {f.name: getattr(entity, f.name) for f in fields(entity) if f.name != "version"}


def diff_fields(old: Any, new: Any) -> dict[str, Any]:
    """Fields whose value differs between two snapshots of the same entity."""
    return {
        name: value
        for name, value in snapshot_fields(new).items()
        if getattr(old, name) != value
    }


def action_of(event: Event) -> str:
    """``offer.approved`` -> ``approved``."""
    return event.event_type.rsplit(".", 1)[-1]


def fold(events: Iterable[Event], factory: type[T]) -> T | None:
    """Fold an ordered event log into the latest snapshot.

    Returns None for an empty log or a deleted entity.

    Raises
    ------
    EventLogError
        If the log does not start with a creation event, or continues
        after a deletion.
    """
    state: Any = None
    version = 0
    deleted = False

    for event in events:
        action = action_of(event)
        if deleted:
            raise EventLogError(f"Event {event.event_id} follows deletion of {event.subject}")
        if state is None:
            if action not in CREATE_ACTIONS:
                raise EventLogError(
                    f"Log of {event.subject} starts with {event.event_type}, not a creation"
                )
            state = factory(**event.data)
        elif action == DELETE_ACTION:
            deleted = True
        else:
            state = replace(state, **event.data)
        version += 1

    if state is None or deleted:
        return None
    return replace(state, version=version)


def replay_ledger(events: Iterable[Event]) -> VerificationLedger | None:
    return fold(events, VerificationLedger)


def replay_offer(events: Iterable[Event]) -> Offer | None:
    return fold(events, Offer)


def replay_payment(events: Iterable[Event]) -> Payment | None:
    return fold(events, Payment)
