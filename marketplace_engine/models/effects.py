"""Side-effect instructions emitted by engine transitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from marketplace_engine.models.offer import Offer


@dataclass(frozen=True)
class PropertyAvailabilityChanged:
    """Tell the property collaborator whether a listing is open for offers."""

    property_id: str
    available: bool
    offer_id: str
    reason: str  # Status or action that caused the change
    effect_id: str = ""  # Assigned by the store when queued


@dataclass(frozen=True)
class OfferTransition:
    """Result of applying a transition to an offer snapshot.

    ``offer`` is None when the transition physically removes the offer.
    """

    previous: Offer
    offer: Offer | None
    effects: tuple[PropertyAvailabilityChanged, ...] = field(default_factory=tuple)
    occurred_at: datetime | None = None

    @property
    def deleted(self) -> bool:
        return self.offer is None
