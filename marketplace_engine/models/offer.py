"""Offer model."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from marketplace_engine.models.enums import OfferPaymentMethod, OfferStatus


@dataclass(frozen=True)
class Offer:
    """A buyer's proposed purchase terms for one property."""

    offer_id: str
    property_id: str
    buyer_id: str
    offer_price: Decimal
    deposit_amount: Decimal
    payment_method: OfferPaymentMethod
    estimated_timeline: str  # Free text, e.g. "30 days"
    status: OfferStatus
    submitted_at: datetime
    expires_at: datetime | None = None
    seller_id: str | None = None  # None for admin-listed properties
    admin_reviewed_at: datetime | None = None
    admin_reviewed_by: str | None = None
    rejection_reason: str | None = None
    admin_notes: str | None = None
    updated_at: datetime | None = None
    version: int = 0
