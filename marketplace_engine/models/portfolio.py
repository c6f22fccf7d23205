"""Derived read models for dashboards."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class PortfolioEntry:
    """Payment progress of one approved offer."""

    offer_id: str
    property_id: str
    total_paid: Decimal
    percent_complete: int  # 0-100
    remaining: Decimal
    is_fully_paid: bool
    completed_payments: int = 0


@dataclass(frozen=True)
class OfferStats:
    """Offer counts per status."""

    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    withdrawn: int = 0
    expired: int = 0


@dataclass(frozen=True)
class PaymentStats:
    """Payment summary for the review dashboard."""

    pending: int = 0
    failed_or_cancelled: int = 0
    total_completed: Decimal = Decimal("0")
    completed_this_month: Decimal = Decimal("0")
    near_completion: int = 0  # Offers with at least 80% paid
