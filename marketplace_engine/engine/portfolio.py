"""Portfolio aggregation: payment progress of approved offers."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from marketplace_engine.exceptions import OfferNotApproved
from marketplace_engine.models.enums import OfferStatus, PaymentStatus
from marketplace_engine.models.offer import Offer
from marketplace_engine.models.payment import Payment
from marketplace_engine.models.portfolio import OfferStats, PaymentStats, PortfolioEntry


# Share of the offer price at which a buyer counts as close to owning
NEAR_COMPLETION_PERCENT = 80


def completed_payments(offer: Offer, payments: Iterable[Payment]) -> list[Payment]:
    """Return the verified payments that belong to ``offer``."""
    return [
        p for p in payments
        if p.offer_id == offer.offer_id and p.status == PaymentStatus.COMPLETED
    ]


def percent_of(total: Decimal, price: Decimal) -> int:
    """Whole percentage of ``price`` covered by ``total``, clamped to 0-100.

    Raises
    ------
    ValueError
        If ``price`` is not positive.
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    raw = (Decimal(100) * total / price).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(0, min(100, int(raw)))


def aggregate(offer: Offer, payments: Iterable[Payment]) -> PortfolioEntry:
    """Fold an approved offer's completed payments into a portfolio entry.

    ``total_paid`` is the plain sum and may exceed the offer price; only
    ``percent_complete`` is clamped.

    Raises
    ------
    OfferNotApproved
        If ``offer`` is not APPROVED.
    """
    if offer.status != OfferStatus.APPROVED:
        raise OfferNotApproved(
            f"Offer {offer.offer_id} is {offer.status.value}; only approved offers have progress"
        )

    completed = completed_payments(offer, payments)
    total_paid = sum((p.amount for p in completed), Decimal("0"))
    percent = percent_of(total_paid, offer.offer_price)

    return PortfolioEntry(
        offer_id=offer.offer_id,
        property_id=offer.property_id,
        total_paid=total_paid,
        percent_complete=percent,
        remaining=max(offer.offer_price - total_paid, Decimal("0")),
        is_fully_paid=percent >= 100,
        completed_payments=len(completed),
    )


def is_portfolio_eligible(offer: Offer, payments: Iterable[Payment]) -> bool:
    """An approved offer counts as owned once at least one payment is verified."""
    return offer.status == OfferStatus.APPROVED and bool(completed_payments(offer, payments))


def build_portfolio(offers: Iterable[Offer], payments: Iterable[Payment]) -> list[PortfolioEntry]:
    """Portfolio entries for every eligible offer, in the order given."""
    payments = list(payments)
    return [
        aggregate(offer, payments)
        for offer in offers
        if is_portfolio_eligible(offer, payments)
    ]


def offer_stats(offers: Iterable[Offer]) -> OfferStats:
    """Count offers per status for the review dashboard."""
    counts = Counter(offer.status for offer in offers)
    return OfferStats(
        total=sum(counts.values()),
        pending=counts[OfferStatus.PENDING],
        approved=counts[OfferStatus.APPROVED],
        rejected=counts[OfferStatus.REJECTED],
        withdrawn=counts[OfferStatus.WITHDRAWN],
        expired=counts[OfferStatus.EXPIRED],
    )


def payment_stats(
    offers: Iterable[Offer],
    payments: Iterable[Payment],
    now: datetime,
) -> PaymentStats:
    """Summarize payments for the review dashboard.

    Parameters
    ----------
    offers : Iterable[Offer]
        Live offers; payments of deleted offers still count toward the sums
        but not toward ``near_completion``.
    payments : Iterable[Payment]
        Every recorded payment.
    now : datetime
        Current time; the month of ``now`` bounds ``completed_this_month``.

    Returns
    -------
    PaymentStats
        Counts and completed sums.
    """
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    prices = {offer.offer_id: offer.offer_price for offer in offers}

    pending = 0
    failed = 0
    total = Decimal("0")
    this_month = Decimal("0")
    paid_by_offer: dict[str, Decimal] = {}

    for payment in payments:
        if payment.status == PaymentStatus.PENDING:
            pending += 1
        elif payment.status in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
            failed += 1
        elif payment.status == PaymentStatus.COMPLETED:
            total += payment.amount
            if payment.updated_at >= month_start:
                this_month += payment.amount
            paid_by_offer[payment.offer_id] = (
                paid_by_offer.get(payment.offer_id, Decimal("0")) + payment.amount
            )

    near = sum(
        1
        for offer_id, paid in paid_by_offer.items()
        if prices.get(offer_id, Decimal("0")) > 0
        and paid * 100 >= prices[offer_id] * NEAR_COMPLETION_PERCENT
    )

    return PaymentStats(
        pending=pending,
        failed_or_cancelled=failed,
        total_completed=total,
        completed_this_month=this_month,
        near_completion=near,
    )
