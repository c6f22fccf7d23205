"""Tests for portfolio aggregation."""

from dataclasses import replace
from datetime import datetime
from decimal import Decimal

import pytest

from marketplace_engine.engine.portfolio import (
    aggregate,
    build_portfolio,
    is_portfolio_eligible,
    offer_stats,
    payment_stats,
    percent_of,
)
from marketplace_engine.exceptions import OfferNotApproved
from marketplace_engine.models.enums import OfferStatus, PaymentChannel, PaymentStatus
from marketplace_engine.models.offer import Offer
from marketplace_engine.models.payment import Payment


@pytest.fixture
def approved_offer(pending_offer: Offer) -> Offer:
    return replace(pending_offer, status=OfferStatus.APPROVED)


def payment(
    payment_id: str,
    amount: str,
    status: PaymentStatus = PaymentStatus.COMPLETED,
    offer_id: str = "offer-001",
) -> Payment:
    now = datetime(2025, 3, 2)
    return Payment(
        payment_id=payment_id,
        offer_id=offer_id,
        buyer_id="buyer-001",
        amount=Decimal(amount),
        currency="USD",
        status=status,
        payment_method=PaymentChannel.BANK_TRANSFER,
        created_at=now,
        updated_at=now,
    )


class TestPercentOf:
    """Tests for percentage rounding."""

    @pytest.mark.parametrize(
        ("total", "expected"),
        [("0", 0), ("40000", 40), ("40500", 41), ("40499.99", 40), ("105000", 100)],
    )
    def test_round_half_up_and_clamp(self, total: str, expected: int) -> None:
        assert percent_of(Decimal(total), Decimal("100000")) == expected

    @pytest.mark.parametrize("price", ["0", "-1"])
    def test_rejects_non_positive_price(self, price: str) -> None:
        with pytest.raises(ValueError, match="price must be positive"):
            percent_of(Decimal("10"), Decimal(price))

    def test_zero_price_offer_through_aggregate(self, approved_offer: Offer) -> None:
        free = replace(approved_offer, offer_price=Decimal("0"))

        with pytest.raises(ValueError):
            aggregate(free, [payment("p1", "10")])


class TestAggregate:
    """Tests for portfolio entries."""

    def test_partial_payment(self, approved_offer: Offer) -> None:
        entry = aggregate(approved_offer, [payment("pay-001", "40000")])

        assert entry.total_paid == Decimal("40000")
        assert entry.percent_complete == 40
        assert entry.remaining == Decimal("60000.00")
        assert entry.is_fully_paid is False
        assert entry.completed_payments == 1

    def test_overpayment_clamps_percent_not_total(self, approved_offer: Offer) -> None:
        entry = aggregate(
            approved_offer, [payment("pay-001", "40000"), payment("pay-002", "65000")]
        )

        assert entry.total_paid == Decimal("105000")
        assert entry.percent_complete == 100
        assert entry.remaining == Decimal("0")
        assert entry.is_fully_paid is True

    def test_only_completed_payments_count(self, approved_offer: Offer) -> None:
        entry = aggregate(
            approved_offer,
            [
                payment("pay-001", "40000"),
                payment("pay-002", "50000", PaymentStatus.PENDING),
                payment("pay-003", "50000", PaymentStatus.FAILED),
                payment("pay-004", "50000", PaymentStatus.CANCELLED),
                payment("pay-005", "50000", offer_id="offer-999"),
            ],
        )

        assert entry.total_paid == Decimal("40000")
        assert entry.completed_payments == 1

    def test_deterministic(self, approved_offer: Offer) -> None:
        payments = [payment("pay-001", "12345.67"), payment("pay-002", "22222.22")]

        assert aggregate(approved_offer, payments) == aggregate(approved_offer, list(reversed(payments)))

    def test_pending_offer_has_no_progress(self, pending_offer: Offer) -> None:
        with pytest.raises(OfferNotApproved):
            aggregate(pending_offer, [])


class TestBuildPortfolio:
    """Tests for portfolio selection."""

    def test_needs_one_completed_payment(self, approved_offer: Offer) -> None:
        assert is_portfolio_eligible(approved_offer, []) is False
        assert is_portfolio_eligible(approved_offer, [payment("pay-001", "1", PaymentStatus.PENDING)]) is False
        assert is_portfolio_eligible(approved_offer, [payment("pay-001", "1")]) is True

    def test_skips_ineligible_offers(self, approved_offer: Offer, pending_offer: Offer) -> None:
        other = replace(approved_offer, offer_id="offer-002", property_id="prop-002")
        pending = replace(pending_offer, offer_id="offer-003")
        payments = [
            payment("pay-001", "40000"),
            payment("pay-002", "1000", offer_id="offer-003"),
        ]

        entries = build_portfolio([approved_offer, other, pending], payments)

        assert [e.offer_id for e in entries] == ["offer-001"]


class TestOfferStats:
    """Tests for dashboard counts."""

    def test_counts_per_status(self, pending_offer: Offer) -> None:
        offers = [
            pending_offer,
            replace(pending_offer, offer_id="o2", status=OfferStatus.APPROVED),
            replace(pending_offer, offer_id="o3", status=OfferStatus.APPROVED),
            replace(pending_offer, offer_id="o4", status=OfferStatus.REJECTED),
            replace(pending_offer, offer_id="o5", status=OfferStatus.EXPIRED),
        ]

        stats = offer_stats(offers)

        assert stats.total == 5
        assert stats.pending == 1
        assert stats.approved == 2
        assert stats.rejected == 1
        assert stats.withdrawn == 0
        assert stats.expired == 1

    def test_empty(self) -> None:
        assert offer_stats([]).total == 0


class TestPaymentStats:
    """Tests for the payment summary."""

    NOW = datetime(2025, 3, 20)

    def test_counts_and_sums(self, approved_offer: Offer) -> None:
        other = replace(approved_offer, offer_id="offer-002", property_id="prop-002")
        payments = [
            payment("p1", "50000"),
            payment("p2", "30000"),
            payment("p3", "10000", offer_id="offer-002"),
            replace(payment("p4", "5000"), updated_at=datetime(2025, 2, 27)),
            payment("p5", "700", status=PaymentStatus.PENDING),
            payment("p6", "800", status=PaymentStatus.FAILED),
            payment("p7", "900", status=PaymentStatus.CANCELLED),
        ]

        stats = payment_stats([approved_offer, other], payments, self.NOW)

        assert stats.pending == 1
        assert stats.failed_or_cancelled == 2
        assert stats.total_completed == Decimal("95000")
        assert stats.completed_this_month == Decimal("90000")
        # offer-001 is at 85%, offer-002 at 10%
        assert stats.near_completion == 1

    def test_near_completion_boundary(self, approved_offer: Offer) -> None:
        at_80 = payment_stats([approved_offer], [payment("p1", "80000")], self.NOW)
        below = payment_stats([approved_offer], [payment("p1", "79999.99")], self.NOW)

        assert at_80.near_completion == 1
        assert below.near_completion == 0

    def test_payments_of_deleted_offer(self) -> None:
        stats = payment_stats([], [payment("p1", "90000")], self.NOW)

        assert stats.total_completed == Decimal("90000")
        assert stats.near_completion == 0

    def test_empty(self) -> None:
        stats = payment_stats([], [], self.NOW)

        assert stats.pending == 0
        assert stats.total_completed == Decimal("0")
