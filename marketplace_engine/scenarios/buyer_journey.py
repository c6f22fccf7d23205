"""Buyer journey scenario: verification, offers, review and payments."""

import logging
import random
from decimal import Decimal
from typing import Any

from marketplace_engine.config import EngineConfig
from marketplace_engine.engine.service import MarketplaceService
from marketplace_engine.generators import BuyerGenerator, OfferGenerator, PaymentPlanGenerator
from marketplace_engine.models.enums import (
    BuyerType,
    Capability,
    OfferStatus,
    PaymentChannel,
)
from marketplace_engine.models.offer import Offer
from marketplace_engine.sinks.callback import CallbackSink
from marketplace_engine.store.marketplace import MarketplaceStore

logger = logging.getLogger(__name__)

REVIEWER_ID = "reviewer-001"

REJECTION_REASONS = [
    "insufficient income",
    "offer below asking price",
    "incomplete documentation",
    "property no longer listed",
]

PAYMENT_FAILURE_REASONS = [
    "proof of payment unreadable",
    "amount does not match transfer",
    "transfer reference not found",
]


class BuyerJourneyScenario:
    """Drive many buyers through the marketplace.

    Each buyer registers, completes a random prefix of the verification
    chain and, when allowed, makes an offer. Reviewers approve or reject
    offers; rejected buyers make one new offer. Approved buyers then pay
    part or all of the price, with some payments rejected and resubmitted.
    """

    def __init__(
        self,
        num_buyers: int = 50,
        approval_rate: float = 0.70,
        withdrawal_rate: float = 0.10,
        payment_failure_rate: float = 0.15,
        full_payment_rate: float = 0.40,
        config: EngineConfig | None = None,
        seed: int | None = None,
    ) -> None:
        """Initialize buyer journey scenario.

        Parameters
        ----------
        num_buyers : int
            Number of buyers to simulate.
        approval_rate : float
            Probability a reviewer approves an offer.
        withdrawal_rate : float
            Probability a buyer withdraws before review.
        payment_failure_rate : float
            Probability a submitted payment is rejected by the reviewer.
        full_payment_rate : float
            Probability an approved buyer pays the whole plan.
        config : EngineConfig | None
            Engine settings.
        seed : int | None
            Random seed for reproducibility.
        """
        self.num_buyers = num_buyers
        self.approval_rate = approval_rate
        self.withdrawal_rate = withdrawal_rate
        self.payment_failure_rate = payment_failure_rate
        self.full_payment_rate = full_payment_rate
        self.seed = seed
        self.random = random.Random(seed)

        # Last known availability per property, as seen by the listing side
        self.availability: dict[str, bool] = {}

        self.store = MarketplaceStore()
        self.service = MarketplaceService(
            self.store,
            CallbackSink(self._on_availability_changed),
            config=config,
        )
        self._buyer_gen = BuyerGenerator(seed=seed)
        self._offer_gen = OfferGenerator(seed=seed)
        self._plan_gen = PaymentPlanGenerator(seed=seed)

    def generate(self) -> MarketplaceStore:
        """Run the scenario.

        Returns
        -------
        MarketplaceStore
            Store containing ledgers, offers, payments and their event logs.
        """
        logger.info("Starting buyer journey scenario: %d buyers", self.num_buyers)

        for _ in range(self.num_buyers):
            self._run_buyer()

        stats = self.service.get_offer_stats()
        logger.info(
            "Buyer journey done: %d offers (%d approved, %d rejected, %d withdrawn), %d payments",
            stats.total,
            stats.approved,
            stats.rejected,
            stats.withdrawn,
            len(self.store.payments),
        )
        return self.store

    def export(self, sinks: list[Any]) -> None:
        """Export generated data to batch sinks such as ConsoleSink."""
        for sink in sinks:
            sink.write_batch("ledgers", list(self.store.ledgers.values()))
            sink.write_batch("offers", list(self.store.offers.values()))
            sink.write_batch("payments", list(self.store.payments.values()))

        logger.info("Exported buyer journey data to %d sinks", len(sinks))

    def _on_availability_changed(self, property_id: str, available: bool) -> bool:
        self.availability[property_id] = available
        return True

    def _run_buyer(self) -> None:
        user_id = self._buyer_gen.user_id()
        self.service.register_user(user_id, self._buyer_gen.roles())

        buyer_type = self._buyer_gen.buyer_type()
        if buyer_type != BuyerType.NONE:
            self.service.choose_buyer_type(user_id, buyer_type)
        for kind in self._buyer_gen.verification_steps():
            self.service.record_verification(user_id, kind)

        permissions = self.service.get_permissions(user_id)
        if Capability.MAKE_OFFER not in permissions:
            return

        if Capability.INSTALLMENT_APPLY not in permissions:
            buyer_type = BuyerType.CASH
        offer = self._submit_offer(user_id, buyer_type)

        if self.random.random() < self.withdrawal_rate:
            self.service.withdraw_offer(offer.offer_id, user_id, expected_version=offer.version)
            return

        if self.random.random() >= self.approval_rate:
            self.service.reject_offer(
                offer.offer_id,
                REVIEWER_ID,
                self.random.choice(REJECTION_REASONS),
                expected_version=offer.version,
            )
            # One more try on the same property
            offer = self._submit_offer(user_id, buyer_type, property_id=offer.property_id)

        offer = self.service.approve_offer(
            offer.offer_id, REVIEWER_ID, expected_version=offer.version
        )
        if Capability.SUBMIT_PAYMENT in permissions:
            self._pay(user_id, offer)

    def _submit_offer(
        self,
        user_id: str,
        buyer_type: BuyerType,
        property_id: str | None = None,
    ) -> Offer:
        terms = self._offer_gen.generate(buyer_type, property_id=property_id)
        return self.service.submit_offer(
            user_id,
            terms.property_id,
            terms.offer_price,
            terms.deposit_amount,
            terms.payment_method,
            terms.estimated_timeline,
        )

    def _pay(self, user_id: str, offer: Offer) -> None:
        if offer.status != OfferStatus.APPROVED:
            return
        amounts = self._plan_gen.plan(
            offer.offer_price, offer.deposit_amount, offer.payment_method
        )

        if self.random.random() >= self.full_payment_rate:
            amounts = amounts[: self.random.randint(1, len(amounts))]

        for amount in amounts:
            if amount <= Decimal("0"):
                continue
            self._pay_once(user_id, offer, amount)

    def _pay_once(self, user_id: str, offer: Offer, amount: Decimal) -> None:
        channel = self.random.choice(list(PaymentChannel))
        payment = self.service.submit_payment(offer.offer_id, user_id, amount, channel)
        if self.random.random() < self.payment_failure_rate:
            self.service.reject_payment(
                payment.payment_id,
                REVIEWER_ID,
                self.random.choice(PAYMENT_FAILURE_REASONS),
                expected_version=payment.version,
            )
            payment = self.service.submit_payment(offer.offer_id, user_id, amount, channel)
        self.service.verify_payment(
            payment.payment_id, REVIEWER_ID, expected_version=payment.version
        )
