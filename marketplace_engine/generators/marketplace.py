"""Buyer, offer and payment-plan generators."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Iterator

from marketplace_engine.engine import ledger as ledger_rules
from marketplace_engine.generators.base import BaseGenerator
from marketplace_engine.models.enums import (
    BuyerType,
    OfferPaymentMethod,
    Role,
    VerificationKind,
)
from marketplace_engine.models.verification import VerificationEvent, VerificationLedger

CENTS = Decimal("0.01")

# Verification steps in the order buyers complete them
BUYER_STEPS = [
    VerificationKind.EMAIL,
    VerificationKind.PHONE,
    VerificationKind.IDENTITY,
    VerificationKind.FINANCIAL,
]


@dataclass(frozen=True)
class OfferTerms:
    """Terms a synthetic buyer proposes for a property."""

    property_id: str
    offer_price: Decimal
    deposit_amount: Decimal
    payment_method: OfferPaymentMethod
    estimated_timeline: str


class BuyerGenerator(BaseGenerator):
    """Generate buyer ledgers at varying verification depth."""

    BUYER_TYPES = [BuyerType.CASH, BuyerType.INSTALLMENT, BuyerType.NONE]
    BUYER_TYPE_WEIGHTS = [0.45, 0.45, 0.10]

    # Number of BUYER_STEPS completed (0-4)
    DEPTH_WEIGHTS = [0.05, 0.10, 0.20, 0.30, 0.35]

    SELLER_RATE = 0.10

    def generate(self) -> VerificationLedger:
        """Generate a single buyer ledger.

        Returns
        -------
        VerificationLedger
            Ledger with a random prefix of the verification chain applied.
        """
        return self._generate_one()

    def generate_batch(self, count: int) -> Iterator[VerificationLedger]:
        """Generate multiple buyer ledgers.

        Parameters
        ----------
        count : int
            Number of ledgers to generate.

        Yields
        ------
        VerificationLedger
            Generated ledgers.
        """
        for _ in range(count):
            yield self._generate_one()

    def user_id(self) -> str:
        return self.fake.uuid4()

    def buyer_type(self) -> BuyerType:
        return self.random.choices(self.BUYER_TYPES, weights=self.BUYER_TYPE_WEIGHTS, k=1)[0]

    def roles(self) -> frozenset[Role]:
        if self.random.random() < self.SELLER_RATE:
            return frozenset({Role.BUYER, Role.SELLER})
        return frozenset({Role.BUYER})

    def verification_steps(self) -> list[VerificationKind]:
        """A prefix of the buyer verification chain."""
        depth = self.random.choices(range(len(BUYER_STEPS) + 1), weights=self.DEPTH_WEIGHTS, k=1)[0]
        return BUYER_STEPS[:depth]

    def _generate_one(self) -> VerificationLedger:
        ledger = ledger_rules.new_ledger(self.user_id(), self.roles())
        ledger = ledger_rules.choose_buyer_type(ledger, self.buyer_type())
        for kind in self.verification_steps():
            ledger = ledger_rules.apply(
                ledger,
                VerificationEvent(kind=kind, user_id=ledger.user_id),
            )
        return ledger


class OfferGenerator(BaseGenerator):
    """Generate offer terms for synthetic properties."""

    TIMELINES = ["30 days", "60 days", "90 days", "6 months", "12 months"]

    # Listing prices, USD
    PRICE_RANGE = (25_000, 450_000)

    # Deposit share of the offer price for instalment purchases
    DEPOSIT_RANGE = (0.10, 0.30)

    def generate(self, buyer_type: BuyerType, property_id: str | None = None) -> OfferTerms:
        """Generate offer terms suited to ``buyer_type``."""
        price = self.random.lognormvariate(mu=11.5, sigma=0.6)
        price = max(self.PRICE_RANGE[0], min(price, self.PRICE_RANGE[1]))
        offer_price = Decimal(str(round(price, -2)))

        if buyer_type == BuyerType.INSTALLMENT:
            method = OfferPaymentMethod.INSTALLMENTS
            share = Decimal(str(round(self.random.uniform(*self.DEPOSIT_RANGE), 2)))
            deposit = (offer_price * share).quantize(CENTS)
        else:
            method = OfferPaymentMethod.CASH
            deposit = offer_price

        return OfferTerms(
            property_id=property_id or self.fake.uuid4(),
            offer_price=offer_price,
            deposit_amount=deposit,
            payment_method=method,
            estimated_timeline=self.random.choice(self.TIMELINES),
        )


class PaymentPlanGenerator(BaseGenerator):
    """Split an offer price into payment amounts."""

    def split(self, total: Decimal, parts: int) -> list[Decimal]:
        """Split ``total`` into ``parts`` positive amounts summing to ``total``.

        Parameters
        ----------
        total : Decimal
            Amount to split.
        parts : int
            Number of payments (at least 1).
        """
        if parts < 1:
            raise ValueError(f"parts must be at least 1, got {parts}")
        weights = [self.random.uniform(0.5, 1.5) for _ in range(parts)]
        scale = sum(weights)
        amounts = [
            (total * Decimal(str(w / scale))).quantize(CENTS, rounding=ROUND_DOWN)
            for w in weights[:-1]
        ]
        amounts.append(total - sum(amounts, Decimal("0")))
        return amounts

    def plan(
        self,
        offer_price: Decimal,
        deposit_amount: Decimal,
        payment_method: OfferPaymentMethod,
    ) -> list[Decimal]:
        """Payment amounts that settle an offer in full.

        Cash offers are paid in one transfer. Instalment offers pay the
        deposit first and split the balance over 2-6 payments.
        """
        if payment_method == OfferPaymentMethod.CASH:
            return [offer_price]
        balance = offer_price - deposit_amount
        installments = self.random.randint(2, 6)
        return [deposit_amount, *self.split(balance, installments)]
