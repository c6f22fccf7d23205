"""Payment ledger: append-only payment records against approved offers.

A payment moves at most once, out of PENDING. COMPLETED, FAILED and
CANCELLED are final; a buyer who must pay again submits a new Payment.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

from marketplace_engine.engine.tiers import derive_permissions
from marketplace_engine.exceptions import (
    IllegalTransition,
    NotPermitted,
    OfferNotApproved,
    UnauthorizedActor,
)
from marketplace_engine.models.enums import (
    Actor,
    Capability,
    OfferStatus,
    PaymentChannel,
    PaymentStatus,
)
from marketplace_engine.models.offer import Offer
from marketplace_engine.models.payment import Payment
from marketplace_engine.models.verification import VerificationLedger

logger = logging.getLogger(__name__)

P = PaymentStatus

# from_status -> {to_status: allowed actor}
TRANSITION_MAP: dict[PaymentStatus, dict[PaymentStatus, Actor]] = {
    P.PENDING: {
        P.COMPLETED: Actor.REVIEWER,
        P.FAILED: Actor.REVIEWER,
        P.CANCELLED: Actor.BUYER,
    },
}

TERMINAL_STATES: frozenset[PaymentStatus] = frozenset({P.COMPLETED, P.FAILED, P.CANCELLED})


class PaymentLedger:
    """Creates payments and moves them through their lifecycle."""

    def __init__(self, default_currency: str = "USD") -> None:
        self.default_currency = default_currency

    def submit_payment(
        self,
        offer: Offer,
        ledger: VerificationLedger,
        amount: Decimal,
        method: PaymentChannel,
        *,
        currency: str | None = None,
        now: datetime | None = None,
        payment_id: str | None = None,
    ) -> Payment:
        """Record a new pending payment for ``offer``.

        Raises
        ------
        OfferNotApproved
            If the offer is not APPROVED.
        UnauthorizedActor
            If ``ledger`` does not belong to the offer's buyer.
        NotPermitted
            If the buyer lacks the SUBMIT_PAYMENT capability.
        ValueError
            If ``amount`` is not positive.
        """
        if offer.status != OfferStatus.APPROVED:
            raise OfferNotApproved(
                f"Offer {offer.offer_id} is {offer.status.value}; payments need an approved offer"
            )
        if ledger.user_id != offer.buyer_id:
            raise UnauthorizedActor(
                f"User {ledger.user_id} is not the buyer of offer {offer.offer_id}"
            )
        if Capability.SUBMIT_PAYMENT not in derive_permissions(ledger):
            raise NotPermitted(f"User {ledger.user_id} may not submit payments yet")
        if amount <= 0:
            raise ValueError(f"Payment amount must be positive, got {amount}")

        now = now or datetime.now(timezone.utc)
        payment = Payment(
            payment_id=payment_id or str(uuid.uuid4()),
            offer_id=offer.offer_id,
            buyer_id=offer.buyer_id,
            amount=amount,
            currency=currency or self.default_currency,
            status=P.PENDING,
            payment_method=method,
            created_at=now,
            updated_at=now,
        )
        logger.info(
            "Payment %s of %s %s submitted for offer %s",
            payment.payment_id,
            payment.amount,
            payment.currency,
            offer.offer_id,
        )
        return payment

    def transition(
        self,
        payment: Payment,
        target: PaymentStatus,
        actor: Actor,
        *,
        actor_id: str | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> Payment:
        """Move a payment forward to ``target``."""
        allowed = TRANSITION_MAP.get(payment.status)
        if allowed is None or target not in allowed:
            raise IllegalTransition(
                payment.status,
                target,
                f"payment {payment.payment_id} cannot move from "
                f"{payment.status.value} to {target.value}",
            )
        if actor != allowed[target]:
            raise UnauthorizedActor(
                f"Actor {actor.value} may not move a payment to {target.value}"
            )

        changes: dict = {"status": target, "updated_at": now or datetime.now(timezone.utc)}
        if target == P.COMPLETED:
            changes["verified_by"] = actor_id
        elif target == P.FAILED:
            changes["failure_reason"] = reason
        elif target == P.CANCELLED and actor_id != payment.buyer_id:
            raise UnauthorizedActor(
                f"User {actor_id} is not the payer of {payment.payment_id}"
            )

        logger.info(
            "Payment %s: %s -> %s by %s",
            payment.payment_id,
            payment.status.value,
            target.value,
            actor.value,
        )
        return replace(payment, **changes)

    def verify(
        self,
        payment: Payment,
        actor: Actor = Actor.REVIEWER,
        *,
        reviewer_id: str | None = None,
        now: datetime | None = None,
    ) -> Payment:
        """Confirm a pending payment was received."""
        return self.transition(payment, P.COMPLETED, actor, actor_id=reviewer_id, now=now)

    def reject(
        self,
        payment: Payment,
        reason: str,
        actor: Actor = Actor.REVIEWER,
        *,
        reviewer_id: str | None = None,
        now: datetime | None = None,
    ) -> Payment:
        """Mark a pending payment as failed, e.g. unreadable proof of payment."""
        return self.transition(
            payment, P.FAILED, actor, actor_id=reviewer_id, reason=reason, now=now
        )

    def cancel(
        self,
        payment: Payment,
        buyer_id: str,
        actor: Actor = Actor.BUYER,
        *,
        now: datetime | None = None,
    ) -> Payment:
        """Buyer abandons a pending payment."""
        return self.transition(payment, P.CANCELLED, actor, actor_id=buyer_id, now=now)
