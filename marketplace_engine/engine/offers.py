"""Offer state machine: validates transitions and the actor allowed to cause them.

Offer lifecycle::

    PENDING -> APPROVED   (reviewer)
    PENDING -> REJECTED   (reviewer, reason required)
    PENDING -> WITHDRAWN  (buyer)
    PENDING -> EXPIRED    (system, once expires_at has passed)
    APPROVED | REJECTED | WITHDRAWN | EXPIRED -> deleted  (buyer)

A rejected offer is never reopened; the buyer submits a new Offer instead.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from marketplace_engine.engine.tiers import derive_permissions
from marketplace_engine.exceptions import (
    IllegalTransition,
    NotPermitted,
    RejectionReasonRequired,
    UnauthorizedActor,
)
from marketplace_engine.models.effects import OfferTransition, PropertyAvailabilityChanged
from marketplace_engine.models.enums import (
    Actor,
    Capability,
    OfferPaymentMethod,
    OfferStatus,
)
from marketplace_engine.models.offer import Offer
from marketplace_engine.models.verification import VerificationLedger

logger = logging.getLogger(__name__)

S = OfferStatus
A = Actor

# from_status -> {to_status: allowed actors}
TRANSITION_MAP: dict[OfferStatus, dict[OfferStatus, set[Actor]]] = {
    S.PENDING: {
        S.APPROVED: {A.REVIEWER},
        S.REJECTED: {A.REVIEWER},
        S.WITHDRAWN: {A.BUYER},
        S.EXPIRED: {A.SYSTEM},
    },
}

TERMINAL_STATES: frozenset[OfferStatus] = frozenset(
    {S.APPROVED, S.REJECTED, S.WITHDRAWN, S.EXPIRED}
)

# Statuses from which the buyer may physically delete the offer
DELETABLE_STATES: frozenset[OfferStatus] = TERMINAL_STATES

DELETE_ACTORS: frozenset[Actor] = frozenset({A.BUYER})

# Property availability after entering each status
AVAILABILITY_AFTER: dict[OfferStatus, bool] = {
    S.APPROVED: False,
    S.REJECTED: True,
    S.WITHDRAWN: True,
    S.EXPIRED: True,
}


class OfferStateMachine:
    """Validates offer transitions and produces new offer snapshots.

    Parameters
    ----------
    validity_days : int
        Default lifetime of a pending offer before it may expire.
    """

    def __init__(self, validity_days: int = 14) -> None:
        self.validity_days = validity_days

    def submit(
        self,
        ledger: VerificationLedger,
        property_id: str,
        offer_price: Decimal,
        deposit_amount: Decimal,
        payment_method: OfferPaymentMethod,
        estimated_timeline: str,
        *,
        seller_id: str | None = None,
        now: datetime | None = None,
        offer_id: str | None = None,
    ) -> Offer:
        """Create a pending offer on behalf of the ledger's user.

        Raises
        ------
        NotPermitted
            If the buyer may not make offers, or may not apply for
            instalments when ``payment_method`` is INSTALLMENTS.
        ValueError
            If the amounts are out of range.
        """
        permissions = derive_permissions(ledger)
        if Capability.MAKE_OFFER not in permissions:
            raise NotPermitted(f"User {ledger.user_id} may not make offers yet")
        if (
            payment_method == OfferPaymentMethod.INSTALLMENTS
            and Capability.INSTALLMENT_APPLY not in permissions
        ):
            raise NotPermitted(f"User {ledger.user_id} may not apply for instalment purchases")

        if offer_price <= 0:
            raise ValueError(f"Offer price must be positive, got {offer_price}")
        if deposit_amount < 0 or deposit_amount > offer_price:
            raise ValueError(
                f"Deposit must be between 0 and the offer price, got {deposit_amount}"
            )

        now = now or datetime.now(timezone.utc)
        offer = Offer(
            offer_id=offer_id or str(uuid.uuid4()),
            property_id=property_id,
            buyer_id=ledger.user_id,
            offer_price=offer_price,
            deposit_amount=deposit_amount,
            payment_method=payment_method,
            estimated_timeline=estimated_timeline,
            status=S.PENDING,
            submitted_at=now,
            expires_at=now + timedelta(days=self.validity_days),
            seller_id=seller_id,
            updated_at=now,
        )
        logger.info(
            "Offer %s submitted by %s on property %s",
            offer.offer_id,
            offer.buyer_id,
            offer.property_id,
        )
        return offer

    def validate_transition(
        self,
        current_status: OfferStatus,
        target_status: OfferStatus,
        actor: Actor,
    ) -> bool:
        """Return True if the transition is valid.

        Raises
        ------
        IllegalTransition
            If no such transition exists.
        UnauthorizedActor
            If the transition exists but ``actor`` may not cause it.
        """
        allowed_targets = TRANSITION_MAP.get(current_status)
        if allowed_targets is None:
            raise IllegalTransition(
                current_status,
                target_status,
                f"{current_status.value} is terminal; only deletion is possible",
            )

        if target_status not in allowed_targets:
            raise IllegalTransition(
                current_status,
                target_status,
                f"Transition from {current_status.value} to {target_status.value} is not allowed",
            )

        allowed_actors = allowed_targets[target_status]
        if actor not in allowed_actors:
            raise UnauthorizedActor(
                f"Actor {actor.value} may not move an offer to {target_status.value} "
                f"(allowed: {', '.join(sorted(a.value for a in allowed_actors))})"
            )

        return True

    def get_allowed_transitions(self, current_status: OfferStatus, actor: Actor) -> list[OfferStatus]:
        """Return the statuses ``actor`` may move an offer to from ``current_status``."""
        allowed_targets = TRANSITION_MAP.get(current_status, {})
        return [target for target, actors in allowed_targets.items() if actor in actors]

    def can_delete(self, offer: Offer, actor: Actor) -> bool:
        return offer.status in DELETABLE_STATES and actor in DELETE_ACTORS

    def transition(
        self,
        offer: Offer,
        target: OfferStatus,
        actor: Actor,
        *,
        actor_id: str | None = None,
        now: datetime | None = None,
        reason: str | None = None,
        notes: str | None = None,
    ) -> OfferTransition:
        """Move ``offer`` to ``target`` and compute the resulting side effects."""
        self.validate_transition(offer.status, target, actor)
        now = now or datetime.now(timezone.utc)

        changes: dict = {"status": target, "updated_at": now}

        if target == S.REJECTED:
            if not reason or not reason.strip():
                raise RejectionReasonRequired(offer.status, target, "a rejection reason is required")
            changes["rejection_reason"] = reason.strip()

        if target in (S.APPROVED, S.REJECTED):
            changes["admin_reviewed_at"] = now
            changes["admin_reviewed_by"] = actor_id
            if notes is not None:
                changes["admin_notes"] = notes

        if target == S.WITHDRAWN:
            self._check_owner(offer, actor_id)

        if target == S.EXPIRED and not self.is_due(offer, now):
            raise IllegalTransition(
                offer.status,
                target,
                f"offer {offer.offer_id} does not expire until {offer.expires_at}",
            )

        updated = replace(offer, **changes)
        effect = PropertyAvailabilityChanged(
            property_id=offer.property_id,
            available=AVAILABILITY_AFTER[target],
            offer_id=offer.offer_id,
            reason=target.value,
        )
        logger.info(
            "Offer %s: %s -> %s by %s",
            offer.offer_id,
            offer.status.value,
            target.value,
            actor.value,
        )
        return OfferTransition(previous=offer, offer=updated, effects=(effect,), occurred_at=now)

    def approve(
        self,
        offer: Offer,
        actor: Actor = A.REVIEWER,
        *,
        reviewer_id: str | None = None,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> OfferTransition:
        return self.transition(offer, S.APPROVED, actor, actor_id=reviewer_id, now=now, notes=notes)

    def reject(
        self,
        offer: Offer,
        reason: str | None,
        actor: Actor = A.REVIEWER,
        *,
        reviewer_id: str | None = None,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> OfferTransition:
        return self.transition(
            offer, S.REJECTED, actor, actor_id=reviewer_id, now=now, reason=reason, notes=notes
        )

    def withdraw(
        self,
        offer: Offer,
        buyer_id: str,
        actor: Actor = A.BUYER,
        *,
        now: datetime | None = None,
    ) -> OfferTransition:
        return self.transition(offer, S.WITHDRAWN, actor, actor_id=buyer_id, now=now)

    def expire(self, offer: Offer, *, now: datetime | None = None) -> OfferTransition:
        return self.transition(offer, S.EXPIRED, A.SYSTEM, now=now)

    def is_due(self, offer: Offer, now: datetime) -> bool:
        """Return True if a pending offer has passed its expiry time."""
        return (
            offer.status == S.PENDING
            and offer.expires_at is not None
            and now > offer.expires_at
        )

    def expire_if_due(self, offer: Offer, now: datetime | None = None) -> OfferTransition | None:
        """Lazy expiry check; returns None when the offer is not due."""
        now = now or datetime.now(timezone.utc)
        if not self.is_due(offer, now):
            return None
        return self.expire(offer, now=now)

    def delete(
        self,
        offer: Offer,
        buyer_id: str,
        actor: Actor = A.BUYER,
        *,
        now: datetime | None = None,
    ) -> OfferTransition:
        """Remove a terminal offer from the buyer's list.

        Raises
        ------
        IllegalTransition
            If the offer is still pending.
        UnauthorizedActor
            If someone other than the offer's buyer asks for it.
        """
        if offer.status not in DELETABLE_STATES:
            raise IllegalTransition(
                offer.status,
                "DELETED",
                "only offers in a terminal status can be deleted; withdraw it first",
            )
        if actor not in DELETE_ACTORS:
            raise UnauthorizedActor(f"Actor {actor.value} may not delete offers")
        self._check_owner(offer, buyer_id)

        effect = PropertyAvailabilityChanged(
            property_id=offer.property_id,
            available=True,
            offer_id=offer.offer_id,
            reason="DELETED",
        )
        logger.info("Offer %s deleted by buyer from %s", offer.offer_id, offer.status.value)
        return OfferTransition(
            previous=offer,
            offer=None,
            effects=(effect,),
            occurred_at=now or datetime.now(timezone.utc),
        )

    def _check_owner(self, offer: Offer, buyer_id: str | None) -> None:
        if buyer_id != offer.buyer_id:
            raise UnauthorizedActor(
                f"User {buyer_id} is not the buyer of offer {offer.offer_id}"
            )
