"""Host-side orchestration of the engine.

The service loads snapshots from the store, lets the pure engine modules
decide, commits the result with compare-and-swap, and only then delivers
side effects to the availability sink. A failed delivery leaves the effect
in the store outbox and surfaces SideEffectFailed; ``dispatch_pending``
retries it.

Callers that act on a snapshot they showed to a user (a reviewer's approve
button, say) should pass the ``expected_version`` they saw. Any write that
landed in between then yields ConcurrentModification.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable

from marketplace_engine.config import EngineConfig
from marketplace_engine.engine import ledger as ledger_rules
from marketplace_engine.engine.offers import OfferStateMachine
from marketplace_engine.engine.payments import PaymentLedger
from marketplace_engine.engine.portfolio import build_portfolio, offer_stats, payment_stats
from marketplace_engine.engine.replay import diff_fields, replay_ledger, snapshot_fields
from marketplace_engine.engine.tiers import PermissionSet, derive_level, derive_permissions
from marketplace_engine.exceptions import ConcurrentModification, SideEffectFailed, SinkError
from marketplace_engine.logging import log_extra
from marketplace_engine.models.base import Event
from marketplace_engine.models.effects import OfferTransition, PropertyAvailabilityChanged
from marketplace_engine.models.enums import (
    Actor,
    BuyerType,
    KycLevel,
    OfferPaymentMethod,
    OfferStatus,
    PaymentChannel,
    Role,
    VerificationKind,
)
from marketplace_engine.models.offer import Offer
from marketplace_engine.models.payment import Payment
from marketplace_engine.models.portfolio import OfferStats, PaymentStats, PortfolioEntry
from marketplace_engine.models.verification import VerificationEvent, VerificationLedger
from marketplace_engine.sinks.base import AvailabilitySink
from marketplace_engine.store.marketplace import MarketplaceStore

logger = logging.getLogger(__name__)

EVENT_SOURCE = "marketplace-engine"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MarketplaceService:
    """Entry point for verification, offer, payment and dashboard calls.

    Parameters
    ----------
    store : MarketplaceStore
        Persistence adapter.
    sink : AvailabilitySink
        Receiver of property availability changes.
    config : EngineConfig | None
        Engine settings; defaults apply when omitted.
    clock : Callable[[], datetime] | None
        Source of the current time (timezone-aware).
    """

    def __init__(
        self,
        store: MarketplaceStore,
        sink: AvailabilitySink,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.sink = sink
        self.config = config or EngineConfig()
        self.clock = clock or utc_now
        self.offers = OfferStateMachine(validity_days=self.config.offers.validity_days)
        self.payments = PaymentLedger(default_currency=self.config.offers.default_currency)

    # Verification
    def register_user(
        self,
        user_id: str,
        roles: Iterable[Role] = (Role.BUYER,),
    ) -> VerificationLedger:
        """Create the empty ledger of a new account."""
        ledger = ledger_rules.new_ledger(user_id, frozenset(roles))
        event = self._event(user_id, "ledger.created", snapshot_fields(ledger))
        return self.store.save_ledger(ledger, 0, event)

    def record_verification(self, user_id: str, kind: VerificationKind) -> VerificationLedger:
        """Apply a completed verification step to the user's ledger."""
        current = self.store.load_ledger(user_id)
        updated = ledger_rules.apply(
            current, VerificationEvent(kind=kind, user_id=user_id, occurred_at=self.clock())
        )
        return self._commit_ledger(current, updated, f"verification.{kind.value.lower()}")

    def assign_role(self, user_id: str, role: Role) -> VerificationLedger:
        current = self.store.load_ledger(user_id)
        updated = ledger_rules.assign_role(current, role)
        return self._commit_ledger(current, updated, "ledger.role_assigned")

    def choose_buyer_type(self, user_id: str, buyer_type: BuyerType) -> VerificationLedger:
        current = self.store.load_ledger(user_id)
        updated = ledger_rules.choose_buyer_type(current, buyer_type)
        return self._commit_ledger(current, updated, "ledger.buyer_type_chosen")

    # Offers
    def submit_offer(
        self,
        buyer_id: str,
        property_id: str,
        offer_price: Decimal,
        deposit_amount: Decimal,
        payment_method: OfferPaymentMethod,
        estimated_timeline: str,
        *,
        seller_id: str | None = None,
    ) -> Offer:
        """Create a pending offer. A rejected buyer re-offers through here too."""
        ledger = self.store.load_ledger(buyer_id)
        offer = self.offers.submit(
            ledger,
            property_id,
            offer_price,
            deposit_amount,
            payment_method,
            estimated_timeline,
            seller_id=seller_id,
            now=self.clock(),
        )
        event = self._event(
            offer.offer_id, "offer.submitted", snapshot_fields(offer), source=buyer_id
        )
        return self.store.save_offer(offer, 0, event)

    def approve_offer(
        self,
        offer_id: str,
        reviewer_id: str,
        *,
        notes: str | None = None,
        expected_version: int | None = None,
        actor: Actor = Actor.REVIEWER,
    ) -> Offer:
        offer = self._load_offer(offer_id, expected_version)
        transition = self.offers.approve(
            offer, actor, reviewer_id=reviewer_id, notes=notes, now=self.clock()
        )
        return self._commit_offer(transition, reviewer_id)

    def reject_offer(
        self,
        offer_id: str,
        reviewer_id: str,
        reason: str | None,
        *,
        notes: str | None = None,
        expected_version: int | None = None,
        actor: Actor = Actor.REVIEWER,
    ) -> Offer:
        offer = self._load_offer(offer_id, expected_version)
        transition = self.offers.reject(
            offer, reason, actor, reviewer_id=reviewer_id, notes=notes, now=self.clock()
        )
        return self._commit_offer(transition, reviewer_id)

    def withdraw_offer(
        self,
        offer_id: str,
        buyer_id: str,
        *,
        expected_version: int | None = None,
    ) -> Offer:
        offer = self._load_offer(offer_id, expected_version)
        transition = self.offers.withdraw(offer, buyer_id, now=self.clock())
        return self._commit_offer(transition, buyer_id)

    def delete_offer(
        self,
        offer_id: str,
        buyer_id: str,
        *,
        expected_version: int | None = None,
    ) -> None:
        """Physically remove a terminal offer from the buyer's list."""
        offer = self._load_offer(offer_id, expected_version)
        transition = self.offers.delete(offer, buyer_id, now=self.clock())
        self._commit_offer(transition, buyer_id)

    def sweep_expired(self) -> list[Offer]:
        """Expire every pending offer past its deadline.

        Offers that changed concurrently are skipped; the next sweep or the
        buyer's next action picks them up. Undelivered side effects stay in
        the outbox.
        """
        expired = []
        now = self.clock()
        for offer in self.store.get_pending_offers():
            transition = self.offers.expire_if_due(offer, now)
            if transition is None:
                continue
            try:
                expired.append(self._commit_offer(transition, Actor.SYSTEM.value))
            except ConcurrentModification:
                logger.info("Offer %s changed during sweep; skipping", offer.offer_id)
            except SideEffectFailed as exc:
                logger.warning("Offer %s expired but notification is queued: %s", offer.offer_id, exc)
                expired.append(self.store.load_offer(offer.offer_id))
        if expired:
            logger.info("Expired %d offers", len(expired))
        return expired

    # Payments
    def submit_payment(
        self,
        offer_id: str,
        buyer_id: str,
        amount: Decimal,
        method: PaymentChannel,
        *,
        currency: str | None = None,
    ) -> Payment:
        offer = self._load_offer(offer_id, None)
        ledger = self.store.load_ledger(buyer_id)
        payment = self.payments.submit_payment(
            offer, ledger, amount, method, currency=currency, now=self.clock()
        )
        event = self._event(
            payment.payment_id, "payment.submitted", snapshot_fields(payment), source=buyer_id
        )
        return self.store.save_payment(payment, 0, event)

    def verify_payment(
        self,
        payment_id: str,
        reviewer_id: str,
        *,
        expected_version: int | None = None,
        actor: Actor = Actor.REVIEWER,
    ) -> Payment:
        payment = self._load_payment(payment_id, expected_version)
        updated = self.payments.verify(payment, actor, reviewer_id=reviewer_id, now=self.clock())
        return self._commit_payment(payment, updated, reviewer_id)

    def reject_payment(
        self,
        payment_id: str,
        reviewer_id: str,
        reason: str,
        *,
        expected_version: int | None = None,
        actor: Actor = Actor.REVIEWER,
    ) -> Payment:
        payment = self._load_payment(payment_id, expected_version)
        updated = self.payments.reject(
            payment, reason, actor, reviewer_id=reviewer_id, now=self.clock()
        )
        return self._commit_payment(payment, updated, reviewer_id)

    def cancel_payment(
        self,
        payment_id: str,
        buyer_id: str,
        *,
        expected_version: int | None = None,
    ) -> Payment:
        payment = self._load_payment(payment_id, expected_version)
        updated = self.payments.cancel(payment, buyer_id, now=self.clock())
        return self._commit_payment(payment, updated, buyer_id)

    # Side effects
    def dispatch_pending(self) -> int:
        """Retry every queued side effect in commit order. Returns the number delivered.

        Once an effect for a property fails, later effects for that property
        stay queued behind it.
        """
        delivered, _ = self._drain()
        return delivered

    # Read model
    def get_kyc_level(self, user_id: str) -> KycLevel:
        return derive_level(self.store.load_ledger(user_id))

    def get_permissions(self, user_id: str) -> PermissionSet:
        return derive_permissions(self.store.load_ledger(user_id))

    def get_offer_status(self, offer_id: str) -> OfferStatus:
        """Current status, reporting EXPIRED for a pending offer past its deadline.

        Nothing is committed; the next write or sweep records the expiry.
        """
        offer = self.store.load_offer(offer_id)
        if self.offers.is_due(offer, self.clock()):
            return OfferStatus.EXPIRED
        return offer.status

    def get_portfolio(self, buyer_id: str) -> list[PortfolioEntry]:
        """Approved offers of the buyer with at least one verified payment."""
        offers = self.store.get_buyer_offers(buyer_id)
        payments = [p for o in offers for p in self.store.get_offer_payments(o.offer_id)]
        return build_portfolio(offers, payments)

    def get_offer_stats(self) -> OfferStats:
        return offer_stats(self.store.offers.values())

    def get_payment_stats(self) -> PaymentStats:
        """Payment summary cards for the review dashboard."""
        return payment_stats(self.store.offers.values(), self.store.payments.values(), self.clock())

    def replay_ledger(self, user_id: str) -> VerificationLedger | None:
        """Rebuild a ledger from its event log, for audits."""
        return replay_ledger(self.store.events_for(user_id))

    # Internals
    def _load_offer(self, offer_id: str, expected_version: int | None) -> Offer:
        """Load an offer, enforce the caller's version, then apply lazy expiry."""
        offer = self.store.load_offer(offer_id)
        self._check_expected(offer.version, expected_version, f"Offer {offer_id}")

        transition = self.offers.expire_if_due(offer, self.clock())
        if transition is None:
            return offer
        try:
            return self._commit_offer(transition, Actor.SYSTEM.value)
        except SideEffectFailed as exc:
            logger.warning("Offer %s expired lazily; notification queued: %s", offer_id, exc)
            return self.store.load_offer(offer_id)

    def _load_payment(self, payment_id: str, expected_version: int | None) -> Payment:
        payment = self.store.load_payment(payment_id)
        self._check_expected(payment.version, expected_version, f"Payment {payment_id}")
        return payment

    def _check_expected(self, version: int, expected_version: int | None, label: str) -> None:
        if expected_version is not None and version != expected_version:
            raise ConcurrentModification(
                f"{label} changed since it was read "
                f"(expected version {expected_version}, found {version})"
            )

    def _commit_ledger(
        self,
        current: VerificationLedger,
        updated: VerificationLedger,
        event_type: str,
    ) -> VerificationLedger:
        if updated == current:
            return current
        event = self._event(current.user_id, event_type, diff_fields(current, updated))
        return self.store.save_ledger(updated, current.version, event)

    def _commit_offer(self, transition: OfferTransition, actor_id: str | None) -> Offer | None:
        previous = transition.previous
        effects = [replace(e, effect_id=uuid.uuid4().hex) for e in transition.effects]

        if transition.offer is None:
            event = self._event(previous.offer_id, "offer.deleted", {}, source=actor_id)
            self.store.delete_offer(previous.offer_id, previous.version, event, effects)
            stored = None
        else:
            event = self._event(
                previous.offer_id,
                f"offer.{transition.offer.status.value.lower()}",
                diff_fields(previous, transition.offer),
                source=actor_id,
            )
            stored = self.store.save_offer(transition.offer, previous.version, event, effects)

        _, failures = self._drain({effect.property_id for effect in effects})
        for effect in effects:
            exc = failures.get(effect.effect_id)
            if exc is not None:
                raise SideEffectFailed(
                    effect,
                    f"Offer {previous.offer_id} committed but availability update for "
                    f"{effect.property_id} is queued for retry: {exc}",
                ) from exc
        return stored

    def _commit_payment(self, current: Payment, updated: Payment, actor_id: str | None) -> Payment:
        event = self._event(
            current.payment_id,
            f"payment.{updated.status.value.lower()}",
            diff_fields(current, updated),
            source=actor_id,
        )
        return self.store.save_payment(updated, current.version, event)

    def _drain(
        self, property_ids: set[str] | None = None
    ) -> tuple[int, dict[str, SinkError]]:
        """Deliver queued effects oldest first, optionally only for ``property_ids``.

        Returns the number delivered and the error holding back each effect
        left in the outbox.
        """
        delivered = 0
        failures: dict[str, SinkError] = {}
        blocked: dict[str, SinkError] = {}
        for effect in self.store.pending_effects():
            if property_ids is not None and effect.property_id not in property_ids:
                continue
            if effect.property_id in blocked:
                failures[effect.effect_id] = blocked[effect.property_id]
                continue
            try:
                self._deliver(effect)
            except SinkError as exc:
                logger.warning("Effect %s still undelivered: %s", effect.effect_id, exc)
                blocked[effect.property_id] = exc
                failures[effect.effect_id] = exc
                continue
            delivered += 1
        return delivered, failures

    def _deliver(self, effect: PropertyAvailabilityChanged) -> None:
        try:
            self.sink.notify_availability_changed(
                effect.property_id,
                effect.available,
                offer_id=effect.offer_id,
                effect_id=effect.effect_id,
            )
        except SinkError:
            logger.error(
                "Availability update for property %s (offer %s) failed",
                effect.property_id,
                effect.offer_id,
                extra=log_extra(
                    property_id=effect.property_id,
                    offer_id=effect.offer_id,
                    effect_id=effect.effect_id,
                ),
            )
            raise
        self.store.ack_effect(effect.effect_id)

    def _event(
        self,
        subject: str,
        event_type: str,
        data: dict[str, Any],
        source: str | None = None,
    ) -> Event:
        return Event(
            event_id=uuid.uuid4().hex,
            event_type=event_type,
            event_time=self.clock(),
            source=source or EVENT_SOURCE,
            subject=subject,
            data=data,
        )
