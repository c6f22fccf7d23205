"""In-memory persistence adapter with compare-and-swap writes.

Every save names the version the caller read. If another writer committed in
between, the save is refused with ConcurrentModification instead of
overwriting. Each committed change also appends one Event to the entity's
log, and offer transitions queue their side effects in an outbox within the
same critical section.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Iterable

from marketplace_engine.exceptions import (
    ConcurrentModification,
    EntityNotFoundError,
    IllegalTransition,
)
from marketplace_engine.logging import log_extra
from marketplace_engine.models.base import Event
from marketplace_engine.models.effects import PropertyAvailabilityChanged
from marketplace_engine.models.enums import OfferStatus
from marketplace_engine.models.offer import Offer
from marketplace_engine.models.payment import Payment
from marketplace_engine.models.verification import VerificationLedger

logger = logging.getLogger(__name__)


@dataclass
class MarketplaceStore:
    """In-memory store for ledgers, offers and payments."""

    # Primary entities
    ledgers: dict[str, VerificationLedger] = field(default_factory=dict)
    offers: dict[str, Offer] = field(default_factory=dict)
    payments: dict[str, Payment] = field(default_factory=dict)

    # Append-only event logs, keyed by entity id
    events: dict[str, list[Event]] = field(default_factory=dict)

    # Side effects committed but not yet delivered, in commit order
    outbox: dict[str, PropertyAvailabilityChanged] = field(default_factory=dict)

    # Relationship indexes
    _buyer_offers: dict[str, list[str]] = field(default_factory=dict)
    _property_offers: dict[str, list[str]] = field(default_factory=dict)
    _offer_payments: dict[str, list[str]] = field(default_factory=dict)

    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    # Ledgers
    def load_ledger(self, user_id: str) -> VerificationLedger:
        """Get a ledger snapshot or raise EntityNotFoundError."""
        with self._lock:
            return self._load(self.ledgers, user_id, "Ledger")

    def save_ledger(
        self,
        ledger: VerificationLedger,
        expected_version: int,
        event: Event,
    ) -> VerificationLedger:
        """Commit a ledger snapshot read at ``expected_version``."""
        with self._lock:
            self._check_version(self.ledgers, ledger.user_id, expected_version, "Ledger")
            stored = replace(ledger, version=expected_version + 1)
            self.ledgers[ledger.user_id] = stored
            self._append(event)
            return stored

    # Offers
    def load_offer(self, offer_id: str) -> Offer:
        """Get an offer snapshot or raise EntityNotFoundError."""
        with self._lock:
            return self._load(self.offers, offer_id, "Offer")

    def save_offer(
        self,
        offer: Offer,
        expected_version: int,
        event: Event,
        effects: Iterable[PropertyAvailabilityChanged] = (),
    ) -> Offer:
        """Commit an offer snapshot and queue its side effects atomically."""
        with self._lock:
            if offer.buyer_id not in self.ledgers:
                raise EntityNotFoundError(f"Buyer {offer.buyer_id} not found")
            self._check_version(self.offers, offer.offer_id, expected_version, "Offer")

            stored = replace(offer, version=expected_version + 1)
            if expected_version == 0:
                self._buyer_offers.setdefault(offer.buyer_id, []).append(offer.offer_id)
                self._property_offers.setdefault(offer.property_id, []).append(offer.offer_id)
                self._offer_payments.setdefault(offer.offer_id, [])
            self.offers[offer.offer_id] = stored
            self._append(event)
            self._enqueue(effects)
            return stored

    def delete_offer(
        self,
        offer_id: str,
        expected_version: int,
        event: Event,
        effects: Iterable[PropertyAvailabilityChanged] = (),
    ) -> None:
        """Physically remove an offer. Its event log and payments are kept."""
        with self._lock:
            self._check_version(self.offers, offer_id, expected_version, "Offer")
            offer = self.offers.pop(offer_id)
            self._buyer_offers[offer.buyer_id].remove(offer_id)
            self._property_offers[offer.property_id].remove(offer_id)
            self._append(event)
            self._enqueue(effects)

    # Payments
    def load_payment(self, payment_id: str) -> Payment:
        """Get a payment snapshot or raise EntityNotFoundError."""
        with self._lock:
            return self._load(self.payments, payment_id, "Payment")

    def save_payment(self, payment: Payment, expected_version: int, event: Event) -> Payment:
        """Commit a payment snapshot read at ``expected_version``."""
        with self._lock:
            if expected_version == 0 and payment.offer_id not in self.offers:
                raise EntityNotFoundError(f"Offer {payment.offer_id} not found")
            self._check_version(self.payments, payment.payment_id, expected_version, "Payment")

            existing = self.payments.get(payment.payment_id)
            if existing is not None and existing.amount != payment.amount:
                raise IllegalTransition(
                    existing.status,
                    payment.status,
                    f"payment {payment.payment_id} amount is immutable",
                )

            stored = replace(payment, version=expected_version + 1)
            if expected_version == 0:
                self._offer_payments.setdefault(payment.offer_id, []).append(payment.payment_id)
            self.payments[payment.payment_id] = stored
            self._append(event)
            return stored

    # Outbox
    def pending_effects(self) -> list[PropertyAvailabilityChanged]:
        """Side effects still waiting for delivery, oldest first."""
        with self._lock:
            return list(self.outbox.values())

    def ack_effect(self, effect_id: str) -> None:
        """Drop a delivered side effect from the outbox."""
        with self._lock:
            self.outbox.pop(effect_id, None)

    # Query methods
    def events_for(self, subject: str) -> list[Event]:
        """Get the event log of an entity."""
        with self._lock:
            return list(self.events.get(subject, []))

    def get_buyer_offers(self, buyer_id: str) -> list[Offer]:
        """Get all live offers of a buyer."""
        with self._lock:
            return [self.offers[oid] for oid in self._buyer_offers.get(buyer_id, [])]

    def get_property_offers(self, property_id: str) -> list[Offer]:
        """Get all live offers on a property."""
        with self._lock:
            return [self.offers[oid] for oid in self._property_offers.get(property_id, [])]

    def get_offer_payments(self, offer_id: str) -> list[Payment]:
        """Get all payments recorded against an offer."""
        with self._lock:
            return [self.payments[pid] for pid in self._offer_payments.get(offer_id, [])]

    def get_pending_offers(self) -> list[Offer]:
        """Get every offer still awaiting a decision."""
        with self._lock:
            return [o for o in self.offers.values() if o.status == OfferStatus.PENDING]

    def summary(self) -> dict[str, int]:
        """Return summary counts of all entities."""
        with self._lock:
            return {
                "ledgers": len(self.ledgers),
                "offers": len(self.offers),
                "payments": len(self.payments),
                "events": sum(len(log) for log in self.events.values()),
                "pending_effects": len(self.outbox),
            }

    def _load(self, collection: dict[str, Any], key: str, kind: str) -> Any:
        try:
            return collection[key]
        except KeyError:
            raise EntityNotFoundError(f"{kind} {key} not found") from None

    def _check_version(
        self,
        collection: dict[str, Any],
        key: str,
        expected_version: int,
        kind: str,
    ) -> None:
        current = collection.get(key)
        if current is None:
            if expected_version != 0:
                raise EntityNotFoundError(f"{kind} {key} not found")
            return
        if current.version != expected_version:
            logger.warning(
                "Stale write to %s %s: expected version %d, stored %d",
                kind,
                key,
                expected_version,
                current.version,
                extra=log_extra(entity=kind.lower(), entity_id=key),
            )
            raise ConcurrentModification(
                f"{kind} {key} changed since it was read "
                f"(expected version {expected_version}, found {current.version})"
            )

    def _append(self, event: Event) -> None:
        self.events.setdefault(event.subject, []).append(event)

    def _enqueue(self, effects: Iterable[PropertyAvailabilityChanged]) -> None:
        for effect in effects:
            effect_id = effect.effect_id or uuid.uuid4().hex
            self.outbox[effect_id] = replace(effect, effect_id=effect_id)
