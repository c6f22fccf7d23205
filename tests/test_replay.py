"""Tests for event log replay."""

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from marketplace_engine.engine.replay import (
    action_of,
    diff_fields,
    fold,
    replay_ledger,
    replay_offer,
    snapshot_fields,
)
from marketplace_engine.exceptions import EventLogError
from marketplace_engine.models.base import Event
from marketplace_engine.models.enums import BuyerType, OfferStatus, Role
from marketplace_engine.models.offer import Offer
from marketplace_engine.models.verification import VerificationLedger

T0 = datetime(2025, 3, 1, tzinfo=timezone.utc)


def make_event(subject: str, event_type: str, data: dict, n: int = 1) -> Event:
    return Event(
        event_id=f"evt-{n}",
        event_type=event_type,
        event_time=T0,
        source="test",
        subject=subject,
        data=data,
    )


class TestFieldHelpers:
    """Tests for snapshot and diff helpers."""

    def test_snapshot_excludes_version(self, pending_offer: Offer) -> None:
        data = snapshot_fields(pending_offer)

        assert "version" not in data
        assert data["offer_id"] == "offer-001"

    def test_diff_only_changed_fields(self, pending_offer: Offer) -> None:
        approved = replace(pending_offer, status=OfferStatus.APPROVED, admin_reviewed_by="admin-001", version=7)

        assert diff_fields(pending_offer, approved) == {
            "status": OfferStatus.APPROVED,
            "admin_reviewed_by": "admin-001",
        }

    def test_action_of(self) -> None:
        assert action_of(make_event("o", "offer.approved", {})) == "approved"


class TestFold:
    """Tests for folding event logs."""

    def test_empty_log(self) -> None:
        assert fold([], Offer) is None

    def test_ledger_log(self) -> None:
        created = VerificationLedger(user_id="buyer-001", roles=frozenset({Role.BUYER}))
        events = [
            make_event("buyer-001", "ledger.created", snapshot_fields(created), 1),
            make_event("buyer-001", "ledger.buyer_type_chosen", {"buyer_type": BuyerType.CASH}, 2),
            make_event("buyer-001", "verification.phone", {"phone_verified": True}, 3),
        ]

        ledger = replay_ledger(events)

        assert ledger == VerificationLedger(
            user_id="buyer-001",
            roles=frozenset({Role.BUYER}),
            buyer_type=BuyerType.CASH,
            phone_verified=True,
            version=3,
        )

    def test_offer_log(self, pending_offer: Offer) -> None:
        events = [
            make_event("offer-001", "offer.submitted", snapshot_fields(pending_offer), 1),
            make_event("offer-001", "offer.withdrawn", {"status": OfferStatus.WITHDRAWN}, 2),
        ]

        offer = replay_offer(events)

        assert offer == replace(pending_offer, status=OfferStatus.WITHDRAWN, version=2)

    def test_deleted_entity(self, pending_offer: Offer) -> None:
        events = [
            make_event("offer-001", "offer.submitted", snapshot_fields(pending_offer), 1),
            make_event("offer-001", "offer.withdrawn", {"status": OfferStatus.WITHDRAWN}, 2),
            make_event("offer-001", "offer.deleted", {}, 3),
        ]

        assert replay_offer(events) is None

    def test_log_must_start_with_creation(self) -> None:
        with pytest.raises(EventLogError):
            fold([make_event("offer-001", "offer.approved", {})], Offer)

    def test_nothing_after_deletion(self, pending_offer: Offer) -> None:
        events = [
            make_event("offer-001", "offer.submitted", snapshot_fields(pending_offer), 1),
            make_event("offer-001", "offer.deleted", {}, 2),
            make_event("offer-001", "offer.approved", {"status": OfferStatus.APPROVED}, 3),
        ]

        with pytest.raises(EventLogError):
            replay_offer(events)
