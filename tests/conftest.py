"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

import pytest

from marketplace_engine.config import EngineConfig
from marketplace_engine.engine import ledger as ledger_rules
from marketplace_engine.engine.service import MarketplaceService
from marketplace_engine.exceptions import SinkError
from marketplace_engine.models.enums import (
    BuyerType,
    OfferPaymentMethod,
    OfferStatus,
    Role,
    VerificationKind,
)
from marketplace_engine.models.offer import Offer
from marketplace_engine.models.verification import VerificationEvent, VerificationLedger
from marketplace_engine.store.marketplace import MarketplaceStore

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

BUYER_CHAIN = [
    VerificationKind.EMAIL,
    VerificationKind.PHONE,
    VerificationKind.IDENTITY,
    VerificationKind.FINANCIAL,
]


class FakeClock:
    """Settable clock for the service."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingSink:
    """Availability sink that records calls and can be switched to fail."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, bool, str | None, str | None]] = []
        self.fail = False

    def notify_availability_changed(
        self,
        property_id: str,
        available: bool,
        *,
        offer_id: str | None = None,
        effect_id: str | None = None,
    ) -> None:
        if self.fail:
            raise SinkError("availability service unreachable")
        self.calls.append((property_id, available, offer_id, effect_id))

    def close(self) -> None:
        pass


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def store() -> MarketplaceStore:
    """Create a fresh store for each test."""
    return MarketplaceStore()


@pytest.fixture
def service(store: MarketplaceStore, sink: RecordingSink, clock: FakeClock) -> MarketplaceService:
    return MarketplaceService(store, sink, config=EngineConfig(), clock=clock)


@pytest.fixture
def make_ledger() -> Callable[..., VerificationLedger]:
    """Build a ledger through valid verification events.

    ``depth`` is the number of buyer chain steps completed
    (EMAIL, PHONE, IDENTITY, FINANCIAL).
    """

    def _make(
        user_id: str = "buyer-001",
        depth: int = 3,
        buyer_type: BuyerType = BuyerType.CASH,
        roles: frozenset[Role] = frozenset({Role.BUYER}),
    ) -> VerificationLedger:
        ledger = ledger_rules.new_ledger(user_id, roles)
        ledger = ledger_rules.choose_buyer_type(ledger, buyer_type)
        for kind in BUYER_CHAIN[:depth]:
            ledger = ledger_rules.apply(ledger, VerificationEvent(kind=kind, user_id=user_id))
        return ledger

    return _make


@pytest.fixture
def make_buyer(service: MarketplaceService) -> Callable[..., VerificationLedger]:
    """Register a buyer through the service and verify it to ``depth``."""

    def _make(
        user_id: str = "buyer-001",
        depth: int = 3,
        buyer_type: BuyerType = BuyerType.CASH,
    ) -> VerificationLedger:
        ledger = service.register_user(user_id)
        if buyer_type != BuyerType.NONE:
            ledger = service.choose_buyer_type(user_id, buyer_type)
        for kind in BUYER_CHAIN[:depth]:
            ledger = service.record_verification(user_id, kind)
        return ledger

    return _make


@pytest.fixture
def pending_offer(now: datetime) -> Offer:
    """A pending cash offer as returned by the store."""
    return Offer(
        offer_id="offer-001",
        property_id="prop-001",
        buyer_id="buyer-001",
        offer_price=Decimal("100000.00"),
        deposit_amount=Decimal("100000.00"),
        payment_method=OfferPaymentMethod.CASH,
        estimated_timeline="30 days",
        status=OfferStatus.PENDING,
        submitted_at=now,
        expires_at=now + timedelta(days=14),
        updated_at=now,
        version=1,
    )
