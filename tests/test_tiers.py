"""Tests for KYC level and permission derivation."""

import itertools

import pytest

from marketplace_engine.engine.tiers import (
    ALWAYS_GRANTED,
    derive_level,
    derive_permissions,
    has_permission,
)
from marketplace_engine.exceptions import LedgerIntegrityError
from marketplace_engine.models.enums import BuyerType, Capability, KycLevel, Role
from marketplace_engine.models.verification import VerificationLedger

C = Capability
L = KycLevel

FLAGS = [
    "email_confirmed",
    "phone_verified",
    "identity_verified",
    "financially_verified",
    "property_verified",
]

ROLE_SETS = [
    frozenset(),
    frozenset({Role.BUYER}),
    frozenset({Role.SELLER}),
    frozenset({Role.BUYER, Role.SELLER}),
]


def all_ledgers():
    for bits in itertools.product([False, True], repeat=len(FLAGS)):
        for roles in ROLE_SETS:
            for buyer_type in BuyerType:
                yield VerificationLedger(
                    user_id="user-001",
                    roles=roles,
                    buyer_type=buyer_type,
                    **dict(zip(FLAGS, bits)),
                )


def is_valid(ledger: VerificationLedger) -> bool:
    if ledger.financially_verified and not ledger.identity_verified:
        return False
    if ledger.identity_verified and not ledger.phone_verified:
        return False
    if ledger.property_verified and not ledger.identity_verified:
        return False
    return True


def expected_level(ledger: VerificationLedger) -> KycLevel:
    if ledger.financially_verified:
        return L.FINANCIAL
    if ledger.identity_verified:
        return L.IDENTITY
    if ledger.phone_verified:
        return L.PHONE
    if ledger.email_confirmed:
        return L.EMAIL
    return L.NONE


def expected_permissions(ledger: VerificationLedger) -> frozenset[Capability]:
    level = expected_level(ledger)
    caps = {C.BROWSE_PROPERTIES, C.SAVE_PROPERTIES}
    if level >= L.PHONE:
        caps |= {C.CONTACT_SELLER, C.SCHEDULE_VIEWING}
    if Role.BUYER in ledger.roles:
        if level >= L.PHONE:
            caps.add(C.MAKE_OFFER)
        if level >= L.IDENTITY:
            caps.add(C.SUBMIT_PAYMENT)
        if ledger.buyer_type == BuyerType.INSTALLMENT and level == L.FINANCIAL:
            caps.add(C.INSTALLMENT_APPLY)
    if Role.SELLER in ledger.roles:
        if level >= L.IDENTITY:
            caps.add(C.LIST_PROPERTY)
        if ledger.property_verified:
            caps.add(C.RECEIVE_OFFERS)
    return frozenset(caps)


class TestKycLevel:
    """Tests for the KycLevel ordering."""

    def test_total_order(self) -> None:
        assert L.NONE < L.EMAIL < L.PHONE < L.IDENTITY < L.FINANCIAL
        assert L.FINANCIAL >= L.IDENTITY
        assert L.PHONE <= L.PHONE
        assert not L.IDENTITY > L.FINANCIAL

    def test_rank(self) -> None:
        assert [level.rank for level in KycLevel] == [0, 1, 2, 3, 4]


class TestDeriveLevel:
    """Exhaustive tests over every flag combination."""

    def test_every_combination(self) -> None:
        for ledger in all_ledgers():
            if is_valid(ledger):
                assert derive_level(ledger) == expected_level(ledger), ledger
            else:
                with pytest.raises(LedgerIntegrityError):
                    derive_level(ledger)

    def test_integrity_alarm_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        ledger = VerificationLedger(user_id="user-001", financially_verified=True)

        with pytest.raises(LedgerIntegrityError, match="financial without identity"):
            derive_level(ledger)

        assert any(r.levelname == "ERROR" for r in caplog.records)

    def test_email_alone(self) -> None:
        ledger = VerificationLedger(user_id="user-001", email_confirmed=True)
        assert derive_level(ledger) == L.EMAIL

    def test_monotone(self) -> None:
        """Setting one more flag never lowers the level or removes a capability."""
        for ledger in all_ledgers():
            if not is_valid(ledger):
                continue
            for flag in FLAGS:
                if getattr(ledger, flag):
                    continue
                more = VerificationLedger(
                    user_id=ledger.user_id,
                    roles=ledger.roles,
                    buyer_type=ledger.buyer_type,
                    **{f: getattr(ledger, f) or f == flag for f in FLAGS},
                )
                if not is_valid(more):
                    continue
                assert derive_level(more) >= derive_level(ledger)
                assert derive_permissions(more) >= derive_permissions(ledger)


class TestDerivePermissions:
    """Tests for capability derivation."""

    def test_every_combination(self) -> None:
        for ledger in all_ledgers():
            if is_valid(ledger):
                assert derive_permissions(ledger) == expected_permissions(ledger), ledger

    def test_anonymous_can_browse(self) -> None:
        ledger = VerificationLedger(user_id="user-001")
        assert derive_permissions(ledger) == ALWAYS_GRANTED

    def test_cash_buyer_never_gets_installments(self) -> None:
        ledger = VerificationLedger(
            user_id="buyer-001",
            phone_verified=True,
            identity_verified=True,
            financially_verified=True,
            buyer_type=BuyerType.CASH,
            roles=frozenset({Role.BUYER}),
        )

        assert C.INSTALLMENT_APPLY not in derive_permissions(ledger)
        assert C.INSTALLMENT_APPLY in derive_permissions(
            ledger, buyer_type=BuyerType.INSTALLMENT
        )

    def test_role_override(self) -> None:
        ledger = VerificationLedger(
            user_id="user-001",
            phone_verified=True,
            identity_verified=True,
            roles=frozenset({Role.BUYER}),
        )

        assert C.LIST_PROPERTY not in derive_permissions(ledger)
        assert C.LIST_PROPERTY in derive_permissions(ledger, roles=frozenset({Role.SELLER}))

    def test_has_permission(self) -> None:
        ledger = VerificationLedger(
            user_id="buyer-001", phone_verified=True, roles=frozenset({Role.BUYER})
        )

        assert has_permission(ledger, C.MAKE_OFFER)
        assert not has_permission(ledger, C.SUBMIT_PAYMENT)
