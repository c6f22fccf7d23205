"""KYC level and permission derivation.

Everything that needs to know what a user may do goes through
:func:`derive_level` and :func:`derive_permissions`; nothing else inspects
the raw verification flags.
"""

from __future__ import annotations

import logging

from marketplace_engine.exceptions import LedgerIntegrityError
from marketplace_engine.logging import log_extra
from marketplace_engine.models.enums import BuyerType, Capability, KycLevel, Role
from marketplace_engine.models.verification import VerificationLedger

logger = logging.getLogger(__name__)

PermissionSet = frozenset[Capability]

C = Capability
L = KycLevel

ALWAYS_GRANTED: frozenset[Capability] = frozenset({C.BROWSE_PROPERTIES, C.SAVE_PROPERTIES})

# Minimum level for capabilities that depend only on the level
LEVEL_CAPABILITIES: dict[Capability, KycLevel] = {
    C.CONTACT_SELLER: L.PHONE,
    C.SCHEDULE_VIEWING: L.PHONE,
}

BUYER_CAPABILITIES: dict[Capability, KycLevel] = {
    C.MAKE_OFFER: L.PHONE,
    C.SUBMIT_PAYMENT: L.IDENTITY,
}

SELLER_CAPABILITIES: dict[Capability, KycLevel] = {
    C.LIST_PROPERTY: L.IDENTITY,
}


def validate_ledger(ledger: VerificationLedger) -> None:
    """Raise LedgerIntegrityError if the flags break the prerequisite chain."""
    problems = []
    if ledger.financially_verified and not ledger.identity_verified:
        problems.append("financial without identity")
    if ledger.identity_verified and not ledger.phone_verified:
        problems.append("identity without phone")
    if ledger.property_verified and not ledger.identity_verified:
        problems.append("property without identity")

    if problems:
        logger.error(
            "Ledger integrity violation for %s: %s",
            ledger.user_id,
            "; ".join(problems),
            extra=log_extra(user_id=ledger.user_id, alarm="ledger_integrity"),
        )
        raise LedgerIntegrityError(
            f"Ledger of {ledger.user_id} is inconsistent: {'; '.join(problems)}"
        )


def derive_level(ledger: VerificationLedger) -> KycLevel:
    """Map a ledger to its KYC level.

    Raises
    ------
    LedgerIntegrityError
        If the ledger cannot have been produced by valid verification events.
    """
    validate_ledger(ledger)

    if ledger.financially_verified:
        return L.FINANCIAL
    if ledger.identity_verified:
        return L.IDENTITY
    if ledger.phone_verified:
        return L.PHONE
    if ledger.email_confirmed:
        return L.EMAIL
    return L.NONE


def derive_permissions(
    ledger: VerificationLedger,
    buyer_type: BuyerType | None = None,
    roles: frozenset[Role] | None = None,
) -> PermissionSet:
    """Compute the capabilities granted to a user.

    Buyer and seller capabilities are evaluated independently and unioned.

    Parameters
    ----------
    ledger : VerificationLedger
        Verification facts.
    buyer_type : BuyerType | None
        Overrides ``ledger.buyer_type`` when given.
    roles : frozenset[Role] | None
        Overrides ``ledger.roles`` when given.
    """
    level = derive_level(ledger)
    if buyer_type is None:
        buyer_type = ledger.buyer_type
    if roles is None:
        roles = ledger.roles

    granted = set(ALWAYS_GRANTED)
    granted.update(cap for cap, minimum in LEVEL_CAPABILITIES.items() if level >= minimum)

    if Role.BUYER in roles:
        granted.update(_buyer_capabilities(level, buyer_type))
    if Role.SELLER in roles:
        granted.update(_seller_capabilities(level, ledger))

    return frozenset(granted)


def has_permission(ledger: VerificationLedger, capability: Capability) -> bool:
    """Return whether the ledger grants ``capability``."""
    return capability in derive_permissions(ledger)


def _buyer_capabilities(level: KycLevel, buyer_type: BuyerType) -> set[Capability]:
    caps = {cap for cap, minimum in BUYER_CAPABILITIES.items() if level >= minimum}
    if buyer_type == BuyerType.INSTALLMENT and level >= L.FINANCIAL:
        caps.add(C.INSTALLMENT_APPLY)
    return caps


def _seller_capabilities(level: KycLevel, ledger: VerificationLedger) -> set[Capability]:
    caps = {cap for cap, minimum in SELLER_CAPABILITIES.items() if level >= minimum}
    if ledger.property_verified:
        caps.add(C.RECEIVE_OFFERS)
    return caps
