"""Verification ledger transitions.

Each function takes an immutable ledger snapshot and returns a new one. The
prerequisite chain is::

    PHONE <- IDENTITY <- FINANCIAL
             IDENTITY <- PROPERTY (sellers only)

EMAIL has no prerequisite.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from marketplace_engine.exceptions import (
    IllegalTransition,
    LedgerMismatchError,
    PrerequisiteNotMet,
)
from marketplace_engine.models.enums import BuyerType, Role, VerificationKind
from marketplace_engine.models.verification import (
    FLAG_FOR_KIND,
    VerificationEvent,
    VerificationLedger,
)

logger = logging.getLogger(__name__)

K = VerificationKind

PREREQUISITES: dict[VerificationKind, tuple[VerificationKind, ...]] = {
    K.EMAIL: (),
    K.PHONE: (),
    K.IDENTITY: (K.PHONE,),
    K.FINANCIAL: (K.IDENTITY,),
    K.PROPERTY: (K.IDENTITY,),
}


def new_ledger(user_id: str, roles: frozenset[Role] | None = None) -> VerificationLedger:
    """Create the ledger for a freshly registered account."""
    return VerificationLedger(user_id=user_id, roles=frozenset(roles or ()))


def apply(ledger: VerificationLedger, event: VerificationEvent) -> VerificationLedger:
    """Record a successful verification on the ledger.

    Parameters
    ----------
    ledger : VerificationLedger
        Current snapshot.
    event : VerificationEvent
        Completed verification.

    Returns
    -------
    VerificationLedger
        Updated snapshot, or ``ledger`` itself when the flag was already set.

    Raises
    ------
    LedgerMismatchError
        If the event belongs to another user.
    PrerequisiteNotMet
        If an earlier step of the chain is missing, or a property
        verification arrives for a user without the seller role.
    """
    if event.user_id != ledger.user_id:
        raise LedgerMismatchError(
            f"Event for user {event.user_id} applied to ledger of {ledger.user_id}"
        )

    if ledger.is_set(event.kind):
        logger.debug("Verification %s already recorded for %s", event.kind.value, ledger.user_id)
        return ledger

    missing = [kind for kind in PREREQUISITES[event.kind] if not ledger.is_set(kind)]
    if missing:
        raise PrerequisiteNotMet(
            f"{event.kind.value} verification for {ledger.user_id} requires "
            f"{', '.join(kind.value for kind in missing)} first"
        )

    if event.kind == K.PROPERTY and Role.SELLER not in ledger.roles:
        raise PrerequisiteNotMet(
            f"PROPERTY verification for {ledger.user_id} requires the SELLER role"
        )

    logger.info("Recorded %s verification for %s", event.kind.value, ledger.user_id)
    return replace(ledger, **{FLAG_FOR_KIND[event.kind]: True})


def assign_role(ledger: VerificationLedger, role: Role) -> VerificationLedger:
    """Add a role to the ledger. Roles are never removed."""
    if role in ledger.roles:
        return ledger
    return replace(ledger, roles=ledger.roles | {role})


def choose_buyer_type(ledger: VerificationLedger, buyer_type: BuyerType) -> VerificationLedger:
    """Record the buyer's chosen purchase route.

    The type can be chosen once; choosing the same type again is a no-op.
    """
    if ledger.buyer_type == buyer_type:
        return ledger
    if buyer_type == BuyerType.NONE or ledger.buyer_type != BuyerType.NONE:
        raise IllegalTransition(
            ledger.buyer_type,
            buyer_type,
            f"buyer type of {ledger.user_id} is already settled",
        )
    return replace(ledger, buyer_type=buyer_type)
