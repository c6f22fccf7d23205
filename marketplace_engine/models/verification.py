"""Verification ledger models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from marketplace_engine.models.enums import BuyerType, Role, VerificationKind

# Ledger attribute flipped by each verification kind
FLAG_FOR_KIND: dict[VerificationKind, str] = {
    VerificationKind.EMAIL: "email_confirmed",
    VerificationKind.PHONE: "phone_verified",
    VerificationKind.IDENTITY: "identity_verified",
    VerificationKind.FINANCIAL: "financially_verified",
    VerificationKind.PROPERTY: "property_verified",
}


@dataclass(frozen=True)
class VerificationLedger:
    """Completed verification facts for one user.

    Flags only ever move from False to True. ``version`` advances on every
    committed change and is used for compare-and-swap writes.
    """

    user_id: str
    email_confirmed: bool = False
    phone_verified: bool = False
    identity_verified: bool = False
    financially_verified: bool = False
    property_verified: bool = False  # Sellers only
    buyer_type: BuyerType = BuyerType.NONE
    roles: frozenset[Role] = field(default_factory=frozenset)
    version: int = 0

    def is_set(self, kind: VerificationKind) -> bool:
        """Return whether the flag for ``kind`` is already true."""
        return getattr(self, FLAG_FOR_KIND[kind])

    @property
    def completed(self) -> frozenset[VerificationKind]:
        """Verification kinds already recorded on this ledger."""
        return frozenset(kind for kind in VerificationKind if self.is_set(kind))


@dataclass(frozen=True)
class VerificationEvent:
    """A single successful verification for a user."""

    kind: VerificationKind
    user_id: str
    occurred_at: datetime | None = None
