"""Payment model."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from marketplace_engine.models.enums import PaymentChannel, PaymentStatus


@dataclass(frozen=True)
class Payment:
    """A single payment attempt against an approved offer.

    ``amount`` never changes after creation; paying more after a failed
    attempt means recording a new Payment.
    """

    payment_id: str
    offer_id: str
    buyer_id: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    payment_method: PaymentChannel
    created_at: datetime
    updated_at: datetime
    failure_reason: str | None = None
    verified_by: str | None = None
    version: int = 0
