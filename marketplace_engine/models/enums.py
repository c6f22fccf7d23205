"""Enumeration types for marketplace entities."""

from enum import Enum


class Role(str, Enum):
    BUYER = "BUYER"
    SELLER = "SELLER"


class BuyerType(str, Enum):
    CASH = "CASH"
    INSTALLMENT = "INSTALLMENT"
    NONE = "NONE"


class VerificationKind(str, Enum):
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    IDENTITY = "IDENTITY"
    FINANCIAL = "FINANCIAL"
    PROPERTY = "PROPERTY"


class KycLevel(str, Enum):
    """Buyer verification tier, ordered NONE < EMAIL < PHONE < IDENTITY < FINANCIAL."""

    NONE = "NONE"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    IDENTITY = "IDENTITY"
    FINANCIAL = "FINANCIAL"

    @property
    def rank(self) -> int:
        return _KYC_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, KycLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, KycLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, KycLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, KycLevel):
            return NotImplemented
        return self.rank >= other.rank


_KYC_ORDER = list(KycLevel)


class Capability(str, Enum):
    BROWSE_PROPERTIES = "BROWSE_PROPERTIES"
    SAVE_PROPERTIES = "SAVE_PROPERTIES"
    CONTACT_SELLER = "CONTACT_SELLER"
    SCHEDULE_VIEWING = "SCHEDULE_VIEWING"
    MAKE_OFFER = "MAKE_OFFER"
    SUBMIT_PAYMENT = "SUBMIT_PAYMENT"
    INSTALLMENT_APPLY = "INSTALLMENT_APPLY"
    LIST_PROPERTY = "LIST_PROPERTY"
    RECEIVE_OFFERS = "RECEIVE_OFFERS"


class Actor(str, Enum):
    BUYER = "BUYER"
    REVIEWER = "REVIEWER"
    SYSTEM = "SYSTEM"


class OfferStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"
    EXPIRED = "EXPIRED"


class OfferPaymentMethod(str, Enum):
    CASH = "CASH"
    INSTALLMENTS = "INSTALLMENTS"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class PaymentChannel(str, Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    ECOCASH = "ECOCASH"
    CASH = "CASH"
