"""Convert engine records to JSON-ready dictionaries for sinks."""

from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


def availability_message(
    property_id: str,
    available: bool,
    offer_id: str | None = None,
    effect_id: str | None = None,
) -> dict[str, Any]:
    """Payload published for one property availability change."""
    return {
        "property_id": property_id,
        "available": available,
        "offer_id": offer_id,
        "effect_id": effect_id,
    }


def to_record(obj: Any) -> dict[str, Any]:
    """Convert a ledger, offer, payment or portfolio entry to a dict.

    Plain dicts are serialized value by value; anything else is wrapped as
    ``{"value": str(obj)}``.
    """
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: serialize_value(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, dict):
        return {k: serialize_value(v) for k, v in obj.items()}
    return {"value": str(obj)}


def serialize_value(value: Any) -> Any:
    """Serialize one value for JSON output.

    Money stays exact as a string. Role sets come out sorted so records
    compare stably.
    """
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return to_record(value)
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted(serialize_value(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value
