"""Console sink for local runs of the marketplace engine."""

import json
from typing import Any

from marketplace_engine.sinks.serialization import availability_message, to_record

RULE = "-" * 60


class ConsoleSink:
    """Print availability changes and dashboard records as JSON.

    Implements the availability sink protocol, so it can be handed straight
    to ``MarketplaceService`` when no broker is running.

    Parameters
    ----------
    pretty : bool
        Indent JSON output.
    max_records : int | None
        Records shown per batch; the rest are only counted.
    """

    def __init__(self, pretty: bool = True, max_records: int | None = None) -> None:
        self.pretty = pretty
        self.max_records = max_records
        self.availability_changes = 0
        self.record_counts: dict[str, int] = {}

    def notify_availability_changed(
        self,
        property_id: str,
        available: bool,
        *,
        offer_id: str | None = None,
        effect_id: str | None = None,
    ) -> None:
        self._emit(availability_message(property_id, available, offer_id, effect_id))
        self.availability_changes += 1

    def write_batch(self, entity_type: str, records: list[Any]) -> None:
        """Print a titled batch of ledgers, offers, payments or portfolio rows."""
        self._heading(f"{entity_type}: {len(records)}")

        shown = records if self.max_records is None else records[: self.max_records]
        for record in shown:
            self._emit(to_record(record))

        hidden = len(records) - len(shown)
        if hidden > 0:
            print(f"({hidden} not shown)")

        self.record_counts[entity_type] = self.record_counts.get(entity_type, 0) + len(records)

    def close(self) -> None:
        self._heading("console sink totals")
        print(f"  availability changes: {self.availability_changes}")
        for entity_type, count in sorted(self.record_counts.items()):
            print(f"  {entity_type}: {count}")

    def _heading(self, title: str) -> None:
        print(f"\n{RULE}\n{title}\n{RULE}")

    def _emit(self, data: dict[str, Any]) -> None:
        indent = 2 if self.pretty else None
        print(json.dumps(data, indent=indent, ensure_ascii=False, default=str))
