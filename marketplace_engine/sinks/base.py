"""Property availability sink interface."""

from typing import Protocol


class AvailabilitySink(Protocol):
    """Receiver of property availability changes.

    Implementations raise SinkError when delivery fails. Calls may be
    repeated for the same ``effect_id`` and must be safe to replay.
    """

    def notify_availability_changed(
        self,
        property_id: str,
        available: bool,
        *,
        offer_id: str | None = None,
        effect_id: str | None = None,
    ) -> None:
        ...

    def close(self) -> None:
        ...
