"""Sink that forwards availability changes to a host callable."""

from typing import Callable

from marketplace_engine.exceptions import SinkError

AvailabilityCallback = Callable[[str, bool], object]


class CallbackSink:
    """Adapt a plain ``callback(property_id, available)`` to the sink interface.

    Returning ``False`` from the callback, or raising, counts as a failed
    delivery.
    """

    def __init__(self, callback: AvailabilityCallback) -> None:
        self.callback = callback
        self._delivered: set[str] = set()

    def notify_availability_changed(
        self,
        property_id: str,
        available: bool,
        *,
        offer_id: str | None = None,
        effect_id: str | None = None,
    ) -> None:
        if effect_id is not None and effect_id in self._delivered:
            return
        try:
            result = self.callback(property_id, available)
        except Exception as exc:
            raise SinkError(f"Availability callback failed for {property_id}: {exc}") from exc
        if result is False:
            raise SinkError(f"Availability callback rejected update for {property_id}")
        if effect_id is not None:
            self._delivered.add(effect_id)

    def close(self) -> None:
        self._delivered.clear()
