"""Property availability sinks."""

from marketplace_engine.sinks.base import AvailabilitySink
from marketplace_engine.sinks.callback import CallbackSink
from marketplace_engine.sinks.console import ConsoleSink
from marketplace_engine.sinks.kafka import KafkaSink

__all__ = ["AvailabilitySink", "CallbackSink", "ConsoleSink", "KafkaSink"]
