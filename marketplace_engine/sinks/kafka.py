"""Kafka sink for publishing property availability changes."""

import json
import logging
from dataclasses import dataclass
from typing import Any

from confluent_kafka import KafkaException, Producer

from marketplace_engine.config import KafkaConfig
from marketplace_engine.exceptions import SinkError
from marketplace_engine.sinks.serialization import availability_message

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "marketplace.property-availability"


@dataclass
class ProducerStats:
    """Track producer delivery statistics."""

    sent: int = 0
    delivered: int = 0
    failed: int = 0

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        total = self.delivered + self.failed
        return self.delivered / total if total > 0 else 0.0


class KafkaSink:
    """Publish availability changes to a Kafka topic, keyed by property id.

    Each notification is flushed before returning, so a return without
    exception means the broker acknowledged the message. Consumers
    deduplicate on ``effect_id``.
    """

    def __init__(
        self,
        config: KafkaConfig | str,
        topic: str = DEFAULT_TOPIC,
        flush_timeout: float = 10.0,
    ) -> None:
        """Initialize Kafka sink.

        Parameters
        ----------
        config : KafkaConfig | str
            Producer configuration or bootstrap servers string.
        topic : str
            Topic receiving availability changes.
        flush_timeout : float
            Seconds to wait for the broker acknowledgement.
        """
        if isinstance(config, str):
            config = KafkaConfig(bootstrap_servers=config)

        self.config = config
        self.topic = topic
        self.flush_timeout = flush_timeout
        self.producer = self._create_producer()
        self.stats = ProducerStats()
        self._last_error: Any = None

    def _create_producer(self) -> Producer:
        """Create Kafka producer with configuration."""
        return Producer(self.config.to_dict())

    def _delivery_callback(self, err: Any, msg: Any) -> None:
        """Handle delivery reports."""
        if err:
            self.stats.failed += 1
            self._last_error = err
            logger.error("Delivery failed: %s", err)
        else:
            self.stats.delivered += 1
            logger.debug("Delivered to %s[%d]@%d", msg.topic(), msg.partition(), msg.offset())

    def notify_availability_changed(
        self,
        property_id: str,
        available: bool,
        *,
        offer_id: str | None = None,
        effect_id: str | None = None,
    ) -> None:
        """Publish one availability change and wait for acknowledgement."""
        value = json.dumps(
            availability_message(property_id, available, offer_id, effect_id)
        ).encode("utf-8")

        self._last_error = None
        try:
            self.producer.produce(
                topic=self.topic,
                key=property_id.encode("utf-8"),
                value=value,
                callback=self._delivery_callback,
            )
        except (BufferError, KafkaException) as exc:
            raise SinkError(f"Could not enqueue availability change for {property_id}: {exc}") from exc
        self.stats.sent += 1

        remaining = self.producer.flush(self.flush_timeout)
        if remaining:
            raise SinkError(
                f"Availability change for {property_id} not acknowledged "
                f"within {self.flush_timeout}s"
            )
        if self._last_error is not None:
            raise SinkError(f"Availability change for {property_id} failed: {self._last_error}")

    def close(self) -> None:
        """Flush and close the producer."""
        self.producer.flush(self.flush_timeout)
        logger.info(
            "Kafka sink closed: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )
