"""Configuration management for marketplace-engine."""

from dataclasses import dataclass, field
from typing import Any

from marketplace_engine.exceptions import ConfigurationError


@dataclass
class KafkaConfig:
    """Kafka producer configuration."""

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    linger_ms: int = 0
    compression: str = "none"
    retries: int = 3

    def to_dict(self) -> dict[str, Any]:
        """Convert to confluent-kafka config dict."""
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "acks": self.acks,
            "linger.ms": self.linger_ms,
            "compression.type": self.compression,
            "retries": self.retries,
            "enable.idempotence": self.acks == "all",
        }


@dataclass
class OfferConfig:
    """Offer lifecycle settings."""

    validity_days: int = 14
    default_currency: str = "USD"


@dataclass
class DispatchConfig:
    """Side-effect dispatch settings."""

    availability_topic: str = "marketplace.property-availability"
    flush_timeout: float = 10.0


@dataclass
class EngineConfig:
    """Main configuration for marketplace-engine."""

    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    offers: OfferConfig = field(default_factory=OfferConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    seed: int | None = None
    log_level: str = "INFO"
    log_format: str = "standard"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create config from environment variables."""
        import os

        kafka = KafkaConfig(
            bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
            acks=os.getenv("KAFKA_ACKS", "all"),
        )

        offers = OfferConfig(
            validity_days=_int_env("OFFER_VALIDITY_DAYS", "14"),
            default_currency=os.getenv("DEFAULT_CURRENCY", "USD"),
        )
        if offers.validity_days <= 0:
            raise ConfigurationError("OFFER_VALIDITY_DAYS must be positive")

        dispatch = DispatchConfig(
            availability_topic=os.getenv(
                "AVAILABILITY_TOPIC", "marketplace.property-availability"
            ),
        )

        return cls(
            kafka=kafka,
            offers=offers,
            dispatch=dispatch,
            seed=_int_env("SEED", None) if os.getenv("SEED") else None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )


def _int_env(name: str, default: str | None) -> int:
    import os

    raw = os.getenv(name, default)
    try:
        return int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
