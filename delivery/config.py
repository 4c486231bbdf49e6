"""Process configuration.

`Settings` is built once at startup (usually via `Settings.from_env()`) and
passed explicitly into the producer, processor, provider factory and Kafka
runtime. Nothing in the request/consume path reads the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path

from .domain.models import Channel

DEFAULT_TOPICS = {
    Channel.WHATSAPP: "delivery-whatsapp",
    Channel.SMS: "delivery-sms",
    Channel.EMAIL: "delivery-email",
}


@dataclass(frozen=True)
class Settings:
    database_url: str
    encryption_key: bytes
    replica_database_url: str | None = None
    kafka_bootstrap_servers: tuple[str, ...] = ()
    topics: dict[Channel, str] = field(default_factory=lambda: dict(DEFAULT_TOPICS))
    group_prefix: str = "delivery"
    producer_acks: str = "all"
    send_timeout_seconds: float = 10.0
    poll_timeout_ms: int = 1000
    max_records_per_poll: int = 50
    dlq_enabled: bool = False
    retry_backoff_seconds: float = 1.0
    workers: dict[Channel, int] = field(
        default_factory=lambda: {channel: 3 for channel in Channel}
    )
    http_timeout_seconds: float = 10.0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if len(self.encryption_key) != 32:
            raise RuntimeError("ENCRYPTION_KEY must be exactly 32 bytes for AES-256")
        for channel, count in self.workers.items():
            if count <= 0:
                raise RuntimeError(f"worker count for {channel.value} must be > 0")
        if self.retry_backoff_seconds < 0:
            raise RuntimeError("KAFKA_RETRY_BACKOFF_SECONDS must be >= 0")

    @property
    def reader_database_url(self) -> str:
        return self.replica_database_url or self.database_url

    def topic_for(self, channel: Channel) -> str:
        return self.topics[channel]

    def dlq_topic_for(self, channel: Channel) -> str:
        return f"{self.topic_for(channel)}.dlq"

    def group_id_for(self, channel: Channel) -> str:
        return f"{self.group_prefix}-{channel.value.lower()}-consumer"

    @classmethod
    def from_env(cls) -> "Settings":
        topics = {
            channel: os.getenv(f"KAFKA_TOPIC_{channel.value}", default)
            for channel, default in DEFAULT_TOPICS.items()
        }
        workers = {
            channel: _env_int(f"DELIVERY_WORKERS_{channel.value}", default=3)
            for channel in Channel
        }
        return cls(
            database_url=_required_env("DATABASE_URL"),
            replica_database_url=os.getenv("DATABASE_REPLICA_URL") or None,
            encryption_key=_required_env("ENCRYPTION_KEY").encode("utf-8"),
            kafka_bootstrap_servers=tuple(_bootstrap_servers_from_env()),
            topics=topics,
            group_prefix=os.getenv("KAFKA_GROUP_PREFIX", "delivery"),
            producer_acks=os.getenv("KAFKA_PRODUCER_ACKS", "all"),
            send_timeout_seconds=float(os.getenv("KAFKA_SEND_TIMEOUT_SECONDS", "10")),
            poll_timeout_ms=_poll_timeout_ms_from_env(),
            max_records_per_poll=_env_int("KAFKA_MAX_RECORDS_PER_POLL", default=50),
            dlq_enabled=_env_bool("KAFKA_DLQ_ENABLED", default=False),
            retry_backoff_seconds=float(os.getenv("KAFKA_RETRY_BACKOFF_SECONDS", "1.0")),
            workers=workers,
            http_timeout_seconds=float(os.getenv("PROVIDER_HTTP_TIMEOUT_SECONDS", "10")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def load_env_file(path: Path) -> None:
    """Populate os.environ from a `.env` file without overriding set values."""
    if not path.exists():
        return

    for line in path.read_text(encoding="utf-8").splitlines():
        text = line.strip()
        if not text or text.startswith("#") or "=" not in text:
            continue
        key, value = text.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key:
            continue
        if value.startswith(("'", '"')) and value.endswith(("'", '"')) and len(value) >= 2:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value.strip()


def _bootstrap_servers_from_env() -> list[str]:
    raw = _required_env("KAFKA_BOOTSTRAP_SERVERS")
    servers = [item.strip() for item in raw.split(",") if item.strip()]
    if not servers:
        raise RuntimeError("KAFKA_BOOTSTRAP_SERVERS must include at least one host:port")
    return servers


def _poll_timeout_ms_from_env() -> int:
    timeout_seconds = float(os.getenv("KAFKA_POLL_TIMEOUT_SECONDS", "1.0"))
    timeout_ms = int(timeout_seconds * 1000)
    if timeout_ms <= 0:
        raise RuntimeError("KAFKA_POLL_TIMEOUT_SECONDS must be > 0")
    return timeout_ms


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer value for {name}: {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise RuntimeError(f"Invalid boolean value for {name}: {raw!r}")
