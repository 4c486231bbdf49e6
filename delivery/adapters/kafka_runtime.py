"""Kafka transport adapters for publishing and consuming delivery envelopes.

This module is transport glue to Kafka itself:
- `KafkaPublisher` is the producer-side publisher (one per process).
- `ChannelWorker` is one competing consumer: poll -> consumer handler ->
  commit (ack) or seek back (nack).
- `run_channel_workers` starts N workers for one channel's consumer group.
Business/channel logic still lives in domain/application layers.
"""

from __future__ import annotations

from datetime import UTC, datetime
import logging
import threading
from typing import Any, Mapping

from ..application.consumer import DeliveryProcessor
from ..config import Settings
from ..domain.models import Channel
from .consumer_handler import handle_record
from .payload import serialize_json_object

log = logging.getLogger("delivery.kafka")

PARSE_FAILED_PREFIX = "parse_failed"


class KafkaPublisher:
    """Long-lived kafka-python producer that waits on each send."""

    def __init__(self, settings: Settings, *, producer: Any = None) -> None:
        self.send_timeout_seconds = settings.send_timeout_seconds
        if producer is None:
            _KafkaConsumer, KafkaProducer, _TopicPartition, _OffsetAndMetadata = _import_kafka_python()
            producer = KafkaProducer(
                bootstrap_servers=list(settings.kafka_bootstrap_servers),
                key_serializer=_serialize_key,
                value_serializer=serialize_json_object,
                acks=_producer_acks(settings.producer_acks),
            )
        self._producer = producer

    def publish(self, topic: str, key: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        future = self._producer.send(topic, key=key, value=dict(payload))
        metadata = future.get(timeout=self.send_timeout_seconds)
        return {
            "topic": metadata.topic,
            "partition": metadata.partition,
            "offset": metadata.offset,
        }

    def close(self) -> None:
        try:
            self._producer.flush(timeout=self.send_timeout_seconds)
        finally:
            self._producer.close()


class ChannelWorker:
    """One consumer-group member running the receive/process/ack loop."""

    def __init__(
        self,
        consumer: Any,
        *,
        processor: DeliveryProcessor,
        topic_partition_type: Any,
        offset_and_metadata_type: Any,
        poll_timeout_ms: int = 1000,
        max_records: int = 50,
        dlq_producer: Any = None,
        dlq_topic: str | None = None,
        dlq_send_timeout_seconds: float = 10.0,
        retry_backoff_seconds: float = 1.0,
    ) -> None:
        self.consumer = consumer
        self.processor = processor
        self.topic_partition_type = topic_partition_type
        self.offset_and_metadata_type = offset_and_metadata_type
        self.poll_timeout_ms = poll_timeout_ms
        self.max_records = max_records
        self.dlq_producer = dlq_producer
        self.dlq_topic = dlq_topic
        self.dlq_send_timeout_seconds = dlq_send_timeout_seconds
        self.retry_backoff_seconds = retry_backoff_seconds
        self.backoff_pending = False

    def run(self, stop_event: threading.Event) -> int:
        log.info(
            "[WORKER START] channel=%s poll_timeout_ms=%s dlq_topic=%s",
            self.processor.channel.value,
            self.poll_timeout_ms,
            self.dlq_topic if self.dlq_producer is not None else None,
        )
        try:
            while not stop_event.is_set():
                self.poll_once()
                if self.backoff_pending:
                    # Nacked records are refetched on the next poll; give the store a moment.
                    self.backoff_pending = False
                    stop_event.wait(self.retry_backoff_seconds)
        except Exception:
            log.exception("[WORKER ERROR] channel=%s", self.processor.channel.value)
            return 1
        finally:
            self._close()
        log.info("[WORKER STOP] channel=%s", self.processor.channel.value)
        return 0

    def poll_once(self) -> list[dict[str, Any]]:
        batches = self.consumer.poll(timeout_ms=self.poll_timeout_ms, max_records=self.max_records)
        results: list[dict[str, Any]] = []
        for _topic_partition, records in (batches or {}).items():
            results.extend(self._handle_partition(records))
        return results

    def _handle_partition(self, records: list[Any]) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        nacked = False

        def ack(record: Mapping[str, Any]) -> None:
            self._commit(record)

        def nack(record: Mapping[str, Any], reason: str) -> None:
            nonlocal nacked
            if reason.startswith(PARSE_FAILED_PREFIX) and self._publish_to_dlq(record, reason):
                self._commit(record)
                return
            self._seek_back(record, reason)
            self.backoff_pending = True
            nacked = True

        for message in records:
            internal_record = {
                "topic": message.topic,
                "partition": int(message.partition),
                "offset": int(message.offset),
                "value": message.value,
            }
            result = handle_record(internal_record, processor=self.processor, ack=ack, nack=nack)
            log.info(
                "[RESULT] topic=%s partition=%s offset=%s status=%s should_ack=%s error=%s",
                internal_record["topic"],
                internal_record["partition"],
                internal_record["offset"],
                result["status"],
                result["should_ack"],
                result["error"],
            )
            results.append(result)
            if nacked:
                # Later records of this partition are refetched after the seek.
                break
        return results

    def _commit(self, record: Mapping[str, Any]) -> None:
        partition = self.topic_partition_type(record["topic"], record["partition"])
        offsets = {partition: _offset_and_metadata(self.offset_and_metadata_type, record["offset"] + 1)}
        self.consumer.commit(offsets=offsets)
        log.debug(
            "[COMMIT] topic=%s partition=%s offset=%s",
            record["topic"],
            record["partition"],
            record["offset"],
        )

    def _seek_back(self, record: Mapping[str, Any], reason: str) -> None:
        partition = self.topic_partition_type(record["topic"], record["partition"])
        self.consumer.seek(partition, record["offset"])
        log.warning(
            "[NACK] topic=%s partition=%s offset=%s reason=%s",
            record["topic"],
            record["partition"],
            record["offset"],
            reason,
        )

    def _publish_to_dlq(self, record: Mapping[str, Any], reason: str) -> bool:
        if self.dlq_producer is None or not self.dlq_topic:
            return False

        dlq_payload = _build_dlq_payload(
            source_topic=record["topic"],
            source_partition=record["partition"],
            source_offset=record["offset"],
            source_payload=record.get("value"),
            failure_reason=reason,
        )
        try:
            future = self.dlq_producer.send(self.dlq_topic, value=dlq_payload)
            metadata = future.get(timeout=self.dlq_send_timeout_seconds)
        except Exception as exc:
            log.error(
                "[DLQ ERROR] source_topic=%s source_partition=%s source_offset=%s reason=%s error=%s",
                record["topic"],
                record["partition"],
                record["offset"],
                reason,
                exc,
            )
            return False

        log.warning(
            "[DLQ] source_topic=%s source_partition=%s source_offset=%s dlq_topic=%s dlq_offset=%s reason=%s",
            record["topic"],
            record["partition"],
            record["offset"],
            metadata.topic,
            metadata.offset,
            reason,
        )
        return True

    def _close(self) -> None:
        try:
            self.consumer.close()
        except Exception as exc:
            log.warning("[WORKER] consumer close failed: %s", exc)
        if self.dlq_producer is not None:
            try:
                self.dlq_producer.flush(timeout=self.dlq_send_timeout_seconds)
                self.dlq_producer.close()
            except Exception as exc:
                log.warning("[WORKER] dlq producer close failed: %s", exc)


def build_channel_worker(channel: Channel, settings: Settings, processor: DeliveryProcessor) -> ChannelWorker:
    """Create one KafkaConsumer-backed worker in the channel's consumer group."""
    KafkaConsumer, KafkaProducer, TopicPartition, OffsetAndMetadata = _import_kafka_python()
    consumer = KafkaConsumer(
        settings.topic_for(channel),
        bootstrap_servers=list(settings.kafka_bootstrap_servers),
        group_id=settings.group_id_for(channel),
        enable_auto_commit=False,
        auto_offset_reset="earliest",
    )
    dlq_producer = (
        KafkaProducer(
            bootstrap_servers=list(settings.kafka_bootstrap_servers),
            value_serializer=serialize_json_object,
            acks=_producer_acks(settings.producer_acks),
        )
        if settings.dlq_enabled
        else None
    )
    return ChannelWorker(
        consumer,
        processor=processor,
        topic_partition_type=TopicPartition,
        offset_and_metadata_type=OffsetAndMetadata,
        poll_timeout_ms=settings.poll_timeout_ms,
        max_records=settings.max_records_per_poll,
        dlq_producer=dlq_producer,
        dlq_topic=settings.dlq_topic_for(channel),
        dlq_send_timeout_seconds=settings.send_timeout_seconds,
        retry_backoff_seconds=settings.retry_backoff_seconds,
    )


def run_channel_workers(
    channel: Channel,
    settings: Settings,
    processor: DeliveryProcessor,
    *,
    stop_event: threading.Event | None = None,
) -> int:
    """Run `settings.workers[channel]` competing consumers until stopped.

    Returns 1 if any worker stopped on an error, 0 otherwise.
    """
    stop_event = stop_event or threading.Event()
    count = settings.workers[channel]
    threads = []
    exit_codes: list[int] = []
    for index in range(count):
        worker = build_channel_worker(channel, settings, processor)
        thread = threading.Thread(
            target=_run_worker,
            args=(worker, stop_event, exit_codes),
            name=f"{channel.value.lower()}-worker-{index + 1}",
            daemon=True,
        )
        thread.start()
        threads.append(thread)

    log.info(
        "[WORKERS START] channel=%s topic=%s group_id=%s workers=%s",
        channel.value,
        settings.topic_for(channel),
        settings.group_id_for(channel),
        count,
    )
    try:
        while any(thread.is_alive() for thread in threads):
            for thread in threads:
                thread.join(timeout=1.0)
    except KeyboardInterrupt:
        log.info("[WORKERS STOP] received keyboard interrupt")
    finally:
        stop_event.set()
        for thread in threads:
            thread.join()

    failed = sum(1 for code in exit_codes if code != 0)
    if failed:
        log.error("[WORKERS STOP] channel=%s failed_workers=%s of %s", channel.value, failed, count)
        return 1
    return 0


def _run_worker(worker: ChannelWorker, stop_event: threading.Event, exit_codes: list[int]) -> None:
    exit_codes.append(worker.run(stop_event))


def _import_kafka_python() -> tuple[Any, Any, Any, Any]:
    try:
        from kafka import KafkaConsumer, KafkaProducer, TopicPartition
        from kafka.structs import OffsetAndMetadata
    except Exception as exc:
        raise RuntimeError(
            "Kafka support requires `kafka-python`. Install with: pip install kafka-python"
        ) from exc
    return KafkaConsumer, KafkaProducer, TopicPartition, OffsetAndMetadata


def _serialize_key(key: str | None) -> bytes | None:
    return key.encode("utf-8") if key is not None else None


def _producer_acks(value: str) -> int | str:
    text = str(value).strip()
    return int(text) if text.lstrip("-").isdigit() else text


def _build_dlq_payload(
    *,
    source_topic: str,
    source_partition: int,
    source_offset: int,
    source_payload: Any,
    failure_reason: str,
) -> dict[str, Any]:
    payload = {
        "event_type": f"{source_topic}.dlq",
        "failed_at": datetime.now(tz=UTC).isoformat(),
        "failure_reason": failure_reason,
        "source": {
            "topic": source_topic,
            "partition": source_partition,
            "offset": source_offset,
        },
        "payload": _to_json_compatible(source_payload),
    }

    if isinstance(source_payload, Mapping):
        uuid = source_payload.get("uuid")
        if isinstance(uuid, str) and uuid.strip():
            payload["source_uuid"] = uuid.strip()

    return payload


def _to_json_compatible(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _to_json_compatible(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_json_compatible(item) for item in value]
    return repr(value)


def _offset_and_metadata(offset_and_metadata_type: Any, offset: int) -> Any:
    """Build kafka-python OffsetAndMetadata across version signatures."""
    try:
        return offset_and_metadata_type(offset, "", -1)
    except TypeError:
        try:
            return offset_and_metadata_type(offset, "", None)
        except TypeError:
            return offset_and_metadata_type(offset, "")
