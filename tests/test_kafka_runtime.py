from __future__ import annotations

from collections import namedtuple
import json
import threading
import unittest
from typing import Any
from unittest import mock

from delivery.adapters import kafka_runtime
from delivery.config import Settings
from delivery.domain.models import Channel
from delivery.errors import InfrastructureError

TopicPartition = namedtuple("TopicPartition", ["topic", "partition"])
OffsetAndMetadata = namedtuple("OffsetAndMetadata", ["offset", "metadata", "leader_epoch"])
ConsumerRecord = namedtuple("ConsumerRecord", ["topic", "partition", "offset", "value"])
RecordMetadata = namedtuple("RecordMetadata", ["topic", "partition", "offset"])

KEY = b"0123456789abcdef0123456789abcdef"


def envelope_bytes(uuid: str) -> bytes:
    return json.dumps(
        {
            "uuid": uuid,
            "message": {
                "template": "otp",
                "provider": "twilio-main",
                "refno": "REF",
                "tenantId": "tenant-a",
                "to": [{"telephone": "+15555550123"}],
            },
        }
    ).encode("utf-8")


class FakeConsumer:
    def __init__(self, batches: list[dict[Any, list[ConsumerRecord]]]) -> None:
        self.batches = list(batches)
        self.commits: list[dict[Any, Any]] = []
        self.seeks: list[tuple[Any, int]] = []
        self.closed = False

    def poll(self, timeout_ms: int, max_records: int) -> dict[Any, list[ConsumerRecord]]:
        return self.batches.pop(0) if self.batches else {}

    def commit(self, offsets: dict[Any, Any]) -> None:
        self.commits.append(offsets)

    def seek(self, partition: Any, offset: int) -> None:
        self.seeks.append((partition, offset))

    def close(self) -> None:
        self.closed = True


def make_processor(side_effect: Any = None) -> mock.Mock:
    processor = mock.Mock()
    processor.channel = Channel.SMS
    processor.process.return_value = {"status": "SENT"}
    if side_effect is not None:
        processor.process.side_effect = side_effect
    return processor


def make_worker(consumer: FakeConsumer, processor: Any, **kwargs: Any) -> kafka_runtime.ChannelWorker:
    return kafka_runtime.ChannelWorker(
        consumer,
        processor=processor,
        topic_partition_type=TopicPartition,
        offset_and_metadata_type=OffsetAndMetadata,
        **kwargs,
    )


class ChannelWorkerTests(unittest.TestCase):
    def test_ack_commits_next_offset(self) -> None:
        partition = TopicPartition("delivery-sms", 0)
        consumer = FakeConsumer([{partition: [ConsumerRecord("delivery-sms", 0, 41, envelope_bytes("u-1"))]}])
        worker = make_worker(consumer, make_processor())

        results = worker.poll_once()

        self.assertEqual([item["status"] for item in results], ["processed_and_acked"])
        self.assertEqual(consumer.commits, [{partition: OffsetAndMetadata(42, "", -1)}])
        self.assertEqual(consumer.seeks, [])

    def test_nack_seeks_back_and_stops_partition_batch(self) -> None:
        partition = TopicPartition("delivery-sms", 0)
        records = [
            ConsumerRecord("delivery-sms", 0, 5, envelope_bytes("u-1")),
            ConsumerRecord("delivery-sms", 0, 6, envelope_bytes("u-2")),
        ]
        consumer = FakeConsumer([{partition: records}])
        processor = make_processor(side_effect=InfrastructureError("db down"))
        worker = make_worker(consumer, processor)

        results = worker.poll_once()

        self.assertEqual(len(results), 1)
        self.assertEqual(consumer.seeks, [(partition, 5)])
        self.assertEqual(consumer.commits, [])
        self.assertEqual(processor.process.call_count, 1)

    def test_other_partitions_continue_after_nack(self) -> None:
        first = TopicPartition("delivery-sms", 0)
        second = TopicPartition("delivery-sms", 1)
        consumer = FakeConsumer(
            [
                {
                    first: [ConsumerRecord("delivery-sms", 0, 1, b"garbage")],
                    second: [ConsumerRecord("delivery-sms", 1, 9, envelope_bytes("u-2"))],
                }
            ]
        )
        worker = make_worker(consumer, make_processor())

        worker.poll_once()

        self.assertEqual(consumer.seeks, [(first, 1)])
        self.assertEqual(consumer.commits, [{second: OffsetAndMetadata(10, "", -1)}])

    def test_undecodable_payload_goes_to_dlq_when_enabled(self) -> None:
        partition = TopicPartition("delivery-sms", 0)
        consumer = FakeConsumer([{partition: [ConsumerRecord("delivery-sms", 0, 3, b"garbage")]}])
        dlq_producer = mock.Mock()
        dlq_producer.send.return_value.get.return_value = RecordMetadata("delivery-sms.dlq", 0, 0)
        worker = make_worker(consumer, make_processor(), dlq_producer=dlq_producer, dlq_topic="delivery-sms.dlq")

        worker.poll_once()

        self.assertEqual(consumer.commits, [{partition: OffsetAndMetadata(4, "", -1)}])
        self.assertEqual(consumer.seeks, [])
        topic = dlq_producer.send.call_args.args[0]
        payload = dlq_producer.send.call_args.kwargs["value"]
        self.assertEqual(topic, "delivery-sms.dlq")
        self.assertEqual(payload["source"], {"topic": "delivery-sms", "partition": 0, "offset": 3})
        self.assertEqual(payload["payload"], "garbage")
        self.assertTrue(payload["failure_reason"].startswith("parse_failed"))

    def test_infrastructure_errors_never_go_to_dlq(self) -> None:
        partition = TopicPartition("delivery-sms", 0)
        consumer = FakeConsumer([{partition: [ConsumerRecord("delivery-sms", 0, 3, envelope_bytes("u-1"))]}])
        dlq_producer = mock.Mock()
        worker = make_worker(
            consumer,
            make_processor(side_effect=InfrastructureError("db down")),
            dlq_producer=dlq_producer,
            dlq_topic="delivery-sms.dlq",
        )

        worker.poll_once()

        dlq_producer.send.assert_not_called()
        self.assertEqual(consumer.seeks, [(partition, 3)])

    def test_dlq_publish_failure_falls_back_to_seek(self) -> None:
        partition = TopicPartition("delivery-sms", 0)
        consumer = FakeConsumer([{partition: [ConsumerRecord("delivery-sms", 0, 3, b"garbage")]}])
        dlq_producer = mock.Mock()
        dlq_producer.send.side_effect = RuntimeError("broker unreachable")
        worker = make_worker(consumer, make_processor(), dlq_producer=dlq_producer, dlq_topic="delivery-sms.dlq")

        worker.poll_once()

        self.assertEqual(consumer.commits, [])
        self.assertEqual(consumer.seeks, [(partition, 3)])

    def test_run_stops_on_event_and_closes_consumer(self) -> None:
        consumer = FakeConsumer([])
        stop_event = threading.Event()
        stop_event.set()

        exit_code = make_worker(consumer, make_processor()).run(stop_event)

        self.assertEqual(exit_code, 0)
        self.assertTrue(consumer.closed)

    def test_run_pauses_after_nack_before_next_poll(self) -> None:
        partition = TopicPartition("delivery-sms", 0)
        consumer = FakeConsumer([{partition: [ConsumerRecord("delivery-sms", 0, 5, envelope_bytes("u-1"))]}])
        processor = make_processor(side_effect=InfrastructureError("db down"))
        stop_event = mock.Mock()
        stop_event.is_set.side_effect = [False, True]

        exit_code = make_worker(consumer, processor, retry_backoff_seconds=0.25).run(stop_event)

        self.assertEqual(exit_code, 0)
        self.assertEqual(consumer.seeks, [(partition, 5)])
        stop_event.wait.assert_called_once_with(0.25)

    def test_run_does_not_pause_after_acked_poll(self) -> None:
        partition = TopicPartition("delivery-sms", 0)
        consumer = FakeConsumer([{partition: [ConsumerRecord("delivery-sms", 0, 5, envelope_bytes("u-1"))]}])
        stop_event = mock.Mock()
        stop_event.is_set.side_effect = [False, True]

        make_worker(consumer, make_processor(), retry_backoff_seconds=0.25).run(stop_event)

        self.assertEqual(len(consumer.commits), 1)
        stop_event.wait.assert_not_called()

    def test_run_returns_error_code_when_poll_fails(self) -> None:
        consumer = FakeConsumer([])
        consumer.poll = mock.Mock(side_effect=RuntimeError("broker gone"))

        with self.assertLogs("delivery.kafka", level="ERROR"):
            exit_code = make_worker(consumer, make_processor()).run(threading.Event())

        self.assertEqual(exit_code, 1)
        self.assertTrue(consumer.closed)


class RunChannelWorkersTests(unittest.TestCase):
    def settings(self, workers: int) -> Settings:
        return Settings(database_url="sqlite://", encryption_key=KEY, workers={channel: workers for channel in Channel})

    def test_returns_error_code_when_workers_fail(self) -> None:
        def failing_worker(channel: Any, settings: Any, processor: Any) -> kafka_runtime.ChannelWorker:
            consumer = FakeConsumer([])
            consumer.poll = mock.Mock(side_effect=RuntimeError("broker gone"))
            return make_worker(consumer, processor)

        with mock.patch.object(kafka_runtime, "build_channel_worker", side_effect=failing_worker):
            with self.assertLogs("delivery.kafka", level="ERROR"):
                exit_code = kafka_runtime.run_channel_workers(Channel.SMS, self.settings(2), make_processor())

        self.assertEqual(exit_code, 1)

    def test_returns_zero_on_clean_stop(self) -> None:
        consumers: list[FakeConsumer] = []

        def idle_worker(channel: Any, settings: Any, processor: Any) -> kafka_runtime.ChannelWorker:
            consumers.append(FakeConsumer([]))
            return make_worker(consumers[-1], processor)

        stop_event = threading.Event()
        stop_event.set()
        with mock.patch.object(kafka_runtime, "build_channel_worker", side_effect=idle_worker):
            exit_code = kafka_runtime.run_channel_workers(
                Channel.SMS, self.settings(3), make_processor(), stop_event=stop_event
            )

        self.assertEqual(exit_code, 0)
        self.assertEqual(len(consumers), 3)
        self.assertTrue(all(consumer.closed for consumer in consumers))


class KafkaPublisherTests(unittest.TestCase):
    def test_publish_waits_for_metadata(self) -> None:
        producer = mock.Mock()
        producer.send.return_value.get.return_value = RecordMetadata("delivery-sms", 2, 17)
        settings = Settings(database_url="sqlite://", encryption_key=KEY, send_timeout_seconds=4)
        publisher = kafka_runtime.KafkaPublisher(settings, producer=producer)

        metadata = publisher.publish("delivery-sms", "u-1", {"uuid": "u-1"})

        self.assertEqual(metadata, {"topic": "delivery-sms", "partition": 2, "offset": 17})
        producer.send.assert_called_once_with("delivery-sms", key="u-1", value={"uuid": "u-1"})
        producer.send.return_value.get.assert_called_once_with(timeout=4)

    def test_close_flushes_then_closes(self) -> None:
        producer = mock.Mock()
        settings = Settings(database_url="sqlite://", encryption_key=KEY)

        kafka_runtime.KafkaPublisher(settings, producer=producer).close()

        producer.flush.assert_called_once()
        producer.close.assert_called_once()


class KafkaRuntimeHelperTests(unittest.TestCase):
    def test_producer_acks_accepts_numbers_and_all(self) -> None:
        self.assertEqual(kafka_runtime._producer_acks("all"), "all")
        self.assertEqual(kafka_runtime._producer_acks("1"), 1)
        self.assertEqual(kafka_runtime._producer_acks("-1"), -1)

    def test_offset_and_metadata_prefers_three_arg_signature(self) -> None:
        calls: list[tuple[int, str, object | None]] = []

        def factory(offset: int, metadata: str, leader_epoch: object | None) -> tuple[int, str]:
            calls.append((offset, metadata, leader_epoch))
            return (offset, metadata)

        built = kafka_runtime._offset_and_metadata(factory, 99)
        self.assertEqual(built, (99, ""))
        self.assertEqual(calls, [(99, "", -1)])

    def test_offset_and_metadata_falls_back_to_two_arg_signature(self) -> None:
        calls: list[tuple[int, str]] = []

        def factory(offset: int, metadata: str) -> tuple[int, str]:
            calls.append((offset, metadata))
            return (offset, metadata)

        built = kafka_runtime._offset_and_metadata(factory, 42)
        self.assertEqual(built, (42, ""))
        self.assertEqual(calls, [(42, "")])

    def test_build_dlq_payload_carries_source_uuid(self) -> None:
        payload = kafka_runtime._build_dlq_payload(
            source_topic="delivery-email",
            source_partition=1,
            source_offset=8,
            source_payload={"uuid": " u-9 ", "message": "bad"},
            failure_reason="parse_failed: boom",
        )

        self.assertEqual(payload["event_type"], "delivery-email.dlq")
        self.assertEqual(payload["source_uuid"], "u-9")
        self.assertEqual(payload["failure_reason"], "parse_failed: boom")

    def test_to_json_compatible_converts_non_json_types(self) -> None:
        value = {
            "raw_bytes": b"abc",
            "nested": {"items": [1, b"\xff", {"ok": True}]},
            "set_value": {"a", "b"},
            "object": object(),
        }

        converted = kafka_runtime._to_json_compatible(value)

        self.assertEqual(converted["raw_bytes"], "abc")
        self.assertEqual(converted["nested"]["items"][1], "\ufffd")
        self.assertIsInstance(converted["set_value"], list)
        self.assertIsInstance(converted["object"], str)

    def test_import_kafka_python_reports_missing_dependency(self) -> None:
        with mock.patch.dict("sys.modules", {"kafka": None}):
            with self.assertRaises(RuntimeError) as exc:
                kafka_runtime._import_kafka_python()
        self.assertIn("kafka-python", str(exc.exception))


if __name__ == "__main__":
    unittest.main()
