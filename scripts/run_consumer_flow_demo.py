#!/usr/bin/env python3
"""Run the producer -> consumer flow without Kafka.

Uses an in-memory SQLite store, CONSOLE providers and a list standing in for
the topic, so every step (accept, publish, decode, deliver, ack/nack) runs
locally and prints what it did.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Mapping

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from delivery.adapters.consumer_handler import handle_batch  # noqa: E402
from delivery.adapters.payload import parse_channel_message, serialize_json_object  # noqa: E402
from delivery.adapters.providers.factory import ProviderFactory  # noqa: E402
from delivery.adapters.store import MessageStore, ProviderRecord, TemplateRecord  # noqa: E402
from delivery.application.consumer import DeliveryProcessor  # noqa: E402
from delivery.application.producer import Producer  # noqa: E402
from delivery.domain import CHANNEL_RULES, Channel  # noqa: E402
from delivery.domain.models import STATUS_ACTIVE  # noqa: E402
from delivery.logs import setup_logging  # noqa: E402

DEMO_KEY = b"demo-key-demo-key-demo-key-32byt"
TOPIC = "delivery-whatsapp"
TENANT = "tenant-demo"


class ListPublisher:
    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    def publish(self, topic: str, key: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        record = {
            "topic": topic,
            "partition": 0,
            "offset": len(self.records),
            "key": key,
            "value": serialize_json_object(payload),
        }
        self.records.append(record)
        return {"topic": topic, "partition": 0, "offset": record["offset"]}


def main() -> int:
    setup_logging("WARNING")
    store = build_store()
    publisher = ListPublisher()
    producer = Producer(Channel.WHATSAPP, store, publisher, TOPIC)

    for payload in sample_requests():
        result = producer.produce(parse_channel_message(Channel.WHATSAPP, payload))
        print(f"[ACCEPTED] refno={result['refno']} uuid={result['uuid']}")

    # A record nobody can decode, to show the nack path.
    publisher.records.append({"topic": TOPIC, "partition": 0, "offset": len(publisher.records), "value": b"{oops"})

    acked: list[int] = []
    nacked: list[tuple[int, str]] = []

    def ack(record: Mapping[str, Any]) -> None:
        acked.append(int(record["offset"]))
        print(f"[ACK] partition={record['partition']} offset={record['offset']}")

    def nack(record: Mapping[str, Any], reason: str) -> None:
        nacked.append((int(record["offset"]), reason))
        print(f"[NACK] partition={record['partition']} offset={record['offset']} reason={reason}")

    factory = ProviderFactory(DEMO_KEY)
    processor = DeliveryProcessor(CHANNEL_RULES[Channel.WHATSAPP], store, factory)
    results = handle_batch(publisher.records, processor=processor, ack=ack, nack=nack)

    print("")
    print("[BATCH SUMMARY]")
    for result in results:
        meta = result["record_meta"]
        print(f"offset={meta['offset']} status={result['status']} uuid={result['uuid']} error={result['error']}")
        if result["uuid"]:
            message = store.get_message(result["uuid"])
            print(f"  message.status={message.status}")
            for event in store.list_events(result["uuid"]):
                metadata = json.dumps(event.event_metadata) if event.event_metadata else ""
                print(f"  event {event.status:<8} {event.reason} {metadata}")

    print("")
    print("[OFFSETS]")
    print(f"acked={acked}")
    print(f"nacked={nacked}")
    return 0


def build_store() -> MessageStore:
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    store = MessageStore(engine)
    store.create_schema()
    store.save_template(
        TemplateRecord(
            code="welcome",
            name="Welcome",
            content="Hi {{name}}, your booking {{booking}} is confirmed.",
            status=STATUS_ACTIVE,
            channel=Channel.WHATSAPP.value,
            template_ids={"console": "HXdemo"},
            tenant=TENANT,
        )
    )
    store.save_provider(
        ProviderRecord(
            code="console",
            provider="CONSOLE",
            name="Console",
            status=STATUS_ACTIVE,
            channel=Channel.WHATSAPP.value,
            tenant=TENANT,
        )
    )
    return store


def sample_requests() -> list[dict[str, Any]]:
    return [
        {
            "template": "welcome",
            "provider": "console",
            "refno": "demo-1",
            "tenantId": TENANT,
            "params": {"name": "Ada", "booking": "B-100"},
            "to": [{"telephone": "+15555550123"}, {"telephone": "+15555550124"}],
        },
        {
            "template": "missing-template",
            "provider": "console",
            "refno": "demo-2",
            "tenantId": TENANT,
            "params": {},
            "to": [{"telephone": "+15555550125"}],
        },
    ]


if __name__ == "__main__":
    sys.exit(main())
