#!/usr/bin/env python3
"""Accept one channel message and publish it to Kafka for local testing.

Goes through the real Producer: the Message row is inserted first, then the
envelope is published on the channel topic.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from delivery.adapters.kafka_runtime import KafkaPublisher  # noqa: E402
from delivery.adapters.payload import parse_channel_message  # noqa: E402
from delivery.adapters.store import MessageStore  # noqa: E402
from delivery.application.producer import Producer  # noqa: E402
from delivery.config import Settings, load_env_file  # noqa: E402
from delivery.domain.models import Channel  # noqa: E402
from delivery.logs import setup_logging  # noqa: E402


def main() -> int:
    load_env_file(REPO_ROOT / ".env")
    args = parse_args()
    settings = Settings.from_env()
    setup_logging(settings.log_level)

    channel = Channel(args.channel.upper())
    message = parse_channel_message(channel, build_payload(channel, args))
    store = MessageStore.from_urls(settings.database_url, settings.replica_database_url)
    publisher = KafkaPublisher(settings)
    try:
        result = Producer(channel, store, publisher, settings.topic_for(channel)).produce(message)
    finally:
        publisher.close()

    print("[PUBLISHED]")
    print(f"channel={channel.value}")
    print(f"topic={settings.topic_for(channel)}")
    print(f"uuid={result['uuid']}")
    print(f"refno={result['refno']}")
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Publish one delivery request for Kafka testing.")
    parser.add_argument("channel", choices=[channel.value.lower() for channel in Channel])
    parser.add_argument(
        "--to",
        action="append",
        required=True,
        help="Recipient phone (E.164) or email address. Repeat for several recipients.",
    )
    parser.add_argument("--template", required=True, help="Template uuid or code.")
    parser.add_argument("--provider", required=True, help="Provider uuid or code.")
    parser.add_argument("--tenant", required=True, help="Tenant id owning the template.")
    parser.add_argument("--refno", default="local-test", help="Caller correlation id.")
    parser.add_argument("--subject", default="", help="Email subject (email only).")
    parser.add_argument(
        "--params",
        default="{}",
        help='Template params as a JSON object, e.g. \'{"name": "Ada"}\'.',
    )
    return parser.parse_args()


def build_payload(channel: Channel, args: argparse.Namespace) -> dict[str, object]:
    try:
        params = json.loads(args.params)
    except ValueError as exc:
        raise SystemExit(f"--params must be valid JSON: {exc}")
    if not isinstance(params, dict):
        raise SystemExit("--params must be a JSON object.")

    address_key = "email" if channel is Channel.EMAIL else "telephone"
    payload: dict[str, object] = {
        "template": args.template,
        "provider": args.provider,
        "refno": args.refno,
        "tenantId": args.tenant,
        "identifiers": {"tenant": args.tenant},
        "params": params,
        "to": [{address_key: address} for address in args.to],
    }
    if channel is Channel.EMAIL and args.subject:
        payload["subject"] = args.subject
    return payload


if __name__ == "__main__":
    sys.exit(main())
