#!/usr/bin/env python3
"""Run the Kafka delivery workers for one channel.

Starts DELIVERY_WORKERS_<CHANNEL> competing consumers in the channel's
consumer group. Each one decodes envelopes, delivers through the configured
provider and commits only after the message reached a terminal outcome.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from delivery.adapters.kafka_runtime import run_channel_workers  # noqa: E402
from delivery.adapters.providers.factory import ProviderFactory  # noqa: E402
from delivery.adapters.store import MessageStore  # noqa: E402
from delivery.application.consumer import DeliveryProcessor  # noqa: E402
from delivery.config import Settings, load_env_file  # noqa: E402
from delivery.domain import CHANNEL_RULES, Channel  # noqa: E402
from delivery.logs import setup_logging  # noqa: E402

log = logging.getLogger("delivery.worker")


def main() -> int:
    args = parse_args()
    load_env_file(REPO_ROOT / ".env")
    settings = Settings.from_env()
    setup_logging(settings.log_level)

    channel = Channel(args.channel.upper())
    store = MessageStore.from_urls(settings.database_url, settings.replica_database_url)
    if args.create_schema:
        store.create_schema()
    factory = ProviderFactory(settings.encryption_key, timeout=settings.http_timeout_seconds)
    processor = DeliveryProcessor(CHANNEL_RULES[channel], store, factory)

    log.info("[WORKER BOOT] channel=%s workers=%s", channel.value, settings.workers[channel])
    return run_channel_workers(channel, settings, processor)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run Kafka delivery workers for one channel.")
    parser.add_argument(
        "channel",
        choices=[channel.value.lower() for channel in Channel],
        help="Channel whose topic to consume.",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing tables before starting (local development only).",
    )
    return parser.parse_args()


if __name__ == "__main__":
    sys.exit(main())
