"""Logging setup and secret-masking helpers."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(threadName)s %(message)s"
REDACTED = "[REDACTED]"


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # kafka-python is chatty at INFO.
    logging.getLogger("kafka").setLevel(logging.WARNING)


def mask_secret(value: str | None) -> str:
    """Keep only the first/last 4 chars of secrets longer than 8 chars."""
    if not value:
        return ""
    if len(value) > 8:
        return f"{value[:4]}****{value[-4:]}"
    return "****"


def redact(text: str, *secrets: str | None) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text
