#!/usr/bin/env python3
"""Encrypt provider secrets into the stored `{"encrypted": ...}` shape.

Reads ENCRYPTION_KEY from the environment (or `.env`) and prints the JSON
to store in Provider.secure_config.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

# Allow running this file directly from repository root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from delivery.config import load_env_file  # noqa: E402
from delivery.domain.secure_config import decrypt_secure_config, encrypt_secure_config  # noqa: E402


def main() -> int:
    load_env_file(REPO_ROOT / ".env")
    args = parse_args()
    key = os.getenv("ENCRYPTION_KEY", "").encode("utf-8")

    if args.decrypt:
        envelope = json.loads(args.value)
        print(json.dumps(decrypt_secure_config(envelope, key)))
        return 0

    secrets = json.loads(args.value)
    if not isinstance(secrets, dict):
        raise SystemExit("secrets must be a JSON object, e.g. '{\"authToken\": \"...\"}'")
    print(json.dumps(encrypt_secure_config(secrets, key)))
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Encrypt or decrypt a provider secure config.")
    parser.add_argument("value", help="Secrets JSON object (or stored envelope JSON with --decrypt).")
    parser.add_argument("--decrypt", action="store_true", help="Decrypt a stored envelope instead.")
    return parser.parse_args()


if __name__ == "__main__":
    sys.exit(main())
