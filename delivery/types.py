"""Shared type aliases for the delivery package."""

from __future__ import annotations

from typing import Any, Callable, Mapping

Payload = Mapping[str, Any]
PayloadDict = dict[str, Any]
Params = Mapping[str, str]
RecipientResult = dict[str, Any]
ProcessingResult = dict[str, Any]

Record = Mapping[str, Any]
AckFn = Callable[[Record], None]
NackFn = Callable[[Record, str], None]
