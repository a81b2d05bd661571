"""
Telemetry frame decoding.

The band notifies one UTF-8 JSON object per frame, e.g.
    {"bpm": 72, "steps": 100, "lat": 12.97, "lon": 77.59, "fall": false}
Every key is optional. Values are not range-checked; only text that is not
UTF-8, not JSON, or not a JSON object is rejected.
"""

from __future__ import annotations

import json
import time
from typing import Optional

from pydantic import ValidationError

from band_bridge.errors import DecodeError
from band_bridge.schemas.telemetry import TelemetryRecord


def decode(raw: bytes, received_at: Optional[float] = None) -> TelemetryRecord:
    """
    Decode one notification payload into a TelemetryRecord.
    Raises DecodeError for anything that is not a UTF-8 JSON object.
    """
    if not isinstance(raw, (bytes, bytearray, memoryview)):
        raise DecodeError(f"frame is not a byte sequence: {type(raw).__name__}")
    raw = bytes(raw)

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"frame is not UTF-8: {exc}", raw=raw) from exc

    try:
        data = json.loads(text)
    except (ValueError, RecursionError) as exc:
        raise DecodeError(f"invalid JSON received: {text!r}", raw=raw) from exc

    if not isinstance(data, dict):
        raise DecodeError(f"frame is not a JSON object: {text!r}", raw=raw)

    fields = dict(data)
    # only a literal JSON true counts as a fall
    fields["fall"] = data.get("fall") is True
    fields["received_at"] = time.time() if received_at is None else received_at
    try:
        return TelemetryRecord.model_validate(fields)
    except ValidationError as exc:
        raise DecodeError(f"unusable frame fields: {exc}", raw=raw) from exc
