from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict

from band_bridge.schemas.caregiver import CaregiverContact, CaregiverDetails
from band_bridge.schemas.telemetry import TelemetryRecord


def iso_timestamp(now: Optional[datetime] = None) -> str:
    """UTC ISO-8601 with milliseconds and a Z suffix, e.g. 2024-05-01T12:00:00.000Z"""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AlertPayload(BaseModel):
    """
    Webhook body: the triggering frame's fields (bpm, steps, lat, lon, fall and
    any extra keys the band sent) plus the caregiver block and a timestamp.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    caregiver: CaregiverDetails
    timestamp: str

    @classmethod
    def build(
        cls,
        record: TelemetryRecord,
        contact: CaregiverContact,
        now: Optional[datetime] = None,
    ) -> "AlertPayload":
        # caregiver/timestamp win over same-named keys from the band
        return cls.model_validate(
            {
                **record.wire_fields(),
                "caregiver": CaregiverDetails.from_contact(contact),
                "timestamp": iso_timestamp(now),
            }
        )


class DispatchOutcome(BaseModel):
    delivered: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
