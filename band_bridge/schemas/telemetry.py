from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TelemetryRecord(BaseModel):
    """
    One decoded frame from the band.
    Sensor values are kept exactly as the band sent them, even when they fall
    outside the documented ranges, so the display can show them as-is.
    Unknown keys are kept as extras and travel with the alert payload.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    heart_rate: Any = Field(default=None, alias="bpm", description="beats/min, >= 0")
    step_count: Any = Field(default=None, alias="steps", description="steps, >= 0")
    latitude: Any = Field(default=None, alias="lat", description="degrees, [-90, 90]")
    longitude: Any = Field(default=None, alias="lon", description="degrees, [-180, 180]")
    fall_detected: bool = Field(default=False, alias="fall")
    received_at: float = Field(default_factory=time.time)  # epoch s, arrival time

    def wire_fields(self) -> dict[str, Any]:
        """Fields as the band sent them (wire keys), without the arrival time."""
        return self.model_dump(by_alias=True, exclude_unset=True, exclude={"received_at"})
