"""
Display projection for the dashboard.

DisplayState is what a UI needs to render the band page: status line, the
latest readings (placeholder "--"), map link, fall popup countdown and the
caregiver save confirmation. DisplayBus pushes a fresh snapshot to every
subscriber whenever the session changes it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from pydantic import BaseModel

from band_bridge.schemas.telemetry import TelemetryRecord

logger = logging.getLogger(__name__)

PLACEHOLDER = "--"
MAPS_URL = "https://www.google.com/maps?q={lat},{lon}"


def _shown(value: Any) -> str:
    if value is None:
        return PLACEHOLDER
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class DisplayState(BaseModel):
    status_text: str = "Status: Disconnected"
    connected: bool = False
    button_label: str = "Connect to Band"
    bpm: str = PLACEHOLDER
    steps: str = PLACEHOLDER
    lat: str = PLACEHOLDER
    lon: str = PLACEHOLDER
    map_url: Optional[str] = None
    map_visible: bool = False
    popup_visible: bool = False
    countdown: Optional[int] = None
    save_status: str = ""

    def with_status(self, message: str, connected: bool) -> "DisplayState":
        return self.model_copy(
            update={
                "status_text": f"Status: {message}",
                "connected": connected,
                "button_label": "Disconnect" if connected else "Connect to Band",
            }
        )

    def with_record(self, record: TelemetryRecord) -> "DisplayState":
        update: dict[str, Any] = {
            "bpm": _shown(record.heart_rate),
            "steps": _shown(record.step_count),
            "lat": _shown(record.latitude),
            "lon": _shown(record.longitude),
        }
        # the link keeps the last known fix until the metrics are reset
        if record.latitude is not None and record.longitude is not None:
            update["map_url"] = MAPS_URL.format(lat=record.latitude, lon=record.longitude)
            update["map_visible"] = True
        return self.model_copy(update=update)

    def with_metrics_reset(self) -> "DisplayState":
        return self.model_copy(
            update={
                "bpm": PLACEHOLDER,
                "steps": PLACEHOLDER,
                "lat": PLACEHOLDER,
                "lon": PLACEHOLDER,
                "map_visible": False,
            }
        )

    def with_countdown(self, remaining: Optional[int]) -> "DisplayState":
        return self.model_copy(update={"countdown": remaining, "popup_visible": remaining is not None})


class DisplayBus:
    """Fan-out of DisplayState snapshots. Slow subscribers only see the newest one."""

    def __init__(self, maxsize: int = 16) -> None:
        self.maxsize = maxsize
        self._subscribers: set[asyncio.Queue[DisplayState]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[DisplayState]:
        queue: asyncio.Queue[DisplayState] = asyncio.Queue(maxsize=self.maxsize)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[DisplayState]) -> None:
        self._subscribers.discard(queue)

    def publish(self, state: DisplayState) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(state)
            except asyncio.QueueFull:
                # drop the oldest snapshot; only the latest matters
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
                queue.put_nowait(state)
