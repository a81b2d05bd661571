"""
Telemetry session: the one owner of connection state, the latest frame, the
dashboard projection and the fall countdown.

Transport events arrive on a single asyncio.Queue and are handled one at a
time in arrival order by run(). UI actions (toggle, cancel, save) are plain
method calls on the same event loop.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable, Optional

from band_bridge.core import frame_decoder
from band_bridge.core.alert_dispatcher import AlertDispatcher
from band_bridge.core.contact_store import ContactStore
from band_bridge.core.display import DisplayBus, DisplayState
from band_bridge.core.escalation_timer import (
    DEFAULT_COUNTDOWN_TICKS,
    CountdownRunner,
    EscalationTimer,
)
from band_bridge.core.transport import (
    DataReceived,
    LinkLost,
    Subscription,
    TransportAdapter,
    TransportEvent,
)
from band_bridge.errors import DecodeError, LinkError
from band_bridge.schemas.caregiver import CaregiverContact
from band_bridge.schemas.telemetry import TelemetryRecord

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def _short_reason(error: Exception) -> str:
    """First sentence of the error message, for the status line."""
    message = str(error) or error.__class__.__name__
    return message.split(".")[0]


class TelemetrySession:
    def __init__(
        self,
        transport: TransportAdapter,
        dispatcher: AlertDispatcher,
        store: ContactStore,
        device_name: str,
        service_id: str,
        characteristic_id: str,
        countdown_ticks: int = DEFAULT_COUNTDOWN_TICKS,
        save_status_clear_seconds: float = 2.0,
        display_bus: Optional[DisplayBus] = None,
        countdown_sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.dispatcher = dispatcher
        self.store = store
        self.device_name = device_name
        self.service_id = service_id
        self.characteristic_id = characteristic_id
        self.save_status_clear_seconds = save_status_clear_seconds
        self.display_bus = display_bus or DisplayBus()

        self.state = ConnectionState.DISCONNECTED
        self.display = DisplayState()
        self.latest_record: Optional[TelemetryRecord] = None
        self.events: asyncio.Queue[TransportEvent] = asyncio.Queue()
        self.subscription: Optional[Subscription] = None
        self.last_error: Optional[str] = None
        # links reported lost before discover_and_connect returned them
        self._lost_while_connecting: set[int] = set()

        self.countdown = CountdownRunner(
            EscalationTimer(countdown_ticks),
            dispatch=self.dispatcher.dispatch,
            on_tick=self._on_countdown_tick,
            sleep=countdown_sleep,
        )
        self._save_clear_task: Optional[asyncio.Task] = None

    # ── display ──

    def _publish(self, display: DisplayState) -> None:
        self.display = display
        self.display_bus.publish(display)

    def _set_status(self, message: str, connected: bool) -> None:
        self._publish(self.display.with_status(message, connected))

    def _on_countdown_tick(self, remaining: Optional[int]) -> None:
        self._publish(self.display.with_countdown(remaining))

    def snapshot(self) -> dict:
        return {"connection_state": self.state.value, **self.display.model_dump()}

    # ── connection lifecycle ──

    async def request_toggle(self) -> ConnectionState:
        """Disconnect when connected, connect when disconnected."""
        if self.state is ConnectionState.CONNECTED:
            await self._disconnect()
        elif self.state is ConnectionState.DISCONNECTED:
            await self._connect()
        else:
            logger.info("Toggle ignored while connecting")
        return self.state

    async def _connect(self) -> None:
        self.state = ConnectionState.CONNECTING
        self.last_error = None
        self.subscription = None
        self._lost_while_connecting.clear()
        self._set_status("Connecting...", False)
        try:
            subscription = await self.transport.discover_and_connect(
                self.device_name, self.service_id, self.characteristic_id, self.events
            )
        except LinkError as e:
            logger.error("Connection failed: %s", e)
            self.state = ConnectionState.DISCONNECTED
            self.last_error = str(e)
            self._set_status(f"Error: {_short_reason(e)}", False)
            return
        if subscription.link_id in self._lost_while_connecting:
            self._lost_while_connecting.clear()
            self._on_link_lost()
            return
        self._lost_while_connecting.clear()
        self.subscription = subscription
        self.state = ConnectionState.CONNECTED
        self._set_status("Connected", True)

    async def _disconnect(self) -> None:
        # optimistic: the adapter's LinkLost still arrives and is honoured
        self.state = ConnectionState.DISCONNECTED
        self._set_status("Disconnected", False)
        try:
            await self.transport.disconnect()
        except LinkError as e:
            logger.warning("Disconnect reported an error: %s", e)

    # ── transport events ──

    async def handle_event(self, event: TransportEvent) -> None:
        current = self.subscription.link_id if self.subscription else None
        if event.link_id != current:
            if isinstance(event, LinkLost) and self.state is ConnectionState.CONNECTING:
                self._lost_while_connecting.add(event.link_id)
                return
            logger.debug("Ignoring %s from stale link %s", type(event).__name__, event.link_id)
            return
        if isinstance(event, LinkLost):
            self._on_link_lost()
        elif isinstance(event, DataReceived):
            self.handle_frame(event.data)

    def _on_link_lost(self) -> None:
        logger.warning("Device disconnected.")
        self.subscription = None
        self.state = ConnectionState.DISCONNECTED
        self.latest_record = None
        # the countdown is about the wearer, not the link: it keeps running
        self._publish(self.display.with_status("Disconnected", False).with_metrics_reset())

    def handle_frame(self, data: bytes) -> Optional[TelemetryRecord]:
        if self.state is not ConnectionState.CONNECTED:
            return None
        try:
            record = frame_decoder.decode(data)
        except DecodeError as e:
            logger.warning("Dropped frame: %s", e)
            return None
        self.latest_record = record
        self._publish(self.display.with_record(record))
        if record.fall_detected:
            self.countdown.start(record)
        return record

    async def run(self) -> None:
        """Consume transport events until cancelled."""
        while True:
            event = await self.events.get()
            try:
                await self.handle_event(event)
            finally:
                self.events.task_done()

    # ── fall alert ──

    def cancel_alert(self) -> bool:
        return self.countdown.cancel()

    # ── caregiver ──

    def load_caregiver(self) -> CaregiverContact:
        return self.store.get()

    def save_caregiver(self, contact: CaregiverContact) -> CaregiverContact:
        self.store.put(contact)
        self._publish(self.display.model_copy(update={"save_status": "Saved!"}))
        if self._save_clear_task is not None:
            self._save_clear_task.cancel()
        self._save_clear_task = asyncio.get_running_loop().create_task(self._clear_save_status())
        return contact

    async def _clear_save_status(self) -> None:
        await asyncio.sleep(self.save_status_clear_seconds)
        self._publish(self.display.model_copy(update={"save_status": ""}))

    # ── shutdown ──

    async def close(self) -> None:
        if self._save_clear_task is not None:
            self._save_clear_task.cancel()
        await self.countdown.close()
        if self.state is not ConnectionState.DISCONNECTED:
            await self._disconnect()
