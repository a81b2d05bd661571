"""
Shared fixtures: a scripted BLE transport, a fake webhook and a manual clock
for the fall countdown, so no test touches Bluetooth, the network or the
wall clock.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from band_bridge.core.alert_dispatcher import AlertDispatcher
from band_bridge.core.contact_store import ContactStore
from band_bridge.core.display import DisplayBus
from band_bridge.core.session import TelemetrySession
from band_bridge.core.transport import DataReceived, LinkLost, Subscription, TransportAdapter

WEBHOOK_URL = "https://hooks.example.test/fall"


class FakeTransport(TransportAdapter):
    """Records calls; pushes events onto the session queue on demand."""

    def __init__(self, fail=None):
        self.fail = fail
        self.connect_calls = []
        self.disconnect_calls = 0
        self.events = None
        self.link_id = 0
        self.gate = None  # set to an asyncio.Event to hold discovery open
        self.drop_on_connect = False  # link drops before discovery returns

    async def discover_and_connect(self, device_name, service_id, characteristic_id, events):
        self.connect_calls.append((device_name, service_id, characteristic_id))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        self.link_id += 1
        self.events = events
        if self.drop_on_connect:
            events.put_nowait(LinkLost(self.link_id))
            for _ in range(5):
                await asyncio.sleep(0)
        return Subscription(self.link_id, device_name, "AA:BB:CC:DD:EE:01", characteristic_id)

    async def disconnect(self):
        self.disconnect_calls += 1

    def data(self, payload: bytes) -> DataReceived:
        return DataReceived(self.link_id, payload)

    def link_lost(self) -> LinkLost:
        return LinkLost(self.link_id)


class ManualClock:
    """Replacement for asyncio.sleep that only returns when advanced."""

    def __init__(self):
        self._waiters = []

    async def sleep(self, _seconds):
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        await fut

    @staticmethod
    async def settle():
        for _ in range(10):
            await asyncio.sleep(0)

    async def advance(self, ticks=1):
        for _ in range(ticks):
            await self.settle()
            while self._waiters:
                fut = self._waiters.pop(0)
                if not fut.done():
                    fut.set_result(None)
                    break
            await self.settle()


def ok_response(status=200):
    response = MagicMock()
    response.status_code = status
    return response


@pytest.fixture
def store(tmp_path):
    return ContactStore(tmp_path / "caregiver.json")


@pytest.fixture
def post():
    return MagicMock(return_value=ok_response())


@pytest.fixture
def dispatcher(store, post):
    return AlertDispatcher(store, WEBHOOK_URL, timeout=5, post=post)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def display_bus():
    return DisplayBus(maxsize=256)


@pytest.fixture
def make_session(transport, dispatcher, store, clock, display_bus):
    def _make(**overrides):
        kwargs = dict(
            transport=transport,
            dispatcher=dispatcher,
            store=store,
            device_name="HealthBand",
            service_id="service-uuid",
            characteristic_id="char-uuid",
            countdown_ticks=7,
            save_status_clear_seconds=0,
            display_bus=display_bus,
            countdown_sleep=clock.sleep,
        )
        kwargs.update(overrides)
        return TelemetrySession(**kwargs)

    return _make


def drain(queue):
    """Everything currently waiting on a display subscription queue."""
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items
