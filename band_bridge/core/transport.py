"""
BLE transport for the health band.

The session never registers callbacks of its own: the adapter turns bleak's
notification and disconnect callbacks into DataReceived / LinkLost events
on the session's queue. Each connection gets a link id so events from an
earlier link can be told apart.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from band_bridge.errors import LinkError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataReceived:
    link_id: int
    data: bytes


@dataclass(frozen=True)
class LinkLost:
    link_id: int


TransportEvent = Union[DataReceived, LinkLost]


@dataclass(frozen=True)
class Subscription:
    link_id: int
    device_name: str
    address: str
    characteristic_id: str


class TransportAdapter(ABC):
    """One device, one notify characteristic."""

    @abstractmethod
    async def discover_and_connect(
        self,
        device_name: str,
        service_id: str,
        characteristic_id: str,
        events: asyncio.Queue[TransportEvent],
    ) -> Subscription:
        """Find, connect and subscribe. Raises LinkError on any failure."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Drop the link. A LinkLost event follows once the link is down."""


class BleakTransport(TransportAdapter):
    """TransportAdapter backed by bleak (BlueZ / CoreBluetooth / WinRT)."""

    _link_ids = itertools.count(1)

    def __init__(self, scan_timeout: float = 10.0) -> None:
        self.scan_timeout = scan_timeout
        self._client: Optional[BleakClient] = None
        self._characteristic_id: Optional[str] = None

    async def discover_and_connect(
        self,
        device_name: str,
        service_id: str,
        characteristic_id: str,
        events: asyncio.Queue[TransportEvent],
    ) -> Subscription:
        link_id = next(self._link_ids)
        logger.info("Requesting Bluetooth device %r (service %s)...", device_name, service_id)
        try:
            device = await BleakScanner.find_device_by_filter(
                lambda d, adv: (d.name or adv.local_name) == device_name,
                timeout=self.scan_timeout,
            )
        except (BleakError, OSError) as e:
            raise LinkError(f"Bluetooth scan failed: {e}") from e
        if device is None:
            raise LinkError(f"No device named {device_name!r} found. Is the band on and in range?")

        def on_disconnect(_: BleakClient) -> None:
            logger.warning("Device disconnected (link %d)", link_id)
            events.put_nowait(LinkLost(link_id))

        def on_notify(_, data: bytearray) -> None:
            events.put_nowait(DataReceived(link_id, bytes(data)))

        client = BleakClient(device, disconnected_callback=on_disconnect, services=[service_id])
        try:
            await client.connect()
            service = client.services.get_service(service_id)
            if service is None:
                raise LinkError(f"Service {service_id} not found on {device_name}.")
            if service.get_characteristic(characteristic_id) is None:
                raise LinkError(f"Characteristic {characteristic_id} not found on {device_name}.")
            await client.start_notify(characteristic_id, on_notify)
        except LinkError:
            await self._safe_disconnect(client)
            raise
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            await self._safe_disconnect(client)
            raise LinkError(f"Connection failed: {e}") from e

        self._client = client
        self._characteristic_id = characteristic_id
        logger.info("Connected to %s (%s), link %d", device_name, device.address, link_id)
        return Subscription(
            link_id=link_id,
            device_name=device_name,
            address=device.address,
            characteristic_id=characteristic_id,
        )

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None or not client.is_connected:
            return
        try:
            if self._characteristic_id:
                await client.stop_notify(self._characteristic_id)
        except (BleakError, OSError) as e:
            logger.debug("stop_notify failed during disconnect: %s", e)
        await self._safe_disconnect(client)

    @staticmethod
    async def _safe_disconnect(client: BleakClient) -> None:
        try:
            await client.disconnect()
        except (BleakError, OSError) as e:
            logger.warning("Disconnect failed: %s", e)
