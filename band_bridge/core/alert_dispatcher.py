"""
Fall alert delivery to the caregiver webhook.

One POST per escalation, no retry, no queue. Failures are logged and the
outcome is handed back for the caller to log or ignore.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import requests

from band_bridge.core.contact_store import ContactStore
from band_bridge.errors import DispatchError
from band_bridge.schemas.alert import AlertPayload, DispatchOutcome
from band_bridge.schemas.telemetry import TelemetryRecord

logger = logging.getLogger(__name__)


class AlertDispatcher:
    """
    Builds the alert payload from the triggering frame and the caregiver
    contact saved at dispatch time, then POSTs it as JSON.
    `post` defaults to requests.post and can be swapped for a fake in tests.
    """

    def __init__(
        self,
        store: ContactStore,
        webhook_url: str,
        timeout: float = 10.0,
        post: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.store = store
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._post = post or requests.post

    def build_payload(self, record: TelemetryRecord) -> AlertPayload:
        return AlertPayload.build(record, self.store.get())

    def _send(self, payload: AlertPayload) -> int:
        """Blocking POST; returns the HTTP status. Raises DispatchError."""
        if not self.webhook_url:
            raise DispatchError("WEBHOOK_URL is not configured")
        try:
            response = self._post(
                self.webhook_url,
                json=payload.model_dump(mode="json"),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise DispatchError(f"Failed to send webhook: {e}") from e
        return response.status_code

    async def dispatch(self, record: TelemetryRecord) -> DispatchOutcome:
        payload = self.build_payload(record)
        logger.info("Sending fall alert payload to webhook: %s", payload.model_dump(mode="json"))
        try:
            status = await asyncio.to_thread(self._send, payload)
        except DispatchError as e:
            logger.error("%s", e)
            return DispatchOutcome(delivered=False, error=str(e))
        logger.info("Webhook sent, status: %s", status)
        return DispatchOutcome(delivered=True, status_code=status)
