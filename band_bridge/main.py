import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from band_bridge import __version__, config
from band_bridge.core.alert_dispatcher import AlertDispatcher
from band_bridge.core.contact_store import ContactStore
from band_bridge.core.session import TelemetrySession
from band_bridge.core.transport import BleakTransport
from band_bridge.routers import caregiver, session as session_router

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Root handler at LOG_LEVEL. A no-op for the handler if one is already installed."""
    logging.basicConfig(level=config.LOG_LEVEL, format=LOG_FORMAT)
    logging.getLogger("band_bridge").setLevel(config.LOG_LEVEL)


def build_session(transport=None) -> TelemetrySession:
    """Wire the session from config. `transport` overrides the BLE adapter."""
    store = ContactStore(config.CONTACT_STORE_PATH)
    dispatcher = AlertDispatcher(store, config.WEBHOOK_URL, timeout=config.WEBHOOK_TIMEOUT)
    return TelemetrySession(
        transport=transport or BleakTransport(scan_timeout=config.SCAN_TIMEOUT),
        dispatcher=dispatcher,
        store=store,
        device_name=config.DEVICE_NAME,
        service_id=config.BLE_SERVICE_UUID,
        characteristic_id=config.BLE_CHARACTERISTIC_UUID,
        countdown_ticks=config.COUNTDOWN_SECONDS,
        save_status_clear_seconds=config.SAVE_STATUS_CLEAR_SECONDS,
    )


def create_app(session: Optional[TelemetrySession] = None) -> FastAPI:
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.session = session or build_session()
        if not config.WEBHOOK_URL:
            logger.warning("WEBHOOK_URL not set, fall alerts will be logged but not delivered")
        runner = asyncio.create_task(app.state.session.run())
        try:
            yield
        finally:
            runner.cancel()
            await app.state.session.close()

    app = FastAPI(title="Health Band Bridge", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(session_router.router)
    app.include_router(caregiver.router)

    @app.get("/health")
    async def health_check() -> dict:
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)
