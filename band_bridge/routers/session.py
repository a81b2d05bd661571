"""
Session router: connect/disconnect toggle, fall-alert cancel and the live
dashboard feed.

Endpoints:
  GET  /session/state         current display snapshot
  POST /session/toggle        connect to / disconnect from the band
  POST /session/cancel-alert  stop the fall countdown
  WS   /session/ws            display snapshot on every change
"""

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect

from band_bridge.core.session import TelemetrySession

router = APIRouter(prefix="/session", tags=["session"])


def get_session(request: Request) -> TelemetrySession:
    return request.app.state.session


@router.get("/state")
async def get_state(session: TelemetrySession = Depends(get_session)) -> dict:
    return session.snapshot()


@router.post("/toggle")
async def toggle_connection(session: TelemetrySession = Depends(get_session)) -> dict:
    """
    Same as the Connect/Disconnect button. Connection errors are not HTTP
    errors: they show up in status_text of the returned snapshot.
    """
    await session.request_toggle()
    return session.snapshot()


@router.post("/cancel-alert")
async def cancel_alert(session: TelemetrySession = Depends(get_session)) -> dict:
    cancelled = session.cancel_alert()
    return {"cancelled": cancelled, **session.snapshot()}


@router.websocket("/ws")
async def display_feed(websocket: WebSocket) -> None:
    session: TelemetrySession = websocket.app.state.session
    await websocket.accept()
    queue = session.display_bus.subscribe()
    try:
        await websocket.send_json(session.snapshot())
        while True:
            await queue.get()
            # always send the session's current view, not the queued one
            await websocket.send_json(session.snapshot())
    except WebSocketDisconnect:
        pass
    finally:
        session.display_bus.unsubscribe(queue)
