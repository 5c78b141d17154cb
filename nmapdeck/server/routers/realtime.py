from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from nmapdeck.server.state import ApplicationState, get_state

router = APIRouter(tags=["realtime"])

logger = logging.getLogger(__name__)


@router.websocket("/ws/scans/{scan_id}")
async def ws_scan_stream(
    websocket: WebSocket,
    scan_id: str,
    since: int = Query(0, ge=0),
    state: ApplicationState = Depends(get_state),
):
    """
    Live output for one scan.

    Sends every buffered event after `since`, then live events, then closes
    once "scan-complete" has been delivered.
    """
    if not state.relay.has(scan_id):
        logger.info(f"[WebSocket] Rejecting subscription to unknown scan {scan_id}")
        await websocket.close(code=4404, reason="Scan not found")
        return

    await websocket.accept()
    logger.debug(f"[WebSocket] {websocket.client} subscribed to {scan_id} (since={since})")

    try:
        async for event in state.relay.subscribe(scan_id, since=since):
            await websocket.send_json(event.to_dict())
        await websocket.close()
    except WebSocketDisconnect:
        logger.debug(f"[WebSocket] Client left scan {scan_id}")
    except Exception as e:
        logger.error(f"[WebSocket] Stream error for {scan_id}: {e}")


@router.get("/api/scan/{scan_id}/events")
async def sse_scan_stream(
    scan_id: str,
    request: Request,
    since: int = Query(0, ge=0),
    state: ApplicationState = Depends(get_state),
):
    """Server-Sent Events variant of the live output stream."""
    if not state.relay.has(scan_id):
        return JSONResponse(status_code=404, content={"success": False, "message": "Scan not found."})

    last_id = request.headers.get("last-event-id")
    if last_id:
        try:
            since = max(since, int(last_id))
        except ValueError:
            pass

    async def event_generator():
        try:
            async for event in state.relay.subscribe(scan_id, since=since):
                yield {
                    "event": event.event,
                    "id": str(event.sequence),
                    "data": event.to_json(),
                }
        except asyncio.CancelledError:
            logger.debug(f"[SSE] Client left scan {scan_id}")
            raise

    return EventSourceResponse(event_generator())
