from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from nmapdeck.engine.models import ScanRequest
from nmapdeck.server.state import ApplicationState, get_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["scans"])

STOP_MESSAGE = "Scan terminated by the Dark Side."
NOT_FOUND_MESSAGE = "Scan not found."


@router.post("/scan")
async def start_scan(req: ScanRequest, state: ApplicationState = Depends(get_state)):
    """
    Start a scan. Answers immediately; output follows on the live relay
    (WebSocket /ws/scans/{scanId} or SSE /api/scan/{scanId}/events).
    """
    job = state.orchestrator.start(req)
    return {
        "scanId": job.scan_id,
        "command": job.command,
        "terminalUrl": state.config.terminal.url,
    }


@router.post("/scan/{scan_id}/stop")
async def stop_scan(scan_id: str, state: ApplicationState = Depends(get_state)):
    if state.orchestrator.stop(scan_id):
        return {"success": True, "message": STOP_MESSAGE}

    logger.info(f"[API] Stop requested for unknown scan {scan_id}")
    return JSONResponse(status_code=404, content={"success": False, "message": NOT_FOUND_MESSAGE})


@router.get("/scans")
async def list_scans(state: ApplicationState = Depends(get_state)):
    """Scans currently running (finished and stopped scans are not listed)."""
    return {
        "scans": [
            {**job.summary(), "processLive": state.supervisor.is_live(job.scan_id)}
            for job in state.orchestrator.active_jobs()
        ]
    }
