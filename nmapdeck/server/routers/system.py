from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from nmapdeck.server.state import ApplicationState, get_state
from nmapdeck.toolkit.diagnostics import probe_scanner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/health")
async def health_check(state: ApplicationState = Depends(get_state)):
    """Liveness plus whether nmap can be reached, and what is running right now."""
    health = await probe_scanner(state.supervisor, state.config.scanner)
    return {
        "status": health.status,
        "ready": health.ready,
        "activeScans": state.orchestrator.active_count,
        "liveProcesses": state.supervisor.live_count(),
        "relay": state.relay.stats(),
        "docker": health.docker,
        "nmap": health.nmap,
        "error": health.error,
    }


@router.get("/terminal")
async def terminal_info(request: Request, state: ApplicationState = Depends(get_state)):
    """
    Browser-reachable URL of the web terminal.

    Inside the compose network the host may be the container name, which the
    browser cannot resolve, so that case maps to localhost.
    """
    host = request.url.hostname or "localhost"
    if host == state.config.scanner.container_name:
        host = "localhost"
    return {"url": f"{request.url.scheme}://{host}:{state.config.terminal.port}"}
