import logging
import shutil
from typing import Optional

from pydantic import BaseModel

from nmapdeck.base.config import ScannerConfig
from nmapdeck.engine.supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

STATUS_OK = "The Force is strong with this one."
STATUS_DEGRADED = "The Dark Side clouds everything."
STATUS_ERROR = "The Dark Side has taken over."


class ScannerHealth(BaseModel):
    status: str
    docker: str  # connected / disconnected / error / not-used
    nmap: str    # available / unavailable / unknown
    error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.nmap == "available"


async def probe_scanner(supervisor: ProcessSupervisor, config: ScannerConfig) -> ScannerHealth:
    """
    Check that nmap can actually be launched.

    Container mode runs `docker exec <container> which nmap`; local mode
    looks nmap up on PATH.
    """
    if not config.uses_container:
        found = shutil.which(config.nmap_binary)
        if found:
            return ScannerHealth(status=STATUS_OK, docker="not-used", nmap="available")
        return ScannerHealth(
            status=STATUS_DEGRADED,
            docker="not-used",
            nmap="unavailable",
            error=f"'{config.nmap_binary}' not found in PATH",
        )

    result = await supervisor.run(
        config.docker_binary,
        ["exec", config.container_name, "which", config.nmap_binary],
        timeout=10,
    )
    if not result.started:
        logger.warning(f"[Health] Docker unavailable: {result.error}")
        return ScannerHealth(status=STATUS_ERROR, docker="error", nmap="unknown", error=result.error)

    if result.ok:
        return ScannerHealth(status=STATUS_OK, docker="connected", nmap="available")

    return ScannerHealth(
        status=STATUS_DEGRADED,
        docker="disconnected",
        nmap="unavailable",
        error=result.stderr.strip() or result.error or None,
    )
