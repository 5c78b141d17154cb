from __future__ import annotations

import logging
from typing import Optional

from starlette.requests import HTTPConnection

from nmapdeck.base.config import DeckConfig, get_config
from nmapdeck.engine.registry import ScanRegistry
from nmapdeck.engine.relay import ScanRelay
from nmapdeck.engine.scan_orchestrator import ScanOrchestrator
from nmapdeck.engine.supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


class ApplicationState:
    """
    Everything one running API instance owns: config, supervisor, registry,
    relay and the orchestrator wired to them.

    Created by create_app() and stored on app.state.deck; routers reach it
    through the get_state dependency rather than module globals.
    """

    def __init__(
        self,
        config: Optional[DeckConfig] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        registry: Optional[ScanRegistry] = None,
        relay: Optional[ScanRelay] = None,
    ):
        self.config = config or get_config()
        self.supervisor = supervisor or ProcessSupervisor(
            kill_grace_seconds=self.config.scanner.kill_grace_seconds,
        )
        self.registry = registry or ScanRegistry()
        self.relay = relay or ScanRelay(
            history_size=self.config.relay.history_size,
            retain_finished=self.config.relay.retain_finished,
        )
        self.orchestrator = ScanOrchestrator(
            supervisor=self.supervisor,
            relay=self.relay,
            registry=self.registry,
            config=self.config.scanner,
        )

    async def shutdown(self) -> None:
        await self.orchestrator.shutdown()


def get_state(conn: HTTPConnection) -> ApplicationState:
    # HTTPConnection covers both plain requests and WebSockets
    return conn.app.state.deck
