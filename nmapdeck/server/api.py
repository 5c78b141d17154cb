# ============================================================================
# nmapdeck/server/api.py
# FastAPI application
# ============================================================================
#
# PURPOSE:
# Builds the FastAPI app: CORS, error handlers, routers, and the lifespan
# hook that stops running scans on shutdown.
#
# Use create_app() in tests (with an injected ApplicationState); uvicorn
# serves the module-level `app`.
#
# ============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nmapdeck import __version__
from nmapdeck.base.config import DeckConfig, get_config, setup_logging
from nmapdeck.errors import ErrorCode, NmapDeckError
from nmapdeck.server.routers import realtime, scans, system
from nmapdeck.server.state import ApplicationState

logger = logging.getLogger(__name__)


async def deck_error_handler(request: Request, exc: NmapDeckError):
    """Convert NmapDeckError into its JSON body and HTTP status."""
    logger.warning(f"[API] {exc.code.value}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed scan requests are a 400 with the same body shape as NmapDeckError."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        message = str(errors[0].get("msg", message)).removeprefix("Value error, ")
    err = NmapDeckError(
        ErrorCode.SCAN_REQUEST_INVALID,
        message,
        details={"errors": jsonable_encoder(errors)},
    )
    logger.info(f"[API] Rejected request to {request.url.path}: {message}")
    return JSONResponse(status_code=err.http_status, content=err.to_dict())


def create_app(config: Optional[DeckConfig] = None, state: Optional[ApplicationState] = None) -> FastAPI:
    cfg = config or (state.config if state is not None else get_config())
    deck = state or ApplicationState(config=cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"[API] nmapdeck {__version__} ready (scanner: {' '.join(cfg.scanner.command_prefix())})")
        try:
            yield
        finally:
            await deck.shutdown()
            logger.info("[API] Shutdown complete")

    app = FastAPI(
        title="nmapdeck API",
        description="Web relay for nmap scans",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.deck = deck

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.allowed_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.add_exception_handler(NmapDeckError, deck_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(scans.router)
    app.include_router(system.router)
    app.include_router(realtime.router)

    return app


app = create_app()


def serve(port: Optional[int] = None, host: Optional[str] = None):
    config = get_config()
    setup_logging(config)
    uvicorn.run(app, host=host or config.api_host, port=port or config.api_port, log_level="info")


if __name__ == "__main__":
    serve()
