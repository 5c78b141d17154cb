# ============================================================================
# nmapdeck/__init__.py
# Package Marker for the nmapdeck Backend
# ============================================================================
#
# PURPOSE:
# nmapdeck is a thin web relay around the `nmap` scanner. A browser submits a
# scan, the backend runs nmap (usually inside a sidecar container through
# `docker exec`) and streams stdout/stderr back over WebSocket or SSE.
#
# PACKAGE LAYOUT:
# - base/: configuration and logging setup
# - toolkit/: nmap argument building, target splitting, health probes
# - engine/: process supervisor, scan orchestrator, registry, live relay
# - server/: FastAPI application and routers
#
# ============================================================================

__version__ = "1.0.0"
