# ============================================================================
# nmapdeck/server/__init__.py
# Server Package - FastAPI Web Server
# ============================================================================
#
# PURPOSE:
# Provides the HTTP API the browser talks to, plus the live output channels.
#
# API ARCHITECTURE:
# Browser <- HTTP/WebSocket/SSE -> FastAPI Server <-> ScanOrchestrator -> nmap
#
# KEY ENDPOINTS:
# - POST /api/scan - Start a scan (returns immediately with a scanId)
# - POST /api/scan/{scan_id}/stop - Stop a running scan
# - GET /api/health - Docker / nmap availability and active scan count
# - GET /api/terminal - URL of the web terminal container
# - WebSocket /ws/scans/{scan_id} - Live scan output
# - GET /api/scan/{scan_id}/events - Live scan output as Server-Sent Events
#
# KEY MODULES:
# - **api.py**: FastAPI application factory and exception handlers
# - **state.py**: Per-application wiring of supervisor, registry, relay, orchestrator
# - **routers/**: Route groups (scans, system, realtime)
#
# ============================================================================
