# ============================================================================
# nmapdeck/engine/__init__.py
# Engine Package - Scan Execution
# ============================================================================
#
# PURPOSE:
# Runs nmap and keeps track of what is running.
#
# MODULES IN THIS PACKAGE:
# - **models.py**: ScanRequest/ScanOptions (validated input), ScanJob, ScanOutcome
# - **supervisor.py**: Spawns one external process, streams and captures output
# - **scan_orchestrator.py**: Runs a scan's targets one after another
# - **registry.py**: scan_id -> ScanJob bookkeeping
# - **relay.py**: Publish/subscribe channel feeding WebSocket and SSE clients
#
# WORKFLOW:
# POST /api/scan -> Orchestrator.start -> Supervisor.run (per target) -> Relay -> browser
#
# ============================================================================
