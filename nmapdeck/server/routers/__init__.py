"""
Router initialization module.

Exports all API routers for the nmapdeck backend.
"""
from nmapdeck.server.routers import scans, system, realtime

__all__ = [
    "scans",
    "system",
    "realtime",
]
