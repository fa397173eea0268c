"""
API package for TPHub Alerts.

- alerts: debug, test-send and daily run endpoints under /api/alerts
"""

from tphub_alerts.api.alerts import router as alerts_router

__all__ = [
    "alerts_router",
]
