"""Dashboard reporting."""

from millesbtp.reporting.dashboard import (
    DashboardRow,
    DashboardSummary,
    build_dashboard,
    load_dashboard,
    refresh_alerts,
)

__all__ = [
    "DashboardRow",
    "DashboardSummary",
    "build_dashboard",
    "load_dashboard",
    "refresh_alerts",
]
