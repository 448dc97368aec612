"""MillesBTP web route modules.

Each module exports a `router` (APIRouter) that millesbtp.web.app includes.
Shared dependencies live in millesbtp.web.dependencies and response models
in millesbtp.web.models.
"""

from millesbtp.web.routes import (
    amendments,
    clients,
    costs,
    dashboard,
    health,
    worksites,
)

__all__ = [
    "amendments",
    "clients",
    "costs",
    "dashboard",
    "health",
    "worksites",
]
