"""Database layer for MillesBTP with async SQLAlchemy."""

from millesbtp.db.connection import get_session, init_db
from millesbtp.db.models import (
    AmendmentModel,
    Base,
    ClientModel,
    WorksiteCostModel,
    WorksiteEventModel,
    WorksiteModel,
)
from millesbtp.db.repository import OwnedRepository

__all__ = [
    "Base",
    "ClientModel",
    "WorksiteModel",
    "WorksiteCostModel",
    "AmendmentModel",
    "WorksiteEventModel",
    "OwnedRepository",
    "get_session",
    "init_db",
]
