"""Worksite aggregate: recalculation and the orchestrating service."""

from millesbtp.worksites.locks import WorksiteLocks
from millesbtp.worksites.models import MutationResult, WorksiteOverview
from millesbtp.worksites.recalculation import RecalculationResult, recalculate_worksite
from millesbtp.worksites.service import WorksiteService

__all__ = [
    "MutationResult",
    "RecalculationResult",
    "WorksiteLocks",
    "WorksiteOverview",
    "WorksiteService",
    "recalculate_worksite",
]
