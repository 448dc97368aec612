"""Amendment workflow."""

from millesbtp.amendments.workflow import AmendmentWorkflow, can_transition

__all__ = ["AmendmentWorkflow", "can_transition"]
