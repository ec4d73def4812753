"""
governance_services -- workflow coordination over the kernel.

``WorkflowService`` is the in-process entry point an API layer calls;
``NotificationDispatcher`` decides who hears about each event.
"""

from governance_services.notification_dispatcher import NotificationDispatcher
from governance_services.workflow_service import CastVoteResult, WorkflowService

__all__ = [
    "CastVoteResult",
    "NotificationDispatcher",
    "WorkflowService",
]
