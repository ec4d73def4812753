"""SQLAlchemy ORM models for the governance kernel."""

from governance_kernel.models.notification_debounce import NotificationDebounceModel
from governance_kernel.models.review_request import ReviewRequestModel
from governance_kernel.models.vote import VoteModel

__all__ = [
    "NotificationDebounceModel",
    "ReviewRequestModel",
    "VoteModel",
]
