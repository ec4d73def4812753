"""Read-only selectors for the governance kernel."""

from governance_kernel.selectors.base import BaseSelector
from governance_kernel.selectors.request_selector import RequestSelector
from governance_kernel.selectors.vote_selector import VoteSelector

__all__ = [
    "BaseSelector",
    "RequestSelector",
    "VoteSelector",
]
