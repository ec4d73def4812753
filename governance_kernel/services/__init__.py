"""Kernel write services (flush only; callers own the transaction)."""

from governance_kernel.services.base import BaseService
from governance_kernel.services.debounce_service import DebounceService
from governance_kernel.services.request_service import RequestService
from governance_kernel.services.vote_service import VoteService

__all__ = [
    "BaseService",
    "DebounceService",
    "RequestService",
    "VoteService",
]
