"""Batch services: the deadline sweep."""

from governance_batch.services.deadline_scheduler import DeadlineScheduler, deadline_warning_key

__all__ = ["DeadlineScheduler", "deadline_warning_key"]
