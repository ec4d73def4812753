"""
RequestService -- persistence of review requests and their status changes.

Responsibility:
    Inserts new requests and applies status changes as compare-and-swap
    writes.  Whether a change is *allowed* is decided upstream by
    ``StatusTransitionValidator``; this service only guarantees the change
    lands on the status the caller validated against.

Architecture position:
    Kernel > Services.  Flush only; the caller owns commit/rollback.

Invariants enforced:
    Every status write is ``UPDATE review_requests SET ... WHERE
    request_id = :id AND status = :expected``.  A zero row count means
    another writer got there first; the caller reports it as "already
    resolved" and does not retry.

Failure modes:
    - IntegrityError on duplicate request_id at create.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from governance_kernel.domain.clock import Clock
from governance_kernel.domain.request import ReviewRequest
from governance_kernel.logging_config import get_logger
from governance_kernel.models.review_request import ReviewRequestModel
from governance_kernel.services.base import BaseService

logger = get_logger("services.request")

_MUTABLE_FIELDS = frozenset({
    "stage",
    "cycle",
    "review_deadline",
    "auto_approved_reason",
    "submitted_at",
    "resolved_at",
})


class RequestService(BaseService[ReviewRequestModel]):
    """Writes to ``review_requests``."""

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def create(self, request: ReviewRequest) -> ReviewRequest:
        model = ReviewRequestModel.from_dto(request)
        if model.created_at is None:
            model.created_at = self._clock.now()
        self.session.add(model)
        self.session.flush()

        logger.info(
            "review_request_created",
            extra={
                "request_id": str(request.request_id),
                "owner_id": request.owner_id,
                "status": request.status,
                "workflow_version": request.workflow_version,
            },
        )
        return model.to_dto()

    def compare_and_set_status(
        self,
        request_id: UUID,
        expected_status: str,
        new_status: str,
        *,
        increment_cycle: bool = False,
        **fields: Any,
    ) -> bool:
        """
        Move a request from ``expected_status`` to ``new_status``.

        Args:
            increment_cycle: Bump ``cycle`` in the same statement.
            **fields: Extra columns to write with the status (``stage``,
                ``review_deadline``, ``auto_approved_reason``,
                ``submitted_at``, ``resolved_at``).

        Returns:
            True if this call's write landed; False if the stored status was
            no longer ``expected_status`` (or the request is gone).

        Raises:
            ValueError: For a column outside the mutable set.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot write columns {sorted(unknown)} with a status change")

        values: dict[str, Any] = {
            "status": new_status,
            "updated_at": self._clock.now(),
            **fields,
        }
        if increment_cycle:
            values["cycle"] = ReviewRequestModel.cycle + 1

        result = self.session.execute(
            update(ReviewRequestModel)
            .where(
                ReviewRequestModel.request_id == request_id,
                ReviewRequestModel.status == expected_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1

        if applied:
            logger.info(
                "request_status_changed",
                extra={
                    "request_id": str(request_id),
                    "from_status": expected_status,
                    "to_status": new_status,
                },
            )
        else:
            logger.info(
                "request_status_precondition_failed",
                extra={
                    "request_id": str(request_id),
                    "expected_status": expected_status,
                    "to_status": new_status,
                },
            )
        return applied
