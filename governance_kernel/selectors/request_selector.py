"""
Module: governance_kernel.selectors.request_selector
Responsibility: Read access to review requests, including the two scans the
    deadline sweep runs.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - ``get`` always reloads from the database (``populate_existing``) so a
      caller re-reading after a conditional write sees the stored status, not
      a stale identity-map copy.
    - Overdue scan excludes requests that already carry an
      ``auto_approved_reason``.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from governance_kernel.domain.request import ReviewRequest
from governance_kernel.exceptions import RequestNotFoundError
from governance_kernel.models.review_request import ReviewRequestModel
from governance_kernel.selectors.base import BaseSelector


class RequestSelector(BaseSelector[ReviewRequestModel]):
    """Queries over ``review_requests``."""

    def find(self, request_id: UUID) -> ReviewRequest | None:
        model = self.session.execute(
            select(ReviewRequestModel)
            .where(ReviewRequestModel.request_id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def get(self, request_id: UUID) -> ReviewRequest:
        """
        Load a request.

        Raises:
            RequestNotFoundError: If no request has this ID.
        """
        request = self.find(request_id)
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request

    def find_overdue(
        self,
        now: datetime,
        workflow_versions: Iterable[int],
        review_statuses: Iterable[str],
    ) -> Sequence[ReviewRequest]:
        """Review-status requests whose deadline has passed and that have not
        been auto-approved yet, oldest deadline first."""
        versions = list(workflow_versions)
        statuses = list(review_statuses)
        if not versions or not statuses:
            return []
        rows = self.session.execute(
            select(ReviewRequestModel)
            .where(
                ReviewRequestModel.workflow_version.in_(versions),
                ReviewRequestModel.status.in_(statuses),
                ReviewRequestModel.review_deadline.is_not(None),
                ReviewRequestModel.review_deadline <= now,
                ReviewRequestModel.auto_approved_reason.is_(None),
            )
            .order_by(ReviewRequestModel.review_deadline)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def find_nearing_deadline(
        self,
        now: datetime,
        horizon: datetime,
        workflow_versions: Iterable[int],
        review_statuses: Iterable[str],
    ) -> Sequence[ReviewRequest]:
        """Review-status requests whose deadline lies in ``(now, horizon]`` and
        that have not been auto-approved."""
        versions = list(workflow_versions)
        statuses = list(review_statuses)
        if not versions or not statuses:
            return []
        rows = self.session.execute(
            select(ReviewRequestModel)
            .where(
                ReviewRequestModel.workflow_version.in_(versions),
                ReviewRequestModel.status.in_(statuses),
                ReviewRequestModel.review_deadline > now,
                ReviewRequestModel.review_deadline <= horizon,
                ReviewRequestModel.auto_approved_reason.is_(None),
            )
            .order_by(ReviewRequestModel.review_deadline)
        ).scalars().all()
        return [row.to_dto() for row in rows]
