"""
Module: governance_kernel.models.review_request
Responsibility: ORM persistence for architectural review requests.

Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per ``request_id`` (unique).
    - ``status`` is only ever changed by the conditional UPDATE in
      services/request_service.py; this model carries no status logic.
    - ``cycle`` is at least 1.

Failure modes:
    - IntegrityError on duplicate request_id.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from governance_kernel.db.base import Base, UUIDString
from governance_kernel.db.types import UTCDateTime

if TYPE_CHECKING:
    from governance_kernel.domain.request import ReviewRequest


class ReviewRequestModel(Base):
    """Persistent review request.

    Contract:
        ``stage`` mirrors ``status`` for the multi-stage workflow and is NULL
        for legacy requests.
    """

    __tablename__ = "review_requests"

    __table_args__ = (
        CheckConstraint("cycle >= 1", name="ck_review_requests_cycle_positive"),
        CheckConstraint(
            "workflow_version >= 1",
            name="ck_review_requests_workflow_version",
        ),
        # Deadline sweep: overdue and nearing-deadline scans
        Index(
            "ix_review_requests_status_deadline",
            "status", "review_deadline",
        ),
        Index("ix_review_requests_owner", "owner_id", "created_at"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(4000), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    workflow_version: Mapped[int] = mapped_column(nullable=False, default=2)
    stage: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cycle: Mapped[int] = mapped_column(nullable=False, default=1)
    review_deadline: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    auto_approved_reason: Mapped[str | None] = mapped_column(
        String(100), nullable=True,
    )
    submitted_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<ReviewRequest {self.request_id} v{self.workflow_version} "
            f"status={self.status} cycle={self.cycle}>"
        )

    def to_dto(self) -> ReviewRequest:
        """Convert ORM model to frozen domain DTO."""
        from governance_kernel.domain.request import (
            ReviewRequest as ReviewRequestDTO,
        )

        return ReviewRequestDTO(
            request_id=self.request_id,
            owner_id=self.owner_id,
            description=self.description,
            status=self.status,
            workflow_version=self.workflow_version,
            stage=self.stage,
            cycle=self.cycle,
            review_deadline=self.review_deadline,
            auto_approved_reason=self.auto_approved_reason,
            submitted_at=self.submitted_at,
            resolved_at=self.resolved_at,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto: ReviewRequest) -> ReviewRequestModel:
        """Create ORM model from domain DTO."""
        return cls(
            request_id=dto.request_id,
            owner_id=dto.owner_id,
            description=dto.description,
            status=dto.status,
            workflow_version=dto.workflow_version,
            stage=dto.stage,
            cycle=dto.cycle,
            review_deadline=dto.review_deadline,
            auto_approved_reason=dto.auto_approved_reason,
            submitted_at=dto.submitted_at,
            resolved_at=dto.resolved_at,
            created_at=dto.created_at,
        )
