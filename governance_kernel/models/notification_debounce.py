"""
Module: governance_kernel.models.notification_debounce
Responsibility: Last-sent timestamps used to suppress repeated notifications.

Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per (request_id, notification_type): UNIQUE constraint.  The
      key is the logical primary key; ``id`` stays the surrogate every model
      carries.

Failure modes:
    - IntegrityError when two writers insert the same key; the debounce
      service resolves it by updating instead.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from governance_kernel.db.base import Base, UUIDString
from governance_kernel.db.types import UTCDateTime


class NotificationDebounceModel(Base):
    __tablename__ = "notification_debounce"

    __table_args__ = (
        UniqueConstraint(
            "request_id", "notification_type",
            name="uq_notification_debounce_request_type",
        ),
    )

    request_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    notification_type: Mapped[str] = mapped_column(String(100), nullable=False)
    last_sent_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<NotificationDebounce {self.request_id} "
            f"{self.notification_type} @ {self.last_sent_at.isoformat()}>"
        )
