"""
DebounceService -- last-sent bookkeeping for notifications.

Responsibility:
    Answers "was this notification sent recently?" and records a send.
    Used for the vote-cast cooldown and for once-per-lead-time deadline
    warnings.

Architecture position:
    Kernel > Services.  Flush only.

Invariants enforced:
    - One row per (request_id, notification_type).
    - ``record_sent`` runs in a SAVEPOINT: a duplicate-key race is turned
      into an update and never aborts the caller's transaction.
    - Check-then-write is not atomic.  Two concurrent senders may both pass
      ``should_send``; the duplicate notification is tolerated.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from governance_kernel.domain.clock import Clock
from governance_kernel.logging_config import get_logger
from governance_kernel.models.notification_debounce import NotificationDebounceModel
from governance_kernel.services.base import BaseService

logger = get_logger("services.debounce")


class DebounceService(BaseService[NotificationDebounceModel]):
    """Reads and writes ``notification_debounce``."""

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def last_sent(self, request_id: UUID, notification_type: str) -> datetime | None:
        return self.session.execute(
            select(NotificationDebounceModel.last_sent_at).where(
                NotificationDebounceModel.request_id == request_id,
                NotificationDebounceModel.notification_type == notification_type,
            )
        ).scalar_one_or_none()

    def has_record(self, request_id: UUID, notification_type: str) -> bool:
        return self.last_sent(request_id, notification_type) is not None

    def should_send(
        self,
        request_id: UUID,
        notification_type: str,
        cooldown: timedelta,
    ) -> bool:
        """True when nothing was sent within ``cooldown`` of now."""
        last = self.last_sent(request_id, notification_type)
        if last is None:
            return True
        return self._clock.now() - last >= cooldown

    def record_sent(self, request_id: UUID, notification_type: str) -> None:
        now = self._clock.now()
        try:
            with self.session.begin_nested():
                updated = self._touch(request_id, notification_type, now)
                if not updated:
                    self.session.add(
                        NotificationDebounceModel(
                            request_id=request_id,
                            notification_type=notification_type,
                            last_sent_at=now,
                        )
                    )
                    self.session.flush()
        except IntegrityError:
            # Another writer inserted the key between our update and insert.
            with self.session.begin_nested():
                self._touch(request_id, notification_type, now)

        logger.debug(
            "notification_debounce_recorded",
            extra={
                "request_id": str(request_id),
                "notification_type": notification_type,
            },
        )

    def _touch(self, request_id: UUID, notification_type: str, now: datetime) -> bool:
        result = self.session.execute(
            update(NotificationDebounceModel)
            .where(
                NotificationDebounceModel.request_id == request_id,
                NotificationDebounceModel.notification_type == notification_type,
            )
            .values(last_sent_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
