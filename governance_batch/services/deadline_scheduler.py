"""
DeadlineScheduler -- statutory review deadline sweep.

Contract:
    ``run()`` is invoked by an external timer (see
    scripts/run_deadline_sweep.py).  Each run auto-approves requests whose
    review deadline has passed and sends once-per-lead-time deadline
    warnings.  There is no in-process scheduling.

Architecture: governance_batch/services.  Uses governance_engines for the
    transition check and governance_kernel services for conditional writes.

Invariants enforced:
    - All timestamps from the injected Clock.
    - Each request is processed in its own session and transaction; one
      request's failure is logged, counted and left for the next sweep.
    - The overdue and warning queries fail independently; a failed query is
      counted as a failed phase and the other phase still runs.
    - Auto-approval is a validated system transition written as a
      compare-and-swap on the status the sweep re-read; a lost race is
      "already resolved", not an error.
    - ``auto_approved_reason`` is written by the same statement as the
      status.
    - Notifications are sent after the commit, in a separate transaction.
    - A deadline warning is recorded only after a successful delivery; the
      key ``deadline_warning:<days>d:cycle-<n>`` makes it once per lead time
      per request per cycle.
    - Idempotent: rerunning over resolved or warned requests changes nothing.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from governance_batch.domain.types import (
    SweepAction,
    SweepItemResult,
    SweepItemStatus,
    SweepResult,
)
from governance_config.schema import GovernanceConfig
from governance_engines.transitions import StatusTransitionValidator
from governance_kernel.domain.clock import Clock, SystemClock
from governance_kernel.domain.notification import NotificationEvent
from governance_kernel.domain.request import SYSTEM_ACTOR, ReviewRequest
from governance_kernel.domain.voting import VoteOutcome
from governance_kernel.logging_config import LogContext, get_logger
from governance_kernel.selectors.request_selector import RequestSelector
from governance_kernel.services.debounce_service import DebounceService
from governance_kernel.services.request_service import RequestService
from governance_services.notification_dispatcher import NotificationDispatcher

logger = get_logger("batch.deadline_scheduler")


def deadline_warning_key(lead_days: int, cycle: int) -> str:
    return f"deadline_warning:{lead_days}d:cycle-{cycle}"


class DeadlineScheduler:
    """Auto-approval and deadline warning sweep.

    Contract:
        - ``run()`` performs one full sweep and returns a ``SweepResult``.
        - ``process_overdue()`` / ``process_warning()`` handle a single
          request (public for testing and manual reprocessing).

    Non-goals:
        - No retries inside a run; failures are picked up by the next run.
        - Not a distributed lock: concurrent sweeps are safe only because
          every write is conditional.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: GovernanceConfig,
        dispatcher_factory: Callable[[Session], NotificationDispatcher],
        clock: Clock | None = None,
        validator: StatusTransitionValidator | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._dispatcher_factory = dispatcher_factory
        self._clock = clock or SystemClock()
        self._validator = validator or StatusTransitionValidator(config.workflows)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run(self) -> SweepResult:
        sweep_id = uuid4()
        started_at = self._clock.now()
        items: list[SweepItemResult] = []
        failed_phases: list[SweepAction] = []

        phases = (
            (SweepAction.AUTO_APPROVE, self._find_overdue, self.process_overdue),
            (SweepAction.DEADLINE_WARNING, self._find_nearing, self.process_warning),
        )

        with LogContext.bind(sweep_id=str(sweep_id)):
            logger.info("deadline_sweep_started", extra={"now": started_at})

            for action, find, process in phases:
                try:
                    candidates = find(started_at)
                except Exception:
                    logger.exception("deadline_sweep_phase_failed", extra={"phase": action})
                    failed_phases.append(action)
                    continue
                for snapshot in candidates:
                    items.append(process(snapshot))

            result = SweepResult(
                sweep_id=sweep_id,
                started_at=started_at,
                completed_at=self._clock.now(),
                items=tuple(items),
                failed_phases=tuple(failed_phases),
            )
            logger.info(
                "deadline_sweep_completed",
                extra={
                    "auto_approved": result.auto_approved_count,
                    "already_resolved": result.already_resolved_count,
                    "warnings_sent": result.warnings_sent_count,
                    "skipped": result.skipped_count,
                    "failed": result.failed_count,
                    "failed_phases": list(result.failed_phases),
                },
            )
        return result

    def process_overdue(self, snapshot: ReviewRequest) -> SweepItemResult:
        """Auto-approve one overdue request in its own transaction."""
        with LogContext.bind(request_id=str(snapshot.request_id)):
            try:
                item, notify = self._auto_approve(snapshot)
            except Exception as exc:
                logger.exception("auto_approval_failed")
                return SweepItemResult(
                    request_id=snapshot.request_id,
                    action=SweepAction.AUTO_APPROVE,
                    status=SweepItemStatus.FAILED,
                    from_status=snapshot.status,
                    message=str(exc),
                )

            if notify:
                notified = self._notify(snapshot.request_id, notify)
                item = SweepItemResult(
                    request_id=item.request_id,
                    action=item.action,
                    status=item.status,
                    from_status=item.from_status,
                    to_status=item.to_status,
                    advanced_to=item.advanced_to,
                    notified=notified,
                )
            return item

    def process_warning(self, snapshot: ReviewRequest) -> SweepItemResult:
        """Send the deadline warning for one request if it is due."""
        with LogContext.bind(request_id=str(snapshot.request_id)):
            session = self._session_factory()
            try:
                item = self._warn(session, snapshot)
                session.commit()
                return item
            except Exception as exc:
                session.rollback()
                logger.exception("deadline_warning_failed")
                return SweepItemResult(
                    request_id=snapshot.request_id,
                    action=SweepAction.DEADLINE_WARNING,
                    status=SweepItemStatus.FAILED,
                    from_status=snapshot.status,
                    message=str(exc),
                )
            finally:
                session.close()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _review_statuses(self) -> tuple[str, ...]:
        statuses: set[str] = set()
        for version in self._config.deadline_versions:
            statuses.update(self._config.workflows[version].review_bodies)
        return tuple(sorted(statuses))

    def _find_overdue(self, now: datetime) -> list[ReviewRequest]:
        session = self._session_factory()
        try:
            return list(
                RequestSelector(session).find_overdue(
                    now, self._config.deadline_versions, self._review_statuses(),
                )
            )
        finally:
            session.close()

    def _find_nearing(self, now: datetime) -> list[ReviewRequest]:
        horizon = now + self._config.deadlines.max_warning_lead
        session = self._session_factory()
        try:
            return list(
                RequestSelector(session).find_nearing_deadline(
                    now, horizon, self._config.deadline_versions, self._review_statuses(),
                )
            )
        finally:
            session.close()

    def _skipped(self, snapshot: ReviewRequest, message: str) -> SweepItemResult:
        logger.info("auto_approval_already_resolved", extra={"reason": message})
        return SweepItemResult(
            request_id=snapshot.request_id,
            action=SweepAction.AUTO_APPROVE,
            status=SweepItemStatus.SKIPPED,
            from_status=snapshot.status,
            already_resolved=True,
            message=message,
        )

    def _auto_approve(
        self,
        snapshot: ReviewRequest,
    ) -> tuple[SweepItemResult, list[tuple[NotificationEvent, str]]]:
        session = self._session_factory()
        try:
            request = RequestSelector(session).find(snapshot.request_id)
            if request is None:
                return self._skipped(snapshot, "Request no longer exists"), []
            if request.status != snapshot.status or request.auto_approved_reason is not None:
                return self._skipped(snapshot, "Status changed before the sweep reached it"), []

            workflow = self._validator.for_version(request.workflow_version)
            target = workflow.resolution_target(request.status, VoteOutcome.APPROVED.value)
            check = self._validator.validate_transition(
                request.status, target, request.workflow_version, SYSTEM_ACTOR.role,
            )
            if not check.allowed:
                logger.warning(
                    "auto_approval_not_permitted",
                    extra={"from_status": request.status, "to_status": target,
                           "reason": check.reason},
                )
                return SweepItemResult(
                    request_id=request.request_id,
                    action=SweepAction.AUTO_APPROVE,
                    status=SweepItemStatus.FAILED,
                    from_status=request.status,
                    to_status=target,
                    message=check.reason,
                ), []

            now = self._clock.now()
            fields = {"auto_approved_reason": self._config.deadlines.auto_approved_reason}
            if workflow.tracks_stage:
                fields["stage"] = workflow.stage_for(target)
            if workflow.is_terminal(target):
                fields["resolved_at"] = now

            writer = RequestService(session, self._clock)
            if not writer.compare_and_set_status(
                request.request_id, request.status, target, **fields,
            ):
                session.rollback()
                return self._skipped(snapshot, "Status changed before the write"), []

            notify = [(NotificationEvent.AUTO_APPROVED, request.status)]
            advanced_to = self._advance(session, writer, workflow, request, target)
            if advanced_to is not None:
                notify.append((NotificationEvent.STAGE_OPENED, advanced_to))

            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info(
            "request_auto_approved",
            extra={"from_status": request.status, "to_status": target,
                   "advanced_to": advanced_to},
        )
        return SweepItemResult(
            request_id=request.request_id,
            action=SweepAction.AUTO_APPROVE,
            status=SweepItemStatus.SUCCEEDED,
            from_status=request.status,
            to_status=target,
            advanced_to=advanced_to,
        ), notify

    def _advance(self, session, writer, workflow, request, approved_status) -> str | None:
        next_status = workflow.auto_advance_target(approved_status)
        if next_status is None:
            return None
        check = self._validator.validate_transition(
            approved_status, next_status, request.workflow_version, SYSTEM_ACTOR.role,
        )
        if not check.allowed:
            logger.warning(
                "auto_advance_not_permitted",
                extra={"from_status": approved_status, "to_status": next_status,
                       "reason": check.reason},
            )
            return None
        fields = {}
        if workflow.tracks_stage:
            fields["stage"] = workflow.stage_for(next_status)
        if writer.compare_and_set_status(
            request.request_id, approved_status, next_status, **fields,
        ):
            return next_status
        return None

    def _notify(
        self,
        request_id: UUID,
        events: list[tuple[NotificationEvent, str]],
    ) -> bool:
        """Dispatch after commit; errors never undo the approval."""
        session = self._session_factory()
        try:
            request = RequestSelector(session).get(request_id)
            dispatcher = self._dispatcher_factory(session)
            delivered = False
            for event, stage in events:
                result = dispatcher.dispatch(
                    event,
                    request,
                    stage=stage,
                    context={"reason": self._config.deadlines.auto_approved_reason},
                )
                delivered = delivered or result.dispatched
            session.commit()
            return delivered
        except Exception:
            session.rollback()
            logger.exception("sweep_notification_failed")
            return False
        finally:
            session.close()

    def _lead_for(self, deadline: datetime, now: datetime) -> int | None:
        """Tightest configured lead time the deadline is already within."""
        remaining = deadline - now
        crossed = [
            days for days in self._config.deadlines.warning_lead_days
            if remaining <= timedelta(days=days)
        ]
        return min(crossed) if crossed else None

    def _warn(self, session: Session, snapshot: ReviewRequest) -> SweepItemResult:
        request = RequestSelector(session).find(snapshot.request_id)
        now = self._clock.now()
        if (
            request is None
            or request.status != snapshot.status
            or request.review_deadline is None
            or request.review_deadline <= now
        ):
            return SweepItemResult(
                request_id=snapshot.request_id,
                action=SweepAction.DEADLINE_WARNING,
                status=SweepItemStatus.SKIPPED,
                from_status=snapshot.status,
                message="No longer awaiting a decision",
            )

        lead = self._lead_for(request.review_deadline, now)
        if lead is None:
            return SweepItemResult(
                request_id=request.request_id,
                action=SweepAction.DEADLINE_WARNING,
                status=SweepItemStatus.SKIPPED,
                from_status=request.status,
                message="Outside every warning lead time",
            )

        key = deadline_warning_key(lead, request.cycle)
        debounce = DebounceService(session, self._clock)
        if debounce.has_record(request.request_id, key):
            return SweepItemResult(
                request_id=request.request_id,
                action=SweepAction.DEADLINE_WARNING,
                status=SweepItemStatus.SKIPPED,
                from_status=request.status,
                lead_days=lead,
                message="Warning already sent",
            )

        dispatch = self._dispatcher_factory(session).dispatch(
            NotificationEvent.DEADLINE_WARNING,
            request,
            stage=request.status,
            context={"lead_days": lead},
        )
        if dispatch.dispatched:
            debounce.record_sent(request.request_id, key)
            logger.info("deadline_warning_sent", extra={"lead_days": lead, "cycle": request.cycle})
            status = SweepItemStatus.SUCCEEDED
        elif dispatch.error or dispatch.failed:
            status = SweepItemStatus.FAILED
        else:
            status = SweepItemStatus.SKIPPED

        return SweepItemResult(
            request_id=request.request_id,
            action=SweepAction.DEADLINE_WARNING,
            status=status,
            from_status=request.status,
            lead_days=lead,
            notified=dispatch.dispatched,
            message=dispatch.error,
        )
