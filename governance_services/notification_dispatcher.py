"""
NotificationDispatcher -- who hears about a workflow event.

Responsibility:
    Maps a workflow event to its recipients (through the identity
    collaborator), applies the vote-cast cooldown, and hands each
    ``(recipient, event, context)`` to the delivery gateway.  Rendering and
    transport belong to the gateway.

Architecture position:
    Services -- imperative shell.  Called after a successful write, inside
    the caller's transaction.

Recipients:
    SUBMITTED         stage-A reviewers
    STAGE_OPENED      owner; plus the stage's reviewers when the stage is
                      reached by auto-advance (stage B)
    VOTE_CAST         reviewers of the stage (cooldown-debounced)
    DECISION_REACHED  owner; plus the next stage's reviewers on an approval
                      that advances
    DEADLINE_WARNING  reviewers of the stage
    AUTO_APPROVED     owner; plus the next stage's reviewers

Invariants enforced:
    - Never raises.  Identity, gateway and debounce-store errors are logged
      and reported in the ``DispatchResult``.
    - One recipient's delivery failure does not stop the others.
    - The vote-cast record is written only after at least one delivery
      succeeded, inside a SAVEPOINT.  The cooldown read runs in its own
      SAVEPOINT too, so a failed debounce query leaves the caller's
      transaction usable.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy.orm import Session

from governance_config.schema import GovernanceConfig
from governance_kernel.domain.clock import Clock
from governance_kernel.domain.notification import (
    DispatchResult,
    IdentityDirectory,
    NotificationEvent,
    NotificationGateway,
)
from governance_kernel.domain.request import ReviewRequest
from governance_kernel.domain.voting import VoteOutcome
from governance_kernel.domain.workflow import ActorRole, WorkflowDefinition
from governance_kernel.logging_config import get_logger
from governance_kernel.services.debounce_service import DebounceService

logger = get_logger("services.notification_dispatcher")


def vote_cast_key(stage: str) -> str:
    return f"vote_cast:{stage}"


def _unique(ids: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for recipient in ids:
        if recipient:
            seen.setdefault(recipient, None)
    return tuple(seen)


class NotificationDispatcher:
    """Best-effort fan-out of workflow events."""

    def __init__(
        self,
        session: Session,
        identity: IdentityDirectory,
        gateway: NotificationGateway,
        clock: Clock,
        config: GovernanceConfig,
    ):
        self._identity = identity
        self._gateway = gateway
        self._config = config
        self._debounce = DebounceService(session, clock)

    def dispatch(
        self,
        event: NotificationEvent,
        request: ReviewRequest,
        *,
        stage: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> DispatchResult:
        """
        Notify everyone who should hear about ``event`` on ``request``.

        Args:
            stage: Review status the event concerns; defaults to the
                request's current stage (or status, for legacy requests).
            context: Extra fields for the gateway.  ``outcome`` is read for
                DECISION_REACHED.
        """
        stage = stage or request.stage or request.status
        payload = self._build_context(event, request, stage, context)

        if event == NotificationEvent.VOTE_CAST and not self._cooldown_elapsed(request, stage):
            logger.info(
                "notification_suppressed",
                extra={
                    "request_id": str(request.request_id),
                    "event": event.value,
                    "stage": stage,
                },
            )
            return DispatchResult(
                event=event,
                request_id=request.request_id,
                dispatched=False,
                suppressed=True,
                context=payload,
            )

        try:
            recipients = self._recipients(event, request, stage, payload)
        except Exception as exc:
            logger.exception(
                "notification_recipients_failed",
                extra={"request_id": str(request.request_id), "event": event.value},
            )
            return DispatchResult(
                event=event,
                request_id=request.request_id,
                dispatched=False,
                error=str(exc),
                context=payload,
            )

        failed: list[str] = []
        for recipient in recipients:
            try:
                self._gateway.deliver(recipient, event, payload)
            except Exception:
                logger.exception(
                    "notification_delivery_failed",
                    extra={
                        "request_id": str(request.request_id),
                        "event": event.value,
                        "recipient_id": recipient,
                    },
                )
                failed.append(recipient)

        delivered = len(recipients) - len(failed)
        if event == NotificationEvent.VOTE_CAST and delivered > 0:
            self._record(request, vote_cast_key(stage))

        logger.info(
            "notification_dispatched",
            extra={
                "request_id": str(request.request_id),
                "event": event.value,
                "stage": stage,
                "recipient_count": len(recipients),
                "failed_count": len(failed),
            },
        )
        return DispatchResult(
            event=event,
            request_id=request.request_id,
            dispatched=delivered > 0,
            recipients=recipients,
            failed=tuple(failed),
            context=payload,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _workflow(self, request: ReviewRequest) -> WorkflowDefinition | None:
        return self._config.workflow(request.workflow_version)

    def _members(self, role: ActorRole | None) -> tuple[str, ...]:
        if role is None:
            return ()
        return tuple(self._identity.members_for_role(role))

    def _next_stage_body(self, workflow: WorkflowDefinition, stage: str) -> ActorRole | None:
        """Reviewer body of the stage an approval of ``stage`` advances to."""
        approved = workflow.resolution_target(stage, VoteOutcome.APPROVED.value)
        if approved is None:
            return None
        next_stage = workflow.auto_advance_target(approved)
        if next_stage is None:
            return None
        return workflow.reviewer_role(next_stage)

    def _recipients(
        self,
        event: NotificationEvent,
        request: ReviewRequest,
        stage: str,
        payload: Mapping[str, Any],
    ) -> tuple[str, ...]:
        workflow = self._workflow(request)
        if workflow is None:
            return ()
        owner = (request.owner_id,)
        body = workflow.reviewer_role(stage)

        if event == NotificationEvent.SUBMITTED:
            return _unique(self._members(ActorRole.STAGE_A_REVIEWER))

        if event == NotificationEvent.STAGE_OPENED:
            if stage in workflow.auto_advance.values():
                return _unique(owner + self._members(body))
            return _unique(owner)

        if event in (NotificationEvent.VOTE_CAST, NotificationEvent.DEADLINE_WARNING):
            return _unique(self._members(body))

        if event == NotificationEvent.DECISION_REACHED:
            if payload.get("outcome") == VoteOutcome.APPROVED.value:
                return _unique(owner + self._members(self._next_stage_body(workflow, stage)))
            return _unique(owner)

        if event == NotificationEvent.AUTO_APPROVED:
            return _unique(owner + self._members(self._next_stage_body(workflow, stage)))

        return ()

    def _build_context(
        self,
        event: NotificationEvent,
        request: ReviewRequest,
        stage: str,
        extra: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "event": event.value,
            "request_id": str(request.request_id),
            "owner_id": request.owner_id,
            "status": request.status,
            "stage": stage,
            "cycle": request.cycle,
            "workflow_version": request.workflow_version,
            "review_deadline": request.review_deadline,
        }
        if extra:
            payload.update(extra)
        return payload

    def _cooldown_elapsed(self, request: ReviewRequest, stage: str) -> bool:
        try:
            # A failed read must not abort the caller's transaction.
            with self._debounce.session.begin_nested():
                return self._debounce.should_send(
                    request.request_id,
                    vote_cast_key(stage),
                    self._config.notifications.vote_cast_cooldown,
                )
        except Exception:
            logger.exception(
                "notification_debounce_check_failed",
                extra={"request_id": str(request.request_id), "stage": stage},
            )
            return True

    def _record(self, request: ReviewRequest, key: str) -> None:
        try:
            self._debounce.record_sent(request.request_id, key)
        except Exception:
            logger.exception(
                "notification_debounce_record_failed",
                extra={"request_id": str(request.request_id), "notification_type": key},
            )
