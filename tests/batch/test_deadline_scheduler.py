"""
Tests for governance_batch.services.deadline_scheduler.

Validates DeadlineScheduler against a file-backed SQLite database: overdue
requests are auto-approved (stage A advances to stage B, stage B is final),
deadline warnings go out once per lead time per cycle, reruns change
nothing, lost races are "already resolved" and one request's failure does
not stop the sweep.

Setup data is committed before each sweep because the scheduler opens its
own session per request.
"""


from datetime import timedelta

import pytest

from governance_batch import DeadlineScheduler, SweepAction, SweepItemStatus
from governance_batch.services.deadline_scheduler import deadline_warning_key
from governance_kernel.domain.notification import NotificationEvent
from governance_kernel.domain.request import Actor
from governance_kernel.domain.workflow import ActorRole
from governance_kernel.selectors.request_selector import RequestSelector
from governance_kernel.services.debounce_service import DebounceService
from governance_kernel.services.request_service import RequestService
from governance_services.notification_dispatcher import NotificationDispatcher

from tests.conftest import OWNER_ID, STAGE_A_MEMBERS, STAGE_B_MEMBERS
from tests.fakes import FailingGateway


@pytest.fixture
def make_scheduler(session_factory, config, identity, deterministic_clock):
    def _make(gateway, dispatcher_factory=None):
        factory = dispatcher_factory or (
            lambda s: NotificationDispatcher(s, identity, gateway, deterministic_clock, config)
        )
        return DeadlineScheduler(
            session_factory, config, dispatcher_factory=factory, clock=deterministic_clock,
        )

    return _make


@pytest.fixture
def scheduler(make_scheduler, gateway):
    return make_scheduler(gateway)


@pytest.fixture
def reload(session_factory):
    """Read a request's committed state through a fresh session."""

    def _reload(request_id):
        sess = session_factory()
        try:
            return RequestSelector(sess).get(request_id)
        finally:
            sess.close()

    return _reload


def items_for(result, action):
    return [i for i in result.items if i.action == action]


class TestAutoApproval:
    def test_stage_a_auto_approves_and_advances(
        self, session, scheduler, request_in_stage_a, deterministic_clock, gateway, reload,
    ):
        request = request_in_stage_a()
        session.commit()
        gateway.clear()

        deterministic_clock.advance(days=31)
        result = scheduler.run()

        assert result.auto_approved_count == 1
        item = items_for(result, SweepAction.AUTO_APPROVE)[0]
        assert item.status == SweepItemStatus.SUCCEEDED
        assert item.from_status == "STAGE_A_REVIEW"
        assert item.to_status == "STAGE_A_APPROVED"
        assert item.advanced_to == "STAGE_B_REVIEW"
        assert item.notified

        stored = reload(request.request_id)
        assert stored.status == "STAGE_B_REVIEW"
        assert stored.stage == "STAGE_B_REVIEW"
        assert stored.auto_approved_reason == "deadline_expired"
        assert stored.resolved_at is None

        assert set(gateway.recipients(NotificationEvent.AUTO_APPROVED)) == {
            OWNER_ID, *STAGE_B_MEMBERS,
        }
        assert set(gateway.recipients(NotificationEvent.STAGE_OPENED)) == {
            OWNER_ID, *STAGE_B_MEMBERS,
        }

    def test_stage_b_auto_approval_is_final(
        self, session, scheduler, request_in_stage_b, deterministic_clock, gateway, reload,
    ):
        request = request_in_stage_b()
        session.commit()
        gateway.clear()

        deterministic_clock.advance(days=30)
        result = scheduler.run()

        item = items_for(result, SweepAction.AUTO_APPROVE)[0]
        assert item.to_status == "STAGE_B_APPROVED"
        assert item.advanced_to is None

        stored = reload(request.request_id)
        assert stored.status == "STAGE_B_APPROVED"
        assert stored.resolved_at == deterministic_clock.now()
        assert gateway.recipients(NotificationEvent.AUTO_APPROVED) == [OWNER_ID]

    def test_not_yet_overdue_is_left_alone(
        self, session, scheduler, request_in_stage_a, deterministic_clock, reload,
    ):
        request = request_in_stage_a()
        session.commit()

        deterministic_clock.advance(days=29, hours=23)
        result = scheduler.run()

        assert result.auto_approved_count == 0
        assert reload(request.request_id).status == "STAGE_A_REVIEW"

    def test_rerun_is_idempotent(
        self, session, scheduler, request_in_stage_a, request_in_stage_b,
        deterministic_clock, gateway, reload,
    ):
        in_stage_a = request_in_stage_a()
        in_stage_b = request_in_stage_b()
        session.commit()
        gateway.clear()
        deterministic_clock.advance(days=31)

        first = scheduler.run()
        assert first.auto_approved_count == 2
        notified_once = list(gateway.recipients(NotificationEvent.AUTO_APPROVED))
        assert notified_once

        deterministic_clock.advance(hours=1)
        second = scheduler.run()

        assert second.items == ()
        assert second.failed_count == 0
        assert gateway.recipients(NotificationEvent.AUTO_APPROVED) == notified_once
        # Stage B after an auto-approved stage A waits for human votes.
        assert reload(in_stage_a.request_id).status == "STAGE_B_REVIEW"
        final = reload(in_stage_b.request_id)
        assert final.status == "STAGE_B_APPROVED"
        assert final.resolved_at == deterministic_clock.now() - timedelta(hours=1)

    def test_requests_outside_review_are_ignored(
        self, session, scheduler, workflow_service, create_request, owner, deterministic_clock,
    ):
        submitted = create_request()
        workflow_service.submit(submitted.request_id, owner)
        create_request(workflow_version=1)
        session.commit()

        deterministic_clock.advance(days=60)
        result = scheduler.run()
        assert result.items == ()

    def test_resubmission_allows_a_new_auto_approval(
        self, session, scheduler, workflow_service, request_in_stage_a, owner, stage_a_actor,
        deterministic_clock, reload,
    ):
        request = request_in_stage_a()
        session.commit()
        deterministic_clock.advance(days=31)
        assert scheduler.run().auto_approved_count == 1

        for member in STAGE_B_MEMBERS[:2]:
            workflow_service.cast_vote(
                request.request_id, Actor(member, ActorRole.STAGE_B_REVIEWER), "RETURN",
            )
        resubmitted = workflow_service.submit(request.request_id, owner)
        assert resubmitted.request.auto_approved_reason is None
        workflow_service.open_review(request.request_id, stage_a_actor)
        session.commit()

        deterministic_clock.advance(days=31)
        result = scheduler.run()

        assert result.auto_approved_count == 1
        stored = reload(request.request_id)
        assert stored.cycle == 2
        assert stored.status == "STAGE_B_REVIEW"
        assert stored.auto_approved_reason == "deadline_expired"


class TestRaces:
    def test_status_changed_after_query_is_already_resolved(
        self, session, session_factory, scheduler, request_in_stage_a, deterministic_clock, reload,
    ):
        snapshot = request_in_stage_a()
        session.commit()
        deterministic_clock.advance(days=31)

        # A human decision lands between the sweep's query and its write.
        other = session_factory()
        RequestService(other, deterministic_clock).compare_and_set_status(
            snapshot.request_id, "STAGE_A_REVIEW", "STAGE_A_DENIED",
        )
        other.commit()
        other.close()

        item = scheduler.process_overdue(snapshot)

        assert item.status == SweepItemStatus.SKIPPED
        assert item.already_resolved
        assert reload(snapshot.request_id).status == "STAGE_A_DENIED"

    def test_missing_request_is_skipped(self, scheduler, request_in_stage_a, session):
        snapshot = request_in_stage_a()
        session.rollback()

        item = scheduler.process_overdue(snapshot)
        assert item.status == SweepItemStatus.SKIPPED


class TestFailureIsolation:
    def test_one_failure_does_not_stop_the_sweep(
        self, session, scheduler, request_in_stage_a, deterministic_clock, reload,
        monkeypatch, captured_logs,
    ):
        bad = request_in_stage_a()
        good = request_in_stage_a()
        session.commit()
        deterministic_clock.advance(days=31)

        original = RequestService.compare_and_set_status

        def flaky(self, request_id, *args, **kwargs):
            if request_id == bad.request_id:
                raise RuntimeError("database hiccup")
            return original(self, request_id, *args, **kwargs)

        monkeypatch.setattr(RequestService, "compare_and_set_status", flaky)
        result = scheduler.run()

        assert result.failed_count == 1
        assert result.auto_approved_count == 1
        assert reload(bad.request_id).status == "STAGE_A_REVIEW"
        assert reload(good.request_id).status == "STAGE_B_REVIEW"
        assert any(r["message"] == "auto_approval_failed" for r in captured_logs())

        monkeypatch.undo()
        retry = scheduler.run()
        assert retry.auto_approved_count == 1
        assert reload(bad.request_id).status == "STAGE_B_REVIEW"

    def test_notification_failure_keeps_the_approval(
        self, session, make_scheduler, gateway, request_in_stage_a, deterministic_clock, reload,
    ):
        def broken_factory(_session):
            raise RuntimeError("gateway misconfigured")

        request = request_in_stage_a()
        session.commit()
        deterministic_clock.advance(days=31)

        result = make_scheduler(gateway, dispatcher_factory=broken_factory).run()

        item = items_for(result, SweepAction.AUTO_APPROVE)[0]
        assert item.status == SweepItemStatus.SUCCEEDED
        assert not item.notified
        assert reload(request.request_id).status == "STAGE_B_REVIEW"


class TestDeadlineWarnings:
    def test_seven_then_three_day_warning_once_each(
        self, session, session_factory, scheduler, request_in_stage_a, deterministic_clock, gateway,
    ):
        request = request_in_stage_a()
        session.commit()
        gateway.clear()

        deterministic_clock.advance(days=24)
        first = scheduler.run()
        warnings = items_for(first, SweepAction.DEADLINE_WARNING)
        assert [(w.status, w.lead_days) for w in warnings] == [(SweepItemStatus.SUCCEEDED, 7)]
        assert set(gateway.recipients(NotificationEvent.DEADLINE_WARNING)) == set(STAGE_A_MEMBERS)

        deterministic_clock.advance(days=1)
        again = scheduler.run()
        assert again.warnings_sent_count == 0
        assert items_for(again, SweepAction.DEADLINE_WARNING)[0].status == SweepItemStatus.SKIPPED

        deterministic_clock.advance(days=3)
        third = scheduler.run()
        warnings = items_for(third, SweepAction.DEADLINE_WARNING)
        assert [(w.status, w.lead_days) for w in warnings] == [(SweepItemStatus.SUCCEEDED, 3)]

        assert scheduler.run().warnings_sent_count == 0
        assert len(gateway.recipients(NotificationEvent.DEADLINE_WARNING)) == 2 * len(STAGE_A_MEMBERS)

        sess = session_factory()
        try:
            debounce = DebounceService(sess, deterministic_clock)
            assert debounce.has_record(request.request_id, deadline_warning_key(7, 1))
            assert debounce.has_record(request.request_id, deadline_warning_key(3, 1))
        finally:
            sess.close()

    def test_late_start_sends_only_the_tightest_warning(
        self, session, scheduler, request_in_stage_a, deterministic_clock,
    ):
        request_in_stage_a()
        session.commit()

        deterministic_clock.advance(days=28)
        result = scheduler.run()
        warnings = items_for(result, SweepAction.DEADLINE_WARNING)
        assert [w.lead_days for w in warnings] == [3]

    def test_failed_delivery_is_retried(
        self, session, make_scheduler, gateway, request_in_stage_a, deterministic_clock,
    ):
        request_in_stage_a()
        session.commit()
        deterministic_clock.advance(days=24)

        failing = make_scheduler(FailingGateway()).run()
        assert failing.failed_count == 1
        assert failing.warnings_sent_count == 0

        retried = make_scheduler(gateway).run()
        assert retried.warnings_sent_count == 1

    def test_key_format(self):
        assert deadline_warning_key(7, 2) == "deadline_warning:7d:cycle-2"


class TestSweepResult:
    def test_summary_and_logs(
        self, session, scheduler, request_in_stage_a, deterministic_clock, captured_logs,
    ):
        request_in_stage_a()
        session.commit()
        deterministic_clock.advance(days=31)

        result = scheduler.run()

        assert result.started_at == deterministic_clock.now()
        assert result.completed_at >= result.started_at
        logs = captured_logs()
        completed = [r for r in logs if r["message"] == "deadline_sweep_completed"]
        assert completed[0]["auto_approved"] == 1
        assert completed[0]["sweep_id"] == str(result.sweep_id)

    def test_empty_sweep(self, db_engine, scheduler):
        result = scheduler.run()
        assert result.items == ()
        assert result.failed_count == 0

    def test_unknown_request_snapshot(self, db_engine, scheduler, request_in_stage_a, session):
        snapshot = request_in_stage_a()
        session.rollback()
        item = scheduler.process_warning(snapshot)
        assert item.status == SweepItemStatus.SKIPPED
        assert item.request_id == snapshot.request_id


class TestPhaseIsolation:
    def test_overdue_query_failure_still_sends_warnings(
        self, session, scheduler, request_in_stage_a, deterministic_clock, monkeypatch,
        captured_logs,
    ):
        request_in_stage_a()
        session.commit()
        deterministic_clock.advance(days=24)

        def store_unreachable(now):
            raise ConnectionError("database unavailable")

        monkeypatch.setattr(scheduler, "_find_overdue", store_unreachable)
        result = scheduler.run()

        assert result.failed_phases == (SweepAction.AUTO_APPROVE,)
        assert result.failed_count == 1
        assert result.warnings_sent_count == 1
        failures = [r for r in captured_logs() if r["message"] == "deadline_sweep_phase_failed"]
        assert failures[0]["phase"] == "auto_approve"

    def test_warning_query_failure_keeps_auto_approvals(
        self, session, scheduler, request_in_stage_a, deterministic_clock, monkeypatch, reload,
    ):
        request = request_in_stage_a()
        session.commit()
        deterministic_clock.advance(days=31)

        def store_unreachable(now):
            raise ConnectionError("database unavailable")

        monkeypatch.setattr(scheduler, "_find_nearing", store_unreachable)
        result = scheduler.run()

        assert result.failed_phases == (SweepAction.DEADLINE_WARNING,)
        assert result.auto_approved_count == 1
        assert reload(request.request_id).status == "STAGE_B_REVIEW"
