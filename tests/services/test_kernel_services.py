"""
Tests for the kernel write services and selectors against a real database.

Covers:
- RequestService: create, conditional status write, lost races, column guard
- VoteService: one live vote per voter/stage/cycle, overwrite and reject
- DebounceService: cooldown window and upsert
- RequestSelector: overdue and nearing-deadline queries
- session_scope: commit on exit, rollback on error
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from governance_kernel.db.engine import session_scope
from governance_kernel.domain.request import ReviewRequest
from governance_kernel.domain.voting import RevotePolicy, VoteValue
from governance_kernel.exceptions import DuplicateVoteError, RequestNotFoundError
from governance_kernel.selectors.request_selector import RequestSelector
from governance_kernel.selectors.vote_selector import VoteSelector
from governance_kernel.services.debounce_service import DebounceService
from governance_kernel.services.request_service import RequestService
from governance_kernel.services.vote_service import VoteService

REVIEW_STATUSES = ("STAGE_A_REVIEW", "STAGE_B_REVIEW")


@pytest.fixture
def request_service(session, deterministic_clock):
    return RequestService(session, deterministic_clock)


@pytest.fixture
def selector(session):
    return RequestSelector(session)


@pytest.fixture
def stored_request(request_service, deterministic_clock):
    """Factory: persist a v2 request directly in the given status."""

    def _make(status: str = "STAGE_A_REVIEW", deadline=None, **kwargs):
        return request_service.create(
            ReviewRequest(
                request_id=uuid4(),
                owner_id="owner-1",
                description="Paint garage door",
                status=status,
                workflow_version=2,
                stage=status,
                review_deadline=deadline,
                created_at=deterministic_clock.now(),
                **kwargs,
            )
        )

    return _make


class TestRequestService:
    def test_create_and_read_back(self, stored_request, selector, deterministic_clock):
        created = stored_request("DRAFT")
        loaded = selector.get(created.request_id)
        assert loaded.status == "DRAFT"
        assert loaded.cycle == 1
        assert loaded.created_at == deterministic_clock.now()
        assert loaded.created_at.tzinfo is not None

    def test_get_unknown_raises(self, selector):
        with pytest.raises(RequestNotFoundError):
            selector.get(uuid4())
        assert selector.find(uuid4()) is None

    def test_compare_and_set_applies(self, stored_request, request_service, selector):
        request = stored_request("SUBMITTED")
        assert request_service.compare_and_set_status(
            request.request_id, "SUBMITTED", "STAGE_A_REVIEW", stage="STAGE_A_REVIEW",
        )
        loaded = selector.get(request.request_id)
        assert loaded.status == "STAGE_A_REVIEW"
        assert loaded.stage == "STAGE_A_REVIEW"

    def test_compare_and_set_loses_on_stale_status(
        self, stored_request, request_service, selector, captured_logs,
    ):
        request = stored_request("STAGE_A_REVIEW")
        request_service.compare_and_set_status(
            request.request_id, "STAGE_A_REVIEW", "STAGE_A_DENIED",
        )
        assert not request_service.compare_and_set_status(
            request.request_id, "STAGE_A_REVIEW", "STAGE_A_APPROVED",
        )
        assert selector.get(request.request_id).status == "STAGE_A_DENIED"
        assert any(
            r["message"] == "request_status_precondition_failed" for r in captured_logs()
        )

    def test_compare_and_set_unknown_request(self, request_service):
        assert not request_service.compare_and_set_status(uuid4(), "DRAFT", "SUBMITTED")

    def test_increment_cycle(self, stored_request, request_service, selector):
        request = stored_request("STAGE_A_RETURNED")
        request_service.compare_and_set_status(
            request.request_id, "STAGE_A_RETURNED", "SUBMITTED", increment_cycle=True,
        )
        assert selector.get(request.request_id).cycle == 2

    def test_rejects_immutable_columns(self, stored_request, request_service):
        request = stored_request("DRAFT")
        with pytest.raises(ValueError):
            request_service.compare_and_set_status(
                request.request_id, "DRAFT", "SUBMITTED", owner_id="someone-else",
            )


class TestRequestSelectorDeadlines:
    def test_find_overdue(self, stored_request, selector, deterministic_clock):
        now = deterministic_clock.now()
        overdue = stored_request(deadline=now - timedelta(hours=1))
        stored_request(deadline=now + timedelta(days=1))
        stored_request("SUBMITTED", deadline=now - timedelta(days=1))
        stored_request(
            deadline=now - timedelta(days=2), auto_approved_reason="deadline_expired",
        )

        found = selector.find_overdue(now, (2,), REVIEW_STATUSES)
        assert [r.request_id for r in found] == [overdue.request_id]

    def test_overdue_ordered_by_deadline(self, stored_request, selector, deterministic_clock):
        now = deterministic_clock.now()
        later = stored_request(deadline=now - timedelta(hours=1))
        earlier = stored_request("STAGE_B_REVIEW", deadline=now - timedelta(days=3))
        found = selector.find_overdue(now, (2,), REVIEW_STATUSES)
        assert [r.request_id for r in found] == [earlier.request_id, later.request_id]

    def test_deadline_exactly_now_is_overdue(self, stored_request, selector, deterministic_clock):
        now = deterministic_clock.now()
        request = stored_request(deadline=now)
        assert [r.request_id for r in selector.find_overdue(now, (2,), REVIEW_STATUSES)] == [
            request.request_id,
        ]

    def test_find_nearing_deadline(self, stored_request, selector, deterministic_clock):
        now = deterministic_clock.now()
        soon = stored_request(deadline=now + timedelta(days=5))
        stored_request(deadline=now + timedelta(days=10))
        stored_request(deadline=now - timedelta(days=1))

        found = selector.find_nearing_deadline(
            now, now + timedelta(days=7), (2,), REVIEW_STATUSES,
        )
        assert [r.request_id for r in found] == [soon.request_id]

    def test_version_filter(self, stored_request, selector, deterministic_clock):
        now = deterministic_clock.now()
        stored_request(deadline=now - timedelta(days=1))
        assert selector.find_overdue(now, (), REVIEW_STATUSES) == []


class TestVoteService:
    REQUEST_ID = uuid4()

    def test_record_and_list(self, session, deterministic_clock):
        service = VoteService(session, deterministic_clock)
        recorded = service.record_vote(self.REQUEST_ID, "STAGE_A_REVIEW", "alice", VoteValue.APPROVE, 1)
        assert not recorded.replaced
        assert recorded.vote.cast_at == deterministic_clock.now()

        votes = VoteSelector(session).votes_for(self.REQUEST_ID, "STAGE_A_REVIEW", 1)
        assert [(v.voter_id, v.value) for v in votes] == [("alice", VoteValue.APPROVE)]

    def test_overwrite_keeps_one_live_vote(self, session, deterministic_clock):
        service = VoteService(session, deterministic_clock, RevotePolicy.OVERWRITE)
        service.record_vote(self.REQUEST_ID, "STAGE_A_REVIEW", "alice", VoteValue.APPROVE, 1)
        deterministic_clock.advance(minutes=5)
        recorded = service.record_vote(
            self.REQUEST_ID, "STAGE_A_REVIEW", "alice", VoteValue.DENY, 1, comment="changed",
        )

        assert recorded.replaced
        assert recorded.previous_value == VoteValue.APPROVE
        assert recorded.vote.updated_at == deterministic_clock.now()
        votes = VoteSelector(session).votes_for(self.REQUEST_ID, "STAGE_A_REVIEW", 1)
        assert len(votes) == 1
        assert votes[0].value == VoteValue.DENY
        assert votes[0].comment == "changed"

    def test_reject_policy(self, session, deterministic_clock):
        service = VoteService(session, deterministic_clock, RevotePolicy.REJECT)
        service.record_vote(self.REQUEST_ID, "STAGE_A_REVIEW", "alice", VoteValue.APPROVE, 1)
        with pytest.raises(DuplicateVoteError) as exc_info:
            service.record_vote(self.REQUEST_ID, "STAGE_A_REVIEW", "alice", VoteValue.DENY, 1)
        assert exc_info.value.code == "DUPLICATE_VOTE"

    def test_votes_are_scoped_by_stage_and_cycle(self, session, deterministic_clock):
        service = VoteService(session, deterministic_clock, RevotePolicy.REJECT)
        service.record_vote(self.REQUEST_ID, "STAGE_A_REVIEW", "alice", VoteValue.APPROVE, 1)
        service.record_vote(self.REQUEST_ID, "STAGE_B_REVIEW", "alice", VoteValue.APPROVE, 1)
        service.record_vote(self.REQUEST_ID, "STAGE_A_REVIEW", "alice", VoteValue.RETURN, 2)

        selector = VoteSelector(session)
        assert len(selector.votes_for(self.REQUEST_ID, "STAGE_A_REVIEW", 1)) == 1
        assert selector.vote_by_voter(self.REQUEST_ID, "STAGE_A_REVIEW", "alice", 2).value == (
            VoteValue.RETURN
        )
        assert selector.vote_by_voter(self.REQUEST_ID, "STAGE_B_REVIEW", "bob", 1) is None


class TestDebounceService:
    REQUEST_ID = uuid4()

    def test_first_send_allowed(self, session, deterministic_clock):
        service = DebounceService(session, deterministic_clock)
        assert service.should_send(self.REQUEST_ID, "vote_cast:STAGE_A_REVIEW", timedelta(minutes=30))
        assert not service.has_record(self.REQUEST_ID, "vote_cast:STAGE_A_REVIEW")

    def test_cooldown_window(self, session, deterministic_clock):
        service = DebounceService(session, deterministic_clock)
        key = "vote_cast:STAGE_A_REVIEW"
        service.record_sent(self.REQUEST_ID, key)

        deterministic_clock.advance(minutes=29)
        assert not service.should_send(self.REQUEST_ID, key, timedelta(minutes=30))
        deterministic_clock.advance(minutes=1)
        assert service.should_send(self.REQUEST_ID, key, timedelta(minutes=30))

    def test_record_again_moves_the_window(self, session, deterministic_clock):
        service = DebounceService(session, deterministic_clock)
        key = "vote_cast:STAGE_B_REVIEW"
        service.record_sent(self.REQUEST_ID, key)
        deterministic_clock.advance(hours=1)
        service.record_sent(self.REQUEST_ID, key)
        assert service.last_sent(self.REQUEST_ID, key) == deterministic_clock.now()

    def test_keys_are_independent(self, session, deterministic_clock):
        service = DebounceService(session, deterministic_clock)
        service.record_sent(self.REQUEST_ID, "deadline_warning:7d:cycle-1")
        assert not service.has_record(self.REQUEST_ID, "deadline_warning:3d:cycle-1")


class TestSessionScope:
    def _request(self, clock):
        return ReviewRequest(
            request_id=uuid4(),
            owner_id="owner-1",
            description="Add a shed",
            status="DRAFT",
            workflow_version=2,
            stage="DRAFT",
            created_at=clock.now(),
        )

    def test_commits_on_exit(self, session_factory, deterministic_clock):
        request = self._request(deterministic_clock)
        with session_scope() as sess:
            RequestService(sess, deterministic_clock).create(request)

        reader = session_factory()
        try:
            assert RequestSelector(reader).find(request.request_id) is not None
        finally:
            reader.close()

    def test_rolls_back_on_error(self, session_factory, deterministic_clock, captured_logs):
        request = self._request(deterministic_clock)
        with pytest.raises(RuntimeError):
            with session_scope() as sess:
                RequestService(sess, deterministic_clock).create(request)
                raise RuntimeError("abort")

        reader = session_factory()
        try:
            assert RequestSelector(reader).find(request.request_id) is None
        finally:
            reader.close()
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())
