"""
Pytest fixtures for the governance test suite.

Provides:
- A file-backed SQLite engine per test (tables created fresh)
- Sessions, a deterministic clock and the default configuration set
- In-memory identity directory and recording notification gateway
- A wired ``WorkflowService`` and helpers that walk a request through
  the multi-stage workflow

Environment Variables:
- GOVERNANCE_TEST_DATABASE_URL: run the suite against another database
  (e.g. PostgreSQL).  Tables are dropped after each test.
"""

import json
import logging
import os
from io import StringIO

import pytest

from governance_config import get_active_config
from governance_engines.transitions import StatusTransitionValidator
from governance_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from governance_kernel.domain.clock import DeterministicClock
from governance_kernel.domain.request import Actor
from governance_kernel.domain.workflow import ActorRole
from governance_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from governance_services.notification_dispatcher import NotificationDispatcher
from governance_services.workflow_service import WorkflowService

from tests.fakes import InMemoryIdentityDirectory, RecordingGateway

OWNER_ID = "owner-1"
STAGE_A_MEMBERS = ("alice", "bob", "carol")
STAGE_B_MEMBERS = ("dave", "erin", "frank")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture governance_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow_service):
            workflow_service.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "review_transition" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("governance_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Fresh database per test.

    SQLite file (not ``:memory:``) so the deadline sweep's per-request
    sessions see each other's commits.
    """
    url = os.environ.get("GOVERNANCE_TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'governance.db'}"
    engine = init_engine_from_url(url)
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Domain collaborators
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def config():
    return get_active_config()


@pytest.fixture
def validator(config):
    return StatusTransitionValidator(config.workflows)


@pytest.fixture
def identity():
    return InMemoryIdentityDirectory({
        ActorRole.STAGE_A_REVIEWER: STAGE_A_MEMBERS,
        ActorRole.STAGE_B_REVIEWER: STAGE_B_MEMBERS,
    })


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def dispatcher(session, identity, gateway, deterministic_clock, config):
    return NotificationDispatcher(session, identity, gateway, deterministic_clock, config)


@pytest.fixture
def workflow_service(session, config, identity, dispatcher, deterministic_clock, validator):
    return WorkflowService(
        session, config, identity, dispatcher, deterministic_clock, validator,
    )


@pytest.fixture
def owner():
    return Actor(OWNER_ID, ActorRole.OWNER)


@pytest.fixture
def stage_a_actor():
    return Actor(STAGE_A_MEMBERS[0], ActorRole.STAGE_A_REVIEWER)


@pytest.fixture
def stage_b_actor():
    return Actor(STAGE_B_MEMBERS[0], ActorRole.STAGE_B_REVIEWER)


# =============================================================================
# Workflow helpers
# =============================================================================


@pytest.fixture
def create_request(workflow_service):
    """Factory: create a request owned by ``OWNER_ID``."""

    def _create(workflow_version: int = 2, description: str = "Replace front fence"):
        return workflow_service.create_request(OWNER_ID, description, workflow_version)

    return _create


@pytest.fixture
def request_in_stage_a(workflow_service, create_request, owner, stage_a_actor):
    """Factory: a v2 request submitted and opened for stage A review."""

    def _make():
        request = create_request()
        workflow_service.submit(request.request_id, owner)
        outcome = workflow_service.open_review(request.request_id, stage_a_actor)
        assert outcome.applied
        return outcome.request

    return _make


@pytest.fixture
def request_in_stage_b(workflow_service, request_in_stage_a):
    """Factory: a v2 request approved by stage A and advanced to stage B."""

    def _make():
        request = request_in_stage_a()
        for member in STAGE_A_MEMBERS[:2]:
            result = workflow_service.cast_vote(
                request.request_id, Actor(member, ActorRole.STAGE_A_REVIEWER), "APPROVE",
            )
        assert result.request.status == "STAGE_B_REVIEW"
        return result.request

    return _make
