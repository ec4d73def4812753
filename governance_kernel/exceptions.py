"""
Typed Exception Hierarchy for the Governance Kernel.

===============================================================================
WHAT RAISES AND WHAT RETURNS
===============================================================================

Status changes are business-rule decisions.  A rejected transition is NOT an
exception: ``StatusTransitionValidator`` and ``WorkflowService.transition``
return a ``TransitionCheck`` / ``TransitionOutcome`` with ``allowed=False``
and a ``TransitionRejection`` code, so callers can map it straight onto a
rejection response.

Exceptions are reserved for inputs the core cannot act on at all: a request
that does not exist, a vote that cannot be recorded, or a configuration that
is structurally invalid.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    GovernanceKernelError (base)
    |
    +-- RequestError
    |   +-- RequestNotFoundError
    |
    +-- VotingError
    |   +-- VotingClosedError
    |   +-- StageMismatchError
    |   +-- VoterNotEligibleError
    |   +-- DuplicateVoteError
    |
    +-- ConfigurationError
        +-- InvalidWorkflowConfigError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Request         | REQUEST_NOT_FOUND           | Request ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Voting          | VOTING_CLOSED               | Request is not in a review status
                | STAGE_MISMATCH              | Voter's body doesn't review this stage
                | VOTER_NOT_ELIGIBLE          | Voter recused or not on the roster
                | DUPLICATE_VOTE              | Re-vote under the "reject" policy
----------------|-----------------------------|-----------------------------------------
Configuration   | INVALID_WORKFLOW_CONFIG     | Graph/allow-list failed validation

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        result = workflow.cast_vote(request_id, actor, VoteValue.APPROVE)
    except VoterNotEligibleError as e:
        return {"error": e.code, "reason": e.reason}
    except VotingError as e:
        return {"error": e.code}
"""


class GovernanceKernelError(Exception):
    """
    Base exception for all governance kernel errors.

    Every subclass carries a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "GOVERNANCE_KERNEL_ERROR"


# Request-related exceptions


class RequestError(GovernanceKernelError):
    """Base exception for review-request errors."""

    code: str = "REQUEST_ERROR"


class RequestNotFoundError(RequestError):
    """Review request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Review request not found: {request_id}")


# Voting-related exceptions


class VotingError(GovernanceKernelError):
    """Base exception for vote recording errors."""

    code: str = "VOTING_ERROR"


class VotingClosedError(VotingError):
    """The request is not in a status that accepts votes."""

    code: str = "VOTING_CLOSED"

    def __init__(self, request_id: str, status: str, workflow_version: int):
        self.request_id = request_id
        self.status = status
        self.workflow_version = workflow_version
        super().__init__(
            f"Request {request_id} is not open for voting "
            f"(status={status}, workflow_version={workflow_version})"
        )


class StageMismatchError(VotingError):
    """The voter's reviewer body does not review the request's current stage."""

    code: str = "STAGE_MISMATCH"

    def __init__(self, request_id: str, stage: str, actor_role: str):
        self.request_id = request_id
        self.stage = stage
        self.actor_role = actor_role
        super().__init__(
            f"Role {actor_role} cannot vote on stage {stage} "
            f"of request {request_id}"
        )


class VoterNotEligibleError(VotingError):
    """The voter is recused or not on the stage roster."""

    code: str = "VOTER_NOT_ELIGIBLE"

    def __init__(self, request_id: str, voter_id: str, reason: str):
        self.request_id = request_id
        self.voter_id = voter_id
        self.reason = reason
        super().__init__(
            f"Voter {voter_id} is not eligible on request {request_id}: {reason}"
        )


class DuplicateVoteError(VotingError):
    """Voter already has a live vote for this stage and cycle."""

    code: str = "DUPLICATE_VOTE"

    def __init__(self, request_id: str, voter_id: str, stage: str, cycle: int):
        self.request_id = request_id
        self.voter_id = voter_id
        self.stage = stage
        self.cycle = cycle
        super().__init__(
            f"Voter {voter_id} already voted on {stage} "
            f"(cycle {cycle}) of request {request_id}"
        )


# Configuration exceptions


class ConfigurationError(GovernanceKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class InvalidWorkflowConfigError(ConfigurationError):
    """A workflow definition failed structural validation."""

    code: str = "INVALID_WORKFLOW_CONFIG"

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(
            f"Workflow configuration invalid: {len(errors)} error(s): "
            + "; ".join(errors)
        )
