"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every service in
    the kernel layer.  Services receive a SQLAlchemy ``Session`` and use
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Services flush within the caller's transaction and never commit or roll
    back the outer transaction.  SAVEPOINTs (``begin_nested``) are allowed
    for writes whose failure must not poison the caller's transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from governance_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a Session from the caller and persists with ``flush()``.

    Non-goals:
        Does NOT manage transaction lifecycle.  Read-only queries belong in
        ``governance_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
