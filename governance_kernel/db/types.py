"""
Module: governance_kernel.db.types
Responsibility: Column types shared by every governance model.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/, or domain/.

Invariants enforced:
    - Deadlines, vote timestamps and debounce windows are compared as UTC.
      ``UTCDateTime`` stores naive UTC and always returns aware UTC, so a
      comparison against ``Clock.now()`` never mixes naive and aware values
      (SQLite drops tzinfo on read).

Failure modes:
    - ValueError when binding a naive datetime.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetime stored as naive UTC."""

    impl = DateTime(timezone=False)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


