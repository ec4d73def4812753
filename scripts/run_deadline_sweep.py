#!/usr/bin/env python3
"""
Run one deadline sweep over the review request store.

Usage:
    python scripts/run_deadline_sweep.py --database-url URL [--roster PATH]
        [--config PATH] [--create-tables] [--log-level LEVEL]

Intended to be invoked by an external timer (cron, systemd timer, a
platform scheduler).  Each invocation:
  1. Loads and validates the workflow configuration
  2. Auto-approves requests whose review deadline has passed
  3. Sends the 7-day / 3-day deadline warnings that are due
  4. Prints the sweep summary as JSON

The exit status is 1 when any request failed; failed requests are picked
up again by the next run.

The roster file maps reviewer roles to member identifiers:

    stage_a_reviewer: [alice, bob, carol]
    stage_b_reviewer: [dave, erin, frank]

Deliveries are written to the log; a deployment with a real email/SMS
gateway wires its own ``NotificationGateway`` through ``build_scheduler``.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Mapping

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from governance_batch import DeadlineScheduler
from governance_config import get_active_config
from governance_config.loader import load_yaml_file
from governance_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from governance_kernel.domain.clock import SystemClock
from governance_kernel.domain.notification import NotificationEvent
from governance_kernel.domain.request import Actor
from governance_kernel.domain.workflow import ActorRole
from governance_kernel.logging_config import configure_logging, get_logger
from governance_services import NotificationDispatcher

logger = get_logger("scripts.deadline_sweep")

DATABASE_URL_ENV = "GOVERNANCE_DATABASE_URL"


class RosterDirectory:
    """Identity directory backed by a static role -> members mapping."""

    def __init__(self, members: Mapping[ActorRole, tuple[str, ...]]):
        self._members = dict(members)

    @classmethod
    def from_file(cls, path: Path) -> "RosterDirectory":
        data = load_yaml_file(path)
        return cls({
            ActorRole(role): tuple(str(m) for m in (ids or ()))
            for role, ids in data.items()
        })

    def get_actor(self, actor_id: str) -> Actor | None:
        for role, ids in self._members.items():
            if actor_id in ids:
                return Actor(actor_id, role)
        return None

    def members_for_role(self, role: ActorRole) -> tuple[str, ...]:
        return self._members.get(role, ())


class LoggingGateway:
    """Delivery gateway that records each notification in the log."""

    def deliver(
        self,
        recipient_id: str,
        event: NotificationEvent,
        context: Mapping[str, Any],
    ) -> None:
        logger.info(
            "notification_delivered",
            extra={
                "recipient_id": recipient_id,
                "event": event.value,
                "stage": context.get("stage"),
            },
        )


def build_scheduler(config, identity, gateway) -> DeadlineScheduler:
    clock = SystemClock()
    return DeadlineScheduler(
        session_factory=get_session_factory(),
        config=config,
        dispatcher_factory=lambda session: NotificationDispatcher(
            session, identity, gateway, clock, config,
        ),
        clock=clock,
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one review deadline sweep.")
    parser.add_argument(
        "--database-url",
        default=os.environ.get(DATABASE_URL_ENV),
        help=f"SQLAlchemy database URL (default: ${DATABASE_URL_ENV})",
    )
    parser.add_argument("--config", type=Path, default=None, help="Configuration set YAML")
    parser.add_argument("--roster", type=Path, default=None, help="Role roster YAML")
    parser.add_argument(
        "--create-tables", action="store_true", help="Create missing tables first",
    )
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if not args.database_url:
        print(
            f"Error: pass --database-url or set {DATABASE_URL_ENV}",
            file=sys.stderr,
        )
        return 2

    configure_logging(level=getattr(logging, args.log_level.upper(), logging.INFO))
    config = get_active_config(args.config)
    init_engine_from_url(args.database_url)
    if args.create_tables:
        create_tables()

    identity = RosterDirectory.from_file(args.roster) if args.roster else RosterDirectory({})
    result = build_scheduler(config, identity, LoggingGateway()).run()

    summary = {
        "sweep_id": str(result.sweep_id),
        "started_at": result.started_at.isoformat(),
        "completed_at": result.completed_at.isoformat(),
        "auto_approved": result.auto_approved_count,
        "already_resolved": result.already_resolved_count,
        "warnings_sent": result.warnings_sent_count,
        "skipped": result.skipped_count,
        "failed": result.failed_count,
        "failed_phases": [phase.value for phase in result.failed_phases],
    }
    print(json.dumps(summary, indent=2))
    return 1 if result.failed_count else 0


if __name__ == "__main__":
    sys.exit(main())
