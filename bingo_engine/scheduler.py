"""Periodic jobs that keep rounds moving.

Each job opens its own session, does one pass and closes it. Jobs may overlap
with each other, with another scheduler process, or with operator requests;
the services underneath only use guarded updates, so repeating a tick is
harmless. A job that fails logs the error and the loop carries on.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Event
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from bingo_engine.db import session_scope
from bingo_engine.services.purchase_service import PurchaseService
from bingo_engine.services.round_service import AUTO_FINISH_THRESHOLD, RoundService
from bingo_engine.services.settlement_service import SettlementService

logger = logging.getLogger(__name__)


@dataclass
class Job:
    name: str
    interval: float
    run: Callable[[], Any]
    next_run: float = field(default=0.0)


class Jobs:
    """The job bodies, bound to a session factory and the services."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        rounds: RoundService,
        purchases: PurchaseService,
        settlement: SettlementService,
    ) -> None:
        self._session_factory = session_factory
        self._rounds = rounds
        self._purchases = purchases
        self._settlement = settlement

    def check_rounds(self) -> dict[str, Any]:
        with session_scope(self._session_factory) as session:
            created = self._rounds.check_and_create_rounds(session)
            sweep = self._rounds.update_rounds_status(session)
        return {"created": len(created), "changed": sweep.changed}

    def auto_draw(self) -> dict[str, Any]:
        drawn = 0
        finished = 0
        with session_scope(self._session_factory) as session:
            for round_id, before in self._rounds.drawable_rounds(session):
                try:
                    self._rounds.draw_next_number(session, round_id)
                    drawn += 1
                except Exception:
                    logger.exception("Draw failed for round %s", round_id)
                    continue

                if before >= AUTO_FINISH_THRESHOLD and self._rounds.finish_if_exhausted(session, round_id):
                    finished += 1

            finished += len(self._rounds.auto_finish_rounds(session))
        return {"drawn": drawn, "finished": finished}

    def settle_paid_purchases(self) -> dict[str, Any]:
        with session_scope(self._session_factory) as session:
            return {"settled": self._settlement.settle_pending(session)}

    def expire_purchases(self) -> dict[str, Any]:
        with session_scope(self._session_factory) as session:
            return {"expired": self._purchases.expire_pending_purchases(session)}

    def cleanup(self) -> dict[str, Any]:
        with session_scope(self._session_factory) as session:
            return self._purchases.cleanup(session)

    def by_name(self) -> dict[str, Callable[[], dict[str, Any]]]:
        return {
            "check_rounds": self.check_rounds,
            "auto_draw": self.auto_draw,
            "settle_paid_purchases": self.settle_paid_purchases,
            "expire_purchases": self.expire_purchases,
            "cleanup": self.cleanup,
        }


def run_job(name: str, func: Callable[[], Any]) -> Any:
    try:
        result = func()
    except Exception:
        logger.exception("Job %s failed", name)
        return None
    logger.debug("Job %s done: %s", name, result)
    return result


class Scheduler:
    def __init__(self, jobs: list[Job], clock: Callable[[], float] = time.monotonic) -> None:
        self.jobs = jobs
        self._clock = clock
        self._stop = Event()

    @classmethod
    def from_config(cls, jobs: Jobs, config: Any) -> Scheduler:
        bodies = jobs.by_name()
        intervals = {
            "check_rounds": config["ROUND_CHECK_INTERVAL"],
            "auto_draw": config["DRAW_INTERVAL"],
            "settle_paid_purchases": config["SETTLEMENT_INTERVAL"],
            "expire_purchases": config["EXPIRY_INTERVAL"],
            "cleanup": config["CLEANUP_INTERVAL"],
        }
        return cls([Job(name=name, interval=float(intervals[name]), run=bodies[name]) for name in bodies])

    def run_pending(self) -> list[str]:
        """Run every job that is due. Returns the names that ran."""

        now = self._clock()
        ran: list[str] = []
        for job in self.jobs:
            if now >= job.next_run:
                run_job(job.name, job.run)
                job.next_run = now + job.interval
                ran.append(job.name)
        return ran

    def run_forever(self, poll_seconds: float = 1.0) -> None:
        logger.info("Scheduler started with jobs: %s", ", ".join(j.name for j in self.jobs))
        while not self._stop.is_set():
            self.run_pending()
            self._stop.wait(poll_seconds)
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stop.set()
