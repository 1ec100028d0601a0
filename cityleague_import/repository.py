"""Persistence of city league schedules and results."""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from cityleague_import.models import CityleagueResult, CityleagueSchedule

logger = logging.getLogger(__name__)

_PG_UNIQUE_VIOLATION = "23505"


class ScheduleNotFoundError(LookupError):
    pass


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == _PG_UNIQUE_VIOLATION:
        return True
    return "UNIQUE constraint failed" in str(orig)


class ResultRepository:
    """Range lookup of schedules plus idempotent result inserts.

    Every call opens its own session, so one repository can be shared by all
    worker threads.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def find_schedule_for_date(self, when: date | datetime) -> CityleagueSchedule:
        day = when.date() if isinstance(when, datetime) else when
        with self._session_factory() as db:
            schedule = (
                db.query(CityleagueSchedule)
                .filter(
                    CityleagueSchedule.from_date <= day,
                    CityleagueSchedule.to_date >= day,
                )
                .order_by(CityleagueSchedule.from_date.asc())
                .first()
            )
        if schedule is None:
            raise ScheduleNotFoundError(f"no city league schedule covers {day.isoformat()}")
        return schedule

    def insert_result(self, result: CityleagueResult) -> bool:
        """Insert one result row.

        Returns False when a row with the same (schedule, event, player)
        identity already exists; any other database error propagates.
        """
        with self._session_factory() as db:
            db.add(result)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                if is_unique_violation(exc):
                    logger.debug(
                        "Result already recorded schedule=%s event=%s player=%s",
                        result.cityleague_schedule_id,
                        result.official_event_id,
                        result.player_id,
                    )
                    return False
                raise
        return True
