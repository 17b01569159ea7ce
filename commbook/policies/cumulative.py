"""
commbook/policies/cumulative.py
Cumulative alert: a student accumulating repeated communications with the
same message in the current calendar year.

Each (year, student, message) has its own counter holding the count at the
last alert. An alert fires whenever the yearly count is at least
`threshold` above that counter, and the counter is moved up to the count
(a high-water mark, not an increment). Counters reset with the year because
the year is part of the key.

The whole year is rescanned every tick: counts must be cumulative, so there
is no incremental window.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from commbook.models.record import EmailMessage
from commbook.policies.base import QueryFn, group_by
from commbook.render import ReportRenderer
from commbook.roster import RosterSnapshot
from commbook.store.watermarks import CumulativeKey
from commbook.timewindows import start_of_year

logger = logging.getLogger(__name__)

CUMULATIVE_THRESHOLD = 3

WatermarkReader = Callable[[CumulativeKey], int]
WatermarkWriter = Callable[[CumulativeKey, int], None]


class CumulativeAlertPolicy:

    def __init__(
        self,
        query:     QueryFn,
        roster:    RosterSnapshot,
        renderer:  ReportRenderer,
        threshold: int = CUMULATIVE_THRESHOLD,
    ):
        if threshold < 1:
            raise ValueError(f"threshold must be positive, got {threshold}")
        self.query = query
        self.roster = roster
        self.renderer = renderer
        self.threshold = threshold

    def evaluate(
        self,
        last_run_at: Optional[datetime],
        now:         datetime,
        read:        WatermarkReader,
        write:       WatermarkWriter,
    ) -> List[EmailMessage]:
        year_start = start_of_year(now)
        year = year_start.year
        communications = self.query(year_start, None)
        logger.debug(
            f"Cumulative: {len(communications)} communications in {year} "
            f"(last run {last_run_at.isoformat() if last_run_at else 'never'})"
        )

        result: List[EmailMessage] = []
        by_student = group_by(communications, lambda c: c.student_enrolment)
        for student, student_records in by_student.items():
            for message, records in group_by(student_records, lambda c: c.message).items():
                key = CumulativeKey(year=year, student=student, message=message)
                count = len(records)
                already = read(key) or 0
                if count - already < self.threshold:
                    continue

                write(key, count)
                logger.info(f"Cumulative alert: {student} has {count}x same message in {year}")
                result.append(self._email(student, message, records, year, now))

        return result

    def _email(self, student: str, message: str, records, year: int, now: datetime) -> EmailMessage:
        count = len(records)
        return EmailMessage(
            subject=f"Cumulative alert: {count} communications for {student}",
            html=self.renderer.render(
                records, self.roster, now,
                heading=f"Cumulative alert: {count} communications for {student}",
                intro=(
                    f"Student {student} has {count} communications in {year} "
                    f"with the same message"
                ),
                quote=message,
            ),
        )
