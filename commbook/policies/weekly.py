"""
commbook/policies/weekly.py
Weekly escalation: one alert per student with repeated communications in
the current week.

BACK-OFF:
  A student is escalated when their weekly count reaches `threshold` (3).
  Once escalated, they are not escalated again until the count reaches
  `repeat_threshold` (6). A student with nothing new since the last tick is
  never escalated again, whatever the count.

  "Already escalated" is inferred from the records older than the last run:
  if at least `threshold` of them existed when the previous tick ran, that
  tick already sent the alert.

The counting window always starts at the beginning of the current week,
so a stale watermark from a previous week never pulls last week's records in.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from commbook.models.record import EmailMessage
from commbook.policies.base import QueryFn, group_by
from commbook.render import ReportRenderer, format_date
from commbook.roster import RosterSnapshot
from commbook.timewindows import SUNDAY, start_of_week

logger = logging.getLogger(__name__)

WEEKLY_THRESHOLD        = 3
WEEKLY_REPEAT_THRESHOLD = 6


class WeeklyEscalationPolicy:

    def __init__(
        self,
        query:            QueryFn,
        roster:           RosterSnapshot,
        renderer:         ReportRenderer,
        threshold:        int = WEEKLY_THRESHOLD,
        repeat_threshold: int = WEEKLY_REPEAT_THRESHOLD,
        week_start:       int = SUNDAY,
    ):
        if repeat_threshold <= threshold:
            raise ValueError(
                f"repeat_threshold ({repeat_threshold}) must exceed threshold ({threshold})"
            )
        self.query = query
        self.roster = roster
        self.renderer = renderer
        self.threshold = threshold
        self.repeat_threshold = repeat_threshold
        self.week_start = week_start

    def evaluate(self, last_run_at: Optional[datetime], now: datetime) -> List[EmailMessage]:
        week_start = start_of_week(now, self.week_start)
        cutoff = last_run_at or week_start
        communications = self.query(week_start, None)

        result: List[EmailMessage] = []
        for enrolment, records in group_by(communications, lambda c: c.student_enrolment).items():
            count = len(records)
            if count < self.threshold:
                continue

            prior_count = sum(1 for r in records if r.timestamp < cutoff)
            if prior_count >= self.threshold and count < self.repeat_threshold:
                logger.debug(f"Weekly: {enrolment} already escalated ({prior_count}/{count})")
                continue
            if prior_count == count:
                logger.debug(f"Weekly: {enrolment} has nothing new since last run ({count})")
                continue

            logger.info(f"Weekly escalation: {enrolment} has {count} communications this week")
            result.append(self._email(enrolment, records, now))

        return result

    def _email(self, enrolment: str, records, now: datetime) -> EmailMessage:
        count = len(records)
        student = self.roster.resolve_student(enrolment)
        who = f"{enrolment} - {student.name}" if student else enrolment
        return EmailMessage(
            subject=f"Weekly alert: {count} communications for {enrolment}",
            html=self.renderer.render(
                records, self.roster, now,
                heading=f"Alert: {count} communications for {who}",
                intro=(
                    f"Student {who} has {count} communications this week "
                    f"as of {format_date(now)}"
                ),
            ),
        )
