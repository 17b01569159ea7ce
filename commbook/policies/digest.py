"""
commbook/policies/digest.py
Daily digest: every communication logged since the last digest.

Suppression: an empty digest is not sent twice on the same day. The very
first run (no watermark) always produces a digest, even with 0 records.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from commbook.models.record import EmailMessage
from commbook.policies.base import QueryFn
from commbook.render import ReportRenderer
from commbook.roster import RosterSnapshot
from commbook.timewindows import start_of_day

logger = logging.getLogger(__name__)

DIGEST_SUBJECT = "Daily communications report"


class DailyDigestPolicy:

    def __init__(self, query: QueryFn, roster: RosterSnapshot, renderer: ReportRenderer):
        self.query = query
        self.roster = roster
        self.renderer = renderer

    def evaluate(self, last_run_at: Optional[datetime], now: datetime) -> Optional[EmailMessage]:
        today = start_of_day(now)
        window_start = last_run_at or today
        communications = self.query(window_start, None)

        if not communications and last_run_at is not None and last_run_at > today:
            logger.info("Digest suppressed: nothing new and already sent today")
            return None

        logger.info(f"Digest: {len(communications)} communications since {window_start.isoformat()}")
        return EmailMessage(
            subject=DIGEST_SUBJECT,
            html=self.renderer.render(communications, self.roster, now),
        )
