"""
commbook/orchestrator.py
Runs one report tick: daily digest, weekly escalations, cumulative alerts.

TICK:
  1. Load a fresh roster snapshot and resolve recipients and sender. If
     either is missing the tick is a no-op (not an error): no watermark is
     read or written and nothing is sent.
  2. Read the three run watermarks.
  3. Evaluate the three policies concurrently. Cumulative counter writes
     are staged, not written. A store or roster error here aborts the tick
     with every watermark untouched.
  4. Per policy, in order: dispatch its e-mails (in parallel, failures
     logged and counted), then advance that policy's watermarks.
       - digest:     lastDailyReport advances only if the digest was sent
       - weekly:     lastStudentSpecificDailyReport advances regardless
       - cumulative: staged counters flushed, lastAcumulativeReport advances
                     regardless

KNOWN GAP:
  Weekly/cumulative watermarks advance even when some of their e-mails
  failed, so a transient mail server error drops those alerts. There is no
  retry queue; failures are only visible in the logs and RunResult.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from commbook.config import resolve_from_address, resolve_path
from commbook.mail.base import Mailer
from commbook.models.record import EmailMessage
from commbook.policies.cumulative import CUMULATIVE_THRESHOLD, CumulativeAlertPolicy
from commbook.policies.digest import DailyDigestPolicy
from commbook.policies.weekly import (
    WEEKLY_REPEAT_THRESHOLD,
    WEEKLY_THRESHOLD,
    WeeklyEscalationPolicy,
)
from commbook.render import ReportRenderer
from commbook.roster import RosterSnapshot, load_roster
from commbook.store.communications import CommunicationStore
from commbook.store.watermarks import (
    LAST_CUMULATIVE_RUN,
    LAST_DIGEST_RUN,
    LAST_WEEKLY_RUN,
    SqliteWatermarkStore,
    StagedWatermarks,
    WatermarkStore,
)
from commbook.timewindows import SUNDAY, load_timezone

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    sent:         int  = 0
    failures:     int  = 0
    executed:     bool = False   # False = short-circuited by configuration
    digest:       bool = False
    weekly:       int  = 0
    cumulative:   int  = 0


class ReportOrchestrator:
    """
    Usage:
        orch = ReportOrchestrator.from_config(load_config(root), root)
        result = orch.run()
    """

    def __init__(
        self,
        config:         Dict[str, Any],
        communications: CommunicationStore,
        watermarks:     WatermarkStore,
        roster_loader:  Callable[[], RosterSnapshot],
        mailer:         Optional[Mailer] = None,
        tz=timezone.utc,
    ):
        self.config = config
        self.communications = communications
        self.watermarks = watermarks
        self.roster_loader = roster_loader
        self.mailer = mailer
        self.tz = tz
        self.renderer = ReportRenderer(config.get("app_url") or "http://localhost:8000")

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        project_root: Optional[Path] = None,
        mailer: Optional[Mailer] = None,
    ) -> "ReportOrchestrator":
        tz = load_timezone(config.get("timezone"))
        db_path = resolve_path(config, "db_path", project_root)
        settings_path = resolve_path(config, "settings_path", project_root)
        return cls(
            config         = config,
            communications = CommunicationStore(db_path, tz=tz),
            watermarks     = SqliteWatermarkStore(db_path),
            roster_loader  = lambda: load_roster(settings_path),
            mailer         = mailer,
            tz             = tz,
        )

    # ── CONFIGURATION ─────────────────────────────────────────────────────

    def _recipients(self, roster: RosterSnapshot) -> List[str]:
        configured = self.config.get("report_to_emails") or []
        return list(configured or roster.report_to_emails)

    def _resolve_mailer(self) -> Optional[Mailer]:
        if self.mailer is None:
            from commbook.mail.smtp_mailer import SmtpMailer
            try:
                self.mailer = SmtpMailer.from_config(self.config)
            except ValueError as e:
                logger.warning(f"Mail transport not configured: {e}")
                return None
        return self.mailer

    # ── RUN ───────────────────────────────────────────────────────────────

    def run(self, now: Optional[datetime] = None) -> RunResult:
        now = now or datetime.now(self.tz)
        roster = self.roster_loader()

        recipients = self._recipients(roster)
        if not recipients:
            logger.info("No emails to send report to")
            return RunResult()
        if not resolve_from_address(self.config):
            logger.info("No from email configured")
            return RunResult()
        mailer = self._resolve_mailer()
        if mailer is None:
            return RunResult()

        last_digest     = self.watermarks.get_datetime(LAST_DIGEST_RUN)
        last_weekly     = self.watermarks.get_datetime(LAST_WEEKLY_RUN)
        last_cumulative = self.watermarks.get_datetime(LAST_CUMULATIVE_RUN)

        digest_policy, weekly_policy, cumulative_policy = self._policies(roster)
        staged = StagedWatermarks(self.watermarks)

        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="policy") as pool:
            f_digest = pool.submit(digest_policy.evaluate, last_digest, now)
            f_weekly = pool.submit(weekly_policy.evaluate, last_weekly, now)
            f_cumulative = pool.submit(
                cumulative_policy.evaluate, last_cumulative, now,
                staged.read_int, staged.write_int,
            )
            try:
                digest = f_digest.result()
                weekly = f_weekly.result()
                cumulative = f_cumulative.result()
            except Exception as e:
                logger.error(f"Report tick aborted, watermarks unchanged: {e}")
                raise

        result = RunResult(executed=True)

        if digest is not None:
            ok, failed = self._dispatch(mailer, recipients, [digest])
            result.sent += ok
            result.failures += failed
            if ok:
                result.digest = True
                self.watermarks.advance_datetime(LAST_DIGEST_RUN, now)

        ok, failed = self._dispatch(mailer, recipients, weekly)
        result.sent += ok
        result.failures += failed
        result.weekly = ok
        self.watermarks.advance_datetime(LAST_WEEKLY_RUN, now)

        ok, failed = self._dispatch(mailer, recipients, cumulative)
        result.sent += ok
        result.failures += failed
        result.cumulative = ok
        staged.flush()
        self.watermarks.advance_datetime(LAST_CUMULATIVE_RUN, now)

        logger.info(
            f"Report tick complete: {result.sent} sent, {result.failures} failed "
            f"(digest={result.digest}, weekly={result.weekly}, cumulative={result.cumulative})"
        )
        return result

    def _policies(self, roster: RosterSnapshot):
        query = self.communications.query
        cfg = self.config
        return (
            DailyDigestPolicy(query, roster, self.renderer),
            WeeklyEscalationPolicy(
                query, roster, self.renderer,
                threshold        = int(cfg.get("weekly_threshold") or WEEKLY_THRESHOLD),
                repeat_threshold = int(cfg.get("weekly_repeat_threshold") or WEEKLY_REPEAT_THRESHOLD),
                week_start       = int(cfg.get("week_start", SUNDAY)),
            ),
            CumulativeAlertPolicy(
                query, roster, self.renderer,
                threshold = int(cfg.get("cumulative_threshold") or CUMULATIVE_THRESHOLD),
            ),
        )

    # ── DISPATCH ──────────────────────────────────────────────────────────

    def _send_one(self, mailer: Mailer, recipients: Sequence[str], email: EmailMessage) -> bool:
        try:
            mailer.send(recipients, email.subject, email.html)
            return True
        except Exception as e:
            logger.error(f"Failed to send {email.subject!r}: {e}", exc_info=True)
            return False

    def _dispatch(
        self,
        mailer:     Mailer,
        recipients: Sequence[str],
        emails:     Sequence[EmailMessage],
    ) -> Tuple[int, int]:
        """Send independently, in parallel. Returns (sent, failed)."""
        if not emails:
            return 0, 0
        workers = max(1, min(int(self.config.get("mail_workers") or 4), len(emails)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mail") as pool:
            outcomes = list(pool.map(lambda e: self._send_one(mailer, recipients, e), emails))
        sent = sum(outcomes)
        return sent, len(outcomes) - sent
