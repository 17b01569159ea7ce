"""
tests/test_policies.py
Daily digest, weekly escalation and cumulative alert policies, evaluated
against an in-memory record list.
"""

from datetime import timedelta

import pytest

from commbook.models.record import CommunicationRecord
from commbook.policies.cumulative import CumulativeAlertPolicy
from commbook.policies.digest import DIGEST_SUBJECT, DailyDigestPolicy
from commbook.policies.weekly import WeeklyEscalationPolicy
from commbook.render import ReportRenderer
from commbook.store.watermarks import CumulativeKey
from conftest import dt, list_query

APP_URL = "https://school.example"


def _make_records():
    return []


def _rec(records, enrolment, at, message="Llegó tarde", subject="MAT3"):
    rec = CommunicationRecord(
        id=len(records) + 1,
        student_enrolment=enrolment,
        subject_code=subject,
        teacher_email="ana@school.edu",
        message=message,
        timestamp=at,
    )
    records.append(rec)
    return rec


# ── DAILY DIGEST ─────────────────────────────────────────────

class TestDailyDigest:
    def _policy(self, records, roster):
        return DailyDigestPolicy(list_query(records), roster, ReportRenderer(APP_URL))

    def test_first_run_with_no_records_still_sends(self, roster):
        email = self._policy([], roster).evaluate(None, dt(12, 8))
        assert email is not None
        assert email.subject == DIGEST_SUBJECT
        assert "0 communications registered on 12/03/2025" in email.html

    def test_first_run_covers_today_only(self, roster):
        records = _make_records()
        _rec(records, "E001", dt(11, 14))
        _rec(records, "E002", dt(12, 7))
        email = self._policy(records, roster).evaluate(None, dt(12, 8))
        assert "1 communications registered" in email.html
        assert "María Ruiz" in email.html
        assert "Juan Díaz" not in email.html

    def test_empty_digest_not_repeated_same_day(self, roster):
        assert self._policy([], roster).evaluate(dt(12, 8), dt(12, 15)) is None

    def test_empty_digest_sent_on_new_day(self, roster):
        email = self._policy([], roster).evaluate(dt(11, 15), dt(12, 8))
        assert email is not None
        assert "0 communications" in email.html

    def test_covers_everything_since_last_run(self, roster):
        records = _make_records()
        _rec(records, "E001", dt(11, 14))
        _rec(records, "E001", dt(11, 16))
        _rec(records, "E002", dt(12, 7))
        email = self._policy(records, roster).evaluate(dt(11, 15), dt(12, 8))
        assert "2 communications registered" in email.html

    def test_new_records_sent_same_day(self, roster):
        records = _make_records()
        _rec(records, "E001", dt(12, 10))
        email = self._policy(records, roster).evaluate(dt(12, 8), dt(12, 15))
        assert email is not None
        assert "1 communications registered" in email.html


# ── WEEKLY ESCALATION ────────────────────────────────────────

class TestWeeklyEscalation:
    def _policy(self, records, roster, **kw):
        return WeeklyEscalationPolicy(list_query(records), roster, ReportRenderer(APP_URL), **kw)

    def test_escalates_on_reaching_threshold(self, roster):
        records = _make_records()
        policy = self._policy(records, roster)

        _rec(records, "E001", dt(10, 8))
        assert policy.evaluate(None, dt(10, 9)) == []
        _rec(records, "E001", dt(11, 8))
        assert policy.evaluate(dt(10, 9), dt(11, 9)) == []
        _rec(records, "E001", dt(12, 8))
        emails = policy.evaluate(dt(11, 9), dt(12, 9))

        assert len(emails) == 1
        assert "3 communications" in emails[0].subject
        assert "E001" in emails[0].subject
        assert "Juan Díaz" in emails[0].html
        assert "this week" in emails[0].html

    def test_not_repeated_without_new_records(self, roster):
        records = _make_records()
        for day in (10, 11, 12):
            _rec(records, "E001", dt(day, 8))
        policy = self._policy(records, roster)
        assert len(policy.evaluate(dt(11, 9), dt(12, 9))) == 1
        assert policy.evaluate(dt(12, 9), dt(13, 9)) == []

    def test_backs_off_until_repeat_threshold(self, roster):
        records = _make_records()
        for day in (10, 11, 12):
            _rec(records, "E001", dt(day, 8))
        policy = self._policy(records, roster)
        assert len(policy.evaluate(dt(11, 9), dt(12, 9))) == 1

        _rec(records, "E001", dt(13, 10))
        _rec(records, "E001", dt(13, 11))
        assert policy.evaluate(dt(12, 9), dt(14, 9)) == []

        _rec(records, "E001", dt(14, 10))
        emails = policy.evaluate(dt(14, 9), dt(14, 15))
        assert len(emails) == 1
        assert "6 communications" in emails[0].subject

        assert policy.evaluate(dt(14, 15), dt(14, 16)) == []

    def test_threshold_crossed_once_alerts_once(self, roster):
        records = _make_records()
        policy = self._policy(records, roster)
        last = None
        sent = 0
        # One tick per hour from Monday 08:00, a new record every third tick, up to 5
        for tick in range(30):
            now = dt(10, 8) + timedelta(hours=tick)
            if tick % 3 == 0 and len(records) < 5:
                _rec(records, "E001", now - timedelta(minutes=30))
            sent += len(policy.evaluate(last, now))
            last = now
        assert sent == 1

    def test_rerun_at_same_instant_sends_nothing(self, roster):
        policy_now = dt(12, 15)
        for n in range(3, 9):
            records = _make_records()
            for i in range(n):
                _rec(records, "E001", dt(10, 8) + timedelta(hours=i))
            assert self._policy(records, roster).evaluate(policy_now, policy_now) == []

    def test_previous_week_not_counted(self, roster):
        records = _make_records()
        _rec(records, "E001", dt(7, 10))
        _rec(records, "E001", dt(8, 10))
        _rec(records, "E001", dt(10, 10))
        _rec(records, "E001", dt(11, 10))
        assert self._policy(records, roster).evaluate(dt(7, 15), dt(12, 9)) == []

    def test_one_email_per_student(self, roster):
        records = _make_records()
        for day in (10, 11, 12):
            _rec(records, "E001", dt(day, 8))
            _rec(records, "E002", dt(day, 8), subject="HIS5")
        _rec(records, "E003", dt(10, 8))
        emails = self._policy(records, roster).evaluate(dt(11, 9), dt(12, 9))
        assert sorted(e.subject for e in emails) == [
            "Weekly alert: 3 communications for E001",
            "Weekly alert: 3 communications for E002",
        ]

    def test_unknown_student_still_escalated(self, roster):
        records = _make_records()
        for day in (10, 11, 12):
            _rec(records, "X999", dt(day, 8))
        emails = self._policy(records, roster).evaluate(None, dt(12, 9))
        assert len(emails) == 1
        assert "X999" in emails[0].html

    def test_custom_thresholds(self, roster):
        records = _make_records()
        _rec(records, "E001", dt(10, 8))
        _rec(records, "E001", dt(11, 8))
        policy = self._policy(records, roster, threshold=2, repeat_threshold=4)
        assert len(policy.evaluate(dt(10, 9), dt(11, 9))) == 1

    def test_repeat_threshold_must_exceed_threshold(self, roster):
        with pytest.raises(ValueError):
            self._policy([], roster, threshold=3, repeat_threshold=3)


# ── CUMULATIVE ALERT ─────────────────────────────────────────

class TestCumulativeAlert:
    def _evaluate(self, records, roster, counters, now, last=None, **kw):
        policy = CumulativeAlertPolicy(list_query(records), roster, ReportRenderer(APP_URL), **kw)
        return policy.evaluate(last, now, counters.get, counters.__setitem__)

    def test_alert_at_threshold_then_every_threshold_more(self, roster):
        records = _make_records()
        counters = {}
        key = CumulativeKey(2025, "E002", "Llegó tarde")

        for day in (3, 4, 5):
            _rec(records, "E002", dt(day, 8), subject="HIS5")
        emails = self._evaluate(records, roster, counters, dt(5, 9))
        assert len(emails) == 1
        assert emails[0].subject == "Cumulative alert: 3 communications for E002"
        assert counters[key] == 3

        for day in (6, 7):
            _rec(records, "E002", dt(day, 8), subject="HIS5")
        assert self._evaluate(records, roster, counters, dt(7, 9)) == []
        assert counters[key] == 3

        _rec(records, "E002", dt(10, 8), subject="HIS5")
        emails = self._evaluate(records, roster, counters, dt(10, 9))
        assert len(emails) == 1
        assert "6 communications" in emails[0].subject
        assert counters[key] == 6

    def test_messages_counted_separately(self, roster):
        records = _make_records()
        for day in (3, 4):
            _rec(records, "E001", dt(day, 8), message="Llegó tarde")
            _rec(records, "E001", dt(day, 9), message="Conducta")
        counters = {}
        assert self._evaluate(records, roster, counters, dt(5, 9)) == []
        assert counters == {}

    def test_students_counted_separately(self, roster):
        records = _make_records()
        for day in (3, 4, 5):
            _rec(records, "E001", dt(day, 8))
        _rec(records, "E002", dt(5, 8))
        counters = {}
        emails = self._evaluate(records, roster, counters, dt(5, 9))
        assert [e.subject for e in emails] == ["Cumulative alert: 3 communications for E001"]

    def test_previous_year_not_counted(self, roster):
        records = _make_records()
        for day in (29, 30, 31):
            _rec(records, "E001", dt(day, 8, month=12, year=2024))
        _rec(records, "E001", dt(2, 8, month=1))
        assert self._evaluate(records, roster, {}, dt(5, 9)) == []

    def test_counter_keys_include_year(self, roster):
        records = _make_records()
        for day in (29, 30, 31):
            _rec(records, "E001", dt(day, 8, month=12, year=2024))
        counters = {}
        self._evaluate(records, roster, counters, dt(31, 9, month=12, year=2024))
        assert list(counters) == [CumulativeKey(2024, "E001", "Llegó tarde")]

    def test_quotes_the_message_escaped(self, roster):
        records = _make_records()
        for day in (3, 4, 5):
            _rec(records, "E001", dt(day, 8), message="<b>tarde</b>")
        emails = self._evaluate(records, roster, {}, dt(5, 9))
        assert "&lt;b&gt;tarde&lt;/b&gt;" in emails[0].html
        assert "<b>tarde</b>" not in emails[0].html

    def test_custom_threshold(self, roster):
        records = _make_records()
        for day in (3, 4):
            _rec(records, "E001", dt(day, 8))
        counters = {}
        assert len(self._evaluate(records, roster, counters, dt(5, 9), threshold=2)) == 1

    def test_non_positive_threshold_rejected(self, roster):
        with pytest.raises(ValueError):
            CumulativeAlertPolicy(list_query([]), roster, ReportRenderer(APP_URL), threshold=0)
