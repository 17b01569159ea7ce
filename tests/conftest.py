"""
tests/conftest.py
Shared fixtures: a small roster, SQLite stores in tmp_path, a recording mailer.
All tests run in UTC with the week starting on Sunday.

Calendar used throughout (2025):
  Sun 09 Mar: start of the reference week
  Wed 12 Mar: "today" in most tests
"""

import json
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from commbook.mail.base import Mailer
from commbook.roster import (
    GeneralSettings,
    RosterSnapshot,
    StudentEntry,
    SubjectEntry,
    TeacherEntry,
)
from commbook.store.communications import CommunicationStore
from commbook.store.watermarks import SqliteWatermarkStore

UTC = timezone.utc


def dt(day: int, hour: int = 10, minute: int = 0, month: int = 3, year: int = 2025) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=UTC)


TEACHERS = [
    {"name": "Ana Gómez", "email": "ana@school.edu"},
    {"name": "Luis Pérez", "email": "luis@school.edu"},
]
STUDENTS = [
    {"name": "Juan Díaz", "enrolment": "E001", "coursingYear": 3},
    {"name": "María Ruiz", "enrolment": "E002", "coursingYear": 5, "motherEmail": "mama@mail.com"},
    {"name": "Sofía Paz", "enrolment": "E003", "coursingYear": 1},
]
SUBJECTS = [
    {"name": "Matemática", "code": "MAT3", "teachers": ["ana@school.edu"], "courseYear": 3},
    {"name": "Historia", "code": "HIS5", "teachers": ["luis@school.edu"], "courseYear": 5},
]
GENERAL = {
    "messages": ["Llegó tarde", "No trajo la tarea", "Conducta"],
    "admins": ["director@school.edu"],
    "reportToEmails": ["director@school.edu", "preceptor@school.edu"],
}


def write_settings(settings_dir: Path, general: dict = None) -> Path:
    settings_dir.mkdir(parents=True, exist_ok=True)
    (settings_dir / "teachers.json").write_text(json.dumps(TEACHERS), encoding="utf-8")
    (settings_dir / "students.json").write_text(json.dumps(STUDENTS), encoding="utf-8")
    (settings_dir / "subjects.json").write_text(json.dumps(SUBJECTS), encoding="utf-8")
    (settings_dir / "general.json").write_text(
        json.dumps(GENERAL if general is None else general), encoding="utf-8"
    )
    return settings_dir


def make_roster(report_to_emails=None) -> RosterSnapshot:
    general = dict(GENERAL)
    if report_to_emails is not None:
        general["reportToEmails"] = report_to_emails
    return RosterSnapshot.from_entries(
        teachers=[TeacherEntry.model_validate(t) for t in TEACHERS],
        students=[StudentEntry.model_validate(s) for s in STUDENTS],
        subjects=[SubjectEntry.model_validate(s) for s in SUBJECTS],
        general=GeneralSettings.model_validate(general),
    )


class RecordingMailer(Mailer):
    """Keeps every send; raises for subjects containing any of fail_on."""

    def __init__(self, fail_on=()):
        self.sent = []
        self.fail_on = tuple(fail_on)
        self._lock = threading.Lock()

    def send(self, to, subject, html):
        if any(marker in subject for marker in self.fail_on):
            raise OSError(f"SMTP down for {subject}")
        with self._lock:
            self.sent.append({"to": list(to), "subject": subject, "html": html})

    @property
    def subjects(self):
        return sorted(m["subject"] for m in self.sent)


@pytest.fixture
def roster():
    return make_roster()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "commbook.db"


@pytest.fixture
def comm_store(db_path):
    return CommunicationStore(db_path, tz=UTC)


@pytest.fixture
def watermarks(db_path):
    return SqliteWatermarkStore(db_path)


@pytest.fixture
def mailer():
    return RecordingMailer()


def list_query(records):
    """QueryFn over a plain list; the list may be extended between calls."""
    def query(from_, to):
        return [
            r for r in records
            if (from_ is None or r.timestamp >= from_) and (to is None or r.timestamp <= to)
        ]
    return query
