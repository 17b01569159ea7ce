"""
commbook/roster.py
Read-only snapshot of the school roster (teachers, students, subjects,
general settings) loaded from the JSON settings files the web app edits.

A snapshot is built explicitly at the start of each report tick and passed
into the policies. There is no process-wide cache: editing the settings
files takes effect on the next tick.

FILES (in settings_path):
  teachers.json   [{"name", "email"}]
  students.json   [{"name", "enrolment", "coursingYear", "motherEmail"?, "fatherEmail"?}]
  subjects.json   [{"name", "code", "teachers": [...], "courseYear"}]
  general.json    {"messages": [...], "admins": [...]?, "reportToEmails": [...]?}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from commbook.errors import RosterError
from commbook.models.record import Student, Subject, Teacher

logger = logging.getLogger(__name__)

MIN_COURSE = 1
MAX_COURSE = 7


# ── FILE SCHEMAS ─────────────────────────────────────────────

class _FileModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TeacherEntry(_FileModel):
    name:  str
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+$")


class StudentEntry(_FileModel):
    name:          str
    enrolment:     str
    coursing_year: int           = Field(alias="coursingYear", ge=MIN_COURSE, le=MAX_COURSE)
    mother_email:  Optional[str] = Field(default=None, alias="motherEmail")
    father_email:  Optional[str] = Field(default=None, alias="fatherEmail")


class SubjectEntry(_FileModel):
    name:        str
    code:        str
    teachers:    List[str]
    course_year: int = Field(alias="courseYear", ge=MIN_COURSE, le=MAX_COURSE)


class GeneralSettings(_FileModel):
    messages:         List[str]
    admins:           Optional[List[str]] = None
    report_to_emails: List[str]           = Field(default_factory=list, alias="reportToEmails")


# ── SNAPSHOT ─────────────────────────────────────────────────

@dataclass(frozen=True)
class RosterSnapshot:
    """Immutable lookup tables. Build with load_roster() or from_entries()."""
    students_by_enrolment: Dict[str, Student] = field(default_factory=dict)
    teachers_by_email:     Dict[str, Teacher] = field(default_factory=dict)
    subjects_by_code:      Dict[str, Subject] = field(default_factory=dict)
    messages:              Tuple[str, ...]    = ()
    admins:                Tuple[str, ...]    = ()
    report_to_emails:      Tuple[str, ...]    = ()

    def resolve_student(self, enrolment: str) -> Optional[Student]:
        """Enrolment lookup is case-insensitive."""
        return self.students_by_enrolment.get(enrolment.lower())

    def resolve_teacher(self, email: str) -> Optional[Teacher]:
        return self.teachers_by_email.get(email)

    def resolve_subject(self, code: str) -> Optional[Subject]:
        return self.subjects_by_code.get(code)

    @classmethod
    def from_entries(
        cls,
        teachers: List[TeacherEntry] = (),
        students: List[StudentEntry] = (),
        subjects: List[SubjectEntry] = (),
        general:  Optional[GeneralSettings] = None,
    ) -> "RosterSnapshot":
        general = general or GeneralSettings(messages=[])
        return cls(
            students_by_enrolment={
                s.enrolment.lower(): Student(
                    name=s.name,
                    enrolment=s.enrolment,
                    coursing_year=s.coursing_year,
                    mother_email=s.mother_email,
                    father_email=s.father_email,
                )
                for s in students
            },
            teachers_by_email={t.email: Teacher(name=t.name, email=t.email) for t in teachers},
            subjects_by_code={
                s.code: Subject(
                    name=s.name,
                    code=s.code,
                    course_year=s.course_year,
                    teachers=tuple(s.teachers),
                )
                for s in subjects
            },
            messages=tuple(general.messages),
            admins=tuple(general.admins or ()),
            report_to_emails=tuple(general.report_to_emails),
        )


def _read_json(path: Path):
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise RosterError(f"Cannot read settings file {path.name}: {e}") from e


def load_roster(settings_path: Path) -> RosterSnapshot:
    """
    Read and validate all four settings files.
    Raises RosterError if any file is missing or fails validation.
    """
    settings_path = Path(settings_path)
    try:
        teachers = [TeacherEntry.model_validate(t) for t in _read_json(settings_path / "teachers.json")]
        students = [StudentEntry.model_validate(s) for s in _read_json(settings_path / "students.json")]
        subjects = [SubjectEntry.model_validate(s) for s in _read_json(settings_path / "subjects.json")]
        general = GeneralSettings.model_validate(_read_json(settings_path / "general.json"))
    except (ValidationError, TypeError) as e:
        raise RosterError(f"Invalid settings in {settings_path}: {e}") from e

    roster = RosterSnapshot.from_entries(teachers, students, subjects, general)
    logger.debug(
        f"Roster loaded from {settings_path}: {len(teachers)} teachers, "
        f"{len(students)} students, {len(subjects)} subjects"
    )
    return roster
