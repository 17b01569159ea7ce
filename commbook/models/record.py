"""
commbook/models/record.py
Shared dataclass schema. Stores, policies, the renderer and the orchestrator
use these types. Do not add logic here, data only.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class CommunicationRecord:
    """One logged teacher note about a student."""
    id:                 int
    student_enrolment:  str
    subject_code:       str
    teacher_email:      str
    message:            str         # category label, e.g. "Llegó tarde"
    timestamp:          datetime    # when the incident happened, not when it was logged
    comment:            str           = ''
    action_taken:       Optional[str] = None
    pool_id:            Optional[str] = None   # display only


@dataclass(frozen=True)
class EmailMessage:
    """Outbound report. Recipients are resolved by the orchestrator."""
    subject: str
    html:    str


@dataclass(frozen=True)
class Student:
    name:          str
    enrolment:     str
    coursing_year: int
    mother_email:  Optional[str] = None
    father_email:  Optional[str] = None


@dataclass(frozen=True)
class Teacher:
    name:  str
    email: str


@dataclass(frozen=True)
class Subject:
    name:        str
    code:        str
    course_year: int
    teachers:    tuple = ()
