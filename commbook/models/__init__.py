from commbook.models.record import (
    CommunicationRecord,
    EmailMessage,
    Student,
    Subject,
    Teacher,
)

__all__ = [
    "CommunicationRecord",
    "EmailMessage",
    "Student",
    "Subject",
    "Teacher",
]
