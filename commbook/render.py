"""
commbook/render.py
HTML bodies for report e-mails.

Every report is the same page shell: an optional heading/intro block
followed by the list of communications it is about, each linked back to the
web app. All roster and record text is HTML-escaped.
"""

from __future__ import annotations

from datetime import datetime
from html import escape
from typing import List, Optional, Sequence

from commbook.models.record import CommunicationRecord
from commbook.roster import RosterSnapshot

ROW_BACKGROUNDS = (
    "rgba(127, 127, 127, 0.1)",
    "rgba(127, 127, 127, 0.2)",
)

_STYLE = """
* { font-family: sans-serif; box-sizing: border-box; }
p { padding: 0; margin: 0; text-overflow: ellipsis; }
a { text-decoration: none; display: block; color: #0284c7; }
"""


def format_date(dt: datetime) -> str:
    return dt.strftime("%d/%m/%Y")


def format_timestamp(dt: datetime) -> str:
    return dt.strftime("%d/%m/%Y %H:%M")


class ReportRenderer:

    def __init__(self, app_url: str = "http://localhost:8000"):
        self.app_url = app_url.rstrip("/")

    def communication_url(self, communication_id) -> str:
        return f"{self.app_url}/comunicaciones/{communication_id}"

    def render(
        self,
        communications: Sequence[CommunicationRecord],
        roster:         RosterSnapshot,
        now:            datetime,
        heading:        Optional[str] = None,
        intro:          Optional[str] = None,
        quote:          Optional[str] = None,
    ) -> str:
        """
        Full HTML document. Without a heading the body opens with the
        digest sentence ("N communications registered on DD/MM/YYYY").
        """
        parts: List[str] = []
        if heading is None and intro is None:
            parts.append(
                f"<p>{len(communications)} communications registered "
                f"on {format_date(now)}</p>"
            )
        if heading:
            parts.append(f"<h1>{escape(heading)}</h1>")
        if intro:
            parts.append(f"<p>{escape(intro)}</p>")
        if quote:
            parts.append(
                "<pre style=\"background-color: rgba(127,127,127,0.2); padding: 3px\">"
                f"{escape(quote)}</pre>"
            )
        if communications:
            parts.append("<div><h2>Communications</h2>")
            for i, c in enumerate(communications):
                parts.append(self._render_row(i, c, roster))
            parts.append("</div>")

        return (
            "<!DOCTYPE html>"
            "<html lang=\"es\"><head>"
            "<meta charset=\"utf-8\" />"
            "<title>Communications report</title>"
            "<meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />"
            f"<style>{_STYLE}</style>"
            "</head><body>"
            + "".join(parts)
            + "</body></html>"
        )

    def _render_row(self, i: int, c: CommunicationRecord, roster: RosterSnapshot) -> str:
        teacher = roster.resolve_teacher(c.teacher_email)
        student = roster.resolve_student(c.student_enrolment)
        subject = roster.resolve_subject(c.subject_code)

        teacher_name = teacher.name if teacher else c.teacher_email
        student_name = student.name if student else ''
        year = f"{student.coursing_year}° año - " if student else ''
        subject_label = f"{subject.name} ({c.subject_code})" if subject else c.subject_code
        action = f" &rarr; {escape(c.action_taken)}" if c.action_taken else ''

        bg = ROW_BACKGROUNDS[i % 2]
        return (
            f"<a href=\"{escape(self.communication_url(c.id))}\" "
            f"style=\"background-color: {bg}; padding: 10px; white-space: nowrap; overflow: hidden\">"
            f"<p style=\"font-weight: bold; font-size: 18px\">"
            f"{escape(teacher_name)} &rarr; {escape(c.student_enrolment)} - {escape(student_name)}</p>"
            f"<p style=\"padding: 2px 0\">{escape(c.message)}{action}</p>"
            f"<p style=\"font-size: 14px\">{escape(c.comment or '')}</p>"
            f"<p style=\"font-size: 14px\">{escape(year)}{escape(subject_label)}"
            f" - {format_timestamp(c.timestamp)}</p>"
            "</a>"
        )
