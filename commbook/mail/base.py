"""
commbook/mail/base.py
Abstract base class for outbound mail transports.
To add a new transport: subclass Mailer and implement send().
"""

from abc import ABC, abstractmethod
from email.message import EmailMessage as MimeMessage
from typing import Sequence


class Mailer(ABC):
    """
    The orchestrator calls send() once per report e-mail.
    send() raises on failure; the orchestrator catches and counts it,
    so one failed e-mail never blocks the others.
    """

    @abstractmethod
    def send(self, to: Sequence[str], subject: str, html: str) -> None:
        ...

    def build_message(
        self,
        to:        Sequence[str],
        sender:    str,
        subject:   str,
        html:      str,
    ) -> MimeMessage:
        """Shared MIME builder: plain-text fallback plus the HTML alternative."""
        message = MimeMessage()
        message["Subject"] = subject
        message["From"] = sender
        message["To"] = ", ".join(to)
        message.set_content(f"{subject}\n\nThis report is best viewed in an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")
        return message
