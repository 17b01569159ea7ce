"""
commbook/mail/smtp_mailer.py
SMTP transport. Works with Office 365 / Gmail style submission servers
(port 587 + STARTTLS) and implicit-TLS servers (port 465, smtp_use_ssl).
"""

import logging
import smtplib
from typing import Any, Mapping, Optional, Sequence

from commbook.config import resolve_from_address
from commbook.mail.base import Mailer

logger = logging.getLogger(__name__)


class SmtpMailer(Mailer):

    def __init__(
        self,
        host:        str,
        from_email:  str,
        port:        int           = 587,
        use_ssl:     bool          = False,
        starttls:    bool          = True,
        user:        Optional[str] = None,
        password:    Optional[str] = None,
        from_name:   Optional[str] = None,
        timeout_sec: int           = 30,
    ):
        self.host        = host
        self.port        = port
        self.use_ssl     = use_ssl
        self.starttls    = starttls
        self.user        = user
        self.password    = password
        self.from_email  = from_email
        self.from_name   = from_name or user or "Reports"
        self.timeout_sec = timeout_sec

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SmtpMailer":
        from_email = resolve_from_address(config)
        if not config.get("smtp_host"):
            raise ValueError("smtp_host is not configured")
        if not from_email:
            raise ValueError("smtp_from_email or smtp_user must be configured")
        return cls(
            host       = config["smtp_host"],
            port       = int(config.get("smtp_port") or 587),
            use_ssl    = bool(config.get("smtp_use_ssl")),
            starttls   = bool(config.get("smtp_starttls", True)),
            user       = config.get("smtp_user"),
            password   = config.get("smtp_pass"),
            from_email = from_email,
            from_name  = config.get("smtp_from_name"),
        )

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_email}>"

    def _open(self) -> smtplib.SMTP:
        if self.use_ssl:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout_sec)
        return smtplib.SMTP(self.host, self.port, timeout=self.timeout_sec)

    def send(self, to: Sequence[str], subject: str, html: str) -> None:
        message = self.build_message(to, self.sender, subject, html)
        with self._open() as smtp:
            if self.starttls and not self.use_ssl:
                smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password or "")
            smtp.send_message(message)
        logger.info(f"Email sent to {', '.join(to)} with subject {subject!r}")
