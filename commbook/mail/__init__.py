from commbook.mail.base import Mailer
from commbook.mail.smtp_mailer import SmtpMailer

__all__ = ["Mailer", "SmtpMailer"]
