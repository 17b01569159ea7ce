"""
commbook/errors.py
Errors that abort a report tick. Send failures are not represented here;
the orchestrator catches whatever the mailer raises, per message.
"""


class StoreError(RuntimeError):
    """Communication query or watermark read/write failed."""


class RosterError(ValueError):
    """Settings files missing, unreadable or invalid."""
