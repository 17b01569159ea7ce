"""
commbook: communications notebook report engine.

Scans logged teacher communications on a schedule and e-mails a daily
digest, weekly per-student escalations and yearly cumulative alerts.
"""

__version__ = "1.0.0"
