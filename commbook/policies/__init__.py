"""
commbook/policies: the three report policies run by the orchestrator.
"""

from commbook.policies.cumulative import CumulativeAlertPolicy
from commbook.policies.digest import DailyDigestPolicy
from commbook.policies.weekly import WeeklyEscalationPolicy

__all__ = [
    "CumulativeAlertPolicy",
    "DailyDigestPolicy",
    "WeeklyEscalationPolicy",
]
