"""
commbook/policies/base.py
Shared pieces of the three report policies.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from commbook.models.record import CommunicationRecord

# (from, to) → records with from <= timestamp <= to; None = unbounded
QueryFn = Callable[[Optional[datetime], Optional[datetime]], List[CommunicationRecord]]


def group_by(
    records: Iterable[CommunicationRecord],
    key: Callable[[CommunicationRecord], str],
) -> Dict[str, List[CommunicationRecord]]:
    """Group records by key, keeping first-seen key order and record order."""
    groups: Dict[str, List[CommunicationRecord]] = defaultdict(list)
    for r in records:
        groups[key(r)].append(r)
    return dict(groups)
