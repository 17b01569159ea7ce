from commbook.store.communications import CommunicationStore
from commbook.store.watermarks import (
    LAST_CUMULATIVE_RUN,
    LAST_DIGEST_RUN,
    LAST_WEEKLY_RUN,
    CumulativeKey,
    SqliteWatermarkStore,
    StagedWatermarks,
    WatermarkStore,
)

__all__ = [
    "CommunicationStore",
    "CumulativeKey",
    "LAST_CUMULATIVE_RUN",
    "LAST_DIGEST_RUN",
    "LAST_WEEKLY_RUN",
    "SqliteWatermarkStore",
    "StagedWatermarks",
    "WatermarkStore",
]
