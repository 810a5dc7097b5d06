# -*- coding: utf-8 -*-
from .product import (
    RawRecord,
    CanonicalProduct,
    ReasonCode,
    Accepted,
    Rejected,
    DestinationEntity,
    Created,
    Updated,
    Filtered,
    Failed,
)
from .sync_log import RunStats, SyncLog, RunReport, build_report
