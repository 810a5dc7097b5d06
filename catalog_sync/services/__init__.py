# -*- coding: utf-8 -*-
from .api_client import (
    ApiError,
    ConnectivityError,
    DefinitiveApiError,
    DestinationClient,
    DuplicateKeyError,
)
from .feed_reader import FeedReader, FeedUnavailable, fetch_feed
from .normalizer import normalize
from .rate_limiter import RateLimiter
from .reconciler import CategoryMapper, Reconciler
from .sync_service import AlreadyRunningError, RunState, SyncService
from .validator import ImageProber, Validator, validate
