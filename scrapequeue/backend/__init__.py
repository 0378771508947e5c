"""Blacklight backend access: resilient HTTP client and typed endpoint wrappers."""

from scrapequeue.backend.credentials_api import CredentialsApi
from scrapequeue.backend.http_client import RETRY_DELAYS_S, BackendHttpClient
from scrapequeue.backend.queue_api import (
    QUEUE_EMPTY,
    QueueApi,
    QueueConflict,
    QueueEmpty,
)

__all__ = [
    "BackendHttpClient",
    "RETRY_DELAYS_S",
    "CredentialsApi",
    "QueueApi",
    "QueueConflict",
    "QueueEmpty",
    "QUEUE_EMPTY",
]
