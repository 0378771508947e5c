"""Core domain models, settings, logging configuration, and exceptions."""

from scrapequeue.core.exceptions import (
    BackendError,
    BackendProtocolError,
    BackendResponseError,
    BackendUnavailableError,
    ConfigError,
    CredentialError,
    LeaseAlreadyHeldError,
    OrchestratorError,
    ScrapeError,
    ScrapeErrorKind,
    ScrapeQueueError,
)
from scrapequeue.core.logging_config import RUN_ID_CTX, JsonFormatter, configure_logging
from scrapequeue.core.models import (
    ActiveSessionStatus,
    Cookie,
    CookieJarPayload,
    CredentialLease,
    EmailPasswordPayload,
    JobRecord,
    PlatformInfo,
    QueueItem,
    Role,
)
from scrapequeue.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    "RUN_ID_CTX",
    # Domain models
    "ActiveSessionStatus",
    "Cookie",
    "CookieJarPayload",
    "CredentialLease",
    "EmailPasswordPayload",
    "JobRecord",
    "PlatformInfo",
    "QueueItem",
    "Role",
    # Settings
    "Settings",
    # Exceptions
    "ScrapeQueueError",
    "ConfigError",
    "BackendError",
    "BackendUnavailableError",
    "BackendResponseError",
    "BackendProtocolError",
    "CredentialError",
    "LeaseAlreadyHeldError",
    "ScrapeErrorKind",
    "ScrapeError",
    "OrchestratorError",
]
