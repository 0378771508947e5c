"""Credential leasing and the per-platform credential retry loop."""

from scrapequeue.credentials.lease_manager import CredentialLeaseManager
from scrapequeue.credentials.retry_loop import (
    FailureKind,
    ScrapeFailure,
    ScrapeOutcome,
    classify_login_error,
    run_with_credentials,
)

__all__ = [
    "CredentialLeaseManager",
    "FailureKind",
    "ScrapeFailure",
    "ScrapeOutcome",
    "classify_login_error",
    "run_with_credentials",
]
