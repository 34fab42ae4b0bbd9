"""
Sync support components

- backoff: exponential delay between run retries
- remote_client: HTTP client for the remote record API
- log_collector: per-run issue and counter collection
"""
from .backoff import BackoffPolicy
from .log_collector import SyncLogCollector
from .remote_client import (
    BearerTokenAuth,
    JournalApiClient,
    RemoteApiError,
    RemoteError,
    RemoteTransportError,
)

__all__ = [
    'BackoffPolicy',
    'SyncLogCollector',
    'BearerTokenAuth',
    'JournalApiClient',
    'RemoteApiError',
    'RemoteError',
    'RemoteTransportError',
]
