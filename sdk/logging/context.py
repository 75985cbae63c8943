"""
Logging Context

Carries request-level context (requestId, remote address) to every log
record emitted while a request is being handled. Values live in contextvars,
so each asyncio task and each worker thread started with asyncio.to_thread
sees the context of the request that spawned it.
"""

import logging
from typing import Optional
from contextvars import ContextVar

_request_id: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
_remote: ContextVar[Optional[str]] = ContextVar('remote', default=None)


class RequestContextFilter(logging.Filter):
    """
    Logging filter that stamps request context onto log records
    """

    def filter(self, record):
        requestId = _request_id.get()
        remote = _remote.get()

        if requestId:
            record.requestId = requestId
        if remote:
            record.remote = remote

        return True


def setRequestContext(requestId: str, remote: Optional[str] = None):
    """
    Set request-level context for logging

    Args:
        requestId: Correlation id of the request being handled
        remote: Peer address (optional)
    """
    _request_id.set(requestId)
    if remote:
        _remote.set(remote)


def getRequestContext() -> dict:
    """Get current request context"""
    return {
        'requestId': _request_id.get(),
        'remote': _remote.get()
    }


def clearRequestContext():
    """Clear request context"""
    _request_id.set(None)
    _remote.set(None)

