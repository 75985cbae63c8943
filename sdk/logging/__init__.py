"""
SDK Logging - hierarchical logger with automatic name detection.

API:
    from sdk.logging import getLogger

    # Class-level (auto-detect once in __init__)
    class TokenAuthority:
        def __init__(self):
            self.log = getLogger()  # Auto: 'eventshub.server.auth.TokenAuthority'

        def issue(self, subject):
            self.log.info("Issued token", subject=subject)

    # Global configuration (optional, once at app startup)
    from sdk.logging import configureLogging
    configureLogging(logDir='./logs', level='DEBUG')
"""

from .logger import getLogger, configureLogging
from .context import (
    setRequestContext,
    getRequestContext,
    clearRequestContext
)

__all__ = [
    'getLogger',
    'configureLogging',
    'setRequestContext',
    'getRequestContext',
    'clearRequestContext'
]
