"""
eventshub server: configuration, Token Authority, Request Gateway and the
Lifecycle Controller.
"""

from .config import ServerConfig, ConfigurationError, loadServerConfig
from .auth import (
    TokenAuthority, AuthenticationError, MissingToken, UnsupportedAlgorithm, MalformedToken, Expired
)
from .gateway import RequestGateway
from .lifecycle import LifecycleController, LifecycleState, ServerContext, ShutdownSignal

__all__ = [
    'ServerConfig', 'ConfigurationError', 'loadServerConfig',
    'TokenAuthority', 'AuthenticationError', 'MissingToken', 'UnsupportedAlgorithm', 'MalformedToken', 'Expired',
    'RequestGateway',
    'LifecycleController', 'LifecycleState', 'ServerContext', 'ShutdownSignal',
]
