"""Matrix chat session: client-server API client and event handlers."""

from .client import (
    ConnectionState,
    MatrixAPIError,
    MatrixClient,
    MatrixError,
    MatrixTimeoutError,
    SyncResilienceManager,
)
from .handlers import MembershipEventHandler, RoomMessageHandler

__all__ = [
    'MatrixClient',
    'MatrixError',
    'MatrixAPIError',
    'MatrixTimeoutError',
    'ConnectionState',
    'SyncResilienceManager',
    'MembershipEventHandler',
    'RoomMessageHandler',
]
