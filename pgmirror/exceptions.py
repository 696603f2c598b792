"""Exception hierarchy for mirror sync"""

from typing import Optional


class SyncError(Exception):
    """Base exception for mirror sync errors"""
    pass


class ConfigurationError(SyncError):
    """Invalid or missing configuration; fatal at startup"""
    pass


class UnknownTableError(SyncError):
    """Table is not part of the registry"""
    pass


class NotificationError(SyncError):
    """Notification could not be turned into a change; never retried"""
    pass


class UnknownChannelError(NotificationError):
    """Notification arrived on a channel no table owns"""
    pass


class PayloadDecodeError(NotificationError):
    """Notification payload is malformed"""
    pass


class MirrorWriteError(SyncError):
    """Write to the mirror store failed"""

    def __init__(self, message: str, code: Optional[str] = None, retryable: bool = True):
        super().__init__(message)
        self.code = code
        self.retryable = retryable


class ListenerConnectionError(SyncError):
    """Subscription connection failed or was lost"""
    pass
