"""
Translation memory exceptions.
"""


class TTMServerError(Exception):
    """Base exception for the translation memory layer"""
    pass


class ConfigurationError(TTMServerError):
    """Bad or missing backend configuration. Fatal, never retried."""

    def __init__(self, message: str, service: str = None):
        self.service = service
        super().__init__(message)


class TransientBackendError(TTMServerError):
    """Backend unavailable during a single operation (network, index down, rejected write)"""

    def __init__(self, message: str, service: str = None):
        self.service = service
        super().__init__(message)


class QueryTimeoutError(TransientBackendError):
    """A backend call exceeded its timeout"""
    pass


class PermanentQueryError(TTMServerError):
    """Malformed query or feature unsupported by the backend. Not retried."""
    pass
