"""
Custom exception classes for wallet and contract operations.
"""


class TeaClientError(Exception):
    """Base class for client-side failures."""
    pass


class NoProviderError(TeaClientError):
    """Raised when no wallet provider is configured or reachable."""
    pass


class AuthorizationDeniedError(TeaClientError):
    """Raised when the wallet provider refuses to expose an account."""
    pass


class RemoteCallError(TeaClientError):
    """Raised when a contract read or transaction is rejected or reverts."""

    def __init__(self, message: str, tx_hash: str | None = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class AuthorizationCheckFailed(TeaClientError):
    """Raised when the local owner check blocks a withdraw."""
    pass
