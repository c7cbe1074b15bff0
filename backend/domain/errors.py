"""
Custom domain exceptions for consistent error handling.

These exceptions are mapped to HTTP status codes by the global exception handler
in main.py.
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST, details: dict | None = None):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}


class PermissionDeniedError(DomainError):
    """Permission denied (403)."""
    def __init__(self, message: str = "Permission denied", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, details=details)


class ConflictError(DomainError):
    """Resource conflict (409), e.g. action attempted before the session is ready."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)


class ServiceUnavailableError(DomainError):
    """Wallet provider missing or refused (503)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details)


class BlockchainError(DomainError):
    """Blockchain/on-chain operation error (502)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_502_BAD_GATEWAY, details=details)
