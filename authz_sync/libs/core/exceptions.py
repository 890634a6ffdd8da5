"""
Custom Exceptions

Defines custom exception classes for the authz-sync engine.
"""

from typing import List, Optional


class AuthzSyncError(Exception):
    """Base exception class for authz-sync errors"""
    pass


class AuthenticationError(AuthzSyncError):
    """Raised when cluster authentication fails"""
    pass


class ConfigurationError(AuthzSyncError):
    """Raised when configuration is invalid or missing"""
    pass


class StoreError(AuthzSyncError):
    """
    Raised when a store operation (get/list/create/update/delete) fails.

    Timeouts are reported as StoreError as well; they are retryable and never
    mean that the object does not exist.
    """

    def __init__(self, message: str, kind: Optional[str] = None, name: Optional[str] = None,
                 namespace: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.name = name
        self.namespace = namespace


class NotFoundError(StoreError):
    """Raised when a referenced template or object does not exist"""
    pass


class ConflictError(StoreError):
    """Raised when an update is rejected because the object changed since it was read"""
    pass


class AlreadyExistsError(ConflictError):
    """Raised when a create collides with an existing object of the same name"""
    pass


class CycleError(AuthzSyncError):
    """Raised when role template composition forms a cycle"""

    def __init__(self, path: List[str]):
        self.path = list(path)
        super().__init__(f"Role template cycle detected: {' -> '.join(self.path)}")


class InvariantError(AuthzSyncError):
    """Raised on internal invariant violations such as an undeclared or malformed index"""
    pass
