"""
Exceptions raised by the matrix engine.
"""


class MatrixError(Exception):
    """Base class for matrix engine errors."""


class UnknownEntityError(MatrixError):
    """A write addressed a row or column that is not in the store's key space."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Unknown {kind}: {entity_id!r}")


class SaveInProgressError(MatrixError):
    """A save was requested while the previous one is still in flight."""


class LockedPermissionError(MatrixError):
    """The permission is granted through a role and cannot be edited directly."""

    def __init__(self, permission_id: str):
        self.permission_id = permission_id
        super().__init__(f"Permission {permission_id!r} is inherited from a role")


class GatewayError(MatrixError):
    """The server could not be reached or answered with an unusable response."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
