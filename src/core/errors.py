"""
Error taxonomy for the clustering control loops.

Every error raised by the loops carries an ErrorKind and its numeric code so
callers can decide whether to retry the whole operation.
"""

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Kinds of failures the loops can surface"""

    INVALID_ARGUMENT = 1
    SERVICE_FAILURE = 2
    RESOURCE_EXHAUSTION = 3
    CLEANUP_FAILURE = 4


class ClusteringError(Exception):
    """Base class for structured errors raised by the loops"""

    kind = ErrorKind.SERVICE_FAILURE

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def code(self) -> int:
        return self.kind.value

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization"""
        return {
            "kind": self.kind.name.lower(),
            "code": self.code,
            "message": self.message,
            **self.details,
        }

    def __str__(self) -> str:
        return f"[{self.kind.name}] {self.message}"


class InvalidArgumentError(ClusteringError, ValueError):
    """An input parameter is out of range; raised before any service call"""

    kind = ErrorKind.INVALID_ARGUMENT


class ServiceFailure(ClusteringError, RuntimeError):
    """An asynchronous job on the modeling service ended in a failed state"""

    kind = ErrorKind.SERVICE_FAILURE

    def __init__(self, message: str, resource_id: str | None = None, **details: Any):
        super().__init__(message, resource_id=resource_id, **details)
        self.resource_id = resource_id


class ResourceExhaustedError(ServiceFailure):
    """The dataset has fewer rows than the operation needs"""

    kind = ErrorKind.RESOURCE_EXHAUSTION


class CleanupFailure(ClusteringError):
    """A delete call failed; only ever logged, never raised to callers"""

    kind = ErrorKind.CLEANUP_FAILURE
