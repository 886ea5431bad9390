"""Error taxonomy for the realtime and cache core.

Only DatastoreFailure is meant to reach the HTTP layer. Every other failure
class is contained where it happens and logged:

- CacheFailure: treated as a miss (reads) or a no-op (writes, deletes)
- BrokerDeliveryFailure: the affected subscriber is degraded or closed
- StreamTransportFailure: the stream session ends and unsubscribes
"""

from __future__ import annotations


class EduStrideError(Exception):
    """Base class for all service errors."""


class DatastoreFailure(EduStrideError):
    """A read or write against the primary datastore failed."""

    def __init__(self, operation: str, cause: BaseException | None = None):
        self.operation = operation
        self.cause = cause
        message = f"Datastore operation '{operation}' failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class CacheFailure(EduStrideError):
    """A cache store operation failed or timed out."""

    def __init__(self, operation: str, key: str, cause: BaseException | None = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        super().__init__(f"Cache {operation} failed for '{key}': {cause!r}")


class BrokerDeliveryFailure(EduStrideError):
    """An event could not be handed to a subscriber."""

    def __init__(self, connection_id: str, reason: str):
        self.connection_id = connection_id
        self.reason = reason
        super().__init__(f"Delivery to {connection_id} failed: {reason}")


class StreamTransportFailure(EduStrideError):
    """Writing a frame to the client connection failed."""
