"""HTTP middleware for EduStride."""

from edustride.api.middleware.correlation import CorrelationMiddleware

__all__ = ["CorrelationMiddleware"]
