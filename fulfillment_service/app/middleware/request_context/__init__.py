from .correlation_middleware import CORRELATION_HEADER, CorrelationIdMiddleware

__all__ = ["CORRELATION_HEADER", "CorrelationIdMiddleware"]
