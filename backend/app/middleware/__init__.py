from app.middleware.request_log import RequestLoggingMiddleware
from app.middleware.security import SecurityHeadersMiddleware

__all__ = ["RequestLoggingMiddleware", "SecurityHeadersMiddleware"]
