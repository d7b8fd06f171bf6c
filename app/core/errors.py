# app/core/errors.py
"""
Client-facing error taxonomy.

Services raise these; the handlers registered in app/main.py turn them into
``{"detail": ..., "code": ...}`` JSON responses with the matching status code.
"""
from typing import Optional


class WaitlistError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, detail: str = "Request failed"):
        super().__init__(detail)
        self.detail = detail


class ValidationError(WaitlistError):
    status_code = 400
    code = "validation_error"


class AuthenticationError(WaitlistError):
    status_code = 401
    code = "authentication_error"


class AuthorizationError(WaitlistError):
    status_code = 403
    code = "authorization_error"


class NotFoundError(WaitlistError):
    status_code = 404
    code = "not_found"


class AlreadyLinkedError(WaitlistError):
    status_code = 409
    code = "already_linked"


class ExpiredError(WaitlistError):
    status_code = 410
    code = "expired"


class RateLimitedError(WaitlistError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, detail: str = "Too many requests", retry_after: Optional[int] = None):
        super().__init__(detail)
        self.retry_after = retry_after


class ServiceUnavailableError(WaitlistError):
    status_code = 503
    code = "service_unavailable"


class InternalError(WaitlistError):
    status_code = 500
    code = "internal_error"

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(detail)
