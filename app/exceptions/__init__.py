"""Custom exceptions for the Agency Portal application."""


class SaasError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

    def headers(self):
        """Extra response headers for this error."""
        return {}


class BusinessLogicError(SaasError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class UnauthenticatedError(SaasError):
    """Raised when the caller has no valid identity."""
    def __init__(self, message="Authentication required", payload=None):
        super().__init__(message, 401, payload)


class UnauthorizedError(SaasError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="You do not have permission to perform this action", payload=None):
        super().__init__(message, 403, payload)


class NotFoundError(SaasError):
    """
    Exception raised when a resource is not found.

    Also used for cross-tenant mismatches, which must look exactly like
    an absent resource.
    """
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class RateLimitedError(SaasError):
    """Raised when an operation exceeded its rate-limit window."""
    def __init__(self, retry_after, message="Too many requests. Please try again later."):
        super().__init__(message, 429, {'retry_after': retry_after})
        self.retry_after = retry_after

    def headers(self):
        return {'Retry-After': str(self.retry_after)}


class ExpiredOrInvalidError(SaasError):
    """Token or code is wrong or expired; the two cases are not distinguished."""
    def __init__(self, message="Invalid or expired code", payload=None):
        super().__init__(message, 400, payload)


class TenantRequiredError(BusinessLogicError):
    """Raised when a tenant-scoped public endpoint cannot resolve its tenant."""
    def __init__(self, message="A valid tenant is required"):
        super().__init__(message, status_code=400)


class UpstreamError(SaasError):
    """Database or third-party failure, surfaced to callers as a generic message."""
    def __init__(self, message="Something went wrong. Please try again later."):
        super().__init__(message, 502)
