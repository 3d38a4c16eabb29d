"""
Error taxonomy for the billing and access paths.

Every error maps to exactly one HTTP status; error_handlers renders them.
"""


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    error = "Internal server error"

    def __init__(self, message=None, payload=None, code=None):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.payload = payload or {}
        if code:
            self.code = code

    def to_dict(self):
        return {
            "error": self.error,
            "message": self.message,
            "code": self.code,
            **self.payload,
        }


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_FAILED"
    error = "Bad request"


class WebhookSignatureError(AppError):
    status_code = 400
    code = "INVALID_SIGNATURE"
    error = "Invalid webhook signature"


class AuthenticationError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    error = "Unauthorized"


class AuthorizationError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    error = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    error = "Not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    error = "Conflict"


class RateLimitExceeded(AppError):
    status_code = 429
    code = "RATE_LIMITED"
    error = "Too many requests"

    def __init__(self, result, message=None):
        super().__init__(message or "Rate limit exceeded. Please try again later.")
        self.result = result

    @property
    def retry_after_seconds(self):
        # Retry-After is whole seconds, never zero while still limited
        return max(1, -(-self.result.retry_after_ms // 1000))

    def to_dict(self):
        data = super().to_dict()
        data["retry_after"] = self.retry_after_seconds
        return data


class PaymentProviderError(AppError):
    status_code = 502
    code = "PAYMENT_PROVIDER_ERROR"
    error = "Payment provider error"
