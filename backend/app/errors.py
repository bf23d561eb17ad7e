"""Error taxonomy for the trip gateway and trip service.

Each error carries the HTTP status it maps to and the message that is safe to
show the caller. Diagnostic details stay on the exception for logging only.
"""


class GatewayError(Exception):
    status_code = 500
    public_message = "Failed to generate trip. Please try again."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message

    def to_body(self) -> dict:
        return {"error": self.public_message}


class Unauthenticated(GatewayError):
    status_code = 401
    public_message = "Unauthorized: Missing authentication token"

    def __init__(self, message: str | None = None):
        super().__init__(message)
        # The reason is already generic ("Invalid authentication token", ...)
        self.public_message = self.message


class Forbidden(GatewayError):
    status_code = 403
    public_message = "Forbidden: UID mismatch"


class RateLimited(GatewayError):
    status_code = 429
    public_message = "Too many requests. Please try again in a minute."

    def __init__(self, retry_after: int, message: str | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class InvalidArgument(GatewayError):
    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.public_message = message

    def to_body(self) -> dict:
        return {"error": self.public_message, "field": self.field}


class ConfigurationError(GatewayError):
    status_code = 500
    public_message = "Server configuration error. Please contact support."


class GenerationUnavailable(GatewayError):
    """Every generation candidate failed; ``last_error`` is the final one observed."""

    status_code = 500

    def __init__(self, last_error: Exception | None, errors: list[str] | None = None):
        self.last_error = last_error
        self.errors = errors or []
        detail = f"All generation backends failed: {'; '.join(self.errors) or 'no response'}"
        super().__init__(detail)


class TripNotFound(GatewayError):
    status_code = 404
    public_message = "Trip not found"


class TripServiceError(Exception):
    """Raised client-side when the gateway rejects a generation request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
