"""
Typed failures raised by the request pipeline and session manager.
"""


class ErrorCode:
    AUTH_REQUIRED = "AUTH_REQUIRED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVER_ERROR = "SERVER_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CORRUPT_LOCAL_STATE = "CORRUPT_LOCAL_STATE"

    RETRYABLE = frozenset({NETWORK_ERROR, SERVER_ERROR})


class ApiError(Exception):
    """A failed backend call: category code, message, HTTP status if any."""

    def __init__(self, code, message, status=None, server_code=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.server_code = server_code

    @property
    def retryable(self):
        return self.code in ErrorCode.RETRYABLE

    def __repr__(self):
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}, status={self.status!r})"


class AuthRequiredError(ApiError):
    def __init__(self, message="Authentication required", status=401):
        super().__init__(ErrorCode.AUTH_REQUIRED, message, status)


class RefreshFailedError(ApiError):
    """Session refresh was rejected or could not reach the server."""

    def __init__(self, message="Session expired", status=None):
        super().__init__(ErrorCode.TOKEN_EXPIRED, message, status)


def code_for_status(status):
    """Map an HTTP failure status to the error category."""
    if status == 401:
        return ErrorCode.AUTH_REQUIRED
    if status >= 500:
        return ErrorCode.SERVER_ERROR
    return ErrorCode.VALIDATION_ERROR
