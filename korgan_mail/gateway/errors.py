"""Failure types raised by the gateway client and the mail action executor."""


class MailFailure(Exception):
    """Base class for every failure the mail core surfaces to its callers.

    ``message`` is human-readable and is what ends up in a folder context's
    error banner; ``code`` is a stable machine-readable tag.
    """

    default_code = "UNKNOWN"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, code={self.code!r})"


class ValidationFailure(MailFailure):
    """Bad input detected before any network call or state change."""

    default_code = "VALIDATION_ERROR"


class NetworkFailure(MailFailure):
    """Gateway unreachable, connection dropped or request timed out."""

    default_code = "NETWORK_ERROR"


class ServerFailure(MailFailure):
    """Gateway answered with a non-2xx status."""

    default_code = "SERVER_ERROR"

    def __init__(self, message: str, status_code: int, code: str | None = None) -> None:
        super().__init__(message, code)
        self.status_code = status_code


class ParseFailure(MailFailure):
    """Gateway response could not be decoded into the expected shape."""

    default_code = "PARSE_ERROR"


class CancelledFailure(MailFailure):
    """The user aborted an in-flight action."""

    default_code = "CANCELLED"


class UnknownFailure(MailFailure):
    """An unexpected exception, wrapped so callers only ever see MailFailure."""

    default_code = "UNKNOWN"


# HTTP status → (failure code, default message)
_STATUS_CODES: dict[int, tuple[str, str]] = {
    400: ("BAD_REQUEST", "Invalid request parameters"),
    401: ("UNAUTHORIZED", "Authentication required"),
    403: ("FORBIDDEN", "Access denied"),
    404: ("NOT_FOUND", "Resource not found"),
    422: ("VALIDATION_ERROR", "Request validation failed"),
    429: ("RATE_LIMITED", "Too many requests, please try again later"),
}


def failure_for_status(status_code: int, detail: str | None = None) -> ServerFailure:
    """Map an HTTP error status to a ServerFailure with a stable code."""
    if status_code in _STATUS_CODES:
        code, message = _STATUS_CODES[status_code]
    elif status_code >= 500:
        code, message = "SERVER_ERROR", "Internal server error"
    else:
        code, message = "HTTP_ERROR", f"Unexpected HTTP status {status_code}"
    if detail:
        message = f"{message}: {detail}"
    return ServerFailure(message, status_code, code)
