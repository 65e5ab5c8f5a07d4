from typing import Dict, List, Optional


class AppError(Exception):
    """
    Base class for errors that map onto an HTTP response.

    Handlers in app.main turn these into the JSON envelope:
    {"status": "error", "message": ..., "errors": {...}}
    """
    status_code = 500
    message = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[Dict[str, List[str]]] = None,
    ):
        self.message = message or self.message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(AppError):
    """Client-fixable input problem, carries field -> messages."""
    status_code = 422
    message = "Validation failed"


class InvalidCredentials(AppError):
    # Same wording whether the email or the password was wrong
    status_code = 401
    message = "Invalid credentials"


class Unauthenticated(AppError):
    status_code = 401
    message = "Unauthenticated."


class NotFound(AppError):
    status_code = 404
    message = "Not found"


class InvalidArgument(AppError):
    status_code = 400
    message = "Invalid argument"


class UnexpectedError(AppError):
    status_code = 500


def error_body(message: str, errors=None, status: str = "error", **extra) -> dict:
    """JSON envelope for a failed request."""
    body = {"status": status, "message": message}
    if errors:
        body["errors"] = errors
    body.update(extra)
    return body


def flatten_validation_errors(errors) -> Dict[str, List[str]]:
    """
    Flatten pydantic errors into {field: [messages]}.

    loc looks like ("body", "end_date"); the leading "body"/"path"/"query"
    part is dropped.
    """
    flat: Dict[str, List[str]] = {}
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())[1:]]
        field = ".".join(loc) or "body"
        flat.setdefault(field, []).append(error.get("msg", "Invalid value"))
    return flat
