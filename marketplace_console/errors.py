"""Typed errors for console actions and list reads.

Every failure that crosses the HTTP boundary is converted into one of
these classes, so callers can render a specific message instead of a
generic "something went wrong".  Only ``PayloadValidationError`` is
actionable by the user without retrying.
"""

import logging
from typing import Union

import httpx

logger = logging.getLogger(__name__)


class ConsoleError(Exception):
    """Base exception for marketplace console errors."""

    default_message = "The request could not be completed."

    def __init__(
        self,
        message: str = "",
        status_code: int | None = None,
        error_code: str = "ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message or self.default_message)

    @property
    def is_actionable(self) -> bool:
        return False

    @property
    def user_message(self) -> str:
        """Message a view shows for this error."""
        if self.message and self.message != self.default_message:
            return f"{self.default_message} ({self.message})"
        return self.default_message


class PayloadValidationError(ConsoleError):
    """Payload rejected locally or by the server (400/422)."""

    default_message = "Please correct the highlighted input."

    def __init__(self, message: str, status_code: int | None = None, field: str | None = None):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="VALIDATION_ERROR",
        )
        self.field = field

    @property
    def is_actionable(self) -> bool:
        return True

    @property
    def user_message(self) -> str:
        # Shown verbatim: the user fixes the input and submits again.
        return self.message or self.default_message


class ResourceNotFoundError(ConsoleError):
    """The entity no longer exists on the server."""

    default_message = "This item no longer exists. Refresh the list."

    def __init__(self, message: str = "", status_code: int | None = 404):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="RESOURCE_NOT_FOUND",
        )


class ConflictError(ConsoleError):
    """The entity changed between the last fetch and the action."""

    default_message = "This item was changed by someone else. Refresh and try again."

    def __init__(self, message: str = "", status_code: int | None = 409, error_code: str = "CONFLICT"):
        super().__init__(message=message, status_code=status_code, error_code=error_code)


class TransitionNotAllowedError(ConflictError):
    """The status machine refuses the action from the current status."""

    default_message = "This action is not available for the item's current status."

    def __init__(self, action: str, status: str | None):
        self.action = action
        self.status = status
        super().__init__(
            message=f"Cannot {action} from status '{status}'",
            status_code=None,
            error_code="TRANSITION_NOT_ALLOWED",
        )


class PermissionDeniedError(ConsoleError):
    """The session lacks the permission for this request (401/403)."""

    default_message = "You do not have permission to do this."

    def __init__(self, message: str = "", status_code: int | None = 403):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="PERMISSION_DENIED",
        )


class NetworkError(ConsoleError):
    """Transport failure or a body that is not JSON."""

    default_message = "Could not reach the server. Check your connection and retry."

    def __init__(self, message: str = "", status_code: int | None = None, error_code: str = "NETWORK_ERROR"):
        super().__init__(message=message, status_code=status_code, error_code=error_code)


class MalformedResponseError(NetworkError):
    """The server answered with a shape the console does not understand."""

    default_message = "The server sent an unexpected response."

    def __init__(self, message: str = "", status_code: int | None = None):
        super().__init__(message=message, status_code=status_code, error_code="MALFORMED_RESPONSE")


class RequestTimeoutError(NetworkError):
    """No response within the client-side timeout."""

    default_message = "The server took too long to respond. Try again."

    def __init__(self, message: str = "", status_code: int | None = None):
        super().__init__(message=message, status_code=status_code, error_code="TIMEOUT")


class ServerError(ConsoleError):
    """The server failed while handling the request (5xx)."""

    default_message = "The server failed to process the request."

    def __init__(self, message: str = "", status_code: int | None = 500):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="SERVER_ERROR",
        )


class AlreadyInProgressError(ConsoleError):
    """Another action for the same entity has not finished yet."""

    default_message = "An action for this item is already in progress."

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(
            message=f"Action already in progress for {entity_id}",
            error_code="ALREADY_IN_PROGRESS",
        )


def extract_error_message(body: Union[dict, list, str, None]) -> str:
    """Pull a human-readable message out of an error body.

    Accepts the marketplace shape ``{"error": "..."}``, the structured
    shape ``{"error": {"code": ..., "message": ...}}`` and FastAPI's
    ``{"detail": ...}``.
    """
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str):
            return error
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        detail = body.get("detail")
        if isinstance(detail, str):
            return detail
        if isinstance(detail, list) and detail:
            first = detail[0]
            if isinstance(first, dict) and "msg" in first:
                return str(first["msg"])
        if isinstance(body.get("message"), str):
            return body["message"]
    if isinstance(body, str):
        return body.strip()
    return ""


def error_from_response(response: httpx.Response) -> ConsoleError:
    """Map a non-2xx response to the matching ``ConsoleError``."""
    try:
        body = response.json()
    except ValueError:
        body = response.text
    message = extract_error_message(body)
    code = response.status_code

    if code in (400, 422):
        return PayloadValidationError(message or "Invalid request", status_code=code)
    if code in (401, 403):
        return PermissionDeniedError(message, status_code=code)
    if code == 404:
        return ResourceNotFoundError(message, status_code=code)
    if code == 409:
        return ConflictError(message, status_code=code)
    if code == 408:
        return RequestTimeoutError(message, status_code=code)
    if code >= 500:
        logger.debug("Server error %s: %s", code, message)
        return ServerError(message, status_code=code)
    return ConsoleError(message, status_code=code, error_code=f"HTTP_{code}")
