"""Error taxonomy raised by the AuraX client."""
from __future__ import annotations

import json
from typing import Any, Optional

import httpx


class AuraXError(Exception):
    """Base class for every client-side failure.

    ``status_code`` and ``body`` carry the HTTP status and the raw response text
    when the failure originated from a response; ``error`` holds the parsed JSON
    body (or the underlying cause for transport failures).
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        error: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body
        self.error = error

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, status_code={self.status_code!r})"


class ConfigurationError(AuraXError):
    """Client constructed without the credentials or base URL it needs."""


class NetworkError(AuraXError):
    """The transport could not complete the exchange (DNS, connect, read)."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(
            f"A network error occurred. Please check your connection. ({cause})",
            error=cause,
        )


class BadRequestError(AuraXError):
    """4xx other than 401/404: the payload was rejected."""


class AuthenticationError(AuraXError):
    """401: missing or invalid API key / key id."""


class NotFoundError(AuraXError):
    """404: unknown task, image or key id."""


class APIError(AuraXError):
    """Any other non-success response, or an unusable success body."""


class TaskTimeoutError(AuraXError, TimeoutError):
    """A poll exceeded its deadline before the task became terminal."""


class TaskFailedError(AuraXError):
    """A watched task ended FAILED or CANCELLED."""

    def __init__(self, message: str, *, snapshot: Any) -> None:
        super().__init__(message, error=getattr(snapshot, "error_message", None))
        self.snapshot = snapshot


class StreamConnectionError(AuraXError):
    """The event stream connection dropped or could not be read."""


class StreamFrameError(AuraXError):
    """A stream frame carried a payload that could not be decoded."""

    def __init__(self, message: str, *, event: str, data: str) -> None:
        super().__init__(message, body=data)
        self.event = event
        self.data = data


def _parse_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def error_from_response(response: httpx.Response, body: Optional[str] = None) -> AuraXError:
    """Build the typed error matching a non-success response.

    ``body`` may be supplied when the response content was read separately
    (streaming responses).
    """

    text = response.text if body is None else body
    parsed = _parse_body(text)
    status = response.status_code
    message = text or f"HTTP {status} {response.reason_phrase}".strip()

    if status == 401:
        cls: type[AuraXError] = AuthenticationError
    elif status == 404:
        cls = NotFoundError
    elif 400 <= status < 500:
        cls = BadRequestError
    else:
        cls = APIError
    return cls(message, status_code=status, body=text, error=parsed)
