"""API Errors — classified error envelope written back to callers.

Invariants:
    - Every APIError has a public message and an ErrorKind; status code comes from the kind
    - Wire shape is exactly {"message": ...}; internal_error and status never serialized
    - to_response() never raises; serialization problems are logged

Design Decisions:
    - Single APIError class tagged by a closed ErrorKind enum instead of one
      subclass per status: classification matches on the kind
    - iter_error_chain walks __cause__/__context__ so wrapped errors are found
      no matter how many layers re-raised them
"""

import json
import logging
from enum import Enum
from http import HTTPStatus
from typing import Iterator, TypeVar

from starlette.responses import Response

JSON_CONTENT_TYPE = "application/json; charset=utf-8"

E = TypeVar("E", bound=BaseException)


class ErrorKind(Enum):
    """Classified error kinds. Value is the HTTP status written on the wire."""
    BAD_REQUEST = HTTPStatus.BAD_REQUEST
    UNAUTHORIZED = HTTPStatus.UNAUTHORIZED
    NOT_FOUND = HTTPStatus.NOT_FOUND
    REQUEST_ENTITY_TOO_LARGE = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
    INTERNAL_SERVER_ERROR = HTTPStatus.INTERNAL_SERVER_ERROR
    SERVICE_UNAVAILABLE = HTTPStatus.SERVICE_UNAVAILABLE


class APIError(Exception):
    """Error envelope with a public message and an optional internal cause.

    `message` should be a complete, actionable sentence. `internal_error` is
    only ever logged.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        internal_error: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.internal_error = internal_error

    def __repr__(self) -> str:
        return f"APIError({self.message!r}, {self.kind.name})"

    @property
    def status_code(self) -> int:
        return int(self.kind.value)

    # ─── Constructors ────────────────────────────────────────────

    @classmethod
    def bad_request(cls, message: str, *args) -> "APIError":
        return cls(_format(message, args), ErrorKind.BAD_REQUEST)

    @classmethod
    def unauthorized(cls, message: str, *args) -> "APIError":
        return cls(_format(message, args), ErrorKind.UNAUTHORIZED)

    @classmethod
    def not_found(cls, message: str, *args) -> "APIError":
        return cls(_format(message, args), ErrorKind.NOT_FOUND)

    @classmethod
    def request_entity_too_large(cls, message: str) -> "APIError":
        return cls(message, ErrorKind.REQUEST_ENTITY_TOO_LARGE)

    @classmethod
    def internal_server_error(cls, message: str, *args) -> "APIError":
        return cls(_format(message, args), ErrorKind.INTERNAL_SERVER_ERROR)

    @classmethod
    def service_unavailable(cls, message: str, *args) -> "APIError":
        return cls(_format(message, args), ErrorKind.SERVICE_UNAVAILABLE)

    # ─── Envelope ────────────────────────────────────────────────

    def with_internal_error(self, internal_error: BaseException) -> "APIError":
        """Attach a cause for logging and return self."""
        self.internal_error = internal_error
        return self

    def to_dict(self) -> dict:
        return {"message": self.message}

    def to_response(self, logger: logging.Logger) -> Response:
        """Render the envelope as a JSON response, logging any failure."""
        try:
            body = json.dumps(self.to_dict()).encode("utf-8")
        except (TypeError, ValueError) as e:
            logger.error(
                f"Error marshaling API error: {e}", extra={"error": str(e)},
            )
            body = b""
        return Response(
            content=body,
            status_code=self.status_code,
            media_type=JSON_CONTENT_TYPE,
        )


def _format(message: str, args: tuple) -> str:
    return message % args if args else message


# ─── Error chain helpers ────────────────────────────────────────

def iter_error_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield exc and every error it wraps, outermost first."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def find_error(exc: BaseException, error_type: type[E]) -> E | None:
    """Return the first error of error_type in exc's chain, or None."""
    for err in iter_error_chain(exc):
        if isinstance(err, error_type):
            return err
    return None
