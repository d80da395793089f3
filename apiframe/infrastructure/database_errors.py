"""Database Error Interpretation — turn known-safe Postgres failures into BadRequest.

Invariants:
    - Allow-list only: database connection failures and insufficient privilege (SQLSTATE 42501)
    - A refused connection counts only when it comes from the database layer
      (wrapped by SQLAlchemy or raised through asyncpg/SQLAlchemy code)
    - Reinterpreted errors keep the original failure as internal_error (logs only)
    - Anything else is returned unchanged and falls through to a generic 500

Design Decisions:
    - Walks SQLAlchemy DBAPIError.orig and exception chaining, so errors raised
      through an AsyncSession are recognized the same as raw asyncpg errors
    - Other SQLSTATEs (integrity, cardinality, ...) stay internal: their
      messages can contain data and aren't actionable for callers
"""

import traceback
from typing import Iterator

from asyncpg.exceptions import (
    InsufficientPrivilegeError,
    InvalidAuthorizationSpecificationError,
    PostgresConnectionError,
    PostgresError,
)
from sqlalchemy.exc import DBAPIError

from apiframe.core.errors import APIError, iter_error_chain

DRIVER_CONNECT_ERROR_TYPES = (
    PostgresConnectionError,
    InvalidAuthorizationSpecificationError,
)
DATABASE_PACKAGES = frozenset({"asyncpg", "sqlalchemy"})

CONNECT_ERROR_MESSAGE = (
    "There was a problem connecting to the configured database. "
    "Check logs for details."
)
PRIVILEGE_ERROR_MESSAGE = "Insufficient database privilege to perform this operation."


def iter_database_errors(exc: BaseException) -> Iterator[BaseException]:
    """Like iter_error_chain, also descending into DBAPIError.orig."""
    for err in iter_error_chain(exc):
        yield err
        if isinstance(err, DBAPIError) and isinstance(err.orig, BaseException):
            yield from iter_database_errors(err.orig)


def maybe_interpret_internal_error(exc: BaseException) -> BaseException:
    """Return a public-facing APIError for recognized failures, else exc."""
    wrapped_by_driver: set[int] = set()

    for err in iter_database_errors(exc):
        if isinstance(err, APIError):
            return exc

        if isinstance(err, DBAPIError) and err.orig is not None:
            wrapped_by_driver.add(id(err.orig))

        if _is_connect_error(err, id(err) in wrapped_by_driver):
            return APIError.bad_request(CONNECT_ERROR_MESSAGE).with_internal_error(exc)

        if isinstance(err, PostgresError):
            if err.sqlstate == InsufficientPrivilegeError.sqlstate:
                return APIError.bad_request(
                    PRIVILEGE_ERROR_MESSAGE,
                ).with_internal_error(exc)
            return exc

    return exc


def _is_connect_error(err: BaseException, wrapped_by_driver: bool) -> bool:
    if isinstance(err, DRIVER_CONNECT_ERROR_TYPES):
        return True
    if not isinstance(err, ConnectionRefusedError):
        return False
    return wrapped_by_driver or _raised_in_database_layer(err)


def _raised_in_database_layer(err: BaseException) -> bool:
    for frame, _ in traceback.walk_tb(err.__traceback__):
        module = frame.f_globals.get("__name__", "")
        if module.partition(".")[0] in DATABASE_PACKAGES:
            return True
    return False
