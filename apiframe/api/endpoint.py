"""Endpoint — typed endpoint contract, mounting, and the execution pipeline.

Invariants:
    - Pipeline order: deadline → read body → decode → extract_raw → validate
      → execute → respond; any failure jumps straight to classification
    - GET never reads or decodes a body, even a well-formed one
    - Classification happens once per request, in _error_response, and writes
      exactly one envelope; internal error text never reaches the wire
    - Endpoint metadata problems raise at mount time, never per request

Design Decisions:
    - Request type resolved from the annotation on execute()'s request parameter,
      the same way FastAPI reads route signatures
    - Decode converts each known key with a JSON-mode adapter for its field and
      loads the results with model_construct; rules run afterwards in the
      validation step so extract_raw can fill fields first
    - Deadline is an asyncio.timeout_at scope around the whole pipeline: the
      handler is cancelled at its next await once the deadline passes
    - RawExtractor/RawResponder are runtime-checkable protocols detected per
      value, so plain models don't implement no-op hooks
"""

import asyncio
import inspect
import logging
import typing
from dataclasses import dataclass
from functools import lru_cache
from typing import (
    Annotated, Any, Awaitable, Callable, Generic, Protocol, TypeVar,
    runtime_checkable,
)

import pydantic_core
from pydantic import BaseModel, TypeAdapter, ValidationError
from starlette.requests import Request
from starlette.responses import Response

from apiframe.api.middleware import BodyTooLargeError, MiddlewareStack
from apiframe.config import get_settings
from apiframe.core.errors import APIError, JSON_CONTENT_TYPE, find_error
from apiframe.core.explicit_nullable import absent_fields
from apiframe.core.validator import (
    Validator, default_validator, public_facing_message,
)
from apiframe.infrastructure.database_errors import maybe_interpret_internal_error

logger = logging.getLogger(__name__)

TReq = TypeVar("TReq", bound=BaseModel)
TResp = TypeVar("TResp")

HTTP_METHODS = frozenset({
    "GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS",
})

TIMEOUT_MESSAGE = "Request timed out. Retrying the request might work."
INTERNAL_ERROR_MESSAGE = "Internal server error. Check logs for more information."
TOO_LARGE_MESSAGE = "Request entity too large."


# ─── Contract ────────────────────────────────────────────────────

@dataclass
class EndpointMeta:
    """Metadata about an API endpoint.

    `pattern` is an HTTP method and path like `POST /api/jobs/{id}`. Path
    parameters use Starlette syntax and are read by a request type's
    extract_raw. A pattern without a method matches every method.

    `status_code` is written on successful responses.
    """
    pattern: str
    status_code: int

    def validate(self) -> None:
        if not self.pattern or not self.pattern.strip():
            raise ValueError("EndpointMeta.pattern is required")
        if not 100 <= self.status_code <= 599:
            raise ValueError(
                f"EndpointMeta.status_code is required and must be a valid "
                f"HTTP status (got {self.status_code})",
            )
        method, path = self._split()
        if method is not None and method not in HTTP_METHODS:
            raise ValueError(f"EndpointMeta.pattern has unknown method {method!r}")
        if not path.startswith("/"):
            raise ValueError(f"EndpointMeta.pattern path must start with '/' (got {path!r})")

    @property
    def method(self) -> str | None:
        return self._split()[0]

    @property
    def path(self) -> str:
        return self._split()[1]

    def _split(self) -> tuple[str | None, str]:
        parts = self.pattern.split(maxsplit=1)
        if len(parts) == 2:
            return parts[0].upper(), parts[1].strip()
        return None, self.pattern.strip()


class Endpoint(Generic[TReq, TResp]):
    """Base for API endpoints.

    Provides logger and metadata injection (done by mount). Subclasses
    implement meta() and execute().
    """

    _logger: logging.Logger | None = None
    _meta: EndpointMeta | None = None

    def set_logger(self, logger: logging.Logger) -> None:
        self._logger = logger

    def set_meta(self, meta: EndpointMeta) -> None:
        self._meta = meta

    @property
    def logger(self) -> logging.Logger:
        return self._logger or logger

    @property
    def mounted_meta(self) -> EndpointMeta | None:
        """Metadata set by mount(); None until mounted."""
        return self._meta

    def meta(self) -> EndpointMeta:
        raise NotImplementedError

    async def execute(self, req: TReq) -> TResp:
        raise NotImplementedError


@runtime_checkable
class EndpointInterface(Protocol[TReq, TResp]):
    """Anything mount() accepts, whether or not it inherits Endpoint."""

    def meta(self) -> EndpointMeta: ...

    def set_logger(self, logger: logging.Logger) -> None: ...

    def set_meta(self, meta: EndpointMeta) -> None: ...

    async def execute(self, req: TReq) -> TResp: ...


@runtime_checkable
class RawExtractor(Protocol):
    """Request types implementing this pull extra values off the raw request
    (path params, headers, raw body) after decode and before validation."""

    async def extract_raw(self, request: Request) -> None: ...


@runtime_checkable
class RawResponder(Protocol):
    """Response types implementing this build their own response instead of
    the default JSON encoding. They own status, headers, and body."""

    def respond_raw(self) -> Response: ...


class FunctionEndpoint(Endpoint[TReq, TResp]):
    """Endpoint wrapping a plain `async def handler(req) -> resp`."""

    def __init__(
        self,
        pattern: str,
        status_code: int,
        handler: Callable[[TReq], Awaitable[TResp]],
    ):
        self._pattern = pattern
        self._status_code = status_code
        self._handler = handler
        self.request_type = resolve_request_type(handler)

    def meta(self) -> EndpointMeta:
        return EndpointMeta(pattern=self._pattern, status_code=self._status_code)

    async def execute(self, req: TReq) -> TResp:
        return await self._handler(req)

    def __repr__(self) -> str:
        return f"FunctionEndpoint({self._pattern!r}, {self._handler.__qualname__})"


# ─── Mounting ────────────────────────────────────────────────────

@dataclass
class MountOptions:
    logger: logging.Logger | None = None
    # Middleware mounted in front of the endpoint handler. None means no middleware.
    middleware_stack: MiddlewareStack | None = None
    # None means default_validator().
    validator: Validator | None = None
    # Seconds. None means Settings.request_timeout_seconds.
    timeout: float | None = None


def resolve_request_type(execute: Callable[..., Any]) -> type[BaseModel]:
    """Return the pydantic model annotated on execute's request parameter."""
    params = list(inspect.signature(execute).parameters.values())
    if not params:
        raise TypeError(f"{execute!r} must accept a request parameter")
    request_type = typing.get_type_hints(execute).get(params[-1].name)
    if not (inspect.isclass(request_type) and issubclass(request_type, BaseModel)):
        raise TypeError(
            f"{execute!r}: request parameter {params[-1].name!r} must be "
            f"annotated with a pydantic model (got {request_type!r})",
        )
    return request_type


def mount(
    router: Any,
    endpoint: EndpointInterface[TReq, TResp],
    options: MountOptions | None = None,
) -> EndpointInterface[TReq, TResp]:
    """Mount an endpoint on a Starlette-compatible router.

    `router` is anything with Starlette's add_route (FastAPI, APIRouter,
    starlette.routing.Router). Raises ValueError or TypeError for a
    misconfigured endpoint.
    """
    if options is None:
        options = MountOptions()

    endpoint_logger = options.logger or logger
    validator = options.validator or default_validator()
    timeout = options.timeout
    if timeout is None:
        timeout = get_settings().request_timeout_seconds

    endpoint.set_logger(endpoint_logger)

    meta = endpoint.meta()
    meta.validate()
    endpoint.set_meta(meta)

    request_type = (
        getattr(endpoint, "request_type", None)
        or resolve_request_type(endpoint.execute)
    )
    # Unsupported field types fail here, not on the first request.
    json_field_adapters(request_type)

    async def handler(request: Request) -> Response:
        return await execute_endpoint(
            request,
            logger=endpoint_logger,
            meta=meta,
            validator=validator,
            execute=endpoint.execute,
            request_type=request_type,
            timeout=timeout,
        )

    if options.middleware_stack is not None:
        handler = options.middleware_stack.mount(handler)

    router.add_route(
        meta.path, handler,
        methods=[meta.method] if meta.method else None,
    )
    endpoint_logger.debug(
        f"Mounted endpoint {meta.pattern}",
        extra={"pattern": meta.pattern, "status_code": meta.status_code},
    )
    return endpoint


def register(
    router: Any,
    pattern: str,
    status_code: int,
    execute: Callable[[TReq], Awaitable[TResp]],
    options: MountOptions | None = None,
) -> FunctionEndpoint[TReq, TResp]:
    """Mount a plain handler function at pattern."""
    return mount(router, FunctionEndpoint(pattern, status_code, execute), options)


# ─── Execution pipeline ─────────────────────────────────────────

async def execute_endpoint(
    request: Request,
    *,
    logger: logging.Logger,
    meta: EndpointMeta,
    validator: Validator,
    execute: Callable[[TReq], Awaitable[TResp]],
    request_type: type[TReq],
    timeout: float,
) -> Response:
    """Run one request through the endpoint pipeline and build its response."""
    deadline = asyncio.get_running_loop().time() + timeout
    try:
        async with asyncio.timeout_at(deadline):
            return await _run(
                request,
                meta=meta,
                validator=validator,
                execute=execute,
                request_type=request_type,
                deadline=deadline,
            )
    except Exception as exc:
        return _error_response(exc, request, logger)


async def _run(
    request: Request,
    *,
    meta: EndpointMeta,
    validator: Validator,
    execute: Callable[[TReq], Awaitable[TResp]],
    request_type: type[TReq],
    deadline: float,
) -> Response:
    strict = validator.strict
    if strict is None:
        strict = request_type.model_config.get("strict")
    req = await _decode_request(request, request_type, strict)

    if isinstance(req, RawExtractor):
        await req.extract_raw(request)

    try:
        req = validator.validate(req)
    except ValidationError as e:
        raise APIError.bad_request(public_facing_message(e)) from e

    if asyncio.get_running_loop().time() >= deadline:
        raise TimeoutError("deadline passed before the handler was invoked")

    resp = await execute(req)

    if isinstance(resp, RawResponder):
        return resp.respond_raw()

    try:
        body = pydantic_core.to_json(resp)
    except pydantic_core.PydanticSerializationError as e:
        raise RuntimeError(f"error marshaling response JSON: {e}") from e

    return Response(
        content=body, status_code=meta.status_code, media_type=JSON_CONTENT_TYPE,
    )


async def _decode_request(
    request: Request, request_type: type[TReq], strict: bool | None,
) -> TReq:
    values = absent_fields(request_type)

    if request.method == "GET":
        return request_type.model_construct(**values)

    try:
        # Starlette caches the bytes on the request, so extract_raw can
        # read the same body again.
        body = await request.body()
    except BodyTooLargeError as e:
        raise APIError.request_entity_too_large(TOO_LARGE_MESSAGE) from e

    if not body:
        return request_type.model_construct(**values)

    try:
        payload = pydantic_core.from_json(body, allow_inf_nan=False)
    except ValueError as e:
        raise APIError.bad_request("Error unmarshaling request body: %s.", e) from e

    if not isinstance(payload, dict):
        raise APIError.bad_request(
            "Error unmarshaling request body: expected a JSON object, got %s.",
            _json_type_name(payload),
        )

    adapters = json_field_adapters(request_type)
    for key, value in payload.items():
        if key not in adapters:
            continue
        name, adapter = adapters[key]
        values[name] = _from_json_value(adapter, value, strict)

    return request_type.model_construct(**values)


@lru_cache(maxsize=None)
def json_field_adapters(
    request_type: type[BaseModel],
) -> dict[str, tuple[str, TypeAdapter]]:
    """JSON-mode adapters for request_type's fields, keyed by name and alias.

    Values decoded through these get JSON input rules (ISO datetime strings,
    arrays for tuples) even under strict mode.
    """
    adapters = {}
    for name, field in request_type.model_fields.items():
        annotation = field.annotation
        if field.metadata:
            annotation = Annotated[(annotation, *field.metadata)]
        adapter = TypeAdapter(annotation)
        adapters[name] = (name, adapter)
        if field.alias:
            adapters[field.alias] = (name, adapter)
    return adapters


def _from_json_value(adapter: TypeAdapter, value: Any, strict: bool | None) -> Any:
    try:
        return adapter.validate_json(pydantic_core.to_json(value), strict=strict)
    except ValidationError:
        # Kept as decoded; the validation step reports the violation.
        return value


def _json_type_name(value: Any) -> str:
    if isinstance(value, list):
        return "an array"
    if isinstance(value, str):
        return "a string"
    if isinstance(value, bool):
        return "a boolean"
    if isinstance(value, (int, float)):
        return "a number"
    return "null"


# ─── Classification ─────────────────────────────────────────────

def _error_response(
    exc: Exception, request: Request, logger: logging.Logger,
) -> Response:
    """Map any pipeline failure to exactly one error envelope."""
    log_extra = {"method": request.method, "path": request.url.path}

    # Certain database failures are safe and useful to show to callers.
    err = maybe_interpret_internal_error(exc)

    api_err = find_error(err, APIError)
    if api_err is not None:
        extra = {
            **log_extra,
            "error": api_err.message,
            "status_code": api_err.status_code,
        }
        if api_err.internal_error is not None:
            extra["internal_error"] = str(api_err.internal_error)
        # Info level: API errors are normal.
        logger.info("API error response", extra=extra)
        return api_err.to_response(logger)

    if find_error(err, TimeoutError) is not None:
        logger.error(
            "Request timeout",
            extra={**log_extra, "error": str(err) or type(err).__name__},
        )
        return APIError.service_unavailable(TIMEOUT_MESSAGE).to_response(logger)

    # The error text may contain something sensitive; logs only.
    logger.error(
        f"Error running API route: {err}",
        exc_info=err,
        extra={**log_extra, "error": str(err) or type(err).__name__},
    )
    return APIError.internal_server_error(INTERNAL_ERROR_MESSAGE).to_response(logger)
