"""Validator — pydantic-backed validation with one-sentence public messages.

Invariants:
    - validate() is deterministic and returns a validated copy, never mutates input
    - Unvalidated instances (model_construct) are re-validated field by field
    - public_facing_message() renders only the first violation

Design Decisions:
    - Validator is an explicit object injected per endpoint; default_validator()
      is the shared process-wide instance (lru_cache, like get_settings)
    - Compiled rules live on the pydantic types themselves; the Validator only
      carries validation policy (strict mode, context)
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError
from pydantic_core import ErrorDetails

from apiframe.core.explicit_nullable import absent_fields

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class Violation:
    """One field-level rule violation."""
    field: str
    rule: str
    message: str


class Validator:
    """Validates pydantic models under a fixed policy."""

    def __init__(
        self, strict: bool | None = None, context: dict[str, Any] | None = None,
    ):
        self.strict = strict
        self.context = context

    def validate(self, value: M) -> M:
        """Validate a model instance, returning a validated copy.

        Raises pydantic.ValidationError with violations in field order.
        """
        if not isinstance(value, BaseModel):
            raise TypeError(
                f"Validator can only validate pydantic models, got {type(value).__name__}",
            )
        return type(value).model_validate(
            _field_values(value),
            strict=self.strict,
            context=self.context,
            by_name=True,
        )

    def __repr__(self) -> str:
        return f"Validator(strict={self.strict!r})"


@lru_cache
def default_validator() -> Validator:
    return Validator()


def _field_values(value: BaseModel) -> dict[str, Any]:
    # Only keys actually present; missing required fields must stay missing
    # so they surface as "required" violations.
    values = {
        name: getattr(value, name)
        for name in type(value).model_fields
        if name in value.__dict__
    }
    for name, absent in absent_fields(type(value)).items():
        values.setdefault(name, absent)
    if value.__pydantic_extra__:
        values.update(value.__pydantic_extra__)
    return values


# ─── Public messages ────────────────────────────────────────────

def violations(exc: ValidationError) -> list[Violation]:
    return [
        Violation(
            field=_field_name(error),
            rule=error["type"],
            message=error["msg"],
        )
        for error in exc.errors()
    ]


def public_facing_message(exc: ValidationError) -> str:
    """Render the first violation as a single actionable sentence."""
    errors = exc.errors()
    if not errors:
        return "Request is invalid."
    error = errors[0]
    field = _field_name(error)
    if not field:
        return f"Value is invalid: {_detail(error)}."
    return f"Field '{field}' {_describe(error)}."


def _field_name(error: ErrorDetails) -> str:
    return ".".join(str(part) for part in error["loc"])


def _describe(error: ErrorDetails) -> str:
    ctx = error.get("ctx") or {}
    match error["type"]:
        case "missing":
            return "is required"
        case "string_too_short" | "too_short":
            return f"is too short (minimum length is {ctx.get('min_length')})"
        case "string_too_long" | "too_long":
            return f"is too long (maximum length is {ctx.get('max_length')})"
        case "greater_than_equal":
            return f"is less than the minimum of {ctx.get('ge')}"
        case "greater_than":
            return f"is not greater than {ctx.get('gt')}"
        case "less_than_equal":
            return f"is greater than the maximum of {ctx.get('le')}"
        case "less_than":
            return f"is not less than {ctx.get('lt')}"
        case "literal_error" | "enum":
            return f"is not one of the allowed values: {ctx.get('expected')}"
        case "string_pattern_mismatch":
            return "is not in the expected format"
        case _:
            return f"is invalid: {_detail(error)}"


def _detail(error: ErrorDetails) -> str:
    ctx = error.get("ctx") or {}
    if error["type"] in ("value_error", "assertion_error") and "error" in ctx:
        detail = str(ctx["error"])
    else:
        detail = error["msg"]
    detail = detail.rstrip(".")
    return detail[:1].lower() + detail[1:]
