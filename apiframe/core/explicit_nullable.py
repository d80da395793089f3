"""Explicit Nullable — tri-state field for PATCH-style partial updates.

Invariants:
    - absent: present=False, value=None (key missing from payload)
    - explicit null: present=True, value=None (key sent as null)
    - explicit value: present=True, value=T (key sent with a value, zero values included)
    - present=False never carries a value
    - Through the endpoint pipeline and Validator, a missing key is absent even
      when the field declares no default (absent_fields)

Design Decisions:
    - Pydantic core schema on the type itself: any model field typed
      ExplicitNullable[T] decodes and validates without extra registration
    - Inner constraints ride on T (ExplicitNullable[Annotated[str, Field(min_length=1)]])
      and run only when a value was explicitly sent
"""

from functools import lru_cache
from typing import Any, Generic, TypeVar, get_args, get_origin

from pydantic import BaseModel, GetCoreSchemaHandler, TypeAdapter
from pydantic_core import core_schema

T = TypeVar("T")


class ExplicitNullable(Generic[T]):
    """Field that distinguishes omitted, explicitly null, and set."""

    # Plain class, not a dataclass: pydantic builds its own schema for
    # parametrized generic dataclasses and would skip the hook below.
    def __init__(self, present: bool = False, value: T | None = None):
        if not present and value is not None:
            raise ValueError("ExplicitNullable cannot hold a value when not present")
        self.present = present
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExplicitNullable):
            return NotImplemented
        return (self.present, self.value) == (other.present, other.value)

    def __repr__(self) -> str:
        if not self.present:
            return "ExplicitNullable.absent()"
        if self.value is None:
            return "ExplicitNullable.null()"
        return f"ExplicitNullable.of({self.value!r})"

    @classmethod
    def absent(cls) -> "ExplicitNullable[T]":
        return cls()

    @classmethod
    def null(cls) -> "ExplicitNullable[T]":
        return cls(present=True)

    @classmethod
    def of(cls, value: T) -> "ExplicitNullable[T]":
        return cls(present=True, value=value)

    @property
    def is_absent(self) -> bool:
        return not self.present

    @property
    def is_null(self) -> bool:
        return self.present and self.value is None

    @property
    def has_value(self) -> bool:
        return self.present and self.value is not None

    def value_for_validation(self) -> T | None:
        """Value the validation rules should see.

        None for absent and explicit null, so optional rules are skipped.
        The inner value otherwise, even an empty string or zero.
        """
        if not self.present:
            return None
        return self.value

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source: Any, handler: GetCoreSchemaHandler,
    ) -> core_schema.CoreSchema:
        args = get_args(source)
        inner_schema = handler.generate_schema(args[0] if args else Any)

        def validate(
            value: Any, inner: core_schema.ValidatorFunctionWrapHandler,
        ) -> ExplicitNullable:
            if isinstance(value, ExplicitNullable):
                extracted = value.value_for_validation()
                if extracted is None:
                    return value
                return ExplicitNullable.of(inner(extracted))
            if value is None:
                return ExplicitNullable.null()
            return ExplicitNullable.of(inner(value))

        return core_schema.no_info_wrap_validator_function(
            validate,
            inner_schema,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda field: field.value,
                return_schema=core_schema.nullable_schema(inner_schema),
            ),
        )


def explicit_nullable_from_json(
    fragment: bytes | str | None, inner_type: Any = Any,
) -> ExplicitNullable:
    """Decode a single JSON fragment into an ExplicitNullable.

    None means the fragment was missing from its payload. Raises
    pydantic.ValidationError for malformed JSON or an invalid inner value.
    """
    if fragment is None:
        return ExplicitNullable.absent()
    return TypeAdapter(ExplicitNullable[inner_type]).validate_json(fragment)


def is_explicit_nullable(annotation: Any) -> bool:
    return annotation is ExplicitNullable or get_origin(annotation) is ExplicitNullable


@lru_cache(maxsize=None)
def _required_nullable_fields(model_type: type[BaseModel]) -> tuple[str, ...]:
    return tuple(
        name
        for name, field in model_type.model_fields.items()
        if field.is_required() and is_explicit_nullable(field.annotation)
    )


def absent_fields(model_type: type[BaseModel]) -> dict[str, ExplicitNullable]:
    """Absent values for model_type's ExplicitNullable fields declared without a default.

    A missing key always means absent, so these fields never fail as required.
    """
    return {
        name: ExplicitNullable.absent()
        for name in _required_nullable_fields(model_type)
    }
