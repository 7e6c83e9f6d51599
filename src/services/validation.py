"""Pure input validation.

``validate`` never raises for bad input: it returns a :class:`Validated`
holding either the parsed model or the field-level errors, so callers
decide whether a failure aborts the operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from src.services.errors import FieldError, ValidationFailed

M = TypeVar("M", bound=BaseModel)

_REQUEST_PARTS = frozenset({"body", "query", "path", "header"})


@dataclass(frozen=True, slots=True)
class Validated(Generic[M]):
    value: M | None = None
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.errors

    def unwrap(self) -> M:
        """Return the parsed model or raise :class:`ValidationFailed`."""
        if self.value is None or self.errors:
            raise ValidationFailed(self.errors)
        return self.value


def field_errors(exc: ValidationError) -> list[FieldError]:
    """Flatten a pydantic (or FastAPI request) error into ``field``/``message`` pairs."""
    errors: list[FieldError] = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part not in _REQUEST_PARTS)
        errors.append(FieldError(field=location or "__root__", message=err.get("msg", "Invalid value")))
    return errors


def validate(model: type[M], data: dict[str, Any]) -> Validated[M]:
    try:
        return Validated(value=model.model_validate(data))
    except ValidationError as exc:
        return Validated(errors=field_errors(exc))
