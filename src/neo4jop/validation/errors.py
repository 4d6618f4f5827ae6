"""Field-scoped validation errors and their aggregation."""

import json
from dataclasses import dataclass, field
from typing import Any, List

from neo4jop.exceptions import ErrorReason, ValidationFailed

INVALID = "Invalid value"
REQUIRED = "Required value"
UNSUPPORTED = "Unsupported value"
FORBIDDEN = "Forbidden"


@dataclass(frozen=True)
class FieldError:
    """One problem with one field, rendered like a Kubernetes field error."""

    field: str
    message: str
    value: Any = None
    reason: ErrorReason = ErrorReason.INVALID_VALUE
    kind: str = INVALID

    def __str__(self):
        if self.kind in (REQUIRED, FORBIDDEN):
            return f"{self.field}: {self.kind}: {self.message}"
        return f"{self.field}: {self.kind}: {_render(self.value)}: {self.message}"


def _render(value):
    if isinstance(value, str):
        return json.dumps(value)
    if value is None:
        return "null"
    return str(value)


def invalid(path, value, message, reason=ErrorReason.INVALID_VALUE):
    return FieldError(path, message, value, reason, INVALID)


def required(path, message):
    return FieldError(path, message, None, ErrorReason.MISSING_REQUIRED_FIELD, REQUIRED)


def unsupported(path, value, supported):
    message = "supported values: " + ", ".join(json.dumps(v) for v in supported)
    return FieldError(path, message, value, ErrorReason.UNSUPPORTED_ENUM_VALUE, UNSUPPORTED)


def forbidden(path, message, reason=ErrorReason.INVALID_VALUE):
    return FieldError(path, message, None, reason, FORBIDDEN)


@dataclass
class ValidationResult:
    """Errors reject the object; warnings are returned to the client as advisories."""

    errors: List[FieldError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        return not self.errors

    def extend(self, errors: List[FieldError]):
        for error in errors:
            if not any(
                e.field == error.field and e.message == error.message
                for e in self.errors
            ):
                self.errors.append(error)

    def warn(self, message: str):
        if message not in self.warnings:
            self.warnings.append(message)

    def raise_for_errors(self):
        if self.errors:
            raise ValidationFailed(self.errors)


def from_pydantic_error(exc, prefix="spec") -> List[FieldError]:
    """Convert a pydantic ValidationError raised while parsing a spec."""
    errors = []
    for err in exc.errors():
        path = ".".join([prefix] + [str(p) for p in err.get("loc", ())])
        if err.get("type") == "extra_forbidden":
            errors.append(forbidden(path, "field not declared in schema"))
        elif err.get("type") == "missing":
            errors.append(required(path, err.get("msg", "field required")))
        else:
            errors.append(invalid(path, err.get("input"), err.get("msg", "invalid value")))
    return errors
