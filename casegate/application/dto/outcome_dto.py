from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

from casegate.domain.constants import OutcomeKind
from casegate.domain.models.clinical_form import FieldError

TRANSPORT_STATUS: dict[OutcomeKind, int] = {
    OutcomeKind.OK: 200,
    OutcomeKind.VALIDATION: 422,
    OutcomeKind.FORBIDDEN: 403,
    OutcomeKind.CONFLICT: 409,
    OutcomeKind.NOT_FOUND: 404,
}

RequestT = TypeVar("RequestT", bound=BaseModel)


class FieldErrorDto(BaseModel):
    path: str
    message: str


class Outcome(BaseModel):
    ok: bool
    kind: OutcomeKind
    data: Any = None
    next_status: str | None = None
    field_errors: list[FieldErrorDto] = Field(default_factory=list)
    missing_items: list[str] = Field(default_factory=list)
    reason: str | None = None

    @property
    def transport_status(self) -> int:
        return TRANSPORT_STATUS[self.kind]

    @classmethod
    def success(cls, data: Any = None, *, next_status: str | None = None) -> Outcome:
        return cls(ok=True, kind=OutcomeKind.OK, data=data, next_status=next_status)

    @classmethod
    def validation(
        cls,
        field_errors: Iterable[FieldError] = (),
        *,
        missing_items: Iterable[str] = (),
        reason: str | None = None,
    ) -> Outcome:
        return cls(
            ok=False,
            kind=OutcomeKind.VALIDATION,
            field_errors=[FieldErrorDto(path=error.path, message=error.message) for error in field_errors],
            missing_items=list(missing_items),
            reason=reason,
        )

    @classmethod
    def forbidden(cls, reason: str | None = None) -> Outcome:
        return cls(ok=False, kind=OutcomeKind.FORBIDDEN, reason=reason)

    @classmethod
    def conflict(cls, reason: str) -> Outcome:
        return cls(ok=False, kind=OutcomeKind.CONFLICT, reason=reason)

    @classmethod
    def not_found(cls, reason: str | None = None) -> Outcome:
        return cls(ok=False, kind=OutcomeKind.NOT_FOUND, reason=reason)


def field_errors_from(exc: ValidationError) -> list[FieldError]:
    errors: list[FieldError] = []
    for item in exc.errors(include_url=False):
        message = item["msg"]
        if item["type"] == "value_error" and "error" in item.get("ctx", {}):
            message = str(item["ctx"]["error"])
        errors.append(FieldError(".".join(str(part) for part in item["loc"]), message))
    return errors


def parse_request(
    model: type[RequestT],
    payload: RequestT | Mapping[str, Any] | None,
) -> RequestT | Outcome:
    """Validate a request body; a malformed body becomes a VALIDATION outcome."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload if payload is not None else {})
    except ValidationError as exc:
        return Outcome.validation(field_errors_from(exc))
