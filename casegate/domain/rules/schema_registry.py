from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from casegate.domain.forms import intraop_record, operative_note, preop_ward, recovery_record, who_checklist
from casegate.domain.forms.common import FormSectionSpec, FormTemplate, TemplateBuilder, partial_model
from casegate.domain.models.clinical_form import (
    INTRAOP_TEMPLATE_KEY,
    OPERATIVE_NOTE_TEMPLATE_KEY,
    PREOP_WARD_TEMPLATE_KEY,
    RECOVERY_TEMPLATE_KEY,
    WHO_CHECKLIST_TEMPLATE_KEY,
    FieldError,
    FinalSchemaContext,
    SchemaValidation,
    SectionCompletion,
)

_BUILDERS: dict[str, TemplateBuilder] = {
    PREOP_WARD_TEMPLATE_KEY: preop_ward.build_template,
    INTRAOP_TEMPLATE_KEY: intraop_record.build_template,
    OPERATIVE_NOTE_TEMPLATE_KEY: operative_note.build_template,
    RECOVERY_TEMPLATE_KEY: recovery_record.build_template,
    WHO_CHECKLIST_TEMPLATE_KEY: who_checklist.build_template,
}

NOT_AN_OBJECT = "Payload must be an object"


def template_keys() -> list[str]:
    return list(_BUILDERS)


def is_known_template(template_key: str) -> bool:
    return template_key in _BUILDERS


def get_template(template_key: str, context: FinalSchemaContext | None = None) -> FormTemplate:
    """Build the template fresh; the final shape may depend on ``context``."""
    builder = _BUILDERS.get(template_key)
    if builder is None:
        raise ValueError(f"unknown form template: {template_key}")
    return builder(context or FinalSchemaContext())


def _errors_from(exc: ValidationError, prefix: tuple[str, ...]) -> list[FieldError]:
    errors: list[FieldError] = []
    for item in exc.errors(include_url=False):
        path = ".".join(str(part) for part in (*prefix, *item["loc"]))
        message = item["msg"]
        if item["type"] == "value_error" and "error" in item.get("ctx", {}):
            message = str(item["ctx"]["error"])
        errors.append(FieldError(path, message))
    return errors


def _prefixed(errors: list[FieldError], prefix: str) -> list[FieldError]:
    return [FieldError(f"{prefix}.{error.path}" if error.path else prefix, error.message) for error in errors]


def _validate_final_section(spec: FormSectionSpec, raw: Any) -> tuple[list[FieldError], dict[str, Any] | None]:
    try:
        section = spec.model.model_validate({} if raw is None else raw)
    except ValidationError as exc:
        return _errors_from(exc, ()), None
    data = section.model_dump(by_alias=True)
    errors: list[FieldError] = []
    for rule in spec.rules:
        errors.extend(rule(data))
    return errors, data


def validate_draft(template_key: str, payload: Any) -> SchemaValidation:
    """Lenient check used on every save.

    Missing sections and missing fields are fine; wrong types, values out of
    bounds, malformed clock times and unknown enum values are not.
    """
    template = get_template(template_key)
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        return SchemaValidation(ok=False, errors=[FieldError("", NOT_AN_OBJECT)])

    errors: list[FieldError] = []
    data: dict[str, Any] = {}
    for spec in template.sections:
        raw = payload.get(spec.key)
        if raw is None:
            continue
        model = partial_model(spec.model, deep=spec.deep_draft)
        try:
            section = model.model_validate(raw)
        except ValidationError as exc:
            errors.extend(_errors_from(exc, (spec.key,)))
            continue
        data[spec.key] = section.model_dump(by_alias=True, exclude_none=True)
    if errors:
        return SchemaValidation(ok=False, errors=errors)
    return SchemaValidation(ok=True, data=data)


def validate_final(
    template_key: str,
    payload: Any,
    context: FinalSchemaContext | None = None,
) -> SchemaValidation:
    """Strict check used at finalization.

    Sections are checked first, then their refinements, then the form-level
    refinements once every section is well formed.
    """
    template = get_template(template_key, context)
    if not isinstance(payload, Mapping):
        return SchemaValidation(ok=False, errors=[FieldError("", NOT_AN_OBJECT)])

    errors: list[FieldError] = []
    data: dict[str, Any] = {}
    for spec in template.sections:
        section_errors, section_data = _validate_final_section(spec, payload.get(spec.key))
        errors.extend(_prefixed(section_errors, spec.key))
        if section_data is not None:
            data[spec.key] = section_data
    if not errors:
        for rule in template.form_rules:
            errors.extend(rule(data))
    if errors:
        return SchemaValidation(ok=False, errors=errors)
    return SchemaValidation(ok=True, data=data)


def section_completion(
    template_key: str,
    payload: Any,
    context: FinalSchemaContext | None = None,
) -> dict[str, SectionCompletion]:
    template = get_template(template_key, context)
    source = payload if isinstance(payload, Mapping) else {}
    result: dict[str, SectionCompletion] = {}
    for spec in template.sections:
        section_errors, _ = _validate_final_section(spec, source.get(spec.key))
        result[spec.key] = SectionCompletion(
            complete=not section_errors,
            title=spec.title,
            critical=spec.critical,
            errors=[error.as_text() for error in section_errors],
        )
    return result


def missing_final_items(
    template_key: str,
    payload: Any,
    context: FinalSchemaContext | None = None,
) -> list[str]:
    """Everything still blocking finalization, as ``"path: message"`` lines."""
    return [error.as_text() for error in validate_final(template_key, payload, context).errors]
