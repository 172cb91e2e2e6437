from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StrictStr, create_model
from pydantic.alias_generators import to_camel

from casegate.domain.models.clinical_form import FieldError, FinalSchemaContext

TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
MIN_EXPLANATION_LENGTH = 5


def _check_optional_time(value: str) -> str:
    if value and not TIME_OF_DAY_PATTERN.match(value):
        raise ValueError("Must be in HH:MM format (24h)")
    return value


def _check_required_time(value: str) -> str:
    if not TIME_OF_DAY_PATTERN.match(value):
        raise ValueError("Must be in HH:MM format (24h)")
    return value


# "" means "not recorded yet"; anything else must be a 24h clock time.
TimeOfDay = Annotated[StrictStr, AfterValidator(_check_optional_time)]
RequiredTimeOfDay = Annotated[StrictStr, AfterValidator(_check_required_time)]
Name = Annotated[StrictStr, Field(min_length=2)]
ShortText = Annotated[StrictStr, Field(min_length=1)]


class FormSection(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


SectionRule = Callable[[Mapping[str, Any]], list[FieldError]]
FormRule = Callable[[Mapping[str, Any]], list[FieldError]]


@dataclass(frozen=True)
class FormSectionSpec:
    key: str
    title: str
    model: type[FormSection]
    rules: tuple[SectionRule, ...] = ()
    critical: bool = False
    deep_draft: bool = False


@dataclass(frozen=True)
class FormTemplate:
    key: str
    version: int
    title: str
    sections: tuple[FormSectionSpec, ...]
    form_rules: tuple[FormRule, ...] = ()


TemplateBuilder = Callable[[FinalSchemaContext], FormTemplate]

_PARTIAL_CACHE: dict[tuple[type[FormSection], bool], type[FormSection]] = {}


def partial_model(model: type[FormSection], *, deep: bool = False) -> type[FormSection]:
    """Same fields and bounds as ``model``, every field optional.

    Refinements live outside the models, so the draft variant only keeps
    structural checks.
    """
    cache_key = (model, deep)
    cached = _PARTIAL_CACHE.get(cache_key)
    if cached is not None:
        return cached
    fields: dict[str, Any] = {}
    for name, info in model.model_fields.items():
        annotation: Any = info.annotation
        if deep and isinstance(annotation, type) and issubclass(annotation, FormSection):
            annotation = partial_model(annotation, deep=True)
        if info.metadata:
            annotation = Annotated[(annotation, *info.metadata)]
        fields[name] = (Optional[annotation], None)
    partial = create_model(f"{model.__name__}Draft", __base__=FormSection, **fields)
    _PARTIAL_CACHE[cache_key] = partial
    return partial


def has_text(value: object, min_length: int = 1) -> bool:
    return len(str(value or "").strip()) >= min_length


def flag_requires_explanation(
    flag: str,
    explanation: str,
    *,
    message: str,
    when: bool = True,
    min_length: int = MIN_EXPLANATION_LENGTH,
) -> SectionRule:
    """Build a rule: when ``flag`` equals ``when`` the explanation must be filled in."""

    def rule(section: Mapping[str, Any]) -> list[FieldError]:
        if section.get(flag) is when and not has_text(section.get(explanation), min_length):
            return [FieldError(explanation, message)]
        return []

    return rule
