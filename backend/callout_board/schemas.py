from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .enums import RESOURCE_CATEGORY_ALIASES, CallOutStatus, ResourceCategory
from .errors import ValidationError

GRID_REFERENCE_PATTERN = re.compile(r"^([HJNOST][A-HJ-Z])(\d{2,10})$")

ModelT = TypeVar("ModelT", bound=BaseModel)


def normalize_grid_reference(value: str) -> str:
    compact = re.sub(r"\s+", "", value).upper()
    match = GRID_REFERENCE_PATTERN.match(compact)
    if match is None or len(match.group(2)) % 2 != 0:
        raise ValueError(
            "gridReference must be two grid letters followed by an even number of digits, e.g. NY 215 072"
        )
    letters, digits = match.groups()
    half = len(digits) // 2
    return f"{letters} {digits[:half]} {digits[half:]}"


def normalize_resource_category(value: Any) -> Any:
    if isinstance(value, str):
        return RESOURCE_CATEGORY_ALIASES.get(value.strip(), value.strip().lower())
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Call-outs ---
class CallOutCreate(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    name: str = Field(
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("name", "title"),
    )
    status: CallOutStatus = CallOutStatus.ACTIVE
    latitude: float | None = Field(default=None, ge=-90, le=90, allow_inf_nan=False)
    longitude: float | None = Field(default=None, ge=-180, le=180, allow_inf_nan=False)
    grid_reference: str | None = Field(
        default=None,
        max_length=32,
        validation_alias=AliasChoices("gridReference", "grid_reference", "gridRef"),
    )

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def reject_boolean_coordinate(cls, value: Any) -> Any:
        # bool is an int subclass and lax float parsing would take it as 1.0/0.0.
        if isinstance(value, bool):
            raise ValueError("coordinate must be a number")
        return value

    @field_validator("grid_reference", mode="before")
    @classmethod
    def blank_grid_reference_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("grid_reference")
    @classmethod
    def validate_grid_reference(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return normalize_grid_reference(value)

    @model_validator(mode="after")
    def validate_location(self) -> "CallOutCreate":
        has_latitude = self.latitude is not None
        has_longitude = self.longitude is not None
        if has_latitude != has_longitude:
            raise ValueError("latitude and longitude must be provided together")
        if not has_latitude and self.grid_reference is None:
            raise ValueError("location requires latitude/longitude or gridReference")
        return self


class CallOutUpdate(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    name: str | None = Field(
        default=None,
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("name", "title"),
    )
    status: CallOutStatus | None = None

    @field_validator("name", "status")
    @classmethod
    def reject_explicit_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("field cannot be null")
        return value


class CallOutRead(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: str
    name: str
    status: CallOutStatus
    latitude: float | None = None
    longitude: float | None = None
    grid_reference: str | None = None
    created_at: datetime
    assigned_resources: list[str] = Field(default_factory=list)


# --- Resources ---
class ResourceCreate(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    name: str = Field(
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("name", "label"),
    )
    category: ResourceCategory = Field(validation_alias=AliasChoices("category", "type"))

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: Any) -> Any:
        return normalize_resource_category(value)


class ResourceSeed(ResourceCreate):
    id: str | None = Field(default=None, min_length=1, max_length=128)


class ResourceUpdate(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    name: str | None = Field(
        default=None,
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("name", "label"),
    )
    category: ResourceCategory | None = Field(
        default=None,
        validation_alias=AliasChoices("category", "type"),
    )

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: Any) -> Any:
        return normalize_resource_category(value)

    @field_validator("name", "category")
    @classmethod
    def reject_explicit_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("field cannot be null")
        return value


class ResourceRead(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: str
    name: str
    category: ResourceCategory


class AssignedResourceRead(CamelModel):
    id: str
    name: str
    category: ResourceCategory | None = None
    resolved: bool


# --- Assignments / board ---
class AssignmentRef(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    callout_id: str = Field(min_length=1, max_length=128)
    resource_id: str = Field(min_length=1, max_length=128)


class EntityRef(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    id: str = Field(min_length=1, max_length=128)


class BoardMove(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    resource_id: str = Field(min_length=1, max_length=128)
    from_pool: str = Field(min_length=1, max_length=64)
    to_pool: str = Field(min_length=1, max_length=64)
    target_index: int = 0


class BoardRead(CamelModel):
    pools: dict[str, list[str]]


class IntegrityWarningRead(CamelModel):
    callout_id: str
    resource_id: str
    reason: str


def to_validation_error(raw_errors: Sequence[Mapping[str, Any]]) -> ValidationError:
    """Collapse pydantic error dicts into the store's ValidationError shape."""
    errors = [
        {"loc": [str(part) for part in error["loc"]], "msg": error["msg"]}
        for error in raw_errors
    ]
    detail = "; ".join(
        f"{'.'.join(error['loc']) or 'body'}: {error['msg']}" for error in errors
    )
    return ValidationError(detail or "Invalid payload", errors)


def parse_payload(schema: type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` against ``schema``, raising the store's ValidationError."""
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        raise to_validation_error(exc.errors()) from exc


def dump_entity(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)
