"""Pydantic models for activation records returned by the activations API.

Required fields are decoded strictly. Optional fields (``statusCode``,
``logs``, ``annotations``) are best-effort: a value that does not decode is
dropped instead of failing the record, because the upstream schema is not
stable across platform versions.
"""

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)

# --- Annotation values ---


class ActivationLimits(BaseModel):
    """Resource limits the platform attaches to an activation."""

    model_config = ConfigDict(frozen=True, strict=True)

    concurrency: int
    logs: int
    memory: int
    timeout: int


class StringValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["string"] = "string"
    value: str


class IntValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["int"] = "int"
    value: int


class FloatValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["float"] = "float"
    value: float


class BoolValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["bool"] = "bool"
    value: bool


class ArrayValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["array"] = "array"
    value: list["AnnotationValue"]


class LimitsValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["limits"] = "limits"
    value: ActivationLimits


AnnotationValue = Annotated[
    StringValue | IntValue | FloatValue | BoolValue | ArrayValue | LimitsValue,
    Field(discriminator="kind"),
]

ArrayValue.model_rebuild()

_LIMIT_KEYS = ("concurrency", "logs", "memory", "timeout")


def decode_annotation_value(raw: object) -> AnnotationValue:
    """Decode a raw JSON annotation value into its variant.

    Variants are tried in a fixed order: string, integer, float, bool, array,
    limits. The order matters: ``"5"`` stays a string, ``true`` is never an
    integer, and an integral float such as ``2.0`` decodes as an integer.

    Raises:
        ValueError: If no variant matches. Inside an array, one bad element
            fails the whole array.
    """
    if isinstance(raw, str):
        return StringValue(value=raw)
    if isinstance(raw, int) and not isinstance(raw, bool):
        return IntValue(value=raw)
    if isinstance(raw, float):
        if raw.is_integer():
            return IntValue(value=int(raw))
        return FloatValue(value=raw)
    if isinstance(raw, bool):
        return BoolValue(value=raw)
    if isinstance(raw, list):
        return ArrayValue(value=[decode_annotation_value(item) for item in raw])
    if isinstance(raw, dict) and all(isinstance(raw.get(key), int) for key in _LIMIT_KEYS):
        try:
            return LimitsValue(value=ActivationLimits(**{key: raw[key] for key in _LIMIT_KEYS}))
        except ValidationError as e:
            raise ValueError(f"Wrong type for annotation value: {raw!r}") from e
    raise ValueError(f"Wrong type for annotation value: {raw!r}")


def _decode_annotations(raw: object) -> dict[str, AnnotationValue]:
    """Turn the wire list of ``{key, value}`` objects into a mapping."""
    if not isinstance(raw, list):
        raise ValueError("annotations must be a list")
    decoded: dict[str, AnnotationValue] = {}
    for entry in raw:
        if not isinstance(entry, dict) or not isinstance(entry.get("key"), str) or "value" not in entry:
            raise ValueError(f"malformed annotation entry: {entry!r}")
        decoded[entry["key"]] = decode_annotation_value(entry["value"])
    return decoded


# --- Activation record ---


class ActivationRecord(BaseModel):
    """One recorded invocation of a platform function.

    Two records are equal when their ids match, whatever else differs (the
    same activation fetched with and without logs is one record).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: StrictStr = Field(alias="activationId")
    name: StrictStr
    namespace: StrictStr
    start: StrictInt
    end: StrictInt
    duration: StrictInt
    publish: StrictBool
    version: StrictStr
    status_code: StrictInt | None = Field(default=None, alias="statusCode")
    logs: list[StrictStr] | None = None
    annotations: dict[str, AnnotationValue] | None = None

    @field_validator("status_code", "logs", mode="wrap")
    @classmethod
    def _drop_undecodable(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
        try:
            return handler(value)
        except ValidationError:
            return None

    @field_validator("annotations", mode="wrap")
    @classmethod
    def _decode_annotation_list(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
        if value is None:
            return None
        try:
            if isinstance(value, list):
                value = _decode_annotations(value)
            return handler(value)
        except (ValueError, ValidationError):
            return None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ActivationRecord):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def elapsed(self) -> int:
        """Milliseconds between start and end (may disagree with ``duration``)."""
        return self.end - self.start

    @property
    def succeeded(self) -> bool:
        return self.status_code == 0

    @property
    def started_at(self) -> datetime:
        return datetime.fromtimestamp(self.start / 1000, tz=UTC)


ActivationList = TypeAdapter(list[ActivationRecord])
