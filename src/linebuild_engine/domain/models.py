"""Dataclass entity models with strict boundary validation and canonical serialization."""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import NoReturn, TypeVar, cast

from linebuild_engine.constants import BUILD_SCHEMA_VERSION, DEFAULT_TRACK_ID

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)

_MAX_TEXT = 8192
_MAX_COLLECTION = 2048


class ActionFamily(StrEnum):
    PREP = "prep"
    HEAT = "heat"
    TRANSFER = "transfer"
    COMBINE = "combine"
    ASSEMBLE = "assemble"
    PORTION = "portion"
    CHECK = "check"
    PACKAGING = "packaging"
    OTHER = "other"


class CookingPhase(StrEnum):
    PRE_COOK = "pre_cook"
    COOK = "cook"
    POST_COOK = "post_cook"
    ASSEMBLY = "assembly"
    PASS = "pass"


class SublocationType(StrEnum):
    WORK_SURFACE = "work_surface"
    COLD_RAIL = "cold_rail"
    DRY_RAIL = "dry_rail"
    COLD_STORAGE = "cold_storage"
    PACKAGING = "packaging"
    KIT_STORAGE = "kit_storage"
    WINDOW_SHELF = "window_shelf"
    EQUIPMENT = "equipment"
    STRETCH_TABLE = "stretch_table"
    CUT_TABLE = "cut_table"
    FREEZER = "freezer"


class BuildStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ConfidenceTier(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PrepType(StrEnum):
    PRE_SERVICE = "pre_service"
    ORDER_EXECUTION = "order_execution"


class AssemblyRole(StrEnum):
    BASE = "base"
    ADDED = "added"


class TransferType(StrEnum):
    SAME_STATION = "same_station"
    INTER_STATION = "inter_station"
    INTER_POD = "inter_pod"


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        _fail(self.__class__.__name__, "to_dict is not implemented for this model type")

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())

    @classmethod
    def from_json(cls: type[TModel], raw: str) -> TModel:
        if not isinstance(raw, str):
            _fail(cls.__name__, f"expected JSON string, got {type(raw).__name__}")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail(cls.__name__, f"invalid JSON: {exc}")
        if not isinstance(parsed, dict):
            _fail(cls.__name__, "JSON root must be an object")
        return cls.from_dict(parsed)

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        _fail(cls.__name__, "from_dict is not implemented for this model type")


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(value: object, path: str, *, min_len: int = 1, max_len: int = _MAX_TEXT) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if len(normalized) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_optional_str(value: object, path: str) -> str | None:
    if value is None:
        return None
    return _as_str(value, path)


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_float(value: object, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(path, f"expected number, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed):
        _fail(path, "must be finite")
    return parsed


def _as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def _as_optional_datetime(value: object, path: str) -> datetime | None:
    if value is None:
        return None
    return _as_datetime(value, path)


def iso8601z(value: datetime, *, timespec: str = "milliseconds") -> str:
    """Render as UTC ISO-8601 with a ``Z`` suffix; naive values are taken as UTC."""
    normalized = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return normalized.astimezone(UTC).isoformat(timespec=timespec).replace("+00:00", "Z")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    """Parse an enum value case-insensitively."""
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value.strip().lower())
    except ValueError:
        allowed = ", ".join(sorted(str(item.value) for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_optional_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum | None:
    if value is None:
        return None
    return _as_enum(enum_type, value, path)


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        if len(value) > _MAX_COLLECTION:
            _fail(path, f"too many items (>{_MAX_COLLECTION})")
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_str_tuple(value: object, path: str) -> tuple[str, ...]:
    return tuple(
        _as_str(item, f"{path}[{index}]") for index, item in enumerate(_as_sequence(value, path))
    )


def _compact(payload: dict[str, JSONValue]) -> dict[str, JSONValue]:
    return {key: value for key, value in payload.items() if value is not None}


def _coerce_model(
    model_type: type[TModel], value: object, path: str
) -> TModel:
    if isinstance(value, model_type):
        return value
    if isinstance(value, Mapping):
        return model_type.from_dict(value)
    _fail(path, f"expected {model_type.__name__}, got {type(value).__name__}")


def _coerce_optional_model(model_type: type[TModel], value: object, path: str) -> TModel | None:
    if value is None:
        return None
    return _coerce_model(model_type, value, path)


def _coerce_model_tuple(
    model_type: type[TModel], values: Iterable[object], path: str
) -> tuple[TModel, ...]:
    return tuple(
        _coerce_model(model_type, item, f"{path}[{index}]")
        for index, item in enumerate(_as_sequence(list(values), path))
    )


@dataclass(frozen=True, slots=True)
class Sublocation(CanonicalModel):
    """Place within a station; ``equipment_id`` applies only to equipment sub-locations."""

    type: SublocationType
    equipment_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", _as_enum(SublocationType, self.type, "Sublocation.type"))
        object.__setattr__(
            self,
            "equipment_id",
            _as_optional_str(self.equipment_id, "Sublocation.equipment_id"),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return _compact({"type": self.type.value, "equipmentId": self.equipment_id})

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Sublocation:
        parsed = _expect_object(data, "Sublocation", required={"type"}, optional={"equipmentId"})
        return cls(
            type=_as_enum(SublocationType, parsed["type"], "Sublocation.type"),
            equipment_id=_as_optional_str(parsed.get("equipmentId"), "Sublocation.equipmentId"),
        )


@dataclass(frozen=True, slots=True)
class Location(CanonicalModel):
    station_id: str | None = None
    sublocation: Sublocation | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "station_id", _as_optional_str(self.station_id, "Location.station_id")
        )
        object.__setattr__(
            self,
            "sublocation",
            _coerce_optional_model(Sublocation, self.sublocation, "Location.sublocation"),
        )

    @property
    def is_meaningful(self) -> bool:
        return self.station_id is not None or self.sublocation is not None

    @property
    def sublocation_type(self) -> SublocationType | None:
        return self.sublocation.type if self.sublocation is not None else None

    @property
    def equipment_id(self) -> str | None:
        if self.sublocation is None or self.sublocation.type is not SublocationType.EQUIPMENT:
            return None
        return self.sublocation.equipment_id

    def matches(self, other: Location) -> bool:
        """Compare station, sub-location type and, for equipment, the equipment id."""
        if self.station_id != other.station_id:
            return False
        if self.sublocation_type != other.sublocation_type:
            return False
        if self.sublocation_type is SublocationType.EQUIPMENT:
            return self.equipment_id == other.equipment_id
        return True

    def with_fallback_station(self, station_id: str | None) -> Location:
        if self.station_id is not None or station_id is None or self.sublocation is None:
            return self
        return replace(self, station_id=station_id)

    def to_dict(self) -> dict[str, JSONValue]:
        return _compact(
            {
                "stationId": self.station_id,
                "sublocation": None if self.sublocation is None else self.sublocation.to_dict(),
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Location:
        parsed = _expect_object(
            data, "Location", required=set(), optional={"stationId", "sublocation"}
        )
        raw_sublocation = parsed.get("sublocation")
        return cls(
            station_id=_as_optional_str(parsed.get("stationId"), "Location.stationId"),
            sublocation=None
            if raw_sublocation is None
            else Sublocation.from_dict(cast("Mapping[str, object]", raw_sublocation)),
        )


@dataclass(frozen=True, slots=True)
class StepRef:
    """Unconditional dependency on another unit."""

    step_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "step_id", _as_str(self.step_id, "StepRef.step_id"))


@dataclass(frozen=True, slots=True)
class ConditionalStepRef:
    """Dependency that only applies when the listed customization values are selected."""

    step_id: str
    requires_customization_value_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "step_id", _as_str(self.step_id, "ConditionalStepRef.step_id"))
        object.__setattr__(
            self,
            "requires_customization_value_ids",
            _as_str_tuple(
                self.requires_customization_value_ids,
                "ConditionalStepRef.requires_customization_value_ids",
            ),
        )


DependencyRef = StepRef | ConditionalStepRef


def dependency_id(ref: DependencyRef) -> str:
    """Return the referenced unit id regardless of the reference variant."""
    return ref.step_id


def parse_dependency_ref(value: object, path: str) -> DependencyRef:
    if isinstance(value, (StepRef, ConditionalStepRef)):
        return value
    if isinstance(value, str):
        return StepRef(_as_str(value, path))
    parsed = _expect_object(value, path, required={"stepId"}, optional={"condition"})
    step_id = _as_str(parsed["stepId"], f"{path}.stepId")
    raw_condition = parsed.get("condition")
    if raw_condition is None:
        return StepRef(step_id)
    condition = _expect_object(
        raw_condition,
        f"{path}.condition",
        required=set(),
        optional={"requiresCustomizationValueIds"},
    )
    return ConditionalStepRef(
        step_id=step_id,
        requires_customization_value_ids=_as_str_tuple(
            condition.get("requiresCustomizationValueIds", ()),
            f"{path}.condition.requiresCustomizationValueIds",
        ),
    )


def dependency_ref_to_json(ref: DependencyRef) -> JSONValue:
    if isinstance(ref, ConditionalStepRef):
        return {
            "stepId": ref.step_id,
            "condition": {
                "requiresCustomizationValueIds": list(ref.requires_customization_value_ids)
            },
        }
    return ref.step_id


@dataclass(frozen=True, slots=True)
class ExternalBuildRef(CanonicalModel):
    """Assembly source owned by another build (item id plus optional version)."""

    item_id: str
    version: int | str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "item_id", _as_str(self.item_id, "ExternalBuildRef.item_id"))
        if self.version is not None and not isinstance(self.version, int):
            object.__setattr__(
                self, "version", _as_str(self.version, "ExternalBuildRef.version")
            )


@dataclass(frozen=True, slots=True)
class AssemblyRef(CanonicalModel):
    assembly_id: str
    external: ExternalBuildRef | None = None
    from_location: Location | None = None
    to_location: Location | None = None
    role: AssemblyRole | None = None
    quantity: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "assembly_id", _as_str(self.assembly_id, "AssemblyRef.assembly_id")
        )
        object.__setattr__(
            self,
            "external",
            _coerce_optional_model(ExternalBuildRef, self.external, "AssemblyRef.external"),
        )
        object.__setattr__(
            self,
            "from_location",
            _coerce_optional_model(Location, self.from_location, "AssemblyRef.from_location"),
        )
        object.__setattr__(
            self,
            "to_location",
            _coerce_optional_model(Location, self.to_location, "AssemblyRef.to_location"),
        )
        object.__setattr__(
            self, "role", _as_optional_enum(AssemblyRole, self.role, "AssemblyRef.role")
        )
        if self.quantity is not None:
            object.__setattr__(self, "quantity", _as_float(self.quantity, "AssemblyRef.quantity"))

    @property
    def is_external(self) -> bool:
        return self.external is not None

    def to_dict(self) -> dict[str, JSONValue]:
        source: dict[str, JSONValue]
        if self.external is None:
            source = {"type": "in_build", "assemblyId": self.assembly_id}
        else:
            source = _compact(
                {
                    "type": "external_build",
                    "itemId": self.external.item_id,
                    "version": self.external.version,
                    "assemblyId": self.assembly_id,
                }
            )
        return _compact(
            {
                "source": source,
                "from": None if self.from_location is None else self.from_location.to_dict(),
                "to": None if self.to_location is None else self.to_location.to_dict(),
                "role": None if self.role is None else self.role.value,
                "quantity": self.quantity,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> AssemblyRef:
        parsed = _expect_object(
            data,
            "AssemblyRef",
            required={"source"},
            optional={"from", "to", "role", "quantity"},
        )
        source = _expect_object(
            parsed["source"],
            "AssemblyRef.source",
            required={"type"},
            optional={"assemblyId", "itemId", "version"},
        )
        source_type = _as_str(source["type"], "AssemblyRef.source.type")
        external: ExternalBuildRef | None = None
        if source_type == "in_build":
            assembly_id = _as_str(source.get("assemblyId"), "AssemblyRef.source.assemblyId")
        elif source_type == "external_build":
            item_id = _as_str(source.get("itemId"), "AssemblyRef.source.itemId")
            raw_version = source.get("version")
            version: int | str | None
            if raw_version is None or isinstance(raw_version, int):
                version = raw_version
            else:
                version = _as_str(raw_version, "AssemblyRef.source.version")
            external = ExternalBuildRef(item_id=item_id, version=version)
            assembly_id = _as_str(
                source.get("assemblyId", item_id), "AssemblyRef.source.assemblyId"
            )
        else:
            _fail("AssemblyRef.source.type", f"invalid value {source_type!r}")

        return cls(
            assembly_id=assembly_id,
            external=external,
            from_location=_coerce_optional_model(Location, parsed.get("from"), "AssemblyRef.from"),
            to_location=_coerce_optional_model(Location, parsed.get("to"), "AssemblyRef.to"),
            role=_as_optional_enum(AssemblyRole, parsed.get("role"), "AssemblyRef.role"),
            quantity=None
            if parsed.get("quantity") is None
            else _as_float(parsed["quantity"], "AssemblyRef.quantity"),
        )


@dataclass(frozen=True, slots=True)
class ActionDescriptor(CanonicalModel):
    family: ActionFamily
    technique_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "family", _as_enum(ActionFamily, self.family, "ActionDescriptor.family")
        )
        object.__setattr__(
            self,
            "technique_id",
            _as_optional_str(self.technique_id, "ActionDescriptor.technique_id"),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return _compact({"family": self.family.value, "techniqueId": self.technique_id})

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ActionDescriptor:
        parsed = _expect_object(
            data, "ActionDescriptor", required={"family"}, optional={"techniqueId"}
        )
        return cls(
            family=_as_enum(ActionFamily, parsed["family"], "ActionDescriptor.family"),
            technique_id=_as_optional_str(
                parsed.get("techniqueId"), "ActionDescriptor.techniqueId"
            ),
        )


@dataclass(frozen=True, slots=True)
class TargetRef(CanonicalModel):
    name: str | None = None
    bom_id: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        return _compact({"name": self.name, "bomId": self.bom_id})

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> TargetRef:
        parsed = _expect_object(data, "TargetRef", required=set(), optional={"name", "bomId"})
        return cls(
            name=_as_optional_str(parsed.get("name"), "TargetRef.name"),
            bom_id=_as_optional_str(parsed.get("bomId"), "TargetRef.bomId"),
        )


@dataclass(frozen=True, slots=True)
class EquipmentRef(CanonicalModel):
    appliance_id: str
    preset_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "appliance_id", _as_str(self.appliance_id, "EquipmentRef.appliance_id")
        )
        object.__setattr__(
            self, "preset_id", _as_optional_str(self.preset_id, "EquipmentRef.preset_id")
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return _compact({"applianceId": self.appliance_id, "presetId": self.preset_id})

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> EquipmentRef:
        parsed = _expect_object(
            data, "EquipmentRef", required={"applianceId"}, optional={"presetId"}
        )
        return cls(
            appliance_id=_as_str(parsed["applianceId"], "EquipmentRef.applianceId"),
            preset_id=_as_optional_str(parsed.get("presetId"), "EquipmentRef.presetId"),
        )


@dataclass(frozen=True, slots=True)
class UnitTime(CanonicalModel):
    """Authored duration; non-positive values are accepted here and flagged by validation."""

    duration_seconds: float
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "duration_seconds",
            _as_float(self.duration_seconds, "UnitTime.duration_seconds"),
        )
        object.__setattr__(self, "is_active", _as_bool(self.is_active, "UnitTime.is_active"))

    def to_dict(self) -> dict[str, JSONValue]:
        return {"durationSeconds": self.duration_seconds, "isActive": self.is_active}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> UnitTime:
        parsed = _expect_object(
            data, "UnitTime", required={"durationSeconds"}, optional={"isActive"}
        )
        return cls(
            duration_seconds=_as_float(parsed["durationSeconds"], "UnitTime.durationSeconds"),
            is_active=_as_bool(parsed.get("isActive", True), "UnitTime.isActive"),
        )


_WORK_UNIT_OPTIONAL_FIELDS = {
    "orderIndex",
    "trackId",
    "target",
    "stationId",
    "workLocation",
    "from",
    "to",
    "equipment",
    "time",
    "cookingPhase",
    "prepType",
    "dependsOn",
    "input",
    "output",
    "notes",
}


@dataclass(frozen=True, slots=True)
class WorkUnit(CanonicalModel):
    """Atomic kitchen-work step. ``order_index`` is an advisory hint; true order is derived."""

    id: str
    action: ActionDescriptor
    order_index: int = 0
    track_id: str | None = None
    target: TargetRef | None = None
    station_id: str | None = None
    work_location: Sublocation | None = None
    from_location: Location | None = None
    to_location: Location | None = None
    equipment: EquipmentRef | None = None
    time: UnitTime | None = None
    cooking_phase: CookingPhase | None = None
    prep_type: PrepType | None = None
    depends_on: tuple[DependencyRef, ...] = ()
    inputs: tuple[AssemblyRef, ...] = ()
    outputs: tuple[AssemblyRef, ...] = ()
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_str(self.id, "WorkUnit.id"))
        path = f"WorkUnit[{self.id}]"
        if isinstance(self.action, (str, ActionFamily)):
            object.__setattr__(self, "action", ActionDescriptor(family=self.action))
        else:
            object.__setattr__(
                self, "action", _coerce_model(ActionDescriptor, self.action, f"{path}.action")
            )
        object.__setattr__(
            self, "order_index", _as_int(self.order_index, f"{path}.order_index", minimum=0)
        )
        object.__setattr__(self, "track_id", _as_optional_str(self.track_id, f"{path}.track_id"))
        object.__setattr__(
            self, "target", _coerce_optional_model(TargetRef, self.target, f"{path}.target")
        )
        object.__setattr__(
            self, "station_id", _as_optional_str(self.station_id, f"{path}.station_id")
        )
        object.__setattr__(
            self,
            "work_location",
            _coerce_optional_model(Sublocation, self.work_location, f"{path}.work_location"),
        )
        object.__setattr__(
            self,
            "from_location",
            _coerce_optional_model(Location, self.from_location, f"{path}.from_location"),
        )
        object.__setattr__(
            self,
            "to_location",
            _coerce_optional_model(Location, self.to_location, f"{path}.to_location"),
        )
        object.__setattr__(
            self,
            "equipment",
            _coerce_optional_model(EquipmentRef, self.equipment, f"{path}.equipment"),
        )
        object.__setattr__(
            self, "time", _coerce_optional_model(UnitTime, self.time, f"{path}.time")
        )
        object.__setattr__(
            self,
            "cooking_phase",
            _as_optional_enum(CookingPhase, self.cooking_phase, f"{path}.cooking_phase"),
        )
        object.__setattr__(
            self, "prep_type", _as_optional_enum(PrepType, self.prep_type, f"{path}.prep_type")
        )
        object.__setattr__(
            self,
            "depends_on",
            tuple(
                parse_dependency_ref(item, f"{path}.depends_on[{index}]")
                for index, item in enumerate(_as_sequence(self.depends_on, f"{path}.depends_on"))
            ),
        )
        object.__setattr__(
            self, "inputs", _coerce_model_tuple(AssemblyRef, self.inputs, f"{path}.inputs")
        )
        object.__setattr__(
            self, "outputs", _coerce_model_tuple(AssemblyRef, self.outputs, f"{path}.outputs")
        )
        object.__setattr__(self, "notes", _as_optional_str(self.notes, f"{path}.notes"))

    @property
    def family(self) -> ActionFamily:
        return self.action.family

    @property
    def track(self) -> str:
        """Track key, falling back to the shared default lane."""
        return self.track_id if self.track_id is not None else DEFAULT_TRACK_ID

    @property
    def dependency_ids(self) -> tuple[str, ...]:
        return tuple(dependency_id(ref) for ref in self.depends_on)

    @property
    def work_location_ref(self) -> Location | None:
        if self.station_id is None and self.work_location is None:
            return None
        return Location(station_id=self.station_id, sublocation=self.work_location)

    def to_dict(self) -> dict[str, JSONValue]:
        return _compact(
            {
                "id": self.id,
                "orderIndex": self.order_index,
                "trackId": self.track_id,
                "action": self.action.to_dict(),
                "target": None if self.target is None else self.target.to_dict(),
                "stationId": self.station_id,
                "workLocation": None
                if self.work_location is None
                else self.work_location.to_dict(),
                "from": None if self.from_location is None else self.from_location.to_dict(),
                "to": None if self.to_location is None else self.to_location.to_dict(),
                "equipment": None if self.equipment is None else self.equipment.to_dict(),
                "time": None if self.time is None else self.time.to_dict(),
                "cookingPhase": None if self.cooking_phase is None else self.cooking_phase.value,
                "prepType": None if self.prep_type is None else self.prep_type.value,
                "dependsOn": [dependency_ref_to_json(ref) for ref in self.depends_on],
                "input": [ref.to_dict() for ref in self.inputs],
                "output": [ref.to_dict() for ref in self.outputs],
                "notes": self.notes,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> WorkUnit:
        parsed = _expect_object(
            data, "WorkUnit", required={"id", "action"}, optional=_WORK_UNIT_OPTIONAL_FIELDS
        )
        unit_id = _as_str(parsed["id"], "WorkUnit.id")
        path = f"WorkUnit[{unit_id}]"
        return cls(
            id=unit_id,
            action=_coerce_model(ActionDescriptor, parsed["action"], f"{path}.action"),
            order_index=_as_int(parsed.get("orderIndex", 0), f"{path}.orderIndex", minimum=0),
            track_id=_as_optional_str(parsed.get("trackId"), f"{path}.trackId"),
            target=_coerce_optional_model(TargetRef, parsed.get("target"), f"{path}.target"),
            station_id=_as_optional_str(parsed.get("stationId"), f"{path}.stationId"),
            work_location=_coerce_optional_model(
                Sublocation, parsed.get("workLocation"), f"{path}.workLocation"
            ),
            from_location=_coerce_optional_model(Location, parsed.get("from"), f"{path}.from"),
            to_location=_coerce_optional_model(Location, parsed.get("to"), f"{path}.to"),
            equipment=_coerce_optional_model(
                EquipmentRef, parsed.get("equipment"), f"{path}.equipment"
            ),
            time=_coerce_optional_model(UnitTime, parsed.get("time"), f"{path}.time"),
            cooking_phase=_as_optional_enum(
                CookingPhase, parsed.get("cookingPhase"), f"{path}.cookingPhase"
            ),
            prep_type=_as_optional_enum(PrepType, parsed.get("prepType"), f"{path}.prepType"),
            depends_on=tuple(
                parse_dependency_ref(item, f"{path}.dependsOn[{index}]")
                for index, item in enumerate(
                    _as_sequence(parsed.get("dependsOn", ()), f"{path}.dependsOn")
                )
            ),
            inputs=_coerce_model_tuple(
                AssemblyRef, _as_sequence(parsed.get("input", ()), f"{path}.input"), f"{path}.input"
            ),
            outputs=_coerce_model_tuple(
                AssemblyRef,
                _as_sequence(parsed.get("output", ()), f"{path}.output"),
                f"{path}.output",
            ),
            notes=_as_optional_str(parsed.get("notes"), f"{path}.notes"),
        )


@dataclass(frozen=True, slots=True)
class Assembly(CanonicalModel):
    """Material or intermediate product flowing between work units."""

    id: str
    name: str | None = None
    group_id: str | None = None
    sub_assemblies: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_str(self.id, "Assembly.id"))
        object.__setattr__(self, "name", _as_optional_str(self.name, "Assembly.name"))
        object.__setattr__(self, "group_id", _as_optional_str(self.group_id, "Assembly.group_id"))
        object.__setattr__(
            self, "sub_assemblies", _as_str_tuple(self.sub_assemblies, "Assembly.sub_assemblies")
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return _compact(
            {
                "id": self.id,
                "name": self.name,
                "groupId": self.group_id,
                "subAssemblies": list(self.sub_assemblies) if self.sub_assemblies else None,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Assembly:
        parsed = _expect_object(
            data, "Assembly", required={"id"}, optional={"name", "groupId", "subAssemblies"}
        )
        return cls(
            id=_as_str(parsed["id"], "Assembly.id"),
            name=_as_optional_str(parsed.get("name"), "Assembly.name"),
            group_id=_as_optional_str(parsed.get("groupId"), "Assembly.groupId"),
            sub_assemblies=_as_str_tuple(parsed.get("subAssemblies", ()), "Assembly.subAssemblies"),
        )


@dataclass(frozen=True, slots=True)
class Build(CanonicalModel):
    """One versioned line build. Structural defects are left for the checkers to report."""

    id: str
    item_id: str
    version: int = 1
    status: BuildStatus = BuildStatus.DRAFT
    units: tuple[WorkUnit, ...] = ()
    assemblies: tuple[Assembly, ...] = ()
    name: str | None = None
    menu_item_type: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    schema_version: int = BUILD_SCHEMA_VERSION

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_str(self.id, "Build.id"))
        object.__setattr__(self, "item_id", _as_str(self.item_id, "Build.item_id"))
        object.__setattr__(self, "version", _as_int(self.version, "Build.version", minimum=1))
        object.__setattr__(self, "status", _as_enum(BuildStatus, self.status, "Build.status"))
        object.__setattr__(self, "units", _coerce_model_tuple(WorkUnit, self.units, "Build.units"))
        object.__setattr__(
            self,
            "assemblies",
            _coerce_model_tuple(Assembly, self.assemblies, "Build.assemblies"),
        )
        object.__setattr__(self, "name", _as_optional_str(self.name, "Build.name"))
        object.__setattr__(
            self, "menu_item_type", _as_optional_str(self.menu_item_type, "Build.menu_item_type")
        )
        object.__setattr__(
            self, "created_at", _as_optional_datetime(self.created_at, "Build.created_at")
        )
        object.__setattr__(
            self, "updated_at", _as_optional_datetime(self.updated_at, "Build.updated_at")
        )
        object.__setattr__(
            self,
            "schema_version",
            _as_int(self.schema_version, "Build.schema_version", minimum=1),
        )

    @property
    def unit_ids(self) -> tuple[str, ...]:
        return tuple(unit.id for unit in self.units)

    @property
    def assembly_ids(self) -> frozenset[str]:
        return frozenset(assembly.id for assembly in self.assemblies)

    def get_unit(self, unit_id: str) -> WorkUnit | None:
        for unit in self.units:
            if unit.id == unit_id:
                return unit
        return None

    def replace_units(self, units: Iterable[WorkUnit]) -> Build:
        """Return a new build with the whole unit list replaced."""
        return replace(self, units=tuple(units))

    def to_dict(self) -> dict[str, JSONValue]:
        return _compact(
            {
                "id": self.id,
                "itemId": self.item_id,
                "version": self.version,
                "status": self.status.value,
                "name": self.name,
                "menuItemType": self.menu_item_type,
                "units": [unit.to_dict() for unit in self.units],
                "assemblies": [assembly.to_dict() for assembly in self.assemblies],
                "createdAt": None
                if self.created_at is None
                else iso8601z(self.created_at, timespec="microseconds"),
                "updatedAt": None
                if self.updated_at is None
                else iso8601z(self.updated_at, timespec="microseconds"),
                "schemaVersion": self.schema_version,
            }
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Build:
        parsed = _expect_object(
            data,
            "Build",
            required={"id", "itemId"},
            optional={
                "version",
                "status",
                "name",
                "menuItemType",
                "units",
                "assemblies",
                "createdAt",
                "updatedAt",
                "schemaVersion",
            },
        )
        return cls(
            id=_as_str(parsed["id"], "Build.id"),
            item_id=_as_str(parsed["itemId"], "Build.itemId"),
            version=_as_int(parsed.get("version", 1), "Build.version", minimum=1),
            status=_as_enum(BuildStatus, parsed.get("status", "draft"), "Build.status"),
            units=tuple(
                WorkUnit.from_dict(_expect_mapping(item, f"Build.units[{index}]"))
                for index, item in enumerate(_as_sequence(parsed.get("units", ()), "Build.units"))
            ),
            assemblies=tuple(
                Assembly.from_dict(_expect_mapping(item, f"Build.assemblies[{index}]"))
                for index, item in enumerate(
                    _as_sequence(parsed.get("assemblies", ()), "Build.assemblies")
                )
            ),
            name=_as_optional_str(parsed.get("name"), "Build.name"),
            menu_item_type=_as_optional_str(parsed.get("menuItemType"), "Build.menuItemType"),
            created_at=_as_optional_datetime(parsed.get("createdAt"), "Build.createdAt"),
            updated_at=_as_optional_datetime(parsed.get("updatedAt"), "Build.updatedAt"),
            schema_version=_as_int(
                parsed.get("schemaVersion", BUILD_SCHEMA_VERSION), "Build.schemaVersion", minimum=1
            ),
        )


def _expect_mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    return cast("Mapping[str, object]", value)


__all__ = [
    "ActionDescriptor",
    "ActionFamily",
    "Assembly",
    "AssemblyRef",
    "AssemblyRole",
    "Build",
    "BuildStatus",
    "CanonicalModel",
    "ConditionalStepRef",
    "ConfidenceTier",
    "CookingPhase",
    "DependencyRef",
    "EquipmentRef",
    "ExternalBuildRef",
    "JSONScalar",
    "JSONValue",
    "Location",
    "PrepType",
    "StepRef",
    "Sublocation",
    "SublocationType",
    "TargetRef",
    "TransferType",
    "UnitTime",
    "WorkUnit",
    "dependency_id",
    "dependency_ref_to_json",
    "iso8601z",
    "parse_dependency_ref",
]
