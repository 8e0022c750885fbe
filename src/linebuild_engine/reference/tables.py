"""
linebuild-engine — registered reference tables.

Purpose
- Hold the lookup tables the duration resolver, transfer deriver and complexity
  scorer consult: equipment presets, technique durations, assembly-type durations,
  build-to-assembly-type hints, per-family defaults, transfer weights, complexity
  factor weights and the pod layout.

Functional requirements
- Tables are explicit values passed into every consumer; there is no global registry.
- A YAML file may override any subset of sections; omitted sections keep defaults.
- Lookups are case-insensitive on ids.

Non-functional requirements
- Loading is deterministic; invalid files raise ``ReferenceTableError`` with a path.
"""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Final, cast

import structlog
import yaml

from linebuild_engine.constants import (
    FALLBACK_DURATION_SECONDS,
    REFERENCE_TABLES_SCHEMA_VERSION,
)
from linebuild_engine.domain.models import ActionFamily, TransferType
from linebuild_engine.flow.pods import PodLayout

PathLike = str | os.PathLike[str]

COMPLEXITY_FACTORS: Final[tuple[str, ...]] = (
    "work_variety",
    "equipment_variety",
    "station_changes",
    "time_breakdown",
    "transfers",
)

_SECTIONS: Final[frozenset[str]] = frozenset(
    {
        "schema_version",
        "equipment_presets",
        "techniques",
        "assembly_types",
        "build_assembly_types",
        "family_defaults",
        "fallback_seconds",
        "transfer_weights",
        "complexity_weights",
        "pods",
    }
)
_WEIGHT_SUM_TOLERANCE: Final[float] = 1e-6
_DEFAULT_PRESET: Final[str] = "default"


class ReferenceTableError(ValueError):
    """Raised when a reference table document cannot be loaded or validated."""


@dataclass(frozen=True, slots=True)
class TransferWeight:
    complexity: float
    seconds: float


_DEFAULT_EQUIPMENT_PRESETS: Final[dict[str, dict[str, float]]] = {
    "turbo": {"default": 180, "chicken_breast": 180, "steak_medium": 240},
    "waterbath": {"default": 360, "brisket_pouch": 360, "chicken_pouch": 300},
    "press": {"default": 180, "quesadilla": 180, "panini": 150},
}
_DEFAULT_TECHNIQUES: Final[dict[str, float]] = {
    "dice": 20,
    "julienne": 35,
    "slice": 15,
    "retrieve": 5,
    "open_pack": 5,
    "fold": 8,
    "place": 5,
    "handoff": 5,
    "pass": 5,
}
_DEFAULT_ASSEMBLY_TYPES: Final[dict[str, float]] = {
    "burrito": 30,
    "bowl": 12,
    "quesadilla": 15,
    "taco": 15,
    "salad": 12,
}
_DEFAULT_BUILD_ASSEMBLY_TYPES: Final[dict[str, str]] = {
    "8006896": "quesadilla",
    "beef-barbacoa-quesadilla": "quesadilla",
}
_DEFAULT_FAMILY_DEFAULTS: Final[dict[str, float]] = {
    ActionFamily.PREP.value: 10,
    ActionFamily.PORTION.value: 8,
    ActionFamily.ASSEMBLE.value: 15,
    ActionFamily.TRANSFER.value: 5,
    ActionFamily.PACKAGING.value: 10,
    ActionFamily.CHECK.value: 5,
    ActionFamily.HEAT.value: 60,
    ActionFamily.COMBINE.value: 10,
    ActionFamily.OTHER.value: 10,
}
_DEFAULT_TRANSFER_WEIGHTS: Final[dict[str, TransferWeight]] = {
    TransferType.SAME_STATION.value: TransferWeight(complexity=1, seconds=5),
    TransferType.INTER_STATION.value: TransferWeight(complexity=3, seconds=15),
    TransferType.INTER_POD.value: TransferWeight(complexity=5, seconds=30),
}
_DEFAULT_COMPLEXITY_WEIGHTS: Final[dict[str, float]] = {
    name: 0.2 for name in COMPLEXITY_FACTORS
}


@dataclass(frozen=True, slots=True)
class ReferenceTables:
    """Lookup tables consulted by estimation and scoring. Keys are lowercase ids."""

    equipment_presets: Mapping[str, Mapping[str, float]] = field(
        default_factory=lambda: {k: dict(v) for k, v in _DEFAULT_EQUIPMENT_PRESETS.items()}
    )
    techniques: Mapping[str, float] = field(default_factory=lambda: dict(_DEFAULT_TECHNIQUES))
    assembly_types: Mapping[str, float] = field(
        default_factory=lambda: dict(_DEFAULT_ASSEMBLY_TYPES)
    )
    build_assembly_types: Mapping[str, str] = field(
        default_factory=lambda: dict(_DEFAULT_BUILD_ASSEMBLY_TYPES)
    )
    family_defaults: Mapping[str, float] = field(
        default_factory=lambda: dict(_DEFAULT_FAMILY_DEFAULTS)
    )
    fallback_seconds: float = FALLBACK_DURATION_SECONDS
    transfer_weights: Mapping[str, TransferWeight] = field(
        default_factory=lambda: dict(_DEFAULT_TRANSFER_WEIGHTS)
    )
    complexity_weights: Mapping[str, float] = field(
        default_factory=lambda: dict(_DEFAULT_COMPLEXITY_WEIGHTS)
    )
    pods: PodLayout = field(default_factory=PodLayout)

    def preset_seconds(self, appliance_id: str, preset_id: str | None) -> float | None:
        """Look up ``(appliance, preset-or-default)``."""
        presets = self.equipment_presets.get(_key(appliance_id))
        if presets is None:
            return None
        return presets.get(_key(preset_id) if preset_id else _DEFAULT_PRESET)

    def technique_seconds(self, technique_id: str) -> float | None:
        return self.techniques.get(_key(technique_id))

    def assembly_type_seconds(self, assembly_type: str) -> float | None:
        return self.assembly_types.get(_key(assembly_type))

    def assembly_type_for_build(self, key: str | None) -> str | None:
        if not key:
            return None
        return self.build_assembly_types.get(_key(key))

    def family_seconds(self, family: ActionFamily) -> float:
        return self.family_defaults.get(family.value, self.fallback_seconds)

    def transfer_weight(self, transfer_type: TransferType) -> TransferWeight:
        return self.transfer_weights[transfer_type.value]

    def with_overrides(self, payload: Mapping[str, object]) -> ReferenceTables:
        """Return a copy with the given sections replaced (validated like a file)."""
        return _apply_sections(self, payload, source="<overrides>")

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": REFERENCE_TABLES_SCHEMA_VERSION,
            "equipment_presets": {
                appliance: dict(sorted(presets.items()))
                for appliance, presets in sorted(self.equipment_presets.items())
            },
            "techniques": dict(sorted(self.techniques.items())),
            "assembly_types": dict(sorted(self.assembly_types.items())),
            "build_assembly_types": dict(sorted(self.build_assembly_types.items())),
            "family_defaults": dict(sorted(self.family_defaults.items())),
            "fallback_seconds": self.fallback_seconds,
            "transfer_weights": {
                name: {"complexity": weight.complexity, "seconds": weight.seconds}
                for name, weight in sorted(self.transfer_weights.items())
            },
            "complexity_weights": dict(sorted(self.complexity_weights.items())),
            "pods": self.pods.to_dict(),
        }


def default_reference_tables() -> ReferenceTables:
    """Return a fresh copy of the built-in tables."""
    return ReferenceTables()


def load_reference_tables(
    path: PathLike,
    *,
    base: ReferenceTables | None = None,
    logger: Any | None = None,
) -> ReferenceTables:
    """Load a YAML tables document and overlay it on ``base`` (built-in defaults)."""
    log = logger if logger is not None else structlog.get_logger(__name__)
    source = Path(path)
    try:
        with source.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except yaml.YAMLError as exc:
        raise ReferenceTableError(f"{source}: invalid YAML ({exc})") from exc
    except OSError as exc:
        raise ReferenceTableError(f"{source}: unable to read reference tables ({exc})") from exc

    if loaded is None:
        loaded = {}
    if not isinstance(loaded, Mapping):
        raise ReferenceTableError(
            f"{source}: expected top-level YAML mapping, got {type(loaded).__name__}"
        )

    tables = _apply_sections(
        base if base is not None else default_reference_tables(),
        cast("Mapping[str, object]", loaded),
        source=str(source),
    )
    log.info(
        "reference_tables_loaded",
        path=str(source),
        sections=sorted(str(key) for key in loaded),
        equipment_count=len(tables.equipment_presets),
        technique_count=len(tables.techniques),
    )
    return tables


def tables_from_config(
    config: Mapping[str, Any], *, logger: Any | None = None
) -> ReferenceTables:
    """Tables named by ``reference.tables_path``, or the built-in defaults when unset."""
    section = config.get("reference", {})
    tables_path = section.get("tables_path") if isinstance(section, Mapping) else None
    if not tables_path:
        return default_reference_tables()
    return load_reference_tables(tables_path, logger=logger)


def dump_reference_tables(tables: ReferenceTables) -> str:
    """Render tables as deterministic YAML."""
    rendered = yaml.safe_dump(
        tables.to_dict(),
        sort_keys=True,
        default_flow_style=False,
        allow_unicode=False,
        width=120,
    )
    if not rendered.endswith("\n"):
        rendered = rendered + "\n"
    return rendered


def _apply_sections(
    base: ReferenceTables, payload: Mapping[str, object], *, source: str
) -> ReferenceTables:
    unknown = sorted(str(key) for key in payload if key not in _SECTIONS)
    if unknown:
        raise ReferenceTableError(f"{source}: unknown sections: {unknown}")

    version = payload.get("schema_version", REFERENCE_TABLES_SCHEMA_VERSION)
    if version != REFERENCE_TABLES_SCHEMA_VERSION:
        raise ReferenceTableError(
            f"{source}.schema_version: unsupported version {version!r}; "
            f"expected {REFERENCE_TABLES_SCHEMA_VERSION}"
        )

    changes: dict[str, Any] = {}
    try:
        if "equipment_presets" in payload:
            raw_presets = _as_mapping(payload["equipment_presets"], f"{source}.equipment_presets")
            changes["equipment_presets"] = {
                _key(appliance): _as_seconds_table(
                    presets, f"{source}.equipment_presets.{appliance}"
                )
                for appliance, presets in raw_presets.items()
            }
        for name in ("techniques", "assembly_types"):
            if name in payload:
                changes[name] = _as_seconds_table(payload[name], f"{source}.{name}")
        if "build_assembly_types" in payload:
            raw_hints = _as_mapping(
                payload["build_assembly_types"], f"{source}.build_assembly_types"
            )
            changes["build_assembly_types"] = {
                _key(build_key): _key(_as_text(value, f"{source}.build_assembly_types.{build_key}"))
                for build_key, value in raw_hints.items()
            }
        if "family_defaults" in payload:
            families = _as_seconds_table(payload["family_defaults"], f"{source}.family_defaults")
            allowed = {family.value for family in ActionFamily}
            unknown_families = sorted(key for key in families if key not in allowed)
            if unknown_families:
                raise ValueError(f"{source}.family_defaults: unknown families {unknown_families}")
            changes["family_defaults"] = {**dict(base.family_defaults), **families}
        if "fallback_seconds" in payload:
            changes["fallback_seconds"] = _as_seconds(
                payload["fallback_seconds"], f"{source}.fallback_seconds"
            )
        if "transfer_weights" in payload:
            changes["transfer_weights"] = _as_transfer_weights(
                payload["transfer_weights"], f"{source}.transfer_weights", base
            )
        if "complexity_weights" in payload:
            changes["complexity_weights"] = _as_complexity_weights(
                payload["complexity_weights"], f"{source}.complexity_weights"
            )
        if "pods" in payload:
            changes["pods"] = PodLayout.from_mapping(
                _as_mapping(payload["pods"], f"{source}.pods"), path=f"{source}.pods"
            )
    except ReferenceTableError:
        raise
    except ValueError as exc:
        raise ReferenceTableError(str(exc)) from exc

    return replace(base, **changes)


def _as_transfer_weights(
    value: object, path: str, base: ReferenceTables
) -> dict[str, TransferWeight]:
    raw = _as_mapping(value, path)
    allowed = {item.value for item in TransferType}
    merged = dict(base.transfer_weights)
    for name, entry in raw.items():
        key = _key(name)
        if key not in allowed:
            raise ValueError(f"{path}: unknown transfer type {name!r}")
        fields = _as_mapping(entry, f"{path}.{name}")
        merged[key] = TransferWeight(
            complexity=_as_seconds(fields.get("complexity"), f"{path}.{name}.complexity"),
            seconds=_as_seconds(fields.get("seconds"), f"{path}.{name}.seconds"),
        )
    return merged


def _as_complexity_weights(value: object, path: str) -> dict[str, float]:
    raw = _as_mapping(value, path)
    unknown = sorted(key for key in raw if key not in COMPLEXITY_FACTORS)
    missing = sorted(name for name in COMPLEXITY_FACTORS if name not in raw)
    if unknown:
        raise ValueError(f"{path}: unknown factors {unknown}")
    if missing:
        raise ValueError(f"{path}: missing factors {missing}")
    weights = {name: _as_number(raw[name], f"{path}.{name}") for name in COMPLEXITY_FACTORS}
    total = sum(weights.values())
    if abs(total - 1.0) > _WEIGHT_SUM_TOLERANCE:
        raise ValueError(f"{path}: weights must sum to 1.0, got {total:.6f}")
    return weights


def _as_seconds_table(value: object, path: str) -> dict[str, float]:
    raw = _as_mapping(value, path)
    return {_key(name): _as_seconds(seconds, f"{path}.{name}") for name, seconds in raw.items()}


def _as_mapping(value: object, path: str) -> dict[str, object]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{path}: expected object, got {type(value).__name__}")
    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, (str, int)) or isinstance(key, bool):
            raise ValueError(f"{path}: keys must be strings, got {type(key).__name__}")
        parsed[str(key)] = item
    return parsed


def _as_number(value: object, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{path}: expected number, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed) or parsed < 0:
        raise ValueError(f"{path}: must be a finite number >= 0")
    return parsed


def _as_seconds(value: object, path: str) -> float:
    parsed = _as_number(value, path)
    if parsed <= 0:
        raise ValueError(f"{path}: must be > 0")
    return parsed


def _as_text(value: object, path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{path}: expected non-empty string")
    return value


def _key(value: str) -> str:
    return value.strip().lower()


__all__ = [
    "COMPLEXITY_FACTORS",
    "ReferenceTableError",
    "ReferenceTables",
    "TransferWeight",
    "default_reference_tables",
    "dump_reference_tables",
    "load_reference_tables",
    "tables_from_config",
]
