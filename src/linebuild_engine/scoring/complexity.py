"""
Build complexity scoring.

Five factors are each normalized to 0-100, weighted with the registered factor
weights and composed into one overall score:
- `work_variety`: distinct action families
- `equipment_variety`: distinct appliances
- `station_changes`: station runs along the cross-track execution order
- `time_breakdown`: resolved total minutes, raised by the active share
- `transfers`: summed complexity weight of derived transfers

Scores are a cacheable derived view; nothing here is authoritative.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Final

from linebuild_engine.domain.models import Build, PrepType, WorkUnit
from linebuild_engine.flow.continuity import DerivedTransfer, derive_transfers
from linebuild_engine.graph.ordering import global_order, unique_units
from linebuild_engine.reference.tables import COMPLEXITY_FACTORS, ReferenceTables
from linebuild_engine.timing.duration import DurationContext, DurationEstimate, resolve_duration

MIN_SCORE: Final[int] = 10
MAX_SCORE: Final[int] = 100
HIGH_FACTOR_LEVEL: Final[float] = 70.0
MODERATE_FACTOR_LEVEL: Final[float] = 40.0
SIMPLE_REASONING: Final[str] = "Simple recipe with minimal complexity drivers."

_FACTOR_LABELS: Final[dict[str, tuple[str, str]]] = {
    "work_variety": ("high work variety", "moderate work variety"),
    "equipment_variety": ("multiple equipment types", "several pieces of equipment"),
    "station_changes": ("frequent station transitions", "some station movement"),
    "time_breakdown": ("significant active time", "moderate timing requirements"),
    "transfers": ("heavy material movement", "some material movement"),
}
_DEFAULT_STATION: Final[str] = "default"
_CALIBRATION_STEP: Final[float] = 1.05


@dataclass(frozen=True, slots=True)
class ComplexityScore:
    overall: int
    factors: Mapping[str, float]
    reasoning: str
    weights: Mapping[str, float] = field(default_factory=dict)
    prep_type: PrepType | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "overall": self.overall,
            "factors": {_camel(name): value for name, value in self.factors.items()},
            "weights": {_camel(name): value for name, value in self.weights.items()},
            "reasoning": self.reasoning,
        }
        if self.prep_type is not None:
            payload["prepType"] = self.prep_type.value
        return payload


@dataclass(frozen=True, slots=True)
class CalibrationSample:
    """A build paired with the score it is known to deserve."""

    build: Build
    target_score: float


def score_build(
    build: Build,
    tables: ReferenceTables,
    *,
    durations: Mapping[str, DurationEstimate] | None = None,
    transfers: Sequence[DerivedTransfer] | None = None,
    prep_type: PrepType | None = None,
    include_transfers: bool = True,
) -> ComplexityScore:
    """
    Score ``build``, optionally restricted to units of one ``prep_type``.

    Pre-resolved ``durations`` and ``transfers`` are reused when given. Under a
    prep-type filter only transfers between two retained units count.
    """
    units = tuple(
        unit for unit in build.units if prep_type is None or unit.prep_type is prep_type
    )
    retained = frozenset(unit.id for unit in units)
    if durations is None:
        context = DurationContext.for_build(build)
        durations = {
            unit_id: resolve_duration(unit, tables, context)
            for unit_id, unit in unique_units(units).items()
        }
    if transfers is None:
        transfers = derive_transfers(build, tables) if include_transfers else ()
    counted = [
        transfer
        for transfer in transfers
        if transfer.producer_unit_id in retained and transfer.consumer_unit_id in retained
    ]

    factors = {
        "work_variety": score_work_variety(units),
        "equipment_variety": score_equipment_variety(units),
        "station_changes": score_station_changes(units),
        "time_breakdown": score_time_breakdown(units, durations),
        "transfers": score_transfers(counted),
    }
    weights = effective_weights(tables.complexity_weights, include_transfers=include_transfers)
    overall = compose_score(factors, weights)
    return ComplexityScore(
        overall=overall,
        factors={name: value for name, value in factors.items() if name in weights},
        reasoning=explain_score(factors, weights),
        weights=weights,
        prep_type=prep_type,
    )


def score_work_unit(unit: WorkUnit, tables: ReferenceTables) -> ComplexityScore:
    """Score one unit in isolation; variety and movement factors are fixed."""
    durations = {unit.id: resolve_duration(unit, tables)}
    factors = {
        "work_variety": 20.0,
        "equipment_variety": 40.0 if unit.equipment is not None else 10.0,
        "station_changes": 10.0,
        "time_breakdown": score_time_breakdown((unit,), durations),
        "transfers": score_transfers(()),
    }
    weights = effective_weights(tables.complexity_weights)
    return ComplexityScore(
        overall=compose_score(factors, weights),
        factors=factors,
        reasoning=explain_score(factors, weights),
        weights=weights,
    )


def score_work_variety(units: Iterable[WorkUnit]) -> float:
    count = len({unit.family for unit in units})
    if count <= 1:
        return 10.0
    if count <= 3:
        return 30.0
    if count <= 5:
        return 50.0
    return 80.0


def score_equipment_variety(units: Iterable[WorkUnit]) -> float:
    count = len(
        {unit.equipment.appliance_id.lower() for unit in units if unit.equipment is not None}
    )
    if count == 0:
        return 5.0
    if count == 1:
        return 20.0
    if count <= 3:
        return 45.0
    return 75.0


def score_station_changes(units: Sequence[WorkUnit]) -> float:
    """Count station runs along the cross-track order (a run is a maximal same-station stretch)."""
    catalog = unique_units(units)
    runs: list[str] = []
    for unit_id in global_order(units):
        station = catalog[unit_id].station_id or _DEFAULT_STATION
        if not runs or runs[-1] != station:
            runs.append(station)
    count = len(runs)
    if count <= 1:
        return 10.0
    if count == 2:
        return 25.0
    if count == 3:
        return 50.0
    return 80.0


def score_time_breakdown(
    units: Iterable[WorkUnit], durations: Mapping[str, DurationEstimate]
) -> float:
    """Total resolved minutes banded to 15/40/65/85, plus up to 20 for active share.

    Units without an authored time count as active.
    """
    total = 0.0
    active = 0.0
    for unit_id, unit in unique_units(units).items():
        estimate = durations.get(unit_id)
        if estimate is None:
            continue
        total += estimate.seconds
        if unit.time is None or unit.time.is_active:
            active += estimate.seconds
    if total <= 0:
        return 10.0

    minutes = total / 60
    if minutes <= 5:
        base = 15.0
    elif minutes <= 15:
        base = 40.0
    elif minutes <= 30:
        base = 65.0
    else:
        base = 85.0
    return min(100.0, base + (active / total) * 20)


def score_transfers(transfers: Iterable[DerivedTransfer]) -> float:
    weight = sum(transfer.complexity for transfer in transfers)
    if weight <= 0:
        return 5.0
    if weight <= 3:
        return 20.0
    if weight <= 8:
        return 45.0
    if weight <= 15:
        return 70.0
    return 90.0


def effective_weights(
    weights: Mapping[str, float], *, include_transfers: bool = True
) -> dict[str, float]:
    """Factor weights in canonical order, renormalized when transfers are excluded."""
    selected = {
        name: float(weights.get(name, 0.0))
        for name in COMPLEXITY_FACTORS
        if include_transfers or name != "transfers"
    }
    total = sum(selected.values())
    if total <= 0:
        return {name: 1 / len(selected) for name in selected}
    return {name: value / total for name, value in selected.items()}


def compose_score(factors: Mapping[str, float], weights: Mapping[str, float]) -> int:
    """Weighted average with the upper half stretched by 1.5, clamped to [10, 100]."""
    weighted = sum(factors.get(name, 0.0) * weight for name, weight in weights.items())
    normalized = weighted / 100
    if normalized >= 0.5:
        normalized = 0.5 + (normalized - 0.5) * 1.5
    return round(max(MIN_SCORE, min(MAX_SCORE, normalized * 100)))


def explain_score(factors: Mapping[str, float], weights: Mapping[str, float]) -> str:
    parts: list[str] = []
    for name in COMPLEXITY_FACTORS:
        if name not in weights:
            continue
        high, moderate = _FACTOR_LABELS[name]
        value = factors.get(name, 0.0)
        if value >= HIGH_FACTOR_LEVEL:
            parts.append(high)
        elif value >= MODERATE_FACTOR_LEVEL:
            parts.append(moderate)
    if not parts:
        return SIMPLE_REASONING
    if len(parts) == 1:
        return f"Complexity driven by {parts[0]}."
    return f"Complexity driven by {', '.join(parts[:-1])} and {parts[-1]}."


def calibrate_weights(
    samples: Sequence[CalibrationSample],
    tables: ReferenceTables,
    *,
    iterations: int = 100,
) -> dict[str, float]:
    """
    Hill-climb factor weights against known target scores.

    Each round tries raising every weight by 5% (then renormalizing) and keeps a
    change only when the mean squared error drops. Factor values are computed once.
    """
    weights = effective_weights(tables.complexity_weights)
    if not samples:
        return weights
    factor_sets = [score_build(sample.build, tables).factors for sample in samples]
    targets = [sample.target_score for sample in samples]

    def error(candidate: Mapping[str, float]) -> float:
        residuals = (
            compose_score(factors, candidate) - target
            for factors, target in zip(factor_sets, targets, strict=True)
        )
        return sum(value * value for value in residuals) / len(targets)

    best_error = error(weights)
    for _ in range(iterations):
        improved = False
        for name in COMPLEXITY_FACTORS:
            adjusted = dict(weights)
            adjusted[name] *= _CALIBRATION_STEP
            candidate = effective_weights(adjusted)
            candidate_error = error(candidate)
            if candidate_error < best_error:
                weights, best_error = candidate, candidate_error
                improved = True
        if not improved:
            break
    return weights


def with_weights(tables: ReferenceTables, weights: Mapping[str, float]) -> ReferenceTables:
    """Return tables carrying ``weights`` (e.g. the output of ``calibrate_weights``)."""
    return replace(tables, complexity_weights=dict(weights))


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


__all__ = [
    "CalibrationSample",
    "ComplexityScore",
    "SIMPLE_REASONING",
    "calibrate_weights",
    "compose_score",
    "effective_weights",
    "explain_score",
    "score_build",
    "score_equipment_variety",
    "score_station_changes",
    "score_time_breakdown",
    "score_transfers",
    "score_work_unit",
    "score_work_variety",
    "with_weights",
]
