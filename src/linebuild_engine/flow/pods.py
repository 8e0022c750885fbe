"""Station and equipment to physical pod assignment."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from linebuild_engine.domain.models import JSONValue, Location


@dataclass(frozen=True, slots=True)
class PodLayout:
    """Maps stations and appliances onto physical pods.

    Station assignments win over equipment assignments. An empty layout assigns
    nothing, so no transfer is ever classified as crossing pods.
    """

    station_pods: Mapping[str, str] = field(default_factory=dict)
    equipment_pods: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.station_pods and not self.equipment_pods

    def pod_for(self, location: Location | None) -> str | None:
        if location is None:
            return None
        if location.station_id is not None and location.station_id in self.station_pods:
            return self.station_pods[location.station_id]
        equipment_id = location.equipment_id
        if equipment_id is not None and equipment_id in self.equipment_pods:
            return self.equipment_pods[equipment_id]
        return None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "stations": dict(sorted(self.station_pods.items())),
            "equipment": dict(sorted(self.equipment_pods.items())),
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object], *, path: str = "pods") -> PodLayout:
        unknown = sorted(key for key in payload if key not in {"stations", "equipment"})
        if unknown:
            raise ValueError(f"{path}: unexpected fields: {unknown}")
        return cls(
            station_pods=_as_assignment(payload.get("stations", {}), f"{path}.stations"),
            equipment_pods=_as_assignment(payload.get("equipment", {}), f"{path}.equipment"),
        )


def _as_assignment(value: object, path: str) -> dict[str, str]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{path}: expected object, got {type(value).__name__}")
    parsed: dict[str, str] = {}
    for key, pod in value.items():
        if not isinstance(key, str) or not key.strip():
            raise ValueError(f"{path}: keys must be non-empty strings")
        if not isinstance(pod, str) or not pod.strip():
            raise ValueError(f"{path}.{key}: pod id must be a non-empty string")
        parsed[key.strip()] = pod.strip()
    return parsed


__all__ = ["PodLayout"]
