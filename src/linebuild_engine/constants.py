"""Stable constants shared across the line-build engine."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted documents.
CONFIG_SCHEMA_VERSION: Final[int] = 1
BUILD_SCHEMA_VERSION: Final[int] = 1
REFERENCE_TABLES_SCHEMA_VERSION: Final[int] = 1
DERIVATION_VERSION: Final[int] = 1

# Track key used when a work unit does not name one.
DEFAULT_TRACK_ID: Final[str] = "default"

# Migration confidence thresholds, keyed by tier name.
CONFIDENCE_TIER_THRESHOLDS: Final[dict[str, int]] = {
    "high": 85,
    "medium": 70,
    "low": 50,
}

# Extraction confidence scores carried on migrated units.
EXTRACTION_CONFIDENCE_SCORES: Final[dict[str, int]] = {
    "high": 90,
    "medium": 75,
    "low": 50,
}
EXTRACTION_CONFIDENCE_ABSENT: Final[int] = 100

# Below this score a low-confidence finding is an error, not a warning.
LOW_CONFIDENCE_ERROR_BELOW: Final[int] = 70

# Fallback when an action family has no registered default duration.
FALLBACK_DURATION_SECONDS: Final[int] = 10


__all__ = [
    "BUILD_SCHEMA_VERSION",
    "CONFIDENCE_TIER_THRESHOLDS",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_TRACK_ID",
    "DERIVATION_VERSION",
    "EXTRACTION_CONFIDENCE_ABSENT",
    "EXTRACTION_CONFIDENCE_SCORES",
    "FALLBACK_DURATION_SECONDS",
    "LOW_CONFIDENCE_ERROR_BELOW",
    "REFERENCE_TABLES_SCHEMA_VERSION",
]
