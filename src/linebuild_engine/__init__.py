"""
linebuild-engine — package root.

Purpose
- Analysis engine for kitchen line builds: dependency graphs, per-track ordering,
  duration estimation, critical path, location continuity and derived transfers,
  complexity scoring, and legacy-data migration.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
