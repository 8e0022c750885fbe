"""Dependency graph construction, ordering and critical-path analysis."""
