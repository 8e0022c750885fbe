"""Utility exports for hashing helpers."""

from linebuild_engine.utils.hashing import (
    canonical_json,
    sha256_bytes,
    sha256_file,
    sha256_json,
    sha256_text,
)

__all__ = [
    "canonical_json",
    "sha256_bytes",
    "sha256_file",
    "sha256_json",
    "sha256_text",
]
