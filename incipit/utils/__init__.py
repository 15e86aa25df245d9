"""
Shared utilities for Incipit.

Common functionality used across contexts:
- Sandboxed path resolution
- Atomic file writes
- Logging setup and compile event log
- Timestamps and PDF inspection
"""

from incipit.utils.fs import atomic_write_bytes, atomic_write_text
from incipit.utils.paths import canonical_root, normalize_relative, resolve_within
from incipit.utils.timestamp import now, now_exact

__all__ = [
    "atomic_write_bytes",
    "atomic_write_text",
    "canonical_root",
    "normalize_relative",
    "now",
    "now_exact",
    "resolve_within",
]
