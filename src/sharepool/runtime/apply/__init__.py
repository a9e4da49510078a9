# src/sharepool/runtime/apply/__init__.py
"""Domain-specific apply modules.

Each module implements deterministic state transitions for a subset of ops and
returns None for ops it does not claim. Routing lives in domain_apply.py.
"""

from __future__ import annotations

__all__ = [
    "pool",
    "roles",
]
