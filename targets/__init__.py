"""Order target allocation and reconciliation."""

from __future__ import annotations

__all__ = [
    "allocation",
    "book",
    "errors",
    "identity",
    "manager",
    "merge",
    "numeric",
    "schema",
    "validation",
]
