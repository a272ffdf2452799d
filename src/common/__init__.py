"""
Common building blocks for reanimator.

Modules:
- tree: JSON-tree helpers (object check, transient merge and filter)
- codec: pydantic-backed JSON codec with explicit type descriptors
- flow: observable state holder and the scope that owns its subscriptions
"""

__all__ = [
    "codec",
    "flow",
    "tree",
]
