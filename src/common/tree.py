from __future__ import annotations

from typing import Any, Dict, Iterable, List, Union

# JSON-compatible value used between typed values and stored text.
TreeNode = Union[Dict[str, Any], List[Any], str, int, float, bool, None]


def is_object(node: Any) -> bool:
    """True for an Object-shaped node (a mapping with string keys)."""
    return isinstance(node, dict)


def merge_resetting(
    saved: Dict[str, Any], defaults: Dict[str, Any], fields: Iterable[str]
) -> Dict[str, Any]:
    """
    Return a copy of `saved` where each key in `fields` that `defaults` also has
    is replaced by the default's value.

    - Keys only in `saved` and not in `fields` pass through unchanged.
    - Keys in `fields` that `defaults` lacks keep the saved value.
    - Keys in `fields` missing from `saved` but present in `defaults` are added.
    """
    merged = dict(saved)
    for name in dict.fromkeys(fields):
        if name in defaults:
            merged[name] = defaults[name]
    return merged


def filter_out(obj: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    """Return a copy of `obj` without the entries named in `fields`."""
    drop = set(fields)
    return {k: v for k, v in obj.items() if k not in drop}
