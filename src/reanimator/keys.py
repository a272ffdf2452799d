from __future__ import annotations

from typing import Any, Optional


def owner_type_name(owner: Any) -> str:
    """Class name of `owner`, which may be an instance or a class."""
    cls = owner if isinstance(owner, type) else type(owner)
    return cls.__name__


def derive_key(key: Optional[str], name: Optional[str], owner: Any = None) -> str:
    """
    Resolve the store key for one persisted state declaration.

    - An explicit `key` is used verbatim.
    - Otherwise the key is "{OwnerClass}_{name}", or just `name` without an owner,
      so the same declaration on the same component type maps to the same key
      on every run.
    """
    if key is not None:
        return key
    if not name:
        raise ValueError("A persisted state needs an explicit key or a name to derive one from")
    if owner is None:
        return name
    return f"{owner_type_name(owner)}_{name}"
