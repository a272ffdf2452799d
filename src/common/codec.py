from __future__ import annotations

import dataclasses
import json
import os
import threading
from typing import Any, Dict, Optional, Set, Type, TypeVar, is_typeddict

from pydantic import BaseModel, ConfigDict, PydanticUserError, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from .tree import TreeNode, is_object


T = TypeVar("T")

ENV_JSON_STRICT = "REANIMATOR_JSON_STRICT"
ENV_JSON_SORT_KEYS = "REANIMATOR_JSON_SORT_KEYS"

_TRUTHY = ("1", "true", "yes", "on")


class CodecError(ValueError):
    """Base error for the structured codec."""


class ParseError(CodecError):
    """Stored text is not valid JSON."""


class DecodeError(CodecError):
    """A valid tree does not have the shape of the target type."""


class EncodeError(CodecError):
    """A value could not be turned into a tree or into text."""


class CodecConfig(BaseModel):
    """
    Options for `JsonCodec`, built once per process and passed explicitly.

    Fields
    - ignore_unknown_keys: drop object keys the target type does not declare
      (lenient, the default). When False, such keys fail decoding.
    - sort_keys: emit object keys in sorted order when serializing to text.
    """

    model_config = ConfigDict(frozen=True)

    ignore_unknown_keys: bool = True
    sort_keys: bool = False

    @classmethod
    def strict(cls) -> "CodecConfig":
        return cls(ignore_unknown_keys=False)

    @classmethod
    def from_env(cls) -> "CodecConfig":
        strict = os.environ.get(ENV_JSON_STRICT, "").strip().lower() in _TRUTHY
        sort_keys = os.environ.get(ENV_JSON_SORT_KEYS, "").strip().lower() in _TRUTHY
        return cls(ignore_unknown_keys=not strict, sort_keys=sort_keys)


def _declared_fields(value_type: Any) -> Optional[Set[str]]:
    """Top-level field names of an object-shaped type, or None if not object-shaped."""
    if isinstance(value_type, type) and issubclass(value_type, BaseModel):
        names: Set[str] = set()
        for name, info in value_type.model_fields.items():
            names.add(name)
            if info.alias:
                names.add(info.alias)
        return names
    if dataclasses.is_dataclass(value_type) and isinstance(value_type, type):
        return {f.name for f in dataclasses.fields(value_type)}
    if is_typeddict(value_type):
        return set(value_type.__required_keys__) | set(value_type.__optional_keys__)
    return None


class JsonCodec:
    """
    JSON codec over pydantic `TypeAdapter`s.

    The target type is passed on every call; adapters are built once per type.
    Trees are plain JSON-compatible Python values (see `common.tree`).
    """

    def __init__(self, config: Optional[CodecConfig] = None) -> None:
        self.config = config or CodecConfig()
        self._adapters: Dict[Any, TypeAdapter[Any]] = {}
        self._lock = threading.Lock()

    def _adapter(self, value_type: Any) -> TypeAdapter[Any]:
        try:
            hash(value_type)
        except TypeError:
            return TypeAdapter(value_type)
        with self._lock:
            adapter = self._adapters.get(value_type)
            if adapter is None:
                adapter = TypeAdapter(value_type)
                self._adapters[value_type] = adapter
            return adapter

    # --------------- Tree <-> typed value ---------------
    def encode(self, value: T, value_type: Type[T]) -> TreeNode:
        try:
            return self._adapter(value_type).dump_python(value, mode="json", by_alias=True)
        except (PydanticSerializationError, PydanticUserError, TypeError, ValueError, RecursionError) as ex:
            raise EncodeError(f"Cannot encode {type(value).__name__}: {ex}") from ex

    def decode(self, tree: TreeNode, value_type: Type[T]) -> T:
        if not self.config.ignore_unknown_keys and is_object(tree):
            declared = _declared_fields(value_type)
            if declared is not None:
                unknown = sorted(k for k in tree if k not in declared)  # type: ignore[union-attr]
                if unknown:
                    raise DecodeError(f"Unknown keys for {_type_name(value_type)}: {', '.join(unknown)}")
        try:
            return self._adapter(value_type).validate_python(tree)
        except ValidationError as ex:
            raise DecodeError(f"Cannot decode {_type_name(value_type)}: {ex.error_count()} error(s)") from ex
        except RecursionError as ex:
            raise DecodeError(f"Cannot decode {_type_name(value_type)}: nesting too deep") from ex
        except PydanticUserError as ex:
            raise DecodeError(f"Unsupported target type {_type_name(value_type)}: {ex}") from ex

    # --------------- Text <-> tree ---------------
    def parse_text(self, text: str) -> TreeNode:
        try:
            return json.loads(text)
        except (ValueError, TypeError, RecursionError) as ex:
            raise ParseError(f"Malformed JSON: {ex}") from ex

    def serialize_to_text(self, tree: TreeNode) -> str:
        try:
            return json.dumps(
                tree,
                separators=(",", ":"),
                sort_keys=self.config.sort_keys,
                ensure_ascii=False,
                allow_nan=False,
            )
        except (TypeError, ValueError, RecursionError) as ex:
            raise EncodeError(f"Cannot serialize tree: {ex}") from ex


def _type_name(value_type: Any) -> str:
    return getattr(value_type, "__name__", None) or repr(value_type)


_default_codec: Optional[JsonCodec] = None


def default_codec() -> JsonCodec:
    """Shared lenient codec, created on first use."""
    global _default_codec
    if _default_codec is None:
        _default_codec = JsonCodec(CodecConfig())
    return _default_codec
