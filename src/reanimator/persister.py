from __future__ import annotations

import logging
from typing import AbstractSet, Any, Optional, Type, TypeVar

from common.codec import EncodeError, JsonCodec
from common.flow import MutableStateFlow, Scope, Subscription
from common.tree import filter_out, is_object
from state.store import KeyValueStore, StoreWriteError


logger = logging.getLogger(__name__)

T = TypeVar("T")


def encode_for_store(
    value: T,
    transient_fields: AbstractSet[str],
    codec: JsonCodec,
    value_type: Type[T],
    *,
    key: str = "",
) -> str:
    """Encode `value` to text with the transient fields stripped. Raises EncodeError."""
    tree = codec.encode(value, value_type)
    if transient_fields:
        if is_object(tree):
            tree = filter_out(tree, transient_fields)  # type: ignore[arg-type]
        else:
            logger.warning(
                f"Persist {key!r}: value is not an object; transient fields "
                f"{sorted(transient_fields)} were not filtered"
            )
    return codec.serialize_to_text(tree)


def attach(
    flow: MutableStateFlow[T],
    store: KeyValueStore,
    key: str,
    transient_fields: AbstractSet[str],
    codec: JsonCodec,
    scope: Scope,
    value_type: Optional[Type[T]] = None,
) -> Subscription:
    """
    Write every value `flow` emits to `store` under `key` until `scope` closes.

    The current value is written first. Each emission produces exactly one
    write; failures are logged and skipped, the in-memory value is untouched.
    """
    vtype: Any = value_type or type(flow.value)
    fields = frozenset(transient_fields)

    def persist(value: T) -> None:
        if not scope.is_active:
            return
        try:
            text = encode_for_store(value, fields, codec, vtype, key=key)
        except EncodeError as ex:
            logger.warning(f"Persist {key!r}: cannot encode value, write skipped: {ex}")
            return
        try:
            store.set(key, text)
        except StoreWriteError as ex:
            logger.warning(f"Persist {key!r}: store write failed, skipped: {ex}")
            return
        except Exception:
            logger.exception(f"Persist {key!r}: unexpected store failure, write skipped")
            return
        logger.debug(f"Persisted {key!r} ({len(text)} chars)")

    return flow.subscribe(persist, scope)
