from __future__ import annotations

import logging
from typing import AbstractSet, Any, Optional, Type, TypeVar

from common.codec import DecodeError, EncodeError, JsonCodec, ParseError
from common.tree import is_object, merge_resetting
from state.store import KeyValueStore, StoreReadError


logger = logging.getLogger(__name__)

T = TypeVar("T")


def restore(
    store: KeyValueStore,
    key: str,
    default_value: T,
    transient_fields: AbstractSet[str],
    codec: JsonCodec,
    value_type: Optional[Type[T]] = None,
) -> T:
    """
    Build the initial value for `key` from the store.

    - Absent key: `default_value`, without touching the codec.
    - Transient fields present in the stored object are reset to the default's
      values before decoding.
    - Any read, parse or decode failure is logged and yields `default_value`.
      Never raises.
    """
    vtype: Any = value_type or type(default_value)

    try:
        raw = store.get(key)
    except StoreReadError as ex:
        logger.warning(f"Restore {key!r}: store read failed, using default: {ex}")
        return default_value
    except Exception:
        logger.exception(f"Restore {key!r}: unexpected store failure, using default")
        return default_value
    if raw is None:
        return default_value

    try:
        saved = codec.parse_text(raw)
    except ParseError as ex:
        logger.warning(f"Restore {key!r}: stored text is malformed, using default: {ex}")
        return default_value

    if not transient_fields:
        return _decode_or_default(codec, saved, vtype, key, default_value)

    try:
        defaults = codec.encode(default_value, vtype)
    except EncodeError as ex:
        logger.warning(f"Restore {key!r}: cannot encode default for transient reset: {ex}")
        return _decode_or_default(codec, saved, vtype, key, default_value)

    if not (is_object(saved) and is_object(defaults)):
        logger.warning(
            f"Restore {key!r}: stored or default value is not an object; "
            f"transient fields {sorted(transient_fields)} were not reset"
        )
        return _decode_or_default(codec, saved, vtype, key, default_value)

    merged = merge_resetting(saved, defaults, transient_fields)  # type: ignore[arg-type]
    try:
        value = codec.decode(merged, vtype)
    except DecodeError as ex:
        logger.warning(f"Restore {key!r}: merged value failed to decode, retrying unmerged: {ex}")
        return _decode_or_default(codec, saved, vtype, key, default_value)
    logger.debug(f"Restored {key!r} with transient fields reset")
    return value


def _decode_or_default(codec: JsonCodec, tree: Any, vtype: Any, key: str, default_value: T) -> T:
    try:
        value = codec.decode(tree, vtype)
    except DecodeError as ex:
        logger.warning(f"Restore {key!r}: stored value does not decode, using default: {ex}")
        return default_value
    logger.debug(f"Restored {key!r}")
    return value
