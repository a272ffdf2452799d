from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Generic, Iterable, Optional, Type, TypeVar

from common.codec import JsonCodec, default_codec
from common.flow import MutableStateFlow, Scope, Subscription
from state.store import KeyValueStore

from .keys import derive_key
from .persister import attach
from .restorer import restore


logger = logging.getLogger(__name__)

T = TypeVar("T")

_REGISTRY_ATTR = "_persisted_states"


@dataclass
class PersistedState(Generic[T]):
    """
    A state flow bound to one store key.

    Fields
    - key: store key, fixed for the lifetime of this object.
    - default_value: value used when nothing usable is stored; also the source
      of transient field values on restore.
    - transient_fields: top-level field names never written to the store.
    - initial_value: what restoration produced (the flow's first value).
    - flow: the live state holder; mutate it to persist.
    - subscription: the persister's subscription, cancelled with the scope.
    """

    key: str
    default_value: T
    transient_fields: frozenset
    initial_value: T
    flow: MutableStateFlow[T]
    subscription: Subscription

    @property
    def value(self) -> T:
        return self.flow.value

    @property
    def is_attached(self) -> bool:
        return self.subscription.is_active


def persisted_state_flow(
    store: KeyValueStore,
    default_value: T,
    *,
    scope: Scope,
    key: Optional[str] = None,
    name: Optional[str] = None,
    owner: Any = None,
    transient_fields: Iterable[str] = (),
    codec: Optional[JsonCodec] = None,
    value_type: Optional[Type[T]] = None,
) -> PersistedState[T]:
    """
    Restore a value from `store` and keep the store in sync with later changes.

    Usage:
        scope = Scope()
        state = persisted_state_flow(
            store, ProductState(), scope=scope, name="state", owner=self,
            transient_fields={"is_loading"},
        )
        state.flow.update(lambda s: s.model_copy(update={"is_loading": True}))

    The key is `key` if given, else derived from `owner` and `name`. The value
    type defaults to `type(default_value)`; pass `value_type` for generic
    containers such as `list[str]`. Restoration finishes before this returns,
    so the flow never exposes a partial value.
    """
    actual_key = derive_key(key, name, owner)
    fields = frozenset(transient_fields)
    c = codec or default_codec()
    vtype: Any = value_type or type(default_value)

    initial = restore(store, actual_key, default_value, fields, c, vtype)
    flow: MutableStateFlow[T] = MutableStateFlow(initial)
    subscription = attach(flow, store, actual_key, fields, c, scope, vtype)
    return PersistedState(
        key=actual_key,
        default_value=default_value,
        transient_fields=fields,
        initial_value=initial,
        flow=flow,
        subscription=subscription,
    )


class ViewModel:
    """
    Base class for components holding persisted state.

    Owns the saved-state store, a scope for persister subscriptions and the
    codec used by `saved_state_flow` attributes. `close()` ends the scope;
    nothing is written for this component afterwards.
    """

    def __init__(
        self,
        saved_state: KeyValueStore,
        *,
        scope: Optional[Scope] = None,
        codec: Optional[JsonCodec] = None,
    ) -> None:
        self.saved_state = saved_state
        self.scope = scope or Scope(name=type(self).__name__)
        self.codec = codec

    def persisted_states(self) -> Dict[str, PersistedState[Any]]:
        """Persisted states created so far, by attribute name."""
        return dict(self.__dict__.get(_REGISTRY_ATTR, {}))

    def close(self) -> None:
        self.scope.close()

    def __enter__(self) -> "ViewModel":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SavedStateFlowProperty(Generic[T]):
    """
    Class attribute that becomes a persisted `MutableStateFlow` per instance.

    On first access through an instance, the flow is restored from
    `instance.saved_state` and persisted within `instance.scope`; the key
    defaults to "{InstanceClass}_{attribute}". Later accesses return the same
    flow. Accessed on the class, returns the descriptor itself.
    """

    def __init__(
        self,
        default_value: T,
        *,
        key: Optional[str] = None,
        transient_fields: Iterable[str] = (),
        codec: Optional[JsonCodec] = None,
        value_type: Optional[Type[T]] = None,
    ) -> None:
        self.default_value = default_value
        self.key = key
        self.transient_fields = frozenset(transient_fields)
        self.codec = codec
        self.value_type = value_type
        self.name: Optional[str] = None
        self._lock = threading.Lock()

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if instance is None:
            return self
        if self.name is None:
            raise TypeError("saved_state_flow must be assigned as a class attribute")
        with self._lock:
            registry: Dict[str, PersistedState[Any]] = instance.__dict__.setdefault(_REGISTRY_ATTR, {})
            persisted = registry.get(self.name)
            if persisted is None:
                persisted = persisted_state_flow(
                    instance.saved_state,
                    self.default_value,
                    scope=instance.scope,
                    key=self.key,
                    name=self.name,
                    owner=instance,
                    transient_fields=self.transient_fields,
                    codec=self.codec or getattr(instance, "codec", None),
                    value_type=self.value_type,
                )
                registry[self.name] = persisted
                logger.debug(f"Bound {type(instance).__name__}.{self.name} to key {persisted.key!r}")
            return persisted.flow

    def __set__(self, instance: Any, value: Any) -> None:
        raise AttributeError(f"{self.name} is a persisted state flow; use .set() or .update() on it")


def saved_state_flow(
    default_value: T,
    *,
    key: Optional[str] = None,
    transient_fields: Iterable[str] = (),
    codec: Optional[JsonCodec] = None,
    value_type: Optional[Type[T]] = None,
) -> Any:
    """
    Declare a persisted state flow on a `ViewModel` subclass:

        class ProductViewModel(ViewModel):
            state = saved_state_flow(ProductState(), transient_fields={"is_loading"})
    """
    return SavedStateFlowProperty(
        default_value,
        key=key,
        transient_fields=transient_fields,
        codec=codec,
        value_type=value_type,
    )
