from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Generic, List, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class ScopeClosedError(RuntimeError):
    """Raised when subscribing through a scope that has already been closed."""


class Scope:
    """
    Lifecycle and execution context owning subscriptions.

    - `Scope()` runs dispatched work inline on the calling thread.
    - `Scope.background(name)` runs it on one dedicated worker thread, in
      submission order, so each unit of work finishes before the next starts.
    - `close()` cancels every tracked subscription, drops queued work that has
      not started and does not wait for work already running. Idempotent.
    """

    def __init__(self, *, executor: Optional[ThreadPoolExecutor] = None, name: str = "scope") -> None:
        self.name = name
        self._executor = executor
        self._subscriptions: List["Subscription"] = []
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def background(cls, name: str = "scope") -> "Scope":
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        return cls(executor=executor, name=name)

    @property
    def is_active(self) -> bool:
        return not self._closed

    def track(self, subscription: "Subscription") -> None:
        with self._lock:
            if self._closed:
                raise ScopeClosedError(f"Scope {self.name!r} is closed")
            self._subscriptions.append(subscription)

    def dispatch(self, fn: Callable[..., Any], *args: Any) -> None:
        """Run `fn(*args)` in this scope; silently dropped once closed."""
        if self._closed:
            return
        if self._executor is None:
            fn(*args)
            return
        try:
            self._executor.submit(fn, *args)
        except RuntimeError:
            # Executor shut down between the check and the submit
            logger.debug(f"Scope {self.name!r} dropped work after shutdown")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subs, self._subscriptions = self._subscriptions, []
        for sub in subs:
            sub.cancel()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
        logger.debug(f"Scope {self.name!r} closed; cancelled {len(subs)} subscription(s)")

    def __enter__(self) -> "Scope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class Subscription:
    """Handle returned by `MutableStateFlow.subscribe`; `cancel()` stops delivery."""

    def __init__(self, flow: "MutableStateFlow[Any]", callback: Callable[[Any], None], scope: Scope) -> None:
        self._flow = flow
        self._callback = callback
        self._scope = scope
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active and self._scope.is_active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._flow._remove(self)

    def _deliver(self, value: Any) -> None:
        self._scope.dispatch(self._run, value)

    def _run(self, value: Any) -> None:
        if not self.is_active:
            return
        try:
            self._callback(value)
        except Exception:
            logger.exception(f"Subscriber in scope {self._scope.name!r} failed")


class MutableStateFlow(Generic[T]):
    """
    Observable mutable value.

    Every `set`/`update` replaces the value and emits it to all subscribers,
    including values equal to the previous one. Emissions are serialized, so
    each subscriber sees values in the order the mutations happened.
    """

    def __init__(self, value: T) -> None:
        self._value = value
        self._subscribers: List[Subscription] = []
        self._lock = threading.RLock()

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, new_value: T) -> None:
        self.set(new_value)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def set(self, new_value: T) -> None:
        with self._lock:
            self._value = new_value
            self._emit(new_value)

    def update(self, fn: Callable[[T], T]) -> T:
        """Atomically replace the value with `fn(current)`; returns the new value."""
        with self._lock:
            new_value = fn(self._value)
            self._value = new_value
            self._emit(new_value)
            return new_value

    def subscribe(self, callback: Callable[[T], None], scope: Scope, *, replay: bool = True) -> Subscription:
        """
        Deliver values to `callback` within `scope` until cancelled or the scope closes.

        With `replay`, the current value is delivered first.
        """
        sub = Subscription(self, callback, scope)
        with self._lock:
            scope.track(sub)
            self._subscribers.append(sub)
            if replay:
                sub._deliver(self._value)
        return sub

    def _emit(self, value: T) -> None:
        for sub in list(self._subscribers):
            sub._deliver(value)

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            try:
                self._subscribers.remove(sub)
            except ValueError:
                pass

    def __repr__(self) -> str:
        return f"MutableStateFlow({self._value!r})"
