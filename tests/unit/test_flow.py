from __future__ import annotations

import logging
import threading
from typing import List

import pytest

from common.flow import MutableStateFlow, Scope, ScopeClosedError


def test_subscribe_replays_current_value_then_every_emission():
    scope = Scope()
    flow = MutableStateFlow(0)
    seen: List[int] = []

    flow.subscribe(seen.append, scope)
    flow.set(1)
    flow.value = 2
    flow.set(2)  # equal values are emitted too

    assert seen == [0, 1, 2, 2]
    assert flow.value == 2


def test_subscribe_without_replay():
    scope = Scope()
    flow = MutableStateFlow("a")
    seen: List[str] = []

    flow.subscribe(seen.append, scope, replay=False)
    flow.set("b")

    assert seen == ["b"]


def test_update_returns_new_value_and_emits():
    scope = Scope()
    flow = MutableStateFlow(1)
    seen: List[int] = []
    flow.subscribe(seen.append, scope, replay=False)

    assert flow.update(lambda v: v + 10) == 11
    assert seen == [11]


def test_cancel_stops_delivery():
    scope = Scope()
    flow = MutableStateFlow(0)
    seen: List[int] = []
    sub = flow.subscribe(seen.append, scope)

    sub.cancel()
    sub.cancel()  # idempotent
    flow.set(5)

    assert seen == [0]
    assert not sub.is_active
    assert flow.subscriber_count == 0


def test_closing_scope_cancels_its_subscriptions():
    scope = Scope(name="vm")
    other = Scope(name="other")
    flow = MutableStateFlow(0)
    a: List[int] = []
    b: List[int] = []
    flow.subscribe(a.append, scope)
    flow.subscribe(b.append, other)

    scope.close()
    scope.close()
    flow.set(1)

    assert a == [0]
    assert b == [0, 1]
    assert not scope.is_active
    assert flow.subscriber_count == 1


def test_subscribe_on_closed_scope_raises():
    scope = Scope()
    scope.close()
    with pytest.raises(ScopeClosedError):
        MutableStateFlow(0).subscribe(lambda _v: None, scope)


def test_scope_context_manager_closes():
    flow = MutableStateFlow(0)
    seen: List[int] = []
    with Scope() as scope:
        flow.subscribe(seen.append, scope)
        flow.set(1)
    flow.set(2)
    assert seen == [0, 1]


def test_failing_subscriber_is_logged_and_others_still_receive(caplog: pytest.LogCaptureFixture):
    scope = Scope(name="vm")
    flow = MutableStateFlow(0)
    seen: List[int] = []

    def boom(_v: int) -> None:
        raise RuntimeError("subscriber failed")

    flow.subscribe(boom, scope, replay=False)
    flow.subscribe(seen.append, scope, replay=False)

    with caplog.at_level(logging.ERROR, logger="common.flow"):
        flow.set(1)

    assert seen == [1]
    assert flow.value == 1
    assert any("Subscriber in scope 'vm' failed" in r.getMessage() for r in caplog.records)


def test_background_scope_delivers_in_order_on_worker_thread():
    scope = Scope.background("persist")
    flow = MutableStateFlow(0)
    seen: List[int] = []
    threads: List[str] = []
    done = threading.Event()

    def collect(v: int) -> None:
        seen.append(v)
        threads.append(threading.current_thread().name)
        if v == 50:
            done.set()

    flow.subscribe(collect, scope)
    for i in range(1, 51):
        flow.set(i)

    assert done.wait(timeout=5.0)
    scope.close()

    assert seen == list(range(0, 51))
    assert all(name.startswith("persist") for name in threads)


def test_background_scope_drops_work_after_close():
    scope = Scope.background("persist")
    flow = MutableStateFlow(0)
    seen: List[int] = []
    flow.subscribe(seen.append, scope, replay=False)

    scope.close()
    flow.set(1)
    scope.dispatch(seen.append, 2)

    assert seen == []
