from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import pytest
from pydantic import BaseModel, Field

from common.codec import CodecConfig, JsonCodec
from common.flow import Scope
from reanimator import PersistedState, SavedStateFlowProperty, ViewModel, persisted_state_flow, saved_state_flow
from state import JsonFileStore, MemoryStore


class ScreenState(BaseModel):
    data: List[str] = Field(default_factory=list)
    loading: bool = False


class ProductState(BaseModel):
    items: List[str] = Field(default_factory=list)
    is_loading: bool = False
    error_message: str | None = None


class ProductViewModel(ViewModel):
    state = saved_state_flow(ProductState(), transient_fields={"is_loading", "error_message"})
    query = saved_state_flow("", key="product-query")


class CartViewModel(ViewModel):
    state = saved_state_flow(ProductState())


class AliasedState(BaseModel):
    items: List[str] = Field(default_factory=list)
    is_loading: bool = Field(default=False, alias="isLoading")


def test_scenario_transient_loading_flag_is_not_persisted():
    store = MemoryStore()
    scope = Scope()
    persisted = persisted_state_flow(
        store, ScreenState(), scope=scope, key="screen", transient_fields={"loading"}
    )
    assert isinstance(persisted, PersistedState)
    assert persisted.initial_value == ScreenState()

    persisted.flow.set(ScreenState(data=["x"], loading=True))
    assert store.get("screen") == '{"data":["x"]}'
    assert persisted.value == ScreenState(data=["x"], loading=True)
    scope.close()

    again = persisted_state_flow(
        store, ScreenState(), scope=Scope(), key="screen", transient_fields={"loading"}
    )
    assert again.value == ScreenState(data=["x"], loading=False)


def test_scenario_unknown_stored_keys_are_dropped():
    store = MemoryStore({"screen": '{"data":["x"], "extra":"ignored"}'})
    persisted = persisted_state_flow(store, ScreenState(), scope=Scope(), key="screen")
    assert persisted.value == ScreenState(data=["x"])
    # the restored value is written back without the unknown key
    assert store.get("screen") == '{"data":["x"],"loading":false}'


def test_scenario_corrupt_bare_number_falls_back_to_default(caplog: pytest.LogCaptureFixture):
    store = MemoryStore({"screen": "42"})
    with caplog.at_level(logging.WARNING, logger="reanimator.restorer"):
        persisted = persisted_state_flow(
            store, ScreenState(), scope=Scope(), key="screen", transient_fields={"loading"}
        )
    assert persisted.value == ScreenState()
    assert any("not an object" in r.getMessage() for r in caplog.records)


def test_scenario_corrupt_bare_number_accepted_by_numeric_type():
    store = MemoryStore({"counter": "42"})
    persisted = persisted_state_flow(store, 0, scope=Scope(), key="counter", transient_fields={"loading"})
    assert persisted.value == 42


def test_round_trip_without_transients():
    store = MemoryStore()
    value = ScreenState(data=["a", "b"], loading=True)
    first = persisted_state_flow(store, ScreenState(), scope=Scope(), key="screen")
    first.flow.set(value)

    restored = persisted_state_flow(store, ScreenState(), scope=Scope(), key="screen")
    assert restored.value == value


def test_persisting_same_value_twice_restores_same_value():
    store = MemoryStore()
    value = ScreenState(data=["a"])
    persisted = persisted_state_flow(store, ScreenState(), scope=Scope(), key="screen")

    persisted.flow.set(value)
    first = persisted_state_flow(store, ScreenState(), scope=Scope(), key="screen").value
    persisted.flow.set(value)
    second = persisted_state_flow(store, ScreenState(), scope=Scope(), key="screen").value

    assert first == second == value


def test_absent_key_yields_default_and_writes_it():
    store = MemoryStore()
    default = ScreenState(data=["seed"])
    persisted = persisted_state_flow(store, default, scope=Scope(), key="screen")
    assert persisted.value is default
    assert store.get("screen") == '{"data":["seed"],"loading":false}'


def test_malformed_text_yields_default_without_raising():
    store = MemoryStore({"screen": "<html>"})
    persisted = persisted_state_flow(store, ScreenState(), scope=Scope(), key="screen")
    assert persisted.value == ScreenState()


def test_key_derived_from_owner_and_name():
    store = MemoryStore()
    owner = CartViewModel(store)
    persisted = persisted_state_flow(store, ScreenState(), scope=Scope(), name="screen", owner=owner)
    assert persisted.key == "CartViewModel_screen"
    assert store.contains("CartViewModel_screen")


def test_strict_codec_falls_back_on_unknown_keys():
    store = MemoryStore({"screen": '{"data":["x"],"extra":1}'})
    persisted = persisted_state_flow(
        store, ScreenState(), scope=Scope(), key="screen", codec=JsonCodec(CodecConfig.strict())
    )
    assert persisted.value == ScreenState()


def test_explicit_value_type_for_generic_default():
    store = MemoryStore({"tags": '["a","b"]'})
    persisted = persisted_state_flow(store, [], scope=Scope(), key="tags", value_type=List[str])
    assert persisted.value == ["a", "b"]


def test_view_model_attribute_restores_and_persists():
    store = MemoryStore()
    vm = ProductViewModel(store)

    vm.state.update(lambda s: s.model_copy(update={"items": ["apple"], "is_loading": True}))
    vm.query.set("app")

    assert store.get("ProductViewModel_state") == '{"items":["apple"]}'
    assert store.get("product-query") == '"app"'
    vm.close()

    recreated = ProductViewModel(store)
    assert recreated.state.value == ProductState(items=["apple"], is_loading=False)
    assert recreated.query.value == "app"


def test_view_model_attribute_is_bound_once_per_instance():
    vm = ProductViewModel(MemoryStore())
    assert vm.state is vm.state
    assert ProductViewModel(MemoryStore()).state is not vm.state
    assert set(vm.persisted_states()) == {"state"}
    assert vm.persisted_states()["state"].key == "ProductViewModel_state"


def test_same_attribute_name_on_different_view_models_does_not_collide():
    store = MemoryStore()
    product = ProductViewModel(store)
    cart = CartViewModel(store)

    product.state.set(ProductState(items=["p"]))
    cart.state.set(ProductState(items=["c"]))

    assert ProductViewModel(store).state.value.items == ["p"]
    assert CartViewModel(store).state.value.items == ["c"]


def test_view_model_attribute_on_class_returns_descriptor():
    assert isinstance(ProductViewModel.state, SavedStateFlowProperty)


def test_view_model_attribute_cannot_be_reassigned():
    vm = ProductViewModel(MemoryStore())
    with pytest.raises(AttributeError):
        vm.state = ProductState()


def test_closed_view_model_stops_writing():
    store = MemoryStore()
    with ProductViewModel(store) as vm:
        vm.state.set(ProductState(items=["kept"]))
    vm.state.set(ProductState(items=["dropped"]))

    assert vm.state.value.items == ["dropped"]
    assert ProductViewModel(store).state.value.items == ["kept"]


def test_view_model_state_survives_process_restart_with_file_store(tmp_path: Path):
    path = tmp_path / "saved.json"
    vm = ProductViewModel(JsonFileStore(path))
    vm.state.set(ProductState(items=["a"], is_loading=True, error_message="timeout"))
    vm.close()

    restarted = ProductViewModel(JsonFileStore(path))
    assert restarted.state.value == ProductState(items=["a"])


def test_aliased_model_round_trips_through_store():
    store = MemoryStore()
    value = AliasedState(isLoading=True, items=["x"])
    persisted_state_flow(store, AliasedState(), scope=Scope(), key="aliased").flow.set(value)

    assert store.get("aliased") == '{"items":["x"],"isLoading":true}'
    restored = persisted_state_flow(store, AliasedState(), scope=Scope(), key="aliased")
    assert restored.value == value


def test_aliased_transient_field_is_filtered_and_reset():
    store = MemoryStore()
    persisted = persisted_state_flow(
        store, AliasedState(), scope=Scope(), key="aliased", transient_fields={"isLoading"}
    )
    persisted.flow.set(AliasedState(isLoading=True, items=["x"]))

    assert store.get("aliased") == '{"items":["x"]}'
    again = persisted_state_flow(
        store, AliasedState(), scope=Scope(), key="aliased", transient_fields={"isLoading"}
    )
    assert again.value == AliasedState(isLoading=False, items=["x"])
