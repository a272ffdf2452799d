"""
Persisted state flows for view-models.

A persisted state flow is a `MutableStateFlow` whose value is restored from a
key-value store when it is created and written back on every change. Fields
named as transient are left out of what is stored and come back from the
default value on restore.
"""

from .delegate import PersistedState, SavedStateFlowProperty, ViewModel, persisted_state_flow, saved_state_flow
from .keys import derive_key
from .persister import attach, encode_for_store
from .restorer import restore

__all__ = [
    "PersistedState",
    "SavedStateFlowProperty",
    "ViewModel",
    "attach",
    "derive_key",
    "encode_for_store",
    "persisted_state_flow",
    "restore",
    "saved_state_flow",
]
