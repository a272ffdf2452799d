"""
Key-value stores that hold serialized component state between process runs.

Backends share the `KeyValueStore` shape (`get`/`set` of text by key):
in-memory, a local JSON file, and encrypted S3 objects (`state.s3_store`,
imported on demand since it needs boto3).
"""

from .config import store_from_env
from .file_store import JsonFileStore
from .store import KeyValueStore, MemoryStore, StoreError, StoreReadError, StoreWriteError

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "StoreError",
    "StoreReadError",
    "StoreWriteError",
    "store_from_env",
]
