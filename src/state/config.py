from __future__ import annotations

import os
from typing import Optional

from .file_store import JsonFileStore
from .store import KeyValueStore, MemoryStore


# Environment variable names
ENV_STORE = "REANIMATOR_STORE"  # memory | file | s3; defaults to "memory"
ENV_STORE_PATH = "REANIMATOR_STORE_PATH"  # optional for "file"

BACKENDS = ("memory", "file", "s3")


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def store_from_env() -> KeyValueStore:
    """Build the key-value store selected by `REANIMATOR_STORE`.

    - memory: a fresh `MemoryStore` (state lives as long as the process).
    - file:   `JsonFileStore` at `REANIMATOR_STORE_PATH`, or the default location.
    - s3:     `S3KeyValueStore.from_env()`; requires bucket and Fernet key.
    """
    backend = (_getenv(ENV_STORE, "memory") or "memory").strip().lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "file":
        return JsonFileStore(_getenv(ENV_STORE_PATH))
    if backend == "s3":
        # boto3 is only needed for this backend
        from .s3_store import S3KeyValueStore

        return S3KeyValueStore.from_env()
    raise RuntimeError(
        f"Unsupported {ENV_STORE}={backend!r}; expected one of: {', '.join(BACKENDS)}"
    )
