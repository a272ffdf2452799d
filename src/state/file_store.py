from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional

from .store import StoreReadError, StoreWriteError


logger = logging.getLogger(__name__)

DEFAULT_STORE_DIR_ENV = "REANIMATOR_STORE_DIR"


def _default_store_file() -> Path:
    # Prefer explicit env var, else project-local .cache folder
    base = os.environ.get(DEFAULT_STORE_DIR_ENV)
    if base:
        return Path(base) / "saved_state.json"
    return Path(".cache") / "saved_state.json"


class JsonFileStore:
    """
    Key-value store backed by a single JSON file: { key: text, ... }.

    - Loaded lazily on first access; a corrupt or non-object file is logged and
      treated as empty, and is replaced on the next write.
    - Every `set` rewrites the whole file through a temp file and `os.replace`,
      so a crash mid-write leaves the previous contents intact.
    - Meant for one process at a time; concurrent writers from several processes
      are last-write-wins.
    """

    def __init__(self, path: Optional[os.PathLike[str] | str] = None) -> None:
        self._path = Path(path) if path else _default_store_file()
        self._data: Dict[str, str] = {}
        self._loaded = False
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        try:
            if not self._path.exists():
                self._loaded = True
                return
            with self._path.open("r", encoding="utf-8") as f:
                text = f.read()
        except OSError as ex:
            raise StoreReadError(f"Cannot read store file {self._path}: {ex}") from ex
        self._loaded = True
        try:
            raw = json.loads(text)
        except ValueError:
            logger.warning(f"Store file {self._path} is not valid JSON; starting empty")
            return
        if not isinstance(raw, dict):
            logger.warning(f"Store file {self._path} does not hold a JSON object; starting empty")
            return
        self._data = {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _save(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=self._path.name, suffix=".tmp", dir=self._path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(self._data, f, ensure_ascii=False, indent=2, sort_keys=True)
                os.replace(tmp, self._path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as ex:
            raise StoreWriteError(f"Cannot write store file {self._path}: {ex}") from ex

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            self._ensure_loaded()
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StoreWriteError(f"Value for {key!r} must be str, got {type(value).__name__}")
        with self._lock:
            try:
                self._ensure_loaded()
            except StoreReadError as ex:
                raise StoreWriteError(str(ex)) from ex
            previous = self._data.get(key)
            self._data[key] = value
            try:
                self._save()
            except StoreWriteError:
                # Keep memory consistent with what is on disk
                if previous is None:
                    self._data.pop(key, None)
                else:
                    self._data[key] = previous
                raise

    def remove(self, key: str) -> None:
        with self._lock:
            self._ensure_loaded()
            if self._data.pop(key, None) is not None:
                self._save()
