from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple
from urllib.parse import quote

from .errors import LocalStorageError

logger = logging.getLogger(__name__)

STORAGE_FILENAME = "local_storage.json"
# Browsers typically allow ~5MB of localStorage per origin
DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024

GLYPH_SCOPE = "glyph"


def glyph_prefix(identity: str) -> str:
    # The identity is percent-escaped so it can never contain the ':' separator
    return f"{GLYPH_SCOPE}:{quote(identity, safe='')}:"


def glyph_key(identity: str, character: str) -> str:
    """Local key for a user's glyph: ``glyph:{escaped identity}:{character}``."""
    return glyph_prefix(identity) + character


def _encode(data: Dict[str, str]) -> bytes:
    return json.dumps(data, ensure_ascii=False, sort_keys=True, separators=(",", ":")).encode("utf-8")


class LocalStorage:
    """Single-device string key-value store persisted as one JSON file.

    Mirrors browser localStorage semantics: string keys and values, writes
    overwrite, and a write that would exceed the quota is refused.
    """

    def __init__(self, path: Path, quota_bytes: int = DEFAULT_QUOTA_BYTES) -> None:
        self.path = Path(path)
        self.quota_bytes = quota_bytes
        self._lock = threading.RLock()

    @classmethod
    def in_dir(cls, data_dir: Path, quota_bytes: int = DEFAULT_QUOTA_BYTES) -> "LocalStorage":
        return cls(Path(data_dir) / STORAGE_FILENAME, quota_bytes=quota_bytes)

    # Public API

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(key, str) or not isinstance(value, str):
            raise LocalStorageError("Local storage keys and values must be strings")
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return [k for k in self._read() if k.startswith(prefix)]

    def items(self, prefix: str = "") -> Iterator[Tuple[str, str]]:
        with self._lock:
            snapshot = self._read()
        for key, value in snapshot.items():
            if key.startswith(prefix):
                yield key, value

    def clear(self) -> None:
        with self._lock:
            self._write({})

    # Internal utilities

    def _read(self) -> Dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except UnicodeDecodeError:
            logger.warning("Local storage file %s is not valid UTF-8; treating as empty", self.path)
            return {}
        except OSError as e:
            raise LocalStorageError(f"Local storage not readable at {self.path}: {e}") from e
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Local storage file %s is corrupt; treating as empty", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Local storage file %s does not hold an object; treating as empty", self.path)
            return {}
        return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}

    def _write(self, data: Dict[str, str]) -> None:
        payload = _encode(data)
        if len(payload) > self.quota_bytes:
            raise LocalStorageError(
                f"Local storage quota exceeded ({len(payload)} > {self.quota_bytes} bytes)"
            )
        try:
            self._atomic_write(payload)
        except OSError as e:
            raise LocalStorageError(f"Local storage not writable at {self.path}: {e}") from e

    def _atomic_write(self, payload: bytes) -> None:
        """Either the old file remains or the new one fully replaces it."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=self.path.name, dir=self.path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        finally:
            if os.path.exists(tmp_name):
                try:
                    os.remove(tmp_name)
                except OSError:
                    logger.debug("Could not remove temp file %s", tmp_name, exc_info=True)
