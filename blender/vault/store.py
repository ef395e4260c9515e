"""
Storage backends for the secret vault.

A backend holds the raw persisted document: a JSON object keyed by
commitment hex, each value in the layout

    {"secretHex": "0x..", "amount": "<decimal string>", "createdAt": <ms>,
     "spent": false, "spentAt": <ms>, "withdrawTx": "0x.."}

The whole document is loaded on each access and rewritten on each
mutation. One process, one writer: running two tools against the same
file at once is not supported and nothing here guards against it.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Dict, Any, List, Tuple, Protocol, runtime_checkable

from ..errors import StoreIOError, StoreNotFound

log = logging.getLogger(__name__)

DEFAULT_STORE_PATH = "~/.blender/secrets.json"


@runtime_checkable
class StoreBackend(Protocol):
    """Durable keyed persistence for deposit records."""

    def exists(self) -> bool: ...

    def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    def put(self, key: str, value: Dict[str, Any]) -> None: ...

    def list(self) -> List[Tuple[str, Dict[str, Any]]]: ...


class JsonFileStore:
    """
    Single JSON document on disk.

    Writes go to a temp file in the same directory, then os.replace() over
    the target, so a crash mid-write leaves the previous document intact.
    """

    def __init__(self, path: str = DEFAULT_STORE_PATH):
        self.path = Path(os.path.expanduser(str(path)))

    def exists(self) -> bool:
        return self.path.exists()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreIOError(f"Failed to read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreIOError(f"{self.path} is not a JSON object")
        return data

    def _save(self, data: Dict[str, Dict[str, Any]]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=".secrets-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(data, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp_path, 0o600)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StoreIOError(f"Failed to write {self.path}: {e}") from e
        log.debug(f"Wrote {len(data)} entries to {self.path}")

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        return self._load().get(key)

    def put(self, key: str, value: Dict[str, Any]) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def list(self) -> List[Tuple[str, Dict[str, Any]]]:
        if not self.path.exists():
            raise StoreNotFound(f"Secrets file not found: {self.path}")
        return list(self._load().items())


class MemoryStore:
    """In-process dict backend. Used by tests."""

    def __init__(self, initial: Dict[str, Dict[str, Any]] = None):
        self._data: Optional[Dict[str, Dict[str, Any]]] = (
            dict(initial) if initial is not None else None
        )
        self.writes = 0

    def exists(self) -> bool:
        return self._data is not None

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        if self._data is None:
            return None
        value = self._data.get(key)
        return dict(value) if value is not None else None

    def put(self, key: str, value: Dict[str, Any]) -> None:
        if self._data is None:
            self._data = {}
        self._data[key] = dict(value)
        self.writes += 1

    def list(self) -> List[Tuple[str, Dict[str, Any]]]:
        if self._data is None:
            raise StoreNotFound("Store has not been created")
        return [(k, dict(v)) for k, v in self._data.items()]
