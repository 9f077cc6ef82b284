# Directory: utils
# Filename: persistence.py

import logging
import os
import tempfile
from typing import Dict, Optional

from controllers.errors import PersistenceError

_persistence_logger = logging.getLogger("ConfigStore.Storage")


class KeyValueStore:
    """
    Opaque string key-value storage used by the node's repositories.

    Implementations must make `set` and `delete` durable before returning so a
    restart never observes state older than the last completed write.
    """
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Process-local store, used by tests and throwaway sessions."""
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data.keys())


class JsonFileStore(KeyValueStore):
    """
    Stores each key as its own file (`<key>.json`) inside `directory`.

    The value is written verbatim; callers are responsible for serializing
    to JSON. Writes go through a temporary file and `os.replace` so a reader
    sees either the old record or the new one.
    """
    def __init__(self, directory: str):
        self.directory = directory

    def _path_for(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            _persistence_logger.warning(f"Could not read '{path}': {e}")
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    f.write(value)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"Could not write '{path}': {e}") from e
        _persistence_logger.debug(f"Wrote record '{key}' to {path}")

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise PersistenceError(f"Could not delete '{path}': {e}") from e
        _persistence_logger.debug(f"Deleted record '{key}' ({path})")
