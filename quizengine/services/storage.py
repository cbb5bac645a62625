# quizengine/services/storage.py

"""
Namespaced key-value backends for the autosave store.

Backends raise on failure; ``AutosaveStore`` is the layer that catches,
logs and degrades.
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional
from urllib.parse import quote, unquote

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizengine.core.config import settings
from quizengine.core.exceptions import StorageUnavailableError
from quizengine.models.autosave import AutosaveEntry

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):

    def __init__(self, namespace: str):
        self.namespace = namespace

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        pass


class MemoryKeyValueStore(KeyValueStore):

    def __init__(self, namespace: str = settings.AUTOSAVE_NAMESPACE):
        super().__init__(namespace)
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)


class FileKeyValueStore(KeyValueStore):
    """One JSON-text file per key under ``<cache_dir>/<namespace>/``."""

    def __init__(self, cache_dir: str = settings.AUTOSAVE_DIR, namespace: str = settings.AUTOSAVE_NAMESPACE):
        super().__init__(namespace)
        self.root = Path(cache_dir) / namespace
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        # Keys contain ":" which some filesystems reject
        return self.root / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageUnavailableError(f"Cannot read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot write {path}: {e}") from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot delete {path}: {e}") from e

    def keys(self) -> List[str]:
        return [unquote(p.stem) for p in self.root.glob("*.json")]


class DatabaseKeyValueStore(KeyValueStore):
    """Rows in ``autosave_entries`` keyed by (namespace, key)."""

    def __init__(self, session_factory: Callable[[], Session], namespace: str = settings.AUTOSAVE_NAMESPACE):
        super().__init__(namespace)
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        db = self._session_factory()
        try:
            entry = db.get(AutosaveEntry, (self.namespace, key))
            return entry.value if entry else None
        except SQLAlchemyError as e:
            raise StorageUnavailableError(str(e)) from e
        finally:
            db.close()

    def set(self, key: str, value: str) -> None:
        db = self._session_factory()
        try:
            entry = db.get(AutosaveEntry, (self.namespace, key))
            if entry is None:
                db.add(AutosaveEntry(namespace=self.namespace, key=key, value=value))
            else:
                entry.value = value
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageUnavailableError(str(e)) from e
        finally:
            db.close()

    def delete(self, key: str) -> None:
        db = self._session_factory()
        try:
            (
                db.query(AutosaveEntry)
                .filter(AutosaveEntry.namespace == self.namespace, AutosaveEntry.key == key)
                .delete()
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageUnavailableError(str(e)) from e
        finally:
            db.close()

    def keys(self) -> List[str]:
        db = self._session_factory()
        try:
            rows = db.query(AutosaveEntry.key).filter(AutosaveEntry.namespace == self.namespace).all()
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            raise StorageUnavailableError(str(e)) from e
        finally:
            db.close()


def get_key_value_store(backend: Optional[str] = None) -> KeyValueStore:
    backend = backend or settings.AUTOSAVE_BACKEND
    logger.info(f"Using '{backend}' autosave backend")

    if backend == "memory":
        return MemoryKeyValueStore()
    elif backend == "file":
        return FileKeyValueStore()
    elif backend == "database":
        from quizengine.db.session import SessionLocal
        return DatabaseKeyValueStore(SessionLocal)
    else:
        raise NotImplementedError(f"Autosave backend '{backend}' not implemented")
