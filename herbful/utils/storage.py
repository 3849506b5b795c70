"""
Storage utility.

Backends for the three things the back-office persists:
- The collection tree (treatments, reviews, symptom index)
- Treatment images (blob store)
- Local admin state (credentials and session)
"""

import copy
import json
import os
import shutil
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

from herbful.errors import UpstreamReadFailed, UpstreamWriteFailed

logger = logging.getLogger(__name__)


def split_path(path: str) -> List[str]:
    """Split a slash-separated tree path into its keys."""
    return [part for part in path.split("/") if part]


def prune_empty(value: Any) -> Any:
    """
    Drop None values and empty containers, recursively.

    Returns None when nothing is left, matching how the hosted database
    treats nulls and empty objects as absent.
    """
    if isinstance(value, dict):
        cleaned = {}
        for key, child in value.items():
            child = prune_empty(child)
            if child is not None:
                cleaned[str(key)] = child
        return cleaned or None
    if isinstance(value, list):
        cleaned_list = [prune_empty(child) for child in value]
        cleaned_list = [child for child in cleaned_list if child is not None]
        return cleaned_list or None
    return value


class CollectionStore(ABC):
    """
    Tree-path read/write access to JSON-compatible values.

    No query capability is assumed: callers read whole subtrees and
    filter client-side.
    """

    @abstractmethod
    def get(self, path: str) -> Optional[Any]:
        """Return the value at ``path``, or None when nothing is stored there."""

    @abstractmethod
    def set(self, path: str, value: Any) -> None:
        """Overwrite the value at ``path``. None or an empty container deletes it."""

    @abstractmethod
    def update(self, path: str, patch: Dict[str, Any]) -> None:
        """
        Write several children of ``path`` at once.

        Keys may be nested child paths (``"a/b"``). Children not named in
        the patch are left untouched; a None value deletes that child.
        """

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove the value at ``path``. Deleting an absent path is a no-op."""

    def exists(self, path: str) -> bool:
        return self.get(path) is not None


class TreeStore(CollectionStore):
    """
    In-memory collection tree.

    Values are deep-copied on the way in and out so callers never share
    structure with the stored tree.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._tree: Dict[str, Any] = prune_empty(copy.deepcopy(data or {})) or {}
        self._lock = threading.RLock()

    def get(self, path: str) -> Optional[Any]:
        with self._lock:
            node: Any = self._tree
            for key in split_path(path):
                if not isinstance(node, dict) or key not in node:
                    return None
                node = node[key]
            return copy.deepcopy(node) if node != {} else None

    def set(self, path: str, value: Any) -> None:
        with self._lock:
            previous = copy.deepcopy(self._tree)
            self._write(path, value)
            self._commit(previous)

    def update(self, path: str, patch: Dict[str, Any]) -> None:
        with self._lock:
            previous = copy.deepcopy(self._tree)
            for child, value in patch.items():
                self._write(f"{path}/{child}", value)
            self._commit(previous)

    def delete(self, path: str) -> None:
        with self._lock:
            previous = copy.deepcopy(self._tree)
            self._write(path, None)
            self._commit(previous)

    def _commit(self, previous: Dict[str, Any]) -> None:
        # A failed persist leaves the tree as it was before the write
        try:
            self._changed()
        except UpstreamWriteFailed:
            self._tree = previous
            raise

    def _write(self, path: str, value: Any) -> None:
        keys = split_path(path)
        value = prune_empty(copy.deepcopy(value))

        if not keys:
            self._tree = value if isinstance(value, dict) else {}
            return

        if value is None:
            self._remove(keys)
            return

        node = self._tree
        for key in keys[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[keys[-1]] = value

    def _remove(self, keys: List[str]) -> None:
        # Walk down remembering parents so emptied branches can be pruned
        trail = []
        node: Any = self._tree
        for key in keys[:-1]:
            if not isinstance(node, dict) or key not in node:
                return
            trail.append((node, key))
            node = node[key]
        if not isinstance(node, dict) or keys[-1] not in node:
            return
        del node[keys[-1]]
        for parent, key in reversed(trail):
            if parent[key]:
                break
            del parent[key]

    def _changed(self) -> None:
        """Hook for subclasses that persist the tree."""

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._tree)


class JsonFileStore(TreeStore):
    """
    Collection tree persisted to a single JSON file.

    Every write rewrites the file through a temp file and an atomic
    rename, keeping the previous version as ``<file>.backup``.
    """

    def __init__(self, file_path: str):
        """
        Load the tree from disk or start empty.

        Args:
            file_path: Path to the JSON database file

        Raises:
            UpstreamReadFailed: If the file and its backup are both unreadable
        """
        self.file_path = file_path
        super().__init__()

        parent = os.path.dirname(file_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        if os.path.exists(file_path):
            self._tree = self._load(file_path)
        else:
            logger.info(f"No database file at {file_path}, starting empty")

    def _load(self, path: str) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("database root must be a JSON object")
            logger.info(f"Loaded database from {path}")
            return prune_empty(data) or {}
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load database {path}: {e}")
            return self._restore_from_backup(e)

    def _restore_from_backup(self, cause: Exception) -> Dict[str, Any]:
        backup_path = f"{self.file_path}.backup"
        if not os.path.exists(backup_path):
            raise UpstreamReadFailed(
                f"Database file {self.file_path} is unreadable and has no backup",
                details={"path": self.file_path, "cause": str(cause)}
            )

        logger.warning(f"Restoring database from backup: {backup_path}")
        try:
            with open(backup_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            shutil.copy(backup_path, self.file_path)
        except (OSError, ValueError) as e:
            raise UpstreamReadFailed(
                f"Database backup {backup_path} is unreadable",
                details={"path": backup_path, "cause": str(e)}
            )
        return prune_empty(data) if isinstance(data, dict) else {}

    def _changed(self) -> None:
        temp_path = f"{self.file_path}.tmp"
        try:
            if os.path.exists(self.file_path):
                shutil.copy(self.file_path, f"{self.file_path}.backup")
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(self._tree, f, indent=2)
            os.replace(temp_path, self.file_path)
            logger.debug(f"Database saved to {self.file_path}")
        except OSError as e:
            logger.error(f"Failed to save database: {e}")
            try:
                if os.path.isfile(temp_path):
                    os.remove(temp_path)
            except OSError as cleanup_error:
                logger.warning(f"Could not remove {temp_path}: {cleanup_error}")
            raise UpstreamWriteFailed(
                f"Failed to write database file {self.file_path}",
                details={"path": self.file_path, "cause": str(e)}
            )


class BlobStore(ABC):
    """Binary object storage used for treatment images."""

    @abstractmethod
    def put(self, data: bytes, path: str, content_type: str) -> str:
        """Store ``data`` under ``path`` and return a URL referencing it."""

    @abstractmethod
    def delete(self, url: str) -> None:
        """
        Delete the object behind ``url``.

        URLs that do not belong to this store are ignored with a warning.
        """


class LocalBlobStore(BlobStore):
    """
    Blob store backed by a local directory.

    Objects are addressed with ``file://`` URLs.
    """

    def __init__(self, root: str):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initialized LocalBlobStore at {self.root}")

    def put(self, data: bytes, path: str, content_type: str) -> str:
        target = self.root.joinpath(*split_path(path))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise UpstreamWriteFailed(
                f"Failed to store blob {path}",
                details={"path": path, "cause": str(e)}
            )
        logger.info(f"Stored {len(data)} bytes ({content_type}) at {target}")
        return target.as_uri()

    def delete(self, url: str) -> None:
        target = self._path_for(url)
        if target is None:
            logger.warning(f"URL is not a local blob URL: {url}")
            return
        try:
            target.unlink()
        except FileNotFoundError:
            logger.debug(f"Blob already gone: {target}")
        except OSError as e:
            raise UpstreamWriteFailed(
                f"Failed to delete blob {target}",
                details={"url": url, "cause": str(e)}
            )

    def _path_for(self, url: str) -> Optional[Path]:
        if not url or not isinstance(url, str):
            return None
        parsed = urlparse(url)
        if parsed.scheme != "file":
            return None
        target = Path(unquote(parsed.path)).resolve()
        if self.root not in target.parents:
            return None
        return target


class LocalStateStore:
    """
    Small JSON records under fixed keys, one file per key.

    Stands in for browser-local storage: the admin credentials and the
    current session live here.
    """

    def __init__(self, state_dir: str):
        self.state_dir = state_dir
        os.makedirs(state_dir, exist_ok=True)

    def _file_for(self, key: str) -> str:
        return os.path.join(self.state_dir, f"{key}.json")

    def get_item(self, key: str) -> Optional[Dict]:
        """
        Load the record stored under ``key``.

        Returns:
            The decoded record, or None if absent. Corrupt records are
            removed and reported as absent.
        """
        path = self._file_for(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Discarding unreadable state record {key}: {e}")
            self.remove_item(key)
            return None
        if not isinstance(data, dict):
            logger.warning(f"Discarding malformed state record {key}")
            self.remove_item(key)
            return None
        return data

    def set_item(self, key: str, value: Dict) -> None:
        path = self._file_for(key)
        temp_path = f"{path}.tmp"
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2)
            os.replace(temp_path, path)
        except OSError as e:
            raise UpstreamWriteFailed(
                f"Failed to write state record {key}",
                details={"key": key, "cause": str(e)}
            )

    def remove_item(self, key: str) -> None:
        try:
            os.remove(self._file_for(key))
        except FileNotFoundError:
            pass
