"""
Invoice Archive Hub - Durable Stores

The DurableStore abstraction lets the archive core read attachment content,
persisted token bundles and write JSON sidecars without being tied to a
specific backend. Paths are opaque strings such as ``mail/<uid>/x.json``.

Implementations:
- LocalFileStore: files under a root directory
- MongoFileStore: documents in a Mongo collection (motor)
- InMemoryStore: dict-backed store for tests and dry runs
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union

from .errors import StorageError

logger = logging.getLogger(__name__)


Content = Union[bytes, str]


def _to_bytes(content: Content) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


class DurableStore(ABC):
    """Abstract key/value store for binary content keyed by path."""

    @abstractmethod
    async def read(self, path: str) -> bytes:
        """
        Return the content stored at ``path``.

        Raises:
            StorageError: if the path is missing or unreadable
        """
        pass

    @abstractmethod
    async def save(self, path: str, content: Content) -> None:
        """
        Store ``content`` at ``path``, replacing any previous content.

        Raises:
            StorageError: if the write fails
        """
        pass


class LocalFileStore(DurableStore):
    """Stores content as files below a root directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        relative = Path((path or "").lstrip("/"))
        if not relative.parts or ".." in relative.parts:
            raise StorageError(f"invalid storage path: {path!r}")
        return self.root / relative

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    async def read(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except OSError as e:
            raise StorageError(f"cannot read {path}: {e.strerror or e}")

    async def save(self, path: str, content: Content) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(self._write, target, _to_bytes(content))
        except OSError as e:
            raise StorageError(f"cannot write {path}: {e.strerror or e}")
        logger.debug("Saved %s (%s)", path, target)


class MongoFileStore(DurableStore):
    """
    Stores content in a Mongo collection as ``{path, content, updated_utc}``.

    Usage:
        db = AsyncIOMotorClient(MONGO_URL)[DB_NAME]
        store = MongoFileStore(db.archive_files)
    """

    def __init__(self, collection):
        self.collection = collection

    async def read(self, path: str) -> bytes:
        try:
            record = await self.collection.find_one({"path": path}, {"_id": 0, "content": 1})
        except Exception as e:
            raise StorageError(f"cannot read {path}: {str(e)}")
        if not record or record.get("content") is None:
            raise StorageError(f"cannot read {path}: not found")
        return bytes(record["content"])

    async def save(self, path: str, content: Content) -> None:
        try:
            await self.collection.update_one(
                {"path": path},
                {"$set": {
                    "path": path,
                    "content": _to_bytes(content),
                    "updated_utc": datetime.now(timezone.utc).isoformat()
                }},
                upsert=True
            )
        except Exception as e:
            raise StorageError(f"cannot write {path}: {str(e)}")


class InMemoryStore(DurableStore):
    """Dict-backed store."""

    def __init__(self, files: Optional[Dict[str, Content]] = None):
        self.files: Dict[str, bytes] = {
            path: _to_bytes(content) for path, content in (files or {}).items()
        }

    async def read(self, path: str) -> bytes:
        if path not in self.files:
            raise StorageError(f"cannot read {path}: not found")
        return self.files[path]

    async def save(self, path: str, content: Content) -> None:
        self.files[path] = _to_bytes(content)
