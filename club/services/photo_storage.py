"""
Photo storage

The database only keeps photo keys and storage references; the bytes live in
an object store behind the PhotoStorage protocol. LocalPhotoStorage keeps
them as files under Config.PHOTO_STORAGE_DIR.
"""

import asyncio
import re
from pathlib import Path
from typing import Optional, Protocol, Union

from club.config import Config
from club.utils.exceptions import InvalidInputError, NotFoundError
from club.utils.logger import setup_logger

logger = setup_logger(__name__)

PHOTO_KEY_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]{0,199}$')


def validate_photo_key(photo_key: str) -> str:
    """Keys become file names, so only a conservative character set is allowed"""
    if not photo_key or not PHOTO_KEY_PATTERN.match(photo_key) or '..' in photo_key:
        raise InvalidInputError(
            f"Invalid photo key {photo_key!r}",
            "❌ Photo names may only contain letters, digits, '.', '_' and '-'."
        )
    return photo_key


class PhotoStorage(Protocol):
    """Object storage collaborator"""

    async def put(self, photo_key: str, data: bytes) -> str:
        """Store the bytes and return a storage reference"""
        ...

    async def get(self, storage_ref: str) -> bytes:
        ...

    async def delete(self, storage_ref: str) -> None:
        ...


class LocalPhotoStorage:
    """Filesystem-backed PhotoStorage"""

    def __init__(self, root: Optional[Union[str, Path]] = None):
        self.root = Path(root or Config.PHOTO_STORAGE_DIR)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, storage_ref: str) -> Path:
        return self.root / validate_photo_key(storage_ref)

    async def put(self, photo_key: str, data: bytes) -> str:
        path = self._path(photo_key)
        await asyncio.to_thread(path.write_bytes, data)
        logger.debug(f"Stored photo {photo_key} ({len(data)} bytes)")
        return photo_key

    async def get(self, storage_ref: str) -> bytes:
        path = self._path(storage_ref)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise NotFoundError(f"Photo blob {storage_ref} missing", "❌ Photo not found.")

    async def delete(self, storage_ref: str) -> None:
        path = self._path(storage_ref)
        await asyncio.to_thread(path.unlink, True)
        logger.debug(f"Deleted photo blob {storage_ref}")
