"""
Local file storage for uploaded videos.

Files are written under `VC_UPLOAD_DIR` with a generated name; the stored
path is opaque to everything else. Each read opens its own handle, so range
readers never share file position.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import aiofiles
import aiofiles.os
import structlog
from fastapi import UploadFile

from app.core.config import get_settings
from app.core.errors import NotFoundError, RangeNotSatisfiableError, StorageError, ValidationError

log = structlog.get_logger()

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class StoredFile:
    filename: str
    file_path: str
    content_type: str
    size: int


@dataclass(frozen=True)
class StreamRange:
    """Inclusive byte range within a file of known size."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, file_size: int) -> str:
        return f"bytes {self.start}-{self.end}/{file_size}"

    @classmethod
    def from_header(cls, range_header: str, file_size: int) -> "StreamRange":
        """Parse a single `bytes=start-end` or `bytes=-suffix` range.

        `end` defaults to the last byte and is clamped to it. Anything that
        cannot be satisfied against `file_size` raises RangeNotSatisfiableError.
        """
        value = range_header.strip()
        if not value.startswith("bytes=") or "," in value:
            raise RangeNotSatisfiableError(headers={"Content-Range": f"bytes */{file_size}"})
        start_str, sep, end_str = value[6:].partition("-")
        try:
            if not sep:
                raise ValueError(value)
            if start_str.strip():
                start = int(start_str)
                end = int(end_str) if end_str.strip() else file_size - 1
            else:
                suffix = int(end_str)
                if suffix <= 0:
                    raise ValueError(value)
                start = max(0, file_size - suffix)
                end = file_size - 1
        except ValueError:
            raise RangeNotSatisfiableError(headers={"Content-Range": f"bytes */{file_size}"})

        end = min(end, file_size - 1)
        if start < 0 or start >= file_size or end < start:
            raise RangeNotSatisfiableError(headers={"Content-Range": f"bytes */{file_size}"})
        return cls(start=start, end=end)


class LocalFileStorage:
    def __init__(self, root: str, max_bytes: int):
        self.root = root
        self.max_bytes = max_bytes

    async def save(self, upload: UploadFile) -> StoredFile:
        """Stream an upload to disk, enforcing the size limit as bytes arrive."""
        await aiofiles.os.makedirs(self.root, exist_ok=True)
        original = upload.filename or "video"
        _, ext = os.path.splitext(original)
        filename = f"{uuid.uuid4().hex}{ext.lower()}"
        path = os.path.join(self.root, filename)

        written = 0
        try:
            async with aiofiles.open(path, "wb") as out:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_bytes:
                        raise ValidationError(
                            f"File exceeds the maximum upload size of {self.max_bytes} bytes"
                        )
                    await out.write(chunk)
        except ValidationError:
            await self._discard(path)
            raise
        except OSError as e:
            await self._discard(path)
            log.error("storage.save_failed", path=path, error=str(e))
            raise StorageError("Could not store the uploaded file")

        return StoredFile(
            filename=original,
            file_path=path,
            content_type=upload.content_type or "application/octet-stream",
            size=written,
        )

    async def size(self, file_path: str) -> int:
        try:
            stat = await aiofiles.os.stat(file_path)
        except FileNotFoundError:
            raise NotFoundError("Video file not found")
        return stat.st_size

    async def iter_range(
        self, file_path: str, start: int = 0, length: Optional[int] = None
    ) -> AsyncIterator[bytes]:
        """Yield `length` bytes from `start` (to EOF when length is None)."""
        async with aiofiles.open(file_path, "rb") as f:
            await f.seek(start)
            remaining = length
            while remaining is None or remaining > 0:
                size = CHUNK_SIZE if remaining is None else min(CHUNK_SIZE, remaining)
                chunk = await f.read(size)
                if not chunk:
                    break
                if remaining is not None:
                    remaining -= len(chunk)
                yield chunk

    async def delete(self, file_path: str) -> None:
        """Remove a stored file. A file that is already gone is not an error."""
        try:
            await aiofiles.os.remove(file_path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Could not remove stored file: {e.strerror}")

    async def _discard(self, path: str) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass


_storage: LocalFileStorage | None = None


def get_storage() -> LocalFileStorage:
    """FastAPI dependency for the configured file storage."""
    global _storage
    if _storage is None:
        settings = get_settings()
        _storage = LocalFileStorage(settings.upload_dir, settings.max_upload_bytes)
    return _storage
