"""Content-addressable blob storage"""

import asyncio
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Union

import aiofiles
import aiofiles.os

from .hasher import DEFAULT_CHUNK_SIZE, hash_file, is_digest, new_hasher, validate_digest
from .layout import FILE_MODE
from ..utils.logging import get_logger
from ..utils.errors import BlobNotFoundError, StorageError

logger = get_logger(__name__)


class BlobStore:
    """Content-addressable storage of raw file contents

    Each unique content is stored once as ``<blobs_path>/<digest>``.
    Blobs are written through a temporary file and renamed into place,
    and are never modified or deleted afterwards.
    """

    def __init__(self, blobs_path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """Initialize blob store

        Args:
            blobs_path: Directory holding one file per digest
            chunk_size: Read/write chunk size in bytes
        """
        self.blobs_path = Path(blobs_path)
        self.chunk_size = chunk_size

        self._stats = {
            "puts": 0,
            "blobs_written": 0,
            "bytes_written": 0,
            "dedup_hits": 0,
        }

    def path_for(self, digest: str) -> Path:
        """Filesystem location of a blob"""
        return self.blobs_path / validate_digest(digest)

    async def exists(self, digest: str) -> bool:
        return await aiofiles.os.path.isfile(self.path_for(digest))

    async def put(self, path: Union[str, Path]) -> str:
        """Store a file's content and return its digest

        Storing content that is already present is a no-op.

        Args:
            path: Source file

        Returns:
            SHA-256 digest of the stored content

        Raises:
            StorageError: Source unreadable or destination unwritable
        """
        self._stats["puts"] += 1
        digest = await hash_file(path, self.chunk_size)

        if await self.exists(digest):
            self._stats["dedup_hits"] += 1
            logger.debug("blob_dedup_hit", digest=digest, path=str(path))
            return digest

        return await self._write(path, digest)

    async def get(self, digest: str) -> bytes:
        """Return the full content stored under digest

        Raises:
            BlobNotFoundError: No blob for digest
        """
        async with self.open(digest) as f:
            return await f.read()

    @asynccontextmanager
    async def open(self, digest: str):
        """Open a blob for streaming reads

        Raises:
            BlobNotFoundError: No blob for digest
            StorageError: Blob exists but cannot be read
        """
        blob_path = self.path_for(digest)
        try:
            f = await aiofiles.open(blob_path, "rb")
        except FileNotFoundError as e:
            raise BlobNotFoundError(digest) from e
        except OSError as e:
            raise StorageError("open_blob", str(blob_path), cause=e) from e

        try:
            yield f
        finally:
            await f.close()

    async def list_digests(self) -> List[str]:
        """Digests of every stored blob, sorted"""
        if not await aiofiles.os.path.isdir(self.blobs_path):
            return []
        try:
            names = await aiofiles.os.listdir(self.blobs_path)
        except OSError as e:
            raise StorageError("list_blobs", str(self.blobs_path), cause=e) from e
        return sorted(name for name in names if is_digest(name))

    async def verify_integrity(self) -> List[str]:
        """Check every blob against its name

        Returns:
            Digests whose stored bytes no longer hash to the digest
        """
        corrupted = []
        digests = await self.list_digests()

        for digest in digests:
            actual = await hash_file(self.path_for(digest), self.chunk_size)
            if actual != digest:
                logger.error("blob_corrupted", digest=digest, actual=actual)
                corrupted.append(digest)

        if corrupted:
            logger.warning(
                "blob_integrity_check_failed",
                corrupted_count=len(corrupted),
                total_count=len(digests)
            )
        else:
            logger.info("blob_integrity_check_passed", total_count=len(digests))

        return corrupted

    def get_stats(self) -> Dict[str, Any]:
        """Get storage statistics for this instance"""
        return dict(self._stats)

    async def _write(self, path: Union[str, Path], digest: str) -> str:
        """Copy path into the store, keyed by the digest of the copied bytes"""
        try:
            await aiofiles.os.makedirs(self.blobs_path, exist_ok=True)
            fd, temp_name = await asyncio.to_thread(
                tempfile.mkstemp, prefix=".tmp-", dir=self.blobs_path
            )
            os.close(fd)
        except OSError as e:
            raise StorageError("create_blob", str(self.blobs_path), cause=e) from e

        temp_path = Path(temp_name)
        hasher = new_hasher()
        size = 0
        try:
            try:
                async with aiofiles.open(path, "rb") as src, aiofiles.open(temp_path, "wb") as dst:
                    while True:
                        chunk = await src.read(self.chunk_size)
                        if not chunk:
                            break
                        hasher.update(chunk)
                        size += len(chunk)
                        await dst.write(chunk)
            except OSError as e:
                raise StorageError("copy_blob", str(path), cause=e) from e

            copied = hasher.hexdigest()
            if copied != digest:
                # Source changed between hashing and copying
                logger.warning("blob_source_changed", path=str(path), hashed=digest, copied=copied)
                digest = copied

            blob_path = self.path_for(digest)
            if await aiofiles.os.path.exists(blob_path):
                self._stats["dedup_hits"] += 1
                return digest

            try:
                await asyncio.to_thread(os.chmod, temp_path, FILE_MODE)
                await aiofiles.os.replace(temp_path, blob_path)
            except OSError as e:
                raise StorageError("store_blob", str(blob_path), cause=e) from e
        finally:
            if await aiofiles.os.path.exists(temp_path):
                await aiofiles.os.remove(temp_path)

        self._stats["blobs_written"] += 1
        self._stats["bytes_written"] += size

        logger.debug("blob_stored", digest=digest, size=size, path=str(path))
        return digest
