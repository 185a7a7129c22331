"""Streaming content hashing"""

import hashlib
import re
from pathlib import Path
from typing import AsyncIterable, Union

import aiofiles

from ..utils.errors import StorageError, ValidationError

DEFAULT_CHUNK_SIZE = 64 * 1024
DIGEST_LENGTH = 64

_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")


def new_hasher() -> "hashlib._Hash":
    """Hash object used for every digest in the store (SHA-256)."""
    return hashlib.sha256()


def hash_bytes(data: bytes) -> str:
    """Digest of an in-memory byte string"""
    return hashlib.sha256(data).hexdigest()


async def hash_stream(chunks: AsyncIterable[bytes]) -> str:
    """Digest of an async stream of byte chunks"""
    hasher = new_hasher()
    async for chunk in chunks:
        hasher.update(chunk)
    return hasher.hexdigest()


async def iter_file(path: Union[str, Path], chunk_size: int = DEFAULT_CHUNK_SIZE):
    """Yield a file's content in chunks of at most chunk_size bytes."""
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            yield chunk


async def hash_file(path: Union[str, Path], chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Compute the SHA-256 digest of a file without loading it whole.

    Args:
        path: File to hash
        chunk_size: Read size in bytes

    Returns:
        Lowercase hex digest

    Raises:
        StorageError: The file could not be opened or read
    """
    try:
        return await hash_stream(iter_file(path, chunk_size))
    except OSError as e:
        raise StorageError("hash", str(path), cause=e) from e


def is_digest(value: str) -> bool:
    return isinstance(value, str) and bool(_DIGEST_RE.match(value))


def validate_digest(value: str) -> str:
    """Return value if it is a well-formed digest, else raise ValidationError."""
    if not is_digest(value):
        raise ValidationError("digest", value, f"must be {DIGEST_LENGTH} lowercase hex characters")
    return value
