"""
Content Fingerprinting
======================
Stable SHA-256 fingerprints of raw document bytes. The fingerprint is the
exact-duplicate key across every intake path.
"""

import hashlib
from pathlib import Path
from typing import Union

import aiofiles

DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1MB


def compute_fingerprint(data: bytes) -> str:
    """Return the lowercase SHA-256 hex digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


async def fingerprint_file(
    file_path: Union[str, Path],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> str:
    """Fingerprint a local file without loading it into memory at once."""
    digest = hashlib.sha256()
    async with aiofiles.open(file_path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()
