# src/claimcheck_e2e/payload.py

"""
Random payload generation and the digest used as the round-trip oracle.

Payloads are sized well above the 256 KiB SNS/SQS message ceiling (and the
10 MB API Gateway limit) so a passing run proves the object travelled by
reference, not by value.
"""

import hashlib
import logging
import os
import secrets
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Optional, Union

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1 MiB
MIN_PAYLOAD_BYTES = 15 * CHUNK_SIZE
MAX_PAYLOAD_BYTES = 20 * CHUNK_SIZE


def _new_hasher():
    # Equality oracle only; matches the S3 ETag of a single-part upload.
    return hashlib.md5(usedforsecurity=False)


def compute_digest(source: Union[bytes, BinaryIO]) -> str:
    """
    Hex digest of *source*. Streams file-like objects in chunks so a
    downloaded body never has to be held in memory twice.
    """
    hasher = _new_hasher()
    if isinstance(source, (bytes, bytearray, memoryview)):
        hasher.update(source)
    else:
        while chunk := source.read(CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.hexdigest()


@dataclass
class Payload:
    """Random bytes plus their digest; the digest is fixed at creation."""

    data: bytes = field(repr=False)
    digest: str
    path: Optional[Path] = None

    @property
    def size(self) -> int:
        return len(self.data)

    def open(self) -> BinaryIO:
        """Opens the on-disk copy for a streaming upload."""
        if self.path is None:
            raise ValueError("Payload has not been written to disk")
        return open(self.path, "rb")

    def discard(self) -> None:
        """Removes the temporary file, if any."""
        if self.path is not None:
            self.path.unlink(missing_ok=True)
            self.path = None


def _write_temp(data: bytes, directory: Optional[Union[str, Path]]) -> Path:
    fd, name = tempfile.mkstemp(prefix="claimcheck-", suffix=".bin", dir=directory)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    return Path(name)


def generate_payload_of_size(size: int, directory: Optional[Union[str, Path]] = None) -> Payload:
    """Generates *size* cryptographically random bytes, hashes them once and spills them to disk."""
    if size < 0:
        raise ValueError("size must be non-negative")
    data = os.urandom(size)
    payload = Payload(data=data, digest=compute_digest(data), path=_write_temp(data, directory))
    logger.info(
        "Generated payload",
        extra={"size": size, "digest": payload.digest, "path": str(payload.path)},
    )
    return payload


def generate_payload(
    min_size: int = MIN_PAYLOAD_BYTES,
    max_size: int = MAX_PAYLOAD_BYTES,
    directory: Optional[Union[str, Path]] = None,
) -> Payload:
    """Generates a payload whose size is drawn uniformly from [min_size, max_size]."""
    if min_size < 0:
        raise ValueError("min_size must be non-negative")
    if min_size > max_size:
        raise ValueError(f"min_size ({min_size}) must not exceed max_size ({max_size})")
    size = min_size + secrets.randbelow(max_size - min_size + 1)
    return generate_payload_of_size(size, directory=directory)
