"""Integrity verification for acquired artifacts.

Verification only reports; it never repairs or re-downloads.
"""

import hashlib
import hmac
import logging
from pathlib import Path

from .exceptions import IntegrityError
from .schema import ArtifactSource
from .schema import BinaryArtifact

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def compute_sha256(path: Path) -> str:
    """Return the lowercase hex SHA-256 of a file, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def checksums_match(actual: str, expected: str) -> bool:
    """Compare two hex digests in constant time."""
    return hmac.compare_digest(actual.strip().lower().encode(), expected.strip().lower().encode())


def verify_artifact(path: Path, source: ArtifactSource) -> BinaryArtifact:
    """
    Hash an acquired file and check it against the source's checksum.

    Unverified sources (development branch builds) pass without comparison.

    Args:
        path: Downloaded or built file
        source: Source the file was acquired from

    Returns:
        BinaryArtifact with the computed checksum

    Raises:
        IntegrityError: If the computed checksum differs from the expected one
    """
    actual = compute_sha256(path)
    artifact = BinaryArtifact(path=path, sha256=actual, size=path.stat().st_size)

    expected = source.expected_checksum
    if expected is None:
        logger.debug(f"Skipping checksum verification for unverified {source.strategy} source {source.location}")
        return artifact

    if not checksums_match(actual, expected):
        raise IntegrityError(
            f"Checksum mismatch for {source.location}: expected {expected}, got {actual}",
            context={
                "location": source.location,
                "expected": expected,
                "actual": actual,
                "path": str(path),
            },
        )

    logger.debug(f"Verified {path.name} sha256={actual}")
    return artifact
