"""Binary installation mechanism (protocol-based).

Apps provide the downloader and builder; the installer decides the order of
operations and owns all intermediate state.

Process:
1. Acquire into a staging directory beside the canonical binary
2. Verify the downloaded bytes (skipped only for development branch builds)
3. Build from source for the build strategies
4. Atomically replace the canonical binary under the install mutex

Nothing reaches the canonical path unless every earlier step succeeded.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path

from .exceptions import AcquisitionError
from .exceptions import FormulaError
from .lock import install_mutex
from .protocols import BuilderProtocol
from .protocols import DownloaderProtocol
from .schema import AcquisitionStrategy
from .schema import ArtifactSource
from .schema import BinaryArtifact
from .sources import extract_source_tarball
from .verifier import compute_sha256
from .verifier import verify_artifact

logger = logging.getLogger(__name__)

BINARY_MODE = 0o755


def _mutex_path(binary_path: Path) -> Path:
    return binary_path.parent / f".{binary_path.name}.lock"


def place_binary(built: Path, binary_path: Path) -> BinaryArtifact:
    """
    Move an acquired executable onto the canonical path.

    Copies to a temp file in the target directory, marks it executable, then
    renames over any previous version. Serialized with ``install_mutex``.

    Args:
        built: Verified or freshly built executable
        binary_path: Canonical binary path

    Returns:
        BinaryArtifact describing the placed binary
    """
    binary_path.parent.mkdir(parents=True, exist_ok=True)

    with install_mutex(_mutex_path(binary_path)):
        fd, tmp_name = tempfile.mkstemp(dir=binary_path.parent, prefix=f".{binary_path.name}.", suffix=".tmp")
        os.close(fd)
        try:
            shutil.copyfile(built, tmp_name)
            os.chmod(tmp_name, BINARY_MODE)
            os.replace(tmp_name, binary_path)
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)

    logger.info(f"Placed {binary_path}")
    return BinaryArtifact(path=binary_path, sha256=compute_sha256(binary_path), size=binary_path.stat().st_size)


async def _acquire(
    source: ArtifactSource,
    staging: Path,
    downloader: DownloaderProtocol,
    builder: BuilderProtocol | None,
) -> Path:
    """Download (and for build strategies, build) into staging; return the executable."""
    if source.strategy == AcquisitionStrategy.RELEASE:
        downloaded = staging / (source.asset_name or "release-binary")
        await downloader.download(source.location, downloaded)
        verify_artifact(downloaded, source)
        return downloaded

    if builder is None:
        raise AcquisitionError(
            f"A builder is required for {source.strategy} installs",
            context={"strategy": str(source.strategy)},
        )

    if source.strategy == AcquisitionStrategy.BRANCH:
        logger.warning(
            f"Installing unverified development build from {source.location}; checksum verification is skipped"
        )

    tarball = staging / "source.tar.gz"
    await downloader.download(source.location, tarball)
    verify_artifact(tarball, source)

    source_root = extract_source_tarball(tarball, staging / "src")
    return await builder.build(source_root)


async def install_binary(
    source: ArtifactSource,
    binary_path: Path,
    downloader: DownloaderProtocol,
    builder: BuilderProtocol | None = None,
) -> BinaryArtifact:
    """
    Acquire, verify, and place the binary for a resolved source.

    Args:
        source: Resolved artifact source
        binary_path: Canonical binary path (overwritten on success)
        downloader: Fetches release binaries and source tarballs
        builder: Compiles source trees (required for BRANCH and TAG)

    Returns:
        BinaryArtifact for the installed binary

    Raises:
        AcquisitionError: If download or build fails
        IntegrityError: If the downloaded bytes do not match the declared checksum

    Example:
        >>> artifact = await install_binary(
        ...     source=resolver.resolve(platform, AcquisitionStrategy.RELEASE),
        ...     binary_path=layout.binary_path,
        ...     downloader=HttpDownloader(),
        ... )
    """
    binary_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Installing {binary_path.name} from {source.strategy} source {source.location}")

    try:
        # Same filesystem as the target so the final rename is atomic.
        with tempfile.TemporaryDirectory(dir=binary_path.parent, prefix=f".{binary_path.name}-staging-") as tmpdir:
            acquired = await _acquire(source, Path(tmpdir), downloader, builder)
            # Blocking file I/O and the mutex wait run off the event loop. Once started,
            # placement finishes before the staging directory is removed.
            placing = asyncio.ensure_future(asyncio.to_thread(place_binary, acquired, binary_path))
            try:
                return await asyncio.shield(placing)
            except asyncio.CancelledError:
                await asyncio.wait({placing})
                raise
    except FormulaError:
        raise
    except OSError as e:
        raise AcquisitionError(f"Failed to install {binary_path.name}: {e}", context={"path": str(binary_path)}) from e
