"""Install pipeline - resolve, acquire, prepare, register, accept.

Stages run once, in order, with no retries. The first failure aborts the
install and surfaces as a FormulaError naming its stage.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict

from .acceptance import verify_installation
from .caveats import render_caveats
from .exceptions import AcceptanceError
from .exceptions import AcquisitionError
from .exceptions import DirectoryError
from .exceptions import FormulaError
from .exceptions import ReceiptError
from .exceptions import RegistrationError
from .exceptions import ResolutionError
from .installer import install_binary
from .lock import InstallReceipt
from .preparer import prepare_directories
from .protocols import BuilderProtocol
from .protocols import CommandRunnerProtocol
from .protocols import DownloaderProtocol
from .resolver import ArtifactResolver
from .schema import AcquisitionStrategy
from .schema import ArtifactSource
from .schema import BinaryArtifact
from .schema import FormulaManifest
from .schema import InstallationLayout
from .schema import Platform
from .schema import ServiceDescriptor
from .service import build_service_descriptor
from .sources import SubprocessRunner

logger = logging.getLogger(__name__)


class InstallResult(BaseModel):
    """Outcome of a successful install."""

    model_config = ConfigDict(frozen=True)

    source: ArtifactSource
    artifact: BinaryArtifact
    layout: InstallationLayout
    descriptor: ServiceDescriptor
    caveats: str
    unverified: bool


@contextmanager
def _stage(name: str, error_cls: type[FormulaError]) -> Iterator[None]:
    """Log a stage and wrap unexpected exceptions in the stage's error type."""
    logger.info(f"[{name}] starting")
    try:
        yield
    except FormulaError as e:
        logger.error(f"{e}")
        raise
    except Exception as e:
        logger.error(f"[{name}] failed: {e}")
        raise error_cls(f"{type(e).__name__}: {e}", context={"stage": name}) from e


async def run_install(
    manifest: FormulaManifest,
    platform: Platform,
    strategy: AcquisitionStrategy,
    prefix: Path,
    downloader: DownloaderProtocol,
    builder: BuilderProtocol | None = None,
    runner: CommandRunnerProtocol | None = None,
    receipt: InstallReceipt | None = None,
) -> InstallResult:
    """
    Run the whole install for one platform and strategy.

    Args:
        manifest: Release manifest
        platform: Target platform
        strategy: Acquisition strategy (never substituted)
        prefix: Installation prefix (app policy)
        downloader: Fetches binaries and source tarballs
        builder: Compiles source (required for BRANCH and TAG)
        runner: Runs the acceptance commands (defaults to SubprocessRunner)
        receipt: Optional receipt updated after acceptance passes

    Returns:
        InstallResult

    Raises:
        FormulaError: Subclass naming the failed stage
    """
    runner = runner or SubprocessRunner()

    with _stage("resolve", ResolutionError):
        layout = InstallationLayout.from_prefix(prefix, manifest.name, manifest.version)
        source = ArtifactResolver(manifest).resolve(platform, strategy)

    with _stage("acquire", AcquisitionError):
        artifact = await install_binary(source, layout.binary_path, downloader, builder)

    with _stage("prepare", DirectoryError):
        prepare_directories(layout)

    with _stage("register", RegistrationError):
        descriptor = build_service_descriptor(layout)

    with _stage("accept", AcceptanceError):
        await verify_installation(layout, manifest.name, manifest.version, runner)

    if receipt is not None:
        with _stage("record", ReceiptError):
            receipt.record(
                name=manifest.name,
                version=manifest.version,
                strategy=str(strategy),
                source=source.location,
                sha256=artifact.sha256,
                platform=platform.slug,
                path=layout.binary_path,
            )

    logger.info(f"Successfully installed {manifest.name} {manifest.version} ({strategy}) for {platform}")
    return InstallResult(
        source=source,
        artifact=artifact,
        layout=layout,
        descriptor=descriptor,
        caveats=render_caveats(manifest, layout, os_name=platform.os),
        unverified=not source.verified,
    )
