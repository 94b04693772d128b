"""Artifact resolver - Map (platform, strategy) to exactly one artifact source.

The caller's strategy choice always wins: the resolver never falls back from
one strategy to another. Resolution is a pure table lookup, so every
supported pair is deterministic and enumerable.
"""

import logging
import platform as host

from .exceptions import ResolutionError
from .schema import ALL_PLATFORMS
from .schema import AcquisitionStrategy
from .schema import Architecture
from .schema import ArtifactSource
from .schema import FormulaManifest
from .schema import OperatingSystem
from .schema import Platform

logger = logging.getLogger(__name__)

_SYSTEMS = {
    "darwin": OperatingSystem.DARWIN,
    "linux": OperatingSystem.LINUX,
}

_MACHINES = {
    "x86_64": Architecture.AMD64,
    "amd64": Architecture.AMD64,
    "arm64": Architecture.ARM64,
    "aarch64": Architecture.ARM64,
    "armv6l": Architecture.ARM,
    "armv7l": Architecture.ARM,
    "armv8l": Architecture.ARM,
    "arm": Architecture.ARM,
}


# Release asset suffix per platform; ARM32 and ARM64 on linux are distinct assets.
RELEASE_ASSETS: dict[Platform, str] = {platform: f"{platform.os}-{platform.arch}" for platform in ALL_PLATFORMS}


def release_asset_name(project: str, platform: Platform) -> str:
    """Release file name for a platform, e.g. ``sqlite-otel-linux-arm``."""
    return f"{project}-{RELEASE_ASSETS[platform]}"


def detect_platform(system: str | None = None, machine: str | None = None) -> Platform:
    """Detect the host platform.

    Args:
        system: Override for ``platform.system()`` (testing, cross-installs)
        machine: Override for ``platform.machine()``

    Raises:
        ResolutionError: If the host is not a supported platform
    """
    system = (system or host.system()).lower()
    machine = (machine or host.machine()).lower()

    os_name = _SYSTEMS.get(system)
    arch = _MACHINES.get(machine)
    if os_name is None or arch is None:
        raise ResolutionError(
            f"Unsupported host platform: {system}/{machine}",
            context={"system": system, "machine": machine},
        )
    try:
        return Platform(os=os_name, arch=arch)
    except ValueError as e:
        raise ResolutionError(
            f"Unsupported host platform: {system}/{machine}",
            context={"system": system, "machine": machine},
        ) from e


class ArtifactResolver:
    """
    Resolve artifact sources from an app-provided release manifest.

    Build strategies (BRANCH, TAG) use platform-independent source tarballs.
    RELEASE uses one prebuilt binary per platform, named through
    ``release_asset_name`` so distinct architectures never share an asset.
    """

    def __init__(self, manifest: FormulaManifest):
        """Initialize resolver with a loaded manifest.

        Example:
            >>> resolver = ArtifactResolver(FormulaManifest.from_toml(Path("formula.toml")))
            >>> source = resolver.resolve(Platform.parse("darwin-arm64"), AcquisitionStrategy.RELEASE)
        """
        self.manifest = manifest

    def resolve(self, platform: Platform, strategy: AcquisitionStrategy) -> ArtifactSource:
        """
        Resolve a platform and strategy to an artifact source.

        Args:
            platform: Target platform
            strategy: Acquisition strategy chosen by the caller

        Returns:
            The single ArtifactSource for this pair

        Raises:
            ResolutionError: If the manifest has no source for this pair
        """
        context = {"platform": platform.slug, "strategy": str(strategy)}

        if strategy == AcquisitionStrategy.BRANCH:
            if not self.manifest.branch_url:
                raise ResolutionError("Manifest declares no development branch source", context=context)
            source = ArtifactSource(strategy=strategy, location=self.manifest.branch_url)

        elif strategy == AcquisitionStrategy.TAG:
            if not self.manifest.tag_url or not self.manifest.tag_sha256:
                raise ResolutionError("Manifest declares no tagged source tarball", context=context)
            source = ArtifactSource(
                strategy=strategy,
                location=self.manifest.tag_url,
                expected_checksum=self.manifest.tag_sha256,
            )

        elif strategy == AcquisitionStrategy.RELEASE:
            checksum = self.manifest.release_checksums.get(platform.slug)
            if not self.manifest.release_url_template or checksum is None:
                raise ResolutionError(
                    f"No prebuilt release of {self.manifest.name} {self.manifest.version} for {platform}",
                    context=context,
                )
            asset = release_asset_name(self.manifest.project, platform)
            try:
                location = self.manifest.release_url_template.format(version=self.manifest.version, asset=asset)
            except (KeyError, IndexError, ValueError) as e:
                raise ResolutionError(
                    f"Invalid release url_template {self.manifest.release_url_template!r}: {e!r}",
                    context={**context, "url_template": self.manifest.release_url_template},
                ) from e
            source = ArtifactSource(
                strategy=strategy,
                location=location,
                expected_checksum=checksum,
                asset_name=asset,
            )

        else:
            raise ResolutionError(f"Unknown acquisition strategy: {strategy}", context=context)

        logger.debug(f"Resolved {platform}/{strategy} to {source.location}")
        return source

    def supported(self) -> list[tuple[Platform, AcquisitionStrategy]]:
        """List every (platform, strategy) pair this manifest can resolve."""
        pairs = []
        for platform in ALL_PLATFORMS:
            for strategy in AcquisitionStrategy:
                try:
                    self.resolve(platform, strategy)
                except ResolutionError:
                    continue
                pairs.append((platform, strategy))
        return pairs
