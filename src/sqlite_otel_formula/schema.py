"""Formula schema - platforms, artifact sources, layouts, and the release manifest.

The release manifest is a TOML file and is the single data-driven table the
resolver reads: one source tarball per build strategy and one checksum per
release platform.
"""

import re
import tomllib
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError
from pydantic import field_validator
from pydantic import model_validator

from .exceptions import ManifestError

NO_CHECK = "no_check"

_SHA256_RE = re.compile(r"^[0-9a-f]{64}$")


def is_sha256_hex(value: str) -> bool:
    """Return True if value is a lowercase hex SHA-256 digest."""
    return bool(_SHA256_RE.match(value))


class OperatingSystem(StrEnum):
    DARWIN = "darwin"
    LINUX = "linux"


class Architecture(StrEnum):
    AMD64 = "amd64"
    ARM64 = "arm64"
    ARM = "arm"


class AcquisitionStrategy(StrEnum):
    """How the binary is obtained.

    BRANCH builds an unpinned development branch without verification, TAG
    builds a checksummed release tarball, RELEASE downloads a prebuilt binary.
    """

    BRANCH = "branch"
    TAG = "tag"
    RELEASE = "release"


class Platform(BaseModel):
    """Target operating system and CPU architecture."""

    model_config = ConfigDict(frozen=True)

    os: OperatingSystem
    arch: Architecture

    @model_validator(mode="after")
    def _arm32_is_linux_only(self) -> "Platform":
        if self.arch == Architecture.ARM and self.os != OperatingSystem.LINUX:
            raise ValueError(f"32-bit ARM is only supported on linux, not {self.os}")
        return self

    @property
    def bitness(self) -> int:
        return 32 if self.arch == Architecture.ARM else 64

    @property
    def slug(self) -> str:
        """Release naming form, e.g. ``darwin-arm64``."""
        return f"{self.os}-{self.arch}"

    @classmethod
    def parse(cls, value: str) -> "Platform":
        """Parse the ``{os}-{arch}`` form used by release asset names.

        Raises:
            ValueError: If the string is not a supported platform
        """
        os_name, sep, arch = value.strip().lower().partition("-")
        if not sep:
            raise ValueError(f"Invalid platform '{value}', expected '<os>-<arch>'")
        try:
            return cls(os=os_name, arch=arch)
        except ValidationError as e:
            raise ValueError(f"Unsupported platform '{value}': {e.errors()[0]['msg']}") from e

    def __str__(self) -> str:
        return self.slug


ALL_PLATFORMS: tuple[Platform, ...] = (
    Platform(os=OperatingSystem.DARWIN, arch=Architecture.AMD64),
    Platform(os=OperatingSystem.DARWIN, arch=Architecture.ARM64),
    Platform(os=OperatingSystem.LINUX, arch=Architecture.AMD64),
    Platform(os=OperatingSystem.LINUX, arch=Architecture.ARM64),
    Platform(os=OperatingSystem.LINUX, arch=Architecture.ARM),
)


class ArtifactSource(BaseModel):
    """Where an artifact comes from and what it must hash to.

    ``expected_checksum`` is None only for the BRANCH strategy.
    """

    model_config = ConfigDict(frozen=True)

    strategy: AcquisitionStrategy
    location: str
    expected_checksum: str | None = None
    asset_name: str | None = None

    @field_validator("expected_checksum")
    @classmethod
    def _normalize_checksum(cls, value: str | None) -> str | None:
        return value.strip().lower() if value is not None else None

    @model_validator(mode="after")
    def _checksum_matches_strategy(self) -> "ArtifactSource":
        if self.strategy == AcquisitionStrategy.BRANCH:
            if self.expected_checksum is not None:
                raise ValueError("branch sources are unverified and must not declare a checksum")
        elif self.expected_checksum is None or not is_sha256_hex(self.expected_checksum):
            raise ValueError(f"{self.strategy} sources require a hex SHA-256 checksum")
        return self

    @property
    def verified(self) -> bool:
        return self.expected_checksum is not None


class BinaryArtifact(BaseModel):
    """Concrete bytes obtained after a build or download."""

    model_config = ConfigDict(frozen=True)

    path: Path
    sha256: str
    size: int


class InstallationLayout(BaseModel):
    """Filesystem locations for one installed version, all under ``prefix``."""

    model_config = ConfigDict(frozen=True)

    prefix: Path
    binary_path: Path
    data_dir: Path
    log_path: Path

    @model_validator(mode="after")
    def _anchored_to_prefix(self) -> "InstallationLayout":
        for field_name in ("binary_path", "data_dir", "log_path"):
            path = getattr(self, field_name)
            if not path.is_relative_to(self.prefix):
                raise ValueError(f"{field_name} {path} is outside installation prefix {self.prefix}")
        return self

    @property
    def log_dir(self) -> Path:
        return self.log_path.parent

    @classmethod
    def from_prefix(cls, prefix: Path, name: str, version: str) -> "InstallationLayout":
        """Build the standard layout ``prefix/name/version/{bin,var/lib,var/log}``.

        Example:
            >>> layout = InstallationLayout.from_prefix(Path("/opt/formula"), "sqlite-otel-collector", "0.8.0")
            >>> layout.binary_path
            PosixPath('/opt/formula/sqlite-otel-collector/0.8.0/bin/sqlite-otel-collector')
        """
        root = prefix / name / version
        return cls(
            prefix=prefix,
            binary_path=root / "bin" / name,
            data_dir=root / "var" / "lib" / name,
            log_path=root / "var" / "log" / f"{name}.log",
        )


class ServiceDescriptor(BaseModel):
    """What an external supervisor needs to run the installed binary.

    Constructed once per install and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    run: tuple[Path, ...]
    keep_alive: bool = True
    log_path: Path
    error_log_path: Path
    working_dir: Path


class FormulaManifest(BaseModel):
    """Release manifest: formula identity plus the source/checksum table."""

    model_config = ConfigDict(frozen=True)

    name: str
    project: str
    version: str
    description: str = ""
    homepage: str | None = None
    license: str | None = None

    branch_url: str | None = None
    tag_url: str | None = None
    tag_sha256: str | None = None
    release_url_template: str | None = None
    release_checksums: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_toml(cls, manifest_path: Path) -> "FormulaManifest":
        """Load a manifest from a TOML file.

        Args:
            manifest_path: Path to the manifest file

        Returns:
            FormulaManifest instance

        Raises:
            ManifestError: If the file is missing, not valid TOML, or malformed
        """
        if not manifest_path.exists():
            raise ManifestError(f"Manifest not found: {manifest_path}", context={"path": str(manifest_path)})

        try:
            with open(manifest_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ManifestError(f"Invalid TOML in {manifest_path}: {e}", context={"path": str(manifest_path)}) from e

        return cls.from_mapping(data, origin=str(manifest_path))

    @classmethod
    def from_mapping(cls, data: dict, origin: str = "<manifest>") -> "FormulaManifest":
        """Build a manifest from already-parsed TOML data."""
        formula = _table(data, "formula", "formula", origin)
        if not formula:
            raise ManifestError(f"[formula] section missing in {origin}", context={"path": origin})
        for key in ("name", "version"):
            if not formula.get(key):
                raise ManifestError(f"formula.{key} missing in {origin}", context={"path": origin})

        sources = _table(data, "source", "source", origin)
        branch = _table(sources, "branch", "source.branch", origin)
        tag = _table(sources, "tag", "source.tag", origin)
        release = _table(data, "release", "release", origin)

        if branch and branch.get("sha256", NO_CHECK) != NO_CHECK:
            raise ManifestError(
                f"source.branch.sha256 must be '{NO_CHECK}' in {origin}; branch builds are unverified",
                context={"path": origin},
            )

        tag_sha256 = None
        if tag:
            tag_sha256 = _checked_digest(tag.get("sha256"), "source.tag.sha256", origin)

        checksums: dict[str, str] = {}
        for key, digest in _table(release, "checksums", "release.checksums", origin).items():
            try:
                platform = Platform.parse(key)
            except ValueError as e:
                raise ManifestError(f"release.checksums.{key} in {origin}: {e}", context={"path": origin}) from e
            checksums[platform.slug] = _checked_digest(digest, f"release.checksums.{key}", origin)

        try:
            return cls(
                name=formula["name"],
                project=formula.get("project", formula["name"]),
                version=str(formula["version"]),
                description=formula.get("description", ""),
                homepage=formula.get("homepage"),
                license=formula.get("license"),
                branch_url=branch.get("url"),
                tag_url=tag.get("url"),
                tag_sha256=tag_sha256,
                release_url_template=release.get("url_template"),
                release_checksums=checksums,
            )
        except ValidationError as e:
            raise ManifestError(f"Invalid manifest {origin}: {e}", context={"path": origin}) from e


def _table(parent: dict, key: str, dotted: str, origin: str) -> dict:
    value = parent.get(key, {})
    if not isinstance(value, dict):
        raise ManifestError(f"[{dotted}] must be a table in {origin}", context={"path": origin, "key": dotted})
    return value


def _checked_digest(value: object, key: str, origin: str) -> str:
    if not isinstance(value, str) or value == NO_CHECK:
        raise ManifestError(f"{key} must be a SHA-256 checksum in {origin}", context={"path": origin})
    digest = value.strip().lower()
    if not is_sha256_hex(digest):
        raise ManifestError(f"{key} is not a hex SHA-256 digest in {origin}: {value!r}", context={"path": origin})
    return digest
