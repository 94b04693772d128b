"""sqlite-otel-formula - Platform-aware installation of the sqlite-otel collector.

Public API exports.

This is library mechanism: apps inject policy (prefix, manifest, downloader, builder).
"""

from .acceptance import verify_installation
from .caveats import render_caveats
from .exceptions import AcceptanceError
from .exceptions import AcquisitionError
from .exceptions import DirectoryError
from .exceptions import FormulaError
from .exceptions import IntegrityError
from .exceptions import ManifestError
from .exceptions import RegistrationError
from .exceptions import ReceiptError
from .exceptions import ResolutionError
from .installer import install_binary
from .installer import place_binary
from .lock import InstallReceipt
from .lock import InstallReceiptEntry
from .lock import install_mutex
from .pipeline import InstallResult
from .pipeline import run_install
from .preparer import prepare_directories
from .protocols import BuilderProtocol
from .protocols import CommandResult
from .protocols import CommandRunnerProtocol
from .protocols import DownloaderProtocol
from .resolver import ArtifactResolver
from .resolver import detect_platform
from .resolver import release_asset_name
from .schema import AcquisitionStrategy
from .schema import Architecture
from .schema import ArtifactSource
from .schema import BinaryArtifact
from .schema import FormulaManifest
from .schema import InstallationLayout
from .schema import OperatingSystem
from .schema import Platform
from .schema import ServiceDescriptor
from .service import build_service_descriptor
from .service import render_launchd_plist
from .service import render_systemd_unit
from .sources import HttpDownloader
from .sources import MakeBuilder
from .sources import SubprocessRunner
from .verifier import checksums_match
from .verifier import compute_sha256
from .verifier import verify_artifact

__all__ = [
    # Schema
    "AcquisitionStrategy",
    "Architecture",
    "ArtifactSource",
    "BinaryArtifact",
    "FormulaManifest",
    "InstallationLayout",
    "OperatingSystem",
    "Platform",
    "ServiceDescriptor",
    # Resolution
    "ArtifactResolver",
    "detect_platform",
    "release_asset_name",
    # Verification
    "checksums_match",
    "compute_sha256",
    "verify_artifact",
    # Installation
    "install_binary",
    "place_binary",
    "prepare_directories",
    "run_install",
    "InstallResult",
    # Service
    "build_service_descriptor",
    "render_launchd_plist",
    "render_systemd_unit",
    "render_caveats",
    # Acceptance
    "verify_installation",
    # Collaborators
    "BuilderProtocol",
    "CommandResult",
    "CommandRunnerProtocol",
    "DownloaderProtocol",
    "HttpDownloader",
    "MakeBuilder",
    "SubprocessRunner",
    # Receipt
    "InstallReceipt",
    "InstallReceiptEntry",
    "install_mutex",
    # Exceptions
    "FormulaError",
    "ManifestError",
    "ResolutionError",
    "AcquisitionError",
    "IntegrityError",
    "DirectoryError",
    "RegistrationError",
    "ReceiptError",
    "AcceptanceError",
]
