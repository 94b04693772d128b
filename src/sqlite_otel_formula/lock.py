"""Install receipt and install mutex.

The receipt tracks what is installed (version, strategy, source, binary hash)
so an install can be audited and reproduced. The receipt path is injected by
the app.

The mutex serializes concurrent installers around the canonical binary write.
"""

import fcntl
import json
import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from dataclasses import dataclass
from datetime import UTC
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


@contextmanager
def install_mutex(lock_path: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock on lock_path for the duration of the block."""
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lock_path, "a") as fh:
        logger.debug(f"Waiting for install lock {lock_path}")
        fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)


@dataclass
class InstallReceiptEntry:
    """Entry in the install receipt."""

    name: str
    version: str
    strategy: str
    source: str
    sha256: str
    platform: str
    path: str
    installed_at: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "InstallReceiptEntry":
        """Create from dictionary."""
        return cls(**data)


class InstallReceipt:
    """
    Install receipt manager (with injected receipt path).

    Receipt format (JSON):
    {
      "version": "1.0",
      "installs": {
        "sqlite-otel-collector": {
          "name": "sqlite-otel-collector",
          "version": "0.8.0",
          "strategy": "release",
          "source": "https://github.com/.../sqlite-otel-darwin-arm64",
          "sha256": "0dd76ddc...",
          "platform": "darwin-arm64",
          "path": "/opt/formula/sqlite-otel-collector/0.8.0/bin/sqlite-otel-collector",
          "installed_at": "2025-10-26T12:00:00+00:00"
        }
      }
    }
    """

    VERSION = "1.0"

    def __init__(self, receipt_path: Path):
        """Initialize receipt manager with app-provided path.

        Args:
            receipt_path: Path to receipt file (app determines location)
        """
        self.receipt_path = receipt_path
        self._data: dict[str, InstallReceiptEntry] = {}
        self._load()

    def _load(self) -> None:
        """Load receipt file if it exists."""
        if not self.receipt_path.exists():
            self._data = {}
            return

        try:
            with open(self.receipt_path) as f:
                data = json.load(f)

            if not isinstance(data, dict) or not isinstance(data.get("installs", {}), dict):
                raise ValueError("expected an object with an \"installs\" object")

            if data.get("version") != self.VERSION:
                logger.warning(f"Receipt version mismatch: expected {self.VERSION}, got {data.get('version')}")

            installs = data.get("installs", {})
            self._data = {name: InstallReceiptEntry.from_dict(entry) for name, entry in installs.items()}

            logger.debug(f"Loaded {len(self._data)} installs from receipt")

        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Ignoring unreadable receipt {self.receipt_path}: {e}")
            self._data = {}

    def _save(self) -> None:
        """Save receipt atomically."""
        self.receipt_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "version": self.VERSION,
            "installs": {name: entry.to_dict() for name, entry in self._data.items()},
        }

        fd, tmp_name = tempfile.mkstemp(dir=self.receipt_path.parent, prefix=self.receipt_path.name + ".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, self.receipt_path)
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
        logger.debug(f"Saved receipt with {len(self._data)} installs")

    def record(
        self,
        name: str,
        version: str,
        strategy: str,
        source: str,
        sha256: str,
        platform: str,
        path: Path,
    ) -> InstallReceiptEntry:
        """
        Add or replace the receipt entry for an install.

        Args:
            name: Canonical binary name
            version: Installed version
            strategy: Acquisition strategy used
            source: Artifact location (URL)
            sha256: Checksum of the installed binary
            platform: Target platform slug
            path: Canonical binary path

        Returns:
            The stored entry
        """
        entry = InstallReceiptEntry(
            name=name,
            version=version,
            strategy=strategy,
            source=source,
            sha256=sha256,
            platform=platform,
            path=str(path),
            installed_at=datetime.now(UTC).isoformat(),
        )

        self._data[name] = entry
        self._save()

        logger.debug(f"Recorded {name} {version} in receipt")
        return entry

    def remove_entry(self, name: str) -> None:
        """Remove an install from the receipt."""
        if name in self._data:
            del self._data[name]
            self._save()
            logger.debug(f"Removed {name} from receipt")

    def get_entry(self, name: str) -> InstallReceiptEntry | None:
        """Get receipt entry, or None if not installed."""
        return self._data.get(name)

    def list_entries(self) -> list[InstallReceiptEntry]:
        """List all recorded installs."""
        return list(self._data.values())

    def is_installed(self, name: str) -> bool:
        """Check if an install is recorded."""
        return name in self._data
