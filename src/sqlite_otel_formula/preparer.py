"""Post-install preparation of runtime directories."""

import logging
import stat
from pathlib import Path

from .exceptions import DirectoryError
from .schema import InstallationLayout

logger = logging.getLogger(__name__)

DIRECTORY_MODE = 0o755


def _ensure_directory(path: Path) -> None:
    if path.exists() and not path.is_dir():
        raise DirectoryError(f"{path} exists and is not a directory", context={"path": str(path)})

    try:
        path.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
        mode = path.stat().st_mode
        if not mode & stat.S_IWUSR:
            path.chmod(stat.S_IMODE(mode) | stat.S_IWUSR)
    except OSError as e:
        raise DirectoryError(f"Cannot create directory {path}: {e}", context={"path": str(path)}) from e


def prepare_directories(layout: InstallationLayout) -> None:
    """
    Ensure the data and log directories exist and are owner-writable.

    Safe to call repeatedly; existing directories are left in place.

    Raises:
        DirectoryError: If a directory cannot be created
    """
    for path in (layout.data_dir, layout.log_dir):
        _ensure_directory(path)
        logger.debug(f"Directory ready: {path}")
