"""Protocols for the external collaborators the installer consumes.

Apps can provide any implementation (HTTP, local mirror, cache, etc.).
The library only requires these interfaces. Default implementations live in
``sources``.
"""

from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


class DownloaderProtocol(Protocol):
    """Fetches a URL to a local file."""

    async def download(self, url: str, destination: Path) -> None:
        """Download url to destination.

        Raises:
            AcquisitionError: If the transfer fails or is incomplete
        """
        ...


class BuilderProtocol(Protocol):
    """Compiles an extracted source tree into an executable."""

    async def build(self, source_dir: Path) -> Path:
        """Build the collector in source_dir.

        Returns:
            Path to the produced executable

        Raises:
            AcquisitionError: If the build command fails
        """
        ...


@dataclass(frozen=True)
class CommandResult:
    """Exit status and merged stdout/stderr of a finished command."""

    returncode: int
    output: str


class CommandRunnerProtocol(Protocol):
    """Runs a command to completion."""

    async def run(
        self,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> CommandResult:
        """Run args and return its result.

        Args:
            args: Command and arguments
            env: Extra environment variables layered over the current environment
            cwd: Working directory for the command

        Raises:
            OSError: If the command cannot be executed
        """
        ...
