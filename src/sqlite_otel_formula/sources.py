"""Default collaborator implementations: HTTP downloads, builds, and commands."""

import asyncio
import logging
import os
import tarfile
from collections.abc import Mapping
from collections.abc import Sequence
from pathlib import Path

import httpx

from .exceptions import AcquisitionError
from .protocols import CommandResult
from .protocols import CommandRunnerProtocol

logger = logging.getLogger(__name__)

# Required for the SQLite driver, which links against the native library.
NATIVE_BUILD_ENV = {"CGO_ENABLED": "1"}

BUILD_COMMAND = ("make", "build-native")


class HttpDownloader:
    """Stream a URL to disk with httpx.

    A transfer shorter than the advertised Content-Length is an error.
    """

    def __init__(self, timeout: float = 300.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self.transport = transport

    async def download(self, url: str, destination: Path) -> None:
        logger.info(f"Downloading {url}")
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    # Content-Length counts encoded bytes; httpx itself rejects short encoded bodies.
                    advertised = None
                    if "Content-Encoding" not in response.headers:
                        advertised = response.headers.get("Content-Length")
                    received = 0
                    with open(destination, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
                            received += len(chunk)
        except httpx.HTTPStatusError as e:
            raise AcquisitionError(
                f"Download of {url} failed with HTTP {e.response.status_code}",
                context={"url": url, "status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise AcquisitionError(f"Download of {url} failed: {e}", context={"url": url}) from e
        except OSError as e:
            raise AcquisitionError(f"Could not write {destination}: {e}", context={"url": url}) from e

        if advertised is not None and received != int(advertised):
            raise AcquisitionError(
                f"Incomplete download of {url}: received {received} of {advertised} bytes",
                context={"url": url, "received": received, "expected": int(advertised)},
            )
        logger.debug(f"Downloaded {received} bytes to {destination}")


class SubprocessRunner:
    """Run commands with asyncio, merging stderr into stdout."""

    async def run(
        self,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> CommandResult:
        full_env = {**os.environ, **env} if env else None
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=cwd,
            env=full_env,
        )
        output, _ = await process.communicate()
        returncode = process.returncode if process.returncode is not None else -1
        return CommandResult(returncode=returncode, output=output.decode(errors="replace"))


class MakeBuilder:
    """Build the collector from source with native linkage enabled."""

    def __init__(
        self,
        output_name: str,
        command: Sequence[str] = BUILD_COMMAND,
        runner: CommandRunnerProtocol | None = None,
    ):
        """Initialize builder.

        Args:
            output_name: Executable the build leaves in the source root
            command: Build command run in the source root
            runner: Command runner (defaults to SubprocessRunner)
        """
        self.output_name = output_name
        self.command = tuple(command)
        self.runner = runner or SubprocessRunner()

    async def build(self, source_dir: Path) -> Path:
        logger.info(f"Building {self.output_name} in {source_dir}: {' '.join(self.command)}")
        try:
            result = await self.runner.run(self.command, env=NATIVE_BUILD_ENV, cwd=source_dir)
        except OSError as e:
            raise AcquisitionError(
                f"Could not run build command {' '.join(self.command)}: {e}",
                context={"command": list(self.command), "source_dir": str(source_dir)},
            ) from e

        if result.returncode != 0:
            raise AcquisitionError(
                f"Build command {' '.join(self.command)} exited with status {result.returncode}",
                context={"command": list(self.command), "output": result.output[-2000:]},
            )

        produced = source_dir / self.output_name
        if not produced.is_file():
            raise AcquisitionError(
                f"Build succeeded but produced no {self.output_name} in {source_dir}",
                context={"source_dir": str(source_dir)},
            )
        return produced


def extract_source_tarball(tarball: Path, destination: Path) -> Path:
    """
    Extract a source tarball and return the source root.

    Archives with a single top-level directory (as code hosts produce) return
    that directory; otherwise the destination itself is the source root.

    Raises:
        AcquisitionError: If the archive is unreadable or unsafe to extract
    """
    destination.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(tarball, "r:*") as archive:
            archive.extractall(destination, filter="data")
    except (tarfile.TarError, OSError) as e:
        raise AcquisitionError(f"Could not extract {tarball.name}: {e}", context={"tarball": str(tarball)}) from e

    entries = [item for item in destination.iterdir() if not item.name.startswith(".")]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return destination
