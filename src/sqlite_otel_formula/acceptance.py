"""Acceptance check - smoke test the installed binary.

A failed check means the install is broken even though files are on disk.
"""

import logging

from .exceptions import AcceptanceError
from .protocols import CommandResult
from .protocols import CommandRunnerProtocol
from .schema import InstallationLayout

logger = logging.getLogger(__name__)

PORT_HELP_MARKER = "Port to listen on"


async def _run(runner: CommandRunnerProtocol, args: list[str]) -> CommandResult:
    try:
        result = await runner.run(args)
    except OSError as e:
        raise AcceptanceError(f"Could not execute {' '.join(args)}: {e}", context={"command": args}) from e

    if result.returncode != 0:
        raise AcceptanceError(
            f"{' '.join(args)} exited with status {result.returncode}",
            context={"command": args, "output": result.output},
        )
    return result


async def verify_installation(
    layout: InstallationLayout,
    name: str,
    version: str,
    runner: CommandRunnerProtocol,
) -> None:
    """
    Run ``--version`` and ``--help`` against the installed binary.

    Args:
        layout: Installed layout (binary_path is executed)
        name: Canonical binary name expected in the version output
        version: Installed version, expected as ``v<version>``
        runner: Command runner

    Raises:
        AcceptanceError: If either command fails or prints unexpected output
    """
    binary = str(layout.binary_path)

    result = await _run(runner, [binary, "--version"])
    expected_version = f"v{version.removeprefix('v')}"
    for expected in (name, expected_version):
        if expected not in result.output:
            raise AcceptanceError(
                f"{name} --version output does not mention {expected!r}",
                context={"output": result.output, "expected": expected},
            )

    result = await _run(runner, [binary, "--help"])
    if PORT_HELP_MARKER not in result.output:
        raise AcceptanceError(
            f"{name} --help does not document the listening port",
            context={"output": result.output, "expected": PORT_HELP_MARKER},
        )

    logger.info(f"Acceptance checks passed for {name} {expected_version}")
