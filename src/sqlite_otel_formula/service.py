"""Service registration - describe how a supervisor should run the binary.

This module only produces values. Starting, stopping, and restarting the
process belongs to the host supervisor (launchd, systemd).
"""

import plistlib

from .schema import InstallationLayout
from .schema import ServiceDescriptor


def build_service_descriptor(layout: InstallationLayout) -> ServiceDescriptor:
    """Run the binary with no arguments from the data directory, always restarting.

    Stdout and stderr share the single log file.
    """
    return ServiceDescriptor(
        run=(layout.binary_path,),
        keep_alive=True,
        log_path=layout.log_path,
        error_log_path=layout.log_path,
        working_dir=layout.data_dir,
    )


def render_launchd_plist(descriptor: ServiceDescriptor, label: str) -> str:
    """Render a launchd job definition (``~/Library/LaunchAgents/<label>.plist``)."""
    job = {
        "Label": label,
        "ProgramArguments": [str(arg) for arg in descriptor.run],
        "RunAtLoad": True,
        "KeepAlive": descriptor.keep_alive,
        "WorkingDirectory": str(descriptor.working_dir),
        "StandardOutPath": str(descriptor.log_path),
        "StandardErrorPath": str(descriptor.error_log_path),
    }
    return plistlib.dumps(job).decode()


def render_systemd_unit(descriptor: ServiceDescriptor, description: str) -> str:
    """Render a systemd service unit."""
    exec_start = " ".join(str(arg) for arg in descriptor.run)
    restart = "always" if descriptor.keep_alive else "no"
    lines = [
        "[Unit]",
        f"Description={description}",
        "After=network.target",
        "",
        "[Service]",
        "Type=simple",
        f"ExecStart={exec_start}",
        f"Restart={restart}",
        f"WorkingDirectory={descriptor.working_dir}",
        f"StandardOutput=append:{descriptor.log_path}",
        f"StandardError=append:{descriptor.error_log_path}",
        "",
        "[Install]",
        "WantedBy=default.target",
        "",
    ]
    return "\n".join(lines)
