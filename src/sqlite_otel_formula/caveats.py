"""Post-install notes shown to the user."""

from .schema import FormulaManifest
from .schema import InstallationLayout
from .schema import OperatingSystem

DEFAULT_PORT = 4318


def render_caveats(
    manifest: FormulaManifest,
    layout: InstallationLayout,
    os_name: OperatingSystem = OperatingSystem.DARWIN,
    port: int = DEFAULT_PORT,
) -> str:
    """Describe how to run the collector, where it listens, and where it writes."""
    name = manifest.name
    if os_name == OperatingSystem.DARWIN:
        service_hint = f"brew services start {name}"
    else:
        service_hint = f"systemctl --user enable --now {name}.service"

    lines = [
        f"{manifest.description or name} has been installed!",
        "",
        "To start the collector immediately:",
        f"  {layout.binary_path}",
        "",
        "To run as a background service:",
        f"  {service_hint}",
        "",
        "The collector will listen on:",
        f"  - HTTP: http://localhost:{port} (OTLP/HTTP endpoint)",
        "",
        "Data will be stored in:",
        f"  {layout.data_dir}/",
        "",
        "Logs will be written to:",
        f"  {layout.log_path}",
        "",
        "Configuration:",
        "  Set environment variables or use command-line flags.",
        f"  Run '{name} --help' for available options.",
        "",
        "Send test data:",
        f"  curl -X POST http://localhost:{port}/v1/traces \\",
        '    -H "Content-Type: application/json" \\',
        """    -d '{"resourceSpans":[{"spans":[{"name":"test-span","kind":1}]}]}'""",
    ]
    if manifest.homepage:
        lines += ["", f"Documentation: {manifest.homepage}"]
    return "\n".join(lines) + "\n"
