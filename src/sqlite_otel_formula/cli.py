"""
Command line for resolving, installing, and describing the collector service.

Thin wrappers over the library; settings come from ``FormulaSettings``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from .caveats import render_caveats
from .config import FormulaSettings
from .exceptions import FormulaError
from .lock import InstallReceipt
from .pipeline import run_install
from .resolver import ArtifactResolver
from .resolver import detect_platform
from .schema import AcquisitionStrategy
from .schema import FormulaManifest
from .schema import InstallationLayout
from .schema import Platform
from .service import build_service_descriptor
from .service import render_launchd_plist
from .service import render_systemd_unit
from .sources import HttpDownloader
from .sources import MakeBuilder

manifest_option = click.option(
    "--manifest",
    "manifest_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Release manifest (TOML). Defaults to $SQLITE_OTEL_FORMULA_MANIFEST.",
)
prefix_option = click.option(
    "--prefix",
    type=click.Path(file_okay=False, path_type=Path),
    help="Installation prefix. Defaults to $SQLITE_OTEL_FORMULA_PREFIX.",
)


def _load_manifest(settings: FormulaSettings, manifest_path: Path | None) -> FormulaManifest:
    path = manifest_path or settings.manifest
    if path is None:
        raise click.UsageError("No manifest given: pass --manifest or set SQLITE_OTEL_FORMULA_MANIFEST")
    try:
        return FormulaManifest.from_toml(path)
    except FormulaError as e:
        raise click.ClickException(str(e)) from e


def _platform(value: str | None) -> Platform:
    if value is None:
        try:
            return detect_platform()
        except FormulaError as e:
            raise click.ClickException(str(e)) from e
    try:
        return Platform.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--platform") from e


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """sqlite-otel collector formula: resolve, install, and describe the service."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = FormulaSettings()


@main.command()
@manifest_option
@click.option("--platform", "platform_name", help="Target platform, e.g. darwin-arm64. Defaults to this host.")
@click.option("--strategy", type=click.Choice([s.value for s in AcquisitionStrategy]), help="Acquisition strategy.")
@click.pass_context
def resolve(ctx: click.Context, manifest_path: Path | None, platform_name: str | None, strategy: str | None) -> None:
    """Print the artifact source for a platform and strategy as JSON."""
    settings: FormulaSettings = ctx.obj["settings"]
    manifest = _load_manifest(settings, manifest_path)
    platform = _platform(platform_name)
    chosen = AcquisitionStrategy(strategy) if strategy else settings.strategy

    try:
        source = ArtifactResolver(manifest).resolve(platform, chosen)
    except FormulaError as e:
        raise click.ClickException(str(e)) from e
    click.echo(source.model_dump_json(indent=2))


@main.command()
@manifest_option
@prefix_option
@click.option("--platform", "platform_name", help="Target platform, e.g. linux-arm. Defaults to this host.")
@click.option("--strategy", type=click.Choice([s.value for s in AcquisitionStrategy]), help="Acquisition strategy.")
@click.pass_context
def install(
    ctx: click.Context,
    manifest_path: Path | None,
    prefix: Path | None,
    platform_name: str | None,
    strategy: str | None,
) -> None:
    """Acquire, verify, install, and smoke-test the collector."""
    settings: FormulaSettings = ctx.obj["settings"]
    manifest = _load_manifest(settings, manifest_path)
    platform = _platform(platform_name)
    chosen = AcquisitionStrategy(strategy) if strategy else settings.strategy
    prefix = prefix or settings.prefix

    if chosen == AcquisitionStrategy.BRANCH:
        click.secho("Warning: branch installs are development builds and are NOT checksum-verified.", fg="yellow")

    try:
        result = asyncio.run(
            run_install(
                manifest=manifest,
                platform=platform,
                strategy=chosen,
                prefix=prefix,
                downloader=HttpDownloader(timeout=settings.http_timeout_seconds),
                builder=MakeBuilder(output_name=manifest.project),
                receipt=InstallReceipt(prefix / "receipt.json"),
            )
        )
    except FormulaError as e:
        click.secho(f"Install failed at {e.stage}: {e.message}", fg="red", err=True)
        sys.exit(1)

    click.secho(f"Installed {result.artifact.path} (sha256 {result.artifact.sha256})", fg="green")
    click.echo()
    click.echo(result.caveats)


@main.command()
@manifest_option
@prefix_option
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["launchd", "systemd", "json"]),
    default="json",
    show_default=True,
    help="Output format.",
)
@click.pass_context
def service(ctx: click.Context, manifest_path: Path | None, prefix: Path | None, fmt: str) -> None:
    """Print the service definition for the host supervisor."""
    settings: FormulaSettings = ctx.obj["settings"]
    manifest = _load_manifest(settings, manifest_path)
    layout = InstallationLayout.from_prefix(prefix or settings.prefix, manifest.name, manifest.version)
    descriptor = build_service_descriptor(layout)

    if fmt == "launchd":
        click.echo(render_launchd_plist(descriptor, label=f"homebrew.mxcl.{manifest.name}"), nl=False)
    elif fmt == "systemd":
        click.echo(render_systemd_unit(descriptor, description=manifest.description or manifest.name), nl=False)
    else:
        click.echo(json.dumps(descriptor.model_dump(mode="json"), indent=2))


@main.command()
@manifest_option
@prefix_option
@click.option("--platform", "platform_name", help="Target platform. Defaults to this host.")
@click.pass_context
def caveats(ctx: click.Context, manifest_path: Path | None, prefix: Path | None, platform_name: str | None) -> None:
    """Print post-install notes."""
    settings: FormulaSettings = ctx.obj["settings"]
    manifest = _load_manifest(settings, manifest_path)
    platform = _platform(platform_name)
    layout = InstallationLayout.from_prefix(prefix or settings.prefix, manifest.name, manifest.version)
    click.echo(render_caveats(manifest, layout, os_name=platform.os), nl=False)


if __name__ == "__main__":
    main()
