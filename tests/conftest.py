"""Shared fixtures: a stand-in collector binary, tarballs, manifests, and a fake downloader."""

import io
import tarfile
from pathlib import Path

import pytest
from sqlite_otel_formula import AcquisitionError
from sqlite_otel_formula import FormulaManifest

COLLECTOR_SCRIPT = """#!/bin/sh
case "$1" in
  --version) echo "sqlite-otel-collector v{version}" ;;
  --help)
    echo "Usage of sqlite-otel-collector:"
    echo "  -port int"
    echo "        Port to listen on (default: 4318, OTLP/HTTP standard)"
    ;;
  *) echo "running" ;;
esac
"""


@pytest.fixture
def collector_bytes() -> bytes:
    """Shell script that answers --version and --help like the collector."""
    return COLLECTOR_SCRIPT.format(version="0.8.0").encode()


@pytest.fixture
def make_tarball():
    """Build a gzipped source tarball with a single top-level directory."""

    def _make(files: dict[str, bytes], top: str = "sqlite-otel-0.8.0") -> bytes:
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
            for name, content in files.items():
                info = tarfile.TarInfo(f"{top}/{name}")
                info.size = len(content)
                info.mode = 0o755
                archive.addfile(info, io.BytesIO(content))
        return buffer.getvalue()

    return _make


class FakeDownloader:
    """Serves bytes from a dict keyed by URL."""

    def __init__(self, payloads: dict[str, bytes]):
        self.payloads = payloads
        self.requested: list[str] = []

    async def download(self, url: str, destination: Path) -> None:
        self.requested.append(url)
        if url not in self.payloads:
            raise AcquisitionError(f"Download of {url} failed with HTTP 404", context={"url": url})
        destination.write_bytes(self.payloads[url])


@pytest.fixture
def payloads() -> dict[str, bytes]:
    return {}


@pytest.fixture
def downloader(payloads) -> FakeDownloader:
    return FakeDownloader(payloads)


RELEASE_TEMPLATE = "https://example.test/releases/download/v{version}/{asset}"
BRANCH_URL = "https://example.test/archive/refs/heads/main.tar.gz"
TAG_URL = "https://example.test/archive/refs/tags/v0.8.0.tar.gz"


@pytest.fixture
def manifest_data():
    """Build parsed manifest data with the given checksums."""

    def _data(release_checksums: dict[str, str] | None = None, tag_sha256: str | None = None) -> dict:
        data: dict = {
            "formula": {
                "name": "sqlite-otel-collector",
                "project": "sqlite-otel",
                "version": "0.8.0",
                "description": "Lightweight OpenTelemetry collector with SQLite storage",
                "homepage": "https://github.com/RedShiftVelocity/sqlite-otel",
                "license": "MIT",
            },
            "source": {"branch": {"url": BRANCH_URL, "sha256": "no_check"}},
            "release": {"url_template": RELEASE_TEMPLATE, "checksums": release_checksums or {}},
        }
        if tag_sha256 is not None:
            data["source"]["tag"] = {"url": TAG_URL, "sha256": tag_sha256}
        return data

    return _data


@pytest.fixture
def make_manifest(manifest_data):
    def _make(release_checksums: dict[str, str] | None = None, tag_sha256: str | None = None) -> FormulaManifest:
        return FormulaManifest.from_mapping(manifest_data(release_checksums, tag_sha256))

    return _make
