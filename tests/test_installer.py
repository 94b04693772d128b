"""Tests for binary installation (protocol-based)."""

import asyncio
import hashlib
import os
from pathlib import Path

import pytest
from sqlite_otel_formula import AcquisitionError
from sqlite_otel_formula import AcquisitionStrategy
from sqlite_otel_formula import ArtifactSource
from sqlite_otel_formula import IntegrityError
from sqlite_otel_formula import install_binary
from sqlite_otel_formula import place_binary
from sqlite_otel_formula.installer import _mutex_path
from sqlite_otel_formula.lock import install_mutex

RELEASE_URL = "https://example.test/releases/download/v0.8.0/sqlite-otel-darwin-arm64"
TAG_URL = "https://example.test/archive/refs/tags/v0.8.0.tar.gz"
BRANCH_URL = "https://example.test/archive/refs/heads/main.tar.gz"


class MockBuilder:
    """Mock builder - copies a prepared executable out of the source tree."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.built: list[Path] = []

    async def build(self, source_dir: Path) -> Path:
        self.built.append(source_dir)
        if self.fail:
            raise AcquisitionError("Build command make build-native exited with status 2")
        produced = source_dir / "sqlite-otel"
        produced.write_bytes((source_dir / "collector.sh").read_bytes())
        return produced


class StallingDownloader:
    """Writes part of the payload, then waits until cancelled."""

    def __init__(self):
        self.started = asyncio.Event()

    async def download(self, url: str, destination: Path) -> None:
        destination.write_bytes(b"partial")
        self.started.set()
        await asyncio.Event().wait()


class StallingBuilder:
    """Leaves a half-written executable in the source tree, then waits until cancelled."""

    def __init__(self):
        self.started = asyncio.Event()

    async def build(self, source_dir: Path) -> Path:
        (source_dir / "sqlite-otel").write_bytes(b"half")
        self.started.set()
        await asyncio.Event().wait()
        return source_dir / "sqlite-otel"


def _staging_dirs(directory: Path) -> list[Path]:
    return [p for p in directory.iterdir() if "staging" in p.name]


def _release_source(data: bytes) -> ArtifactSource:
    return ArtifactSource(
        strategy=AcquisitionStrategy.RELEASE,
        location=RELEASE_URL,
        expected_checksum=hashlib.sha256(data).hexdigest(),
        asset_name="sqlite-otel-darwin-arm64",
    )


def _flip_first_char(digest: str) -> str:
    return ("1" if digest[0] == "0" else "0") + digest[1:]


@pytest.mark.asyncio
async def test_install_release(tmp_path, downloader, payloads, collector_bytes):
    payloads[RELEASE_URL] = collector_bytes
    binary_path = tmp_path / "bin" / "sqlite-otel-collector"

    artifact = await install_binary(_release_source(collector_bytes), binary_path, downloader)

    assert binary_path.read_bytes() == collector_bytes
    assert os.access(binary_path, os.X_OK)
    assert artifact.path == binary_path
    assert artifact.sha256 == hashlib.sha256(collector_bytes).hexdigest()
    assert downloader.requested == [RELEASE_URL]


@pytest.mark.asyncio
async def test_install_release_does_not_build(tmp_path, downloader, payloads, collector_bytes):
    payloads[RELEASE_URL] = collector_bytes
    builder = MockBuilder()

    await install_binary(_release_source(collector_bytes), tmp_path / "bin" / "c", downloader, builder)

    assert builder.built == []


@pytest.mark.asyncio
async def test_checksum_mismatch_leaves_canonical_path_untouched(tmp_path, downloader, payloads, collector_bytes):
    payloads[RELEASE_URL] = collector_bytes
    binary_path = tmp_path / "bin" / "sqlite-otel-collector"
    binary_path.parent.mkdir(parents=True)
    binary_path.write_bytes(b"previous version")

    good = _release_source(collector_bytes)
    corrupted = good.model_copy(update={"expected_checksum": _flip_first_char(good.expected_checksum)})

    with pytest.raises(IntegrityError):
        await install_binary(corrupted, binary_path, downloader)

    assert binary_path.read_bytes() == b"previous version"
    assert sorted(p.name for p in binary_path.parent.iterdir() if not p.name.endswith(".lock")) == [
        "sqlite-otel-collector"
    ]


@pytest.mark.asyncio
async def test_checksum_mismatch_with_no_prior_install(tmp_path, downloader, payloads, collector_bytes):
    payloads[RELEASE_URL] = b"truncated"
    binary_path = tmp_path / "bin" / "sqlite-otel-collector"

    with pytest.raises(IntegrityError):
        await install_binary(_release_source(collector_bytes), binary_path, downloader)

    assert not binary_path.exists()


@pytest.mark.asyncio
async def test_install_is_idempotent(tmp_path, downloader, payloads, collector_bytes):
    payloads[RELEASE_URL] = collector_bytes
    binary_path = tmp_path / "bin" / "sqlite-otel-collector"
    source = _release_source(collector_bytes)

    first = await install_binary(source, binary_path, downloader)
    second = await install_binary(source, binary_path, downloader)

    assert first.sha256 == second.sha256
    assert binary_path.read_bytes() == collector_bytes


@pytest.mark.asyncio
async def test_install_tag_verifies_then_builds(tmp_path, downloader, payloads, make_tarball, collector_bytes):
    tarball = make_tarball({"collector.sh": collector_bytes, "Makefile": b"build-native:\n"})
    payloads[TAG_URL] = tarball
    source = ArtifactSource(
        strategy=AcquisitionStrategy.TAG,
        location=TAG_URL,
        expected_checksum=hashlib.sha256(tarball).hexdigest(),
    )
    builder = MockBuilder()
    binary_path = tmp_path / "bin" / "sqlite-otel-collector"

    await install_binary(source, binary_path, downloader, builder)

    assert binary_path.read_bytes() == collector_bytes
    assert len(builder.built) == 1
    assert builder.built[0].name == "sqlite-otel-0.8.0"


@pytest.mark.asyncio
async def test_install_tag_mismatch_never_builds(tmp_path, downloader, payloads, make_tarball, collector_bytes):
    payloads[TAG_URL] = make_tarball({"collector.sh": collector_bytes})
    source = ArtifactSource(strategy=AcquisitionStrategy.TAG, location=TAG_URL, expected_checksum="f" * 64)
    builder = MockBuilder()

    with pytest.raises(IntegrityError):
        await install_binary(source, tmp_path / "bin" / "c", downloader, builder)

    assert builder.built == []


@pytest.mark.asyncio
async def test_install_branch_skips_verification(tmp_path, downloader, payloads, make_tarball, collector_bytes, caplog):
    payloads[BRANCH_URL] = make_tarball({"collector.sh": collector_bytes})
    source = ArtifactSource(strategy=AcquisitionStrategy.BRANCH, location=BRANCH_URL)
    binary_path = tmp_path / "bin" / "sqlite-otel-collector"

    await install_binary(source, binary_path, downloader, MockBuilder())

    assert binary_path.read_bytes() == collector_bytes
    assert "unverified development build" in caplog.text


@pytest.mark.asyncio
async def test_install_branch_build_failure(tmp_path, downloader, payloads, make_tarball, collector_bytes):
    payloads[BRANCH_URL] = make_tarball({"collector.sh": collector_bytes})
    source = ArtifactSource(strategy=AcquisitionStrategy.BRANCH, location=BRANCH_URL)
    binary_path = tmp_path / "bin" / "sqlite-otel-collector"

    with pytest.raises(AcquisitionError, match="exited with status 2"):
        await install_binary(source, binary_path, downloader, MockBuilder(fail=True))

    assert not binary_path.exists()


@pytest.mark.asyncio
async def test_build_strategy_requires_builder(tmp_path, downloader):
    source = ArtifactSource(strategy=AcquisitionStrategy.BRANCH, location=BRANCH_URL)

    with pytest.raises(AcquisitionError, match="builder is required"):
        await install_binary(source, tmp_path / "bin" / "c", downloader)


@pytest.mark.asyncio
async def test_download_failure_is_acquisition_error(tmp_path, downloader, collector_bytes):
    with pytest.raises(AcquisitionError, match="404"):
        await install_binary(_release_source(collector_bytes), tmp_path / "bin" / "c", downloader)


@pytest.mark.asyncio
async def test_staging_is_removed(tmp_path, downloader, payloads, collector_bytes):
    payloads[RELEASE_URL] = collector_bytes
    binary_path = tmp_path / "bin" / "sqlite-otel-collector"

    await install_binary(_release_source(collector_bytes), binary_path, downloader)

    assert not [p for p in binary_path.parent.iterdir() if "staging" in p.name]


def test_place_binary_overwrites(tmp_path):
    built = tmp_path / "built"
    built.write_bytes(b"new")
    binary_path = tmp_path / "bin" / "collector"
    binary_path.parent.mkdir()
    binary_path.write_bytes(b"old")

    artifact = place_binary(built, binary_path)

    assert binary_path.read_bytes() == b"new"
    assert artifact.size == 3
    assert oct(binary_path.stat().st_mode & 0o777) == oct(0o755)
    assert built.exists()


@pytest.mark.asyncio
async def test_cancel_mid_download_leaves_previous_binary(tmp_path, collector_bytes):
    binary_path = tmp_path / "bin" / "sqlite-otel-collector"
    binary_path.parent.mkdir()
    binary_path.write_bytes(b"previous")
    downloader = StallingDownloader()

    task = asyncio.create_task(install_binary(_release_source(collector_bytes), binary_path, downloader))
    await downloader.started.wait()
    assert _staging_dirs(binary_path.parent)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert binary_path.read_bytes() == b"previous"
    assert _staging_dirs(binary_path.parent) == []


@pytest.mark.asyncio
async def test_cancel_mid_build_leaves_nothing(tmp_path, downloader, payloads, make_tarball, collector_bytes):
    tarball = make_tarball({"collector.sh": collector_bytes})
    payloads[TAG_URL] = tarball
    source = ArtifactSource(
        strategy=AcquisitionStrategy.TAG,
        location=TAG_URL,
        expected_checksum=hashlib.sha256(tarball).hexdigest(),
    )
    builder = StallingBuilder()
    binary_path = tmp_path / "bin" / "sqlite-otel-collector"

    task = asyncio.create_task(install_binary(source, binary_path, downloader, builder))
    await builder.started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not binary_path.exists()
    assert list(binary_path.parent.iterdir()) == []


@pytest.mark.asyncio
async def test_placement_waits_on_mutex_off_the_event_loop(tmp_path, downloader, payloads, collector_bytes):
    payloads[RELEASE_URL] = collector_bytes
    binary_path = tmp_path / "bin" / "sqlite-otel-collector"
    binary_path.parent.mkdir()

    with install_mutex(_mutex_path(binary_path)):
        task = asyncio.create_task(install_binary(_release_source(collector_bytes), binary_path, downloader))
        # The loop keeps running while the placement thread is blocked on the held lock.
        await asyncio.sleep(0.2)
        assert not task.done()
        assert not binary_path.exists()

    artifact = await asyncio.wait_for(task, timeout=10)

    assert binary_path.read_bytes() == collector_bytes
    assert artifact.sha256 == hashlib.sha256(collector_bytes).hexdigest()
