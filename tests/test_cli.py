"""Tests for the fileservice CLI.

Tests cover:
A) ls / stat output and exit codes
B) archive and rm-prefix against a filesystem backend
C) Configuration and storage construction failures
D) serve wiring (uvicorn is not started)
"""

from __future__ import annotations

import io
import json
import logging
import zipfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from fileservice.cli import main
from fileservice.storage.archive import FAILURE_MANIFEST_NAME
from fileservice.storage.backends.filesystem_store import FilesystemObjectStore
from fileservice.storage.errors import StorageBackendError


class FlakyStore(FilesystemObjectStore):
    """Filesystem store that cannot download "docs/a.txt"."""

    def download(self, bucket, object_name, *, ctx=None):  # type: ignore[no-untyped-def]
        if object_name == "docs/a.txt":
            raise StorageBackendError("read timed out", bucket=bucket, key=object_name)
        return super().download(bucket, object_name, ctx=ctx)


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path: Path, temp_storage_dir: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        "storage:\n"
        "  type: filesystem\n"
        "  bucket: default\n"
        "  filesystem:\n"
        f"    base_dir: {temp_storage_dir}\n"
        "server:\n"
        "  host: 127.0.0.1\n"
        "  port: 9300\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def seeded_store(fs_store: FilesystemObjectStore) -> FilesystemObjectStore:
    fs_store.create_directory("default", "docs")
    for key, data in (("docs/a.txt", b"A"), ("docs/sub/b.txt", b"B"), ("top.txt", b"T")):
        fs_store.upload("default", key, io.BytesIO(data), len(data), "text/plain")
    return fs_store


def _run(capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, dict[str, Any]]:
    code = main(list(argv))
    out = capsys.readouterr().out
    return code, json.loads(out) if out.strip() else {}


class TestQueries:
    """Test A: ls and stat."""

    def test_ls(
        self, capsys: pytest.CaptureFixture[str], config_file: Path, seeded_store: object
    ) -> None:
        code, data = _run(capsys, "ls", "_", "--prefix", "docs/", "--config", str(config_file))

        assert code == 0
        assert data["bucket"] == "default"
        assert [o["name"] for o in data["objects"]] == ["docs/", "docs/a.txt", "docs/sub/b.txt"]

    def test_ls_dirs(
        self, capsys: pytest.CaptureFixture[str], config_file: Path, seeded_store: object
    ) -> None:
        code, data = _run(capsys, "ls", "default", "--dirs", "--config", str(config_file))

        assert code == 0
        assert [o["name"] for o in data["objects"]] == ["docs/", "docs/sub/"]

    def test_stat(
        self, capsys: pytest.CaptureFixture[str], config_file: Path, seeded_store: object
    ) -> None:
        code, data = _run(capsys, "stat", "_", "docs/a.txt", "--config", str(config_file))

        assert code == 0
        assert data["object"]["size"] == 1
        assert data["object"]["content_type"] == "text/plain"

    def test_stat_missing(self, capsys: pytest.CaptureFixture[str], config_file: Path) -> None:
        code, data = _run(capsys, "stat", "_", "nope.txt", "--config", str(config_file))

        assert code == 1
        assert data["error"]["code"] == "ObjectNotFoundError"


class TestBulkCommands:
    """Test B: archive and rm-prefix."""

    def test_archive(
        self,
        capsys: pytest.CaptureFixture[str],
        config_file: Path,
        seeded_store: object,
        tmp_path: Path,
    ) -> None:
        out = tmp_path / "docs.zip"

        code, data = _run(
            capsys, "archive", "_", "docs", "--out", str(out), "--config", str(config_file)
        )

        assert code == 0
        assert data["added"] == ["a.txt", "sub/b.txt"]
        assert data["failed"] == []
        with zipfile.ZipFile(out) as zf:
            assert zf.read("sub/b.txt") == b"B"

    def test_archive_default_filename(
        self,
        capsys: pytest.CaptureFixture[str],
        config_file: Path,
        seeded_store: object,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        workdir = tmp_path / "work"
        workdir.mkdir()
        monkeypatch.chdir(workdir)

        code, data = _run(capsys, "archive", "_", "docs/", "--config", str(config_file))

        assert code == 0
        assert data["out"] == "docs.zip"
        assert (workdir / "docs.zip").is_file()

    def test_archive_partial_failure(
        self,
        capsys: pytest.CaptureFixture[str],
        config_file: Path,
        seeded_store: FilesystemObjectStore,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            "fileservice.cli.create_store", lambda _: FlakyStore(seeded_store.base_dir)
        )
        out = tmp_path / "docs.zip"

        code, data = _run(
            capsys, "archive", "_", "docs", "--out", str(out), "--config", str(config_file)
        )

        assert code == 1
        assert data["added"] == ["sub/b.txt"]
        assert data["failed"][0]["name"] == "docs/a.txt"
        assert data["manifest"] == FAILURE_MANIFEST_NAME
        with zipfile.ZipFile(out) as zf:
            assert sorted(zf.namelist()) == [FAILURE_MANIFEST_NAME, "sub/b.txt"]

    def test_archive_listing_failure_removes_output(
        self, capsys: pytest.CaptureFixture[str], config_file: Path, tmp_path: Path
    ) -> None:
        out = tmp_path / "bad.zip"

        code, data = _run(
            capsys, "archive", "bad bucket", "d", "--out", str(out), "--config", str(config_file)
        )

        assert code == 1
        assert data["error"]["code"] == "InvalidArgumentError"
        assert not out.exists()

    def test_rm_prefix(
        self,
        capsys: pytest.CaptureFixture[str],
        config_file: Path,
        seeded_store: FilesystemObjectStore,
    ) -> None:
        code, data = _run(capsys, "rm-prefix", "_", "docs/", "--config", str(config_file))

        assert code == 0
        assert data["deleted"] == ["docs/", "docs/a.txt", "docs/sub/b.txt"]
        assert data["errors"] == []
        assert [r.name for r in seeded_store.list("default")] == ["top.txt"]


class TestFailures:
    """Test C: failures."""

    def test_missing_config_file(
        self, capsys: pytest.CaptureFixture[str], tmp_path: Path
    ) -> None:
        code, data = _run(capsys, "ls", "_", "--config", str(tmp_path / "missing.yaml"))

        assert code == 1
        assert data["error"]["code"] == "CONFIG_ERROR"

    def test_unknown_backend(self, capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("storage:\n  type: tape\n", encoding="utf-8")

        code, data = _run(capsys, "ls", "_", "--config", str(path))

        assert code == 1
        assert data["error"]["code"] == "STORAGE_CONFIG_ERROR"

    def test_invalid_bucket(self, capsys: pytest.CaptureFixture[str], config_file: Path) -> None:
        code, data = _run(capsys, "ls", "bad bucket", "--config", str(config_file))

        assert code == 1
        assert data["error"]["code"] == "InvalidArgumentError"

    def test_usage_error(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["stat"])

        assert exc_info.value.code == 2

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([]) == 0
        assert "usage:" in capsys.readouterr().out


class TestServe:
    """Test D: serve."""

    def test_serve_uses_config_host_and_port(
        self, config_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls: list[dict[str, Any]] = []

        def fake_run(app: Any, **kwargs: Any) -> None:
            calls.append({"app": app, **kwargs})

        monkeypatch.setattr("uvicorn.run", fake_run)

        assert main(["serve", "--config", str(config_file)]) == 0

        assert calls[0]["host"] == "127.0.0.1"
        assert calls[0]["port"] == 9300
        assert calls[0]["log_config"] is None
        assert calls[0]["app"].state.store.backend_name == "filesystem"

    def test_serve_flags_override_config(
        self, config_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls: list[dict[str, Any]] = []
        monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: calls.append(kwargs))

        main(["serve", "--host", "0.0.0.0", "--port", "8181", "--config", str(config_file)])

        assert calls[0]["host"] == "0.0.0.0"
        assert calls[0]["port"] == 8181
