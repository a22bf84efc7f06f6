"""Tests for builds/artifacts.py module.

Tests file hashing and build-info generation.
"""

import hashlib
import json

from execpack import __version__
from execpack.builds.artifacts import (
    compute_file_hash,
    describe_artifact,
    generate_build_info,
    write_build_info,
)
from execpack.types import ArtifactInfo


class TestComputeFileHash:
    """Tests for compute_file_hash function."""

    def test_matches_hashlib(self, tmp_path):
        """Should equal the SHA-256 of the content."""
        path = tmp_path / "app"
        content = b"binary content" * 10000
        path.write_bytes(content)
        assert compute_file_hash(path) == hashlib.sha256(content).hexdigest()

    def test_small_chunks(self, tmp_path):
        """Chunk size should not change the digest."""
        path = tmp_path / "app"
        path.write_bytes(b"abcdefgh")
        assert compute_file_hash(path, chunk_size=3) == compute_file_hash(path)

    def test_empty_file(self, tmp_path):
        """Should hash empty files."""
        path = tmp_path / "empty"
        path.write_bytes(b"")
        assert compute_file_hash(path) == hashlib.sha256(b"").hexdigest()


class TestDescribeArtifact:
    """Tests for describe_artifact function."""

    def test_fields(self, tmp_path):
        """Should report name, relative path, size and digest."""
        path = tmp_path / "dist" / "app"
        path.parent.mkdir()
        path.write_bytes(b"12345")

        info = describe_artifact(path, tmp_path)

        assert info.filename == "app"
        assert info.relative_path == "dist/app"
        assert info.size_bytes == 5
        assert info.sha256 == hashlib.sha256(b"12345").hexdigest()

    def test_default_root(self, tmp_path):
        """Without a root the relative path is the file name."""
        path = tmp_path / "app"
        path.write_bytes(b"x")
        assert describe_artifact(path).relative_path == "app"


class TestBuildInfo:
    """Tests for build-info generation and writing."""

    def _binary(self) -> ArtifactInfo:
        return ArtifactInfo(
            filename="app", relative_path="app", size_bytes=42, sha256="ab" * 32
        )

    def test_generate(self):
        """Should describe the binary and build options."""
        info = generate_build_info(
            self._binary(), asset_count=3, embed_static=True, target="linux-x64"
        )

        assert info["version"] == "1.0"
        assert info["generator"] == f"execpack {__version__}"
        assert info["binary"]["size_bytes"] == 42
        assert info["asset_count"] == 3
        assert info["embed_static"] is True
        assert info["target"] == "linux-x64"
        assert "generated_at" in info
        assert "metadata" not in info

    def test_extra_metadata(self):
        """Should include extra metadata when given."""
        info = generate_build_info(
            self._binary(), 0, False, extra_metadata={"routing": {"app_dir": "_app"}}
        )
        assert info["metadata"]["routing"]["app_dir"] == "_app"

    def test_write(self, tmp_path):
        """Should write sorted JSON, creating parent directories."""
        info = generate_build_info(self._binary(), 1, True)
        path = write_build_info(info, tmp_path / "out" / "build-info.json")

        data = json.loads(path.read_text())
        assert data["binary"]["sha256"] == "ab" * 32
        assert list(data) == sorted(data)
