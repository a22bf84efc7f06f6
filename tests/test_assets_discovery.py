"""Tests for assets/discovery.py module."""

from pathlib import Path
from unittest.mock import patch

from execpack.assets import discovery
from execpack.assets.discovery import (
    analyze_assets,
    discover_assets,
    normalize_path,
    symbolic_name,
)
from execpack.errors import DiscoveryError
from execpack.types import Asset, AssetOrigin


def write_file(path: Path, content: bytes = b"x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


class TestSymbolicName:
    """Tests for symbolic_name function."""

    def test_format(self):
        """Should combine sanitized stem, extension and a 4-char digest."""
        name = symbolic_name("/_app/app.js")
        stem, ext, digest = name.rsplit("_", 2)
        assert stem == "app"
        assert ext == "JS"
        assert len(digest) == 4
        int(digest, 16)

    def test_same_basename_in_different_directories(self):
        """Files sharing a basename should get different names."""
        first = symbolic_name("/a/index.js")
        second = symbolic_name("/b/index.js")
        assert first != second
        assert first.startswith("index_JS_")
        assert second.startswith("index_JS_")

    def test_deterministic(self):
        """Same path should always give the same name."""
        assert symbolic_name("/x/y.css") == symbolic_name("/x/y.css")

    def test_special_characters_replaced(self):
        """Non-alphanumerics should collapse to single underscores."""
        assert symbolic_name("/my-file..name.css").startswith("my_file_name_CSS_")

    def test_leading_digit_prefixed(self):
        """Names starting with a digit should be prefixed."""
        assert symbolic_name("/404.html").startswith("asset_404_HTML_")

    def test_empty_stem(self):
        """A stem without identifier characters should become 'asset'."""
        assert symbolic_name("/---.js").startswith("asset_JS_")

    def test_backslashes_normalized(self):
        """Windows separators should not change the digest."""
        assert symbolic_name("a\\b\\c.js") == symbolic_name("a/b/c.js")

    def test_normalize_path(self):
        """Should use forward slashes and drop redundant segments."""
        assert normalize_path("a\\b\\.\\c.js") == "a/b/c.js"


class TestDiscoverAssets:
    """Tests for discover_assets function."""

    def test_client_then_prerendered(self, tmp_path):
        """Client assets should precede prerendered ones, breadth-first."""
        write_file(tmp_path / "client" / "app.js")
        write_file(tmp_path / "client" / "_app" / "immutable" / "x.js")
        write_file(tmp_path / "prerendered" / "index.html")
        write_file(tmp_path / "prerendered" / "about.html")

        assets = discover_assets(tmp_path / "client", tmp_path / "prerendered")

        assert [a.route_path for a in assets] == [
            "/app.js",
            "/_app/immutable/x.js",
            "/about.html",
            "/index.html",
        ]
        assert [a.origin for a in assets] == [
            AssetOrigin.CLIENT,
            AssetOrigin.CLIENT,
            AssetOrigin.PRERENDERED,
            AssetOrigin.PRERENDERED,
        ]

    def test_asset_fields(self, tmp_path):
        """Should record path, size, symbolic name and locator."""
        path = write_file(tmp_path / "client" / "css" / "site.css", b"body{}")

        (asset,) = discover_assets(tmp_path / "client", tmp_path / "prerendered")

        assert asset.file_path == str(path)
        assert asset.route_path == "/css/site.css"
        assert asset.size_bytes == 6
        assert asset.symbolic_name == symbolic_name("/css/site.css")
        assert asset.locator == "client/css/site.css"

    def test_missing_roots_are_empty(self, tmp_path):
        """Missing directories should yield no assets."""
        assert discover_assets(tmp_path / "nope", tmp_path / "none") == []

    def test_duplicate_route_keeps_client_copy(self, tmp_path):
        """A route in both roots should keep only the client asset."""
        write_file(tmp_path / "client" / "index.html")
        write_file(tmp_path / "prerendered" / "index.html")

        assets = discover_assets(tmp_path / "client", tmp_path / "prerendered")

        assert len(assets) == 1
        assert assets[0].origin == AssetOrigin.CLIENT

    def test_deterministic_order(self, tmp_path):
        """Repeated discovery should give identical results."""
        for name in ["b.js", "a.js", "c/d.js", "c/a.css", "e/f/g.png"]:
            write_file(tmp_path / "client" / name)

        first = discover_assets(tmp_path / "client", tmp_path / "prerendered")
        second = discover_assets(tmp_path / "client", tmp_path / "prerendered", 1)

        assert first == second

    def test_unreadable_directory_recovered_as_empty(self, tmp_path):
        """A directory that cannot be listed should be skipped."""
        write_file(tmp_path / "client" / "ok.js")
        write_file(tmp_path / "client" / "locked" / "secret.js")
        original = discovery._scan_directory

        def scan(directory):
            if directory.name == "locked":
                raise DiscoveryError(str(directory), "Permission denied")
            return original(directory)

        with patch.object(discovery, "_scan_directory", side_effect=scan):
            assets = discover_assets(tmp_path / "client", tmp_path / "prerendered")

        assert [a.route_path for a in assets] == ["/ok.js"]


class TestAnalyzeAssets:
    """Tests for analyze_assets function."""

    def _asset(self, route: str, size: int) -> Asset:
        return Asset(
            file_path=f"/build{route}",
            route_path=route,
            symbolic_name=symbolic_name(route),
            size_bytes=size,
            origin=AssetOrigin.CLIENT,
        )

    def test_summary(self):
        """Should count assets, sum sizes and group by extension."""
        assets = [
            self._asset("/a.js", 10),
            self._asset("/b.js", 20),
            self._asset("/big.png", 2 * 1024 * 1024),
            self._asset("/LICENSE", 5),
        ]

        analysis = analyze_assets(assets)

        assert analysis.total_assets == 4
        assert analysis.total_size == 35 + 2 * 1024 * 1024
        assert analysis.large_assets == [("/big.png", 2 * 1024 * 1024)]
        assert analysis.assets_by_type["js"] == (2, 30)
        assert analysis.assets_by_type["unknown"] == (1, 5)

    def test_empty(self):
        """Should handle no assets."""
        analysis = analyze_assets([])
        assert analysis.total_assets == 0
        assert analysis.total_size == 0
