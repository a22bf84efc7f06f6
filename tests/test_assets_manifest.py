"""Tests for assets/manifest.py module."""

import json
import os

import pytest

from execpack.assets.discovery import symbolic_name
from execpack.assets.manifest import (
    AssetManifest,
    embed_arguments,
    emit_json,
    emit_python_module,
    generate_asset_manifest,
    write_asset_manifest,
)
from execpack.errors import ManifestError
from execpack.types import Asset, AssetOrigin


def asset(route: str, origin: AssetOrigin = AssetOrigin.CLIENT, name: str = "") -> Asset:
    return Asset(
        file_path=f"/build/{origin.value}{route}",
        route_path=route,
        symbolic_name=name or symbolic_name(route),
        size_bytes=1,
        origin=origin,
    )


@pytest.fixture
def assets() -> list[Asset]:
    return [
        asset("/_app/immutable/app.js"),
        asset("/favicon.png"),
        asset("/index.html", AssetOrigin.PRERENDERED),
    ]


class TestGenerateAssetManifest:
    """Tests for generate_asset_manifest function."""

    def test_entries_in_order(self, assets):
        """Should keep one entry per asset in input order."""
        manifest = generate_asset_manifest(assets)

        assert list(manifest.asset_map) == [
            "/_app/immutable/app.js",
            "/favicon.png",
            "/index.html",
        ]
        assert manifest.asset_map["/favicon.png"] == symbolic_name("/favicon.png")

    def test_payloads(self, assets):
        """Every entry should reference a payload with its bundle locator."""
        manifest = generate_asset_manifest(assets)

        assert manifest.payload_map[symbolic_name("/index.html")] == "prerendered/index.html"
        assert [p.source for p in manifest.payloads] == [a.file_path for a in assets]
        assert set(manifest.asset_map.values()) == set(manifest.payload_map)

    def test_duplicate_route(self):
        """Should reject two assets with the same route."""
        with pytest.raises(ManifestError, match="Duplicate route"):
            generate_asset_manifest(
                [asset("/a.js"), asset("/a.js", AssetOrigin.PRERENDERED)]
            )

    def test_symbolic_name_collision(self):
        """Should reject two routes sharing a symbolic name."""
        with pytest.raises(ManifestError, match="shared by"):
            generate_asset_manifest(
                [asset("/a.js", name="same_JS_0000"), asset("/b.js", name="same_JS_0000")]
            )

    def test_empty(self):
        """Should produce an empty manifest for no assets."""
        manifest = generate_asset_manifest([])
        assert manifest.asset_map == {}
        assert manifest.payloads == ()


class TestEmitters:
    """Tests for manifest emitters."""

    def test_python_module_is_importable(self, assets):
        """The module should define ASSET_MAP and PAYLOADS."""
        manifest = generate_asset_manifest(assets)
        namespace: dict = {}
        exec(emit_python_module(manifest), namespace)

        assert namespace["ASSET_MAP"] == manifest.asset_map
        assert namespace["PAYLOADS"] == manifest.payload_map

    def test_python_module_is_idempotent(self, assets):
        """Same input should give byte-identical output."""
        first = emit_python_module(generate_asset_manifest(assets))
        second = emit_python_module(generate_asset_manifest(list(assets)))
        assert first == second

    def test_empty_python_module(self):
        """An empty manifest should still be importable."""
        namespace: dict = {}
        exec(emit_python_module(AssetManifest()), namespace)
        assert namespace["ASSET_MAP"] == {}
        assert namespace["PAYLOADS"] == {}

    def test_quoting(self):
        """Routes with quotes and backslashes should be escaped."""
        manifest = generate_asset_manifest([asset('/we"ird\\name.js')])
        namespace: dict = {}
        exec(emit_python_module(manifest), namespace)
        assert '/we"ird\\name.js' in namespace["ASSET_MAP"]

    def test_json(self, assets):
        """JSON output should preserve order."""
        data = json.loads(emit_json(generate_asset_manifest(assets)))
        assert list(data["assets"]) == [a.route_path for a in assets]
        assert len(data["payloads"]) == 3


class TestWriteAssetManifest:
    """Tests for write_asset_manifest function."""

    def test_write_twice_identical(self, tmp_path, assets):
        """Writing the same manifest twice should produce identical files."""
        manifest = generate_asset_manifest(assets)
        path = tmp_path / "runtime" / "assets_generated.py"

        write_asset_manifest(manifest, path)
        first = path.read_bytes()
        write_asset_manifest(generate_asset_manifest(assets), path)

        assert path.read_bytes() == first

    def test_json_format(self, tmp_path, assets):
        """Should write through the named emitter."""
        path = write_asset_manifest(
            generate_asset_manifest(assets), tmp_path / "assets.json", fmt="json"
        )
        assert json.loads(path.read_text())["assets"]

    def test_unknown_format(self, tmp_path):
        """Should reject unknown formats."""
        with pytest.raises(ManifestError, match="Unknown manifest format"):
            write_asset_manifest(AssetManifest(), tmp_path / "x", fmt="toml")


class TestEmbedArguments:
    """Tests for embed_arguments function."""

    def test_one_pair_per_payload(self, assets):
        """Each payload should map its source to its bundle directory."""
        pairs = embed_arguments(generate_asset_manifest(assets))

        assert len(pairs) == 3
        source, dest = pairs[0].rsplit(os.pathsep, 1)
        assert source == os.path.abspath("/build/client/_app/immutable/app.js")
        assert dest == "client/_app/immutable"
        assert pairs[2].endswith(os.pathsep + "prerendered")
