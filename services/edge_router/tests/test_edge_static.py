"""
Tests for production static asset serving
"""

import os

import pytest

from shared.utils.config import load_edge_settings
from shared.utils.errors import ConfigurationError
from services.edge_router.app.main import create_app
from services.edge_router.app.utils.static_files import StaticAssetResolver

from .conftest import APP_JS, INDEX_HTML


class TestStaticServing:
    """Test serving the prebuilt bundle through the router"""

    def test_asset_is_served(self, prod_client, upstream):
        response = prod_client.get("/assets/app.3f9c.js")

        assert response.status_code == 200
        assert response.text == APP_JS
        assert "javascript" in response.headers["content-type"]
        assert upstream.requests == []

    def test_hashed_assets_are_cached_long(self, prod_client):
        response = prod_client.get("/assets/app.3f9c.js")
        assert response.headers["cache-control"] == "public, max-age=31536000, immutable"

    def test_other_files_are_revalidated(self, prod_client):
        response = prod_client.get("/robots.txt")

        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-cache"

    def test_root_serves_entry_document(self, prod_client):
        response = prod_client.get("/")

        assert response.status_code == 200
        assert response.text == INDEX_HTML
        assert response.headers["content-type"].startswith("text/html")

    @pytest.mark.parametrize("path", ["/dashboard", "/settings/profile", "/assets/missing.js", "/apiary"])
    def test_unknown_paths_fall_back_to_entry_document(self, prod_client, path):
        response = prod_client.get(path)

        assert response.status_code == 200
        assert response.text == INDEX_HTML
        assert response.headers["cache-control"] == "no-cache"

    def test_head_request(self, prod_client):
        response = prod_client.head("/assets/app.3f9c.js")

        assert response.status_code == 200
        assert response.content == b""

    def test_write_methods_are_not_allowed(self, prod_client):
        response = prod_client.post("/dashboard", json={})

        assert response.status_code == 405
        assert response.json() == {"error": "Method Not Allowed"}
        assert response.headers["allow"] == "GET, HEAD"

    def test_symlink_out_of_root_is_not_followed(self, prod_client, static_root, tmp_path):
        secret = tmp_path / "secret.txt"
        secret.write_text("do not serve")
        os.symlink(secret, static_root / "leak.txt")

        response = prod_client.get("/leak.txt")

        assert "do not serve" not in response.text
        assert response.text == INDEX_HTML


class TestStaticAssetResolver:
    """Test path resolution against the static root"""

    def test_resolves_file_in_root(self, static_root):
        resolver = StaticAssetResolver(str(static_root))
        assert resolver.resolve("/robots.txt") == (static_root / "robots.txt").resolve()

    @pytest.mark.parametrize("path", [
        "/../secret.txt",
        "/assets/../../secret.txt",
        "/assets",
        "/",
        "/index.html\x00.js",
    ])
    def test_rejects_paths_outside_or_non_files(self, static_root, tmp_path, path):
        (tmp_path / "secret.txt").write_text("x")
        resolver = StaticAssetResolver(str(static_root))
        assert resolver.resolve(path) is None

    def test_missing_root(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            StaticAssetResolver(str(tmp_path / "dist"))
        assert exc_info.value.fields == ("STATIC_ROOT",)

    def test_missing_entry_document(self, tmp_path):
        (tmp_path / "dist").mkdir()
        with pytest.raises(ConfigurationError) as exc_info:
            StaticAssetResolver(str(tmp_path / "dist"))
        assert exc_info.value.fields == ("ENTRY_DOCUMENT",)

    def test_router_refuses_to_start_without_bundle(self, tmp_path):
        settings = load_edge_settings(deployment_mode="production", static_root=str(tmp_path / "dist"))
        with pytest.raises(ConfigurationError):
            create_app(settings)
