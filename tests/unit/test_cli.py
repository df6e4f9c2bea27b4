"""
Tests for the demo application started by ``python -m webapp``.
"""

import json

import pytest

from webapp import AppConfig, __version__
from webapp.__main__ import build_app, main


@pytest.fixture
def demo_config(tmp_path):
    return AppConfig(views_dir=str(tmp_path / "views"))


class TestBuildApp:
    """Routes of the demo application."""

    def test_index_without_template(self, dispatch, demo_config):
        writer = dispatch(build_app(demo_config), "GET", "/")

        assert writer.status == 200
        assert writer.headers["Content-Type"] == "text/html; charset=utf-8"
        assert f"webapp {__version__}".encode() in writer.body

    def test_index_template(self, dispatch, demo_config, tmp_path):
        (tmp_path / "views").mkdir()
        (tmp_path / "views" / "index.html").write_text("<p>v{{ version }}</p>")

        writer = dispatch(build_app(demo_config), "GET", "/")

        assert writer.body == f"<p>v{__version__}</p>".encode()

    def test_api_hello(self, dispatch, demo_config):
        writer = dispatch(build_app(demo_config), "GET", "/api/hello/ann")

        assert json.loads(writer.body) == {"message": "Hello, ann!"}
        assert writer.headers["Cache-Control"] == "no-store"

    def test_api_time(self, dispatch, demo_config):
        writer = dispatch(build_app(demo_config), "GET", "/api/time")

        assert isinstance(json.loads(writer.body)["time"], float)

    def test_api_headers_only_under_api(self, dispatch, demo_config):
        writer = dispatch(build_app(demo_config), "GET", "/")

        assert "Cache-Control" not in writer.headers

    def test_static_dir(self, dispatch, demo_config, tmp_path):
        public = tmp_path / "public"
        public.mkdir()
        (public / "robots.txt").write_text("User-agent: *")

        writer = dispatch(build_app(demo_config, str(public)), "GET", "/robots.txt")

        assert writer.body == b"User-agent: *"


class TestMain:
    """Argument handling of main()."""

    def test_options_reach_run(self, monkeypatch, tmp_path):
        calls = {}

        def fake_run(self, address=""):
            calls["address"] = address
            calls["config"] = self.config

        monkeypatch.setattr("webapp.app.Webapp.run", fake_run)
        monkeypatch.setattr(
            "sys.argv",
            ["webapp", "--port", "3000", "--workers", "2", "--views", str(tmp_path)],
        )

        main()

        assert calls["address"].endswith(":3000")
        assert calls["config"].min_workers == 2
        assert calls["config"].max_workers == 4
        assert calls["config"].views_dir == str(tmp_path)

    def test_bad_static_dir(self, monkeypatch, tmp_path):
        monkeypatch.setattr("sys.argv", ["webapp", "--static", str(tmp_path / "nope")])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 2
