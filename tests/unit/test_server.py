"""
Unit tests for the command line entry point and log formatting
"""

import argparse
import json
import logging
import os
import sys
from unittest.mock import patch

import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from tileserver.logging_setup import JsonFormatter
from tileserver.server import build_options, main, make_parser, parse_header


class TestParseHeader:
    def test_name_and_template(self):
        assert parse_header("Cache-Control=max-age={{ 60 * 60 }}") == ("Cache-Control", "max-age={{ 60 * 60 }}")

    def test_missing_separator(self):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_header("Cache-Control")


class TestBuildOptions:
    def test_cli_overrides_config_file(self, tmp_path):
        path = tmp_path / "params.yaml"
        path.write_text(
            "tileserver:\n"
            "  source: file:///from-file\n"
            "  port: 9000\n"
            "  headers:\n"
            "    X-A: a\n"
        )
        args = make_parser().parse_args(
            ["mbtiles:///cli.mbtiles", "--config", str(path), "--header", "X-B=b", "--timeout", "3", "--no-cors"]
        )
        opts = build_options(args)
        assert opts["source"] == "mbtiles:///cli.mbtiles"
        assert opts["port"] == 9000
        assert opts["headers"] == {"X-A": "a", "X-B": "b"}
        assert opts["source_timeout"] == 3.0
        assert opts["cors"] is False


class TestMain:
    @patch("tileserver.server.setup_logging")
    @patch("tileserver.server.uvicorn.run")
    def test_runs_uvicorn(self, mock_run, _setup):
        main(["file:///tiles", "--port", "8123", "--tile-path", "/t/{z}/{x}/{y}.{format}"])
        mock_run.assert_called_once()
        _, kwargs = mock_run.call_args
        assert kwargs["port"] == 8123
        app = mock_run.call_args[0][0]
        assert app.state.tileserver.pattern.template == "/t/{z}/{x}/{y}.{format}"

    @patch("tileserver.server.setup_logging")
    @patch("tileserver.server.uvicorn.run")
    def test_invalid_header_exits_before_serving(self, mock_run, _setup):
        with pytest.raises(SystemExit) as exc:
            main(["file:///tiles", "--header", "X-Bad={{ tile.zoom "])
        assert exc.value.code == 1
        mock_run.assert_not_called()

    @patch("tileserver.server.setup_logging")
    @patch("tileserver.server.uvicorn.run")
    def test_missing_source_exits(self, mock_run, _setup):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 1
        mock_run.assert_not_called()


def test_json_formatter():
    record = logging.LogRecord("tileserver.app", logging.WARNING, __file__, 1, "Invalid zoom: %d", (7,), None)
    payload = json.loads(JsonFormatter().format(record))
    assert payload["lvl"] == "WARNING"
    assert payload["name"] == "tileserver.app"
    assert payload["msg"] == "Invalid zoom: 7"
    assert "tile" not in payload


def test_json_formatter_request_context():
    record = logging.LogRecord("tileserver.app", logging.WARNING, __file__, 1, "Invalid zoom: %d", (7,), None)
    record.tile = {"zoom": 7, "x": 1, "y": 2, "format": "png", "retina": False}
    record.path = "/7/1/2.png"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["tile"] == {"zoom": 7, "x": 1, "y": 2, "format": "png", "retina": False}
    assert payload["path"] == "/7/1/2.png"
    assert "source" not in payload


def test_module_docstrings():
    import tileserver.server
    import tileserver.sources.http

    assert tileserver.server.__doc__.lstrip().startswith("Run the tile server.")
    assert tileserver.sources.http.__doc__.lstrip().startswith("Upstream XYZ tile proxy.")
