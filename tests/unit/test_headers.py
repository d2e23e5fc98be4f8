"""
Unit tests for templated response headers
"""

import logging
import os
import sys

import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from tileserver.config import ConfigurationError
from tileserver.headers import HeaderTemplateError, HeaderTemplater, normalize_headers, status_flags


PARAMS = {"tile": {"zoom": 3, "x": 4, "y": 5, "format": "png", "retina": False}}


class TestCompile:
    """Startup-time compilation"""

    def test_empty(self):
        templater = HeaderTemplater.compile({})
        assert len(templater) == 0
        assert templater.render({"A": "1"}, PARAMS) == {"a": "1"}

    def test_undefined_references_pass_smoke_test(self):
        """Templates referencing request parameters render empty without arguments"""
        templater = HeaderTemplater.compile({"X-Tile": "{{ tile.zoom }}/{{ tile.x }}/{{ tile.y }}"})
        assert templater.names == ("X-Tile",)

    def test_syntax_error_fails_fast(self, caplog):
        with caplog.at_level(logging.ERROR):
            with pytest.raises(HeaderTemplateError) as exc:
                HeaderTemplater.compile({"X-Broken": "{{ tile.zoom "})
        assert exc.value.name == "X-Broken"
        assert "X-Broken" in caplog.text

    def test_render_error_fails_fast(self):
        with pytest.raises(HeaderTemplateError, match="X-Div"):
            HeaderTemplater.compile({"X-Div": "{{ 1 // 0 }}"})

    def test_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            HeaderTemplater.compile({"X-Bad": "{% if %}"})


class TestRender:
    """Per-request rendering"""

    def test_renders_tile_params(self):
        templater = HeaderTemplater.compile({"X-Tile": "{{ tile.zoom }}/{{ tile.x }}/{{ tile.y }}.{{ tile.format }}"})
        assert templater.render({}, PARAMS)["x-tile"] == "3/4/5.png"

    def test_flags_merged(self):
        templater = HeaderTemplater.compile(
            {"Cache-Control": "{% if status == 404 %}no-cache{% else %}max-age=60{% endif %}",
             "X-Why": "{% if invalidZoom %}zoom{% endif %}"}
        )
        miss = templater.render({}, PARAMS, status=404, invalidZoom=True)
        assert miss == {"cache-control": "no-cache", "x-why": "zoom"}
        hit = templater.render({}, PARAMS, status=200)
        assert hit == {"cache-control": "max-age=60"}

    def test_status_key_in_flags(self):
        templater = HeaderTemplater.compile(
            {"Cache-Control": "{% if flags['404'] %}no-cache{% elif flags['200'] %}max-age=60{% endif %}",
             "X-Zoom": "{% if flags.invalidZoom %}bad{% endif %}"}
        )
        assert templater.render({}, PARAMS, status=404, invalidZoom=True) == {"cache-control": "no-cache", "x-zoom": "bad"}
        assert templater.render({}, PARAMS, status=200) == {"cache-control": "max-age=60"}

    def test_booleans_render_lower_case(self):
        templater = HeaderTemplater.compile({"X-Retina": "{{ tile.retina }}", "X-Json": "{{ tileJSON }}"})
        out = templater.render({}, PARAMS, tileJSON=True)
        assert out == {"x-retina": "false", "x-json": "true"}

    def test_empty_value_not_set(self):
        templater = HeaderTemplater.compile({"X-Maybe": "{% if tileJSON %}yes{% endif %}"})
        assert "x-maybe" not in templater.render({}, PARAMS, status=200)

    def test_overwrites_existing_header_case_insensitively(self):
        templater = HeaderTemplater.compile({"cache-control": "public"})
        out = templater.render({"Cache-Control": "no-store", "ETag": "abc"}, PARAMS)
        assert out == {"cache-control": "public", "etag": "abc"}

    def test_params_not_mutated(self):
        templater = HeaderTemplater.compile({"X-Status": "{{ status }}"})
        params = dict(PARAMS)
        templater.render({}, params, status=404)
        assert "status" not in params

    def test_input_headers_not_mutated(self):
        templater = HeaderTemplater.compile({"X-A": "a"})
        headers = {"X-B": "b"}
        templater.render(headers, PARAMS)
        assert headers == {"X-B": "b"}


def test_normalize_headers():
    assert normalize_headers({"Content-Type": "image/png", "X-A": 1}) == {"content-type": "image/png", "x-a": 1}
    assert normalize_headers(None) == {}


def test_status_flags():
    assert status_flags({"status": 404, "invalidZoom": True}) == {"status": 404, "invalidZoom": True, "404": True}
    assert status_flags({"tileJSON": True}) == {"tileJSON": True}
