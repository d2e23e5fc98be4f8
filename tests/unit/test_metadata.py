"""
Unit tests for source metadata normalization
"""

import math
import os
import sys
from unittest.mock import Mock

import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from tileserver.metadata import TileMetadata, get_extension, get_info, normalize_info


class TestNormalizeInfo:
    """Test cases for normalize_info"""

    def test_defaults_for_empty_metadata(self):
        """Every missing field gets its documented default"""
        meta = normalize_info({})
        assert meta.name == "Untitled"
        assert meta.center == (-122.4440, 37.7908, 12)
        assert meta.bounds == (-180, -85.0511, 180, 85.0511)
        assert meta.format == "png"
        assert meta.minzoom == 0
        assert meta.maxzoom == math.inf

    def test_vector_layers_force_pbf(self):
        """Non-empty vector_layers wins over an explicit format"""
        meta = normalize_info({"format": "png", "vector_layers": [{"id": "roads"}]})
        assert meta.format == "pbf"
        assert meta.extension == "pbf"

    def test_empty_vector_layers_keep_format(self):
        meta = normalize_info({"format": "jpg", "vector_layers": []})
        assert meta.format == "jpg"

    def test_minzoom_clamped_and_truncated(self):
        assert normalize_info({"minzoom": -3}).minzoom == 0
        assert normalize_info({"minzoom": 3.7}).minzoom == 3
        assert normalize_info({"minzoom": "4"}).minzoom == 4
        assert normalize_info({"minzoom": "abc"}).minzoom == 0

    def test_falsy_maxzoom_is_unbounded(self):
        assert normalize_info({"maxzoom": 0}).maxzoom == math.inf
        assert normalize_info({"maxzoom": None}).maxzoom == math.inf
        assert normalize_info({"maxzoom": 14}).maxzoom == 14
        assert normalize_info({"maxzoom": "14"}).maxzoom == 14

    def test_non_numeric_maxzoom_is_unbounded(self):
        assert normalize_info({"maxzoom": "abc"}).maxzoom == math.inf
        assert normalize_info({"maxzoom": ["z"]}).maxzoom == math.inf

    def test_string_bounds_and_center(self):
        """MBTiles stores bounds/center as comma separated strings"""
        meta = normalize_info({"bounds": "-10,-5,10,5", "center": "0,0,3"})
        assert meta.bounds == (-10.0, -5.0, 10.0, 5.0)
        assert meta.center == (0.0, 0.0, 3.0)

    def test_extra_keys_preserved(self):
        meta = normalize_info({"name": "World", "attribution": "OSM", "scheme": "xyz"})
        assert meta.name == "World"
        assert meta.extra == {"attribution": "OSM", "scheme": "xyz"}

    def test_raw_metadata_not_mutated(self):
        raw = {"vector_layers": [{"id": "water"}], "format": "png"}
        normalize_info(raw)
        assert raw["format"] == "png"


class TestTileJson:
    def test_infinite_maxzoom_serialized_as_null(self):
        doc = normalize_info({"attribution": "x"}).to_tilejson()
        assert doc["maxzoom"] is None
        assert doc["attribution"] == "x"
        assert doc["bounds"] == [-180, -85.0511, 180, 85.0511]

    def test_typed_fields_override_extras(self):
        meta = TileMetadata(name="Typed", extra={"name": "raw"})
        assert meta.to_tilejson()["name"] == "Typed"


class TestGetExtension:
    @pytest.mark.parametrize("fmt", ["png", "png8", "png32", "png256"])
    def test_png_variants(self, fmt):
        assert get_extension(fmt) == "png"

    def test_other_formats_unchanged(self):
        assert get_extension("jpg") == "jpg"
        assert get_extension("pbf") == "pbf"
        assert get_extension("webp") == "webp"

    def test_none(self):
        assert get_extension(None) == ""


class TestGetInfo:
    def test_calls_source(self):
        source = Mock()
        source.get_info.return_value = {"name": "Mocked", "maxzoom": 5}
        meta = get_info(source)
        assert meta.name == "Mocked"
        assert meta.maxzoom == 5

    def test_source_error_propagates(self):
        source = Mock()
        source.get_info.side_effect = IOError("disk gone")
        with pytest.raises(IOError, match="disk gone"):
            get_info(source)
