"""Tests for plotpipe.rendering (SVG preview and model statistics).

Run:
    pytest tests/test_rendering.py -v
"""

import xml.etree.ElementTree as ET

import pytest

from plotpipe.config import CanvasConfig
from plotpipe.geometry import Arc, Circle, GeometryModel, Line
from plotpipe.rendering import model_stats, render_svg

from conftest import square_lines

SVG_NS = "{http://www.w3.org/2000/svg}"


@pytest.fixture
def small_canvas():
    return CanvasConfig(width=100.0, height=80.0)


def _parse(svg):
    return ET.fromstring(svg.encode("utf-8"))


class TestDocument:
    def test_canvas_size_and_flip(self, unit_square, small_canvas):
        root = _parse(render_svg(unit_square, small_canvas))
        assert root.get("width") == "100mm"
        assert root.get("height") == "80mm"
        assert root.get("viewBox") == "0 0 100 80"
        (flip,) = root.findall(f"{SVG_NS}g")
        assert flip.get("transform") == "matrix(1 0 0 -1 0 80)"
        assert len(root.findall(f".//{SVG_NS}line")) == 4

    def test_empty_model(self, small_canvas):
        root = _parse(render_svg(GeometryModel(), small_canvas))
        assert root.findall(f".//{SVG_NS}line") == []


class TestGroups:
    def test_child_origin_becomes_translate(self, small_canvas):
        child = GeometryModel(origin=(5.0, 2.5)).add_paths(square_lines(1.0))
        svg = render_svg(GeometryModel(models={"cell": child}), small_canvas)
        assert '<g id="cell" transform="translate(5 2.5)">' in svg

    def test_hidden_child_is_omitted(self, small_canvas):
        hidden = GeometryModel(visible=False).add_paths([Line((0.0, 0.0), (1.0, 0.0))])
        svg = render_svg(GeometryModel(models={"ghost": hidden}), small_canvas)
        assert "ghost" not in svg
        assert "<line" not in svg

    def test_fill_children_are_light(self, small_canvas):
        fill = GeometryModel().add_paths([Line((0.0, 0.5), (1.0, 0.5))])
        svg = render_svg(GeometryModel(models={"fill_0": fill}), small_canvas)
        assert '<g id="fill_0" stroke="#888" stroke-width="0.08">' in svg

    def test_layer_stroke(self, small_canvas):
        layer = GeometryModel(stroke="#00f", stroke_width=0.5).add_paths([Line((0.0, 0.0), (1.0, 0.0))])
        svg = render_svg(GeometryModel(models={"layer_ink": layer}), small_canvas)
        assert '<g id="layer_ink" stroke="#00f" stroke-width="0.5">' in svg


class TestElements:
    def test_line_numbers_are_trimmed(self, small_canvas):
        svg = render_svg(GeometryModel().add_paths([Line((0.0, -0.0001), (12.5, 3.0))]), small_canvas)
        assert '<line x1="0" y1="0" x2="12.5" y2="3"/>' in svg

    def test_circle(self, small_canvas):
        svg = render_svg(GeometryModel().add_paths([Circle((10.0, 10.0), 5.0)]), small_canvas)
        assert '<circle cx="10" cy="10" r="5"/>' in svg

    def test_full_turn_arc_is_a_circle(self, small_canvas):
        svg = render_svg(GeometryModel().add_paths([Arc((10.0, 10.0), 5.0, 30.0, 390.0)]), small_canvas)
        assert "<circle" in svg

    def test_arc_path(self, small_canvas):
        svg = render_svg(GeometryModel().add_paths([Arc((10.0, 0.0), 2.0, 0.0, 90.0)]), small_canvas)
        assert '<path d="M 12 0 A 2 2 0 0 1 10 2"/>' in svg

    def test_large_arc_flag(self, small_canvas):
        svg = render_svg(GeometryModel().add_paths([Arc((10.0, 0.0), 2.0, 0.0, 270.0)]), small_canvas)
        assert " A 2 2 0 1 1 " in svg


def test_model_stats(unit_square):
    child = GeometryModel(origin=(10.0, 0.0)).add_paths(square_lines(2.0))
    unit_square.models["c"] = child
    stats = model_stats(unit_square)
    assert stats["paths"] == 8
    assert stats["models"] == 2
    assert stats["length_mm"] == pytest.approx(12.0)
    assert stats["extents"] == (0.0, 0.0, 12.0, 2.0)


def test_model_stats_empty():
    assert model_stats(GeometryModel())["extents"] is None
