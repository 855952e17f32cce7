"""Tests for SVG import (plotpipe.svg_loader and the ``svg`` generator).

Run:
    pytest tests/test_svg_loader.py -v
"""

import pytest

from plotpipe.errors import ConfigError
from plotpipe.generators import generate
from plotpipe.geometry import Box
from plotpipe.svg_loader import SVGDocument, load_svg_model

ARTWORK = """<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" width="100" height="50">
  <path d="M 0 0 L 100 0" stroke="#f00"/>
  <path d="M 0 50 L 100 50" stroke="#00f"/>
  <path d="M 0 0 L 0 50" stroke="#f00" stroke-width="2"/>
</svg>
"""


@pytest.fixture
def artwork(tmp_path):
    path = tmp_path / "art.svg"
    path.write_text(ARTWORK, encoding="utf-8")
    return path


def test_document_groups_by_stroke(artwork):
    document = SVGDocument.from_file(artwork)
    assert len(document.shapes) == 3
    groups = document.group_by_color()
    assert [len(shapes) for shapes in groups.values()] == [2, 1]
    assert document.bounds() == pytest.approx((0.0, 100.0, 0.0, 50.0))


def test_model_children_carry_colors(artwork):
    model = load_svg_model(artwork, tolerance=1.0)
    assert sorted(model.models) == ["color_0", "color_1"]
    assert model.models["color_0"].stroke == "#f00"
    assert model.total_length() == pytest.approx(250.0)


def test_model_children_carry_stroke_width(artwork):
    document = SVGDocument.from_file(artwork)
    assert [shape.stroke_width for shape in document.shapes] == [1.0, 1.0, 2.0]
    model = document.to_model(tolerance=1.0)
    assert model.models["color_0"].stroke_width == 2.0
    assert model.models["color_1"].stroke_width == 1.0


def test_y_axis_is_flipped(artwork):
    model = load_svg_model(artwork, tolerance=10.0)
    red = model.models["color_0"]
    # the top edge of the document (svg y = 0) ends up at the top
    top = [p for key, p in red.paths.items() if key.startswith("s0_")]
    assert all(p.start[1] == pytest.approx(50.0) for p in top)


def test_generator_fits_draw_area(artwork):
    model = generate("svg", {"file": str(artwork)}, 0, Box(0.0, 0.0, 200.0, 200.0))
    ext = model.extents()
    assert ext.width == pytest.approx(200.0)
    assert ext.center == pytest.approx((100.0, 100.0))


def test_generator_without_fit(artwork):
    model = generate("svg", {"file": str(artwork), "fit": False}, 0, Box(0.0, 0.0, 200.0, 200.0))
    ext = model.extents()
    assert (ext.width, ext.height) == pytest.approx((100.0, 50.0))


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        generate("svg", {"file": str(tmp_path / "none.svg")}, 0, Box(0.0, 0.0, 100.0, 100.0))


def test_file_parameter_required():
    with pytest.raises(ConfigError):
        generate("svg", {}, 0, Box(0.0, 0.0, 100.0, 100.0))
