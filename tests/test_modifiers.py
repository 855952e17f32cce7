"""Tests for plotpipe.modifiers.

Each modifier is called through ``apply_modifier`` with a bare
``StepContext`` so the tests do not depend on the pipeline executor.

Run:
    pytest tests/test_modifiers.py -v
"""

import pytest

from plotpipe.config import PipelineStep
from plotpipe.errors import ConfigError
from plotpipe.geometry import Circle, GeometryModel, Line, Transform, transform_model
from plotpipe.masks import MaskField
from plotpipe.modifiers import MODIFIERS, StepContext, apply_modifier
from plotpipe.noise import NoisePatterns

from conftest import square_lines


@pytest.fixture
def ctx(bounds):
    return StepContext(bounds=bounds, seed=0)


def _segment_model(*lines):
    return GeometryModel().add_paths(lines)


def _abs_lines(model):
    return [item.absolute for item in model.walk()]


def test_registry_contains_all_modifiers():
    expected = {
        "move", "rotate", "mirror", "scale", "array", "clip", "resample", "simplify",
        "trim", "warp", "noise", "fill", "hatch-fill", "duplicate", "layer", "clone",
    }
    assert expected <= set(MODIFIERS)


def test_unknown_modifier(ctx):
    with pytest.raises(ConfigError):
        apply_modifier("melt", GeometryModel(), {}, ctx)


# --- affine ----------------------------------------------------------------


class TestAffine:
    def test_move(self, ctx):
        model = _segment_model(Line((0.0, 0.0), (1.0, 0.0)))
        apply_modifier("move", model, {"x": 5, "y": -2}, ctx)
        assert _abs_lines(model) == [Line((5.0, -2.0), (6.0, -2.0))]

    def test_rotate_about_draw_area_center(self, ctx):
        model = _segment_model(Line((10.0, 10.0), (20.0, 10.0)))
        apply_modifier("rotate", model, {"rotation": 180}, ctx)
        (line,) = _abs_lines(model)
        assert line.start == pytest.approx((90.0, 90.0))
        assert line.end == pytest.approx((80.0, 90.0))

    def test_mirror_x(self, ctx):
        model = _segment_model(Line((10.0, 10.0), (20.0, 10.0)))
        apply_modifier("mirror", model, {"axis": "x"}, ctx)
        (line,) = _abs_lines(model)
        assert line.start == pytest.approx((90.0, 10.0))

    def test_mirror_bad_axis(self, ctx):
        with pytest.raises(ConfigError):
            apply_modifier("mirror", GeometryModel(), {"axis": "z"}, ctx)

    def test_scale_zero_rejected(self, ctx):
        model = _segment_model(Line((10.0, 10.0), (20.0, 10.0)))
        with pytest.raises(ConfigError):
            apply_modifier("scale", model, {"scale": 0}, ctx)
        assert _abs_lines(model) == [Line((10.0, 10.0), (20.0, 10.0))]

    def test_scale_about_center(self, ctx):
        model = _segment_model(Line((40.0, 50.0), (60.0, 50.0)))
        apply_modifier("scale", model, {"scale": 2}, ctx)
        (line,) = _abs_lines(model)
        assert line.start == pytest.approx((30.0, 50.0))
        assert line.end == pytest.approx((70.0, 50.0))

    def test_array(self, ctx):
        model = _segment_model(Line((0.0, 0.0), (1.0, 0.0)))
        result = apply_modifier("array", model, {"count": 3, "x": 10}, ctx)
        assert sorted(result.models) == ["array_0", "array_1", "array_2"]
        starts = sorted(line.start for line in _abs_lines(result))
        assert starts == [(0.0, 0.0), (10.0, 0.0), (20.0, 0.0)]


# --- topological -----------------------------------------------------------


class TestClip:
    def test_clip_to_bounds(self, ctx):
        model = _segment_model(Line((-10.0, 50.0), (110.0, 50.0)))
        apply_modifier("clip", model, {}, ctx)
        (line,) = _abs_lines(model)
        assert line.start == pytest.approx((0.0, 50.0))
        assert line.end == pytest.approx((100.0, 50.0))

    def test_clip_with_margin_removes_outside(self, ctx):
        model = _segment_model(Line((0.0, 2.0), (100.0, 2.0)), Line((0.0, 50.0), (100.0, 50.0)))
        apply_modifier("clip", model, {"margin": 5}, ctx)
        (line,) = _abs_lines(model)
        assert line.start == pytest.approx((5.0, 50.0))
        assert line.end == pytest.approx((95.0, 50.0))

    def test_clip_keeps_child_frame(self, ctx):
        child = GeometryModel(origin=(50.0, 0.0)).add_paths([Line((0.0, 50.0), (100.0, 50.0))])
        model = GeometryModel(models={"c": child})
        apply_modifier("clip", model, {}, ctx)
        assert child.paths["p_0"] == Line((0.0, 50.0), (50.0, 50.0))

    def test_clip_circle_into_arcs(self, ctx):
        model = _segment_model(Circle((0.0, 50.0), 10.0))
        apply_modifier("clip", model, {}, ctx)
        assert model.path_count() == 1
        ext = model.extents()
        assert ext.x == pytest.approx(0.0, abs=1e-9)


class TestResample:
    def test_splits_long_lines(self, ctx):
        model = _segment_model(Line((0.0, 0.0), (10.0, 0.0)))
        apply_modifier("resample", model, {"detail": 2}, ctx)
        assert model.path_count() == 5
        assert model.total_length() == pytest.approx(10.0)

    def test_idempotent(self, ctx):
        model = GeometryModel().add_paths(square_lines(7.3) + [Circle((50.0, 50.0), 12.0)])
        apply_modifier("resample", model, {"detail": 2}, ctx)
        once = model.path_count()
        apply_modifier("resample", model, {"detail": 2}, ctx)
        assert model.path_count() == once

    def test_curves_become_lines(self, ctx):
        model = _segment_model(Circle((50.0, 50.0), 5.0))
        apply_modifier("resample", model, {"detail": 1}, ctx)
        assert all(isinstance(item.path, Line) for item in model.walk())

    def test_non_positive_detail(self, ctx):
        with pytest.raises(ConfigError):
            apply_modifier("resample", GeometryModel(), {"detail": 0}, ctx)


def test_simplify_drops_short_lines(ctx):
    model = _segment_model(Line((0.0, 0.0), (0.1, 0.0)), Line((0.0, 0.0), (5.0, 0.0)))
    apply_modifier("simplify", model, {"tolerance": 0.5}, ctx)
    assert model.path_count() == 1


# --- mask driven -----------------------------------------------------------


class TestTrim:
    def _many_lines(self):
        return GeometryModel().add_paths(Line((float(i), 0.0), (float(i), 10.0)) for i in range(100))

    def test_fixed_threshold_with_empty_mask(self, bounds):
        model = self._many_lines()
        ctx = StepContext(bounds=bounds, mask=MaskField.constant(0.0))
        apply_modifier("trim", model, {"random": False, "threshold": 0.5}, ctx)
        assert model.path_count() == 0

    def test_fixed_threshold_with_full_mask(self, bounds):
        model = self._many_lines()
        ctx = StepContext(bounds=bounds, mask=MaskField.constant(1.0))
        apply_modifier("trim", model, {"random": False}, ctx)
        assert model.path_count() == 100

    def test_random_is_seeded(self, bounds):
        ctx = StepContext(bounds=bounds, seed=9, mask=MaskField.constant(0.5))
        a, b = self._many_lines(), self._many_lines()
        apply_modifier("trim", a, {}, ctx)
        apply_modifier("trim", b, {}, ctx)
        assert sorted(a.paths) == sorted(b.paths)
        assert 0 < a.path_count() < 100


class TestWarp:
    @pytest.mark.parametrize("kind", ["bulge", "pinch", "twist", "wave", "noise", "marble", "cells"])
    def test_shared_endpoints_stay_shared(self, ctx, kind):
        model = _segment_model(Line((20.0, 30.0), (40.0, 35.0)), Line((40.0, 35.0), (60.0, 20.0)))
        apply_modifier("warp", model, {"type": kind, "strength": 8}, ctx)
        first, second = _abs_lines(model)
        assert first.end == second.start

    def test_zero_mask_leaves_model(self, bounds):
        ctx = StepContext(bounds=bounds, mask=MaskField.constant(0.0))
        model = _segment_model(Line((20.0, 30.0), (40.0, 35.0)))
        apply_modifier("warp", model, {"type": "bulge"}, ctx)
        assert _abs_lines(model) == [Line((20.0, 30.0), (40.0, 35.0))]

    def test_curves_are_flattened(self, ctx):
        model = _segment_model(Circle((50.0, 50.0), 10.0))
        apply_modifier("warp", model, {"type": "twist"}, ctx)
        assert model.path_count() > 1
        assert all(isinstance(item.path, Line) for item in model.walk())

    def test_unknown_type(self, ctx):
        with pytest.raises(ConfigError):
            apply_modifier("warp", _segment_model(Line((0.0, 0.0), (1.0, 1.0))), {"type": "melt"}, ctx)


def test_noise_single_axis(ctx):
    model = _segment_model(Line((10.0, 10.0), (30.0, 40.0)))
    apply_modifier("noise", model, {"axis": "x", "magnitude": 5}, ctx)
    (line,) = _abs_lines(model)
    assert line.start[1] == 10.0 and line.end[1] == 40.0


def test_noise_y_axis_uses_its_own_generator(ctx):
    model = _segment_model(Line((10.0, 10.0), (30.0, 40.0)))
    apply_modifier("noise", model, {"axis": "y", "magnitude": 5}, ctx)
    (line,) = _abs_lines(model)
    gen_y = NoisePatterns(1000)
    # offset of 100 / scale keeps the y field away from the x field's origin
    expected = 10.0 + gen_y.simplex(10.0 + 2000.0, 10.0 + 2000.0, 0.05) * 5.0
    assert line.start == pytest.approx((10.0, expected))


def test_noise_bad_axis(ctx):
    with pytest.raises(ConfigError):
        apply_modifier("noise", GeometryModel(), {"axis": "z"}, ctx)


# --- fill and layering -----------------------------------------------------


def test_fill_adds_child(ctx):
    model = GeometryModel().add_paths(square_lines(10.0))
    apply_modifier("fill", model, {"spacing": 1}, ctx)
    assert "fill_0" in model.models
    assert model.models["fill_0"].path_count() == 9


def test_fill_rejects_bad_spacing(ctx):
    with pytest.raises(ConfigError):
        apply_modifier("hatch-fill", GeometryModel().add_paths(square_lines(10.0)), {"spacing": -1}, ctx)


class TestLayering:
    def test_duplicate_without_nested_steps(self, ctx):
        model = GeometryModel().add_paths(square_lines(10.0))
        apply_modifier("duplicate", model, {}, ctx)
        assert model.path_count() == 8
        assert model.models["duplicate_0"].origin == (0.0, 0.0)

    def test_nested_steps_run_on_the_copy(self, bounds):
        calls = []

        def runner(target, steps, seed):
            calls.append((len(steps), seed))
            return transform_model(target, Transform.translation(5.0, 0.0))

        ctx = StepContext(
            bounds=bounds,
            seed=4,
            nested=[PipelineStep(tool="move", params={"x": 5})],
            run_nested=runner,
        )
        model = GeometryModel(origin=(10.0, 0.0)).add_paths([Line((0.0, 0.0), (1.0, 0.0))])
        apply_modifier("layer", model, {"id": "shadow", "stroke": "#f00"}, ctx)
        assert calls == [(1, 4)]
        shadow = model.models["shadow"]
        assert shadow.stroke == "#f00"
        assert shadow.origin == (5.0, 0.0)
        lines = sorted(line.start for line in _abs_lines(model))
        assert lines == [(10.0, 0.0), (15.0, 0.0)]
