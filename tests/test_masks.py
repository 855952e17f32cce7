"""Tests for plotpipe.masks and plotpipe.noise.

Run:
    pytest tests/test_masks.py -v
"""

import pytest

from plotpipe.config import MaskConfig
from plotpipe.errors import ConfigError
from plotpipe.masks import MASK_TYPES, MaskField
from plotpipe.noise import NOISE_TYPES, NoiseParams, NoisePatterns, seeded_random


def _mask(data, bounds, seed=0):
    return MaskField.from_config(MaskConfig.from_dict(data), bounds, seed)


class TestMaskTypes:
    def test_radial_peaks_at_center(self, bounds):
        field = _mask({"type": "radial", "radius": 0.5}, bounds)
        assert field(50.0, 50.0) == pytest.approx(1.0)
        assert field(100.0, 50.0) == pytest.approx(0.0)
        assert 0.0 < field(75.0, 50.0) < 1.0

    def test_linear_ramps_along_angle(self, bounds):
        field = _mask({"type": "linear", "angle": 0}, bounds)
        assert field(0.0, 50.0) < field(50.0, 50.0) < field(100.0, 50.0)
        assert field(50.0, 50.0) == pytest.approx(0.5)

    def test_border_fades_at_edges(self, bounds):
        field = _mask({"type": "border", "size": 0.1}, bounds)
        assert field(0.0, 50.0) == pytest.approx(0.0)
        assert field(5.0, 50.0) == pytest.approx(0.5)
        assert field(50.0, 50.0) == pytest.approx(1.0)

    def test_checker(self, bounds):
        field = _mask({"type": "checker", "size": 10}, bounds)
        assert field(5.0, 5.0) == 1.0
        assert field(15.0, 5.0) == 0.0

    @pytest.mark.parametrize("kind", NOISE_TYPES)
    def test_noise_masks_in_unit_range(self, bounds, kind):
        field = _mask({"type": kind, "scale": 0.1}, bounds, seed=5)
        values = [field(x * 7.3, y * 5.1) for x in range(10) for y in range(10)]
        assert all(0.0 <= v <= 1.0 for v in values)

    def test_every_type_registered(self):
        assert {"radial", "linear", "border", "waves", "checker"} <= set(MASK_TYPES)

    def test_unknown_type(self, bounds):
        with pytest.raises(ConfigError):
            _mask({"type": "spotlight"}, bounds)

    @pytest.mark.parametrize(
        "data",
        [
            {"type": "radial", "center": 5},
            {"type": "radial", "center": [0.5]},
            {"type": "radial", "center": ["left", 0.5]},
            {"type": "linear", "angle": "steep"},
            {"type": "checker", "size": None},
            {"type": "simplex", "seed": "abc"},
            {"type": "simplex", "scale": "fine"},
        ],
    )
    def test_malformed_params_raise_config_error(self, bounds, data):
        with pytest.raises(ConfigError):
            _mask(data, bounds)


class TestMaskAdjustments:
    def test_invert(self, bounds):
        field = _mask({"type": "radial", "radius": 0.5, "invert": True}, bounds)
        assert field(50.0, 50.0) == pytest.approx(0.0)

    def test_threshold_binarises(self, bounds):
        field = _mask({"type": "linear", "angle": 0, "threshold": 0.5}, bounds)
        assert field(10.0, 50.0) == 0.0
        assert field(90.0, 50.0) == 1.0

    def test_brightness_shifts(self, bounds):
        plain = _mask({"type": "linear"}, bounds)
        bright = _mask({"type": "linear", "brightness": 0.2}, bounds)
        assert bright(40.0, 50.0) == pytest.approx(plain(40.0, 50.0) + 0.2)

    def test_masks_multiply(self, bounds):
        configs = [
            MaskConfig.from_dict({"type": "linear", "angle": 0}),
            MaskConfig.from_dict({"type": "radial", "radius": 0.5}),
        ]
        field = MaskField.from_configs(configs, bounds)
        assert field(50.0, 50.0) == pytest.approx(0.5)
        assert MaskField.from_configs([], bounds) is None

    def test_constant(self):
        assert MaskField.constant(2.0)(0.0, 0.0) == 1.0


class TestNoise:
    def test_same_seed_same_values(self):
        a, b = NoisePatterns(3), NoisePatterns(3)
        params = NoiseParams()
        for kind in NOISE_TYPES:
            assert a.get(kind, 12.5, 40.25, params) == b.get(kind, 12.5, 40.25, params)

    def test_seeds_differ(self):
        params = NoiseParams(scale=0.1)
        values_a = [NoisePatterns(1).get("simplex", x, 3.0, params) for x in range(20)]
        values_b = [NoisePatterns(2).get("simplex", x, 3.0, params) for x in range(20)]
        assert values_a != values_b

    def test_unknown_noise(self):
        with pytest.raises(ConfigError):
            NoisePatterns().get("worley", 0.0, 0.0, NoiseParams())

    def test_seeded_random_defaults_to_zero(self):
        assert seeded_random(None).random() == seeded_random(0).random()
