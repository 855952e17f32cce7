"""Tests for the plotpipe command line.

Run:
    pytest tests/test_cli.py -v
"""

import json

import pytest

from plotpipe.cli import _parse_canvas_size, main, next_output_stem


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "sketch.json"
    path.write_text(
        json.dumps(
            {
                "canvas": {"width": 100, "height": 80, "margin": 5},
                "steps": [{"tool": "stripes", "params": {"lines": 3}}],
            }
        ),
        encoding="utf-8",
    )
    return path


class TestMain:
    def test_writes_svg_and_gcode(self, config_file, tmp_path, capsys):
        out = tmp_path / "out"
        assert main([str(config_file), "-o", str(out)]) == 0
        assert sorted(p.name for p in out.iterdir()) == ["drawing_001.gcode", "drawing_001.svg"]
        printed = capsys.readouterr().out.splitlines()
        assert printed == [str(out / "drawing_001.svg"), str(out / "drawing_001.gcode")]
        gcode = (out / "drawing_001.gcode").read_text(encoding="utf-8")
        assert gcode.count("G1 Z") == 4

    def test_versions_increase(self, config_file, tmp_path):
        out = tmp_path / "out"
        main([str(config_file), "-o", str(out)])
        main([str(config_file), "-o", str(out), "--no-svg"])
        assert (out / "drawing_002.gcode").exists()
        assert not (out / "drawing_002.svg").exists()

    def test_no_gcode(self, config_file, tmp_path):
        out = tmp_path / "out"
        assert main([str(config_file), "-o", str(out), "--no-gcode"]) == 0
        assert [p.name for p in out.iterdir()] == ["drawing_001.svg"]

    def test_overrides(self, config_file, tmp_path):
        out = tmp_path / "out"
        main([str(config_file), "-o", str(out), "--canvas", "50x40", "--post", "grbl"])
        assert 'width="50mm"' in (out / "drawing_001.svg").read_text(encoding="utf-8")
        assert "M3 S" in (out / "drawing_001.gcode").read_text(encoding="utf-8")

    def test_diagnostics_are_reported(self, tmp_path, capsys):
        path = tmp_path / "broken.yaml"
        path.write_text(
            "canvas: {width: 100, height: 100}\n"
            "outputBaseName: broken\n"
            "steps:\n"
            "  - tool: stripes\n"
            "  - tool: sparkle\n",
            encoding="utf-8",
        )
        assert main([str(path), "-o", str(tmp_path)]) == 0
        assert (tmp_path / "broken_001.gcode").exists()
        warnings = [line for line in capsys.readouterr().out.splitlines() if line.startswith("warning:")]
        assert len(warnings) == 1
        assert "sparkle" in warnings[0]

    def test_missing_config(self, tmp_path):
        assert main([str(tmp_path / "nope.json"), "-o", str(tmp_path)]) == 2

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{steps: [", encoding="utf-8")
        assert main([str(path), "-o", str(tmp_path)]) == 2

    def test_bad_canvas_argument(self, config_file):
        with pytest.raises(SystemExit):
            main([str(config_file), "--canvas", "wide"])


class TestHelpers:
    def test_next_output_stem_empty(self, tmp_path):
        assert next_output_stem(tmp_path, "drawing") == "drawing_001"
        assert next_output_stem(tmp_path / "missing", "drawing") == "drawing_001"

    def test_next_output_stem_skips_to_highest(self, tmp_path):
        for name in ("drawing_001.svg", "drawing_007.gcode", "drawing_010.txt", "other_020.svg"):
            (tmp_path / name).write_text("", encoding="utf-8")
        assert next_output_stem(tmp_path, "drawing") == "drawing_008"

    @pytest.mark.parametrize("text, expected", [("420x297", (420.0, 297.0)), ("210X148.5mm", (210.0, 148.5))])
    def test_parse_canvas_size(self, text, expected):
        assert _parse_canvas_size(text) == expected
