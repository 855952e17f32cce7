"""Command line entry point: run a pipeline file and write SVG and G-code."""
from __future__ import annotations

import argparse
import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .config import CanvasConfig, load_config
from .errors import PlotPipeError
from .logging_config import setup_logging
from .pipeline import StepDiagnostic, run_pipeline
from .rendering import model_stats, render_svg
from .toolpath import POST_PROCESSORS, emit_toolpath

logger = logging.getLogger(__name__)


def _parse_canvas_size(value: str) -> Tuple[float, float]:
    raw = value.strip().lower().replace("mm", "")
    try:
        width_str, height_str = raw.split("x", 1)
        width = float(width_str)
        height = float(height_str)
    except (ValueError, TypeError) as exc:
        raise argparse.ArgumentTypeError("Canvas size must be in WIDTHxHEIGHT format, e.g. 420x297") from exc
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError("Canvas dimensions must be positive numbers.")
    return width, height


def next_output_stem(out_dir: Path, base: str) -> str:
    """``<base>_<NNN>`` with NNN one above the highest version already in ``out_dir``."""
    pattern = re.compile(rf"^{re.escape(base)}_(\d{{3}})\.(gcode|svg)$")
    versions = [0]
    if out_dir.is_dir():
        for entry in out_dir.iterdir():
            match = pattern.match(entry.name)
            if match:
                versions.append(int(match.group(1)))
    return f"{base}_{max(versions) + 1:03d}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plotpipe",
        description="Generate pen plotter drawings from a pipeline file (JSON or YAML).",
    )
    parser.add_argument("config", type=Path, help="Pipeline configuration file.")
    parser.add_argument("--out-dir", "-o", type=Path, default=Path("."), help="Output directory (default: .).")
    parser.add_argument("--seed", type=int, default=None, help="Override the pipeline seed.")
    parser.add_argument(
        "--canvas",
        dest="canvas_size",
        type=_parse_canvas_size,
        default=None,
        metavar="WIDTHxHEIGHT",
        help="Override the canvas size in millimeters, e.g. 297x210.",
    )
    parser.add_argument("--no-svg", action="store_true", help="Do not write the SVG preview.")
    parser.add_argument("--no-gcode", action="store_true", help="Do not write G-code.")
    parser.add_argument("--post", choices=sorted(POST_PROCESSORS), default=None, help="Override the post-processor.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO).",
    )
    parser.add_argument("--log-format", default="human", choices=["human", "json"], help="Log line format.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_format)

    try:
        config = load_config(args.config)
    except PlotPipeError as exc:
        logger.error("%s", exc)
        return 2

    if args.seed is not None:
        config.seed = args.seed
    if args.canvas_size is not None:
        width, height = args.canvas_size
        config.canvas = CanvasConfig(width=width, height=height, margin=config.canvas.margin)
    if args.post is not None:
        config.machine = replace(config.machine, post_processor=args.post)

    diagnostics: List[StepDiagnostic] = []
    model = run_pipeline(config, diagnostics)
    stats = model_stats(model)
    logger.info("Model: %d paths, %.1f mm of line", stats["paths"], stats["length_mm"])

    args.out_dir.mkdir(parents=True, exist_ok=True)
    stem = next_output_stem(args.out_dir, config.output_base_name)
    written: List[Path] = []
    if not args.no_svg:
        target = args.out_dir / f"{stem}.svg"
        target.write_text(render_svg(model, config.canvas), encoding="utf-8")
        written.append(target)
    if not args.no_gcode:
        try:
            gcode = emit_toolpath(model, config.machine)
        except PlotPipeError as exc:
            logger.error("%s", exc)
            return 1
        target = args.out_dir / f"{stem}.gcode"
        target.write_text(gcode, encoding="utf-8")
        written.append(target)

    for path in written:
        print(path)
    for diagnostic in diagnostics:
        print(f"warning: {diagnostic}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
