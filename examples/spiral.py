"""Example script that builds a spiral pipeline in code and writes G-code."""
from __future__ import annotations

from pathlib import Path

from plotpipe import MachineConfig, PipelineConfig, emit_toolpath, run_pipeline
from plotpipe.logging_config import setup_logging


def build_spiral(turns: int = 10, seed: int = 0) -> PipelineConfig:
    return PipelineConfig.from_dict(
        {
            "canvas": {"width": 210, "height": 210, "margin": 10},
            "seed": seed,
            "steps": [
                {"tool": "spiral", "params": {"turns": turns, "direction": "ccw"}},
                {"tool": "warp", "params": {"type": "noise", "strength": 3}},
            ],
        }
    )


def main() -> None:
    setup_logging("INFO")
    config = build_spiral()
    model = run_pipeline(config)
    machine = MachineConfig(optimize_paths=True, use_arcs=True, post_processor="grbl")
    out = Path("spiral.gcode")
    out.write_text(emit_toolpath(model, machine), encoding="utf-8")
    print(out)


if __name__ == "__main__":
    main()
