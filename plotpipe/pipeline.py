"""Pipeline executor: fold an ordered step list into a geometry model.

Steps run in the pipeline's local frame, where the draw area spans
``(0, 0)`` to ``(width, height)``.  When the last step has run, the model is
moved into the draw area on the canvas (centred by default).  A failing step
never aborts the run: it is logged, recorded as a :class:`StepDiagnostic`
and skipped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .config import CanvasConfig, PipelineConfig, PipelineStep
from .errors import ConfigError, PlotPipeError
from .generators import generate, is_generator
from .geometry import GeometryModel
from .masks import MaskField
from .modifiers import StepContext, apply_modifier, is_modifier

logger = logging.getLogger(__name__)


@dataclass
class StepDiagnostic:
    """A skipped step: ``index`` is its position, nested steps append to it."""

    index: Tuple[int, ...]
    tool: str
    message: str
    layer: Optional[str] = None

    def __str__(self) -> str:
        where = ".".join(str(i) for i in self.index)
        prefix = f"[{self.layer}] " if self.layer else ""
        return f"{prefix}step {where} ({self.tool}): {self.message}"


@dataclass
class PipelineResult:
    model: GeometryModel
    diagnostics: List[StepDiagnostic] = field(default_factory=list)


class Pipeline:
    """Run step lists against one canvas."""

    def __init__(self, canvas: CanvasConfig, seed: Optional[int] = None, *, center: bool = True) -> None:
        self.canvas = canvas
        self.seed = 0 if seed is None else int(seed)
        self.center = center
        self.draw_area = canvas.draw_area()
        self.bounds = canvas.local_bounds()

    def execute(self, steps: Sequence[PipelineStep], layer: Optional[str] = None) -> PipelineResult:
        diagnostics: List[StepDiagnostic] = []
        model = self._run(None, steps, self.seed, (), diagnostics, layer)
        if model is None:
            model = GeometryModel()
        self._place(model)
        return PipelineResult(model, diagnostics)

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _run(
        self,
        model: Optional[GeometryModel],
        steps: Sequence[PipelineStep],
        seed: int,
        route: Tuple[int, ...],
        diagnostics: List[StepDiagnostic],
        layer: Optional[str],
    ) -> Optional[GeometryModel]:
        for i, step in enumerate(steps):
            where = route + (i,)
            if not step.enabled:
                logger.debug("Pipeline: skipping muted step %s", step.tool)
                continue
            logger.info("Pipeline: executing %s", step.tool)
            try:
                step_seed = step.seed if step.seed is not None else seed
                model = self._apply(model, step, step_seed, where, diagnostics, layer)
            except (PlotPipeError, ArithmeticError) as exc:
                diagnostic = StepDiagnostic(where, step.tool, str(exc), layer)
                logger.warning("Pipeline: skipped %s", diagnostic)
                diagnostics.append(diagnostic)
        return model

    def _apply(
        self,
        model: Optional[GeometryModel],
        step: PipelineStep,
        seed: int,
        where: Tuple[int, ...],
        diagnostics: List[StepDiagnostic],
        layer: Optional[str],
    ) -> GeometryModel:
        if is_generator(step.tool):
            generated = generate(step.tool, step.params, seed, self.bounds)
            if model is None:
                return generated
            return model.merge(generated)

        if is_modifier(step.tool):
            if model is None:
                raise ConfigError("modifier has no model to work on; add a generator first")

            def run_nested(target: GeometryModel, nested: List[PipelineStep], nested_seed: int) -> GeometryModel:
                result = self._run(target, nested, nested_seed, where, diagnostics, layer)
                return target if result is None else result

            ctx = StepContext(
                bounds=self.bounds,
                seed=seed,
                mask=MaskField.from_configs(step.mask, self.bounds, seed),
                nested=step.steps,
                run_nested=run_nested,
            )
            return apply_modifier(step.tool, model, step.params, ctx)

        raise ConfigError(f"Unknown tool: {step.tool!r}")

    def _place(self, model: GeometryModel) -> None:
        model.move(self.draw_area.x, self.draw_area.y)
        if not self.center:
            return
        ext = model.extents()
        if ext is None:
            return
        tx, ty = self.draw_area.center
        cx, cy = ext.center
        model.move(tx - cx, ty - cy)


def execute(config: PipelineConfig) -> PipelineResult:
    """Run ``config``'s steps and visible layers.

    Without layers the result is the step pipeline's model.  With layers,
    every visible layer becomes a child ``layer_<id>`` of a new root
    carrying the layer's stroke settings; plain steps, if any, go to a
    ``base`` child.
    """
    pipeline = Pipeline(config.canvas, config.seed, center=config.center)
    if not config.layers:
        return pipeline.execute(config.steps)

    root = GeometryModel()
    diagnostics: List[StepDiagnostic] = []
    if config.steps:
        base = pipeline.execute(config.steps)
        root.models["base"] = base.model
        diagnostics.extend(base.diagnostics)
    for layer in config.layers:
        if not layer.visible:
            logger.debug("Pipeline: layer %s hidden", layer.id)
            continue
        result = pipeline.execute(layer.steps, layer=layer.id)
        result.model.stroke = layer.color
        result.model.stroke_width = layer.stroke_width
        root.models[f"layer_{layer.id}"] = result.model
        diagnostics.extend(result.diagnostics)
    return PipelineResult(root, diagnostics)


def run_pipeline(config: PipelineConfig, diagnostics: Optional[List[StepDiagnostic]] = None) -> GeometryModel:
    """Build the geometry for ``config``; skipped steps are appended to ``diagnostics``."""
    result = execute(config)
    if diagnostics is not None:
        diagnostics.extend(result.diagnostics)
    logger.info(
        "Pipeline finished: %d paths, %d diagnostics",
        result.model.path_count(),
        len(result.diagnostics),
    )
    return result.model


__all__ = ["Pipeline", "PipelineResult", "StepDiagnostic", "execute", "run_pipeline"]
