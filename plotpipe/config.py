"""Configuration models for pipelines, canvases and plotting machines.

Every model accepts the camelCase keys used by pipeline files through its
``from_dict`` constructor.  Unknown keys are ignored and missing keys fall
back to the defaults declared on the dataclass.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from .errors import ConfigError
from .geometry import Box

logger = logging.getLogger(__name__)

Margin = Tuple[float, float, float, float]


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def as_float(value: Any, name: str) -> float:
    """Coerce a parameter to a finite float or raise :class:`ConfigError`."""
    if isinstance(value, bool):
        raise ConfigError(f"{name}: expected a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name}: expected a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ConfigError(f"{name}: expected a finite number, got {value!r}")
    return number


def as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def normalize_margin(margin: Any) -> Margin:
    """Return ``(top, right, bottom, left)`` from a number or a 2/4 item list."""
    if margin is None:
        return (0.0, 0.0, 0.0, 0.0)
    if isinstance(margin, (int, float)) and not isinstance(margin, bool):
        m = as_float(margin, "margin")
        return (m, m, m, m)
    if isinstance(margin, (list, tuple)):
        values = [as_float(v, "margin") for v in margin]
        if len(values) == 2:
            vertical, horizontal = values
            return (vertical, horizontal, vertical, horizontal)
        if len(values) == 4:
            return (values[0], values[1], values[2], values[3])
    raise ConfigError(f"margin: expected a number or a list of 2 or 4 numbers, got {margin!r}")


# ---------------------------------------------------------------------------
# Canvas
# ---------------------------------------------------------------------------


@dataclass
class CanvasConfig:
    """Physical drawing surface in millimetres with its margins."""

    width: float = 420.0
    height: float = 297.0
    margin: Margin = (0.0, 0.0, 0.0, 0.0)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "CanvasConfig":
        data = data or {}
        width = as_float(_pick(data, "width", default=cls.width), "canvas.width")
        height = as_float(_pick(data, "height", default=cls.height), "canvas.height")
        if width <= 0 or height <= 0:
            raise ConfigError(f"canvas: width and height must be positive, got {width} x {height}")
        return cls(width=width, height=height, margin=normalize_margin(data.get("margin")))

    def draw_area(self) -> Box:
        """Area inside the margins, in canvas coordinates (Y up)."""
        top, right, bottom, left = self.margin
        width = max(0.0, self.width - left - right)
        height = max(0.0, self.height - top - bottom)
        return Box(left, bottom, width, height)

    def local_bounds(self) -> Box:
        area = self.draw_area()
        return Box(0.0, 0.0, area.width, area.height)


# ---------------------------------------------------------------------------
# Steps and masks
# ---------------------------------------------------------------------------


_MASK_KEYS = ("type", "params", "invert", "threshold", "contrast", "brightness")


@dataclass
class MaskConfig:
    type: str = "radial"
    params: Dict[str, Any] = field(default_factory=dict)
    invert: bool = False
    threshold: Optional[float] = None
    contrast: float = 1.0
    brightness: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MaskConfig":
        if not isinstance(data, Mapping) or "type" not in data:
            raise ConfigError(f"mask: expected a mapping with a 'type', got {data!r}")
        params = dict(data.get("params") or {})
        # masks written inline carry their parameters next to the type
        params.update({k: v for k, v in data.items() if k not in _MASK_KEYS})
        threshold = data.get("threshold")
        return cls(
            type=str(data["type"]),
            params=params,
            invert=as_bool(data.get("invert", False)),
            threshold=None if threshold is None else as_float(threshold, "mask.threshold"),
            contrast=as_float(data.get("contrast", 1.0), "mask.contrast"),
            brightness=as_float(data.get("brightness", 0.0), "mask.brightness"),
        )


def parse_masks(data: Any) -> List[MaskConfig]:
    if data is None:
        return []
    if isinstance(data, Mapping):
        return [MaskConfig.from_dict(data)]
    if isinstance(data, list):
        return [MaskConfig.from_dict(item) for item in data]
    raise ConfigError(f"mask: expected a mapping or a list, got {data!r}")


@dataclass
class PipelineStep:
    """One entry of a pipeline: a generator or modifier name plus parameters."""

    tool: str
    params: Dict[str, Any] = field(default_factory=dict)
    mask: List[MaskConfig] = field(default_factory=list)
    steps: List["PipelineStep"] = field(default_factory=list)
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PipelineStep":
        if not isinstance(data, Mapping) or not data.get("tool"):
            raise ConfigError(f"step: expected a mapping with a 'tool', got {data!r}")
        params = dict(data.get("params") or {})
        mask = _pick(data, "mask", default=params.pop("mask", None))
        # a numeric params.steps is a generator setting (flow-field), not a step list
        inline = params.pop("steps") if isinstance(params.get("steps"), list) else None
        nested = _pick(data, "steps", "nestedSteps", default=inline)
        enabled = as_bool(data.get("enabled", True)) and not as_bool(data.get("muted", False))
        return cls(
            tool=str(data["tool"]),
            params=params,
            mask=parse_masks(mask),
            steps=parse_steps(nested),
            enabled=enabled,
        )

    @property
    def seed(self) -> Optional[int]:
        seed = self.params.get("seed")
        return None if seed is None else int(as_float(seed, f"{self.tool}.seed"))


def parse_steps(data: Any) -> List[PipelineStep]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigError(f"steps: expected a list, got {type(data).__name__}")
    return [item if isinstance(item, PipelineStep) else PipelineStep.from_dict(item) for item in data]


@dataclass
class LayerConfig:
    id: str
    visible: bool = True
    color: Optional[str] = None
    stroke_width: Optional[float] = None
    steps: List[PipelineStep] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LayerConfig":
        layer_id = str(_pick(data, "id", "name", default="layer"))
        width = _pick(data, "strokeWidth", "stroke_width")
        return cls(
            id=layer_id,
            visible=as_bool(data.get("visible", True)),
            color=_pick(data, "color", "stroke"),
            stroke_width=None if width is None else as_float(width, "layer.strokeWidth"),
            steps=parse_steps(data.get("steps")),
        )


# ---------------------------------------------------------------------------
# Machine
# ---------------------------------------------------------------------------


@dataclass
class ServoCalibration:
    """Servo calibration expressed as raw PWM values."""

    up: int = 40
    down: int = 90

    def clamp(self, value: float) -> float:
        return max(0.0, min(1.0, value))

    def to_pwm(self, value: float) -> int:
        value = self.clamp(value)
        return int(round(self.down + value * (self.up - self.down)))


@dataclass
class MachineConfig:
    """Motion settings for toolpath output.  Rates in mm/min, dwell in ms."""

    feed_rate: float = 2000.0
    travel_rate: float = 3500.0
    z_up: float = 5.0
    z_down: float = 0.0
    z_safe: float = 5.0
    dwell_time: float = 0.0
    invert_x: bool = False
    invert_y: bool = False
    swap_axes: bool = False
    origin_x: float = 0.0
    origin_y: float = 0.0
    use_arcs: bool = False
    arc_tolerance: float = 0.05
    arc_resolution: float = 0.5
    optimize_paths: bool = False
    join_tolerance: float = 0.1
    simplify_tolerance: float = 0.0
    post_processor: str = "standard"
    return_home: bool = False
    servo: ServoCalibration = field(default_factory=ServoCalibration)

    _ALIASES = {
        "feedRate": "feed_rate",
        "travelRate": "travel_rate",
        "zUp": "z_up",
        "zDown": "z_down",
        "zSafe": "z_safe",
        "dwellTime": "dwell_time",
        "invertX": "invert_x",
        "invertY": "invert_y",
        "swapAxes": "swap_axes",
        "originX": "origin_x",
        "originY": "origin_y",
        "useArcs": "use_arcs",
        "arcTolerance": "arc_tolerance",
        "arcResolution": "arc_resolution",
        "optimizePaths": "optimize_paths",
        "joinTolerance": "join_tolerance",
        "simplifyTolerance": "simplify_tolerance",
        "postProcessor": "post_processor",
        "returnHome": "return_home",
    }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "MachineConfig":
        data = data or {}
        values: Dict[str, Any] = {}
        types = {f.name: f.type for f in fields(cls)}
        for key, value in data.items():
            name = cls._ALIASES.get(key, key)
            if name not in types or name == "servo" or value is None:
                continue
            if types[name] in ("bool", bool):
                values[name] = as_bool(value)
            elif types[name] in ("str", str):
                values[name] = str(value)
            else:
                values[name] = as_float(value, f"machine.{key}")
        if "zSafe" not in data and "z_safe" not in data and "z_up" in values:
            values["z_safe"] = values["z_up"]
        servo = ServoCalibration(
            up=int(as_float(_pick(data, "servoUp", "servo_up", default=ServoCalibration.up), "machine.servoUp")),
            down=int(as_float(_pick(data, "servoDown", "servo_down", default=ServoCalibration.down), "machine.servoDown")),
        )
        machine = cls(servo=servo, **values)
        if machine.feed_rate <= 0 or machine.travel_rate <= 0:
            raise ConfigError("machine: feed and travel rates must be positive")
        return machine

    @property
    def plunge_rate(self) -> float:
        return self.feed_rate / 2.0


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


@dataclass
class PipelineConfig:
    canvas: CanvasConfig = field(default_factory=CanvasConfig)
    steps: List[PipelineStep] = field(default_factory=list)
    layers: List[LayerConfig] = field(default_factory=list)
    machine: MachineConfig = field(default_factory=MachineConfig)
    seed: Optional[int] = None
    center: bool = True
    output_base_name: str = "drawing"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        if not isinstance(data, Mapping):
            raise ConfigError(f"pipeline: expected a mapping, got {type(data).__name__}")
        # sketch files keep steps, layers and seed under "params"
        params: Mapping[str, Any] = data.get("params") or {}
        seed = _pick(data, "seed", default=params.get("seed"))
        layers = _pick(data, "layers", default=params.get("layers")) or []
        return cls(
            canvas=CanvasConfig.from_dict(data.get("canvas")),
            steps=parse_steps(_pick(data, "steps", default=params.get("steps"))),
            layers=[LayerConfig.from_dict(layer) for layer in layers],
            machine=MachineConfig.from_dict(_pick(data, "machine", "gcode")),
            seed=None if seed is None else int(as_float(seed, "seed")),
            center=as_bool(data.get("center", True)),
            output_base_name=str(_pick(data, "outputBaseName", "output_base_name", default="drawing")),
        )


def load_config(path: Union[str, Path]) -> PipelineConfig:
    """Read a pipeline configuration from a JSON or YAML file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"{path}: cannot read configuration ({exc})") from exc
    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"{path}: invalid configuration ({exc})") from exc
    if data is None:
        raise ConfigError(f"{path}: configuration is empty")
    logger.debug("Loaded configuration from %s", path)
    return PipelineConfig.from_dict(data)


__all__ = [
    "CanvasConfig",
    "MaskConfig",
    "PipelineStep",
    "LayerConfig",
    "ServoCalibration",
    "MachineConfig",
    "PipelineConfig",
    "as_float",
    "as_bool",
    "normalize_margin",
    "parse_masks",
    "parse_steps",
    "load_config",
]
