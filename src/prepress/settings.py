"""
Engine Settings
===============
Tunable parameters for every stage, validated eagerly at construction.

Out-of-range values raise ParameterOutOfRange; nothing is silently clamped.
The ranges double as guardrails: levels cannot flatten the tone curve and
clarity cannot exceed a 1.0 unsharp amount.
"""

import math
from dataclasses import dataclass, field, fields
from typing import Optional

from .errors import ParameterOutOfRange


def _check_range(name: str, value, low, high, low_open: bool = False):
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise ParameterOutOfRange(name, value, low, high)
    below = value <= low if low_open else value < low
    if below or value > high:
        raise ParameterOutOfRange(name, value, low, high)


def _check_int(name: str, value, low, high):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParameterOutOfRange(name, value, low, high)
    _check_range(name, value, low, high)


def _check_flags(settings):
    for f in fields(settings):
        if f.type in (bool, "bool"):
            value = getattr(settings, f.name)
            if not isinstance(value, bool):
                raise ParameterOutOfRange(f.name, value, False, True)


@dataclass(frozen=True)
class ColorCorrectionConfig:
    """Tone corrector settings."""

    # Cast removal
    remove_cast: bool = True
    cast_strength: float = 0.7
    border_fraction: float = 0.05      # Outer band used to sample paper color

    # Levels with guardrails
    apply_levels: bool = True
    white_point: int = 245
    black_point: int = 12
    midtone_gamma: float = 1.0

    # Selective saturation
    apply_saturation: bool = True
    red_yellow_boost: float = 1.1
    blue_green_reduce: float = 0.92
    protect_skin_tones: bool = True

    # Local clarity (low-amount unsharp mask)
    apply_clarity: bool = True
    clarity_radius: float = 2
    clarity_amount: float = 0.5

    # Paper grain overlay
    add_grain: bool = False
    grain_strength: float = 0.03
    grain_seed: int = 0

    # Reference page matching
    match_reference: bool = False
    match_strength: float = 0.8

    def __post_init__(self):
        _check_flags(self)
        _check_range("cast_strength", self.cast_strength, 0.0, 1.0)
        _check_range("border_fraction", self.border_fraction, 0.0, 0.5, low_open=True)
        _check_range("white_point", self.white_point, 220, 255)
        _check_range("black_point", self.black_point, 0, 40)
        _check_range("midtone_gamma", self.midtone_gamma, 0.5, 2.0)
        _check_range("red_yellow_boost", self.red_yellow_boost, 0.8, 1.3)
        _check_range("blue_green_reduce", self.blue_green_reduce, 0.7, 1.0)
        _check_range("clarity_radius", self.clarity_radius, 1, 8)
        _check_range("clarity_amount", self.clarity_amount, 0.0, 1.0)
        _check_range("grain_strength", self.grain_strength, 0.0, 0.1)
        _check_int("grain_seed", self.grain_seed, 0, 2 ** 32 - 1)
        _check_range("match_strength", self.match_strength, 0.0, 1.0)


@dataclass(frozen=True)
class MatteConfig:
    """Matte stock compensation for absorbent paper."""
    enabled: bool = True
    midtone_lift: float = 6
    shadow_compress: float = 0.95
    saturate_reduce: float = 0.96

    def __post_init__(self):
        _check_flags(self)
        _check_range("midtone_lift", self.midtone_lift, 0, 15)
        _check_range("shadow_compress", self.shadow_compress, 0.85, 1.0)
        _check_range("saturate_reduce", self.saturate_reduce, 0.85, 1.0)


@dataclass(frozen=True)
class CmykConfig:
    """RGB to CMYK separation settings. Percentages are 0-100 per ink."""
    gcr_strength: float = 0.8
    tac_limit: float = 300
    rich_black: bool = True
    line_art_to_k: bool = True
    compensate_dot_gain: bool = True
    dot_gain_amount: float = 15

    # Rich black only replaces fills at least this many connected pixels
    rich_black_min_area: int = 64

    # Line-art detector thresholds (8-bit luma / chroma units)
    line_art_contrast: float = 64
    line_art_max_luma: float = 96
    line_art_max_chroma: float = 24

    # Dark strokes up to this width (pixels) are line art, wider areas are fills
    line_art_max_width: int = 6

    def __post_init__(self):
        _check_flags(self)
        _check_range("gcr_strength", self.gcr_strength, 0.0, 1.0)
        _check_range("tac_limit", self.tac_limit, 200, 360)
        _check_range("dot_gain_amount", self.dot_gain_amount, 0, 30)
        _check_int("rich_black_min_area", self.rich_black_min_area, 1, 2 ** 31 - 1)
        _check_range("line_art_contrast", self.line_art_contrast, 0, 255)
        _check_range("line_art_max_luma", self.line_art_max_luma, 0, 255)
        _check_range("line_art_max_chroma", self.line_art_max_chroma, 0, 255)
        _check_int("line_art_max_width", self.line_art_max_width, 1, 64)


@dataclass(frozen=True)
class QAConfig:
    """Quality auditor switches and thresholds."""
    check_clipping: bool = True
    clipping_threshold: float = 0.005   # 0.5% of pixels

    check_ssim: bool = True
    min_ssim: float = 0.92
    ssim_window: int = 8

    check_edges: bool = True
    max_edge_density: float = 0.25      # >25% edges reads as oversharpened
    edge_threshold: float = 30.0

    check_tint: bool = True
    tint_threshold: float = 10.0

    check_contrast: bool = True
    min_contrast: float = 7.0           # WCAG AAA
    contrast_window: int = 16
    low_contrast_fraction: float = 0.2

    check_sharpness: bool = False
    min_sharpness: float = 100.0

    compute_hash: bool = True

    def __post_init__(self):
        _check_flags(self)
        _check_range("clipping_threshold", self.clipping_threshold, 0.0, 1.0)
        _check_range("min_ssim", self.min_ssim, -1.0, 1.0)
        _check_int("ssim_window", self.ssim_window, 2, 64)
        _check_range("max_edge_density", self.max_edge_density, 0.0, 1.0)
        _check_range("edge_threshold", self.edge_threshold, 0.0, 2048.0)
        _check_range("tint_threshold", self.tint_threshold, 0.0, 255.0)
        _check_range("min_contrast", self.min_contrast, 1.0, 21.0)
        _check_int("contrast_window", self.contrast_window, 4, 256)
        _check_range("low_contrast_fraction", self.low_contrast_fraction, 0.0, 1.0)
        _check_range("min_sharpness", self.min_sharpness, 0.0, float("inf"))


@dataclass(frozen=True)
class EngineConfig:
    """Single composed configuration handed to the pipeline."""
    color: ColorCorrectionConfig = field(default_factory=ColorCorrectionConfig)
    matte: MatteConfig = field(default_factory=MatteConfig)
    cmyk: Optional[CmykConfig] = None
    qa: QAConfig = field(default_factory=QAConfig)
