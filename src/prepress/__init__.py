"""
Comic Prepress Engine
=====================
Color correction, matte-stock compensation, CMYK separation and automated
quality checks for restored comic pages.

Usage:
    from prepress import EngineConfig, PixelBuffer, process_page

    result = process_page(PixelBuffer.from_array(rgb), EngineConfig())
    result.buffer, result.report.passed
"""

import logging

from . import config
from .buffer import PixelBuffer
from .cmyk import CmykSeparation, cmyk_to_rgb_preview, convert_to_cmyk, export_channels
from .errors import (
    InvalidDimensions,
    InvalidRegion,
    ParameterOutOfRange,
    PrepressError,
    ReferenceNotReady,
)
from .matte import apply_matte_compensation
from .pipeline import PipelineResult, build_steps, process_page, run_steps
from .presets import load_preset
from .quality import QAReport, QAWarning, WarningCode, audit, hamming_distance, perceptual_hash
from .settings import CmykConfig, ColorCorrectionConfig, EngineConfig, MatteConfig, QAConfig
from .stats import ReferenceStatistics, Rect, Region, sample_region
from .tone import correct_tone

ENGINE_VERSION = "1.0.0"

logging.getLogger(__name__).setLevel(config.LOG_LEVEL)

__all__ = [
    "ENGINE_VERSION",
    "PixelBuffer",
    "CmykSeparation",
    "cmyk_to_rgb_preview",
    "convert_to_cmyk",
    "export_channels",
    "InvalidDimensions",
    "InvalidRegion",
    "ParameterOutOfRange",
    "PrepressError",
    "ReferenceNotReady",
    "apply_matte_compensation",
    "PipelineResult",
    "build_steps",
    "process_page",
    "run_steps",
    "load_preset",
    "QAReport",
    "QAWarning",
    "WarningCode",
    "audit",
    "hamming_distance",
    "perceptual_hash",
    "CmykConfig",
    "ColorCorrectionConfig",
    "EngineConfig",
    "MatteConfig",
    "QAConfig",
    "ReferenceStatistics",
    "Rect",
    "Region",
    "sample_region",
    "correct_tone",
]
