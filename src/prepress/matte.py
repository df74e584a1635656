"""
Matte Stock Compensation
========================
Absorbent uncoated stock swallows midtones and muddies shadows. Before
separation the page gets:

- Midtone lift: out = in + lift * (1 - |in - 128| / 128)
- Shadow compression: in < 64 -> lifted * shadow_compress
- Saturation trim: HSV saturation * saturate_reduce

The two tonal steps are per-sample functions, so they are folded into a
single cached LUT.
"""

import logging
from functools import lru_cache

import numpy as np

from .buffer import PixelBuffer, to_uint8
from .colorspace import scale_saturation
from .settings import MatteConfig

logger = logging.getLogger(__name__)

SHADOW_LIMIT = 64


@lru_cache(maxsize=32)
def build_matte_lut(midtone_lift: float, shadow_compress: float) -> np.ndarray:
    """Midtone lift then shadow compression, each clamped, as a 256-entry LUT."""
    x = np.arange(256, dtype=np.float64)
    weight = 1.0 - np.abs(x - 128.0) / 128.0
    lifted = np.clip(x + midtone_lift * weight, 0.0, 255.0)
    # Shadows are selected by input level, before the lift
    compressed = np.where(x < SHADOW_LIMIT, lifted * shadow_compress, lifted)
    lut = np.clip(np.rint(compressed), 0, 255).astype(np.uint8)
    lut.setflags(write=False)
    return lut


def apply_matte_compensation(buffer: PixelBuffer, config: MatteConfig) -> PixelBuffer:
    """Lift midtones, compress shadows, trim saturation."""
    buffer.require_rgb("matte compensation")
    logger.info(
        f"Applying matte compensation: midtone+{config.midtone_lift}, "
        f"shadows×{config.shadow_compress}, saturation×{config.saturate_reduce}"
    )

    toned = build_matte_lut(float(config.midtone_lift), float(config.shadow_compress))[buffer.data]
    if config.saturate_reduce == 1.0:
        return PixelBuffer.from_array(toned)
    return PixelBuffer.from_array(to_uint8(scale_saturation(toned, config.saturate_reduce)))
