"""
Tone Corrector
==============
Post-upscale color correction for scanned comic pages.

Stages (in pipeline order):
1. Cast removal - neutralize yellowed paper, protect ink
2. Levels - linear black/white point stretch through a cached LUT
3. Selective saturation - warm boost, cool trim, skin protection
4. Local clarity - low-amount unsharp mask
5. Reference matching - pull page statistics toward the hero page
6. Paper grain - tileable multiply overlay against the plastic look

Every function takes a PixelBuffer and returns a new one.
"""

import logging
from functools import lru_cache
from typing import Optional, Union

import cv2
import numpy as np

from .buffer import PixelBuffer, luminance, to_uint8
from .colorspace import hsv_to_rgb, rgb_to_hsv
from .config import DEFAULT_BORDER_FRACTION, GRAIN_TILE_SIZE
from .errors import InvalidDimensions, ParameterOutOfRange, ReferenceNotReady
from .settings import ColorCorrectionConfig
from .stats import Region, ReferenceStatistics, sample_region

logger = logging.getLogger(__name__)

# Hue bands in degrees, half-open [start, end)
WARM_BAND = (0.0, 60.0)
COOL_BAND = (180.0, 270.0)
SKIN_BAND = (25.0, 45.0)

# Luma at which paper pixels receive the full cast correction
INK_PROTECT_LUMA = 128.0


# ============================================================================
# CAST REMOVAL
# ============================================================================

def remove_cast(
    buffer: PixelBuffer,
    strength: float,
    border_fraction: float = DEFAULT_BORDER_FRACTION,
) -> PixelBuffer:
    """
    Remove paper cast using the border band as the paper sample.

    Per channel the target gain is 255 / paper; ``strength`` blends it toward
    1.0. Dark ink pixels are protected by a luma weight clamp(L/128, 0, 1), so
    black line work keeps its color while paper moves to neutral white.
    """
    buffer.require_rgb("cast removal")
    paper = sample_region(buffer, Region.BORDER, border_fraction).means
    target = 255.0 / np.maximum(paper, 1.0)
    factor = 1.0 + (target - 1.0) * strength

    logger.info(
        f"Paper color R{paper[0]:.1f} G{paper[1]:.1f} B{paper[2]:.1f} -> "
        f"gain R×{factor[0]:.3f} G×{factor[1]:.3f} B×{factor[2]:.3f}"
    )

    rgb = buffer.as_float()
    weight = np.clip(luminance(rgb) / INK_PROTECT_LUMA, 0.0, 1.0)[:, :, np.newaxis]
    gain = 1.0 + (factor.astype(np.float32) - 1.0) * weight
    return PixelBuffer.from_array(to_uint8(rgb * gain))


# ============================================================================
# LEVELS
# ============================================================================

@lru_cache(maxsize=64)
def build_levels_lut(black_point: float, white_point: float, gamma: float = 1.0) -> np.ndarray:
    """
    256-entry LUT mapping [black_point, white_point] linearly onto [0, 255].

    Inputs at or below the black point go to 0, at or above the white point
    to 255. The returned array is cached and read-only.
    """
    if white_point <= black_point:
        raise ParameterOutOfRange("white_point", white_point, black_point, 255)
    x = np.arange(256, dtype=np.float64)
    val = np.clip((x - black_point) / (white_point - black_point), 0.0, 1.0)
    if gamma != 1.0:
        val = np.power(val, 1.0 / gamma)
    lut = np.clip(np.rint(val * 255.0), 0, 255).astype(np.uint8)
    lut.setflags(write=False)
    return lut


def apply_lut(buffer: PixelBuffer, lut: np.ndarray) -> PixelBuffer:
    """Apply one 256-entry LUT to every channel."""
    return PixelBuffer.from_array(lut[buffer.data])


def apply_levels(
    buffer: PixelBuffer,
    black_point: float,
    white_point: float,
    gamma: float = 1.0,
) -> PixelBuffer:
    logger.info(f"Applying levels: black={black_point}, white={white_point}, gamma={gamma}")
    return apply_lut(buffer, build_levels_lut(black_point, white_point, gamma))


# ============================================================================
# SELECTIVE SATURATION
# ============================================================================

def _in_band(hue: np.ndarray, band) -> np.ndarray:
    return (hue >= band[0]) & (hue < band[1])


def saturation_scale_map(
    hue: np.ndarray,
    red_yellow_boost: float,
    blue_green_reduce: float,
    protect_skin: bool = True,
) -> np.ndarray:
    """Per-pixel saturation multiplier from hue; skin protection wins."""
    scale = np.ones_like(hue, dtype=np.float32)
    scale[_in_band(hue, WARM_BAND)] = red_yellow_boost
    scale[_in_band(hue, COOL_BAND)] = blue_green_reduce
    if protect_skin:
        scale[_in_band(hue, SKIN_BAND)] = 1.0
    return scale


def selective_saturation(
    buffer: PixelBuffer,
    red_yellow_boost: float,
    blue_green_reduce: float,
    protect_skin: bool = True,
) -> PixelBuffer:
    """Boost warm hues, rein in neon cool hues, keep skin tones natural."""
    buffer.require_rgb("selective saturation")
    hsv = rgb_to_hsv(buffer.data)
    scale = saturation_scale_map(hsv[:, :, 0], red_yellow_boost, blue_green_reduce, protect_skin)
    hsv[:, :, 1] = np.clip(hsv[:, :, 1] * scale, 0.0, 1.0)
    return PixelBuffer.from_array(to_uint8(hsv_to_rgb(hsv)))


# ============================================================================
# LOCAL CLARITY
# ============================================================================

def local_clarity(buffer: PixelBuffer, radius: float, amount: float) -> PixelBuffer:
    """Low-amount unsharp mask: out = in + (in - blur(in, sigma=radius)) * amount."""
    img = buffer.as_float()
    blurred = cv2.GaussianBlur(img, (0, 0), float(radius))
    if blurred.ndim == 2:
        blurred = blurred[:, :, np.newaxis]
    return PixelBuffer.from_array(to_uint8(img + (img - blurred) * amount))


# ============================================================================
# PAPER GRAIN
# ============================================================================

def make_grain_tile(size: int = GRAIN_TILE_SIZE, seed: int = 0, softness: float = 0.8) -> np.ndarray:
    """
    Seamless noise tile in [0, 1].

    The noise is blurred over a wrap-padded copy so opposite edges match and
    the tile repeats without visible seams.
    """
    rng = np.random.default_rng(seed)
    noise = rng.standard_normal((size, size)).astype(np.float32)
    pad = max(1, int(np.ceil(softness * 4)))
    wrapped = np.pad(noise, pad, mode="wrap")
    wrapped = cv2.GaussianBlur(wrapped, (0, 0), softness)
    tile = wrapped[pad:-pad, pad:-pad]
    lo, hi = float(tile.min()), float(tile.max())
    if hi - lo < 1e-6:
        return np.full((size, size), 0.5, dtype=np.float32)
    return (tile - lo) / (hi - lo)


def _tile_to(tile: np.ndarray, height: int, width: int) -> np.ndarray:
    reps_y = -(-height // tile.shape[0])
    reps_x = -(-width // tile.shape[1])
    return np.tile(tile, (reps_y, reps_x))[:height, :width]


def paper_grain(
    buffer: PixelBuffer,
    strength: float,
    tile: Optional[Union[np.ndarray, PixelBuffer]] = None,
    seed: int = 0,
) -> PixelBuffer:
    """
    Multiply a tileable grain pattern over the page at ``strength`` opacity.

    ``tile`` may be a 2-D array (float in [0, 1], integer in 0-255) or a
    single-channel buffer; without one a seeded tile is generated.
    """
    if strength <= 0:
        return buffer

    if tile is None:
        grain = make_grain_tile(seed=seed)
    elif isinstance(tile, PixelBuffer):
        if tile.channels != 1:
            raise InvalidDimensions("grain tile must be a single-channel buffer")
        grain = tile.plane(0).astype(np.float32) / 255.0
    else:
        grain = np.asarray(tile)
        if np.issubdtype(grain.dtype, np.integer):
            grain = grain.astype(np.float32) / 255.0
        grain = np.clip(grain.astype(np.float32), 0.0, 1.0)
        if grain.ndim != 2 or grain.size == 0:
            raise InvalidDimensions(f"grain tile must be a non-empty 2-D array, got {grain.shape}")

    logger.info(f"Adding paper grain: {strength * 100:.1f}%")

    grain = _tile_to(grain, buffer.height, buffer.width)[:, :, np.newaxis]
    img = buffer.as_float()
    multiplied = img * grain
    return PixelBuffer.from_array(to_uint8(img + (multiplied - img) * strength))


# ============================================================================
# REFERENCE MATCHING
# ============================================================================

def match_reference(
    buffer: PixelBuffer,
    reference: Optional[ReferenceStatistics],
    strength: float,
) -> PixelBuffer:
    """
    Linear per-channel transfer toward the hero page statistics.

    out = (in - mean_self) * (sd_ref / sd_self) + mean_ref, blended with the
    input by ``strength``. A flat channel (sd_self == 0) only shifts its mean.
    """
    if reference is None:
        raise ReferenceNotReady("reference matching requested without ReferenceStatistics")
    buffer.require_rgb("reference matching")

    own = sample_region(buffer, Region.WHOLE)
    own_sd = own.stddevs
    safe_sd = np.where(own_sd == 0, 1.0, own_sd)
    gain = np.where(own_sd == 0, 1.0, reference.stddevs / safe_sd)

    logger.info(f"Reference gains: R×{gain[0]:.3f} G×{gain[1]:.3f} B×{gain[2]:.3f}")

    img = buffer.data.astype(np.float64)
    matched = (img - own.means) * gain + reference.means
    return PixelBuffer.from_array(to_uint8(img + (matched - img) * strength))


# ============================================================================
# FULL TONE PASS
# ============================================================================

def correct_tone(
    buffer: PixelBuffer,
    config: ColorCorrectionConfig,
    reference: Optional[ReferenceStatistics] = None,
) -> PixelBuffer:
    """Run every enabled tone stage in order."""
    if config.match_reference and reference is None:
        raise ReferenceNotReady("match_reference is enabled but no ReferenceStatistics was supplied")

    result = buffer
    if config.remove_cast:
        result = remove_cast(result, config.cast_strength, config.border_fraction)
    if config.apply_levels:
        result = apply_levels(result, config.black_point, config.white_point, config.midtone_gamma)
    if config.apply_saturation:
        result = selective_saturation(
            result, config.red_yellow_boost, config.blue_green_reduce, config.protect_skin_tones
        )
    if config.apply_clarity:
        result = local_clarity(result, config.clarity_radius, config.clarity_amount)
    if config.match_reference:
        result = match_reference(result, reference, config.match_strength)
    if config.add_grain:
        result = paper_grain(result, config.grain_strength, seed=config.grain_seed)
    return result
