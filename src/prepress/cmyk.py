"""
CMYK Conversion & Prepress
==========================
RGB to CMYK separation for print on matte stock.

Internally each pixel is four float inks in [0, 1] (0-100% coverage).
Order of operations:

1. Naive CMY (1 - RGB) and K = min(C, M, Y)
2. GCR: move ``gcr_strength * K`` of the shared gray from CMY into K
3. Line art: dark neutral edges and thin strokes -> pure K (no color fringing)
4. Rich black: large dark fills -> C60 M40 Y40 K100
5. TAC limit: scale CMY (never K) so C+M+Y+K <= limit
6. Dot-gain pre-compensation through a power-curve LUT, skipping the solid
   line-art and rich-black recipes
7. Final TAC pass, since the dot-gain curve raises coverage

The CMYK -> RGB preview is a screen approximation only. It ignores ink
interaction and paper white, so a round trip through it drifts: neutrals
survive, saturated colors come back lighter or darker by up to a few tens of
levels. That residual is expected.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional, Union

import cv2
import numpy as np

from .buffer import PixelBuffer, luminance, to_uint8
from .errors import InvalidDimensions
from .settings import CmykConfig

logger = logging.getLogger(__name__)

CHANNEL_NAMES = ("c", "m", "y", "k")

RICH_BLACK = np.array([0.6, 0.4, 0.4, 1.0], dtype=np.float32)
RICH_BLACK_MIN_K = 0.8
PURE_K = np.array([0.0, 0.0, 0.0, 1.0], dtype=np.float32)

# Slack for float error when comparing coverage with the TAC limit (percent)
TAC_EPSILON = 1e-3


@dataclass(frozen=True)
class SeparationStats:
    """Ink coverage summary for a finished separation."""
    max_tac: float
    avg_tac: float
    tac_limit: float
    line_art_pixels: int
    rich_black_pixels: int
    neutral_fraction: float     # Pixels carried mostly by K (GCR efficiency)
    over_limit_pixels: int


@dataclass(frozen=True)
class CmykSeparation:
    """Four ink planes, float32 (height, width, 4) in [0, 1], plus stats."""
    planes: np.ndarray
    stats: SeparationStats

    @property
    def height(self) -> int:
        return self.planes.shape[0]

    @property
    def width(self) -> int:
        return self.planes.shape[1]

    def total_coverage(self) -> np.ndarray:
        """Per-pixel C+M+Y+K in percent."""
        return self.planes.sum(axis=2) * 100.0

    def to_buffer(self) -> PixelBuffer:
        """Interleaved 8-bit CMYK buffer."""
        return PixelBuffer.from_array(to_uint8(self.planes * 255.0))


# ============================================================================
# SEPARATION STEPS
# ============================================================================

def rgb_to_cmyk_planes(rgb: np.ndarray, gcr_strength: float) -> np.ndarray:
    """Naive CMY plus GCR. Returns float32 (h, w, 4)."""
    cmy = 1.0 - rgb.astype(np.float32) / 255.0
    k = cmy.min(axis=2)
    shift = gcr_strength * k

    planes = np.empty(rgb.shape[:2] + (4,), dtype=np.float32)
    planes[:, :, :3] = np.maximum(cmy - shift[:, :, np.newaxis], 0.0)
    planes[:, :, 3] = np.minimum(k + shift, 1.0)
    return planes


def thick_regions(mask: np.ndarray, max_width: int) -> np.ndarray:
    """Pixels of ``mask`` inside areas wider than ``max_width`` in both directions."""
    kernel = np.ones((max_width + 1, max_width + 1), dtype=np.uint8)
    opened = cv2.morphologyEx(mask.astype(np.uint8), cv2.MORPH_OPEN, kernel)
    return opened.astype(bool)


def detect_line_art(
    buffer: PixelBuffer,
    contrast: float = 64,
    max_luma: float = 96,
    max_chroma: float = 24,
    max_width: int = 6,
) -> np.ndarray:
    """
    Boolean mask of line-art pixels among dark, near-neutral ink.

    A pixel qualifies when it sits on a strong local edge (3x3 morphological
    gradient of luma) or belongs to a stroke no wider than ``max_width``.
    Only the interior of wide dark fills is left out, for rich black.
    """
    buffer.require_rgb("line-art detection")
    luma = luminance(buffer.data)
    kernel = np.ones((3, 3), dtype=np.uint8)
    gradient = cv2.dilate(luma, kernel) - cv2.erode(luma, kernel)

    rgb = buffer.data.astype(np.int16)
    chroma = rgb.max(axis=2) - rgb.min(axis=2)

    ink = (luma <= max_luma) & (chroma <= max_chroma)
    strokes = ink & ~thick_regions(ink, max_width)
    return ink & ((gradient >= contrast) | strokes)


def rich_black_mask(
    planes: np.ndarray,
    exclude: np.ndarray,
    min_area: int,
    max_width: int = 6,
) -> np.ndarray:
    """
    Dark (K >= 0.8) pixels belonging to a connected fill of >= min_area
    pixels. Strokes no wider than ``max_width`` are never fills.
    """
    candidates = thick_regions(planes[:, :, 3] >= RICH_BLACK_MIN_K, max_width) & ~exclude
    if not candidates.any():
        return candidates

    count, labels, stats, _ = cv2.connectedComponentsWithStats(
        candidates.astype(np.uint8), connectivity=8
    )
    large = np.zeros(count, dtype=bool)
    large[1:] = stats[1:, cv2.CC_STAT_AREA] >= min_area
    return large[labels]


def apply_rich_black(planes: np.ndarray, exclude: np.ndarray, min_area: int, max_width: int = 6):
    """Rewrite large dark fills to the rich-black recipe. Returns (planes, mask)."""
    mask = rich_black_mask(planes, exclude, min_area, max_width)
    if mask.any():
        planes = planes.copy()
        planes[mask] = RICH_BLACK
    return planes, mask


def limit_tac(planes: np.ndarray, tac_limit: float) -> np.ndarray:
    """
    Scale C, M, Y of over-limit pixels so C+M+Y+K meets ``tac_limit`` (percent).

    K is never reduced: it is the cheapest and most stable ink. The TAC limit
    range (>= 200%) guarantees K alone always fits.
    """
    limit = tac_limit / 100.0
    total = planes.sum(axis=2)
    over = total > limit
    if not over.any():
        return planes

    planes = planes.copy()
    cmy = planes[:, :, :3].sum(axis=2)
    remaining = np.maximum(limit - planes[:, :, 3], 0.0)
    scale = np.where(cmy > 0, remaining / np.maximum(cmy, 1e-12), 0.0)
    scale = np.clip(scale, 0.0, 1.0).astype(np.float32)
    planes[over, :3] *= scale[over][:, np.newaxis]
    return planes


@lru_cache(maxsize=32)
def build_dot_gain_lut(dot_gain_amount: float) -> np.ndarray:
    """
    Power-curve LUT over 8-bit ink steps: out = in ** (1 / (1 + gain/100)).

    Monotonic with fixed endpoints 0 and 1. Returned values are float32 ink
    fractions; the array is cached and read-only.
    """
    x = np.arange(256, dtype=np.float64) / 255.0
    lut = np.power(x, 1.0 / (1.0 + dot_gain_amount / 100.0)).astype(np.float32)
    lut.setflags(write=False)
    return lut


def compensate_dot_gain(
    planes: np.ndarray,
    dot_gain_amount: float,
    keep: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Apply the dot-gain LUT to every ink plane. Pixels flagged in ``keep``
    (solid line art and rich black recipes) pass through unchanged.
    """
    lut = build_dot_gain_lut(float(dot_gain_amount))
    steps = np.clip(np.rint(planes * 255.0), 0, 255).astype(np.uint8)
    out = lut[steps]
    if keep is not None:
        out[keep] = planes[keep]
    return out


# ============================================================================
# FULL CONVERSION
# ============================================================================

def analyze_separation(
    planes: np.ndarray,
    tac_limit: float,
    line_art_pixels: int = 0,
    rich_black_pixels: int = 0,
) -> SeparationStats:
    """Coverage statistics for a set of ink planes."""
    tac = planes.sum(axis=2) * 100.0
    cmy = planes[:, :, :3].sum(axis=2)
    k = planes[:, :, 3]
    neutral = (k > 0) & (cmy < k * 0.3)
    return SeparationStats(
        max_tac=float(tac.max()),
        avg_tac=float(tac.mean()),
        tac_limit=float(tac_limit),
        line_art_pixels=int(line_art_pixels),
        rich_black_pixels=int(rich_black_pixels),
        neutral_fraction=float(neutral.mean()),
        over_limit_pixels=int((tac > tac_limit + TAC_EPSILON).sum()),
    )


def convert_to_cmyk(buffer: PixelBuffer, config: CmykConfig) -> CmykSeparation:
    """Separate an RGB page into TAC-limited CMYK ink planes."""
    buffer.require_rgb("CMYK conversion")
    logger.info(f"Converting to CMYK: GCR={config.gcr_strength}, TAC≤{config.tac_limit}%")

    planes = rgb_to_cmyk_planes(buffer.data, config.gcr_strength)

    if config.line_art_to_k:
        line_art = detect_line_art(
            buffer,
            contrast=config.line_art_contrast,
            max_luma=config.line_art_max_luma,
            max_chroma=config.line_art_max_chroma,
            max_width=config.line_art_max_width,
        )
        planes[line_art] = PURE_K
    else:
        line_art = np.zeros(planes.shape[:2], dtype=bool)

    if config.rich_black:
        planes, rich = apply_rich_black(planes, line_art, config.rich_black_min_area,
                                       config.line_art_max_width)
    else:
        rich = np.zeros(planes.shape[:2], dtype=bool)

    planes = limit_tac(planes, config.tac_limit)

    if config.compensate_dot_gain and config.dot_gain_amount > 0:
        planes = compensate_dot_gain(planes, config.dot_gain_amount, keep=line_art | rich)
        planes = limit_tac(planes, config.tac_limit)

    planes = np.clip(planes, 0.0, 1.0).astype(np.float32)
    planes.setflags(write=False)

    stats = analyze_separation(planes, config.tac_limit, int(line_art.sum()), int(rich.sum()))
    total = planes.shape[0] * planes.shape[1]
    logger.info(
        f"CMYK conversion complete: max TAC {stats.max_tac:.1f}% (limit {config.tac_limit}%), "
        f"avg TAC {stats.avg_tac:.1f}%, line art {stats.line_art_pixels / total * 100:.2f}%, "
        f"rich black {stats.rich_black_pixels / total * 100:.2f}%"
    )
    return CmykSeparation(planes=planes, stats=stats)


# ============================================================================
# PREVIEW & EXPORT
# ============================================================================

def _as_planes(source: Union[CmykSeparation, PixelBuffer]) -> np.ndarray:
    if isinstance(source, CmykSeparation):
        return source.planes
    if source.channels != 4:
        raise InvalidDimensions(f"expected a CMYK buffer, got {source.channels} channel(s)")
    return source.data.astype(np.float32) / 255.0


def cmyk_to_rgb_preview(source: Union[CmykSeparation, PixelBuffer]) -> PixelBuffer:
    """Screen preview: R = 255(1-C)(1-K), G = 255(1-M)(1-K), B = 255(1-Y)(1-K)."""
    planes = _as_planes(source)
    white = 1.0 - planes[:, :, 3:4]
    rgb = 255.0 * (1.0 - planes[:, :, :3]) * white
    return PixelBuffer.from_array(to_uint8(rgb))


def export_channels(source: Union[CmykSeparation, PixelBuffer]) -> Dict[str, PixelBuffer]:
    """One single-channel 8-bit buffer per ink, keyed c/m/y/k."""
    if isinstance(source, CmykSeparation):
        data = to_uint8(source.planes * 255.0)
    else:
        if source.channels != 4:
            raise InvalidDimensions(f"expected a CMYK buffer, got {source.channels} channel(s)")
        data = source.data
    return {
        name: PixelBuffer.from_array(np.ascontiguousarray(data[:, :, i]))
        for i, name in enumerate(CHANNEL_NAMES)
    }
