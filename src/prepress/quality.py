"""
Quality Assurance Checks
========================
Automated checks run on every processed page:

- Histogram clipping (blown highlights / crushed shadows)
- SSIM against the pre-processing original (the "did we overprocess" guard)
- Edge density (oversharpening)
- Color tint
- Text contrast (WCAG ratio inside text-bearing windows)
- Perceptual hash for batch-level outlier detection
- Sharpness (Laplacian variance) and RMS perceptual difference

A failed check is a warning in the report, never an exception: the caller
decides whether to re-run gentler, accept, or escalate.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

import cv2
import numpy as np

from .buffer import PixelBuffer
from .config import HASH_GRID, SSIM_C1, SSIM_C2, WCAG_FLARE
from .errors import InvalidDimensions
from .settings import QAConfig

logger = logging.getLogger(__name__)

# Luma percentile spread (8-bit levels) that marks a window as text-bearing
TEXT_MIN_SPREAD = 40
TEXT_PERCENTILES = (5, 95)

TINT_NAMES = (("Red", "Cyan"), ("Green", "Magenta"), ("Blue", "Yellow"))


class WarningCode(str, Enum):
    HIGHLIGHT_CLIPPING = "highlight_clipping"
    SHADOW_CLIPPING = "shadow_clipping"
    LOW_SSIM = "low_ssim"
    HIGH_EDGE_DENSITY = "high_edge_density"
    COLOR_TINT = "color_tint"
    LOW_TEXT_CONTRAST = "low_text_contrast"
    LOW_SHARPNESS = "low_sharpness"


@dataclass(frozen=True)
class QAWarning:
    code: WarningCode
    message: str
    metric: float


@dataclass(frozen=True)
class QAReport:
    """Per-page audit result. Built once, only read afterwards."""
    warnings: Tuple[QAWarning, ...] = ()
    metrics: Mapping[str, object] = field(default_factory=dict)
    perceptual_hash: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "warnings", tuple(self.warnings))
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))

    @property
    def passed(self) -> bool:
        return not self.warnings

    def codes(self) -> Tuple[WarningCode, ...]:
        return tuple(w.code for w in self.warnings)

    def warning(self, code: WarningCode) -> Optional[QAWarning]:
        for w in self.warnings:
            if w.code == code:
                return w
        return None

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "warnings": [
                {"code": w.code.value, "message": w.message, "metric": w.metric}
                for w in self.warnings
            ],
            "metrics": dict(self.metrics),
            "perceptual_hash": self.perceptual_hash,
        }


# ============================================================================
# HELPERS
# ============================================================================

def luma8(buffer: PixelBuffer) -> np.ndarray:
    """8-bit luma plane of an RGB or single-channel buffer."""
    if buffer.channels == 1:
        return buffer.plane(0)
    if buffer.channels != 3:
        raise InvalidDimensions(f"quality checks need RGB, got {buffer.channels} channel(s)")
    return cv2.cvtColor(np.ascontiguousarray(buffer.data).copy(), cv2.COLOR_RGB2GRAY)


def relative_luminance(rgb: np.ndarray) -> np.ndarray:
    """WCAG 2 relative luminance of 8-bit sRGB, in [0, 1]."""
    c = rgb.astype(np.float64) / 255.0
    linear = np.where(c <= 0.03928, c / 12.92, ((c + 0.055) / 1.055) ** 2.4)
    return 0.2126 * linear[..., 0] + 0.7152 * linear[..., 1] + 0.0722 * linear[..., 2]


def contrast_ratio(lighter: np.ndarray, darker: np.ndarray) -> np.ndarray:
    return (lighter + WCAG_FLARE) / (darker + WCAG_FLARE)


# ============================================================================
# INDIVIDUAL METRICS
# ============================================================================

def clipping_fractions(buffer: PixelBuffer) -> Tuple[float, float]:
    """Fraction of pixels whose luma is exactly 0 and exactly 255."""
    gray = luma8(buffer)
    total = gray.size
    return float(np.count_nonzero(gray == 0) / total), float(np.count_nonzero(gray == 255) / total)


def ssim(first: PixelBuffer, second: PixelBuffer, window: int = 8) -> float:
    """
    Mean structural similarity over every ``window`` x ``window`` luma window.

    Images smaller than the window are scored as a single window.
    """
    if not first.same_dimensions(second):
        raise InvalidDimensions(f"SSIM needs equal dimensions: {first!r} vs {second!r}")

    img1 = luma8(first).astype(np.float64)
    img2 = luma8(second).astype(np.float64)
    h, w = img1.shape

    if h < window or w < window:
        mu1, mu2 = img1.mean(), img2.mean()
        sigma1_sq = ((img1 - mu1) ** 2).mean()
        sigma2_sq = ((img2 - mu2) ** 2).mean()
        sigma12 = ((img1 - mu1) * (img2 - mu2)).mean()
        num = (2 * mu1 * mu2 + SSIM_C1) * (2 * sigma12 + SSIM_C2)
        den = (mu1 ** 2 + mu2 ** 2 + SSIM_C1) * (sigma1_sq + sigma2_sq + SSIM_C2)
        return float(num / den)

    def box(img):
        # Anchor at the window's top-left so row/col (y, x) covers [y, y+window)
        out = cv2.boxFilter(img, cv2.CV_64F, (window, window), anchor=(0, 0),
                            normalize=True, borderType=cv2.BORDER_REPLICATE)
        return out[:h - window + 1, :w - window + 1]

    mu1 = box(img1)
    mu2 = box(img2)
    mu1_sq = mu1 ** 2
    mu2_sq = mu2 ** 2
    mu1_mu2 = mu1 * mu2

    sigma1_sq = box(img1 * img1) - mu1_sq
    sigma2_sq = box(img2 * img2) - mu2_sq
    sigma12 = box(img1 * img2) - mu1_mu2

    ssim_map = ((2 * mu1_mu2 + SSIM_C1) * (2 * sigma12 + SSIM_C2)) / \
               ((mu1_sq + mu2_sq + SSIM_C1) * (sigma1_sq + sigma2_sq + SSIM_C2))
    return float(ssim_map.mean())


def edge_density(buffer: PixelBuffer, threshold: float = 30.0) -> float:
    """Fraction of interior pixels whose Sobel gradient magnitude exceeds ``threshold``."""
    gray = luma8(buffer).astype(np.float32)
    h, w = gray.shape
    if h < 3 or w < 3:
        return 0.0
    gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = cv2.magnitude(gx, gy)[1:-1, 1:-1]
    return float(np.count_nonzero(magnitude > threshold) / magnitude.size)


def detect_tint(buffer: PixelBuffer) -> Tuple[float, Optional[str], np.ndarray]:
    """
    Largest pairwise channel-mean difference, the dominant tint name, and the
    channel means. The tint is named after the channel straying furthest from
    the average of the three.
    """
    if buffer.channels != 3:
        raise InvalidDimensions(f"tint detection needs RGB, got {buffer.channels} channel(s)")
    means = buffer.data.reshape(-1, 3).mean(axis=0)
    r, g, b = means
    diff = max(abs(r - g), abs(g - b), abs(r - b))

    deviation = means - means.mean()
    idx = int(np.argmax(np.abs(deviation)))
    if deviation[idx] == 0:
        return float(diff), None, means
    positive, negative = TINT_NAMES[idx]
    return float(diff), positive if deviation[idx] > 0 else negative, means


def text_contrast(
    buffer: PixelBuffer,
    window: int = 16,
    min_contrast: float = 7.0,
) -> Tuple[float, float, int]:
    """
    Score text-bearing windows by WCAG contrast between their dark and light
    clusters (5th / 95th luminance percentiles).

    Returns (fraction of scored windows under ``min_contrast``, mean contrast,
    number of scored windows). Flat windows carry no text and are skipped.
    """
    if buffer.channels != 3:
        raise InvalidDimensions(f"text contrast needs RGB, got {buffer.channels} channel(s)")
    nh, nw = buffer.height // window, buffer.width // window
    if nh == 0 or nw == 0:
        return 0.0, 0.0, 0

    rgb = buffer.data[:nh * window, :nw * window]
    lum = relative_luminance(rgb)
    gray = luma8(PixelBuffer.from_array(np.ascontiguousarray(rgb))).astype(np.float64)

    def tiles(plane):
        return plane.reshape(nh, window, nw, window).transpose(0, 2, 1, 3).reshape(nh * nw, -1)

    lo, hi = TEXT_PERCENTILES
    gray_lo, gray_hi = np.percentile(tiles(gray), [lo, hi], axis=1)
    text_windows = (gray_hi - gray_lo) >= TEXT_MIN_SPREAD
    scored = int(np.count_nonzero(text_windows))
    if scored == 0:
        return 0.0, 0.0, 0

    lum_lo, lum_hi = np.percentile(tiles(lum)[text_windows], [lo, hi], axis=1)
    ratios = contrast_ratio(lum_hi, lum_lo)
    low = float(np.count_nonzero(ratios < min_contrast) / scored)
    return low, float(ratios.mean()), scored


def perceptual_hash(buffer: PixelBuffer) -> str:
    """
    64-bit average hash as 16 hex digits.

    Luma is area-downsampled to an 8x8 grid and each cell is compared with
    the grid median. Re-encoding noise moves cell averages far less than the
    typical distance to the median, so near-identical pages hash alike.
    """
    gray = luma8(buffer).astype(np.float32)
    cells = cv2.resize(gray, (HASH_GRID, HASH_GRID), interpolation=cv2.INTER_AREA)
    bits = (cells > np.median(cells)).flatten()
    value = 0
    for bit in bits:
        value = (value << 1) | int(bit)
    return f"{value:0{HASH_GRID * HASH_GRID // 4}x}"


def hamming_distance(hash1: str, hash2: str) -> int:
    """Differing bits between two hex hashes of equal length."""
    if len(hash1) != len(hash2):
        raise ValueError("Hashes must be same length")
    return bin(int(hash1, 16) ^ int(hash2, 16)).count("1")


def sharpness(buffer: PixelBuffer) -> float:
    """Laplacian variance; higher is sharper."""
    gray = luma8(buffer).astype(np.float64)
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def perceptual_diff(first: PixelBuffer, second: PixelBuffer) -> float:
    """RMS difference of normalized samples; 0 for identical buffers."""
    if not first.same_dimensions(second):
        raise InvalidDimensions(f"perceptual diff needs equal dimensions: {first!r} vs {second!r}")
    diff = (first.data.astype(np.float64) - second.data.astype(np.float64)) / 255.0
    return float(np.sqrt(np.mean(diff ** 2)))


# ============================================================================
# FULL AUDIT
# ============================================================================

def audit(
    processed: PixelBuffer,
    original: Optional[PixelBuffer] = None,
    config: Optional[QAConfig] = None,
) -> QAReport:
    """Run every enabled check and assemble an immutable report."""
    config = config or QAConfig()
    processed.require_rgb("quality audit")
    if original is not None and not processed.same_dimensions(original):
        raise InvalidDimensions(f"original {original!r} and processed {processed!r} differ")

    warnings = []
    metrics = {}

    if config.check_clipping:
        black, white = clipping_fractions(processed)
        metrics["shadow_clipping"] = black
        metrics["highlight_clipping"] = white
        if white > config.clipping_threshold:
            warnings.append(QAWarning(
                WarningCode.HIGHLIGHT_CLIPPING,
                f"Highlight clipping detected: {white * 100:.2f}% of pixels are blown out",
                white,
            ))
        if black > config.clipping_threshold:
            warnings.append(QAWarning(
                WarningCode.SHADOW_CLIPPING,
                f"Shadow clipping detected: {black * 100:.2f}% of pixels are crushed",
                black,
            ))

    if original is not None:
        metrics["perceptual_diff"] = perceptual_diff(original, processed)
        if config.check_ssim:
            score = ssim(original, processed, config.ssim_window)
            metrics["ssim"] = score
            if score < config.min_ssim:
                warnings.append(QAWarning(
                    WarningCode.LOW_SSIM,
                    f"SSIM score too low: {score:.4f} (minimum: {config.min_ssim})",
                    score,
                ))

    if config.check_edges:
        density = edge_density(processed, config.edge_threshold)
        metrics["edge_density"] = density
        if density > config.max_edge_density:
            warnings.append(QAWarning(
                WarningCode.HIGH_EDGE_DENSITY,
                f"High edge density: {density * 100:.2f}% - possible oversharpening",
                density,
            ))

    if config.check_tint:
        diff, tint, means = detect_tint(processed)
        metrics["tint_difference"] = diff
        metrics["channel_means"] = tuple(float(m) for m in means)
        if diff > config.tint_threshold and tint is not None:
            warnings.append(QAWarning(
                WarningCode.COLOR_TINT,
                f"{tint} tint detected: channel means differ by {diff:.1f}",
                diff,
            ))

    if config.check_contrast:
        low, mean_ratio, scored = text_contrast(processed, config.contrast_window, config.min_contrast)
        metrics["low_contrast_fraction"] = low
        metrics["mean_text_contrast"] = mean_ratio
        metrics["text_windows"] = scored
        if scored and low >= config.low_contrast_fraction:
            warnings.append(QAWarning(
                WarningCode.LOW_TEXT_CONTRAST,
                f"{low * 100:.1f}% of text areas have low contrast (<{config.min_contrast}:1)",
                low,
            ))

    score = sharpness(processed)
    metrics["sharpness"] = score
    if config.check_sharpness and score < config.min_sharpness:
        warnings.append(QAWarning(
            WarningCode.LOW_SHARPNESS,
            f"Image may be blurry: {score:.2f} (need {config.min_sharpness})",
            score,
        ))

    phash = perceptual_hash(processed) if config.compute_hash else None
    if phash is not None:
        metrics["perceptual_hash"] = phash

    report = QAReport(warnings=tuple(warnings), metrics=metrics, perceptual_hash=phash)
    if report.passed:
        logger.info("QA check passed")
    else:
        for w in report.warnings:
            logger.warning(w.message)
    return report
