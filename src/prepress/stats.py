"""
Statistics Sampler
==================
Per-channel mean / standard deviation over the whole image, the outer border
band (bare paper), or an explicit rectangle.

Accumulation is single pass: pixels stream through in fixed-size blocks and
each block's moments are merged into the running totals with the pairwise
Welford update (Chan et al.), so large pages never sum raw squares.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

import numpy as np

from .buffer import PixelBuffer
from .config import DEFAULT_BORDER_FRACTION, STATS_BLOCK_PIXELS
from .errors import InvalidRegion


class Region(Enum):
    """Named sampling regions."""
    WHOLE = "whole"
    BORDER = "border"


@dataclass(frozen=True)
class Rect:
    """Explicit sampling rectangle in pixel coordinates."""
    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class ChannelStat:
    mean: float
    stddev: float


@dataclass(frozen=True)
class ChannelStats:
    """Statistics for every channel of a region, in channel order."""
    channels: Tuple[ChannelStat, ...]
    count: int

    @property
    def means(self) -> np.ndarray:
        return np.array([c.mean for c in self.channels], dtype=np.float64)

    @property
    def stddevs(self) -> np.ndarray:
        return np.array([c.stddev for c in self.channels], dtype=np.float64)

    def __getitem__(self, index: int) -> ChannelStat:
        return self.channels[index]

    def __len__(self):
        return len(self.channels)


class RunningStats:
    """Running per-channel mean and M2 using block-merged Welford updates."""

    def __init__(self, channels: int):
        self.count = 0
        self.mean = np.zeros(channels, dtype=np.float64)
        self.m2 = np.zeros(channels, dtype=np.float64)

    def update(self, block: np.ndarray):
        """Merge an (n, channels) block of samples."""
        n_b = block.shape[0]
        if n_b == 0:
            return
        block = block.astype(np.float64)
        mean_b = block.mean(axis=0)
        m2_b = ((block - mean_b) ** 2).sum(axis=0)

        n_a = self.count
        total = n_a + n_b
        delta = mean_b - self.mean
        self.mean = self.mean + delta * (n_b / total)
        self.m2 = self.m2 + m2_b + delta ** 2 * (n_a * n_b / total)
        self.count = total

    def result(self) -> ChannelStats:
        if self.count == 0:
            raise InvalidRegion("no samples accumulated")
        variance = self.m2 / self.count
        return ChannelStats(
            channels=tuple(
                ChannelStat(mean=float(m), stddev=float(math.sqrt(max(v, 0.0))))
                for m, v in zip(self.mean, variance)
            ),
            count=self.count,
        )


def border_width(buffer: PixelBuffer, fraction: float = DEFAULT_BORDER_FRACTION) -> int:
    """Band width in pixels: ``fraction`` of the shorter dimension, rounded up."""
    if fraction <= 0:
        return 0
    return int(math.ceil(min(buffer.width, buffer.height) * fraction))


def border_mask(buffer: PixelBuffer, fraction: float = DEFAULT_BORDER_FRACTION) -> np.ndarray:
    band = border_width(buffer, fraction)
    mask = np.zeros((buffer.height, buffer.width), dtype=bool)
    if band == 0:
        return mask
    mask[:band, :] = True
    mask[-band:, :] = True
    mask[:, :band] = True
    mask[:, -band:] = True
    return mask


def _region_pixels(buffer: PixelBuffer, region, border_fraction: float) -> np.ndarray:
    data = buffer.data
    if region is Region.WHOLE:
        return data.reshape(-1, buffer.channels)

    if region is Region.BORDER:
        mask = border_mask(buffer, border_fraction)
        if not mask.any():
            raise InvalidRegion(f"border band is empty (fraction={border_fraction})")
        return data[mask]

    if isinstance(region, Rect):
        if region.width <= 0 or region.height <= 0:
            raise InvalidRegion(f"zero-area rectangle: {region}")
        if (region.x < 0 or region.y < 0 or
                region.x + region.width > buffer.width or
                region.y + region.height > buffer.height):
            raise InvalidRegion(f"rectangle {region} outside {buffer.width}x{buffer.height}")
        window = data[region.y:region.y + region.height, region.x:region.x + region.width]
        return window.reshape(-1, buffer.channels)

    raise InvalidRegion(f"unknown region: {region!r}")


def sample_region(
    buffer: PixelBuffer,
    region: Union[Region, Rect] = Region.WHOLE,
    border_fraction: float = DEFAULT_BORDER_FRACTION,
) -> ChannelStats:
    """Per-channel mean and population standard deviation over ``region``."""
    pixels = _region_pixels(buffer, region, border_fraction)
    if pixels.shape[0] == 0:
        raise InvalidRegion(f"region {region!r} has no pixels")

    running = RunningStats(buffer.channels)
    for start in range(0, pixels.shape[0], STATS_BLOCK_PIXELS):
        running.update(pixels[start:start + STATS_BLOCK_PIXELS])
    return running.result()


@dataclass(frozen=True)
class ReferenceStatistics:
    """
    Hero-page statistics shared read-only across a batch.

    Build once with ``from_buffer`` before any page that uses it starts.
    """
    red: ChannelStat
    green: ChannelStat
    blue: ChannelStat

    @classmethod
    def from_buffer(cls, buffer: PixelBuffer) -> "ReferenceStatistics":
        buffer.require_rgb("reference statistics")
        stats = sample_region(buffer, Region.WHOLE)
        return cls(red=stats[0], green=stats[1], blue=stats[2])

    @property
    def means(self) -> np.ndarray:
        return np.array([self.red.mean, self.green.mean, self.blue.mean], dtype=np.float64)

    @property
    def stddevs(self) -> np.ndarray:
        return np.array([self.red.stddev, self.green.stddev, self.blue.stddev], dtype=np.float64)
