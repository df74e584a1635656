"""
Pixel Buffer
============
The common currency passed between every stage.

A buffer is row-major, channel-interleaved 8-bit data: 3 channels for RGB,
4 for CMYK, 1 for a single exported plane. The wrapped array is read-only so
a stage can never mutate a buffer it does not own; every stage builds a new
array and wraps it with ``PixelBuffer.from_array``.
"""

from dataclasses import dataclass

import numpy as np

from .errors import InvalidDimensions

VALID_CHANNELS = (1, 3, 4)


@dataclass(frozen=True)
class PixelBuffer:
    """Immutable (height, width, channels) uint8 image."""
    data: np.ndarray

    def __post_init__(self):
        arr = self.data
        if arr.dtype != np.uint8:
            raise InvalidDimensions(f"expected uint8 samples, got {arr.dtype}")
        if arr.ndim != 3:
            raise InvalidDimensions(f"expected (height, width, channels), got shape {arr.shape}")
        h, w, c = arr.shape
        if h == 0 or w == 0:
            raise InvalidDimensions(f"zero-sized buffer: {w}x{h}")
        if c not in VALID_CHANNELS:
            raise InvalidDimensions(f"unsupported channel count: {c}")
        if arr.flags.writeable:
            arr = arr.copy()
            arr.setflags(write=False)
            object.__setattr__(self, "data", arr)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """Wrap an array; 2-D input is treated as a single channel."""
        arr = np.asarray(array)
        if arr.ndim == 2:
            arr = arr[:, :, np.newaxis]
        return cls(np.ascontiguousarray(arr))

    @classmethod
    def from_bytes(cls, width: int, height: int, channels: int, data: bytes) -> "PixelBuffer":
        """Build from interleaved samples; length must be width*height*channels."""
        if width <= 0 or height <= 0:
            raise InvalidDimensions(f"zero-sized buffer: {width}x{height}")
        if channels not in VALID_CHANNELS:
            raise InvalidDimensions(f"unsupported channel count: {channels}")
        expected = width * height * channels
        if len(data) != expected:
            raise InvalidDimensions(
                f"data length {len(data)} != {width}x{height}x{channels} ({expected})"
            )
        arr = np.frombuffer(bytes(data), dtype=np.uint8).reshape(height, width, channels)
        return cls(arr)

    @classmethod
    def filled(cls, width: int, height: int, value) -> "PixelBuffer":
        """Solid buffer; ``value`` is one sample per channel."""
        value = np.atleast_1d(np.asarray(value, dtype=np.uint8))
        if width <= 0 or height <= 0:
            raise InvalidDimensions(f"zero-sized buffer: {width}x{height}")
        arr = np.empty((height, width, value.size), dtype=np.uint8)
        arr[:, :] = value
        return cls(arr)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def channels(self) -> int:
        return self.data.shape[2]

    @property
    def shape(self):
        return self.data.shape

    def to_bytes(self) -> bytes:
        return self.data.tobytes()

    def as_float(self) -> np.ndarray:
        """Writable float32 copy in 0-255 for stage math."""
        return self.data.astype(np.float32)

    def plane(self, index: int) -> np.ndarray:
        return self.data[:, :, index]

    def same_dimensions(self, other: "PixelBuffer") -> bool:
        return self.shape == other.shape

    def require_rgb(self, stage: str):
        if self.channels != 3:
            raise InvalidDimensions(f"{stage} needs an RGB buffer, got {self.channels} channel(s)")

    def __eq__(self, other):
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return self.shape == other.shape and np.array_equal(self.data, other.data)

    def __hash__(self):
        return hash((self.shape, self.data.tobytes()))

    def __repr__(self):
        return f"PixelBuffer({self.width}x{self.height}x{self.channels})"


def to_uint8(values: np.ndarray) -> np.ndarray:
    """Round and clamp float samples into 0-255."""
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def luminance(rgb: np.ndarray) -> np.ndarray:
    """Rec.709 luma of a float or uint8 RGB array, as float32 in 0-255."""
    rgb = rgb.astype(np.float32)
    return 0.2126 * rgb[:, :, 0] + 0.7152 * rgb[:, :, 1] + 0.0722 * rgb[:, :, 2]
