"""
HSV helpers shared by the tone corrector and matte compensator.

OpenCV's float conversion keeps full precision: hue in degrees [0, 360),
saturation and value in [0, 1].
"""

import cv2
import numpy as np


def rgb_to_hsv(rgb: np.ndarray) -> np.ndarray:
    """uint8 or 0-255 float RGB -> float32 HSV (degrees, 0-1, 0-1)."""
    rgb01 = rgb.astype(np.float32) / 255.0
    return cv2.cvtColor(rgb01, cv2.COLOR_RGB2HSV)


def hsv_to_rgb(hsv: np.ndarray) -> np.ndarray:
    """float32 HSV -> float32 RGB in 0-255 (unclamped)."""
    hsv = np.ascontiguousarray(hsv, dtype=np.float32)
    return cv2.cvtColor(hsv, cv2.COLOR_HSV2RGB) * 255.0


def scale_saturation(rgb: np.ndarray, scale) -> np.ndarray:
    """Multiply HSV saturation by ``scale`` (scalar or per-pixel) and clamp to 1."""
    hsv = rgb_to_hsv(rgb)
    hsv[:, :, 1] = np.clip(hsv[:, :, 1] * scale, 0.0, 1.0)
    return hsv_to_rgb(hsv)
