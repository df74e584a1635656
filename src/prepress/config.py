"""
Centralized runtime configuration.
Environment-driven constants live here; stage tunables live in settings.py.
"""

import os

# Logging
LOG_DIR = os.path.expanduser(os.environ.get("PREPRESS_LOG_DIR", "~/.prepress/logs"))
LOG_LEVEL = os.environ.get("PREPRESS_LOG_LEVEL", "INFO").upper()
REPORT_LOG_ENABLED = os.environ.get("PREPRESS_REPORT_LOG", "false").lower() == "true"
REPORT_LOG_MAX_BYTES = 10 * 1024 * 1024
REPORT_LOG_BACKUPS = 5

# Statistics sampler
STATS_BLOCK_PIXELS = 1 << 16        # Pixels merged per Welford block
DEFAULT_BORDER_FRACTION = 0.05      # Outer band approximating bare paper

# SSIM stabilizers for 8-bit data
SSIM_C1 = (0.01 * 255) ** 2
SSIM_C2 = (0.03 * 255) ** 2

# WCAG relative luminance offset
WCAG_FLARE = 0.05

# Perceptual hash grid
HASH_GRID = 8

# Paper grain tile edge in pixels
GRAIN_TILE_SIZE = 256
