"""Shared synthetic pages for the engine tests."""

import numpy as np
import pytest

from prepress import PixelBuffer, report_log


def create_test_page(width=128, height=128, scene="comic"):
    """
    Create a synthetic comic page.

    comic: yellowed paper, black panel borders and line work, skin, red and
    blue flats, and a block of "lettering".
    flat: a single yellowed paper tone.
    """
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:, :] = [232, 222, 196]  # Aged newsprint

    if scene == "flat":
        return img

    # Panel border
    x0, y0 = int(width * 0.1), int(height * 0.1)
    x1, y1 = int(width * 0.9), int(height * 0.9)
    img[y0, x0:x1] = 0
    img[y1, x0:x1] = 0
    img[y0:y1, x0] = 0
    img[y0:y1, x1] = 0

    # Flats
    img[y0 + 4:y0 + 24, x0 + 4:x0 + 30] = [220, 170, 120]   # Skin
    img[y0 + 4:y0 + 24, x0 + 34:x0 + 60] = [200, 40, 40]    # Red costume
    img[y0 + 30:y0 + 50, x0 + 4:x0 + 30] = [40, 60, 190]    # Blue sky

    # Lettering: thin dark strokes on the paper
    for x in range(x0 + 40, min(x1 - 4, x0 + 90), 4):
        img[y0 + 60:y0 + 70, x] = [20, 20, 20]

    return img


@pytest.fixture
def comic_page():
    return PixelBuffer.from_array(create_test_page())


@pytest.fixture
def flat_page():
    return PixelBuffer.from_array(create_test_page(64, 64, scene="flat"))


@pytest.fixture(autouse=True)
def clean_report_log():
    report_log.reset_metrics()
    yield
    report_log.close_report_log()
    report_log.reset_metrics()
