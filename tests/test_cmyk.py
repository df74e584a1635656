"""CMYK separation: GCR, line art, rich black, TAC limiting, dot gain.

Covers:
    - Total area coverage never exceeds the limit, dot gain included
    - Black line art on white separates to pure K
    - Large dark fills become C60 M40 Y40 K100, small ones do not
    - Preview and per-ink export

Run:
    pytest tests/test_cmyk.py -v
"""

import numpy as np
import pytest

from prepress import (
    CmykConfig,
    CmykSeparation,
    InvalidDimensions,
    PixelBuffer,
    cmyk_to_rgb_preview,
    convert_to_cmyk,
    export_channels,
)
from prepress.cmyk import (
    RICH_BLACK,
    apply_rich_black,
    build_dot_gain_lut,
    compensate_dot_gain,
    detect_line_art,
    limit_tac,
    rgb_to_cmyk_planes,
    thick_regions,
)


def line_art_page(size=64, color=(0, 0, 0)):
    arr = np.full((size, size, 3), 255, dtype=np.uint8)
    arr[:, size // 2] = color
    return PixelBuffer.from_array(arr)


def stroke_page(width, size=64, color=(0, 0, 0)):
    arr = np.full((size, size, 3), 255, dtype=np.uint8)
    start = (size - width) // 2
    arr[:, start:start + width] = color
    return PixelBuffer.from_array(arr), start


def dark_fill_page(fill=32, size=64, value=40):
    arr = np.full((size, size, 3), 255, dtype=np.uint8)
    start = (size - fill) // 2
    arr[start:start + fill, start:start + fill] = value
    return PixelBuffer.from_array(arr), start


class TestGcr:
    def test_white_is_no_ink(self):
        planes = rgb_to_cmyk_planes(np.full((2, 2, 3), 255, dtype=np.uint8), 0.8)
        assert np.all(planes == 0)

    def test_black_moves_to_k(self):
        planes = rgb_to_cmyk_planes(np.zeros((1, 1, 3), dtype=np.uint8), 0.8)
        np.testing.assert_allclose(planes[0, 0], [0.2, 0.2, 0.2, 1.0], atol=1e-6)

    def test_full_gcr_gray_is_k_only(self):
        planes = rgb_to_cmyk_planes(np.full((1, 1, 3), 128, dtype=np.uint8), 1.0)
        # K picks up the full shift on top of the gray component
        np.testing.assert_allclose(planes[0, 0], [0, 0, 0, 2 * (1 - 128 / 255)], atol=1e-6)

    def test_zero_gcr_keeps_cmy(self):
        planes = rgb_to_cmyk_planes(np.array([[[255, 0, 0]]], dtype=np.uint8), 0.0)
        np.testing.assert_allclose(planes[0, 0], [0, 1, 1, 0], atol=1e-6)


class TestTacLimit:
    def test_scales_cmy_keeps_k(self):
        planes = np.ones((1, 1, 4), dtype=np.float32)
        out = limit_tac(planes, 300)
        np.testing.assert_allclose(out[0, 0], [2 / 3, 2 / 3, 2 / 3, 1.0], atol=1e-6)
        assert planes[0, 0, 0] == 1.0

    def test_under_limit_untouched(self):
        planes = np.full((2, 2, 4), 0.5, dtype=np.float32)
        assert limit_tac(planes, 300) is planes

    @pytest.mark.parametrize("tac", [200, 240, 300, 360])
    def test_invariant_on_random_page(self, tac):
        rng = np.random.default_rng(tac)
        page = PixelBuffer.from_array(rng.integers(0, 256, (48, 48, 3), dtype=np.uint8))
        sep = convert_to_cmyk(page, CmykConfig(tac_limit=tac, gcr_strength=0.0))
        assert sep.total_coverage().max() <= tac + 1e-3
        assert sep.stats.over_limit_pixels == 0
        assert sep.stats.max_tac <= tac + 1e-3

    def test_invariant_on_comic_page(self, comic_page):
        sep = convert_to_cmyk(comic_page, CmykConfig(tac_limit=240))
        assert sep.stats.max_tac <= 240 + 1e-3
        assert ((sep.planes >= 0) & (sep.planes <= 1)).all()


class TestLineArt:
    def test_black_line_is_pure_k(self):
        sep = convert_to_cmyk(line_art_page(), CmykConfig())
        line = sep.planes[:, 32]
        np.testing.assert_array_equal(line[:, :3], 0.0)
        np.testing.assert_array_equal(line[:, 3], 1.0)
        assert sep.stats.line_art_pixels == 64
        assert sep.stats.rich_black_pixels == 0

    def test_paper_stays_blank(self):
        sep = convert_to_cmyk(line_art_page(), CmykConfig())
        assert np.all(sep.planes[:, 31] == 0)
        assert np.all(sep.planes[:, 33] == 0)

    @pytest.mark.parametrize("width", [3, 5])
    def test_thick_stroke_is_pure_k(self, width):
        page, start = stroke_page(width)
        sep = convert_to_cmyk(page, CmykConfig())
        stroke = sep.planes[:, start:start + width]
        np.testing.assert_array_equal(stroke[:, :, :3], 0.0)
        np.testing.assert_array_equal(stroke[:, :, 3], 1.0)
        assert sep.stats.line_art_pixels == 64 * width
        assert sep.stats.rich_black_pixels == 0

    def test_stroke_wider_than_limit_is_a_fill(self):
        page, start = stroke_page(8)
        sep = convert_to_cmyk(page, CmykConfig())
        # Outer columns are edges, the six inner columns are fill
        np.testing.assert_array_equal(sep.planes[:, start, :], np.tile([0, 0, 0, 1], (64, 1)))
        np.testing.assert_allclose(sep.planes[10, start + 4], RICH_BLACK, atol=1e-6)
        assert sep.stats.rich_black_pixels == 64 * 6

    def test_thin_colored_stroke_gets_no_rich_black(self):
        page, start = stroke_page(3, color=(0, 0, 60))
        sep = convert_to_cmyk(page, CmykConfig())
        assert sep.stats.line_art_pixels == 0
        assert sep.stats.rich_black_pixels == 0
        assert sep.planes[10, start + 1, 0] > 0

    def test_thick_regions(self):
        mask = np.zeros((32, 32), dtype=bool)
        mask[:, 2:5] = True
        mask[:, 12:22] = True
        thick = thick_regions(mask, 6)
        assert not thick[:, 2:5].any()
        assert thick[:, 12:22].all()

    def test_colored_line_not_flagged(self):
        mask = detect_line_art(line_art_page(color=(200, 0, 0)))
        assert not mask.any()

    def test_disabled_keeps_gcr_result(self):
        sep = convert_to_cmyk(line_art_page(), CmykConfig(line_art_to_k=False, rich_black=False,
                                                          compensate_dot_gain=False))
        np.testing.assert_allclose(sep.planes[0, 32], [0.2, 0.2, 0.2, 1.0], atol=1e-6)


class TestRichBlack:
    @pytest.mark.parametrize("config", [CmykConfig(), CmykConfig(compensate_dot_gain=False)])
    def test_large_fill_gets_recipe(self, config):
        page, start = dark_fill_page()
        sep = convert_to_cmyk(page, config)
        np.testing.assert_allclose(sep.planes[32, 32], RICH_BLACK, atol=1e-6)
        assert sep.total_coverage()[32, 32] == pytest.approx(240.0, abs=1e-3)
        # The fill outline is an edge and separates as line art
        np.testing.assert_array_equal(sep.planes[start, 32], [0, 0, 0, 1])
        assert sep.stats.rich_black_pixels == 30 * 30
        assert sep.stats.line_art_pixels == 32 * 32 - 30 * 30

    def test_small_fill_is_line_art(self):
        page, _ = dark_fill_page(fill=6)
        sep = convert_to_cmyk(page, CmykConfig())
        assert sep.stats.rich_black_pixels == 0
        assert sep.stats.line_art_pixels == 36
        np.testing.assert_array_equal(sep.planes[32, 32], [0, 0, 0, 1])

    def test_threshold_on_k(self):
        planes = np.zeros((10, 10, 4), dtype=np.float32)
        no_line_art = np.zeros((10, 10), dtype=bool)

        planes[:, :, 3] = 0.85
        out, mask = apply_rich_black(planes, no_line_art, 64)
        assert mask.all()
        np.testing.assert_allclose(out[5, 5], RICH_BLACK)

        planes[:, :, 3] = 0.79
        out, mask = apply_rich_black(planes, no_line_art, 64)
        assert not mask.any()
        assert out is planes

    def test_disabled(self):
        page, _ = dark_fill_page()
        sep = convert_to_cmyk(page, CmykConfig(rich_black=False, compensate_dot_gain=False))
        assert sep.stats.rich_black_pixels == 0


class TestDotGain:
    def test_lut_shape_and_endpoints(self):
        lut = build_dot_gain_lut(15.0)
        assert lut.shape == (256,)
        assert lut[0] == 0.0
        assert lut[255] == pytest.approx(1.0)
        assert np.all(np.diff(lut) >= 0)
        assert not lut.flags.writeable

    def test_curve_raises_midtones(self):
        assert build_dot_gain_lut(15.0)[128] > 128 / 255

    def test_zero_gain_is_identity(self):
        np.testing.assert_allclose(build_dot_gain_lut(0.0), np.arange(256) / 255.0, atol=1e-6)

    def test_compensate_planes(self):
        planes = np.array([[[0.0, 0.5, 1.0, 0.25]]], dtype=np.float32)
        out = compensate_dot_gain(planes, 15)
        assert out[0, 0, 0] == 0.0
        assert out[0, 0, 2] == pytest.approx(1.0)
        assert out[0, 0, 1] > 0.5

    def test_kept_pixels_pass_through(self):
        planes = np.array([[RICH_BLACK, [0.0, 0.5, 0.5, 0.25]]], dtype=np.float32)
        keep = np.array([[True, False]])
        out = compensate_dot_gain(planes, 15, keep=keep)
        np.testing.assert_array_equal(out[0, 0], RICH_BLACK)
        assert out[0, 1, 1] > 0.5


class TestPreviewAndExport:
    def test_preview_extremes(self):
        sep = convert_to_cmyk(line_art_page(), CmykConfig())
        preview = cmyk_to_rgb_preview(sep)
        assert preview.channels == 3
        assert np.all(preview.data[:, 32] == 0)
        assert np.all(preview.data[:, 0] == 255)

    def test_preview_from_cmyk_buffer(self):
        buf = PixelBuffer.filled(2, 2, (255, 0, 0, 0))
        assert cmyk_to_rgb_preview(buf).data[0, 0].tolist() == [0, 255, 255]

    def test_preview_rejects_rgb(self):
        with pytest.raises(InvalidDimensions):
            cmyk_to_rgb_preview(PixelBuffer.filled(2, 2, (0, 0, 0)))

    def test_export_channels(self):
        sep = convert_to_cmyk(line_art_page(), CmykConfig())
        planes = export_channels(sep)
        assert sorted(planes) == ["c", "k", "m", "y"]
        assert all(p.channels == 1 for p in planes.values())
        assert np.all(planes["k"].data[:, 32] == 255)
        assert np.all(planes["c"].data == 0)

    def test_export_from_buffer_matches_separation(self, comic_page):
        sep = convert_to_cmyk(comic_page, CmykConfig())
        from_sep = export_channels(sep)
        from_buf = export_channels(sep.to_buffer())
        assert all(from_sep[name] == from_buf[name] for name in "cmyk")

    def test_to_buffer_is_four_channel(self, comic_page):
        sep = convert_to_cmyk(comic_page, CmykConfig())
        assert isinstance(sep, CmykSeparation)
        assert sep.to_buffer().shape == (comic_page.height, comic_page.width, 4)
        assert not sep.planes.flags.writeable

    def test_conversion_needs_rgb(self):
        with pytest.raises(InvalidDimensions):
            convert_to_cmyk(PixelBuffer.filled(2, 2, (0, 0, 0, 0)), CmykConfig())


class TestSeparationStats:
    def test_neutral_page_is_k_heavy(self):
        gray = PixelBuffer.filled(16, 16, (200, 200, 200))
        sep = convert_to_cmyk(gray, CmykConfig(gcr_strength=1.0, compensate_dot_gain=False))
        assert sep.stats.neutral_fraction == 1.0
        assert sep.stats.avg_tac == pytest.approx(2 * (1 - 200 / 255) * 100, abs=1e-3)
        assert sep.stats.tac_limit == 300
