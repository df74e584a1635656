"""Pixel buffer construction, validation and immutability.

Run:
    pytest tests/test_buffer.py -v
"""

import numpy as np
import pytest

from prepress import InvalidDimensions, PixelBuffer, PrepressError
from prepress.buffer import luminance, to_uint8


class TestConstruction:
    def test_from_bytes_shape(self):
        buf = PixelBuffer.from_bytes(4, 2, 3, bytes(range(24)))
        assert (buf.width, buf.height, buf.channels) == (4, 2, 3)
        assert buf.data[0, 1].tolist() == [3, 4, 5]

    def test_from_bytes_length_mismatch(self):
        with pytest.raises(InvalidDimensions):
            PixelBuffer.from_bytes(4, 2, 3, bytes(23))

    @pytest.mark.parametrize("width,height", [(0, 4), (4, 0), (-1, 4)])
    def test_zero_sized_rejected(self, width, height):
        with pytest.raises(InvalidDimensions):
            PixelBuffer.from_bytes(width, height, 3, b"")

    def test_unsupported_channel_count(self):
        with pytest.raises(InvalidDimensions):
            PixelBuffer.from_array(np.zeros((2, 2, 2), dtype=np.uint8))

    def test_non_uint8_rejected(self):
        with pytest.raises(InvalidDimensions):
            PixelBuffer.from_array(np.zeros((2, 2, 3), dtype=np.float32))

    def test_errors_share_base_class(self):
        with pytest.raises(PrepressError):
            PixelBuffer.from_array(np.zeros((0, 2, 3), dtype=np.uint8))

    def test_two_dimensional_array_is_single_channel(self):
        buf = PixelBuffer.from_array(np.full((3, 5), 7, dtype=np.uint8))
        assert buf.shape == (3, 5, 1)

    def test_filled(self):
        buf = PixelBuffer.filled(6, 4, (10, 20, 30))
        assert buf.shape == (4, 6, 3)
        assert buf.data[3, 5].tolist() == [10, 20, 30]

    def test_to_bytes_is_interleaved(self):
        raw = bytes(range(12))
        assert PixelBuffer.from_bytes(2, 2, 3, raw).to_bytes() == raw


class TestImmutability:
    def test_data_is_read_only(self):
        buf = PixelBuffer.filled(2, 2, (1, 2, 3))
        assert not buf.data.flags.writeable
        with pytest.raises(ValueError):
            buf.data[0, 0, 0] = 9

    def test_source_array_is_copied(self):
        arr = np.zeros((2, 2, 3), dtype=np.uint8)
        buf = PixelBuffer.from_array(arr)
        arr[:] = 255
        assert buf.data.max() == 0

    def test_as_float_is_writable_copy(self):
        buf = PixelBuffer.filled(2, 2, (1, 2, 3))
        f = buf.as_float()
        f[:] = 0
        assert f.dtype == np.float32
        assert buf.data[0, 0, 2] == 3

    def test_equality_and_hash(self):
        a = PixelBuffer.filled(3, 3, (5, 6, 7))
        b = PixelBuffer.filled(3, 3, (5, 6, 7))
        c = PixelBuffer.filled(3, 3, (5, 6, 8))
        assert a == b
        assert hash(a) == hash(b)
        assert a != c


class TestHelpers:
    def test_require_rgb(self):
        with pytest.raises(InvalidDimensions):
            PixelBuffer.filled(2, 2, (0, 0, 0, 0)).require_rgb("test")

    def test_to_uint8_rounds_and_clamps(self):
        out = to_uint8(np.array([-5.0, 0.4, 0.6, 254.5, 300.0]))
        assert out.tolist() == [0, 0, 1, 254, 255]

    def test_luminance_of_white(self):
        rgb = np.full((1, 1, 3), 255, dtype=np.uint8)
        assert luminance(rgb)[0, 0] == pytest.approx(255.0, abs=1e-3)
