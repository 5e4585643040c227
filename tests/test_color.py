#!/usr/bin/env python3
"""Tests for colors and colormaps."""

import numpy
import pytest

from rastertiler.color import Colormap, Rgb8, bit_depth_for
from rastertiler.errors import ConfigurationError


class TestRgb8:
    """Tests for Rgb8."""

    def test_from_hex(self):
        """Test parsing a hex color."""
        assert Rgb8.from_hex("#FF00FF") == Rgb8(255, 0, 255)
        assert Rgb8.from_hex("#0a0b0c") == Rgb8(10, 11, 12)

    @pytest.mark.parametrize("value", ["FF00FF", "#FF00F", "#FF00FF0", "#GG0000", ""])
    def test_from_hex_invalid(self, value):
        """Test malformed hex colors are rejected."""
        with pytest.raises(ConfigurationError):
            Rgb8.from_hex(value)

    def test_from_u32(self):
        """Test unpacking the low 24 bits, ignoring the high byte."""
        assert Rgb8.from_u32(0x12345678) == Rgb8(0x34, 0x56, 0x78)
        assert Rgb8.from_u32(numpy.uint32(0xFF0000)) == Rgb8(255, 0, 0)

    def test_iter(self):
        """Test unpacking as r, g, b."""
        assert tuple(Rgb8(1, 2, 3)) == (1, 2, 3)


class TestStaticColormap:
    """Tests for colormaps parsed from value:color strings."""

    def test_parse(self):
        """Test entries are indexed in order with a transparent fallback last."""
        colormap = Colormap.parse("1:#FF0000,2:#00FF00")
        assert len(colormap) == 3
        assert colormap.get_index(1) == 0
        assert colormap.get_index(2) == 1
        assert colormap.get_index(9) == 2
        assert colormap.transparency == [255, 255, 0]
        assert colormap.palette() == bytes([255, 0, 0, 0, 255, 0, 0, 0, 0])
        assert colormap.alpha() == bytes([255, 255, 0])

    def test_parse_nodata_transparent(self):
        """Test nodata resolves to the transparent entry even when listed."""
        colormap = Colormap.parse("0:#000000,1:#FF0000", nodata=0)
        assert len(colormap) == 2
        assert colormap.get_index(1) == 0
        assert colormap.get_index(0) == colormap.fallback_index == 1
        assert colormap.transparency[colormap.get_index(0)] == 0

    def test_parse_nodata_unlisted(self):
        """Test an unlisted nodata value also resolves to the transparent entry."""
        colormap = Colormap.parse("1:#FF0000", nodata=7)
        indexes = colormap.indexes(numpy.array([7, 1], dtype=numpy.uint8))
        assert list(indexes) == [1, 0]

    def test_parse_whitespace(self):
        """Test whitespace around entries is ignored."""
        colormap = Colormap.parse(" 1:#FF0000 , 2: #00FF00")
        assert colormap.colors[:2] == [Rgb8(255, 0, 0), Rgb8(0, 255, 0)]

    @pytest.mark.parametrize(
        "value",
        ["", "1", "1:#FF0000,x:#00FF00", "256:#FF0000", "-1:#FF0000", "1:#FF0000,1:#00FF00", "1:red"],
    )
    def test_parse_invalid(self, value):
        """Test malformed colormaps are rejected."""
        with pytest.raises(ConfigurationError):
            Colormap.parse(value)

    def test_parse_too_many(self):
        """Test that more entries than fit in a palette are rejected."""
        value = ",".join(f"{i}:#000000" for i in range(256))
        with pytest.raises(ConfigurationError):
            Colormap.parse(value)

    def test_parse_max_entries(self):
        """Test 255 entries plus the fallback fill a palette."""
        colormap = Colormap.parse(",".join(f"{i}:#000000" for i in range(255)))
        assert len(colormap) == 256
        assert colormap.bit_depth() == 8

    def test_indexes(self):
        """Test vectorized lookups match get_index."""
        colormap = Colormap.parse("10:#FF0000,3:#00FF00,200:#0000FF")
        buffer = numpy.array([3, 10, 200, 0, 3, 255], dtype=numpy.uint8)
        expected = [colormap.get_index(v) for v in buffer]
        assert colormap.indexes(buffer).tolist() == expected == [1, 0, 2, 3, 1, 3]
        assert colormap.indexes(buffer).dtype == numpy.uint8


class TestDynamicColormap:
    """Tests for colormaps built while encoding."""

    def test_nodata_reserved(self):
        """Test nodata is always the transparent first entry."""
        colormap = Colormap.dynamic(7)
        assert len(colormap) == 1
        assert colormap.get_index(7) == 0
        assert colormap.alpha() == b"\x00"

    def test_first_seen_order(self):
        """Test entries are indexed in the order they are added."""
        colormap = Colormap.dynamic(0)
        for value in (30, 10, 20, 10):
            assert colormap.add(value, Rgb8.from_u32(value))
        assert [colormap.get_index(v) for v in (0, 30, 10, 20)] == [0, 1, 2, 3]
        assert colormap.get_index(99) == 0

    def test_capacity(self):
        """Test a full colormap refuses new values but accepts known ones."""
        colormap = Colormap.dynamic(0, capacity=3)
        assert colormap.add(1, Rgb8(0, 0, 1))
        assert colormap.add(2, Rgb8(0, 0, 2))
        assert not colormap.add(3, Rgb8(0, 0, 3))
        assert colormap.add(1, Rgb8(0, 0, 1))
        assert len(colormap) == 3

    def test_clear(self):
        """Test clear keeps only the nodata entry."""
        colormap = Colormap.dynamic(5)
        colormap.add(1, Rgb8(1, 1, 1))
        colormap.clear()
        assert len(colormap) == 1
        assert colormap.get_index(5) == 0
        assert colormap.get_index(1) == 0

    def test_invalid_capacity(self):
        """Test capacity is limited to a palette."""
        with pytest.raises(ValueError):
            Colormap.dynamic(0, capacity=257)


class TestBitDepth:
    """Tests for palette bit depth selection."""

    @pytest.mark.parametrize(
        "size,depth",
        [(1, 1), (2, 1), (3, 2), (4, 2), (5, 4), (16, 4), (17, 8), (256, 8)],
    )
    def test_bit_depth_for(self, size, depth):
        """Test the smallest depth holding every palette entry is chosen."""
        assert bit_depth_for(size) == depth
