"""Colors and value to palette index colormaps"""

import dataclasses
import logging
import re

import numpy

from .errors import ConfigurationError

MAX_PALETTE_SIZE = 256

HEX_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


@dataclasses.dataclass(frozen=True)
class Rgb8:
    """8-bit per channel RGB color"""

    r: int
    g: int
    b: int

    def __iter__(self):
        return iter((self.r, self.g, self.b))

    @staticmethod
    def from_hex(hex_str: str) -> "Rgb8":
        """Parse a "#RRGGBB" color string"""
        if not HEX_COLOR_PATTERN.match(hex_str):
            raise ConfigurationError(f"unsupported hex color format: {hex_str!r}")
        decoded = bytes.fromhex(hex_str[1:])
        return Rgb8(decoded[0], decoded[1], decoded[2])

    @staticmethod
    def from_u32(value: int) -> "Rgb8":
        """Unpack a color stored in the low 24 bits of an integer"""
        value = int(value)
        return Rgb8((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)


class Colormap:
    """Mapping of pixel values to palette indexes

    Each palette entry has an RGB color and an alpha value. Values not in the
    map resolve to `fallback_index`, which always points to a fully
    transparent entry.

    Static colormaps are parsed once with `Colormap.parse()`; every listed
    value gets an opaque entry in order and a final transparent entry is
    added for unlisted values and nodata. Dynamic colormaps from `Colormap.dynamic()`
    reserve index 0 for nodata and grow in first seen order up to their
    capacity; `clear()` resets them between tiles.
    """

    def __init__(self, capacity: int = MAX_PALETTE_SIZE):
        if not 0 < capacity <= MAX_PALETTE_SIZE:
            raise ValueError(f"capacity must be between 1 and {MAX_PALETTE_SIZE}")
        self.capacity = capacity
        self.values: dict[int, int] = {}
        self.colors: list[Rgb8] = []
        self.transparency: list[int] = []
        self.fallback_index = 0
        self._nodata: int | None = None

    def __len__(self) -> int:
        return len(self.colors)

    def __repr__(self) -> str:
        return f"Colormap(entries={len(self)}, capacity={self.capacity})"

    @staticmethod
    def parse(colormap_str: str, nodata: int | None = None) -> "Colormap":
        """Parse a "value:#RRGGBB,value:#RRGGBB,..." string

        nodata, if given, always resolves to the transparent fallback entry;
        a colormap entry for it is ignored.
        """
        entries = [entry.strip() for entry in colormap_str.split(",") if entry.strip()]
        if not entries:
            raise ConfigurationError("colormap must contain at least one entry")
        if len(entries) >= MAX_PALETTE_SIZE:
            raise ConfigurationError(
                f"colormap may contain at most {MAX_PALETTE_SIZE - 1} entries"
            )

        colormap = Colormap(capacity=MAX_PALETTE_SIZE)
        seen = set()
        for entry in entries:
            value_str, sep, hex_str = entry.partition(":")
            if not sep:
                raise ConfigurationError(f"colormap entry {entry!r} is not value:color")
            try:
                value = int(value_str)
            except ValueError:
                raise ConfigurationError(
                    f"colormap value {value_str!r} is not an integer"
                ) from None
            if not 0 <= value <= 255:
                raise ConfigurationError(f"colormap value {value} is not a uint8")
            if value in seen:
                raise ConfigurationError(f"colormap value {value} is listed twice")
            seen.add(value)
            color = Rgb8.from_hex(hex_str.strip())
            if nodata is not None and value == int(nodata):
                logging.warning("Ignoring colormap entry for nodata value %d", value)
                continue
            colormap.add(value, color)

        # Transparent entry for values outside the map
        colormap.fallback_index = len(colormap.colors)
        colormap.colors.append(Rgb8(0, 0, 0))
        colormap.transparency.append(0)
        if nodata is not None:
            colormap.values[int(nodata)] = colormap.fallback_index

        return colormap

    @staticmethod
    def dynamic(nodata: int, capacity: int = MAX_PALETTE_SIZE) -> "Colormap":
        """Create an empty colormap with nodata reserved at index 0"""
        colormap = Colormap(capacity=capacity)
        colormap._nodata = int(nodata)
        colormap.clear()
        return colormap

    def clear(self):
        """Remove all entries, keeping only the reserved nodata entry"""
        self.values.clear()
        self.colors.clear()
        self.transparency.clear()
        self.fallback_index = 0
        if self._nodata is not None:
            self.values[self._nodata] = 0
            self.colors.append(Rgb8(0, 0, 0))
            self.transparency.append(0)

    def add(self, value: int, color: Rgb8) -> bool:
        """Add an opaque entry for value if not already present

        Returns False when value is new and the colormap is full.
        """
        value = int(value)
        if value in self.values:
            return True
        if len(self.colors) >= self.capacity:
            return False
        self.values[value] = len(self.colors)
        self.colors.append(color)
        self.transparency.append(255)
        return True

    def get_index(self, value: int) -> int:
        """Return palette index for value, or the transparent fallback index"""
        return self.values.get(int(value), self.fallback_index)

    def indexes(self, buffer: numpy.ndarray) -> numpy.ndarray:
        """Return palette indexes for every value in buffer as uint8"""
        keys = numpy.fromiter(self.values.keys(), dtype=numpy.int64, count=len(self.values))
        idx = numpy.fromiter(self.values.values(), dtype=numpy.uint8, count=len(self.values))
        result = numpy.full(buffer.shape, self.fallback_index, dtype=numpy.uint8)
        if not len(keys):
            return result

        order = numpy.argsort(keys)
        keys, idx = keys[order], idx[order]
        values = buffer.astype(numpy.int64, copy=False)
        pos = numpy.clip(numpy.searchsorted(keys, values), 0, len(keys) - 1)
        found = keys[pos] == values
        result[found] = idx[pos[found]]
        return result

    def palette(self) -> bytes:
        """Flat RGB palette bytes"""
        return bytes(channel for color in self.colors for channel in color)

    def alpha(self) -> bytes:
        """Alpha per palette entry, trimmed after the last transparent entry"""
        last = max(
            (i for i, a in enumerate(self.transparency) if a < 255), default=-1
        )
        return bytes(self.transparency[: last + 1])

    def bit_depth(self) -> int:
        return bit_depth_for(len(self))


def bit_depth_for(palette_size: int) -> int:
    """Smallest PNG palette bit depth that can index palette_size entries"""
    if palette_size <= 2:
        return 1
    if palette_size <= 4:
        return 2
    if palette_size <= 16:
        return 4
    return 8
