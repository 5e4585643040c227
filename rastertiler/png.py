"""PNG encoders for tile pixel buffers

Three encoders share an `encode(buffer) -> bytes` method:

- `GrayscaleEncoder`: uint8 data as 8-bit grayscale, nodata as tRNS key
- `ColormapEncoder`: values mapped through a `Colormap` into a 1, 2, 4 or
  8-bit palette image
- `RGBEncoder`: uint32 data holding packed 0xRRGGBB colors; written as a
  palette image when a tile has at most 256 distinct values, otherwise as
  24-bit RGB

`create_encoder()` selects the encoder for a band data type.
"""

import io
import logging

import numpy
import PIL.Image

from .color import MAX_PALETTE_SIZE, Colormap, Rgb8
from .errors import ConfigurationError

COMPRESS_LEVEL = 9


def _save(image: PIL.Image.Image, **params) -> bytes:
    output = io.BytesIO()
    image.save(output, format="PNG", compress_level=COMPRESS_LEVEL, **params)
    return output.getvalue()


def pack_bits(indexes: numpy.ndarray, depth: int) -> bytes:
    """Pack palette indexes at depth bits per value

    The first value of each group occupies the highest bits of its byte.
    The number of indexes must be a multiple of 8 / depth.
    """
    indexes = numpy.asarray(indexes, dtype=numpy.uint8)
    if depth == 8:
        return indexes.tobytes()
    if depth not in (1, 2, 4):
        raise ValueError(f"unsupported bit depth: {depth}")

    per_byte = 8 // depth
    if indexes.size % per_byte:
        raise ValueError(f"{indexes.size} values cannot be packed {per_byte} per byte")

    shifts = (numpy.arange(per_byte - 1, -1, -1) * depth).astype(numpy.uint8)
    groups = indexes.reshape(-1, per_byte) << shifts
    return numpy.bitwise_or.reduce(groups, axis=1).astype(numpy.uint8).tobytes()


def unpack_bits(data: bytes, depth: int, count: int | None = None) -> numpy.ndarray:
    """Inverse of pack_bits, returning count uint8 indexes"""
    packed = numpy.frombuffer(data, dtype=numpy.uint8)
    if depth == 8:
        values = packed.copy()
    else:
        per_byte = 8 // depth
        shifts = (numpy.arange(per_byte - 1, -1, -1) * depth).astype(numpy.uint8)
        mask = numpy.uint8((1 << depth) - 1)
        values = ((packed[:, None] >> shifts) & mask).ravel()
    return values if count is None else values[:count]


class GrayscaleEncoder:
    """8-bit grayscale with nodata registered as the transparent value"""

    def __init__(self, width: int, height: int, nodata: int):
        self.width = width
        self.height = height
        self.nodata = int(nodata)

    def encode(self, buffer: numpy.ndarray) -> bytes:
        image = PIL.Image.frombytes(
            "L", (self.width, self.height), numpy.asarray(buffer, dtype=numpy.uint8).tobytes()
        )
        # Pillow stores this as a 2 byte tRNS value with the sample in the low byte
        return _save(image, transparency=self.nodata)


class ColormapEncoder:
    """Palette image at the smallest bit depth holding the colormap"""

    def __init__(self, width: int, height: int, colormap: Colormap):
        self.width = width
        self.height = height
        self.colormap = colormap

    @staticmethod
    def from_str(
        width: int, height: int, colormap_str: str, nodata: int | None = None
    ) -> "ColormapEncoder":
        return ColormapEncoder(width, height, Colormap.parse(colormap_str, nodata))

    def encode(self, buffer: numpy.ndarray) -> bytes:
        depth = self.colormap.bit_depth()
        if (self.width * depth) % 8:
            raise ValueError(f"width {self.width} cannot be packed at {depth} bits")

        packed = pack_bits(self.colormap.indexes(buffer), depth)
        image = PIL.Image.frombytes(
            "P", (self.width, self.height), packed, "raw", "P" if depth == 8 else f"P;{depth}"
        )
        image.putpalette(self.colormap.palette())

        return _save(image, bits=depth, transparency=self.colormap.alpha())


class RGBEncoder:
    """Encoder for uint32 values holding 0xRRGGBB colors

    Each tile is first tried as a palette image built from its distinct values
    in first seen order, with nodata at index 0. Tiles with more distinct
    values than fit in a palette are written as 24-bit RGB instead.
    """

    def __init__(self, width: int, height: int, nodata: int, palette_size: int = MAX_PALETTE_SIZE):
        self.width = width
        self.height = height
        self.nodata = int(nodata)
        self.nodata_color = Rgb8.from_u32(nodata)
        self.palette_encoder = ColormapEncoder(
            width, height, Colormap.dynamic(nodata, capacity=palette_size)
        )
        self.rgb_buffer = numpy.zeros(width * height * 3, dtype=numpy.uint8)

    def to_rgb(self, buffer: numpy.ndarray) -> numpy.ndarray:
        """Split values into the interleaved RGB scratch buffer"""
        values = numpy.asarray(buffer, dtype=numpy.uint32)
        self.rgb_buffer[0::3] = (values >> 16) & 0xFF
        self.rgb_buffer[1::3] = (values >> 8) & 0xFF
        self.rgb_buffer[2::3] = values & 0xFF
        return self.rgb_buffer

    def build_palette(self, buffer: numpy.ndarray) -> bool:
        """Rebuild the tile palette; False if the values do not fit"""
        colormap = self.palette_encoder.colormap
        colormap.clear()

        values, first_seen = numpy.unique(buffer, return_index=True)
        for value in values[numpy.argsort(first_seen)]:
            if not colormap.add(value, Rgb8.from_u32(value)):
                return False
        return True

    def encode_rgb(self, rgb_buffer: numpy.ndarray) -> bytes:
        image = PIL.Image.frombytes("RGB", (self.width, self.height), rgb_buffer.tobytes())
        return _save(image, transparency=tuple(self.nodata_color))

    def encode(self, buffer: numpy.ndarray) -> bytes:
        if self.build_palette(buffer):
            return self.palette_encoder.encode(buffer)

        logging.debug("Tile has more than %d colors, writing RGB", self.palette_encoder.colormap.capacity)
        return self.encode_rgb(self.to_rgb(buffer))


def create_encoder(dtype, tile_size: int, nodata: int, colormap: str | None = None):
    """Return the encoder for tiles of a band data type"""
    dtype = numpy.dtype(dtype)

    if dtype == numpy.uint8:
        if colormap:
            return ColormapEncoder.from_str(tile_size, tile_size, colormap, nodata)
        return GrayscaleEncoder(tile_size, tile_size, nodata)

    if dtype == numpy.uint32:
        if colormap:
            raise ConfigurationError("colormap can only be provided for uint8 data")
        return RGBEncoder(tile_size, tile_size, nodata)

    raise ConfigurationError(f"data type is not supported: {dtype}")

