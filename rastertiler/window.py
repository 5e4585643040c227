"""Map tile extents onto source raster pixel windows"""

import dataclasses

from .affine import Affine
from .tileid import Bounds


@dataclasses.dataclass(frozen=True)
class Window:
    """Fractional pixel window within a raster"""

    x_offset: float
    y_offset: float
    width: float
    height: float

    @staticmethod
    def from_bounds(transform: Affine, bounds: Bounds) -> "Window":
        """Return pixel window covering bounds under a raster transform

        The four corners are inverse transformed and the window is their
        axis-aligned envelope, which is exact for north-up rasters only.
        """
        inverse = transform.invert()
        corners = [
            inverse.multiply(x, y)
            for x, y in (
                (bounds.xmin, bounds.ymin),
                (bounds.xmin, bounds.ymax),
                (bounds.xmax, bounds.ymin),
                (bounds.xmax, bounds.ymax),
            )
        ]
        xs = [x for x, _ in corners]
        ys = [y for _, y in corners]

        return Window(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))

    def transform(self, transform: Affine) -> Affine:
        """Return transform with its origin moved to this window's offset"""
        x, y = transform.multiply(self.x_offset, self.y_offset)
        return dataclasses.replace(transform, c=x, f=y)


def raster_bounds(transform: Affine, width: int, height: int) -> Bounds:
    """Outer bounds of a north-up raster"""
    return Bounds(
        transform.c,
        transform.f + transform.e * height,
        transform.c + transform.a * width,
        transform.f,
    )


@dataclasses.dataclass(frozen=True)
class TileWindow:
    """Resolved read for one tile

    Source pixels (x_offset, y_offset, read_width, read_height) are resampled
    into a (width, height) block that belongs at (left, top) in the tile.
    """

    window: Window
    transform: Affine
    left: int
    right: int
    bottom: int
    top: int
    x_offset: int
    y_offset: int
    read_width: int
    read_height: int
    width: int
    height: int

    @property
    def is_empty(self) -> bool:
        return (
            self.read_width <= 0
            or self.read_height <= 0
            or self.width <= 0
            or self.height <= 0
        )

    def is_partial(self, tile_size: int) -> bool:
        return (
            self.left > 0
            or self.top > 0
            or self.width < tile_size
            or self.height < tile_size
        )


def _round(value: float) -> float:
    """Round half away from zero"""
    if value < 0:
        return -float(int(-value + 0.5))
    return float(int(value + 0.5))


def resolve_tile_window(
    transform: Affine,
    raster_size: tuple[int, int],
    tile_bounds: Bounds,
    tile_size: int,
) -> TileWindow:
    """Resolve the source read needed to fill a tile of tile_size pixels

    Args:
        transform: raster transform in Mercator meters
        raster_size: raster (width, height) in pixels
        tile_bounds: tile bounds in Mercator meters
        tile_size: output tile width and height in pixels
    """
    raster_width, raster_height = raster_size
    size = float(tile_size)
    outer = raster_bounds(transform, raster_width, raster_height)

    window = Window.from_bounds(transform, tile_bounds)
    tile_transform = window.transform(transform).scale(
        window.width / size, window.height / size
    )
    xres, yres = tile_transform.resolution()

    # Tile pixels falling outside the raster on each side
    left = max(_round((outer.xmin - tile_bounds.xmin) / xres), 0.0)
    right = max(_round((tile_bounds.xmax - outer.xmax) / xres), 0.0)
    bottom = max(_round((outer.ymin - tile_bounds.ymin) / yres), 0.0)
    top = max(_round((tile_bounds.ymax - outer.ymax) / yres), 0.0)

    width = int(_round(size - left - right))
    height = int(_round(size - top - bottom))

    x_offset = _round(min(max(window.x_offset, 0.0), raster_width))
    y_offset = _round(min(max(window.y_offset, 0.0), raster_height))
    x_stop = max(min(window.x_offset + window.width, raster_width), 0.0)
    y_stop = max(min(window.y_offset + window.height, raster_height), 0.0)

    read_width = int(x_stop - x_offset + 0.5) if x_stop > x_offset else 0
    read_height = int(y_stop - y_offset + 0.5) if y_stop > y_offset else 0

    return TileWindow(
        window=window,
        transform=tile_transform,
        left=int(left),
        right=int(right),
        bottom=int(bottom),
        top=int(top),
        x_offset=int(x_offset),
        y_offset=int(y_offset),
        read_width=read_width,
        read_height=read_height,
        width=width,
        height=height,
    )
