"""Web Mercator tile addressing

Tiles follow the standard XYZ scheme: 2**zoom tiles per side with Y
increasing downward from the north edge of the Mercator square.
"""

import dataclasses
import itertools
import math
import typing

import mercantile

# Half the width of the Mercator square in meters
ORIGIN = mercantile.CE / 2.0

# Valid latitude range of Web Mercator
MAX_LATITUDE = 85.051129

MAX_ZOOM = 24

# Nudge (in tile grid fraction) applied inward at every edge so a bound lying
# on a tile boundary does not pull in the neighbouring tile. The min edges are
# nudged as well as the max edges, so the Mercator bounds of a tile always
# resolve back to that single tile up to MAX_ZOOM.
EDGE_EPSILON = 1e-11


@dataclasses.dataclass(frozen=True)
class Bounds:
    """Bounding box in either degrees or Mercator meters, never mixed"""

    xmin: float
    ymin: float
    xmax: float
    ymax: float

    def __iter__(self) -> typing.Iterator[float]:
        return iter((self.xmin, self.ymin, self.xmax, self.ymax))

    @property
    def center(self) -> tuple[float, float]:
        return (self.xmin + self.xmax) / 2.0, (self.ymin + self.ymax) / 2.0

    def union(self, other: "Bounds") -> "Bounds":
        return Bounds(
            min(self.xmin, other.xmin),
            min(self.ymin, other.ymin),
            max(self.xmax, other.xmax),
            max(self.ymax, other.ymax),
        )


def geo_to_mercator(lon: float, lat: float) -> tuple[float, float]:
    """Project geographic coordinates to Web Mercator meters

    Longitude is clamped to [-180, 180] and latitude to +/-85.051129
    before projecting.
    """
    lon = min(max(lon, -180.0), 180.0)
    lat = min(max(lat, -MAX_LATITUDE), MAX_LATITUDE)
    return mercantile.xy(lon, lat)


def geo_bounds_to_mercator(bounds: Bounds) -> Bounds:
    xmin, ymin = geo_to_mercator(bounds.xmin, bounds.ymin)
    xmax, ymax = geo_to_mercator(bounds.xmax, bounds.ymax)
    return Bounds(xmin, ymin, xmax, ymax)


@dataclasses.dataclass(frozen=True, order=True)
class TileID:
    """Address of a single tile in the XYZ grid"""

    zoom: int
    x: int
    y: int

    def __post_init__(self):
        if not 0 <= self.zoom <= MAX_ZOOM:
            raise ValueError(f"zoom must be between 0 and {MAX_ZOOM}, not {self.zoom}")
        side = 1 << self.zoom
        if not (0 <= self.x < side and 0 <= self.y < side):
            raise ValueError(f"tile {self.x},{self.y} is outside zoom {self.zoom}")

    def __str__(self) -> str:
        return f"{self.zoom}/{self.x}/{self.y}"

    def to_mercantile(self) -> mercantile.Tile:
        return mercantile.Tile(x=self.x, y=self.y, z=self.zoom)

    def geo_bounds(self) -> Bounds:
        """Tile bounds in degrees"""
        west, south, east, north = mercantile.bounds(self.to_mercantile())
        return Bounds(west, south, east, north)

    def mercator_bounds(self) -> Bounds:
        """Tile bounds in Mercator meters"""
        left, bottom, right, top = mercantile.xy_bounds(self.to_mercantile())
        return Bounds(left, bottom, right, top)


def _grid_index(fraction: float, side: int) -> int:
    """Floor a tile grid position and clamp it to [0, side - 1]"""
    if not fraction > 0:
        return 0
    if fraction >= side:
        return side - 1
    return min(int(math.floor(fraction)), side - 1)


@dataclasses.dataclass(frozen=True)
class TileRange:
    """Inclusive range of tiles at a single zoom level"""

    zoom: int
    xmin: int
    ymin: int
    xmax: int
    ymax: int

    @staticmethod
    def from_bounds(zoom: int, bounds: Bounds) -> "TileRange":
        """Create the range of tiles covering Mercator bounds at zoom"""
        side = 1 << zoom
        width = mercantile.CE

        xmin = _grid_index(((bounds.xmin + ORIGIN) / width + EDGE_EPSILON) * side, side)
        ymin = _grid_index(
            (1.0 - (bounds.ymax + ORIGIN) / width + EDGE_EPSILON) * side, side
        )
        xmax = _grid_index(((bounds.xmax + ORIGIN) / width - EDGE_EPSILON) * side, side)
        ymax = _grid_index(
            (1.0 - ((bounds.ymin + ORIGIN) / width + EDGE_EPSILON)) * side, side
        )

        return TileRange(zoom, xmin, ymin, xmax, ymax)

    def count(self) -> int:
        return (self.xmax - self.xmin + 1) * (self.ymax - self.ymin + 1)

    def __len__(self) -> int:
        return self.count()

    def __iter__(self) -> typing.Iterator[TileID]:
        # Columns vary slowest, rows fastest
        for x, y in itertools.product(
            range(self.xmin, self.xmax + 1), range(self.ymin, self.ymax + 1)
        ):
            yield TileID(self.zoom, x, y)

    def iter(self) -> typing.Iterator[TileID]:
        return iter(self)
