"""Read Web Mercator tiles out of a single-band raster

`read_tile()` works against any raster source that exposes `transform`,
`size` and `read_window()`. `Dataset` is the GDAL-backed source; GDAL is only
imported when a Dataset is actually opened.
"""

import logging
import typing
from pathlib import Path

import numpy

from .affine import Affine
from .array import all_equals, set_all, shift
from .errors import ConfigurationError
from .tileid import Bounds, TileID
from .window import raster_bounds, resolve_tile_window

# Number of points added along each edge when reprojecting bounds
DENSIFY_POINTS = 21


class RasterSource(typing.Protocol):
    """Raster already projected to Web Mercator"""

    @property
    def transform(self) -> Affine: ...

    @property
    def size(self) -> tuple[int, int]: ...

    def read_window(
        self,
        x_offset: int,
        y_offset: int,
        read_width: int,
        read_height: int,
        width: int,
        height: int,
    ) -> numpy.ndarray: ...


def read_tile(
    source: RasterSource,
    tile_id: TileID,
    tile_size: int,
    buffer: numpy.ndarray,
    nodata,
) -> bool:
    """Read one tile from source into buffer

    Args:
        source: raster source in Web Mercator
        tile_id: tile to read
        tile_size: tile width and height in pixels
        buffer: 1-D array of tile_size * tile_size values, filled in place
        nodata: value used for pixels outside the raster

    Returns:
        True if the tile holds any data; False if it lies outside the raster
        or is entirely nodata, in which case buffer contents are undefined.
    """
    tile_window = resolve_tile_window(
        source.transform, source.size, tile_id.mercator_bounds(), tile_size
    )
    if tile_window.is_empty:
        return False

    set_all(buffer, nodata)

    width, height = tile_window.width, tile_window.height
    data = source.read_window(
        tile_window.x_offset,
        tile_window.y_offset,
        tile_window.read_width,
        tile_window.read_height,
        width,
        height,
    )
    buffer[: width * height] = numpy.asarray(data).ravel()

    if all_equals(buffer, nodata):
        return False

    if tile_window.is_partial(tile_size):
        shift(
            buffer,
            (width, height),
            (tile_size, tile_size),
            (tile_window.left, tile_window.top),
            nodata,
        )

    return True


def _import_gdal():
    import osgeo.gdal
    import osgeo.osr

    osgeo.gdal.UseExceptions()
    return osgeo.gdal, osgeo.osr


class Dataset:
    """First band of a GDAL raster dataset"""

    def __init__(self, ds: "osgeo.gdal.Dataset"):  # noqa: F821 (osgeo types imported in _import_gdal)
        self.ds = ds
        self.band = ds.GetRasterBand(1)

    @staticmethod
    def open(path: Path | str, disable_overviews: bool = False) -> "Dataset":
        gdal, _ = _import_gdal()

        open_options = ["OVERVIEW_LEVEL=NONE"] if disable_overviews else []
        ds = gdal.OpenEx(
            str(path),
            gdal.OF_RASTER | gdal.OF_READONLY,
            open_options=open_options,
        )
        return Dataset(ds)

    @property
    def transform(self) -> Affine:
        return Affine.from_gdal(self.ds.GetGeoTransform())

    @property
    def size(self) -> tuple[int, int]:
        return self.ds.RasterXSize, self.ds.RasterYSize

    def bounds(self) -> Bounds:
        """Outer bounds in the dataset's own coordinate system"""
        return raster_bounds(self.transform, *self.size)

    def transform_bounds(self, srs: "osgeo.osr.SpatialReference") -> Bounds:  # noqa: F821
        _, osr = _import_gdal()

        src_srs = self.ds.GetSpatialRef()
        if src_srs is None:
            raise ConfigurationError("raster does not define a coordinate system")
        src_srs.SetAxisMappingStrategy(osr.OAMS_TRADITIONAL_GIS_ORDER)
        srs.SetAxisMappingStrategy(osr.OAMS_TRADITIONAL_GIS_ORDER)

        transform = osr.CoordinateTransformation(src_srs, srs)
        xmin, ymin, xmax, ymax = self.bounds()
        return Bounds(*transform.TransformBounds(xmin, ymin, xmax, ymax, DENSIFY_POINTS))

    def geo_bounds(self) -> Bounds:
        """Bounds in longitude / latitude degrees"""
        _, osr = _import_gdal()
        srs = osr.SpatialReference()
        srs.SetFromUserInput("OGC:CRS84")
        return self.transform_bounds(srs)

    def mercator_bounds(self) -> Bounds:
        _, osr = _import_gdal()
        srs = osr.SpatialReference()
        srs.ImportFromEPSG(3857)
        return self.transform_bounds(srs)

    def mercator_vrt(self) -> "Dataset":
        """Return a virtual nearest neighbour reprojection to Web Mercator"""
        gdal, _ = _import_gdal()

        options = gdal.WarpOptions(
            format="VRT",
            dstSRS="EPSG:3857",
            resampleAlg=gdal.GRA_NearestNeighbour,
            warpOptions=["INIT_DEST=NO_DATA", "NUM_THREADS=1"],
        )
        return Dataset(gdal.Warp("", self.ds, options=options))

    def band_dtype(self) -> numpy.dtype:
        """Numpy type of the first band; only uint8 and uint32 are supported"""
        gdal, _ = _import_gdal()

        dtypes = {
            gdal.GDT_Byte: numpy.dtype(numpy.uint8),
            gdal.GDT_UInt32: numpy.dtype(numpy.uint32),
        }
        try:
            return dtypes[self.band.DataType]
        except KeyError:
            raise ConfigurationError(
                f"data type is not supported: {gdal.GetDataTypeName(self.band.DataType)}"
            ) from None

    def nodata(self) -> int:
        """Nodata value of the first band, 0 if the band does not define one"""
        value = self.band.GetNoDataValue()
        if value is None:
            logging.warning("Raster does not define a nodata value, using 0")
            return 0
        return int(value)

    def read_window(
        self,
        x_offset: int,
        y_offset: int,
        read_width: int,
        read_height: int,
        width: int,
        height: int,
    ) -> numpy.ndarray:
        """Read a pixel window resampled to width x height"""
        gdal, _ = _import_gdal()

        return self.band.ReadAsArray(
            x_offset,
            y_offset,
            read_width,
            read_height,
            buf_xsize=width,
            buf_ysize=height,
            resample_alg=gdal.GRIORA_NearestNeighbour,
        )

    def read_tile(self, tile_id: TileID, tile_size: int, buffer: numpy.ndarray, nodata) -> bool:
        return read_tile(self, tile_id, tile_size, buffer, nodata)
