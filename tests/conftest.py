#!/usr/bin/env python3
"""Pytest configuration and shared fixtures."""

import tempfile
from pathlib import Path

import mercantile
import numpy
import pytest

from rastertiler.affine import Affine
from rastertiler.dataset import read_tile
from rastertiler.tileid import ORIGIN, Bounds
from rastertiler.window import raster_bounds


@pytest.fixture
def temp_dir():
    """Create temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def world_transform(width: int, height: int, xoff: float = 0.0) -> Affine:
    """North-up Mercator transform with width x height pixels covering the world

    xoff shifts the origin east by a number of pixels.
    """
    xres = mercantile.CE / width
    yres = mercantile.CE / height
    return Affine(xres, 0.0, -ORIGIN + xoff * xres, 0.0, -yres, ORIGIN)


class FakeRaster:
    """In-memory Mercator raster implementing the raster source interface."""

    def __init__(self, data: numpy.ndarray, transform: Affine, nodata=0):
        self.data = data
        self._transform = transform
        self._nodata = nodata
        self.reads = []

    @property
    def transform(self) -> Affine:
        return self._transform

    @property
    def size(self) -> tuple[int, int]:
        height, width = self.data.shape
        return width, height

    def read_window(self, x_offset, y_offset, read_width, read_height, width, height):
        self.reads.append((x_offset, y_offset, read_width, read_height, width, height))
        window = self.data[y_offset : y_offset + read_height, x_offset : x_offset + read_width]
        # Nearest neighbour resample to the requested size
        rows = ((numpy.arange(height) + 0.5) * read_height / height).astype(int)
        cols = ((numpy.arange(width) + 0.5) * read_width / width).astype(int)
        return window[rows][:, cols]

    def read_tile(self, tile_id, tile_size, buffer, nodata):
        return read_tile(self, tile_id, tile_size, buffer, nodata)

    def nodata(self):
        return self._nodata


class FakeDataset:
    """Stands in for rastertiler.dataset.Dataset around a FakeRaster."""

    def __init__(self, raster: FakeRaster, dtype=None):
        self.raster = raster
        self.dtype = numpy.dtype(dtype or raster.data.dtype)
        self.opened = []

    def open(self, path, disable_overviews=False):
        self.opened.append((path, disable_overviews))
        return self

    def band_dtype(self):
        return self.dtype

    def mercator_bounds(self) -> Bounds:
        return raster_bounds(self.raster.transform, *self.raster.size)

    def geo_bounds(self) -> Bounds:
        xmin, ymin, xmax, ymax = self.mercator_bounds()
        west, south = mercantile.lnglat(xmin, ymin)
        east, north = mercantile.lnglat(xmax, ymax)
        return Bounds(west, south, east, north)

    def mercator_vrt(self) -> FakeRaster:
        return self.raster


@pytest.fixture
def world_raster():
    """512 x 512 uint8 raster covering the whole Mercator square, no nodata pixels."""
    data = (numpy.arange(512 * 512, dtype=numpy.uint32) % 200 + 1).astype(numpy.uint8)
    return FakeRaster(data.reshape(512, 512), world_transform(512, 512), nodata=0)


def write_geotiff(path, data, gdal_type, nodata=0):
    """Write a single band EPSG:3857 GeoTIFF covering the whole Mercator square."""
    gdal = pytest.importorskip("osgeo.gdal")
    osr = pytest.importorskip("osgeo.osr")
    gdal.UseExceptions()

    height, width = data.shape
    ds = gdal.GetDriverByName("GTiff").Create(str(path), width, height, 1, gdal_type)
    ds.SetGeoTransform((-ORIGIN, mercantile.CE / width, 0, ORIGIN, 0, -mercantile.CE / height))
    srs = osr.SpatialReference()
    srs.ImportFromEPSG(3857)
    ds.SetProjection(srs.ExportToWkt())
    band = ds.GetRasterBand(1)
    band.SetNoDataValue(nodata)
    band.WriteArray(data)
    ds.FlushCache()
    ds = None
