"""Render a raster into an MBTiles tile pyramid

A single producer enumerates tiles zoom by zoom into a small bounded queue;
a pool of worker threads each read, encode and store the tiles they receive.
Every worker opens its own raster handle and owns its own buffers; only the
queue and the store's connection pool are shared.
"""

import concurrent.futures
import dataclasses
import functools
import logging
import queue
import threading
import typing
from pathlib import Path

import numpy

from . import mbtiles
from .color import Colormap
from .dataset import Dataset
from .errors import ConfigurationError, PipelineError
from .mbtiles import MBTiles
from .png import create_encoder
from .tileid import MAX_ZOOM, Bounds, TileID, TileRange

# Seconds between checks for cancellation while blocked on the queue
POLL_INTERVAL = 0.1

_DONE = object()


def is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0


@dataclasses.dataclass
class RenderOptions:
    """Parameters of one render"""

    input_path: Path
    output_path: Path
    minzoom: int = 0
    maxzoom: int = 0
    tile_size: int = 512
    name: str | None = None
    description: str | None = None
    attribution: str | None = None
    workers: int = 4
    colormap: str | None = None
    disable_overviews: bool = False

    def validate(self):
        """Raise ConfigurationError for options that cannot be rendered"""
        for key in ("minzoom", "maxzoom"):
            if not 0 <= getattr(self, key) <= MAX_ZOOM:
                raise ConfigurationError(f"{key} must be between 0 and {MAX_ZOOM}")
        if self.minzoom > self.maxzoom:
            raise ConfigurationError("minzoom must be less than or equal to maxzoom")
        if not is_power_of_two(self.tile_size) or self.tile_size < 8:
            raise ConfigurationError("tile size must be a power of two of at least 8")
        if self.workers < 1:
            raise ConfigurationError("workers must be at least 1")
        if not Path(self.input_path).exists():
            raise ConfigurationError(f"input file {self.input_path} does not exist")

    @property
    def tileset_name(self) -> str:
        return self.name or Path(self.output_path).stem


def build_metadata(options: RenderOptions, geo_bounds: Bounds) -> dict[str, str]:
    metadata = {"name": options.tileset_name}
    if options.description:
        metadata["description"] = options.description
    if options.attribution:
        metadata["attribution"] = options.attribution

    x, y = geo_bounds.center
    metadata.update(
        {
            "minzoom": str(options.minzoom),
            "maxzoom": str(options.maxzoom),
            "bounds": "{:.5f},{:.5f},{:.5f},{:.5f}".format(*geo_bounds),
            "center": f"{x:.5f},{y:.5f},{options.minzoom}",
            "type": "overlay",
            "format": "png",
            "version": "1.0.0",
        }
    )
    return metadata


def iter_tiles(mercator_bounds: Bounds, minzoom: int, maxzoom: int) -> typing.Iterator[TileID]:
    """Every tile covering bounds, zoom levels in ascending order"""
    for zoom in range(minzoom, maxzoom + 1):
        tiles = TileRange.from_bounds(zoom, mercator_bounds)
        logging.info("Zoom %d: %d tiles", zoom, tiles.count())
        yield from tiles


class TileQueue:
    """Bounded queue that gives up blocking once stop is set"""

    def __init__(self, maxsize: int, stop: threading.Event):
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self.stop = stop

    def put(self, item) -> bool:
        while not self.stop.is_set():
            try:
                self._queue.put(item, timeout=POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False

    def close(self, consumers: int):
        """Signal end of input to each consumer"""
        for _ in range(consumers):
            self.put(_DONE)

    def __iter__(self) -> typing.Iterator:
        while not self.stop.is_set():
            try:
                item = self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            if item is _DONE:
                return
            yield item


def run_pipeline(
    items: typing.Iterable,
    worker: typing.Callable[[typing.Iterator], None],
    workers: int,
    queue_size: int = 1,
):
    """Feed items to workers through a bounded queue

    worker is called once per pool thread with an iterator over its share of
    the items. The first failure in the producer or any worker stops all
    threads and is raised as PipelineError.
    """
    stop = threading.Event()
    tiles = TileQueue(queue_size, stop)
    errors: list[BaseException] = []
    lock = threading.Lock()

    def fail(exc: BaseException):
        with lock:
            errors.append(exc)
        stop.set()

    def produce():
        try:
            for item in items:
                if not tiles.put(item):
                    return
        except BaseException as exc:
            fail(exc)
            raise
        finally:
            tiles.close(workers)

    def consume():
        try:
            worker(iter(tiles))
        except BaseException as exc:
            fail(exc)
            raise

    with concurrent.futures.ThreadPoolExecutor(
        max_workers=workers + 1, thread_name_prefix="render"
    ) as executor:
        futures = [executor.submit(produce)]
        futures.extend(executor.submit(consume) for _ in range(workers))
        concurrent.futures.wait(futures)

    if errors:
        raise PipelineError(f"rendering failed: {errors[0]}") from errors[0]


def render_worker(
    options: RenderOptions,
    dtype: numpy.dtype,
    db: MBTiles,
    open_dataset: typing.Callable,
    tiles: typing.Iterator[TileID],
):
    """Read, encode and store every tile received from tiles"""
    dataset = open_dataset(options.input_path, options.disable_overviews)
    vrt = dataset.mercator_vrt()
    nodata = vrt.nodata()
    tile_size = options.tile_size

    encoder = create_encoder(dtype, tile_size, nodata, options.colormap)
    buffer = numpy.full(tile_size * tile_size, nodata, dtype=dtype)

    written = 0
    with db.connection() as conn:
        for tile_id in tiles:
            if vrt.read_tile(tile_id, tile_size, buffer, nodata):
                db.write_tile(conn, tile_id, encoder.encode(buffer))
                written += 1

    logging.info("%s wrote %d tiles", threading.current_thread().name, written)


def render_tiles(options: RenderOptions, open_dataset: typing.Callable = Dataset.open):
    """Render options.input_path into a new MBTiles file at options.output_path

    All configuration errors are raised before the output file is created.
    open_dataset(path, disable_overviews) returns the raster to read.
    """
    options.validate()
    if options.colormap:
        Colormap.parse(options.colormap)

    dataset = open_dataset(options.input_path, False)
    dtype = dataset.band_dtype()
    if options.colormap and dtype != numpy.uint8:
        raise ConfigurationError("colormap can only be provided for uint8 data")

    geo_bounds = dataset.geo_bounds()
    mercator_bounds = dataset.mercator_bounds()
    logging.info("Opened %s (%s)", options.input_path, dtype)
    logging.info("Bounds: %s", ", ".join(f"{v:.5f}" for v in geo_bounds))
    metadata = build_metadata(options, geo_bounds)
    # Each worker opens its own handle
    del dataset

    output_path = Path(options.output_path)
    db = MBTiles.create(output_path, pool_size=options.workers)
    try:
        db.set_metadata(metadata)
        run_pipeline(
            iter_tiles(mercator_bounds, options.minzoom, options.maxzoom),
            functools.partial(render_worker, options, dtype, db, open_dataset),
            options.workers,
        )
        db.update_index()
    except Exception:
        # A partial pyramid is not kept
        db.close()
        mbtiles.remove(output_path)
        raise
    db.close()

    MBTiles.flush(output_path)
