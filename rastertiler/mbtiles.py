"""MBTiles tile store with content-addressed image deduplication

Tile images are stored once per distinct content in `images`, keyed by a hash
of their bytes; `map` points tile coordinates at those hashes. Rows follow the
MBTiles (TMS) convention of counting from the south edge.
"""

import contextlib
import hashlib
import logging
import queue
import shutil
import sqlite3
import typing
from pathlib import Path

from .errors import ConfigurationError
from .tileid import Bounds, TileID

# Seconds a connection waits on a locked database before failing
BUSY_TIMEOUT = 60

INIT_QUERY = """
CREATE TABLE IF NOT EXISTS metadata (name text NOT NULL PRIMARY KEY, value text);

CREATE TABLE IF NOT EXISTS map (
    zoom_level INTEGER,
    tile_column INTEGER,
    tile_row INTEGER,
    tile_id TEXT
);

CREATE TABLE IF NOT EXISTS images (tile_id text NOT NULL PRIMARY KEY, tile_data blob);

CREATE VIEW IF NOT EXISTS tiles AS
    SELECT map.zoom_level AS zoom_level,
        map.tile_column AS tile_column,
        map.tile_row AS tile_row,
        images.tile_data AS tile_data
    FROM map JOIN images ON images.tile_id = map.tile_id;
"""

CREATE_INDEX_QUERY = (
    "CREATE UNIQUE INDEX IF NOT EXISTS map_index ON map (zoom_level, tile_column, tile_row)"
)
INSERT_METADATA_QUERY = "INSERT OR REPLACE INTO metadata (name, value) VALUES (?, ?)"
INSERT_TILE_DATA_QUERY = "INSERT OR IGNORE INTO images (tile_id, tile_data) VALUES (?, ?)"
INSERT_TILE_QUERY = (
    "INSERT INTO map (zoom_level, tile_column, tile_row, tile_id) VALUES (?, ?, ?, ?)"
)
SELECT_TILE_QUERY = (
    "SELECT tile_data FROM tiles WHERE zoom_level = ? AND tile_column = ? AND tile_row = ?"
)


def content_hash(data: bytes) -> str:
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


def flip_row(zoom: int, row: int) -> int:
    """Convert between XYZ and TMS row numbering"""
    return (1 << zoom) - 1 - row


def remove(path: Path | str):
    """Delete a store along with any leftover journal files"""
    path = Path(path)
    for suffix in ("", "-wal", "-shm"):
        file = path.with_name(path.name + suffix)
        if file.exists():
            file.unlink()


class ConnectionPool:
    """Fixed number of connections handed out one at a time

    Connections may be used from any thread, but only by one thread at a time.
    """

    def __init__(self, path: Path, size: int):
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self.size = size
        self._connections: queue.Queue = queue.Queue(maxsize=size)
        for _ in range(size):
            conn = sqlite3.connect(path, timeout=BUSY_TIMEOUT, check_same_thread=False)
            self._connections.put(conn)

    @contextlib.contextmanager
    def connection(self) -> typing.Iterator[sqlite3.Connection]:
        """Check out a connection, blocking until one is free"""
        conn = self._connections.get()
        try:
            yield conn
        finally:
            self._connections.put(conn)

    def close(self):
        for _ in range(self.size):
            self._connections.get().close()


class MBTiles:
    """MBTiles file opened for writing tiles from several threads

    Use `MBTiles.create()` to start a new file and `MBTiles.open()` to read an
    existing one.
    """

    def __init__(self, path: Path | str, pool_size: int = 1):
        self.path = Path(path)
        self.pool = ConnectionPool(self.path, pool_size)

    def __enter__(self) -> "MBTiles":
        return self

    def __exit__(self, *exc):
        self.close()

    @staticmethod
    def create(path: Path | str, pool_size: int = 1) -> "MBTiles":
        """Create an empty store in write-ahead log mode, replacing any existing file"""
        path = Path(path)
        if path.exists():
            logging.info("Overwriting existing %s", path)
        remove(path)

        db = MBTiles(path, pool_size)
        with db.connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(INIT_QUERY)
            conn.commit()
        return db

    @staticmethod
    def open(path: Path | str) -> "MBTiles":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"{path} does not exist")
        return MBTiles(path)

    def connection(self) -> typing.ContextManager[sqlite3.Connection]:
        return self.pool.connection()

    def set_metadata(self, metadata: typing.Mapping[str, str]):
        with self.connection() as conn, conn:
            conn.executemany(INSERT_METADATA_QUERY, [(k, str(v)) for k, v in metadata.items()])

    def get_metadata(self) -> dict[str, str]:
        with self.connection() as conn:
            return dict(conn.execute("SELECT name, value FROM metadata"))

    def write_tile(self, conn: sqlite3.Connection, tile_id: TileID, data: bytes):
        """Store image bytes for a tile, reusing identical images already stored"""
        hash_id = content_hash(data)
        row = flip_row(tile_id.zoom, tile_id.y)
        with conn:
            conn.execute(INSERT_TILE_DATA_QUERY, (hash_id, data))
            conn.execute(INSERT_TILE_QUERY, (tile_id.zoom, tile_id.x, row, hash_id))

    def read_tile(self, zoom: int, x: int, y: int) -> bytes | None:
        """Return image bytes stored for an XYZ tile address, if any"""
        with self.connection() as conn:
            result = conn.execute(SELECT_TILE_QUERY, (zoom, x, flip_row(zoom, y))).fetchone()
        return None if result is None else result[0]

    def zoom_summary(self) -> list[tuple[int, int, int]]:
        """(zoom, tile count, distinct image count) per zoom level"""
        with self.connection() as conn:
            return conn.execute(
                """
                SELECT zoom_level, COUNT(*), COUNT(DISTINCT tile_id)
                FROM map GROUP BY zoom_level ORDER BY zoom_level
                """
            ).fetchall()

    def update_index(self):
        """Build the unique tile coordinate index once all tiles are written"""
        logging.info("Building tile index")
        with self.connection() as conn, conn:
            conn.execute(CREATE_INDEX_QUERY)

    def close(self):
        self.pool.close()

    @staticmethod
    def flush(path: Path | str):
        """Checkpoint the write-ahead log and switch back to rollback journal mode

        Must only be called once every connection to path is closed.
        """
        path = Path(path)
        logging.info("Flushing write-ahead log of %s", path)
        conn = sqlite3.connect(path)
        try:
            conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            conn.execute("PRAGMA journal_mode=DELETE")
        finally:
            conn.close()

        for suffix in ("-wal", "-shm"):
            journal = path.with_name(path.name + suffix)
            if journal.exists():
                journal.unlink()


def _merge_metadata(left: dict[str, str], right: dict[str, str]) -> dict[str, str]:
    merged = {}
    minzooms = [int(m["minzoom"]) for m in (left, right) if "minzoom" in m]
    maxzooms = [int(m["maxzoom"]) for m in (left, right) if "maxzoom" in m]
    if minzooms:
        merged["minzoom"] = str(min(minzooms))
    if maxzooms:
        merged["maxzoom"] = str(max(maxzooms))

    bounds = [Bounds(*map(float, m["bounds"].split(","))) for m in (left, right) if "bounds" in m]
    if bounds:
        union = bounds[0]
        for other in bounds[1:]:
            union = union.union(other)
        merged["bounds"] = "{:.5f},{:.5f},{:.5f},{:.5f}".format(*union)
        if "minzoom" in merged:
            x, y = union.center
            merged["center"] = f"{x:.5f},{y:.5f},{merged['minzoom']}"

    return merged


def merge(left: Path | str, right: Path | str, output: Path | str):
    """Write the union of two stores to output

    Where both stores hold a tile at the same coordinates the left one is kept.
    """
    left, right, output = Path(left), Path(right), Path(output)
    for path in (left, right):
        if not path.exists():
            raise FileNotFoundError(f"{path} does not exist")
    if output.resolve() in (left.resolve(), right.resolve()):
        raise ConfigurationError(f"output {output} must differ from the merged stores")

    logging.info("Copying %s to %s", left, output)
    remove(output)
    shutil.copyfile(left, output)

    conn = sqlite3.connect(output)
    try:
        with conn:
            conn.execute(CREATE_INDEX_QUERY)

        conn.execute("ATTACH DATABASE ? AS other", (str(right),))
        logging.info("Merging tiles from %s", right)
        with conn:
            conn.execute(
                "INSERT OR IGNORE INTO images (tile_id, tile_data) "
                "SELECT tile_id, tile_data FROM other.images"
            )
            conn.execute(
                "INSERT OR IGNORE INTO map (zoom_level, tile_column, tile_row, tile_id) "
                "SELECT zoom_level, tile_column, tile_row, tile_id FROM other.map"
            )
            metadata = _merge_metadata(
                dict(conn.execute("SELECT name, value FROM main.metadata")),
                dict(conn.execute("SELECT name, value FROM other.metadata")),
            )
            conn.executemany(INSERT_METADATA_QUERY, metadata.items())
        conn.execute("DETACH DATABASE other")

        logging.info("Compacting %s", output)
        conn.execute("VACUUM")
    finally:
        conn.close()
