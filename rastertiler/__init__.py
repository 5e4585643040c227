"""Render single-band rasters into Web Mercator PNG tiles stored in MBTiles"""

from .errors import ConfigurationError, PipelineError, RasterTilerError
from .mbtiles import MBTiles, merge
from .render import RenderOptions, render_tiles
from .tileid import TileID, TileRange
