"""Exceptions raised by rastertiler"""


class RasterTilerError(Exception):
    """Base class for all rastertiler errors"""


class ConfigurationError(RasterTilerError, ValueError):
    """Invalid render or merge configuration, detected before any tile work"""


class DegenerateTransformError(RasterTilerError, ZeroDivisionError):
    """Affine transform with a zero determinant cannot be inverted"""


class PipelineError(RasterTilerError):
    """A producer or worker failed and the render was aborted"""
