"""tiletools - Library for cutting large images into tile pyramids.

This package turns a single large raster image into a multi-resolution
pyramid of fixed-size tiles in one of four layouts: TMS, Zoomify, a Google
Maps style quadtree, or a single pyramid TIFF.

Modules:
    geometry: Zoom level tile grids of a pyramid.
    stripe: Stripes of an image and the transforms between zoom levels.
    tiler: The converter running the stripe, tile, merge procedure.
    tms, zoomify, gmaps, ptif: Layout rules of each scheme.
    processor: Image operations, with pyvips or ImageMagick/GraphicsMagick.
    validate: Completeness checks of finished tilesets.

Example:
    >>> from tiletools import Converter, TilerConfig
    >>> Converter('zoomify', TilerConfig(working_dir='/tmp/work')).convert('image.tif')
"""

from tiletools.config import ProcessingSystem, Scheme, TileFormat, TilerConfig
from tiletools.errors import (CleanupFailure, DirectoryConflict, InvalidDimension, OrientationMismatch,
                              ProcessingFailure, TilingError, ValidationFailure)
from tiletools.geometry import TilesetGeometry
from tiletools.tiler import Converter
from tiletools.validate import validate

__version__ = "0.1.0"
__all__ = [
    "Converter",
    "TilerConfig",
    "Scheme",
    "TileFormat",
    "ProcessingSystem",
    "TilesetGeometry",
    "validate",
    "TilingError",
    "InvalidDimension",
    "OrientationMismatch",
    "ProcessingFailure",
    "CleanupFailure",
    "DirectoryConflict",
    "ValidationFailure",
]
