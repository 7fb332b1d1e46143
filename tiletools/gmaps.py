"""Google Maps style quadtree: flat ``<root>/<zoom>_<col>_<row>.<ext>`` tiles.

The image is resized so its longer side is a power of two multiple of the
tile size, then centred on a square canvas, so that every zoom level is a
full ``2^zoom`` x ``2^zoom`` grid.
"""

import logging
import os

from tiletools.config import GRAVITY_CENTER
from tiletools.conversion import cut_tiles, move_tile
from tiletools.errors import InvalidDimension, ProcessingFailure
from tiletools.stripe import Orientation

logger = logging.getLogger(__name__)


def nearest_power_size(size, base=256):
    """Return the ``base * 2^n`` closest to ``size``; ties go to the larger one."""
    larger = base
    while larger < size:
        larger *= 2
    smaller = larger // 2
    if smaller >= base and size - smaller < larger - size:
        return smaller
    return larger


class GoogleMapsScheme:
    tiled = True
    gravity = GRAVITY_CENTER

    def default_target(self, working_dir, name):
        return os.path.join(working_dir, name)

    def prepare(self, conv):
        config = conv.config
        if config.tile_width != config.tile_height:
            raise InvalidDimension(
                f'Google Maps tiles must be square, got {config.tile_width}x{config.tile_height}')

        width, height = conv.base_size
        size = nearest_power_size(max(width, height), config.tile_width)
        if width >= height:
            new_width, new_height = size, max(1, round(height * size / width))
        else:
            new_width, new_height = max(1, round(width * size / height)), size

        logger.info(f'Resizing {conv.name} from {width}x{height} to {new_width}x{new_height}')
        resized = conv.stripes.temp_path('base')
        conv.processor.resize(conv.source, resized, new_width, new_height)
        if not os.path.isfile(resized):
            raise ProcessingFailure(f'No output file generated: {resized}')
        conv.stripes.track(resized)

        conv.source = resized
        conv.base_size = conv.processor.identify(resized)
        conv.geometry.recompute(size, size)

    def _orientation(self, conv):
        width, height = conv.base_size
        return Orientation.VERTICAL if width > height else Orientation.HORIZONTAL

    def stripe_base(self, conv):
        width, height = conv.base_size
        tile = conv.config.tile_width
        size = conv.geometry.width
        count = conv.geometry.x_tiles(0)
        if self._orientation(conv) == Orientation.VERTICAL:
            return conv.stripes.stripe(conv.source, Orientation.VERTICAL, count, tile, height,
                                       (tile, size), self.gravity, conv.config.background)
        return conv.stripes.stripe(conv.source, Orientation.HORIZONTAL, count, width, tile,
                                   (size, tile), self.gravity, conv.config.background)

    def canvas(self, conv, level):
        return None

    def tile(self, conv, stripe, level, index):
        geometry = conv.geometry
        zoom = geometry.zoom_for_level(level)
        ext = conv.config.tile_format.extension
        horizontal = stripe.orientation == Orientation.HORIZONTAL
        count = geometry.x_tiles(level) if horizontal else geometry.y_tiles(level)

        pattern = os.path.join(conv.target, f'tmp-{zoom}-%d.{ext}')
        tiles = cut_tiles(conv.processor, stripe.path, pattern,
                          conv.config.tile_width, conv.config.tile_height, count)
        for t, path in enumerate(tiles):
            col, row = (t, index) if horizontal else (index, t)
            move_tile(path, os.path.join(conv.target, f'{zoom}_{col}_{row}.{ext}'))

    def write_metadata(self, conv):
        pass
