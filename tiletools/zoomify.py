"""Zoomify layout: ``<root>/TileGroup<N>/<zoom>-<col>-<row>.jpg`` plus ``ImageProperties.xml``.

Tiles are numbered in raster order starting at the coarsest zoom level and
packed into directories of at most 256 tiles each.
"""

from __future__ import annotations

import logging
import math
import os
import xml.etree.ElementTree as ET
from typing import List

from tiletools.conversion import cut_tiles, move_tile
from tiletools.errors import InvalidDimension
from tiletools.geometry import TilesetGeometry
from tiletools.stripe import Orientation

logger = logging.getLogger(__name__)

MAX_TILES_PER_GROUP = 256
TILEGROUP = 'TileGroup'
IMAGE_PROPERTIES_FILE = 'ImageProperties.xml'
TILE_EXTENSION = 'jpg'


def tile_group_sizes(total: int) -> List[int]:
    """Number of tiles in each TileGroup directory of a tileset with ``total`` tiles.

    >>> tile_group_sizes(497)
    [256, 241]
    """
    groups = math.ceil(total / MAX_TILES_PER_GROUP)
    if groups == 0:
        return []
    return [MAX_TILES_PER_GROUP] * (groups - 1) + [total - MAX_TILES_PER_GROUP * (groups - 1)]


def level_offset(geometry: TilesetGeometry, level: int) -> int:
    """Index of the first tile of ``level``, i.e. the number of tiles in all coarser levels."""
    return sum(geometry.tiles(coarser) for coarser in range(level + 1, geometry.levels))


def tile_path(directory: str, index: int, zoom: int, col: int, row: int) -> str:
    group = f'{TILEGROUP}{index // MAX_TILES_PER_GROUP}'
    return os.path.join(directory, group, f'{zoom}-{col}-{row}.{TILE_EXTENSION}')


def write_image_properties(directory: str, geometry: TilesetGeometry) -> str:
    element = ET.Element('IMAGE_PROPERTIES', {
        'WIDTH': str(geometry.width),
        'HEIGHT': str(geometry.height),
        'NUMTILES': str(geometry.total_tiles),
        'NUMIMAGES': '1',
        'VERSION': '1.8',
        'TILESIZE': str(geometry.tile_width),
    })
    path = os.path.join(directory, IMAGE_PROPERTIES_FILE)
    ET.ElementTree(element).write(path)
    return path


class ZoomifyScheme:
    tiled = True
    gravity = None

    def default_target(self, working_dir, name):
        return os.path.join(working_dir, name)

    def prepare(self, conv):
        if conv.config.tile_width != conv.config.tile_height:
            raise InvalidDimension(
                f'Zoomify requires square tiles, got {conv.config.tile_width}x{conv.config.tile_height}')

    def stripe_base(self, conv):
        width, _ = conv.base_size
        return conv.stripes.stripe(conv.source, Orientation.HORIZONTAL, conv.geometry.y_tiles(0),
                                   width, conv.config.tile_height)

    def canvas(self, conv, level):
        return None

    def tile(self, conv, stripe, level, index):
        geometry = conv.geometry
        zoom = geometry.zoom_for_level(level)
        columns = geometry.x_tiles(level)
        start = level_offset(geometry, level) + index * columns

        pattern = os.path.join(conv.target, f'tmp-%d.{TILE_EXTENSION}')
        tiles = cut_tiles(conv.processor, stripe.path, pattern,
                          conv.config.tile_width, conv.config.tile_height, columns)
        for col, path in enumerate(tiles):
            target = tile_path(conv.target, start + col, zoom, col, index)
            os.makedirs(os.path.dirname(target), exist_ok=True)
            move_tile(path, target)

    def write_metadata(self, conv):
        path = write_image_properties(conv.target, conv.geometry)
        logger.debug(f'wrote {path}')
