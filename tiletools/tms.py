"""Tile Map Service layout: ``<root>/<zoom>/<col>/<row>.<ext>`` plus ``tilemapresource.xml``.

Rows are counted from the bottom of the image, so base stripes are vertical
and padded upward and to the right, anchored at the lower left corner.
"""

import logging
import os
import xml.etree.ElementTree as ET

from tiletools.config import GRAVITY_SOUTHWEST
from tiletools.conversion import cut_tiles, move_tile
from tiletools.errors import InvalidDimension
from tiletools.stripe import Orientation

logger = logging.getLogger(__name__)

TILEMAP_FILE = 'tilemapresource.xml'
TILEMAP_SERVICE = 'http://tms.osgeo.org/1.0.0'


def _float(value):
    return f'{value:.14f}'


def write_tilemap_resource(directory, geometry, tile_format, title):
    """Write the ``tilemapresource.xml`` descriptor of a TMS tileset."""
    root = ET.Element('TileMap', {'version': '1.0.0', 'tilemapservice': TILEMAP_SERVICE})
    ET.SubElement(root, 'Title').text = title
    ET.SubElement(root, 'Abstract').text = ''
    ET.SubElement(root, 'SRS').text = ''
    ET.SubElement(root, 'BoundingBox', {
        'minx': _float(-geometry.height),
        'miny': _float(0),
        'maxx': _float(0),
        'maxy': _float(geometry.width),
    })
    ET.SubElement(root, 'Origin', {'x': _float(-geometry.height), 'y': _float(0)})
    ET.SubElement(root, 'TileFormat', {
        'width': str(geometry.tile_width),
        'height': str(geometry.tile_height),
        'mime-type': tile_format.mime_type,
        'extension': tile_format.extension,
    })
    tilesets = ET.SubElement(root, 'TileSets', {'profile': 'raster'})
    for zoom in range(geometry.levels):
        ET.SubElement(tilesets, 'TileSet', {
            'href': str(zoom),
            'units-per-pixel': _float(2 ** (geometry.levels - 1 - zoom)),
            'order': str(zoom),
        })

    tree = ET.ElementTree(root)
    ET.indent(tree)
    path = os.path.join(directory, TILEMAP_FILE)
    tree.write(path, encoding='utf-8', xml_declaration=True)
    return path


class TMSScheme:
    tiled = True
    gravity = GRAVITY_SOUTHWEST

    def default_target(self, working_dir, name):
        return os.path.join(working_dir, name)

    def prepare(self, conv):
        # two half-width cells have to fill a tile exactly when stripes are merged
        if conv.config.tile_width % 2:
            raise InvalidDimension(f'TMS tile width must be even, got {conv.config.tile_width}')

    def stripe_base(self, conv):
        geometry = conv.geometry
        config = conv.config
        width, height = conv.base_size
        canvas = (config.tile_width, geometry.y_tiles(0) * config.tile_height)
        return conv.stripes.stripe(conv.source, Orientation.VERTICAL, geometry.x_tiles(0),
                                   config.tile_width, height, canvas, self.gravity, config.background)

    def canvas(self, conv, level):
        return conv.config.tile_width, conv.geometry.y_tiles(level) * conv.config.tile_height

    def tile(self, conv, stripe, level, index):
        geometry = conv.geometry
        ext = conv.config.tile_format.extension
        column_dir = os.path.join(conv.target, str(geometry.zoom_for_level(level)), str(index))
        os.makedirs(column_dir, exist_ok=True)

        rows = geometry.y_tiles(level)
        pattern = os.path.join(column_dir, f'tmp-%d.{ext}')
        tiles = cut_tiles(conv.processor, stripe.path, pattern,
                          conv.config.tile_width, conv.config.tile_height, rows)
        # crop numbers from the top, TMS rows count from the bottom
        for i, path in enumerate(tiles):
            move_tile(path, os.path.join(column_dir, f'{rows - 1 - i}.{ext}'))

    def write_metadata(self, conv):
        path = write_tilemap_resource(conv.target, conv.geometry, conv.config.tile_format,
                                      os.path.basename(conv.image))
        logger.debug(f'wrote {path}')
