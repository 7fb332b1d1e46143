"""Check finished tilesets for completeness.

Each validator recomputes the expected geometry from what the tileset
describes about itself and checks that every tile it implies exists.
Nothing is repaired.
"""

from __future__ import annotations

import argparse
import logging
import math
import os
import re
import sys
from typing import Optional, Union
from xml.parsers.expat import ExpatError

import pyvips
import xmltodict
from tifffile import TiffFile, TiffFileError

from tiletools.config import Scheme
from tiletools.errors import InvalidDimension, TilingError, ValidationFailure
from tiletools.geometry import TilesetGeometry
from tiletools.tms import TILEMAP_FILE
from tiletools.zoomify import IMAGE_PROPERTIES_FILE, TILE_EXTENSION, TILEGROUP, tile_group_sizes, tile_path

logger = logging.getLogger(__name__)

FORMAT = "[%(filename)s:%(lineno)s - %(funcName)20s() ] %(message)s"

GMAPS_TILE_RE = re.compile(r'(\d+)_(\d+)_(\d+)\.(\w+)')


def _read_xml(path):
    try:
        with open(path, 'rb') as f:
            return xmltodict.parse(f.read())
    except (OSError, ExpatError) as e:
        raise ValidationFailure(f'Could not parse {path}: {e}') from e


def _geometry(width, height, tile_width, tile_height):
    try:
        return TilesetGeometry.compute(width, height, tile_width, tile_height)
    except InvalidDimension as e:
        raise ValidationFailure(f'Invalid tileset dimensions: {e.msg}') from e


def _require(path):
    if not os.path.isfile(path):
        raise ValidationFailure(f'Missing tile: {path}')


class TMSValidator:
    scheme = Scheme.TMS

    def is_tileset(self, path):
        return os.path.isfile(os.path.join(path, TILEMAP_FILE))

    def validate(self, path):
        if not self.is_tileset(path):
            raise ValidationFailure(f'Not a TMS tileset - missing {TILEMAP_FILE}: {path}')

        descriptor = os.path.join(path, TILEMAP_FILE)
        try:
            tilemap = _read_xml(descriptor)['TileMap']
            bbox = tilemap['BoundingBox']
            width = round(float(bbox['@maxy']))
            height = round(-float(bbox['@minx']))
            tile_format = tilemap['TileFormat']
            tile_width = int(tile_format['@width'])
            tile_height = int(tile_format['@height'])
            ext = tile_format['@extension']
            tilesets = tilemap['TileSets']['TileSet']
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationFailure(f'Ill-formed descriptor {descriptor}: {e}') from e
        if isinstance(tilesets, dict):
            tilesets = [tilesets]

        geometry = _geometry(width, height, tile_width, tile_height)
        if len(tilesets) != geometry.levels:
            raise ValidationFailure(
                f'{descriptor} lists {len(tilesets)} tile sets, expected {geometry.levels}')

        for level in range(geometry.levels):
            zoom = geometry.zoom_for_level(level)
            for col in range(geometry.x_tiles(level)):
                for row in range(geometry.y_tiles(level)):
                    _require(os.path.join(path, str(zoom), str(col), f'{row}.{ext}'))
        return geometry


class ZoomifyValidator:
    scheme = Scheme.ZOOMIFY

    def is_tileset(self, path):
        return os.path.isfile(os.path.join(path, IMAGE_PROPERTIES_FILE))

    def validate(self, path):
        if not self.is_tileset(path):
            raise ValidationFailure(f'Not a Zoomify tileset - missing {IMAGE_PROPERTIES_FILE}: {path}')

        descriptor = os.path.join(path, IMAGE_PROPERTIES_FILE)
        try:
            props = _read_xml(descriptor)['IMAGE_PROPERTIES']
            attrs = {k.lstrip('@').upper(): v for k, v in props.items()}
            width = int(attrs['WIDTH'])
            height = int(attrs['HEIGHT'])
            tile_size = int(attrs['TILESIZE'])
            num_tiles = int(attrs['NUMTILES'])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ValidationFailure(f'Ill-formed descriptor {descriptor}: {e}') from e

        geometry = _geometry(width, height, tile_size, tile_size)
        if num_tiles != geometry.total_tiles:
            raise ValidationFailure(
                f'{descriptor} declares {num_tiles} tiles, image size implies {geometry.total_tiles}')

        # raster order from the coarsest level; the group is the running index // 256
        index = 0
        for level in reversed(range(geometry.levels)):
            zoom = geometry.zoom_for_level(level)
            for row in range(geometry.y_tiles(level)):
                for col in range(geometry.x_tiles(level)):
                    _require(tile_path(path, index, zoom, col, row))
                    index += 1

        sizes = tile_group_sizes(num_tiles)
        for entry in sorted(os.listdir(path)):
            if not entry.startswith(TILEGROUP):
                continue
            group_dir = os.path.join(path, entry)
            try:
                group = int(entry[len(TILEGROUP):])
            except ValueError:
                raise ValidationFailure(f'Unexpected directory: {group_dir}')
            if group >= len(sizes):
                raise ValidationFailure(f'Unexpected directory: {group_dir}')
            count = len([f for f in os.listdir(group_dir) if f.endswith(f'.{TILE_EXTENSION}')])
            if count != sizes[group]:
                raise ValidationFailure(f'{group_dir} holds {count} tiles, expected {sizes[group]}')
        return geometry


class GoogleMapsValidator:
    scheme = Scheme.GMAPS

    def _tiles(self, path):
        if not os.path.isdir(path):
            return []
        return [m for m in map(GMAPS_TILE_RE.fullmatch, os.listdir(path)) if m is not None]

    def is_tileset(self, path):
        return len(self._tiles(path)) > 0

    def validate(self, path):
        tiles = self._tiles(path)
        if not tiles:
            raise ValidationFailure(f'Not a Google Maps tileset - no tiles found: {path}')

        levels = max(int(m.group(1)) for m in tiles) + 1
        ext = tiles[0].group(4)
        root_tile = os.path.join(path, f'0_0_0.{ext}')
        _require(root_tile)
        try:
            header = pyvips.Image.new_from_file(root_tile)
        except pyvips.Error as e:
            raise ValidationFailure(f'Could not read {root_tile}: {e}') from e
        if header.width != header.height:
            raise ValidationFailure(f'{root_tile} is {header.width}x{header.height}, tiles must be square')

        # every level is a full 2^zoom square grid of tiles
        size = header.width * 2 ** (levels - 1)
        geometry = _geometry(size, size, header.width, header.height)
        for level in range(geometry.levels):
            zoom = geometry.zoom_for_level(level)
            for col in range(geometry.x_tiles(level)):
                for row in range(geometry.y_tiles(level)):
                    _require(os.path.join(path, f'{zoom}_{col}_{row}.{ext}'))

        if len(tiles) != geometry.total_tiles:
            raise ValidationFailure(f'{path} holds {len(tiles)} tiles, expected {geometry.total_tiles}')
        return geometry


class PTIFValidator:
    scheme = Scheme.PTIF

    def is_tileset(self, path):
        if not os.path.isfile(path):
            return False
        try:
            with TiffFile(path):
                return True
        except TiffFileError:
            return False

    def validate(self, path):
        if not os.path.isfile(path):
            raise ValidationFailure(f'Missing file: {path}')
        try:
            with TiffFile(path) as tif:
                pages = [(p.imagewidth, p.imagelength, p.is_tiled, p.tilewidth, p.tilelength)
                         for p in tif.pages]
        except TiffFileError as e:
            raise ValidationFailure(f'Not a TIFF file: {path} ({e})') from e

        width, height, tiled, tile_width, tile_height = pages[0]
        if not tiled:
            raise ValidationFailure(f'{path} page 0 is not tiled')
        geometry = _geometry(width, height, tile_width, tile_height)
        if len(pages) != geometry.levels:
            raise ValidationFailure(f'{path} has {len(pages)} pages, expected {geometry.levels}')

        for i, (page_width, page_height, page_tiled, _, _) in enumerate(pages):
            if (page_width, page_height) != (width, height):
                raise ValidationFailure(
                    f'{path} page {i} is {page_width}x{page_height}, expected {width}x{height}')
            if not page_tiled:
                raise ValidationFailure(f'{path} page {i} is not tiled')
            width, height = math.ceil(width / 2), math.ceil(height / 2)
        return geometry


VALIDATORS = {
    Scheme.TMS: TMSValidator,
    Scheme.ZOOMIFY: ZoomifyValidator,
    Scheme.GMAPS: GoogleMapsValidator,
    Scheme.PTIF: PTIFValidator,
}

# descriptor based schemes first, the flat Google Maps layout matches any directory of tiles
DETECTION_ORDER = (Scheme.PTIF, Scheme.ZOOMIFY, Scheme.TMS, Scheme.GMAPS)


def detect(path: str) -> Optional[Scheme]:
    """Return the scheme of the tileset at ``path``, or None if it is none of them."""
    for scheme in DETECTION_ORDER:
        if VALIDATORS[scheme]().is_tileset(path):
            return scheme
    return None


def validate(path: str, scheme: Union[Scheme, str, None] = None) -> TilesetGeometry:
    """Check that the tileset at ``path`` is complete.

    Args:
        path: Tileset directory, or file for PTIF.
        scheme: Expected scheme; detected from the tileset when omitted.

    Returns:
        The geometry the tileset was checked against.

    Raises:
        ValidationFailure: Naming the first missing or mismatched path.
    """
    if scheme is None:
        scheme = detect(path)
        if scheme is None:
            raise ValidationFailure(f'Not a known tileset: {path}')
    geometry = VALIDATORS[Scheme(scheme)]().validate(path)
    logger.info(f'{path}: valid {Scheme(scheme).value} tileset, {geometry.total_tiles} tiles')
    return geometry


def main():
    logging.basicConfig(format=FORMAT)
    logger.setLevel(logging.INFO)

    parser = argparse.ArgumentParser(description='Check tilesets for missing tiles.')
    parser.add_argument('tilesets', nargs='+', help='tileset directories or PTIF files')
    parser.add_argument('--scheme', choices=[s.value for s in Scheme], default=None,
                        help='expected scheme, detected when omitted')
    args = parser.parse_args()

    failures = 0
    for path in args.tilesets:
        try:
            validate(path, args.scheme)
        except TilingError as e:
            logger.error(f'{path}: {e.msg}')
            failures += 1
    return 1 if failures else 0


if __name__ == '__main__':
    sys.exit(main())
