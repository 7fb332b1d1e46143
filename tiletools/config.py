"""Settings for a single conversion."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import List

from tiletools.errors import InvalidDimension

GRAVITY_CENTER = 'Center'
GRAVITY_NORTHWEST = 'NorthWest'
GRAVITY_SOUTHWEST = 'SouthWest'

_COLOR_RE = re.compile(r'#([0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})')


class Scheme(enum.Enum):
    TMS = 'tms'
    ZOOMIFY = 'zoomify'
    GMAPS = 'gmaps'
    PTIF = 'ptif'


class ProcessingSystem(enum.Enum):
    VIPS = 'vips'
    GRAPHICSMAGICK = 'graphicsmagick'
    IMAGEMAGICK = 'imagemagick'


class TileFormat(enum.Enum):
    JPEG = ('image/jpeg', 'jpg')
    PNG = ('image/png', 'png')

    @property
    def mime_type(self) -> str:
        return self.value[0]

    @property
    def extension(self) -> str:
        return self.value[1]

    @classmethod
    def from_name(cls, name: str) -> 'TileFormat':
        name = name.lower()
        if name in ('jpeg', 'jpg'):
            return cls.JPEG
        if name == 'png':
            return cls.PNG
        raise ValueError(f'Unsupported tile format: {name}')


def parse_color(color: str) -> List[int]:
    """Convert a ``#rgb``, ``#rrggbb`` or ``#rrggbbaa`` string to a list of channel values.

    Args:
        color: Hex color string.

    Returns:
        List of 3 or 4 integers in the range 0-255.

    Raises:
        ValueError: If the string is not a hex color.
    """
    m = _COLOR_RE.fullmatch(color)
    if m is None:
        raise ValueError(f'Invalid background color: {color}')
    digits = m.group(1)
    if len(digits) == 3:
        digits = ''.join(d * 2 for d in digits)
    return [int(digits[i:i + 2], 16) for i in range(0, len(digits), 2)]


@dataclass(frozen=True)
class TilerConfig:
    """Immutable settings shared by every step of one conversion.

    Attributes:
        working_dir: Directory for intermediate files and default tileset location.
        tile_width: Tile width in pixels.
        tile_height: Tile height in pixels.
        tile_format: File format of the produced tiles.
        jpeg_quality: JPEG compression quality, 0 (worst) to 100 (best).
        background: Fill color used where padding is added to reach the tile grid.
        processing_system: Which image processing backend to use.
    """
    working_dir: str = '.'
    tile_width: int = 256
    tile_height: int = 256
    tile_format: TileFormat = TileFormat.JPEG
    jpeg_quality: int = 75
    background: str = '#ffffff'
    processing_system: ProcessingSystem = ProcessingSystem.VIPS

    def __post_init__(self):
        for name in ('tile_width', 'tile_height'):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise InvalidDimension(f'{name} must be a positive integer, got {value!r}')
        if not 0 <= self.jpeg_quality <= 100:
            raise ValueError(f'jpeg_quality must be between 0 and 100, got {self.jpeg_quality}')
        parse_color(self.background)
