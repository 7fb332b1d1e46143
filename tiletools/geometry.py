"""Zoom level geometry of a tile pyramid.

Example:
    >>> from tiletools.geometry import TilesetGeometry
    >>> g = TilesetGeometry.compute(4670, 2000, 256, 256)
    >>> g.levels, g.total_tiles
    (6, 208)
"""

from __future__ import annotations

from typing import Tuple

from tiletools.errors import InvalidDimension


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


def _check_positive(**values: int) -> None:
    for name, value in values.items():
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise InvalidDimension(f'{name} must be a positive integer, got {value!r}')


class TilesetGeometry:
    """Tile grid dimensions of every zoom level of a pyramid.

    Levels are indexed finest first: ``zoom_levels[0]`` is the base
    resolution grid and ``zoom_levels[-1]`` is always ``(1, 1)``. On-disk
    tile addressing numbers the levels the other way round, see
    :meth:`zoom_for_level`.

    Attributes:
        width: Image width in pixels the geometry was computed for.
        height: Image height in pixels the geometry was computed for.
        tile_width: Tile width in pixels.
        tile_height: Tile height in pixels.
        zoom_levels: Tuple of ``(x_tiles, y_tiles)`` pairs, finest first.
        total_tiles: Number of tiles over all zoom levels.
    """

    def __init__(self, width: int, height: int, tile_width: int = 256, tile_height: int = 256) -> None:
        _check_positive(tile_width=tile_width, tile_height=tile_height)
        self.tile_width = tile_width
        self.tile_height = tile_height
        self.recompute(width, height)

    @classmethod
    def compute(cls, width: int, height: int, tile_width: int, tile_height: int) -> 'TilesetGeometry':
        """Compute the geometry of an image of ``width`` x ``height`` pixels.

        Raises:
            InvalidDimension: If any argument is not a positive integer.
        """
        return cls(width, height, tile_width, tile_height)

    def recompute(self, width: int, height: int) -> None:
        """Replace the geometry with the one for a ``width`` x ``height`` image.

        Nothing of the previous state is kept, so calling this twice with the
        same arguments leaves the same result.

        Raises:
            InvalidDimension: If width or height is not a positive integer.
        """
        _check_positive(width=width, height=height)

        x = _ceil_div(width, self.tile_width)
        y = _ceil_div(height, self.tile_height)

        # ceil(log2(n)) + 1 without floating point
        levels = (max(x, y) - 1).bit_length() + 1

        zoom_levels = [(x, y)]
        for _ in range(1, levels):
            x = _ceil_div(x, 2)
            y = _ceil_div(y, 2)
            zoom_levels.append((x, y))

        self.width = width
        self.height = height
        self.zoom_levels: Tuple[Tuple[int, int], ...] = tuple(zoom_levels)
        self.total_tiles = sum(x * y for x, y in self.zoom_levels)

    @property
    def levels(self) -> int:
        return len(self.zoom_levels)

    def x_tiles(self, level: int) -> int:
        return self.zoom_levels[level][0]

    def y_tiles(self, level: int) -> int:
        return self.zoom_levels[level][1]

    def tiles(self, level: int) -> int:
        x, y = self.zoom_levels[level]
        return x * y

    def zoom_for_level(self, level: int) -> int:
        """Map a finest-first level index to the coarsest-first on-disk zoom number."""
        return self.levels - 1 - level

    def __eq__(self, other):
        if not isinstance(other, TilesetGeometry):
            return NotImplemented
        return ((self.width, self.height, self.tile_width, self.tile_height, self.zoom_levels) ==
                (other.width, other.height, other.tile_width, other.tile_height, other.zoom_levels))

    def __repr__(self):
        return (f'TilesetGeometry({self.width}x{self.height}, tile {self.tile_width}x{self.tile_height}, '
                f'{self.levels} levels, {self.total_tiles} tiles)')
