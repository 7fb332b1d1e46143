"""Build tile pyramids from single images.

A :class:`Converter` runs one shared procedure for every tiling scheme:

1. cut the base image into stripes,
2. cut each stripe of the current level into tiles,
3. merge neighbouring stripes pairwise (shrinking a leftover one) into the
   stripes of the next coarser level, and repeat 2-3 until one stripe is left,
4. write the scheme's descriptor file.

What differs between schemes (stripe axis, canvas padding, tile addressing
and descriptor) is supplied by a strategy object from :data:`SCHEMES`.
Tiled strategies implement ``default_target``, ``prepare``,
``stripe_base``, ``canvas``, ``tile`` and ``write_metadata``; single file
strategies (``tiled = False``) implement ``default_target``, ``prepare``
and ``assemble`` instead.

Example:
    >>> from tiletools import Converter, Scheme, TilerConfig
    >>> converter = Converter(Scheme.TMS, TilerConfig(working_dir='/tmp/work'))
    >>> geometry = converter.convert('slide.tif', '/tmp/tiles/slide')
"""

from __future__ import annotations

import logging
import math
import os
import time
from typing import Optional, Union

from tiletools.config import Scheme, TilerConfig
from tiletools.conversion import Conversion, State
from tiletools.errors import DirectoryConflict, ProcessingFailure
from tiletools.geometry import TilesetGeometry
from tiletools.gmaps import GoogleMapsScheme
from tiletools.processor import ImageProcessor, get_processor
from tiletools.ptif import PTIFScheme
from tiletools.tms import TMSScheme
from tiletools.zoomify import ZoomifyScheme

logger = logging.getLogger(__name__)

SCHEMES = {
    Scheme.TMS: TMSScheme,
    Scheme.ZOOMIFY: ZoomifyScheme,
    Scheme.GMAPS: GoogleMapsScheme,
    Scheme.PTIF: PTIFScheme,
}

JPEG2000_EXTENSIONS = ('.jp2', '.j2k', '.jpf')


class Converter:
    """Turns images into tilesets of one scheme.

    Args:
        scheme: Tiling scheme, as :class:`Scheme` or its name.
        config: Conversion settings, defaults to :class:`TilerConfig` defaults.
        processor: Image processor, defaults to the one named in ``config``.
    """

    def __init__(self, scheme: Union[Scheme, str], config: Optional[TilerConfig] = None,
                 processor: Optional[ImageProcessor] = None) -> None:
        self.scheme = Scheme(scheme)
        self.config = config or TilerConfig()
        self.processor = processor or get_processor(self.config)
        self.strategy = SCHEMES[self.scheme]()

    def _resolve_target(self, name, target):
        if target is None:
            target = self.strategy.default_target(self.config.working_dir, name)
            if os.path.exists(target):
                raise DirectoryConflict(f"Target '{target}' already exists")
        elif not self.strategy.tiled and os.path.isdir(target):
            raise DirectoryConflict(f"Target '{target}' is a directory")
        return target

    def convert(self, image: str, target: Optional[str] = None) -> TilesetGeometry:
        """Tile one image.

        Args:
            image: Path of the source image.
            target: Tileset directory (PTIF: output file). Defaults to a
                directory or file named after the image in the working directory.

        Returns:
            Geometry of the produced tileset.

        Raises:
            DirectoryConflict: If no target was given and the default one exists.
            InvalidDimension: If the image or tile size does not suit the scheme.
            ProcessingFailure: If an image operation or file move failed.
        """
        start_time = time.time()
        os.makedirs(self.config.working_dir, exist_ok=True)
        name = os.path.splitext(os.path.basename(image))[0]
        target = self._resolve_target(name, target)
        conv = Conversion(image, target, self.config, self.processor)

        try:
            self._decode(conv)
            conv.base_size = self.processor.identify(conv.source)
            width, height = conv.base_size
            conv.geometry = TilesetGeometry.compute(width, height, self.config.tile_width, self.config.tile_height)
            self.strategy.prepare(conv)
            if self.strategy.tiled:
                os.makedirs(target, exist_ok=True)
            geometry = conv.geometry
            logger.info(f'Generating {self.scheme.value} tiles for {image}: {width}x{height}, '
                        f'{geometry.x_tiles(0)}x{geometry.y_tiles(0)} base tiles, '
                        f'{geometry.levels} zoom levels, {geometry.total_tiles} tiles')

            if self.strategy.tiled:
                self._build(conv)
            else:
                self.strategy.assemble(conv)
            conv.stripes.cleanup()
        except OSError as e:
            conv.fail()
            raise ProcessingFailure(f'{image}: {e}') from e
        except Exception:
            conv.fail()
            raise

        conv.set_state(State.DONE)
        logger.info(f'execution time: {time.time() - start_time:.2f}')
        return conv.geometry

    def _decode(self, conv):
        if not conv.image.lower().endswith(JPEG2000_EXTENSIONS):
            return
        decoded = conv.stripes.temp_path('source')
        logger.info(f'Converting {conv.image} to {decoded}')
        self.processor.convert(conv.image, decoded)
        if not os.path.isfile(decoded):
            raise ProcessingFailure(f'No output file generated: {decoded}')
        conv.stripes.track(decoded)
        conv.source = decoded

    def _build(self, conv):
        strategy = self.strategy
        geometry = conv.geometry

        stripes = strategy.stripe_base(conv)
        conv.set_state(State.STRIPED)

        for level in range(geometry.levels):
            conv.set_state(State.TILING_LEVEL, level)
            if level > 0:
                stripes = self._next_level(conv, stripes, level)
            for index, stripe in enumerate(stripes):
                strategy.tile(conv, stripe, level, index)

        if len(stripes) != 1:
            raise ProcessingFailure(f'Pyramid of {conv.image} ended with {len(stripes)} stripes')
        conv.stripes.delete_all(stripes)

        strategy.write_metadata(conv)
        conv.set_state(State.METADATA_WRITTEN)

    def _next_level(self, conv, stripes, level):
        """Merge the stripes of one level pairwise into the stripes of the next."""
        manager = conv.stripes
        canvas = self.strategy.canvas(conv, level)
        gravity = self.strategy.gravity
        background = self.config.background

        merged = []
        pairs = math.ceil(len(stripes) / 2)
        for j in range(pairs):
            target = manager.path(level, j)
            edge = j == pairs - 1
            if 2 * j + 1 < len(stripes):
                merged.append(manager.merge(stripes[2 * j], stripes[2 * j + 1], target,
                                            canvas, background, gravity, edge=edge))
            else:
                merged.append(manager.shrink(stripes[2 * j], target, canvas, background, gravity))
        manager.delete_all(stripes)
        return merged
