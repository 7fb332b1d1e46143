"""Pyramid TIFF: every zoom level as one page of a single tiled TIFF, finest first."""

import logging
import math
import os
import shutil

from tiletools.conversion import State
from tiletools.errors import CleanupFailure, ProcessingFailure

logger = logging.getLogger(__name__)


class PTIFScheme:
    tiled = False

    def default_target(self, working_dir, name):
        return os.path.join(working_dir, f'{name}.ptif')

    def prepare(self, conv):
        pass

    def assemble(self, conv):
        """Build all levels by halving the whole image, then write them as one file."""
        stripes = conv.stripes
        width, height = conv.base_size
        pages = [conv.source]
        conv.set_state(State.STRIPED)
        for level in range(1, conv.geometry.levels):
            conv.set_state(State.TILING_LEVEL, level)
            width, height = math.ceil(width / 2), math.ceil(height / 2)
            page = stripes.path(level, 0)
            conv.processor.scale(pages[-1], page, width, height)
            if not os.path.isfile(page):
                raise ProcessingFailure(f'No output file generated: {page}')
            pages.append(stripes.track(page))

        pyramid = stripes.temp_path('pyramid')
        conv.processor.write_pyramid(pages, pyramid, conv.config.tile_width, conv.config.tile_height)
        if not os.path.isfile(pyramid):
            raise ProcessingFailure(f'No output file generated: {pyramid}')
        stripes.track(pyramid)

        target_dir = os.path.dirname(conv.target)
        if target_dir:
            os.makedirs(target_dir, exist_ok=True)
        try:
            shutil.move(pyramid, conv.target)
        except OSError as e:
            raise ProcessingFailure(f'Failed to rename file: {pyramid}') from e
        stripes.owned.remove(pyramid)

        for page in pages[1:]:
            try:
                stripes.remove(page)
            except CleanupFailure as e:
                logger.error(e.msg)
        conv.set_state(State.METADATA_WRITTEN)
