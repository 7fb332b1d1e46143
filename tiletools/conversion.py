"""State of one image conversion, shared by the converter and the scheme strategies."""

from __future__ import annotations

import enum
import logging
import os
import shutil
from typing import List, Optional, Tuple

from tiletools.config import TilerConfig
from tiletools.errors import ProcessingFailure
from tiletools.geometry import TilesetGeometry
from tiletools.processor import ImageProcessor
from tiletools.stripe import StripeManager

logger = logging.getLogger(__name__)


class State(enum.Enum):
    INIT = 'init'
    STRIPED = 'striped'
    TILING_LEVEL = 'tiling_level'
    METADATA_WRITTEN = 'metadata_written'
    DONE = 'done'
    FAILED = 'failed'


class Conversion:
    """Everything one conversion of one image works on.

    Attributes:
        image: Path of the image as given by the caller.
        name: Image file name without extension.
        source: Image the pyramid is currently built from; replaced by
            intermediates when the input has to be converted or resized first.
        base_size: ``(width, height)`` of ``source``.
        target: Tileset root directory, or the output file for single file schemes.
        geometry: Geometry of the tileset being produced.
        stripes: Owner of all intermediate files of this conversion.
        state: Current step of the conversion.
    """

    def __init__(self, image: str, target: str, config: TilerConfig, processor: ImageProcessor) -> None:
        self.image = image
        self.name = os.path.splitext(os.path.basename(image))[0]
        self.source = image
        self.base_size: Optional[Tuple[int, int]] = None
        self.target = target
        self.config = config
        self.processor = processor
        self.stripes = StripeManager(processor, config.working_dir, self.name)
        self.geometry: Optional[TilesetGeometry] = None
        self.state = State.INIT

    def set_state(self, state: State, level: Optional[int] = None) -> None:
        self.state = state
        if level is None:
            logger.debug(f'{self.name}: {state.value}')
        else:
            logger.debug(f'{self.name}: {state.value} {level + 1} of {self.geometry.levels}')

    def fail(self) -> None:
        """Mark the conversion failed and remove the intermediates created so far."""
        logger.debug(f'{self.name}: failed in state {self.state.value}, cleaning up')
        self.state = State.FAILED
        self.stripes.cleanup()


def cut_tiles(processor: ImageProcessor, src: str, target_pattern: str,
              tile_width: int, tile_height: int, expected: int) -> List[str]:
    """Cut a stripe into tiles and check that ``expected`` tiles came out.

    Raises:
        ProcessingFailure: If a different number of tiles was produced.
    """
    paths = processor.crop(src, target_pattern, tile_width, tile_height)
    if len(paths) != expected:
        raise ProcessingFailure(f'Expected {expected} tiles from {src}, got {len(paths)}')
    for path in paths:
        if not os.path.isfile(path):
            raise ProcessingFailure(f'No output file generated: {path}')
    return paths


def move_tile(src: str, dst: str) -> None:
    try:
        shutil.move(src, dst)
    except OSError as e:
        raise ProcessingFailure(f'Failed to rename file: {src}') from e
