"""Stripes: full-width or full-height slices of an image at one pyramid level.

Stripes live as files in the working directory. A :class:`StripeManager`
owns every stripe file of one conversion, names them uniquely and removes
them once the next level has consumed them.
"""

from __future__ import annotations

import enum
import logging
import math
import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

from tiletools.errors import CleanupFailure, OrientationMismatch, ProcessingFailure
from tiletools.processor import ImageProcessor
from tiletools.run_id import get_run_id

logger = logging.getLogger(__name__)

Canvas = Optional[Tuple[int, int]]


class Orientation(enum.Enum):
    HORIZONTAL = 'horizontal'
    VERTICAL = 'vertical'


@dataclass(frozen=True)
class Stripe:
    path: str
    width: int
    height: int
    orientation: Orientation


def _half(n: int) -> int:
    return math.ceil(n / 2)


class StripeManager:
    """Creates, transforms and deletes the stripe files of one conversion.

    Args:
        processor: Image processor doing the pixel work.
        working_dir: Directory the stripe files are written to.
        name: Base name of the source image; combined with a random run id so
            that conversions sharing a working directory never collide.
    """

    def __init__(self, processor: ImageProcessor, working_dir: str, name: str) -> None:
        self.processor = processor
        self.working_dir = working_dir
        self.prefix = f'{name}-{get_run_id()}'
        self.owned: List[str] = []

    def path(self, level: int, index: int, ext: str = 'tif') -> str:
        """File name for stripe ``index`` of pyramid ``level``."""
        return os.path.join(self.working_dir, f'{self.prefix}-{level}-{index}.{ext}')

    def temp_path(self, label: str, ext: str = 'tif') -> str:
        """File name for any other intermediate file of this conversion."""
        return os.path.join(self.working_dir, f'{self.prefix}-{label}.{ext}')

    def track(self, path: str) -> str:
        self.owned.append(path)
        return path

    def _check_output(self, path):
        if not os.path.isfile(path):
            raise ProcessingFailure(f'No output file generated: {path}')
        self.track(path)

    def stripe(self, image: str, orientation: Orientation, count: int, width: int, height: int,
               canvas: Canvas = None, gravity: Optional[str] = None,
               background: Optional[str] = None) -> List[Stripe]:
        """Cut an image into ``count`` stripes of ``width`` x ``height`` pixels.

        With a canvas every stripe is extended to the canvas size. The last
        stripe may come out smaller than the others; its size is read back
        from the written file.

        Raises:
            ProcessingFailure: If the stripes could not be produced.
        """
        pattern = os.path.join(self.working_dir, f'{self.prefix}-0-%d.tif')
        if canvas is None:
            paths = self.processor.crop(image, pattern, width, height)
            stripe_width, stripe_height = width, height
        else:
            paths = self.processor.crop(image, pattern, width, height, canvas[0], canvas[1], gravity, background)
            stripe_width, stripe_height = canvas
        for path in paths:
            self._check_output(path)
        if len(paths) != count:
            raise ProcessingFailure(f'Expected {count} stripes from {image}, got {len(paths)}')

        stripes = [Stripe(path, stripe_width, stripe_height, orientation) for path in paths[:-1]]
        last_width, last_height = self.processor.identify(paths[-1])
        stripes.append(Stripe(paths[-1], last_width, last_height, orientation))
        return stripes

    def _measure(self, path, orientation, width, height, edge):
        if edge:
            width, height = self.processor.identify(path)
        return Stripe(path, width, height, orientation)

    def shrink(self, stripe: Stripe, target: str, canvas: Canvas = None,
               background: Optional[str] = None, gravity: Optional[str] = None,
               edge: bool = True) -> Stripe:
        """Reduce a stripe that has no merge partner to the next zoom level.

        Without a canvas the stripe is halved in both directions. With a
        canvas the halved stripe is placed on a canvas of that size,
        occupying the half the missing partner would have filled.

        Args:
            stripe: The stripe to shrink.
            target: Output file.
            canvas: Optional ``(width, height)`` of the result.
            background: Fill color of the canvas.
            gravity: Anchor of the stripe on the canvas.
            edge: Re-measure the result from the written file.

        Raises:
            ProcessingFailure: If no output file results.
        """
        if canvas is None:
            self.processor.scale(stripe.path, target, _half(stripe.width), _half(stripe.height))
            self._check_output(target)
            return self._measure(target, stripe.orientation, _half(stripe.width), _half(stripe.height), edge)

        self._montage([stripe.path, None], target, stripe.orientation, canvas, background, gravity)
        return self._measure(target, stripe.orientation, canvas[0], canvas[1], edge)

    def merge(self, stripe_a: Stripe, stripe_b: Stripe, target: str, canvas: Canvas = None,
              background: Optional[str] = None, gravity: Optional[str] = None,
              edge: bool = False) -> Stripe:
        """Join two neighbouring stripes and reduce them to the next zoom level.

        Vertical stripes are joined side by side, horizontal stripes one
        above the other, and the result is halved in both directions.

        Raises:
            OrientationMismatch: If the stripes have different orientations.
            ProcessingFailure: If no output file results.
        """
        if stripe_a.orientation != stripe_b.orientation:
            raise OrientationMismatch(
                f'Cannot merge. Stripes have different orientation: {stripe_a.path}, {stripe_b.path}')

        orientation = stripe_a.orientation
        if canvas is None:
            across = 2 if orientation == Orientation.VERTICAL else 1
            self.processor.montage([stripe_a.path, stripe_b.path], target, across, halve=True)
            self._check_output(target)
            if orientation == Orientation.VERTICAL:
                width = _half(stripe_a.width + stripe_b.width)
                height = _half(max(stripe_a.height, stripe_b.height))
            else:
                width = _half(max(stripe_a.width, stripe_b.width))
                height = _half(stripe_a.height + stripe_b.height)
            return self._measure(target, orientation, width, height, edge)

        self._montage([stripe_a.path, stripe_b.path], target, orientation, canvas, background, gravity)
        return self._measure(target, orientation, canvas[0], canvas[1], edge)

    def _montage(self, sources, target, orientation, canvas, background, gravity):
        if orientation == Orientation.VERTICAL:
            across, cell = 2, (_half(canvas[0]), canvas[1])
        else:
            across, cell = 1, (canvas[0], _half(canvas[1]))
        self.processor.montage(sources, target, across, cell[0], cell[1], gravity, background)
        self._check_output(target)

    def remove(self, path: str) -> None:
        """Delete an intermediate file.

        Raises:
            CleanupFailure: If the file could not be removed.
        """
        try:
            os.remove(path)
        except OSError as e:
            raise CleanupFailure(f'Could not delete file: {path} ({e.strerror})') from e
        finally:
            if path in self.owned:
                self.owned.remove(path)

    def delete(self, stripe: Stripe) -> None:
        """Delete the file backing a stripe.

        Raises:
            CleanupFailure: If the file could not be removed.
        """
        self.remove(stripe.path)

    def delete_all(self, stripes: List[Stripe]) -> None:
        """Delete stripes, logging instead of raising when a file cannot be removed."""
        for stripe in stripes:
            try:
                self.delete(stripe)
            except CleanupFailure as e:
                logger.error(e.msg)

    def cleanup(self) -> None:
        """Best effort removal of every intermediate file still owned."""
        for path in list(self.owned):
            try:
                self.remove(path)
            except CleanupFailure as e:
                logger.error(e.msg)
