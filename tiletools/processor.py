"""Image operations the pyramid builder delegates to.

The tilers only talk to :class:`ImageProcessor`. Two implementations exist:

* :class:`VipsProcessor` runs everything in process with pyvips and writes
  pyramid TIFFs with tifffile.
* :class:`MagickProcessor` shells out to GraphicsMagick or ImageMagick.

All operations are synchronous. Any failure of the underlying library or
command is reported as :class:`~tiletools.errors.ProcessingFailure`.
"""

from __future__ import annotations

import functools
import logging
import math
import os
import subprocess
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pyvips
from tifffile import TiffWriter

from tiletools.config import (GRAVITY_CENTER, GRAVITY_NORTHWEST, GRAVITY_SOUTHWEST, ProcessingSystem,
                              TilerConfig, parse_color)
from tiletools.errors import ProcessingFailure

logger = logging.getLogger(__name__)

GM_CMD = 'gm'
IM_CONVERT_CMD = 'convert'
IM_MONTAGE_CMD = 'montage'
IM_IDENTIFY_CMD = 'identify'


def is_jpeg(filename: str) -> bool:
    return os.path.splitext(filename)[1].lower() in ('.jpg', '.jpeg')


def _split_pattern(pattern):
    directory, name = os.path.split(pattern)
    head, placeholder, tail = name.rpartition('%d')
    if not placeholder:
        raise ValueError(f'No %d placeholder in file name: {pattern}')
    return directory, head, tail


def numbered(pattern: str, index: int) -> str:
    """Expand the last ``%d`` placeholder in the file name part of an output file pattern."""
    directory, head, tail = _split_pattern(pattern)
    return os.path.join(directory, f'{head}{index}{tail}')


def magick_pattern(pattern: str) -> str:
    """Escape every ``%`` of an output file pattern but the placeholder expanded by :func:`numbered`."""
    directory, head, tail = _split_pattern(pattern)
    escaped = head.replace('%', '%%') + '%d' + tail.replace('%', '%%')
    return os.path.join(directory.replace('%', '%%'), escaped)


def gravity_offset(gravity: Optional[str], dx: int, dy: int) -> Tuple[int, int]:
    """Position of an image inside a canvas that is ``dx`` wider and ``dy`` taller."""
    if gravity == GRAVITY_CENTER:
        return dx // 2, dy // 2
    if gravity == GRAVITY_SOUTHWEST:
        return 0, dy
    return 0, 0


class ImageProcessor:
    """Interface of the image operations used to build pyramids.

    Args:
        config: Conversion settings; JPEG quality and default background are taken from it.
    """

    def __init__(self, config: TilerConfig) -> None:
        self.jpeg_quality = config.jpeg_quality
        self.background = config.background

    def identify(self, src: str) -> Tuple[int, int]:
        """Return ``(width, height)`` of an image file."""
        raise NotImplementedError

    def crop(self, src: str, target_pattern: str, width: int, height: int,
             canvas_width: Optional[int] = None, canvas_height: Optional[int] = None,
             gravity: Optional[str] = None, background: Optional[str] = None) -> List[str]:
        """Cut an image into a grid of ``width`` x ``height`` pieces.

        Pieces are written in raster order to ``target_pattern`` with ``%d``
        replaced by the piece index. Pieces on the right and bottom border
        are truncated, unless a canvas size is given, in which case every
        piece is extended onto a canvas of that size, placed according to
        ``gravity`` and filled with ``background``.

        Returns:
            Paths of the written pieces in raster order.
        """
        raise NotImplementedError

    def resize(self, src: str, target: str, width: int, height: int) -> None:
        """Resample an image to exactly ``width`` x ``height``."""
        raise NotImplementedError

    def scale(self, src: str, target: str, width: int, height: int) -> None:
        """Like :meth:`resize`, using a cheaper filter suited to 2:1 reduction."""
        raise NotImplementedError

    def montage(self, sources: Sequence[Optional[str]], target: str, across: int,
                cell_width: Optional[int] = None, cell_height: Optional[int] = None,
                gravity: Optional[str] = None, background: Optional[str] = None,
                halve: bool = False) -> None:
        """Join images into a grid ``across`` images wide.

        With a cell size every image is scaled to fit its cell and placed
        in it according to ``gravity``; ``None`` entries in ``sources``
        become empty cells filled with ``background``. Without a cell size
        the images are joined at their own size, and with ``halve`` the
        joined result is reduced to half its width and height, odd sizes
        rounding up.
        """
        raise NotImplementedError

    def convert(self, src: str, target: str) -> None:
        """Re-encode an image in the format given by the target file name."""
        raise NotImplementedError

    def write_pyramid(self, sources: Sequence[str], target: str, tile_width: int, tile_height: int) -> None:
        """Write ``sources`` as the pages of one tiled, JPEG compressed TIFF, in the given order."""
        raise NotImplementedError


class VipsProcessor(ImageProcessor):
    """In-process image operations with pyvips."""

    def _load(self, src):
        try:
            return pyvips.Image.new_from_file(src)
        except pyvips.Error as e:
            raise ProcessingFailure(f'Can not read image {src}: {e}') from e

    def _background(self, image, background=None):
        rgba = parse_color(background or self.background)
        color = rgba[:3] if image.bands >= 3 else rgba[:1]
        if image.hasalpha():
            color = color + [rgba[3] if len(rgba) > 3 else 255]
        return (color + [255] * image.bands)[:image.bands]

    def _save(self, image, target):
        if is_jpeg(target):
            if image.hasalpha():
                image = image.flatten(background=self._background(image)[:-1])
            image.write_to_file(target, Q=self.jpeg_quality)
        else:
            image.write_to_file(target)

    def _extend(self, image, canvas_width, canvas_height, gravity, background):
        x, y = gravity_offset(gravity, canvas_width - image.width, canvas_height - image.height)
        return image.embed(x, y, canvas_width, canvas_height,
                           extend='background', background=self._background(image, background))

    @staticmethod
    def _resize_exact(image, width, height, kernel=None):
        if (width, height) == (image.width, image.height):
            return image
        options = {'vscale': height / image.height}
        if kernel is not None:
            options['kernel'] = kernel
        resized = image.resize(width / image.width, **options)
        # resize rounds the output size; pin it to the requested one
        if (resized.width, resized.height) != (width, height):
            resized = resized.embed(0, 0, width, height, extend='copy')
        return resized

    def identify(self, src):
        image = self._load(src)
        return image.width, image.height

    def crop(self, src, target_pattern, width, height,
             canvas_width=None, canvas_height=None, gravity=None, background=None):
        image = self._load(src)
        paths = []
        try:
            for top in range(0, image.height, height):
                for left in range(0, image.width, width):
                    piece = image.crop(left, top, min(width, image.width - left), min(height, image.height - top))
                    if canvas_width is not None and canvas_height is not None:
                        piece = self._extend(piece, canvas_width, canvas_height, gravity, background)
                    path = numbered(target_pattern, len(paths))
                    self._save(piece, path)
                    paths.append(path)
        except pyvips.Error as e:
            raise ProcessingFailure(f'Can not crop {src}: {e}') from e
        return paths

    def resize(self, src, target, width, height):
        try:
            self._save(self._resize_exact(self._load(src), width, height), target)
        except pyvips.Error as e:
            raise ProcessingFailure(f'Can not resize {src}: {e}') from e

    def scale(self, src, target, width, height):
        try:
            self._save(self._resize_exact(self._load(src), width, height, kernel='linear'), target)
        except pyvips.Error as e:
            raise ProcessingFailure(f'Can not scale {src}: {e}') from e

    def montage(self, sources, target, across, cell_width=None, cell_height=None,
                gravity=None, background=None, halve=False):
        images = [self._load(s) if s is not None else None for s in sources]
        if all(image is None for image in images):
            raise ProcessingFailure(f'Nothing to montage into {target}')
        try:
            if cell_width is not None and cell_height is not None:
                cells = []
                for image in images:
                    if image is None:
                        cells.append(None)
                        continue
                    factor = min(cell_width / image.width, cell_height / image.height)
                    fitted = self._resize_exact(image,
                                                min(cell_width, max(1, round(image.width * factor))),
                                                min(cell_height, max(1, round(image.height * factor))))
                    cells.append(self._extend(fitted, cell_width, cell_height, gravity, background))
                reference = next(c for c in cells if c is not None)
                blank = reference.new_from_image(self._background(reference, background))
                joined = pyvips.Image.arrayjoin([blank if c is None else c for c in cells], across=across)
            else:
                present = [image for image in images if image is not None]
                bg = self._background(present[0], background)

                def _join(direction, a, b):
                    return a.join(b, direction, expand=True, background=bg)

                rows = [functools.reduce(functools.partial(_join, 'horizontal'), present[i:i + across])
                        for i in range(0, len(present), across)]
                joined = functools.reduce(functools.partial(_join, 'vertical'), rows)
            if halve:
                joined = self._resize_exact(joined, math.ceil(joined.width / 2), math.ceil(joined.height / 2))
            self._save(joined, target)
        except pyvips.Error as e:
            raise ProcessingFailure(f'Can not montage {target}: {e}') from e

    def convert(self, src, target):
        try:
            self._save(self._load(src), target)
        except pyvips.Error as e:
            raise ProcessingFailure(f'Can not convert {src}: {e}') from e

    def _to_array(self, image):
        if image.hasalpha():
            image = image.flatten(background=self._background(image)[:-1])
        if image.format != 'uchar':
            image = image.cast('uchar')
        array = np.ndarray(buffer=image.write_to_memory(), dtype=np.uint8,
                           shape=[image.height, image.width, image.bands])
        return array[:, :, 0] if image.bands == 1 else array

    def write_pyramid(self, sources, target, tile_width, tile_height):
        try:
            with TiffWriter(target, bigtiff=True) as tiff_out:
                for level, src in enumerate(sources):
                    array = self._to_array(self._load(src))
                    options = dict(tile=(tile_height, tile_width),
                                   compression='jpeg',
                                   compressionargs={'level': self.jpeg_quality},
                                   metadata=None)
                    if array.ndim == 3:
                        options.update({'photometric': 'rgb', 'planarconfig': 'contig'})
                    else:
                        options.update({'photometric': 'minisblack'})
                    logger.debug(f'writing pyramid page {level}: {array.shape}')
                    # every page after the first is a reduced resolution image
                    tiff_out.write(array, subfiletype=1 if level else 0, **options)
        except (pyvips.Error, ValueError) as e:
            raise ProcessingFailure(f'Can not write pyramid {target}: {e}') from e


class MagickProcessor(ImageProcessor):
    """Image operations through the GraphicsMagick or ImageMagick command line tools."""

    def __init__(self, config, system=ProcessingSystem.GRAPHICSMAGICK):
        super().__init__(config)
        self.graphicsmagick = system == ProcessingSystem.GRAPHICSMAGICK

    def _cmd(self, tool):
        if self.graphicsmagick:
            return [GM_CMD, tool]
        return [{'convert': IM_CONVERT_CMD, 'montage': IM_MONTAGE_CMD, 'identify': IM_IDENTIFY_CMD}[tool]]

    def _quality(self, target):
        return ['-quality', str(self.jpeg_quality)] if is_jpeg(target) else []

    def _repage(self):
        # GraphicsMagick does not keep virtual canvas offsets after -crop
        return [] if self.graphicsmagick else ['+repage']

    def _run(self, args):
        logger.debug(f'Running: {" ".join(args)}')
        try:
            result = subprocess.run(args, check=True, capture_output=True, universal_newlines=True)
        except subprocess.CalledProcessError as r:
            raise ProcessingFailure(f'{" ".join(r.cmd)} failed: {r.stderr}') from r
        except OSError as e:
            raise ProcessingFailure(f'Can not run {args[0]}: {e}') from e
        if result.stderr:
            logger.info(result.stderr)
        return result.stdout

    def identify(self, src):
        out = self._run(self._cmd('identify') + ['-format', '%w %h\n', src])
        try:
            width, height = out.split('\n')[0].split()
            return int(width), int(height)
        except ValueError:
            raise ProcessingFailure(f'Can not read size of {src} from "{out}"')

    def crop(self, src, target_pattern, width, height,
             canvas_width=None, canvas_height=None, gravity=None, background=None):
        src_width, src_height = self.identify(src)
        args = self._cmd('convert') + [src]
        if canvas_width is not None and canvas_height is not None:
            args += ['-background', background or self.background,
                     '-crop', f'{width}x{height}'] + self._repage() + \
                    ['-gravity', gravity or GRAVITY_NORTHWEST,
                     '-extent', f'{canvas_width}x{canvas_height}']
        else:
            args += ['-crop', f'{width}x{height}'] + self._repage()
        args += self._quality(target_pattern) + ['+adjoin', magick_pattern(target_pattern)]
        self._run(args)
        count = math.ceil(src_width / width) * math.ceil(src_height / height)
        return [numbered(target_pattern, i) for i in range(count)]

    def resize(self, src, target, width, height):
        self._run(self._cmd('convert') + [src, '-resize', f'{width}x{height}!'] + self._quality(target) + [target])

    def scale(self, src, target, width, height):
        self._run(self._cmd('convert') + [src, '-scale', f'{width}x{height}!'] + self._quality(target) + [target])

    def montage(self, sources, target, across, cell_width=None, cell_height=None,
                gravity=None, background=None, halve=False):
        args = self._cmd('montage') + ['-tile', f'{across}x', '-background', background or self.background]
        if cell_width is not None and cell_height is not None:
            args += ['-gravity', gravity or GRAVITY_NORTHWEST, '-geometry', f'{cell_width}x{cell_height}+0+0']
        else:
            args += ['-geometry', '+0+0']
            if halve:
                args += ['-resize', '50%x50%']
        args += ['null:' if s is None else s for s in sources]
        self._run(args + self._quality(target) + [target])

    def convert(self, src, target):
        self._run(self._cmd('convert') + [src] + self._quality(target) + [target])

    def write_pyramid(self, sources, target, tile_width, tile_height):
        # The tiff: prefix keeps the ptif coder from adding its own levels.
        self._run(self._cmd('convert') + list(sources) +
                  ['-define', f'tiff:tile-geometry={tile_width}x{tile_height}',
                   '-compress', 'JPEG', '-quality', str(self.jpeg_quality),
                   '-adjoin', f'tiff:{target}'])


def get_processor(config: TilerConfig) -> ImageProcessor:
    """Build the image processor selected by ``config.processing_system``."""
    if config.processing_system == ProcessingSystem.VIPS:
        return VipsProcessor(config)
    return MagickProcessor(config, config.processing_system)
