"""Command line tool that tiles one image, or every image in a folder."""

import argparse
import logging
import os
import platform
import resource
import sys
import time

from tiletools.config import ProcessingSystem, Scheme, TileFormat, TilerConfig
from tiletools.errors import TilingError
from tiletools.tiler import Converter
from tiletools.validate import validate as validate_tileset

logger = logging.getLogger(__name__)

FORMAT = "[%(filename)s:%(lineno)s - %(funcName)20s() ] %(message)s"


def _target(converter, image, output, batch):
    if output is None:
        return None
    if not batch:
        return output
    name = os.path.splitext(os.path.basename(image))[0]
    return converter.strategy.default_target(output, name)


def run(imagefile, scheme, tile_format='jpeg', background='#ffffff', output=None, tile_size=256,
        jpeg_quality=75, processing_dir='.', processing_system='vips', validate=False):
    """Tile ``imagefile``, or each file in it when it is a directory.

    Returns:
        0 if every image was tiled (and validated, if requested), 1 otherwise.
    """
    start_time = time.time()
    config = TilerConfig(working_dir=processing_dir,
                         tile_width=tile_size,
                         tile_height=tile_size,
                         tile_format=TileFormat.from_name(tile_format),
                         jpeg_quality=jpeg_quality,
                         background=background,
                         processing_system=ProcessingSystem(processing_system))
    converter = Converter(Scheme(scheme), config)

    batch = os.path.isdir(imagefile)
    if batch:
        images = [os.path.join(imagefile, f) for f in sorted(os.listdir(imagefile))
                  if os.path.isfile(os.path.join(imagefile, f))]
    else:
        images = [imagefile]

    failures = 0
    for image in images:
        target = _target(converter, image, output, batch)
        try:
            converter.convert(image, target)
            if validate:
                if target is None:
                    name = os.path.splitext(os.path.basename(image))[0]
                    target = converter.strategy.default_target(config.working_dir, name)
                validate_tileset(target, converter.scheme)
        except TilingError as e:
            logger.error(f'{image}: {e.msg}')
            failures += 1

    print(f"--- {(time.time() - start_time):.2f} seconds ---")
    usage = resource.getrusage(resource.RUSAGE_SELF)
    print(f"  utime: {usage.ru_utime:.2f}")
    print(f"  stime: {usage.ru_stime:.2f}")
    print(f"  maxrss {usage.ru_maxrss / (2 ** 20 if platform.system() == 'Linux' else 2 ** 30):.2f}")
    if failures:
        logger.error(f'{failures} of {len(images)} images failed')
        return 1
    return 0


def main():
    logging.basicConfig(format=FORMAT)
    logging.getLogger('tiletools').setLevel(logging.INFO)

    parser = argparse.ArgumentParser(description='Tool to cut an image into a tile pyramid.')
    parser.add_argument('imagefile', action='store', type=str,
                        help='The image file to tile, or a folder of images.')
    parser.add_argument('-s', '--scheme', action='store', type=str, required=True,
                        choices=[s.value for s in Scheme], help='The tiling scheme.')
    parser.add_argument('--format', help='The tile format, jpeg or png. Default is jpeg.',
                        action='store', type=str, default='jpeg')
    parser.add_argument('--background', help='The background color of padded areas. Default is #ffffff.',
                        action='store', type=str, default='#ffffff')
    parser.add_argument('-o', '--output', help='The tileset directory (ptif: file). In folder mode the parent '
                        'directory of all tilesets. Default is the processing directory.',
                        action='store', type=str, default=None)
    parser.add_argument('--tile_size', help='The size of the generated tiles. Default is 256.',
                        action='store', type=int, default=256)
    parser.add_argument('--jpeg_quality', help='The compression quality. Default is 75.',
                        action='store', type=int, default=75)
    parser.add_argument('--processing_dir', help='The directory for intermediate files. Default is .',
                        action='store', type=str, default='.')
    parser.add_argument('--processing_system', help='The image processing backend. Default is vips.',
                        action='store', type=str, default='vips', choices=[p.value for p in ProcessingSystem])
    parser.add_argument('--validate', help='Check every tileset for missing tiles after tiling.',
                        action='store_true')
    args = parser.parse_args()

    try:
        return run(args.imagefile, args.scheme, tile_format=args.format, background=args.background,
                   output=args.output, tile_size=args.tile_size, jpeg_quality=args.jpeg_quality,
                   processing_dir=args.processing_dir, processing_system=args.processing_system,
                   validate=args.validate)
    except (TilingError, ValueError) as e:
        parser.error(getattr(e, 'msg', str(e)))


if __name__ == '__main__':
    sys.exit(main())
