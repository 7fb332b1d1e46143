import os

import pyvips
import pytest

from tiletools.config import TilerConfig


@pytest.fixture
def make_image(tmp_path):
    """Write a synthetic RGB image with a colour gradient and return its path."""
    def _make(width, height, name='image.tif'):
        xy = pyvips.Image.xyz(width, height)
        red = xy[0] * 255 / max(width - 1, 1)
        green = xy[1] * 255 / max(height - 1, 1)
        blue = pyvips.Image.black(width, height) + 128
        image = red.bandjoin([green, blue]).cast('uchar').copy(interpretation='srgb')
        source_dir = tmp_path / 'source'
        source_dir.mkdir(exist_ok=True)
        path = str(source_dir / name)
        image.write_to_file(path)
        return path
    return _make


@pytest.fixture
def work_dir(tmp_path):
    return str(tmp_path / 'work')


@pytest.fixture
def config(work_dir):
    return TilerConfig(working_dir=work_dir, tile_width=16, tile_height=16)


def leftover_intermediates(work_dir):
    """Files directly in the working directory, i.e. everything but tilesets."""
    if not os.path.isdir(work_dir):
        return []
    return [f for f in os.listdir(work_dir) if os.path.isfile(os.path.join(work_dir, f))]
