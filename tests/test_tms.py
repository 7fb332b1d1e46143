import os

import pytest
import pyvips
import xmltodict

from tiletools.config import TileFormat, TilerConfig
from tiletools.errors import InvalidDimension, ValidationFailure
from tiletools.geometry import TilesetGeometry
from tiletools.processor import VipsProcessor
from tiletools.tiler import Converter
from tiletools.tms import TILEMAP_FILE, write_tilemap_resource
from tiletools.validate import TMSValidator, validate

from tests.conftest import leftover_intermediates


class TestTilemapResource:

    def test_descriptor_content(self, tmp_path):
        geometry = TilesetGeometry.compute(4670, 2000, 256, 256)
        path = write_tilemap_resource(str(tmp_path), geometry, TileFormat.JPEG, 'slide.tif')
        tilemap = xmltodict.parse(open(path).read())['TileMap']
        assert tilemap['@version'] == '1.0.0'
        assert tilemap['@tilemapservice'] == 'http://tms.osgeo.org/1.0.0'
        assert tilemap['Title'] == 'slide.tif'
        assert tilemap['BoundingBox'] == {'@minx': '-2000.00000000000000', '@miny': '0.00000000000000',
                                          '@maxx': '0.00000000000000', '@maxy': '4670.00000000000000'}
        assert tilemap['Origin'] == {'@x': '-2000.00000000000000', '@y': '0.00000000000000'}
        assert tilemap['TileFormat'] == {'@width': '256', '@height': '256',
                                         '@mime-type': 'image/jpeg', '@extension': 'jpg'}
        tilesets = tilemap['TileSets']['TileSet']
        assert len(tilesets) == 6
        assert tilesets[0] == {'@href': '0', '@units-per-pixel': '32.00000000000000', '@order': '0'}
        assert tilesets[5]['@units-per-pixel'] == '1.00000000000000'


class TestTMSConversion:

    def test_convert_and_validate(self, make_image, config, tmp_path):
        image = make_image(100, 70)
        target = str(tmp_path / 'tiles')
        geometry = Converter('tms', config).convert(image, target)

        assert geometry.zoom_levels == ((7, 5), (4, 3), (2, 2), (1, 1))
        assert validate(target) == geometry
        assert os.path.isfile(os.path.join(target, TILEMAP_FILE))
        # level 0 is the coarsest, a single tile
        assert os.listdir(os.path.join(target, '0')) == ['0']
        assert os.listdir(os.path.join(target, '0', '0')) == ['0.jpg']
        assert sorted(os.listdir(os.path.join(target, '3'))) == [str(c) for c in range(7)]
        processor = VipsProcessor(config)
        assert processor.identify(os.path.join(target, '3', '6', '0.jpg')) == (16, 16)
        assert leftover_intermediates(config.working_dir) == []

    def test_bottom_row_holds_image_bottom(self, make_image, work_dir, tmp_path):
        # 20 pixels high with 16 pixel tiles: the padding goes on top, row 0 is the bottom
        config = TilerConfig(working_dir=work_dir, tile_width=16, tile_height=16,
                             tile_format=TileFormat.PNG, background='#000000')
        image = make_image(16, 20)
        target = str(tmp_path / 'tiles')
        Converter('tms', config).convert(image, target)

        top = pyvips.Image.new_from_file(os.path.join(target, '1', '0', '1.png'))
        bottom = pyvips.Image.new_from_file(os.path.join(target, '1', '0', '0.png'))
        assert top.crop(0, 0, 16, 12).max() == 0
        assert bottom(0, 15)[1] == 255

    def test_default_target_in_working_dir(self, make_image, config):
        image = make_image(40, 40, name='photo.tif')
        Converter('tms', config).convert(image)
        assert TMSValidator().is_tileset(os.path.join(config.working_dir, 'photo'))

    def test_odd_tile_width_rejected(self, make_image, work_dir, tmp_path):
        config = TilerConfig(working_dir=work_dir, tile_width=15, tile_height=16)
        with pytest.raises(InvalidDimension):
            Converter('tms', config).convert(make_image(40, 40), str(tmp_path / 'tiles'))

    def test_missing_tile_detected(self, make_image, config, tmp_path):
        target = str(tmp_path / 'tiles')
        Converter('tms', config).convert(make_image(100, 70), target)
        missing = os.path.join(target, '2', '1', '0.jpg')
        os.remove(missing)
        with pytest.raises(ValidationFailure) as e:
            TMSValidator().validate(target)
        assert missing in e.value.msg
