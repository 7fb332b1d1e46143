import os
import shutil

import pytest
import xmltodict

from tiletools.config import TileFormat, TilerConfig
from tiletools.errors import InvalidDimension, ValidationFailure
from tiletools.geometry import TilesetGeometry
from tiletools.tiler import Converter
from tiletools.validate import ZoomifyValidator, validate
from tiletools.zoomify import (IMAGE_PROPERTIES_FILE, level_offset, tile_group_sizes, tile_path,
                               write_image_properties)


class TestTileGroups:

    def test_group_sizes(self):
        assert tile_group_sizes(497) == [256, 241]
        assert tile_group_sizes(256) == [256]
        assert tile_group_sizes(257) == [256, 1]
        assert tile_group_sizes(1) == [1]

    def test_level_offsets(self):
        geometry = TilesetGeometry.compute(5816, 3961, 256, 256)
        assert level_offset(geometry, geometry.levels - 1) == 0
        assert level_offset(geometry, 0) == 497 - 23 * 16

    def test_tile_path_crosses_group_boundary(self, tmp_path):
        assert tile_path('t', 255, 5, 12, 7) == os.path.join('t', 'TileGroup0', '5-12-7.jpg')
        assert tile_path('t', 256, 5, 13, 7) == os.path.join('t', 'TileGroup1', '5-13-7.jpg')

    def test_image_properties(self, tmp_path):
        geometry = TilesetGeometry.compute(5816, 3961, 256, 256)
        path = write_image_properties(str(tmp_path), geometry)
        props = xmltodict.parse(open(path).read())['IMAGE_PROPERTIES']
        assert props == {'@WIDTH': '5816', '@HEIGHT': '3961', '@NUMTILES': '497',
                         '@NUMIMAGES': '1', '@VERSION': '1.8', '@TILESIZE': '256'}


class TestZoomifyConversion:

    def test_convert_and_validate(self, make_image, config, tmp_path):
        target = str(tmp_path / 'tiles')
        geometry = Converter('zoomify', config).convert(make_image(100, 70), target)

        assert geometry.total_tiles == 52
        assert validate(target) == geometry
        assert os.path.isfile(os.path.join(target, IMAGE_PROPERTIES_FILE))
        group = os.listdir(os.path.join(target, 'TileGroup0'))
        assert len(group) == 52
        assert '0-0-0.jpg' in group
        assert '3-6-4.jpg' in group

    def test_many_groups(self, make_image, work_dir, tmp_path):
        # 8 pixel tiles over 180x120 pixels: 23x15 base tiles, more than one TileGroup
        config = TilerConfig(working_dir=work_dir, tile_width=8, tile_height=8)
        target = str(tmp_path / 'tiles')
        geometry = Converter('zoomify', config).convert(make_image(180, 120), target)

        sizes = tile_group_sizes(geometry.total_tiles)
        assert len(sizes) > 1
        for group, size in enumerate(sizes):
            assert len(os.listdir(os.path.join(target, f'TileGroup{group}'))) == size
        ZoomifyValidator().validate(target)

    def test_tiles_are_jpeg_even_when_png_requested(self, make_image, work_dir, tmp_path):
        config = TilerConfig(working_dir=work_dir, tile_width=16, tile_height=16, tile_format=TileFormat.PNG)
        target = str(tmp_path / 'tiles')
        Converter('zoomify', config).convert(make_image(40, 30), target)
        assert all(f.endswith('.jpg') for f in os.listdir(os.path.join(target, 'TileGroup0')))

    def test_square_tiles_required(self, make_image, work_dir, tmp_path):
        config = TilerConfig(working_dir=work_dir, tile_width=16, tile_height=32)
        with pytest.raises(InvalidDimension):
            Converter('zoomify', config).convert(make_image(40, 30), str(tmp_path / 'tiles'))

    def test_missing_tile_detected(self, make_image, config, tmp_path):
        target = str(tmp_path / 'tiles')
        Converter('zoomify', config).convert(make_image(100, 70), target)
        missing = os.path.join(target, 'TileGroup0', '2-1-1.jpg')
        os.remove(missing)
        with pytest.raises(ValidationFailure) as e:
            validate(target)
        assert missing in e.value.msg

    def test_wrong_tile_count_detected(self, make_image, config, tmp_path):
        target = str(tmp_path / 'tiles')
        geometry = Converter('zoomify', config).convert(make_image(100, 70), target)
        with open(os.path.join(target, IMAGE_PROPERTIES_FILE), 'w') as f:
            f.write(f'<IMAGE_PROPERTIES WIDTH="100" HEIGHT="70" NUMTILES="{geometry.total_tiles + 1}" '
                    f'NUMIMAGES="1" VERSION="1.8" TILESIZE="16" />')
        with pytest.raises(ValidationFailure):
            validate(target)

    def test_tile_in_wrong_group_detected(self, make_image, config, tmp_path):
        target = str(tmp_path / 'tiles')
        Converter('zoomify', config).convert(make_image(100, 70), target)
        misplaced = os.path.join(target, 'TileGroup0', '3-0-0.jpg')
        os.makedirs(os.path.join(target, 'TileGroup1'))
        shutil.move(misplaced, os.path.join(target, 'TileGroup1', '3-0-0.jpg'))
        with pytest.raises(ValidationFailure) as e:
            validate(target)
        assert misplaced in e.value.msg

    def test_extra_tile_in_group_detected(self, make_image, config, tmp_path):
        target = str(tmp_path / 'tiles')
        Converter('zoomify', config).convert(make_image(100, 70), target)
        group_dir = os.path.join(target, 'TileGroup0')
        shutil.copy(os.path.join(group_dir, '0-0-0.jpg'), os.path.join(group_dir, '9-0-0.jpg'))
        with pytest.raises(ValidationFailure) as e:
            validate(target)
        assert '53 tiles, expected 52' in e.value.msg

    def test_extra_group_detected(self, make_image, config, tmp_path):
        target = str(tmp_path / 'tiles')
        Converter('zoomify', config).convert(make_image(100, 70), target)
        extra = os.path.join(target, 'TileGroup1')
        os.makedirs(extra)
        shutil.copy(os.path.join(target, 'TileGroup0', '0-0-0.jpg'), extra)
        with pytest.raises(ValidationFailure) as e:
            validate(target)
        assert 'Unexpected directory' in e.value.msg
