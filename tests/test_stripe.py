import os
from unittest import mock

import pytest

from tiletools.config import GRAVITY_SOUTHWEST
from tiletools.errors import CleanupFailure, OrientationMismatch, ProcessingFailure
from tiletools.processor import VipsProcessor
from tiletools.stripe import Orientation, Stripe, StripeManager


@pytest.fixture
def manager(config):
    os.makedirs(config.working_dir, exist_ok=True)
    return StripeManager(VipsProcessor(config), config.working_dir, 'image')


class TestStripeManager:

    def test_names_are_unique_per_run(self, config):
        processor = mock.Mock()
        a = StripeManager(processor, config.working_dir, 'image')
        b = StripeManager(processor, config.working_dir, 'image')
        assert a.path(1, 0) != b.path(1, 0)
        assert os.path.basename(a.path(2, 3)).startswith('image-')
        assert a.path(2, 3).endswith('-2-3.tif')

    def test_merge_different_orientations_fails_before_any_work(self, config):
        processor = mock.Mock()
        manager = StripeManager(processor, config.working_dir, 'image')
        a = Stripe('a.tif', 16, 64, Orientation.VERTICAL)
        b = Stripe('b.tif', 64, 16, Orientation.HORIZONTAL)
        with pytest.raises(OrientationMismatch):
            manager.merge(a, b, 'out.tif')
        with pytest.raises(OrientationMismatch):
            manager.merge(a, b, 'out.tif', canvas=(16, 64), gravity=GRAVITY_SOUTHWEST)
        assert processor.method_calls == []

    def test_stripe_horizontal_with_irregular_last(self, manager, make_image):
        image = make_image(50, 40)
        stripes = manager.stripe(image, Orientation.HORIZONTAL, 3, 50, 16)
        assert [(s.width, s.height) for s in stripes] == [(50, 16), (50, 16), (50, 8)]
        assert all(os.path.isfile(s.path) for s in stripes)
        assert all(s.orientation == Orientation.HORIZONTAL for s in stripes)

    def test_stripe_onto_canvas(self, manager, make_image):
        image = make_image(40, 20)
        stripes = manager.stripe(image, Orientation.VERTICAL, 3, 16, 20, canvas=(16, 32),
                                 gravity=GRAVITY_SOUTHWEST, background='#000000')
        assert [(s.width, s.height) for s in stripes] == [(16, 32)] * 3
        assert manager.processor.identify(stripes[-1].path) == (16, 32)

    def test_stripe_count_mismatch(self, manager, make_image):
        image = make_image(50, 40)
        with pytest.raises(ProcessingFailure):
            manager.stripe(image, Orientation.HORIZONTAL, 2, 50, 16)

    def test_shrink_rounds_odd_sizes_up(self, manager, make_image):
        stripe = manager.stripe(make_image(33, 15), Orientation.HORIZONTAL, 1, 33, 16)[0]
        shrunk = manager.shrink(stripe, manager.path(1, 0))
        assert (shrunk.width, shrunk.height) == (17, 8)
        assert manager.processor.identify(shrunk.path) == (17, 8)

    def test_shrink_onto_canvas(self, manager, make_image):
        stripe = manager.stripe(make_image(16, 48), Orientation.VERTICAL, 1, 16, 48)[0]
        shrunk = manager.shrink(stripe, manager.path(1, 0), canvas=(16, 32),
                                background='#ffffff', gravity=GRAVITY_SOUTHWEST)
        assert (shrunk.width, shrunk.height) == (16, 32)

    def test_merge_vertical_stripes(self, manager, make_image):
        stripes = manager.stripe(make_image(30, 20), Orientation.VERTICAL, 2, 16, 20)
        merged = manager.merge(stripes[0], stripes[1], manager.path(1, 0), edge=True)
        assert (merged.width, merged.height) == (15, 10)
        assert merged.orientation == Orientation.VERTICAL

    def test_merge_horizontal_stripes(self, manager, make_image):
        stripes = manager.stripe(make_image(30, 27), Orientation.HORIZONTAL, 2, 30, 16)
        merged = manager.merge(stripes[0], stripes[1], manager.path(1, 0), edge=True)
        assert (merged.width, merged.height) == (15, 14)

    def test_merge_onto_canvas(self, manager, make_image):
        stripes = manager.stripe(make_image(32, 40), Orientation.VERTICAL, 2, 16, 40,
                                 canvas=(16, 48), gravity=GRAVITY_SOUTHWEST)
        merged = manager.merge(stripes[0], stripes[1], manager.path(1, 0), canvas=(16, 32),
                               background='#ffffff', gravity=GRAVITY_SOUTHWEST, edge=True)
        assert (merged.width, merged.height) == (16, 32)

    def test_missing_output_is_processing_failure(self, config):
        processor = mock.Mock()
        manager = StripeManager(processor, config.working_dir, 'image')
        stripe = Stripe(os.path.join(config.working_dir, 'missing.tif'), 16, 16, Orientation.VERTICAL)
        with pytest.raises(ProcessingFailure):
            manager.shrink(stripe, manager.path(1, 0))
        with pytest.raises(ProcessingFailure):
            manager.merge(stripe, stripe, manager.path(1, 0))

    def test_delete_removes_file(self, manager, make_image):
        stripes = manager.stripe(make_image(20, 20), Orientation.HORIZONTAL, 2, 20, 16)
        manager.delete(stripes[0])
        assert not os.path.exists(stripes[0].path)
        assert stripes[0].path not in manager.owned

    def test_delete_missing_file_fails(self, manager):
        stripe = Stripe(manager.path(0, 0), 16, 16, Orientation.VERTICAL)
        with pytest.raises(CleanupFailure):
            manager.delete(stripe)

    def test_delete_all_and_cleanup_log_failures(self, manager, make_image):
        stripes = manager.stripe(make_image(20, 20), Orientation.HORIZONTAL, 2, 20, 16)
        os.remove(stripes[0].path)
        manager.delete_all(stripes)
        assert not os.path.exists(stripes[1].path)

        manager.track(manager.path(5, 0))
        manager.cleanup()
        assert manager.owned == []
