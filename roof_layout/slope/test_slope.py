# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
import unittest

import math
import numpy as np

from roof_layout.datatypes import PixelBoundingBox
from roof_layout.errors import InsufficientSamplesError
from roof_layout.rasters import elevation_raster_from_array
from roof_layout.slope.slope import fit_plane, check_block_slope, sample_block, VALID, LOCAL_VARIANCE, \
    GLOBAL_MISMATCH
from roof_layout.test_utils.test_funcs import scale, plane_raster

_SCALE = scale(0.1, 20, 20)
_BLOCK = PixelBoundingBox(0, 0, 10, 10)


def _grid_samples(fn, step: int = 5):
    return [(x, y, fn(x * 0.1, y * 0.1)) for y in range(0, 11, step) for x in range(0, 11, step)]


class PlaneFitTest(unittest.TestCase):

    def test_flat(self):
        fit = fit_plane(_grid_samples(lambda x, y: 10.0), _SCALE)
        assert not fit['is_fallback']
        assert abs(fit['slope']) < 1e-9

    def test_tilted(self):
        fit = fit_plane(_grid_samples(lambda x, y: 3 + 0.5 * x), _SCALE)
        assert abs(fit['x_coef'] - 0.5) < 1e-9
        assert abs(fit['y_coef']) < 1e-9
        assert abs(fit['slope'] - 0.5) < 1e-9

        fit = fit_plane(_grid_samples(lambda x, y: 3 - 0.3 * y), _SCALE)
        assert abs(fit['x_coef']) < 1e-9
        assert abs(fit['y_coef'] - -0.3) < 1e-9
        assert abs(fit['slope'] - 0.3) < 1e-9

    def test_both_axes(self):
        fit = fit_plane(_grid_samples(lambda x, y: 0.3 * x + 0.4 * y), _SCALE)
        assert abs(fit['slope'] - 0.5) < 1e-9

    def test_collinear_samples_fall_back(self):
        samples = [(0, 0, 1), (1, 1, 2), (2, 2, 3), (3, 3, 4)]
        fit = fit_plane(samples, scale(1.0))
        assert fit['is_fallback']
        assert abs(fit['slope'] - 3 / math.hypot(3, 3)) < 1e-9

    def test_too_few_samples(self):
        with self.assertRaises(InsufficientSamplesError):
            fit_plane([(0, 0, 1), (1, 0, 1), (0, 1, 1)], _SCALE)
        # It's a ValueError too:
        with self.assertRaises(ValueError):
            fit_plane([], _SCALE)


class BlockSlopeTest(unittest.TestCase):

    def test_sample_block(self):
        raster = plane_raster(20, 20, 0.1)
        samples = sample_block(raster, _BLOCK)
        assert [(x, y) for x, y, _ in samples] == [(0, 0), (5, 0), (10, 0),
                                                   (0, 5), (5, 5), (10, 5),
                                                   (0, 10), (5, 10), (10, 10)]
        # Off the edge of the raster:
        assert len(sample_block(raster, PixelBoundingBox(10, 10, 20, 20))) == 4

    def test_no_raster(self):
        check = check_block_slope(None, _BLOCK, _SCALE, math.tan(math.radians(30)))
        assert check['is_valid']
        assert check['type'] == VALID
        assert check['sample_count'] == 0
        assert abs(check['baseline_angle'] - 30) < 1e-9

    def test_flat(self):
        check = check_block_slope(plane_raster(20, 20, 0.1), _BLOCK, _SCALE, 0.0)
        assert check['is_valid']
        assert check['sample_count'] == 9
        assert abs(check['local_deviation']) < 1e-9
        assert abs(check['global_deviation']) < 1e-9

    def test_matches_baseline(self):
        # A plane sloping along the diagonal of a square block has the same
        # slope by both measures:
        slope = math.tan(math.radians(30))
        raster = plane_raster(20, 20, 0.1, x_slope=slope / math.sqrt(2), y_slope=slope / math.sqrt(2))
        check = check_block_slope(raster, _BLOCK, _SCALE, slope)
        assert check['is_valid']
        assert check['type'] == VALID
        assert abs(check['local_deviation']) < 1e-6
        assert abs(check['global_deviation']) < 1e-6
        assert abs(check['avg_angle'] - 30) < 1e-6

    def test_mostly_no_data(self):
        values = np.full((20, 20), -9999.0)
        values[0, 0] = 10
        values[0, 5] = 10
        values[5, 0] = 50
        check = check_block_slope(elevation_raster_from_array(values), _BLOCK, _SCALE, 0.0)
        assert check['is_valid']
        assert check['sample_count'] == 3

    def test_step(self):
        values = np.zeros((20, 20))
        values[10:, 10:] = 5
        check = check_block_slope(elevation_raster_from_array(values), _BLOCK, _SCALE, 0.0)
        assert not check['is_valid']
        assert check['type'] == LOCAL_VARIANCE
        assert check['local_deviation'] > 15

    def test_global_mismatch(self):
        # Sloping at 50 degrees along x: the min/max spread over the block diagonal is ~40
        # degrees, so within 15 of the 30 degree baseline, but the plane fit is 20 out.
        raster = plane_raster(20, 20, 0.1, x_slope=math.tan(math.radians(50)))
        baseline = math.tan(math.radians(30))
        check = check_block_slope(raster, _BLOCK, _SCALE, baseline)
        assert not check['is_valid']
        assert check['type'] == GLOBAL_MISMATCH
        assert abs(check['global_deviation'] - 20) < 1e-6
        assert check['local_deviation'] < 15

        check = check_block_slope(raster, _BLOCK, _SCALE, baseline, max_global_deviation_deg=25)
        assert check['is_valid']

    def test_local_measure_depends_on_block_shape(self):
        # A perfect 30 degree plane rising along y. The local measure spreads the
        # rise over the block diagonal, so wide shallow blocks read as flatter
        # than the roof. Landscape-shaped blocks fail at 15 degrees while square
        # and portrait ones pass, though the plane fit is exact for all of them:
        slope = math.tan(math.radians(30))
        raster = plane_raster(30, 30, 0.1, y_slope=slope)
        roof_scale = scale(0.1, 30, 30)

        square = check_block_slope(raster, PixelBoundingBox(0, 0, 10, 10), roof_scale, slope, 15, 14)
        assert square['is_valid']
        assert abs(square['local_deviation'] - 7.79) < 0.01

        portrait = check_block_slope(raster, PixelBoundingBox(0, 0, 11, 16), roof_scale, slope, 15, 14)
        assert portrait['is_valid']
        assert 4 < portrait['local_deviation'] < 5

        landscape = check_block_slope(raster, PixelBoundingBox(0, 0, 19, 9), roof_scale, slope, 15, 14)
        assert not landscape['is_valid']
        assert landscape['type'] == LOCAL_VARIANCE
        assert 16 < landscape['local_deviation'] < 16.5

        for check in (square, portrait, landscape):
            assert check['global_deviation'] < 1e-6
