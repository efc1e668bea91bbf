# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
from shapely.geometry import Point

from roof_layout.datatypes import PixelPoint, PixelBoundingBox
from roof_layout.geos import rectangle_to_polygon, polygon_bounds, point_in_polygon, deg_diff, \
    weighted_circular_mean_deg, to_shapely, is_valid_polygon
from roof_layout.test_utils.test_funcs import ParameterisedTestCase

_SQUARE = [PixelPoint(0, 0), PixelPoint(10, 0), PixelPoint(10, 10), PixelPoint(0, 10)]
_L_SHAPE = [PixelPoint(0, 0), PixelPoint(10, 0), PixelPoint(10, 4),
            PixelPoint(4, 4), PixelPoint(4, 10), PixelPoint(0, 10)]


class GeosTest(ParameterisedTestCase):

    def test_rectangle_bounds(self):
        def _do_test(x, y, w, h):
            return polygon_bounds(rectangle_to_polygon(x, y, w, h))

        self.parameterised_test([
            (0, 0, 1, 1, PixelBoundingBox(0, 0, 1, 1)),
            (10, 20, 105, 188, PixelBoundingBox(10, 20, 115, 208)),
            (-5, 3, 7, 2, PixelBoundingBox(-5, 3, 2, 5)),
        ], _do_test)

    def test_rectangle_corner_order(self):
        assert rectangle_to_polygon(1, 2, 3, 4) == (
            PixelPoint(1, 2), PixelPoint(4, 2), PixelPoint(4, 6), PixelPoint(1, 6))

    def test_polygon_bounds_floor_ceil(self):
        bounds = polygon_bounds([PixelPoint(0.5, 1.2), PixelPoint(9.1, 1.9), PixelPoint(4.0, 8.7)])
        assert bounds == PixelBoundingBox(0, 1, 10, 9)

    def test_point_in_polygon(self):
        def _do_test(x, y, polygon):
            return point_in_polygon(PixelPoint(x, y), polygon)

        self.parameterised_test([
            (5, 5, _SQUARE, True),
            (11, 5, _SQUARE, False),
            (-1, -1, _SQUARE, False),
            # boundaries count as inside:
            (0, 0, _SQUARE, True),
            (10, 5, _SQUARE, True),
            (5, 10, _SQUARE, True),
            (2, 2, _L_SHAPE, True),
            (7, 7, _L_SHAPE, False),
            (7, 4, _L_SHAPE, True),
            (7, 2, _L_SHAPE, True),
        ], _do_test)

    def test_is_valid_polygon(self):
        self.parameterised_test([
            (_SQUARE, True),
            (_L_SHAPE, True),
            (None, False),
            (_SQUARE[:2], False),
            ([PixelPoint(0, 0), PixelPoint(float('inf'), 0), PixelPoint(10, 10)], False),
            ([PixelPoint(0, 0), PixelPoint(10, 0), PixelPoint(10, float('nan'))], False),
        ], is_valid_polygon)

    def test_point_in_degenerate_polygon(self):
        assert not point_in_polygon(PixelPoint(0, 0), [PixelPoint(0, 0), PixelPoint(1, 1)])

    def test_point_in_polygon_agrees_with_shapely(self):
        poly = to_shapely(_L_SHAPE)
        for x in range(-1, 12):
            for y in range(-1, 12):
                for p in (PixelPoint(x, y), PixelPoint(x + 0.5, y + 0.5)):
                    assert point_in_polygon(p, _L_SHAPE) == poly.covers(Point(p.x, p.y)), p

    def test_deg_diff(self):
        self.parameterised_test([
            (358, 0, 2),
            (0, 358, 2),
            (10, 350, 20),
            (90, 270, 180),
            (180, 175, 5),
        ], deg_diff)

    def test_circular_mean(self):
        assert abs(weighted_circular_mean_deg([358, 0]) - 359) < 1e-9
        assert abs(weighted_circular_mean_deg([90, 180], [1, 1]) - 135) < 1e-9
        assert weighted_circular_mean_deg([0, 0]) == 0.0
        # Weighted towards the larger facet:
        assert abs(weighted_circular_mean_deg([350, 10], [3, 1]) - 355.0) < 0.1

    def test_circular_mean_not_arithmetic(self):
        mean = weighted_circular_mean_deg([358, 4])
        assert abs(mean - 1) < 1e-9
