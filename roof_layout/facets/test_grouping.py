# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
import json
from os.path import join

from roof_layout import paths
from roof_layout.datatypes import GeoPoint
from roof_layout.facets.facets import create_facets
from roof_layout.facets.grouping import are_compatible, are_adjacent, group_facets, find_groups, create_group, \
    remove_duplicate_points
from roof_layout.test_utils.test_funcs import ParameterisedTestCase, facet

# ~4.9m x 4.4m boxes at 51.45N, 0.00004 degrees of latitude by 0.00007 of longitude:
_SW = (51.45000, -2.60000)


def _box(i: int, j: int = 0):
    """Lat/long box i steps east and j steps north of _SW"""
    sw = (_SW[0] + j * 0.00004, _SW[1] + i * 0.00007)
    ne = (sw[0] + 0.00004, sw[1] + 0.00007)
    return sw, ne


def _facet(facet_id, pitch, azimuth, i, j=0, area=20.0, suitability=0.5):
    sw, ne = _box(i, j)
    return facet(facet_id, pitch, azimuth, sw=sw, ne=ne, area_m2=area, suitability=suitability)


class GroupingTest(ParameterisedTestCase):

    def test_compatible(self):
        def _do_test(az1, p1, az2, p2):
            return are_compatible(_facet(1, p1, az1, 0), _facet(2, p2, az2, 1))

        self.parameterised_test([
            (180, 30, 180, 30, True),
            (180, 30, 185, 30, True),
            (180, 30, 186, 30, False),
            (358, 30, 2, 30, True),
            (358, 30, 4, 30, False),
            (180, 30, 180, 42, True),
            (180, 30, 180, 42.5, False),
            # defaults are used for missing values:
            (None, 20, 180, 20, True),
            (180, None, 180, 20, True),
        ], _do_test)

    def test_adjacent(self):
        def _do_test(i, j):
            return are_adjacent(_facet(1, 30, 180, 0), _facet(2, 30, 180, i, j))

        self.parameterised_test([
            (0, 0, True),
            (1, 0, True),
            (0, 1, True),
            (1, 1, True),
            (2, 0, False),
            (0, -2, False),
        ], _do_test)

    def test_adjacent_no_box(self):
        f1 = _facet(1, 30, 180, 0)
        f2 = _facet(2, 30, 180, 1)
        f2.bounding_box = None
        assert not are_adjacent(f1, f2)

    def test_touching_compatible_facets_are_merged(self):
        facets = [_facet(1, 30, 178, 0), _facet(2, 33, 182, 1)]
        res = group_facets(facets, min_area_m2=0, min_dimension_m=0)
        assert res['group_count'] == 1
        assert res['facets_in_groups'] == 2
        assert len(res['facets']) == 1
        group = res['facets'][0]
        assert group.is_group
        assert group.id == "group_0"
        assert group.member_ids == [1, 2]
        assert group.member_count == 2
        assert all(m.group_id == "group_0" for m in group.members)
        assert group.area_m2 == 40
        assert abs(group.pitch - 31.5) < 1e-9
        assert abs(group.azimuth - 180) < 1e-9

    def test_threshold_exceeded_keeps_facets_separate(self):
        def _do_test(az2, p2):
            facets = [_facet(1, 30, 180, 0), _facet(2, p2, az2, 1)]
            res = group_facets(facets, min_area_m2=0, min_dimension_m=0)
            return res['group_count'], [f.id for f in res['facets']]

        self.parameterised_test([
            (186, 30, (0, [1, 2])),
            (180, 43, (0, [1, 2])),
            (185, 42, (1, ["group_0"])),
        ], _do_test)

    def test_groups_are_transitive(self):
        # 1 and 3 don't touch, but both touch 2:
        facets = [_facet(1, 30, 180, 0), _facet(2, 30, 180, 2), _facet(3, 30, 180, 1), _facet(4, 30, 0, 3)]
        assert find_groups(facets) == [[0, 1, 2]]

    def test_output_order(self):
        facets = [
            _facet("a", 30, 180, 0),
            _facet("b", 30, 90, 0, 3),
            _facet("c", 30, 180, 1),
            _facet("d", 30, 270, 5, 5),
            _facet("e", 30, 90, 1, 3),
        ]
        res = group_facets(facets, min_area_m2=0, min_dimension_m=0)
        assert [f.id for f in res['facets']] == ["d", "group_0", "group_1"]
        assert res['facets'][1].member_ids == ["a", "c"]
        assert res['facets'][2].member_ids == ["b", "e"]

    def test_circular_mean_azimuth(self):
        group = create_group([_facet(1, 30, 358, 0), _facet(2, 30, 0, 1)], 0)
        assert abs(group.azimuth - 359) < 1e-6

    def test_area_weighted(self):
        group = create_group([_facet(1, 20, 170, 0, area=30, suitability=0.9),
                              _facet(2, 40, 170, 1, area=10, suitability=0.1)], 3)
        assert group.id == "group_3"
        assert abs(group.pitch - 25) < 1e-9
        assert abs(group.suitability - 0.7) < 1e-9
        assert abs(group.azimuth - 170) < 1e-9

    def test_zero_area_uses_unweighted_means(self):
        group = create_group([_facet(1, 20, 170, 0, area=0), _facet(2, 40, 170, 1, area=0)], 0)
        assert abs(group.pitch - 30) < 1e-9

    def test_group_outline(self):
        group = create_group([_facet(1, 30, 180, 0), _facet(2, 30, 180, 1)], 0)
        # 2 shared corners are removed:
        assert len(group.corners) == 6
        sw, _ = _box(0)
        _, ne = _box(1)
        assert group.bounding_box.sw == GeoPoint(*sw)
        assert group.bounding_box.ne == GeoPoint(*ne)
        assert abs(group.center.latitude - 51.45002) < 1e-9
        assert abs(group.center.longitude - -2.59993) < 1e-9

    def test_remove_duplicate_points(self):
        points = [GeoPoint(1, 1), GeoPoint(1.00000001, 1), GeoPoint(1, 1.000001), GeoPoint(1, 1)]
        assert remove_duplicate_points(points) == [GeoPoint(1, 1), GeoPoint(1, 1.000001)]

    def test_size_filter_after_grouping(self):
        # Each facet too small alone, but big enough once grouped:
        facets = [_facet(1, 30, 180, 0, area=8), _facet(2, 30, 180, 1, area=8), _facet(3, 30, 0, 0, 1, area=8)]
        res = group_facets(facets)
        assert [f.id for f in res['facets']] == ["group_0"]
        assert res['filtered_facet_count'] == 1
        assert res['filtered_group_count'] == 0

    def test_size_filter_counts_group_members(self):
        facets = [_facet(1, 30, 180, 0, area=3), _facet(2, 30, 180, 1, area=3), _facet(3, 30, 180, 2, area=3)]
        res = group_facets(facets)
        assert res['facets'] == []
        assert res['filtered_group_count'] == 1
        assert res['filtered_facet_count'] == 3

    def test_size_filter_min_dimension(self):
        # 0.00001 degrees of latitude is ~1.1m:
        f = facet(1, 30, 180, sw=(51.45, -2.6), ne=(51.45001, -2.5995), area_m2=40)
        res = group_facets([f])
        assert res['facets'] == []
        assert res['filtered_facet_count'] == 1

    def test_grouping_disabled(self):
        facets = [_facet(1, 30, 180, 0), _facet(2, 30, 180, 1)]
        res = group_facets(facets, group_similar=False)
        assert [f.id for f in res['facets']] == [1, 2]
        assert res['group_count'] == 0

    def test_test_building(self):
        with open(join(paths.TEST_DATA, "roof_layout", "two_south_facets.json")) as f:
            building = json.load(f)
        facets = create_facets(building['facets'], building['max_sunshine_hours'])
        res = group_facets(facets)
        assert res['original_count'] == 4
        assert res['group_count'] == 1
        assert res['facets_in_groups'] == 2
        assert res['filtered_facet_count'] == 1
        assert [f.id for f in res['facets']] == [2, "group_0"]
        assert abs(res['facets'][1].azimuth - 179.5) < 1e-6
