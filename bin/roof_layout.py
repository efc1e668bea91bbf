# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
"""
Run panel layout on a single building, from a JSON file of the form:

{
    "building_bounds": {"sw": {"latitude": ..., "longitude": ...}, "ne": {...}},
    "pixel_width": 400,
    "pixel_height": 400,
    "max_sunshine_hours": 1100.5,
    "facets": [<roof segment stats>],
    "raster": {"width": 400, "height": 400, "values": [...], "nodata": -9999}
}

Raster values can either be a flat, row-major list or a list of rows. The
raster can be omitted, in which case slope checks always pass.
"""
import argparse
import dataclasses
import json
import logging
from enum import Enum

import numpy as np

from roof_layout.constants import GROUP_MAX_AZIMUTH_DIFF, GROUP_MAX_PITCH_DIFF, MIN_FACET_DIMENSION_M, \
    MIN_FACET_AREA_M2, PANEL_MAX_LOCAL_SLOPE_DEVIATION, OBSTRUCTION_MAX_LOCAL_SLOPE_DEVIATION, \
    MAX_GLOBAL_SLOPE_DEVIATION, NO_DATA_VALUE
from roof_layout.datatypes import GeoBoundingBox, GeoPoint, ElevationRaster
from roof_layout.facets.facets import create_facets
from roof_layout.model_roof_layout import model_roof_layout
from roof_layout.rasters import elevation_raster_from_array
from roof_layout.util import get_cpu_count


def _geo_box(d: dict):
    if not d or not d.get('sw') or not d.get('ne'):
        return None
    return GeoBoundingBox(sw=GeoPoint(d['sw']['latitude'], d['sw']['longitude']),
                          ne=GeoPoint(d['ne']['latitude'], d['ne']['longitude']))


def _raster(d: dict):
    if not d:
        return None
    nodata = d.get('nodata', NO_DATA_VALUE)
    values = np.asarray(d['values'], dtype=np.float64)
    if values.ndim == 2:
        return elevation_raster_from_array(values, nodata)
    return ElevationRaster(width=d['width'], height=d['height'], values=values, nodata=nodata)


def _to_json(o):
    if isinstance(o, Enum):
        return o.value
    if dataclasses.is_dataclass(o):
        return dataclasses.asdict(o)
    raise TypeError(f"Cannot serialise {type(o)}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Estimate solar panel layout on a roof")

    parser.add_argument("input", metavar="FILE", help="JSON file describing the building")
    parser.add_argument("--output", metavar="FILE", help="Write panels, obstructions and metadata to this JSON file")
    parser.add_argument("--no_grouping", action="store_true", help="Don't merge adjacent similar facets")
    parser.add_argument("--no_obstructions", action="store_true", help="Don't scan for obstructions")
    parser.add_argument("--max_azimuth_diff", default=GROUP_MAX_AZIMUTH_DIFF, type=float, metavar="DEG",
                        help="Max azimuth difference of facets to group (default: %(default)s)")
    parser.add_argument("--max_pitch_diff", default=GROUP_MAX_PITCH_DIFF, type=float, metavar="DEG",
                        help="Max pitch difference of facets to group (default: %(default)s)")
    parser.add_argument("--min_facet_dimension_m", default=MIN_FACET_DIMENSION_M, type=float, metavar="M",
                        help="Facets narrower than this are excluded (default: %(default)s)")
    parser.add_argument("--min_facet_area_m2", default=MIN_FACET_AREA_M2, type=float, metavar="M2",
                        help="Facets smaller than this are excluded (default: %(default)s)")
    parser.add_argument("--panel_max_local_slope_deviation", default=PANEL_MAX_LOCAL_SLOPE_DEVIATION,
                        type=float, metavar="DEG", help="(default: %(default)s)")
    parser.add_argument("--obstruction_max_local_slope_deviation", default=OBSTRUCTION_MAX_LOCAL_SLOPE_DEVIATION,
                        type=float, metavar="DEG", help="(default: %(default)s)")
    parser.add_argument("--max_global_slope_deviation", default=MAX_GLOBAL_SLOPE_DEVIATION,
                        type=float, metavar="DEG", help="(default: %(default)s)")
    parser.add_argument("--workers", default=1, type=int, metavar="INT",
                        help=f"Parallel processes for panel layout (default: %(default)s, max: {get_cpu_count()})")
    parser.add_argument("--debug", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO,
                        format='[%(asctime)s] %(levelname)s: %(message)s')

    with open(args.input) as f:
        building = json.load(f)

    result = model_roof_layout(
        facets=create_facets(building['facets'], building.get('max_sunshine_hours')),
        building_bounds=_geo_box(building.get('building_bounds')),
        raster=_raster(building.get('raster')),
        pixel_width=building['pixel_width'],
        pixel_height=building['pixel_height'],
        group_similar=not args.no_grouping,
        max_azimuth_diff=args.max_azimuth_diff,
        max_pitch_diff=args.max_pitch_diff,
        min_facet_dimension_m=args.min_facet_dimension_m,
        min_facet_area_m2=args.min_facet_area_m2,
        panel_max_local_slope_deviation=args.panel_max_local_slope_deviation,
        obstruction_max_local_slope_deviation=args.obstruction_max_local_slope_deviation,
        max_global_slope_deviation=args.max_global_slope_deviation,
        detect=not args.no_obstructions,
        workers=args.workers,
    )

    if args.output:
        with open(args.output, 'w') as f:
            json.dump(result, f, default=_to_json, indent=2)
    print(json.dumps(result['metadata'], default=_to_json, indent=2))
