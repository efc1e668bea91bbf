# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
import logging
from typing import List, Optional

import math
from shapely.geometry import Point, box
from shapely.strtree import STRtree

from roof_layout.constants import OBSTRUCTION_CELL_SIZE_M, OBSTRUCTION_CELL_OVERLAP, \
    OBSTRUCTION_MAX_LOCAL_SLOPE_DEVIATION, MAX_GLOBAL_SLOPE_DEVIATION, DEFAULT_PITCH_DEGREES
from roof_layout.datatypes import Obstruction, ObstructionType, RoofFacet, ElevationRaster, RealWorldScale, \
    PixelBoundingBox, PixelPoint, PixelPolygon, SlopeCheck
from roof_layout.geos import point_in_polygon, polygon_bounds, rectangle_to_polygon, to_shapely, \
    is_valid_polygon
from roof_layout.slope.slope import check_block_slope, LOCAL_VARIANCE
from roof_layout.util import round_half_up


class ObstructionIndex:
    """
    Spatial index of obstructions, for checking whether a panel would overlap any.

    Only overlapping interiors count, so a panel sharing an edge with an
    obstruction does not overlap it.
    """

    def __init__(self, obstructions: List[Obstruction]) -> None:
        self.obstructions = [o for o in obstructions if len(o.polygon) >= 3]
        self._polygons = [to_shapely(o.polygon) for o in self.obstructions]
        self._rtree = STRtree(self._polygons) if self._polygons else None

    def __len__(self):
        return len(self.obstructions)

    def add(self, obstruction: Obstruction) -> None:
        if len(obstruction.polygon) < 3:
            return
        self.obstructions.append(obstruction)
        self._polygons.append(to_shapely(obstruction.polygon))
        self._rtree = STRtree(self._polygons)

    def overlapping(self, polygon: PixelPolygon) -> List[Obstruction]:
        if len(self.obstructions) == 0:
            return []
        geom = to_shapely(polygon)
        idxs = self._rtree.query(geom, predicate='intersects')
        return [self.obstructions[idx] for idx in sorted(idxs) if not geom.touches(self._polygons[idx])]

    def overlaps(self, polygon: PixelPolygon) -> bool:
        return len(self.overlapping(polygon)) > 0

    def near(self, x: float, y: float, distance: float) -> bool:
        """Whether any obstruction lies within `distance` of the point (x, y), measured to its outline"""
        if len(self.obstructions) == 0:
            return False
        point = Point(x, y)
        idxs = self._rtree.query(box(x - distance, y - distance, x + distance, y + distance),
                                 predicate='intersects')
        return any(self._polygons[idx].distance(point) <= distance for idx in idxs)


def obstruction_type(check: SlopeCheck) -> ObstructionType:
    if check['type'] == LOCAL_VARIANCE:
        return ObstructionType.SLOPE_VARIANCE
    return ObstructionType.GLOBAL_MISMATCH


def slope_obstruction(obstruction_id: str, facet: RoofFacet, x: int, y: int, w: int, h: int,
                      check: SlopeCheck) -> Obstruction:
    return Obstruction(
        id=obstruction_id,
        facet_id=facet.id,
        x=x,
        y=y,
        width=w,
        height=h,
        polygon=rectangle_to_polygon(x, y, w, h),
        type=obstruction_type(check),
        reason=f"Slope deviation: local {check['local_deviation']:.1f}°, "
               f"global {check['global_deviation']:.1f}°",
        avg_slope=check['avg_slope'],
        local_deviation=check['local_deviation'],
        global_deviation=check['global_deviation'])


def baseline_slope(facet: RoofFacet) -> float:
    """Expected rise over run of a facet, from its declared pitch"""
    pitch = facet.pitch if facet.pitch is not None else DEFAULT_PITCH_DEGREES
    return math.tan(math.radians(pitch))


def cell_size_px(scale: RealWorldScale, cell_size_m: float):
    return (max(1, round_half_up(cell_size_m / scale.meters_per_pixel_x)),
            max(1, round_half_up(cell_size_m / scale.meters_per_pixel_y)))


def _scan_facet(facet: RoofFacet,
                raster: ElevationRaster,
                scale: RealWorldScale,
                existing: List[Obstruction],
                cell_w: int,
                cell_h: int,
                stride_x: int,
                stride_y: int,
                max_local_deviation_deg: float,
                max_global_deviation_deg: float) -> List[Obstruction]:
    index = ObstructionIndex([o for o in existing if o.facet_id == facet.id])
    slope = baseline_slope(facet)
    bounds = polygon_bounds(facet.polygon)
    bounds = PixelBoundingBox(max(0, bounds.min_x), max(0, bounds.min_y),
                              min(raster.width, bounds.max_x), min(raster.height, bounds.max_y))

    detected = []
    for y in range(bounds.min_y, bounds.max_y, stride_y):
        for x in range(bounds.min_x, bounds.max_x, stride_x):
            if not point_in_polygon(PixelPoint(x + cell_w / 2, y + cell_h / 2), facet.polygon):
                continue
            if index.near(x, y, cell_w):
                continue
            region = PixelBoundingBox(x, y, x + cell_w, y + cell_h)
            check = check_block_slope(raster, region, scale, slope,
                                      max_local_deviation_deg, max_global_deviation_deg)
            if check['is_valid']:
                continue
            obstruction = slope_obstruction(f"detected_obstruction_{facet.id}_{len(detected)}", facet,
                                            x, y, cell_w, cell_h, check)
            index.add(obstruction)
            detected.append(obstruction)
    return detected


def detect_obstructions(facets: List[RoofFacet],
                        raster: Optional[ElevationRaster],
                        scale: RealWorldScale,
                        existing: Optional[List[Obstruction]] = None,
                        cell_size_m: float = OBSTRUCTION_CELL_SIZE_M,
                        cell_overlap: float = OBSTRUCTION_CELL_OVERLAP,
                        max_local_deviation_deg: float = OBSTRUCTION_MAX_LOCAL_SLOPE_DEVIATION,
                        max_global_deviation_deg: float = MAX_GLOBAL_SLOPE_DEVIATION) -> List[Obstruction]:
    """
    Scan each facet on a fine, overlapping grid and flag cells where the DSM
    is not consistent with the facet's pitch.

    Returns only the newly detected obstructions. A cell is not flagged if an
    obstruction (existing or newly detected) on the same facet lies within
    one cell width of its top-left corner, measured to the obstruction's
    outline, so cells inside a large obstruction are never flagged.

    Facets without a usable polygon are skipped. A facet whose scan fails is
    logged and contributes no detections; the other facets are still scanned.
    """
    if raster is None:
        logging.info("No elevation data, not detecting obstructions")
        return []

    cell_w, cell_h = cell_size_px(scale, cell_size_m)
    stride_x = max(1, round_half_up(cell_w * (1 - cell_overlap)))
    stride_y = max(1, round_half_up(cell_h * (1 - cell_overlap)))
    existing = existing or []

    detected = []
    for facet in facets:
        if not is_valid_polygon(facet.polygon):
            logging.debug(f"Facet {facet.id} has no valid polygon, not scanning for obstructions")
            continue
        try:
            found = _scan_facet(facet, raster, scale, existing, cell_w, cell_h, stride_x, stride_y,
                                max_local_deviation_deg, max_global_deviation_deg)
        except Exception as e:
            logging.error(f"Obstruction detection failed for facet {facet.id}: {e}")
            continue
        if len(found) > 0:
            logging.info(f"Detected {len(found)} obstructions on facet {facet.id}")
        detected.extend(found)

    return detected
