# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
from typing import Sequence, Tuple, Optional

import math
import numpy as np
from shapely.geometry import Polygon

from roof_layout.datatypes import PixelPoint, PixelBoundingBox, PixelPolygon


def rectangle_to_polygon(x: int, y: int, w: int, h: int) -> Tuple[PixelPoint, ...]:
    """Corners of a pixel rectangle: top-left, top-right, bottom-right, bottom-left"""
    return (PixelPoint(x, y),
            PixelPoint(x + w, y),
            PixelPoint(x + w, y + h),
            PixelPoint(x, y + h))


def is_valid_polygon(polygon: Optional[PixelPolygon]) -> bool:
    """At least 3 vertices, all with finite coordinates"""
    if polygon is None or len(polygon) < 3:
        return False
    return all(math.isfinite(p.x) and math.isfinite(p.y) for p in polygon)


def polygon_bounds(polygon: PixelPolygon) -> PixelBoundingBox:
    if len(polygon) == 0:
        raise ValueError("Cannot get the bounds of an empty polygon")
    xs = [p.x for p in polygon]
    ys = [p.y for p in polygon]
    return PixelBoundingBox(min_x=int(math.floor(min(xs))),
                            min_y=int(math.floor(min(ys))),
                            max_x=int(math.ceil(max(xs))),
                            max_y=int(math.ceil(max(ys))))


def _on_segment(px: float, py: float, ax: float, ay: float, bx: float, by: float) -> bool:
    cross = (bx - ax) * (py - ay) - (by - ay) * (px - ax)
    if abs(cross) > 1e-9:
        return False
    return min(ax, bx) <= px <= max(ax, bx) and min(ay, by) <= py <= max(ay, by)


def point_in_polygon(point: PixelPoint, polygon: PixelPolygon) -> bool:
    """
    Ray-casting parity test.

    Points lying exactly on an edge or vertex count as inside, so a rectangle
    sharing an edge with the polygon is still fully inside it.
    """
    n = len(polygon)
    if n < 3:
        return False
    px, py = point.x, point.y

    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i].x, polygon[i].y
        xj, yj = polygon[j].x, polygon[j].y
        if _on_segment(px, py, xi, yi, xj, yj):
            return True
        if (yi > py) != (yj > py):
            x_cross = (xj - xi) * (py - yi) / (yj - yi) + xi
            if px < x_cross:
                inside = not inside
        j = i
    return inside


def to_shapely(polygon: PixelPolygon) -> Polygon:
    return Polygon([(p.x, p.y) for p in polygon])


def deg_diff(a1: float, a2: float) -> float:
    """smallest difference between 2 angles, in degrees"""
    diff = abs(a1 - a2) % 360
    return diff if diff <= 180 else 360 - diff


def to_positive_angle(angle: float) -> float:
    angle = angle % 360
    return angle + 360 if angle < 0 else angle


def weighted_circular_mean_deg(angles: Sequence[float], weights: Sequence[float] = None) -> float:
    """
    Mean of angles in degrees, taking wraparound into account (so the mean of
    358 and 0 is 359 rather than 179). Result is in [0, 360).
    """
    if len(angles) == 0:
        raise ValueError("Cannot take the mean of no angles")
    rads = np.radians(np.asarray(angles, dtype=np.float64))
    if weights is None:
        weights = np.ones(len(rads))
    else:
        weights = np.asarray(weights, dtype=np.float64)
    sin_sum = np.sum(weights * np.sin(rads))
    cos_sum = np.sum(weights * np.cos(rads))
    mean = math.degrees(math.atan2(sin_sum, cos_sum))
    mean = to_positive_angle(mean)
    # 359.99999... can round to 360 in float:
    return 0.0 if mean >= 360 else mean
