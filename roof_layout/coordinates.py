# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
import logging
from dataclasses import replace
from typing import List, Optional, Tuple

import math

from roof_layout.constants import EARTH_RADIUS_M, FALLBACK_SCALE_WIDTH_M, FALLBACK_SCALE_HEIGHT_M, \
    FALLBACK_SCALE_PIXEL_WIDTH, FALLBACK_SCALE_PIXEL_HEIGHT
from roof_layout.datatypes import GeoPoint, GeoBoundingBox, PixelPoint, PixelBoundingBox, RealWorldScale, \
    RoofFacet
from roof_layout.geos import polygon_bounds


def _has_corners(bounds: Optional[GeoBoundingBox]) -> bool:
    return bounds is not None and bounds.sw is not None and bounds.ne is not None


def _clamp(v: int, lo: int, hi: int) -> int:
    return min(max(lo, v), hi)


def geo_to_pixel(point: GeoPoint, bounds: Optional[GeoBoundingBox], width: int, height: int) -> PixelPoint:
    """
    Convert a lat/long to a pixel in an image of `width` x `height` that
    covers `bounds`. y increases downwards, so latitude is inverted.

    The result is clamped to the image. If `bounds` is missing a corner, the
    centre of the image is returned.
    """
    if not _has_corners(bounds):
        return PixelPoint(width // 2, height // 2)

    lng_span = bounds.ne.longitude - bounds.sw.longitude
    lat_span = bounds.ne.latitude - bounds.sw.latitude
    if lng_span == 0:
        x = width // 2
    else:
        x = round((point.longitude - bounds.sw.longitude) / lng_span * width)
    if lat_span == 0:
        y = height // 2
    else:
        y = round((bounds.ne.latitude - point.latitude) / lat_span * height)

    return PixelPoint(_clamp(int(x), 0, width - 1), _clamp(int(y), 0, height - 1))


def geo_box_corners(box: GeoBoundingBox) -> List[GeoPoint]:
    """Corners of a lat/long box, clockwise from the north-west corner"""
    return [GeoPoint(box.ne.latitude, box.sw.longitude),
            GeoPoint(box.ne.latitude, box.ne.longitude),
            GeoPoint(box.sw.latitude, box.ne.longitude),
            GeoPoint(box.sw.latitude, box.sw.longitude)]


def geo_box_to_pixel_box(box: GeoBoundingBox,
                         bounds: Optional[GeoBoundingBox],
                         width: int,
                         height: int) -> PixelBoundingBox:
    return polygon_bounds([geo_to_pixel(c, bounds, width, height) for c in geo_box_corners(box)])


def project_facets(facets: List[RoofFacet],
                   bounds: Optional[GeoBoundingBox],
                   width: int,
                   height: int) -> List[RoofFacet]:
    """
    Fill in the pixel polygon of each facet from its lat/long corners, or from
    its bounding box if it has no corners. Facets with neither, or with
    coordinates that cannot be projected (NaN or infinite), are left with no
    polygon, and will be skipped at panel placement.
    """
    projected = []
    for facet in facets:
        if facet.corners:
            corners = facet.corners
        elif _has_corners(facet.bounding_box):
            corners = geo_box_corners(facet.bounding_box)
        else:
            projected.append(facet)
            continue
        try:
            polygon = [geo_to_pixel(c, bounds, width, height) for c in corners]
        except (ValueError, OverflowError, TypeError) as e:
            logging.warning(f"Cannot project facet {facet.id}, it will be skipped: {e}")
            projected.append(replace(facet, polygon=None))
            continue
        projected.append(replace(facet, polygon=polygon))
    return projected


def _extent_m(sw: GeoPoint, ne: GeoPoint) -> Tuple[float, float]:
    """East-west and north-south extent of a lat/long box, in metres"""
    lat1 = math.radians(sw.latitude)
    lat2 = math.radians(ne.latitude)
    d_lng = math.radians(abs(ne.longitude - sw.longitude))
    width = EARTH_RADIUS_M * math.cos((lat1 + lat2) / 2) * d_lng
    length = EARTH_RADIUS_M * abs(lat2 - lat1)
    return width, length


def bounding_box_dimensions(box: Optional[GeoBoundingBox]) -> Tuple[float, float, float]:
    """(width_m, length_m, min_dimension_m) of a lat/long box. Zeros if it is missing a corner."""
    if not _has_corners(box):
        return 0.0, 0.0, 0.0
    width, length = _extent_m(box.sw, box.ne)
    return width, length, min(width, length)


def fallback_scale() -> RealWorldScale:
    return RealWorldScale(
        meters_per_pixel_x=FALLBACK_SCALE_WIDTH_M / FALLBACK_SCALE_PIXEL_WIDTH,
        meters_per_pixel_y=FALLBACK_SCALE_HEIGHT_M / FALLBACK_SCALE_PIXEL_HEIGHT,
        pixel_width=FALLBACK_SCALE_PIXEL_WIDTH,
        pixel_height=FALLBACK_SCALE_PIXEL_HEIGHT,
        width_m=FALLBACK_SCALE_WIDTH_M,
        height_m=FALLBACK_SCALE_HEIGHT_M,
        is_fallback=True)


def compute_real_world_scale(pixel_width: int,
                             pixel_height: int,
                             bounding_box: Optional[GeoBoundingBox]) -> RealWorldScale:
    """
    Metres-per-pixel of an image covering `bounding_box`, using a spherical
    earth approximation which is fine at the scale of a single building.

    Never fails: if the scale cannot be derived a low-confidence fallback
    (0.1m per pixel) is returned with `is_fallback` set.
    """
    if pixel_width is None or pixel_height is None or pixel_width <= 0 or pixel_height <= 0:
        logging.warning(f"Invalid pixel dimensions {pixel_width}x{pixel_height}, using fallback scale")
        return fallback_scale()
    if not _has_corners(bounding_box):
        logging.warning("Building bounding box not available, using fallback scale")
        return fallback_scale()

    width_m = EARTH_RADIUS_M * math.cos(math.radians((bounding_box.ne.latitude + bounding_box.sw.latitude) / 2)) \
        * math.radians(bounding_box.ne.longitude - bounding_box.sw.longitude)
    height_m = EARTH_RADIUS_M * math.radians(bounding_box.ne.latitude - bounding_box.sw.latitude)
    if not width_m > 0 or not height_m > 0:
        logging.warning(f"Invalid building bounding box {bounding_box}, using fallback scale")
        return fallback_scale()

    scale = RealWorldScale(
        meters_per_pixel_x=width_m / pixel_width,
        meters_per_pixel_y=height_m / pixel_height,
        pixel_width=pixel_width,
        pixel_height=pixel_height,
        width_m=width_m,
        height_m=height_m)
    logging.info(f"Real-world dimensions {width_m:.2f}m x {height_m:.2f}m, "
                 f"{scale.meters_per_pixel_x:.3f}m/px x {scale.meters_per_pixel_y:.3f}m/px")
    return scale
