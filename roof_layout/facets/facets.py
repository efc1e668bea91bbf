# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
from typing import List, Optional

import math

from roof_layout.constants import FLAT_ROOF_DEGREES_THRESHOLD, SUITABILITY_SUNSHINE_WEIGHT, \
    SUITABILITY_AZIMUTH_WEIGHT, SUITABILITY_PITCH_WEIGHT, SUITABILITY_OPTIMAL_PITCH
from roof_layout.datatypes import Orientation, RoofFacet, GeoPoint, GeoBoundingBox, SunshineSummary
from roof_layout.errors import FacetValidationError
from roof_layout.geos import to_positive_angle

# Compass orientations in order, each covering 45 degrees centred on its azimuth:
_COMPASS = [
    Orientation.NORTH,
    Orientation.NORTH_EAST,
    Orientation.EAST,
    Orientation.SOUTH_EAST,
    Orientation.SOUTH,
    Orientation.SOUTH_WEST,
    Orientation.WEST,
    Orientation.NORTH_WEST,
]


def is_flat(pitch: Optional[float]) -> bool:
    return pitch is not None and pitch <= FLAT_ROOF_DEGREES_THRESHOLD


def orientation_for(azimuth: float, pitch: Optional[float] = None) -> Orientation:
    """
    The compass orientation of a facet facing `azimuth`, or FLAT if its pitch
    is at or below the flat roof threshold.
    """
    if is_flat(pitch):
        return Orientation.FLAT
    azimuth = to_positive_angle(azimuth)
    return _COMPASS[int((azimuth + 22.5) // 45) % 8]


def orientation_label(azimuth: float, pitch: Optional[float] = None) -> str:
    """
    Display label, e.g. 'South (180° E of N)' or 'Northwest (45° W of N)'
    """
    orientation = orientation_for(azimuth, pitch)
    if orientation == Orientation.FLAT:
        return orientation.value
    azimuth = to_positive_angle(azimuth)
    if azimuth <= 180:
        return f"{orientation.value} ({round(azimuth)}° E of N)"
    return f"{orientation.value} ({round(360 - azimuth)}° W of N)"


def facet_orientation(facet: RoofFacet) -> Optional[Orientation]:
    """
    Declared orientation if there is one, otherwise derived from azimuth and
    pitch. None if the facet has no azimuth and no declared orientation.
    """
    if facet.orientation is not None:
        return facet.orientation
    if facet.azimuth is None:
        return None
    return orientation_for(facet.azimuth, facet.pitch)


def suitability_score(azimuth: float, pitch: float, sunshine_score: float = 0.5) -> float:
    """
    Weighted mix of sunshine (relative to the sunniest part of the roof),
    orientation (south-facing is best) and pitch (closest to 35 degrees is best).
    """
    azimuth_score = (math.cos(math.radians(azimuth - 180)) + 1) / 2
    pitch_score = 1 - min(1.0, abs(pitch - SUITABILITY_OPTIMAL_PITCH) / 45)
    score = (sunshine_score * SUITABILITY_SUNSHINE_WEIGHT
             + azimuth_score * SUITABILITY_AZIMUTH_WEIGHT
             + pitch_score * SUITABILITY_PITCH_WEIGHT)
    return min(1.0, max(0.0, score))


def _geo_point(d: Optional[dict]) -> Optional[GeoPoint]:
    if not d or d.get('latitude') is None or d.get('longitude') is None:
        return None
    return GeoPoint(float(d['latitude']), float(d['longitude']))


def sunshine_summary(quantiles: List[float]) -> Optional[SunshineSummary]:
    """
    Summarise the 11 sunshine quantiles (0%, 10%, ... 100%) of a roof segment.
    The quartiles are taken as the nearest deciles, 20% and 80%.
    """
    if len(quantiles) < 11:
        return None
    return SunshineSummary(min=quantiles[0],
                           q1=quantiles[2],
                           median=quantiles[5],
                           q3=quantiles[8],
                           max=quantiles[10],
                           quantiles=list(quantiles))


def create_facets(roof_segment_stats: List[dict],
                  max_sunshine_hours: Optional[float] = None,
                  calculate_suitability: bool = True,
                  include_sunshine_data: bool = True) -> List[RoofFacet]:
    """
    Create RoofFacets from upstream roof segment stats, of the form:

    {
        "pitchDegrees": 31.2,
        "azimuthDegrees": 178.4,
        "stats": {"areaMeters2": 40.1, "groundAreaMeters2": 34.3, "sunshineQuantiles": [...]},
        "center": {"latitude": ..., "longitude": ...},
        "boundingBox": {"sw": {...}, "ne": {...}},
        "planeHeightAtCenterMeters": 12.1
    }

    Facet ids are the index of the segment. Corners are inferred from the
    bounding box, anticlockwise from the south-west corner. If
    `include_sunshine_data` is set, facets with a full set of sunshine
    quantiles get a sunshine summary.
    """
    facets = []
    for idx, segment in enumerate(roof_segment_stats):
        if not isinstance(segment, dict):
            raise FacetValidationError(f"Roof segment {idx} is not an object: {segment}")
        stats = segment.get('stats') or {}
        pitch = segment.get('pitchDegrees')
        azimuth = segment.get('azimuthDegrees')

        box = segment.get('boundingBox') or {}
        sw = _geo_point(box.get('sw'))
        ne = _geo_point(box.get('ne'))
        bounding_box = GeoBoundingBox(sw, ne) if sw or ne else None
        corners = []
        if sw and ne:
            corners = [sw,
                       GeoPoint(sw.latitude, ne.longitude),
                       ne,
                       GeoPoint(ne.latitude, sw.longitude)]

        quantiles = stats.get('sunshineQuantiles') or []
        suitability = 0.5
        if calculate_suitability and pitch is not None and azimuth is not None:
            if max_sunshine_hours and max_sunshine_hours > 0 and len(quantiles) > 5:
                sunshine_score = quantiles[5] / max_sunshine_hours
            else:
                sunshine_score = 0.5
            suitability = suitability_score(azimuth, pitch, sunshine_score)

        facets.append(RoofFacet(
            id=idx,
            pitch=pitch,
            azimuth=azimuth,
            area_m2=float(stats.get('areaMeters2') or 0.0),
            ground_area_m2=float(stats.get('groundAreaMeters2') or 0.0),
            center=_geo_point(segment.get('center')),
            bounding_box=bounding_box,
            corners=corners,
            suitability=suitability,
            height_m=segment.get('planeHeightAtCenterMeters'),
            sunshine=sunshine_summary(quantiles) if include_sunshine_data else None))
    return facets
