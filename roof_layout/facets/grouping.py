# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
import logging
from dataclasses import replace
from typing import List, Optional

import math

from roof_layout.constants import GROUP_MAX_AZIMUTH_DIFF, GROUP_MAX_PITCH_DIFF, GEO_ADJACENCY_TOLERANCE, \
    GEO_DUPLICATE_POINT_TOLERANCE, MIN_FACET_DIMENSION_M, MIN_FACET_AREA_M2, DEFAULT_PITCH_DEGREES, \
    DEFAULT_AZIMUTH_DEGREES
from roof_layout.coordinates import bounding_box_dimensions
from roof_layout.datatypes import RoofFacet, FacetGroup, GeoPoint, GeoBoundingBox, GroupingResult
from roof_layout.geos import deg_diff, weighted_circular_mean_deg


def _pitch(facet: RoofFacet) -> float:
    return facet.pitch if facet.pitch is not None else DEFAULT_PITCH_DEGREES


def _azimuth(facet: RoofFacet) -> float:
    return facet.azimuth if facet.azimuth is not None else DEFAULT_AZIMUTH_DEGREES


def are_compatible(f1: RoofFacet, f2: RoofFacet,
                   max_azimuth_diff: float = GROUP_MAX_AZIMUTH_DIFF,
                   max_pitch_diff: float = GROUP_MAX_PITCH_DIFF) -> bool:
    """Whether 2 facets face (nearly) the same way at a similar pitch"""
    return deg_diff(_azimuth(f1), _azimuth(f2)) <= max_azimuth_diff \
        and abs(_pitch(f1) - _pitch(f2)) <= max_pitch_diff


def _box_extent(box: Optional[GeoBoundingBox]):
    if box is None or box.sw is None or box.ne is None:
        return None
    return (min(box.sw.latitude, box.ne.latitude),
            max(box.sw.latitude, box.ne.latitude),
            min(box.sw.longitude, box.ne.longitude),
            max(box.sw.longitude, box.ne.longitude))


def are_adjacent(f1: RoofFacet, f2: RoofFacet, tolerance: float = GEO_ADJACENCY_TOLERANCE) -> bool:
    """Whether the lat/long bounding boxes of 2 facets overlap or touch"""
    b1 = _box_extent(f1.bounding_box)
    b2 = _box_extent(f2.bounding_box)
    if b1 is None or b2 is None:
        return False
    min_lat1, max_lat1, min_lng1, max_lng1 = b1
    min_lat2, max_lat2, min_lng2, max_lng2 = b2
    overlap_x = min_lng1 - tolerance <= max_lng2 and min_lng2 - tolerance <= max_lng1
    overlap_y = min_lat1 - tolerance <= max_lat2 and min_lat2 - tolerance <= max_lat1
    return overlap_x and overlap_y


def _adjacency_list(facets: List[RoofFacet], max_azimuth_diff: float, max_pitch_diff: float) -> List[List[int]]:
    neighbours = [[] for _ in facets]
    for i in range(len(facets)):
        for j in range(i + 1, len(facets)):
            if are_compatible(facets[i], facets[j], max_azimuth_diff, max_pitch_diff) \
                    and are_adjacent(facets[i], facets[j]):
                neighbours[i].append(j)
                neighbours[j].append(i)
    return neighbours


def find_groups(facets: List[RoofFacet],
                max_azimuth_diff: float = GROUP_MAX_AZIMUTH_DIFF,
                max_pitch_diff: float = GROUP_MAX_PITCH_DIFF) -> List[List[int]]:
    """
    Find the connected components of the graph of facets where an edge
    means compatible and adjacent. Returns lists of facet indices, only for
    components of 2 or more facets, in order of their lowest index.
    """
    neighbours = _adjacency_list(facets, max_azimuth_diff, max_pitch_diff)
    visited = [False] * len(facets)
    groups = []

    for seed in range(len(facets)):
        if visited[seed]:
            continue
        component = []
        stack = [seed]
        visited[seed] = True
        while stack:
            idx = stack.pop()
            component.append(idx)
            for n in neighbours[idx]:
                if not visited[n]:
                    visited[n] = True
                    stack.append(n)
        if len(component) > 1:
            groups.append(sorted(component))
    return groups


def remove_duplicate_points(points: List[GeoPoint],
                            tolerance: float = GEO_DUPLICATE_POINT_TOLERANCE) -> List[GeoPoint]:
    unique = []
    for p in points:
        if not any(abs(p.latitude - u.latitude) < tolerance and abs(p.longitude - u.longitude) < tolerance
                   for u in unique):
            unique.append(p)
    return unique


def _order_around_centre(points: List[GeoPoint]) -> List[GeoPoint]:
    """Sort points clockwise (seen on a map) by angle around their mean"""
    if len(points) < 3:
        return points
    c_lat = sum(p.latitude for p in points) / len(points)
    c_lng = sum(p.longitude for p in points) / len(points)
    return sorted(points, key=lambda p: -math.atan2(p.latitude - c_lat, p.longitude - c_lng))


def create_group(members: List[RoofFacet], group_num: int) -> FacetGroup:
    """
    Create a composite facet from 2 or more facets.

    pitch and suitability are area-weighted means, azimuth is the
    area-weighted circular mean. The outline is the deduplicated corners of
    all members, ordered around their centre, rather than a true union.
    """
    group_id = f"group_{group_num}"
    total_area = sum(m.area_m2 for m in members)
    if total_area > 0:
        weights = [m.area_m2 for m in members]
    else:
        weights = [1.0] * len(members)
    weight_sum = sum(weights)

    pitch = sum(_pitch(m) * w for m, w in zip(members, weights)) / weight_sum
    azimuth = weighted_circular_mean_deg([_azimuth(m) for m in members], weights)
    suitability = sum(m.suitability * w for m, w in zip(members, weights)) / weight_sum

    centres = [m.center for m in members if m.center is not None]
    center = None
    if centres:
        center = GeoPoint(sum(c.latitude for c in centres) / len(centres),
                          sum(c.longitude for c in centres) / len(centres))

    all_corners = []
    for m in members:
        all_corners.extend(m.corners)
    corners = _order_around_centre(remove_duplicate_points(all_corners))

    bounding_box = None
    if corners:
        bounding_box = GeoBoundingBox(
            sw=GeoPoint(min(c.latitude for c in corners), min(c.longitude for c in corners)),
            ne=GeoPoint(max(c.latitude for c in corners), max(c.longitude for c in corners)))

    return FacetGroup(
        id=group_id,
        pitch=pitch,
        azimuth=azimuth,
        area_m2=total_area,
        ground_area_m2=sum(m.ground_area_m2 for m in members),
        center=center,
        bounding_box=bounding_box,
        corners=corners,
        suitability=suitability,
        group_id=group_id,
        member_ids=[m.id for m in members],
        members=[replace(m, group_id=group_id) for m in members])


def is_large_enough(facet: RoofFacet,
                    min_dimension_m: float = MIN_FACET_DIMENSION_M,
                    min_area_m2: float = MIN_FACET_AREA_M2) -> bool:
    _, _, min_dimension = bounding_box_dimensions(facet.bounding_box)
    return min_dimension >= min_dimension_m and facet.area_m2 >= min_area_m2


def group_facets(facets: List[RoofFacet],
                 group_similar: bool = True,
                 max_azimuth_diff: float = GROUP_MAX_AZIMUTH_DIFF,
                 max_pitch_diff: float = GROUP_MAX_PITCH_DIFF,
                 min_dimension_m: float = MIN_FACET_DIMENSION_M,
                 min_area_m2: float = MIN_FACET_AREA_M2) -> GroupingResult:
    """
    Merge adjacent compatible facets into groups, then drop facets and groups
    that are too small for panels.

    Size filtering happens after grouping as several small facets can make
    a usable group. The returned facets are the ungrouped facets in input
    order followed by the groups.
    """
    grouped = list(facets)
    group_count = 0
    facets_in_groups = 0

    if group_similar and len(facets) > 1:
        groups = find_groups(facets, max_azimuth_diff, max_pitch_diff)
        if groups:
            in_group = set()
            for g in groups:
                in_group.update(g)
            grouped = [f for i, f in enumerate(facets) if i not in in_group]
            grouped.extend(create_group([facets[i] for i in g], num) for num, g in enumerate(groups))
            group_count = len(groups)
            facets_in_groups = len(in_group)
            logging.info(f"Created {group_count} groups from {facets_in_groups} facets")
        else:
            logging.info("No facets could be grouped")

    final = []
    filtered_facet_count = 0
    filtered_group_count = 0
    for facet in grouped:
        if is_large_enough(facet, min_dimension_m, min_area_m2):
            final.append(facet)
            continue
        logging.debug(f"Filtering out facet {facet.id}, area {facet.area_m2:.2f}m2")
        if facet.is_group:
            filtered_group_count += 1
            filtered_facet_count += facet.member_count
        else:
            filtered_facet_count += 1

    logging.info(f"{len(final)} usable facets of {len(facets)} (filtered out {filtered_facet_count} "
                 f"facets, {filtered_group_count} groups)")

    return GroupingResult(
        facets=final,
        original_count=len(facets),
        group_count=group_count,
        facets_in_groups=facets_in_groups,
        filtered_facet_count=filtered_facet_count,
        filtered_group_count=filtered_group_count,
        min_facet_dimension_m=min_dimension_m,
        min_facet_area_m2=min_area_m2,
        max_azimuth_diff=max_azimuth_diff,
        max_pitch_diff=max_pitch_diff)
