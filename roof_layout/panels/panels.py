# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import multiprocessing as mp

import math

from roof_layout.constants import PANEL_WIDTH_M, PANEL_HEIGHT_M, PANEL_SPACING_M, PANEL_EFFICIENCY, \
    REFERENCE_IRRADIANCE_W_M2, PANEL_MAX_LOCAL_SLOPE_DEVIATION, MAX_GLOBAL_SLOPE_DEVIATION, \
    DEFAULT_PITCH_DEGREES, DEFAULT_AZIMUTH_DEGREES
from roof_layout.datatypes import RoofFacet, Obstruction, ObstructionType, Panel, LayoutAxis, Orientation, \
    RealWorldScale, ElevationRaster, PixelBoundingBox, PixelPolygon, LayoutResult, LayoutMetadata, \
    FacetLayoutSummary
from roof_layout.errors import FacetValidationError, FacetLayoutError
from roof_layout.facets.facets import facet_orientation, orientation_label
from roof_layout.geos import point_in_polygon, polygon_bounds, rectangle_to_polygon, to_positive_angle, \
    is_valid_polygon
from roof_layout.obstructions.obstructions import ObstructionIndex, slope_obstruction, baseline_slope
from roof_layout.slope.slope import check_block_slope
from roof_layout.util import round_half_up, pixels_covering

PORTRAIT = "portrait"
LANDSCAPE = "landscape"
MOUNTINGS = (PORTRAIT, LANDSCAPE)

STANDARD = "standard"
STAGGERED = "staggered"
STRATEGIES = (STANDARD, STAGGERED)

TOP_LEFT = "top_left"
TOP_RIGHT = "top_right"
BOTTOM_LEFT = "bottom_left"
BOTTOM_RIGHT = "bottom_right"
CENTER = "center"
START_POINTS = (TOP_LEFT, TOP_RIGHT, BOTTOM_LEFT, BOTTOM_RIGHT, CENTER)


@dataclass
class CandidateLayout:
    mounting: str
    strategy: str
    start_point: str
    panels: List[Panel] = field(default_factory=list)
    obstructions: List[Obstruction] = field(default_factory=list)


def layout_axis(orientation: Optional[Orientation], azimuth: float) -> LayoutAxis:
    """
    Panel rows run east-west on north/south-facing roofs and north-south on
    roofs facing anywhere else. Flat roofs, or those with no orientation,
    fall back to the azimuth.
    """
    if orientation in (Orientation.NORTH, Orientation.SOUTH):
        return LayoutAxis.HORIZONTAL
    if orientation is not None and orientation != Orientation.FLAT:
        return LayoutAxis.VERTICAL

    azimuth = to_positive_angle(azimuth)
    if 45 <= azimuth <= 135 or 225 <= azimuth <= 315:
        return LayoutAxis.VERTICAL
    return LayoutAxis.HORIZONTAL


def panel_footprint(mounting: str, axis: LayoutAxis, pitch: float, scale: RealWorldScale,
                    panel_width_m: float = PANEL_WIDTH_M,
                    panel_height_m: float = PANEL_HEIGHT_M) -> Tuple[int, int]:
    """
    Width and height in pixels of a panel seen from above.

    The dimension running up the slope is shortened by cos(pitch). Sizes are
    rounded up to whole pixels, so a footprint is never smaller than the panel.
    """
    if mounting == PORTRAIT:
        width_m, height_m = panel_width_m, panel_height_m
    elif mounting == LANDSCAPE:
        width_m, height_m = panel_height_m, panel_width_m
    else:
        raise ValueError(f"Unknown panel mounting {mounting}")

    cos_slope = math.cos(math.radians(pitch))
    if axis == LayoutAxis.HORIZONTAL:
        height_m *= cos_slope
    else:
        width_m *= cos_slope

    return (pixels_covering(width_m, scale.meters_per_pixel_x),
            pixels_covering(height_m, scale.meters_per_pixel_y))


def _axis_positions(lo: int, hi: int, size: int, stride: int, anchor: int, direction: int) -> List[int]:
    """
    Start positions of cells of `size`, on a lattice of `stride` through
    `anchor`, that fit between lo and hi. Ordered moving away from the anchor
    in `direction`.
    """
    if hi - lo < size:
        return []
    back = (anchor - lo) // stride
    first = anchor - back * stride
    positions = list(range(first, hi - size + 1, stride))
    return positions if direction > 0 else positions[::-1]


def _anchors(start_point: str, bounds: PixelBoundingBox, w: int, h: int) -> Tuple[int, int, int, int]:
    """x anchor, y anchor, x direction, y direction of a start point"""
    if start_point == TOP_LEFT:
        return bounds.min_x, bounds.min_y, 1, 1
    if start_point == TOP_RIGHT:
        return bounds.max_x - w, bounds.min_y, -1, 1
    if start_point == BOTTOM_LEFT:
        return bounds.min_x, bounds.max_y - h, 1, -1
    if start_point == BOTTOM_RIGHT:
        return bounds.max_x - w, bounds.max_y - h, -1, -1
    if start_point == CENTER:
        return ((bounds.min_x + bounds.max_x) // 2 - w // 2,
                (bounds.min_y + bounds.max_y) // 2 - h // 2,
                1, 1)
    raise ValueError(f"Unknown start point {start_point}")


def grid_cells(bounds: PixelBoundingBox, w: int, h: int, start_point: str, staggered: bool,
               axis: LayoutAxis, spacing_x: int = 0, spacing_y: int = 0) -> List[Tuple[int, int, int, int]]:
    """
    Top-left corners of the cells of a panel grid lying inside `bounds`,
    as (x, y, row, col).

    Staggered grids shift every other row (or column, for vertical layouts)
    by half a panel in the direction of travel.
    """
    ax, ay, dx, dy = _anchors(start_point, bounds, w, h)
    stride_x = w + spacing_x
    stride_y = h + spacing_y
    cells = []

    if axis == LayoutAxis.HORIZONTAL:
        for row, y in enumerate(_axis_positions(bounds.min_y, bounds.max_y, h, stride_y, ay, dy)):
            shift = (w // 2) * dx if staggered and row % 2 == 1 else 0
            for col, x in enumerate(_axis_positions(bounds.min_x, bounds.max_x, w, stride_x, ax + shift, dx)):
                cells.append((x, y, row, col))
    else:
        for col, x in enumerate(_axis_positions(bounds.min_x, bounds.max_x, w, stride_x, ax, dx)):
            shift = (h // 2) * dy if staggered and col % 2 == 1 else 0
            for row, y in enumerate(_axis_positions(bounds.min_y, bounds.max_y, h, stride_y, ay + shift, dy)):
                cells.append((x, y, row, col))
    return cells


def panel_invalid_reason(panel_polygon: PixelPolygon,
                         facet_polygon: PixelPolygon,
                         obstructions: ObstructionIndex) -> Optional[ObstructionType]:
    """
    Why a panel cannot go here: SEGMENT_BOUNDARY if any corner is outside the
    facet, OBSTRUCTION_OVERLAP if it overlaps an existing obstruction, or
    None if it can.
    """
    if not all(point_in_polygon(corner, facet_polygon) for corner in panel_polygon):
        return ObstructionType.SEGMENT_BOUNDARY
    if obstructions.overlaps(panel_polygon):
        return ObstructionType.OBSTRUCTION_OVERLAP
    return None


def is_panel_valid(panel_polygon: PixelPolygon,
                   facet_polygon: PixelPolygon,
                   obstructions: ObstructionIndex) -> bool:
    return panel_invalid_reason(panel_polygon, facet_polygon, obstructions) is None


def _facet_pitch(facet: RoofFacet) -> float:
    return facet.pitch if facet.pitch is not None else DEFAULT_PITCH_DEGREES


def _facet_azimuth(facet: RoofFacet) -> float:
    return facet.azimuth if facet.azimuth is not None else DEFAULT_AZIMUTH_DEGREES


def clamped_bounds(polygon: PixelPolygon, image_width: int, image_height: int) -> PixelBoundingBox:
    bounds = polygon_bounds(polygon)
    return PixelBoundingBox(max(0, bounds.min_x),
                            max(0, bounds.min_y),
                            min(image_width - 1, bounds.max_x),
                            min(image_height - 1, bounds.max_y))


def layout_candidate(facet: RoofFacet,
                     obstructions: ObstructionIndex,
                     bounds: PixelBoundingBox,
                     scale: RealWorldScale,
                     raster: Optional[ElevationRaster],
                     mounting: str,
                     strategy: str,
                     start_point: str,
                     max_local_deviation_deg: float = PANEL_MAX_LOCAL_SLOPE_DEVIATION,
                     max_global_deviation_deg: float = MAX_GLOBAL_SLOPE_DEVIATION,
                     panel_spacing_m: float = PANEL_SPACING_M) -> CandidateLayout:
    """Fill the facet with one grid of panels"""
    pitch = _facet_pitch(facet)
    azimuth = _facet_azimuth(facet)
    axis = layout_axis(facet_orientation(facet), azimuth)
    w, h = panel_footprint(mounting, axis, pitch, scale)
    spacing_x = round_half_up(panel_spacing_m / scale.meters_per_pixel_x)
    spacing_y = round_half_up(panel_spacing_m / scale.meters_per_pixel_y)
    slope = baseline_slope(facet)

    layout = CandidateLayout(mounting=mounting, strategy=strategy, start_point=start_point)
    slope_count = 0
    boundary_count = 0

    for x, y, row, col in grid_cells(bounds, w, h, start_point, strategy == STAGGERED, axis, spacing_x, spacing_y):
        polygon = rectangle_to_polygon(x, y, w, h)
        reason = panel_invalid_reason(polygon, facet.polygon, obstructions)
        if reason == ObstructionType.OBSTRUCTION_OVERLAP:
            continue
        if reason == ObstructionType.SEGMENT_BOUNDARY:
            layout.obstructions.append(Obstruction(
                id=f"boundary_obstruction_{facet.id}_{boundary_count}",
                facet_id=facet.id,
                x=x,
                y=y,
                width=w,
                height=h,
                polygon=polygon,
                type=ObstructionType.SEGMENT_BOUNDARY,
                reason="Outside facet boundary"))
            boundary_count += 1
            continue

        check = None
        if raster is not None:
            check = check_block_slope(raster, PixelBoundingBox(x, y, x + w, y + h), scale, slope,
                                      max_local_deviation_deg, max_global_deviation_deg)
            if not check['is_valid']:
                layout.obstructions.append(slope_obstruction(
                    f"slope_obstruction_{facet.id}_{slope_count}", facet, x, y, w, h, check))
                slope_count += 1
                continue

        layout.panels.append(Panel(
            id=f"panel_{facet.id}_{len(layout.panels)}",
            facet_id=facet.id,
            x=x,
            y=y,
            width=w,
            height=h,
            real_width=w * scale.meters_per_pixel_x,
            real_height=h * scale.meters_per_pixel_y,
            pitch=pitch,
            azimuth=azimuth,
            row=row,
            col=col,
            polygon=polygon,
            mounting=mounting,
            avg_slope=check['avg_slope'] if check else None,
            local_deviation=check['local_deviation'] if check else None,
            global_deviation=check['global_deviation'] if check else None))

    return layout


def layout_facet(facet: RoofFacet,
                 obstructions: List[Obstruction],
                 scale: RealWorldScale,
                 raster: Optional[ElevationRaster],
                 image_width: Optional[int] = None,
                 image_height: Optional[int] = None,
                 max_local_deviation_deg: float = PANEL_MAX_LOCAL_SLOPE_DEVIATION,
                 max_global_deviation_deg: float = MAX_GLOBAL_SLOPE_DEVIATION,
                 panel_spacing_m: float = PANEL_SPACING_M) -> Optional[CandidateLayout]:
    """
    Try all 20 candidate grids on a facet and return the one with the most
    panels (the first found, on a tie), or None if no candidate fits any.

    Raises FacetValidationError if the facet has no usable polygon, and
    wraps anything unexpected in a FacetLayoutError.
    """
    if not is_valid_polygon(facet.polygon):
        raise FacetValidationError(f"Facet {facet.id} has no valid polygon")

    try:
        image_width = image_width or scale.pixel_width
        image_height = image_height or scale.pixel_height
        bounds = clamped_bounds(facet.polygon, image_width, image_height)
        index = ObstructionIndex([o for o in obstructions if o.facet_id == facet.id])

        best = None
        for mounting in MOUNTINGS:
            for start_point in START_POINTS:
                for strategy in STRATEGIES:
                    candidate = layout_candidate(facet, index, bounds, scale, raster,
                                                 mounting, strategy, start_point,
                                                 max_local_deviation_deg, max_global_deviation_deg,
                                                 panel_spacing_m)
                    logging.debug(f"Facet {facet.id} {mounting} {strategy} from {start_point}: "
                                  f"{len(candidate.panels)} panels")
                    if len(candidate.panels) > (len(best.panels) if best else 0):
                        best = candidate
        return best
    except FacetValidationError:
        raise
    except Exception as e:
        raise FacetLayoutError(facet.id, e) from e


def _layout_facet_task(facet: RoofFacet,
                       obstructions: List[Obstruction],
                       scale: RealWorldScale,
                       raster: Optional[ElevationRaster],
                       image_width: Optional[int],
                       image_height: Optional[int],
                       max_local_deviation_deg: float,
                       max_global_deviation_deg: float,
                       panel_spacing_m: float):
    """
    Lay out one facet, returning (layout, skipped, error) rather than raising,
    so one failing facet does not lose the results of the others.
    """
    try:
        layout = layout_facet(facet, obstructions, scale, raster, image_width, image_height,
                              max_local_deviation_deg, max_global_deviation_deg, panel_spacing_m)
        return layout, False, None
    except FacetValidationError as e:
        logging.info(f"Skipping facet {facet.id}: {e}")
        return None, True, None
    except FacetLayoutError as e:
        logging.error(str(e))
        return None, False, {"facet_id": e.facet_id, "error": str(e.cause)}


def generate_panel_layout(facets: List[RoofFacet],
                          obstructions: Optional[List[Obstruction]],
                          scale: RealWorldScale,
                          raster: Optional[ElevationRaster] = None,
                          image_width: Optional[int] = None,
                          image_height: Optional[int] = None,
                          max_local_deviation_deg: float = PANEL_MAX_LOCAL_SLOPE_DEVIATION,
                          max_global_deviation_deg: float = MAX_GLOBAL_SLOPE_DEVIATION,
                          panel_spacing_m: float = PANEL_SPACING_M,
                          workers: int = 1) -> LayoutResult:
    """
    Core panel placement algorithm: find the best grid of panels for each facet.

    Only existing obstructions (those passed in) block panels. Cells that do
    not fit get recorded as new obstructions, but only those of the winning
    grid on each facet are returned, after the existing ones.

    If `workers` > 1 facets are laid out in parallel processes.
    """
    obstructions = list(obstructions or [])
    logging.info(f"Laying out panels on {len(facets)} facets, with {len(obstructions)} existing obstructions")

    tasks = [(facet, obstructions, scale, raster, image_width, image_height,
              max_local_deviation_deg, max_global_deviation_deg, panel_spacing_m)
             for facet in facets]
    if workers > 1 and len(facets) > 1:
        logging.info(f"Using {workers} parallel processes...")
        with mp.get_context("spawn").Pool(workers) as pool:
            results = pool.starmap(_layout_facet_task, tasks)
    else:
        results = [_layout_facet_task(*task) for task in tasks]

    panels = []
    new_obstructions = []
    facet_results = []
    skipped = []
    failed = []
    for facet, (layout, was_skipped, error) in zip(facets, results):
        if was_skipped:
            skipped.append(facet.id)
            continue
        if error is not None:
            failed.append(error)
            continue
        if layout is None:
            facet_results.append(FacetLayoutSummary(
                facet_id=facet.id, panel_count=0, mounting=None, strategy=None, start_point=None,
                orientation=orientation_label(_facet_azimuth(facet), facet.pitch)))
            logging.info(f"No panels fit on facet {facet.id}")
            continue

        logging.info(f"Facet {facet.id}: {len(layout.panels)} panels, {layout.mounting} "
                     f"{layout.strategy} grid from {layout.start_point}")
        panels.extend(layout.panels)
        new_obstructions.extend(layout.obstructions)
        facet_results.append(FacetLayoutSummary(
            facet_id=facet.id,
            panel_count=len(layout.panels),
            mounting=layout.mounting,
            strategy=layout.strategy,
            start_point=layout.start_point,
            orientation=orientation_label(_facet_azimuth(facet), facet.pitch)))

    total_area = sum(p.real_width * p.real_height for p in panels)
    potential_kw = total_area * PANEL_EFFICIENCY * REFERENCE_IRRADIANCE_W_M2 / 1000
    logging.info(f"Placed {len(panels)} panels, {round(total_area, 2)}m2, {round(potential_kw, 2)}kW")

    metadata = LayoutMetadata(
        panel_count=len(panels),
        total_area_m2=round(total_area, 2),
        potential_kw=round(potential_kw, 2),
        standard_dimensions={"width": PANEL_WIDTH_M, "height": PANEL_HEIGHT_M, "spacing": panel_spacing_m},
        facet_results=facet_results,
        skipped_facets=skipped,
        failed_facets=failed)
    return LayoutResult(panels=panels, obstructions=obstructions + new_obstructions, metadata=metadata)
