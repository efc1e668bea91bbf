# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
import logging
from typing import List, Optional

from roof_layout.constants import GROUP_MAX_AZIMUTH_DIFF, GROUP_MAX_PITCH_DIFF, MIN_FACET_DIMENSION_M, \
    MIN_FACET_AREA_M2, PANEL_MAX_LOCAL_SLOPE_DEVIATION, OBSTRUCTION_MAX_LOCAL_SLOPE_DEVIATION, \
    MAX_GLOBAL_SLOPE_DEVIATION, PANEL_SPACING_M
from roof_layout.coordinates import compute_real_world_scale, project_facets
from roof_layout.datatypes import RoofFacet, GeoBoundingBox, ElevationRaster, Obstruction, LayoutResult
from roof_layout.facets.grouping import group_facets
from roof_layout.obstructions.obstructions import detect_obstructions
from roof_layout.panels.panels import generate_panel_layout
from roof_layout.rasters import data_range


def model_roof_layout(facets: List[RoofFacet],
                      building_bounds: Optional[GeoBoundingBox],
                      raster: Optional[ElevationRaster],
                      pixel_width: int,
                      pixel_height: int,
                      obstructions: Optional[List[Obstruction]] = None,
                      group_similar: bool = True,
                      max_azimuth_diff: float = GROUP_MAX_AZIMUTH_DIFF,
                      max_pitch_diff: float = GROUP_MAX_PITCH_DIFF,
                      min_facet_dimension_m: float = MIN_FACET_DIMENSION_M,
                      min_facet_area_m2: float = MIN_FACET_AREA_M2,
                      panel_max_local_slope_deviation: float = PANEL_MAX_LOCAL_SLOPE_DEVIATION,
                      obstruction_max_local_slope_deviation: float = OBSTRUCTION_MAX_LOCAL_SLOPE_DEVIATION,
                      max_global_slope_deviation: float = MAX_GLOBAL_SLOPE_DEVIATION,
                      panel_spacing_m: float = PANEL_SPACING_M,
                      detect: bool = True,
                      workers: int = 1) -> LayoutResult:
    """
    Estimate how many panels fit on a building's roof.

    `facets` are the roof facets of the building, with lat/long corners or
    bounding boxes. `raster` is the building's DSM, co-registered with the
    `pixel_width` x `pixel_height` image covering `building_bounds`, or None
    if there is no elevation data (in which case slope checks always pass).
    """
    pixel_width = _validate_int(pixel_width, "pixel_width", 1)
    pixel_height = _validate_int(pixel_height, "pixel_height", 1)
    max_azimuth_diff = _validate_float(max_azimuth_diff, "max_azimuth_diff", 0, 180)
    max_pitch_diff = _validate_float(max_pitch_diff, "max_pitch_diff", 0, 90)
    min_facet_dimension_m = _validate_float(min_facet_dimension_m, "min_facet_dimension_m", 0)
    min_facet_area_m2 = _validate_float(min_facet_area_m2, "min_facet_area_m2", 0)
    panel_max_local_slope_deviation = _validate_float(
        panel_max_local_slope_deviation, "panel_max_local_slope_deviation", 0, 90)
    obstruction_max_local_slope_deviation = _validate_float(
        obstruction_max_local_slope_deviation, "obstruction_max_local_slope_deviation", 0, 90)
    max_global_slope_deviation = _validate_float(max_global_slope_deviation, "max_global_slope_deviation", 0, 90)
    panel_spacing_m = _validate_float(panel_spacing_m, "panel_spacing_m", 0)
    workers = _validate_int(workers, "workers", 1)
    if raster is not None and (raster.width != pixel_width or raster.height != pixel_height):
        raise ValueError(f"Elevation raster is {raster.width}x{raster.height}, "
                         f"expected {pixel_width}x{pixel_height}")

    if raster is not None:
        logging.info(f"Elevation data is {raster.width}x{raster.height}, range {data_range(raster)}")
    else:
        logging.info("No elevation data, slope checks will pass")

    logging.info(f"Grouping {len(facets)} roof facets...")
    grouping = group_facets(facets,
                            group_similar=group_similar,
                            max_azimuth_diff=max_azimuth_diff,
                            max_pitch_diff=max_pitch_diff,
                            min_dimension_m=min_facet_dimension_m,
                            min_area_m2=min_facet_area_m2)

    logging.info("Calculating real-world scale...")
    scale = compute_real_world_scale(pixel_width, pixel_height, building_bounds)

    logging.info("Projecting facets to pixels...")
    usable = project_facets(grouping['facets'], building_bounds, pixel_width, pixel_height)

    obstructions = list(obstructions or [])
    if detect:
        logging.info("Detecting obstructions...")
        obstructions.extend(detect_obstructions(
            usable, raster, scale, obstructions,
            max_local_deviation_deg=obstruction_max_local_slope_deviation,
            max_global_deviation_deg=max_global_slope_deviation))

    logging.info("Placing panels...")
    result = generate_panel_layout(usable, obstructions, scale, raster,
                                   image_width=pixel_width,
                                   image_height=pixel_height,
                                   max_local_deviation_deg=panel_max_local_slope_deviation,
                                   max_global_deviation_deg=max_global_slope_deviation,
                                   panel_spacing_m=panel_spacing_m,
                                   workers=workers)

    result['metadata']['grouping'] = {k: v for k, v in grouping.items() if k != 'facets'}
    result['metadata']['grouping']['facet_count'] = len(grouping['facets'])
    result['metadata']['scale_is_fallback'] = scale.is_fallback
    return result


def _validate_int(val: int, name: str, minval: int = None, maxval: int = None) -> int:
    if val is None:
        raise ValueError(f"parameter {name} was None")
    val = int(val)
    if minval is not None and val < minval:
        raise ValueError(f"parameter {name} must be greater or equal to {minval}, was {val}")
    if maxval is not None and val > maxval:
        raise ValueError(f"parameter {name} must be less than or equal to {maxval}, was {val}")
    return val


def _validate_float(val: float, name: str, minval: float = None, maxval: float = None) -> float:
    if val is None:
        raise ValueError(f"parameter {name} was None")
    val = float(val)
    if minval is not None and val < minval:
        raise ValueError(f"parameter {name} must be greater or equal to {minval}, was {val}")
    if maxval is not None and val > maxval:
        raise ValueError(f"parameter {name} must be less than or equal to {maxval}, was {val}")
    return val
