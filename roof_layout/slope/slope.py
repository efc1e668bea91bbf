# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
from typing import Optional, Sequence, Tuple

import math
import numpy as np

from roof_layout.constants import MAX_GLOBAL_SLOPE_DEVIATION, MIN_SLOPE_SAMPLES, PLANE_FIT_SINGULAR_DET, \
    PANEL_MAX_LOCAL_SLOPE_DEVIATION
from roof_layout.datatypes import ElevationRaster, RealWorldScale, PixelBoundingBox, PlaneFit, SlopeCheck
from roof_layout.errors import InsufficientSamplesError

# (x pixel, y pixel, elevation in metres):
Sample = Tuple[float, float, float]

# Samples per axis when checking the slope of a block:
_GRID_SAMPLES = 3

VALID = "valid"
LOCAL_VARIANCE = "local_variance"
GLOBAL_MISMATCH = "global_mismatch"


def fit_plane(samples: Sequence[Sample], scale: RealWorldScale) -> PlaneFit:
    """
    Least-squares fit of a plane z = ax + by + c to elevation samples, with x
    and y converted from pixels to metres. The slope of the plane (rise over
    run) is sqrt(a^2 + b^2).

    If the system is singular (e.g. all the samples are in a line) the slope
    is instead the range of z over the horizontal diagonal of the samples, and
    `is_fallback` is set.
    """
    if len(samples) < MIN_SLOPE_SAMPLES:
        raise InsufficientSamplesError(f"Plane fit needs at least {MIN_SLOPE_SAMPLES} samples, "
                                       f"got {len(samples)}")

    pts = np.asarray(samples, dtype=np.float64)
    x = pts[:, 0] * scale.meters_per_pixel_x
    y = pts[:, 1] * scale.meters_per_pixel_y
    z = pts[:, 2]

    dx = x - x.mean()
    dy = y - y.mean()
    dz = z - z.mean()
    xx = np.sum(dx * dx)
    xy = np.sum(dx * dy)
    xz = np.sum(dx * dz)
    yy = np.sum(dy * dy)
    yz = np.sum(dy * dz)

    det = xx * yy - xy * xy
    if abs(det) < PLANE_FIT_SINGULAR_DET:
        diagonal = math.hypot(x.max() - x.min(), y.max() - y.min())
        slope = float(z.max() - z.min()) / diagonal if diagonal > 0 else 0.0
        return PlaneFit(x_coef=0.0, y_coef=0.0, slope=slope, is_fallback=True)

    a = (yy * xz - xy * yz) / det
    b = (xx * yz - xy * xz) / det
    return PlaneFit(x_coef=float(a), y_coef=float(b), slope=float(math.hypot(a, b)), is_fallback=False)


def _optimistic(baseline_slope: float, sample_count: int = 0) -> SlopeCheck:
    baseline_angle = math.degrees(math.atan(baseline_slope))
    return SlopeCheck(is_valid=True,
                      type=VALID,
                      local_deviation=0.0,
                      global_deviation=0.0,
                      avg_slope=baseline_slope,
                      baseline_angle=baseline_angle,
                      avg_angle=baseline_angle,
                      sample_count=sample_count)


def sample_block(raster: ElevationRaster, region: PixelBoundingBox):
    """
    Elevations on a 3x3 grid spanning `region`, skipping points which are
    outside the raster or have no data.
    """
    samples = []
    w = region.width
    h = region.height
    for sy in range(_GRID_SAMPLES):
        for sx in range(_GRID_SAMPLES):
            px = region.min_x + (sx * w) // (_GRID_SAMPLES - 1)
            py = region.min_y + (sy * h) // (_GRID_SAMPLES - 1)
            z = raster.value_at(px, py)
            if z is not None:
                samples.append((px, py, z))
    return samples


def check_block_slope(raster: Optional[ElevationRaster],
                      region: PixelBoundingBox,
                      scale: RealWorldScale,
                      baseline_slope: float,
                      max_local_deviation_deg: float = PANEL_MAX_LOCAL_SLOPE_DEVIATION,
                      max_global_deviation_deg: float = MAX_GLOBAL_SLOPE_DEVIATION) -> SlopeCheck:
    """
    Check whether the surface in a block of the DSM is consistent with the
    expected slope of the roof (`baseline_slope`, as rise over run).

    Two checks are made:
    * local: the slope implied by the min/max elevation spread across the
      block diagonal. Catches abrupt height changes such as chimneys or vents.
    * global: the slope of a least-squares plane through the samples.

    Blocks with fewer than 4 usable samples, or when there is no raster,
    pass.
    """
    if raster is None:
        return _optimistic(baseline_slope)

    samples = sample_block(raster, region)
    if len(samples) < MIN_SLOPE_SAMPLES:
        return _optimistic(baseline_slope, len(samples))

    zs = [s[2] for s in samples]
    diagonal = math.hypot(region.width * scale.meters_per_pixel_x, region.height * scale.meters_per_pixel_y)
    local_slope = (max(zs) - min(zs)) / diagonal if diagonal > 0 else 0.0
    plane = fit_plane(samples, scale)

    baseline_angle = math.degrees(math.atan(baseline_slope))
    local_angle = math.degrees(math.atan(local_slope))
    avg_angle = math.degrees(math.atan(plane['slope']))

    local_deviation = abs(local_angle - baseline_angle)
    global_deviation = abs(avg_angle - baseline_angle)
    local_ok = local_deviation <= max_local_deviation_deg
    global_ok = global_deviation <= max_global_deviation_deg

    if not local_ok:
        check_type = LOCAL_VARIANCE
    elif not global_ok:
        check_type = GLOBAL_MISMATCH
    else:
        check_type = VALID

    return SlopeCheck(is_valid=local_ok and global_ok,
                      type=check_type,
                      local_deviation=local_deviation,
                      global_deviation=global_deviation,
                      avg_slope=plane['slope'],
                      baseline_angle=baseline_angle,
                      avg_angle=avg_angle,
                      sample_count=len(samples))
