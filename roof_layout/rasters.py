# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
from typing import Optional, Tuple

import numpy as np

from roof_layout.constants import NO_DATA_VALUE
from roof_layout.datatypes import ElevationRaster


def elevation_raster_from_array(values, nodata: float = NO_DATA_VALUE) -> ElevationRaster:
    """
    Create an ElevationRaster from a 2D array of elevations (rows are y)
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim != 2:
        raise ValueError(f"Expected a 2D array of elevations, got {arr.ndim} dimensions")
    height, width = arr.shape
    return ElevationRaster(width=width, height=height, values=arr.ravel(), nodata=nodata)


def data_range(raster: ElevationRaster) -> Optional[Tuple[float, float]]:
    """min and max of valid cells, or None if there are none"""
    valid = raster.values[raster.valid_mask()]
    if len(valid) == 0:
        return None
    return float(valid.min()), float(valid.max())
