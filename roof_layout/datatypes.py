# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
from dataclasses import dataclass, field
from enum import Enum
from typing import TypedDict, List, Optional, Tuple, Union, Sequence

import numpy as np

from roof_layout.constants import NO_DATA_VALUE

FacetId = Union[int, str]


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class GeoBoundingBox:
    sw: Optional[GeoPoint]
    ne: Optional[GeoPoint]


@dataclass(frozen=True)
class PixelPoint:
    x: float
    y: float


@dataclass(frozen=True)
class PixelBoundingBox:
    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y


PixelPolygon = Sequence[PixelPoint]


@dataclass(frozen=True)
class RealWorldScale:
    """
    Metres-per-pixel of an image (and the co-registered DSM) covering a building.

    `is_fallback` is set when the scale could not be derived from the building
    bounding box, in which case it is only a rough typical value.
    """
    meters_per_pixel_x: float
    meters_per_pixel_y: float
    pixel_width: int
    pixel_height: int
    width_m: float
    height_m: float
    is_fallback: bool = False


@dataclass
class ElevationRaster:
    """
    A DSM as a flat, row-major array of elevations in metres.

    NaN and infinite values are treated as no-data, as well as `nodata`.
    """
    width: int
    height: int
    values: np.ndarray
    nodata: float = NO_DATA_VALUE
    value_range: Optional[Tuple[float, float]] = None

    def __post_init__(self):
        self.values = np.asarray(self.values, dtype=np.float64).ravel()
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid raster dimensions {self.width}x{self.height}")
        if len(self.values) != self.width * self.height:
            raise ValueError(f"Raster has {len(self.values)} values, expected "
                             f"{self.width}x{self.height}={self.width * self.height}")
        if self.value_range is None:
            valid = self.values[self.valid_mask()]
            if len(valid) > 0:
                self.value_range = (float(valid.min()), float(valid.max()))

    def valid_mask(self) -> np.ndarray:
        return np.isfinite(self.values) & (self.values != self.nodata)

    def value_at(self, x: int, y: int) -> Optional[float]:
        """Elevation at pixel (x, y), or None if out of bounds or no-data"""
        if x < 0 or y < 0 or x >= self.width or y >= self.height:
            return None
        value = self.values[y * self.width + x]
        if not np.isfinite(value) or value == self.nodata:
            return None
        return float(value)


class Orientation(Enum):
    FLAT = "Horizontal"
    NORTH = "North"
    NORTH_EAST = "Northeast"
    EAST = "East"
    SOUTH_EAST = "Southeast"
    SOUTH = "South"
    SOUTH_WEST = "Southwest"
    WEST = "West"
    NORTH_WEST = "Northwest"


class LayoutAxis(Enum):
    # Rows of panels run east-west (north/south-facing roofs):
    HORIZONTAL = "horizontal"
    # Rows of panels run north-south (east/west-facing roofs):
    VERTICAL = "vertical"


class ObstructionType(Enum):
    SLOPE_VARIANCE = "slope_variance"
    GLOBAL_MISMATCH = "global_mismatch"
    SEGMENT_BOUNDARY = "segment_boundary"
    OBSTRUCTION_OVERLAP = "obstruction_overlap"


class SunshineSummary(TypedDict):
    """Annual sunshine hours across a facet, from its decile quantiles"""
    min: float
    q1: float
    median: float
    q3: float
    max: float
    quantiles: List[float]


@dataclass
class RoofFacet:
    """A single planar roof surface, as supplied by upstream roof geometry"""
    id: FacetId
    pitch: Optional[float]
    azimuth: Optional[float]
    area_m2: float
    ground_area_m2: float
    center: Optional[GeoPoint]
    bounding_box: Optional[GeoBoundingBox]
    corners: List[GeoPoint] = field(default_factory=list)
    suitability: float = 0.5
    # Set only when upstream geometry supplies an orientation, otherwise
    # orientation is derived from azimuth and pitch:
    orientation: Optional[Orientation] = None
    # Set when the facet has been merged into a FacetGroup:
    group_id: Optional[str] = None
    # Corners in image pixel space, filled in by projection:
    polygon: Optional[List[PixelPoint]] = None
    height_m: Optional[float] = None
    sunshine: Optional[SunshineSummary] = None

    def __post_init__(self):
        self.suitability = min(1.0, max(0.0, self.suitability))

    @property
    def is_group(self) -> bool:
        return False


@dataclass
class FacetGroup(RoofFacet):
    """Two or more adjacent, compatible facets treated as one composite facet"""
    member_ids: List[FacetId] = field(default_factory=list)
    # Copies of the member facets, with group_id set:
    members: List[RoofFacet] = field(default_factory=list)

    @property
    def is_group(self) -> bool:
        return True

    @property
    def member_count(self) -> int:
        return len(self.member_ids)


@dataclass(frozen=True)
class Panel:
    id: str
    facet_id: FacetId
    x: int
    y: int
    width: int
    height: int
    real_width: float
    real_height: float
    pitch: float
    azimuth: float
    row: int
    col: int
    polygon: Tuple[PixelPoint, ...]
    mounting: str
    avg_slope: Optional[float] = None
    local_deviation: Optional[float] = None
    global_deviation: Optional[float] = None


@dataclass(frozen=True)
class Obstruction:
    id: str
    facet_id: FacetId
    x: int
    y: int
    width: int
    height: int
    polygon: Tuple[PixelPoint, ...]
    type: ObstructionType
    reason: str
    avg_slope: Optional[float] = None
    local_deviation: Optional[float] = None
    global_deviation: Optional[float] = None


class PlaneFit(TypedDict):
    """Least-squares plane z = a.x + b.y + c through elevation samples"""
    x_coef: float
    y_coef: float
    slope: float
    is_fallback: bool


class SlopeCheck(TypedDict):
    is_valid: bool
    type: str
    local_deviation: float
    global_deviation: float
    avg_slope: float
    baseline_angle: float
    avg_angle: float
    sample_count: int


class GroupingResult(TypedDict):
    facets: List[RoofFacet]
    original_count: int
    group_count: int
    facets_in_groups: int
    filtered_facet_count: int
    filtered_group_count: int
    min_facet_dimension_m: float
    min_facet_area_m2: float
    max_azimuth_diff: float
    max_pitch_diff: float


class FacetLayoutSummary(TypedDict):
    facet_id: FacetId
    panel_count: int
    mounting: Optional[str]
    strategy: Optional[str]
    start_point: Optional[str]
    # Display label, e.g. "South (180° E of N)":
    orientation: str


class LayoutMetadata(TypedDict, total=False):
    panel_count: int
    total_area_m2: float
    potential_kw: float
    standard_dimensions: dict
    facet_results: List[FacetLayoutSummary]
    skipped_facets: List[FacetId]
    failed_facets: List[dict]
    grouping: dict
    scale_is_fallback: bool


class LayoutResult(TypedDict):
    panels: List[Panel]
    obstructions: List[Obstruction]
    metadata: LayoutMetadata
