# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.

# Standard panel dimensions in metres. Portrait mounting uses them as-is,
# landscape mounting swaps them.
PANEL_WIDTH_M = 1.045
PANEL_HEIGHT_M = 1.879
PANEL_SPACING_M = 0.0

# Reference conditions used to turn panel area into an indicative peak output:
PANEL_EFFICIENCY = 0.20
REFERENCE_IRRADIANCE_W_M2 = 1000

# A roof is considered to be flat if it's slope is less than or equal to this.
# Flat facets have no meaningful compass orientation.
FLAT_ROOF_DEGREES_THRESHOLD = 5.0

# Used when upstream roof geometry does not declare a pitch or azimuth:
DEFAULT_PITCH_DEGREES = 20.0
DEFAULT_AZIMUTH_DEGREES = 180.0

# Slope-consistency ceilings, in degrees of deviation from the facet's declared
# pitch. The local check compares the min/max elevation spread of a block, the
# global check compares a least-squares plane fit of the block.
# Panel placement is the most lenient on local variance...
PANEL_MAX_LOCAL_SLOPE_DEVIATION = 15
# ...obstruction scanning is stricter, so candidate obstructions surface
# before panel placement runs:
OBSTRUCTION_MAX_LOCAL_SLOPE_DEVIATION = 19
# Shared by both:
MAX_GLOBAL_SLOPE_DEVIATION = 14

# Minimum number of valid elevation samples (out of a 3x3 grid) needed before a
# block's slope is judged. Blocks with fewer samples pass.
MIN_SLOPE_SAMPLES = 4

# Plane fits with a normal-equation determinant smaller than this are treated
# as singular:
PLANE_FIT_SINGULAR_DET = 1e-10

# Facet grouping: adjacent facets are merged if they face the same way and
# have a similar pitch.
GROUP_MAX_AZIMUTH_DIFF = 5
GROUP_MAX_PITCH_DIFF = 12
# Degrees of latitude/longitude:
GEO_ADJACENCY_TOLERANCE = 0.0000001
GEO_DUPLICATE_POINT_TOLERANCE = 0.0000001

# Facets (or groups of facets) smaller than this are not usable for panels:
MIN_FACET_DIMENSION_M = 1.5
MIN_FACET_AREA_M2 = 11

# Obstruction scanning runs on a finer grid than panel layout, with
# overlapping strides:
OBSTRUCTION_CELL_SIZE_M = 0.5
OBSTRUCTION_CELL_OVERLAP = 0.25

EARTH_RADIUS_M = 6371000

# Low-confidence scale used when a building bounding box is unavailable,
# based on typical urban aerial imagery resolution:
FALLBACK_SCALE_WIDTH_M = 50.0
FALLBACK_SCALE_HEIGHT_M = 50.0
FALLBACK_SCALE_PIXEL_WIDTH = 500
FALLBACK_SCALE_PIXEL_HEIGHT = 500

# DSM no-data sentinel:
NO_DATA_VALUE = -9999

# Suitability score weights and the pitch considered ideal:
SUITABILITY_SUNSHINE_WEIGHT = 0.6
SUITABILITY_AZIMUTH_WEIGHT = 0.3
SUITABILITY_PITCH_WEIGHT = 0.1
SUITABILITY_OPTIMAL_PITCH = 35
