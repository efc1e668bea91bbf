# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
import os

import math


def round_half_up(num: float) -> int:
    """Round to the nearest integer, with .5 always rounding up (unlike round())"""
    return int(math.floor(num + 0.5))


def get_cpu_count():
    return len(os.sched_getaffinity(0))


def pixels_covering(length: float, units_per_pixel: float) -> int:
    """Smallest whole number of pixels (at least 1) spanning `length`, ignoring float noise"""
    return max(1, int(math.ceil(length / units_per_pixel - 1e-9)))
