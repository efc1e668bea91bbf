# This file is part of the solar wizard PV suitability model, copyright © Centre for Sustainable Energy, 2020-2023
# Licensed under the Reciprocal Public License v1.5. See LICENSE for licensing details.
from typing import Union


class RoofLayoutError(Exception):
    pass


class FacetValidationError(RoofLayoutError, ValueError):
    """Malformed facet or polygon input. Callers skip the facet and carry on."""
    pass


class InsufficientSamplesError(FacetValidationError):
    pass


class FacetLayoutError(RoofLayoutError):
    """An unexpected failure while laying out a single facet."""

    def __init__(self, facet_id: Union[int, str], cause: BaseException):
        super().__init__(f"Panel layout failed for facet {facet_id}: {cause}")
        self.facet_id = facet_id
        self.cause = cause

    def __reduce__(self):
        # So it survives being passed back from a worker process:
        return self.__class__, (self.facet_id, self.cause)
