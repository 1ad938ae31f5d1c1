"""
Exception taxonomy for azmap.

Every failure in the projection core is recoverable: it degrades one point or
one geometry layer, never the engine. Callers catch the specific class they
can handle and let the rest propagate.
"""

from __future__ import annotations


class AzMapError(Exception):
    """Base class for all azmap errors."""


class AntipodalUndefined(AzMapError):
    # Raised by Orthographic forward projection for back-hemisphere points,
    # and by great-circle interpolation for antipodal endpoints.
    pass


class OutOfDomain(AzMapError):
    # Raised by inverse projection when (x, y) lies outside the mode's disc.
    pass


class CapacityExceeded(AzMapError):
    # Raised only in strict mode; otherwise excess input is truncated and
    # reported as a warning on the returned object.
    pass


class AllocationFailure(AzMapError):
    # A buffer rebuild ran out of memory; the affected layer stays empty.
    pass
