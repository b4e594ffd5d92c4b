"""
Exceptions raised by the tessellation and interpolation engine.

Every failure is deterministic for a given input, so none of these are
retried; they are raised straight to the caller.
"""


class TesseraError(Exception):
    """Base class for all engine errors."""

    pass


class InvalidParameter(TesseraError, ValueError):
    """Raised for a bad cell size, weight, bounding box or similar argument."""

    pass


class InvalidBreaks(InvalidParameter):
    """Raised when contour breaks are empty, unsorted or duplicated."""

    pass


class InsufficientData(TesseraError):
    """Raised when there are too few samples or points to operate on."""

    pass


class DegenerateInput(TesseraError):
    """Raised for collinear or coincident points where distinctness is required."""

    pass


class DuplicatePoint(DegenerateInput):
    """Raised when two input points share the same coordinates."""

    pass


class IrregularGrid(TesseraError):
    """Raised when contour input is not a regular rectangular lattice."""

    pass


class InvalidTopology(TesseraError):
    """Raised when polygonize input edges cross anywhere but shared endpoints."""

    pass


class MissingValue(TesseraError):
    """Raised when a scalar property is absent and there is no third coordinate."""

    pass
