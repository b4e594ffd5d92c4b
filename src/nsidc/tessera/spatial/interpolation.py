"""
Inverse distance weighted (IDW) interpolation of scattered samples.

Each target receives ``sum(v_i / d_i**p) / sum(1 / d_i**p)`` over all
samples, where ``d_i`` is the planar distance to sample ``i`` and ``p`` the
weight exponent. A target that coincides with a sample takes that sample's
value directly.
"""

import logging
import math
from typing import Optional, Tuple

import numpy as np

from nsidc.tessera import constants
from nsidc.tessera.errors import InsufficientData, InvalidParameter, MissingValue
from nsidc.tessera.models import (
    BoundingBox,
    Feature,
    FeatureCollection,
    GeometryType,
    as_feature_collection,
)

from . import grid as spatial_grid
from .spatial_utils import centroid

logger = logging.getLogger(__name__)


def sample_value(feature: Feature, value_property: Optional[str]) -> float:
    """
    Return the scalar carried by a point feature.

    The value comes from ``value_property`` when the feature has it, falling
    back to the point's third coordinate.

    Raises:
        MissingValue: When neither the property nor a third coordinate exists
        InvalidParameter: When the property is not numeric
    """
    if value_property and feature.properties.get(value_property) is not None:
        value = feature.properties[value_property]
        try:
            return float(value)
        except (TypeError, ValueError):
            raise InvalidParameter(
                f"Property {value_property!r} must be numeric, got {value!r}"
            )
    coordinates = feature.geometry.coordinates
    if feature.geometry.type == GeometryType.POINT and len(coordinates) > 2:
        return coordinates[2]
    raise MissingValue(
        f"Feature has no {value_property!r} property and no third coordinate"
    )


def representative_point(feature: Feature) -> Tuple[float, float]:
    """The point itself for Point features, otherwise the vertex centroid."""
    geometry = feature.geometry
    if geometry.type == GeometryType.POINT:
        return geometry.coordinates[0], geometry.coordinates[1]
    if geometry.type == GeometryType.POLYGON:
        return centroid(geometry.coordinates[0])
    return centroid(list(geometry.positions()))


def _sample_arrays(samples: FeatureCollection, value_property: Optional[str]):
    points = []
    values = []
    for sample in samples:
        if sample.geometry.type != GeometryType.POINT:
            raise InvalidParameter(
                f"Interpolation samples must be Points, got {sample.geometry.type.value}"
            )
        points.append(sample.geometry.coordinates[:2])
        values.append(sample_value(sample, value_property))
    return np.asarray(points, dtype=float), np.asarray(values, dtype=float)


def validate_weight(weight) -> float:
    try:
        value = float(weight)
    except (TypeError, ValueError):
        raise InvalidParameter(f"Weight must be a number, got {weight!r}")
    if not math.isfinite(value) or value < 0:
        raise InvalidParameter(f"Weight must be finite and not negative, got {weight}")
    return value


def interpolate(
    samples,
    grid,
    value_property: Optional[str] = None,
    weight: float = constants.DEFAULT_WEIGHT,
    result_property: str = constants.DEFAULT_RESULT_PROPERTY,
) -> FeatureCollection:
    """
    Estimate a value at every grid feature from the samples.

    Args:
        samples: Point features carrying the known values
        grid: Point or Polygon features to estimate at, e.g. from
              ``grid.generate``; polygons use their vertex centroid
        value_property: Sample property holding the value; samples without
                        it fall back to their third coordinate
        weight: Distance decay exponent
        result_property: Property that receives the estimate

    Returns:
        FeatureCollection of the grid features, in order, with the estimate
        added to their existing properties

    Raises:
        InsufficientData: When there are no samples
        MissingValue: When a sample has no value
    """
    samples = as_feature_collection(samples)
    grid = as_feature_collection(grid)
    if len(samples) == 0:
        raise InsufficientData("Interpolation needs at least one sample")
    exponent = validate_weight(weight)
    points, values = _sample_arrays(samples, value_property)

    features = []
    for cell in grid:
        x, y = representative_point(cell)
        distances = np.hypot(points[:, 0] - x, points[:, 1] - y)
        exact = np.flatnonzero(distances == 0)
        if exact.size:
            value = float(values[exact[0]])
        else:
            # Scaling by the nearest distance keeps the weights finite
            weights = (distances.min() / distances) ** exponent
            value = float(np.sum(weights * values) / np.sum(weights))
        features.append(cell.with_properties({result_property: value}))

    logger.debug(
        f"Interpolated {len(features)} targets from {len(samples)} samples"
        f" with weight {exponent}"
    )
    return FeatureCollection(features)


def interpolate_to_grid(
    samples,
    cell_size: float,
    topology: str = constants.DEFAULT_TOPOLOGY,
    value_property: Optional[str] = None,
    weight: float = constants.DEFAULT_WEIGHT,
    result_property: str = constants.DEFAULT_RESULT_PROPERTY,
    mask=None,
) -> FeatureCollection:
    """
    Build a grid over the samples' bounding box and interpolate onto it.
    """
    samples = as_feature_collection(samples)
    if len(samples) == 0:
        raise InsufficientData("Interpolation needs at least one sample")
    bbox = BoundingBox.of(samples.positions())
    cells = spatial_grid.generate(bbox, cell_size, topology, mask=mask)
    return interpolate(samples, cells, value_property, weight, result_property)
