"""Real-valued search points of the continuous optimizers.

Bounded search points store *standardized* values: every coordinate is
mapped from ``[lower, upper]`` into ``[0, 10]`` via an arccosine, and back
via a cosine. Internal values may therefore leave the standardized range
while the decoded values always stay inside the bounds.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from collections.abc import Sequence


class SearchPoint:
    """A real vector handled by a continuous optimizer.

    Args:
        values: Coordinates of the point.
    """

    type_name = "search_point"

    def __init__(self, values: Sequence[float] | NDArray) -> None:
        if values is None:
            msg = "Search point values must not be None"
            raise TypeError(msg)
        self._values = np.array(values, dtype=np.float64)
        self._values.setflags(write=False)

    @property
    def values(self) -> NDArray[np.float64]:
        return self._values

    @property
    def dimension(self) -> int:
        return len(self._values)

    def is_valid(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type_name, "values": self._values.tolist()}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({np.array2string(self._values, precision=4)})"


class BoundedSearchPoint(SearchPoint):
    """Search point whose decoded values lie within per-dimension bounds.

    Args:
        values: Standardized coordinates.
        lower_bounds: Lower bound per dimension.
        upper_bounds: Upper bound per dimension.

    Raises:
        ValueError: If the bounds do not match the dimension, are not finite
            or if a lower bound exceeds its upper bound.
    """

    type_name = "bounded_search_point"

    def __init__(
        self,
        values: Sequence[float] | NDArray,
        lower_bounds: Sequence[float] | NDArray,
        upper_bounds: Sequence[float] | NDArray,
    ) -> None:
        super().__init__(values)
        lower = np.array(lower_bounds, dtype=np.float64)
        upper = np.array(upper_bounds, dtype=np.float64)
        validate_bounds(self.dimension, lower, upper)
        lower.setflags(write=False)
        upper.setflags(write=False)
        self.lower_bounds = lower
        self.upper_bounds = upper

    def map_into_bounds(self) -> NDArray[np.float64]:
        """Decode the standardized values into ``[lower, upper]``."""
        return map_into_bounds(self._values, self.lower_bounds, self.upper_bounds)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["lower_bounds"] = self.lower_bounds.tolist()
        data["upper_bounds"] = self.upper_bounds.tolist()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BoundedSearchPoint:
        return cls(data["values"], data["lower_bounds"], data["upper_bounds"])


def validate_bounds(dimension: int, lower: NDArray, upper: NDArray) -> None:
    """Check bounds of a point with the given dimension.

    Raises:
        ValueError: If the bounds are inconsistent.
    """
    if len(lower) != dimension or len(upper) != dimension:
        msg = (
            f"Bounds must have the point's dimension {dimension}, "
            f"got {len(lower)} lower and {len(upper)} upper bounds"
        )
        raise ValueError(msg)
    if np.any(lower > upper):
        index = int(np.argmax(lower > upper))
        msg = f"Lower bound {lower[index]} exceeds upper bound {upper[index]} in dimension {index}"
        raise ValueError(msg)
    if np.any(~np.isfinite(lower)) or np.any(~np.isfinite(upper)):
        msg = "Bounds must be finite"
        raise ValueError(msg)


def standardize_values(
    values: Sequence[float] | NDArray,
    lower_bounds: Sequence[float] | NDArray,
    upper_bounds: Sequence[float] | NDArray,
) -> NDArray[np.float64]:
    """Map values inside ``[lower, upper]`` into ``[0, 10]``.

    Inverse of ``map_into_bounds`` for values within the bounds. Dimensions
    with an empty interval are standardized to 0.
    """
    values = np.asarray(values, dtype=np.float64)
    lower = np.asarray(lower_bounds, dtype=np.float64)
    upper = np.asarray(upper_bounds, dtype=np.float64)
    # halved differences stay finite for bounds near the float limits
    half_interval = upper / 2 - lower / 2
    empty = half_interval == 0
    safe_interval = np.where(empty, 1.0, half_interval)
    scaled = np.clip(1 - (values / 2 - lower / 2) / (safe_interval / 2), -1.0, 1.0)
    return np.where(empty, 0.0, 10 * np.arccos(scaled) / np.pi)


def map_into_bounds(
    values: Sequence[float] | NDArray,
    lower_bounds: Sequence[float] | NDArray,
    upper_bounds: Sequence[float] | NDArray,
) -> NDArray[np.float64]:
    """Map arbitrary standardized values into ``[lower, upper]``.

    The map is periodic with period 20, so values outside ``[0, 10]`` are
    reflected back into the bounds. Non-finite values are mapped to the
    middle of the bounds.
    """
    values = np.asarray(values, dtype=np.float64)
    values = np.where(np.isfinite(values), values, 5.0)
    lower = np.asarray(lower_bounds, dtype=np.float64)
    upper = np.asarray(upper_bounds, dtype=np.float64)
    share = (1 - np.cos(np.pi * (values / 10))) / 2
    mapped = lower * (1 - share) + upper * share
    return np.clip(mapped, lower, upper)


PointT = TypeVar("PointT", bound=SearchPoint)


class SearchPointSorter(ABC, Generic[PointT]):
    """Orders search points, best first.

    The order must be total; ties are broken by the sorter.
    """

    @abstractmethod
    def sort(self, points: Sequence[PointT]) -> list[int]:
        """Return the indices of the points, best first."""

    def determine_ranks(self, points: Sequence[PointT]) -> list[int]:
        """Return the rank of each point (0 for the best), in input order."""
        ranks = [0] * len(points)
        for rank, index in enumerate(self.sort(points)):
            ranks[index] = rank
        return ranks
