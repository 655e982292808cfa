from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from collections.abc import Sequence

Numeric = int | float

T = TypeVar("T")


def create_rng(seed: int | None = None) -> np.random.Generator:
    """Create a random number generator.

    All stochastic operations of the tuner receive their generator explicitly,
    so runs are reproducible from a single seed.

    Args:
        seed: Random seed value (None for fresh entropy).

    Returns:
        A numpy random generator.
    """
    return np.random.default_rng(seed)


def decide(rng: np.random.Generator, probability: float) -> bool:
    """Return True with the given probability."""
    return bool(rng.random() < probability)


def choose_random_subset(
    rng: np.random.Generator,
    items: Sequence[T],
    count: int | None = None,
) -> list[T]:
    """Draw a random subset of items without replacement, in random order.

    Args:
        rng: Random generator.
        items: Items to choose from.
        count: Number of items to draw (None for a full shuffle).

    Returns:
        The chosen items.

    Raises:
        ValueError: If count is negative or larger than the number of items.
    """
    if count is None:
        count = len(items)
    if not 0 <= count <= len(items):
        msg = f"Cannot choose {count} items out of {len(items)}"
        raise ValueError(msg)
    indices = rng.permutation(len(items))[:count]
    return [items[int(i)] for i in indices]


def validate_probability(value: float, name: str = "probability") -> None:
    """Validate that a value is a valid probability in [0, 1].

    Args:
        value: Value to validate.
        name: Parameter name for error messages.

    Raises:
        ValueError: If value is not in [0, 1].
    """
    if not 0.0 <= value <= 1.0:
        msg = f"{name} must be in [0, 1], got {value}"
        raise ValueError(msg)


def validate_positive(value: float, name: str = "value") -> None:
    """Validate that a value is positive (> 0).

    Args:
        value: Value to validate.
        name: Parameter name for error messages.

    Raises:
        ValueError: If value is not positive.
    """
    if not value > 0:
        msg = f"{name} must be positive, got {value}"
        raise ValueError(msg)


def validate_non_negative(value: float, name: str = "value") -> None:
    """Validate that a value is non-negative (>= 0).

    Args:
        value: Value to validate.
        name: Parameter name for error messages.

    Raises:
        ValueError: If value is negative.
    """
    if value < 0:
        msg = f"{name} must be non-negative, got {value}"
        raise ValueError(msg)


def validate_positive_int(value: int, name: str = "value") -> None:
    """Validate that a value is a positive integer.

    Args:
        value: Value to validate.
        name: Parameter name for error messages.

    Raises:
        ValueError: If value is not a positive integer.
    """
    if not isinstance(value, (int, np.integer)) or value <= 0:
        msg = f"{name} must be a positive integer, got {value}"
        raise ValueError(msg)


def validate_in_range(
    value: float,
    lower: float,
    upper: float,
    name: str = "value",
    *,
    include_lower: bool = True,
) -> None:
    """Validate that a value lies in [lower, upper] (or (lower, upper]).

    Raises:
        ValueError: If value is outside the interval.
    """
    lower_ok = value >= lower if include_lower else value > lower
    if not (lower_ok and value <= upper):
        bracket = "[" if include_lower else "("
        msg = f"{name} must be in {bracket}{lower}, {upper}], got {value}"
        raise ValueError(msg)


def clamp(
    value: Numeric | NDArray,
    min_val: Numeric,
    max_val: Numeric,
) -> Numeric | NDArray:
    """Clamp a value to be within [min_val, max_val].

    Args:
        value: The value to clamp (scalar or array).
        min_val: Minimum boundary.
        max_val: Maximum boundary.

    Returns:
        The clamped value

    Raises:
        ValueError: If min_val > max_val.

    Examples:
        >>> clamp(15, 0, 10)
        10
        >>> clamp(np.array([15, -5, 5]), 0, 10)
        array([10,  0,  5])
    """
    if min_val > max_val:
        msg = f"min_val ({min_val}) must be <= max_val ({max_val})"
        raise ValueError(msg)

    result = np.clip(value, min_val, max_val)
    if np.ndim(result) == 0:
        return type(value)(result) if isinstance(value, (int, float)) else float(result)
    return result
