"""Status dumps of stateful optimizer components.

Every status converts itself into a JSON friendly dictionary. Floats are
written with their shortest exact representation, so reading a status back
restores every value bit for bit.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from collections.abc import Sequence


logger = logging.getLogger(__name__)

StatusT = TypeVar("StatusT", bound="StatusBase")


class StatusBase(ABC):
    """Base class of all status objects that can be written to and read from files."""

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""

    @classmethod
    @abstractmethod
    def from_dict(cls: type[StatusT], data: dict[str, Any]) -> StatusT:
        """Create from dictionary."""

    def write_to_file(self, filepath: str | Path, indent: int | None = None) -> None:
        """Write the status as JSON, creating parent directories if needed."""
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with filepath.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=indent)
        logger.debug("Wrote %s to %s.", type(self).__name__, filepath)

    @classmethod
    def read_from_file(cls: type[StatusT], filepath: str | Path) -> StatusT:
        """Read a status written by ``write_to_file``.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        filepath = Path(filepath)
        with filepath.open(encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data)


def array_to_list(array: NDArray | None) -> list[Any] | None:
    return None if array is None else np.asarray(array, dtype=np.float64).tolist()


def list_to_array(values: Sequence[Any] | None) -> NDArray[np.float64] | None:
    return None if values is None else np.array(values, dtype=np.float64)


def rng_state(rng: np.random.Generator) -> dict[str, Any]:
    """Serializable state of a random generator."""
    return rng.bit_generator.state


def restore_rng_state(rng: np.random.Generator, state: dict[str, Any] | None) -> None:
    """Set a generator to a state returned by ``rng_state``.

    Raises:
        ValueError: If the state belongs to a different bit generator.
    """
    if state is None:
        return
    expected = type(rng.bit_generator).__name__
    if state.get("bit_generator") != expected:
        msg = f"Cannot restore a {state.get('bit_generator')} state into a {expected} generator"
        raise ValueError(msg)
    rng.bit_generator.state = state
