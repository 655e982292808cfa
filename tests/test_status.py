"""
Test suite for status files and generator state handling.
"""

import numpy as np
import pytest

from genetic_tuner.status import (
    StatusBase,
    array_to_list,
    list_to_array,
    restore_rng_state,
    rng_state,
)
from genetic_tuner.utils.utils import create_rng


class ValuesStatus(StatusBase):
    def __init__(self, values, random_state=None):
        self.values = values
        self.random_state = random_state

    def to_dict(self):
        return {"values": array_to_list(self.values), "random_state": self.random_state}

    @classmethod
    def from_dict(cls, data):
        return cls(list_to_array(data["values"]), data["random_state"])


class TestStatusFiles:
    """Test writing and reading status files."""

    def test_floats_survive_exactly(self, tmp_path):
        """Values are restored bit for bit."""
        values = np.array([0.1, 1 / 3, np.pi, 1e-300, -2.5e17])
        filepath = tmp_path / "a" / "b" / "values.json"

        ValuesStatus(values).write_to_file(filepath)
        restored = ValuesStatus.read_from_file(filepath)

        np.testing.assert_array_equal(restored.values, values)

    def test_missing_file(self, tmp_path):
        """Reading a missing file raises."""
        with pytest.raises(FileNotFoundError):
            ValuesStatus.read_from_file(tmp_path / "missing.json")

    def test_none_arrays(self):
        """None is passed through."""
        assert array_to_list(None) is None
        assert list_to_array(None) is None


class TestGeneratorState:
    """Test saving and restoring random generators."""

    def test_restored_generator_continues_sequence(self, tmp_path):
        """A restored generator draws the same numbers as the original."""
        original = create_rng(11)
        original.random(5)
        filepath = tmp_path / "rng.json"
        ValuesStatus(None, rng_state(original)).write_to_file(filepath)

        restored = create_rng(0)
        restore_rng_state(restored, ValuesStatus.read_from_file(filepath).random_state)

        np.testing.assert_array_equal(restored.random(10), original.random(10))

    def test_missing_state_is_ignored(self):
        """Without a state the generator is unchanged."""
        rng = create_rng(3)
        expected = create_rng(3).random()

        restore_rng_state(rng, None)

        assert rng.random() == expected

    def test_other_bit_generator_is_rejected(self):
        """States of other bit generators cannot be restored."""
        state = np.random.Generator(np.random.MT19937(1)).bit_generator.state

        with pytest.raises(ValueError):
            restore_rng_state(create_rng(1), state)
