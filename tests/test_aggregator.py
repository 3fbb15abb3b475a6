"""
Tests for telemetry window aggregation.
"""
import pytest

from help_reasoner.learning import aggregate_states


class TestAggregateStates:
    """Column-wise aggregation of a sample window."""

    def test_empty_buffer(self):
        assert aggregate_states([]) == []

    def test_single_sample_unchanged(self):
        sample = [1, "reading", None]
        assert aggregate_states([sample]) == sample

    def test_numeric_columns_averaged(self):
        result = aggregate_states([[1.0, 10.0], [2.0, 20.0], [3.0, 30.0]])
        assert result == pytest.approx([2.0, 20.0])

    def test_non_numeric_column_takes_latest(self):
        """Column 1 is non-numeric in sample 2: the latest value wins."""
        buffer = [
            [1, 0.5],
            [2, "missing"],
            [3, 0.9],
        ]
        result = aggregate_states(buffer)
        assert result[0] == pytest.approx(2.0)
        assert result[1] == 0.9

    def test_latest_non_numeric_value_carried(self):
        result = aggregate_states([[1, "a"], [3, "b"]])
        assert result == [2.0, "b"]

    def test_numeric_strings_are_averaged(self):
        result = aggregate_states([["1"], ["3"]])
        assert result == [2.0]

    def test_mismatched_rows_dropped(self):
        result = aggregate_states([[100.0], [1.0, 1.0], [3.0, 3.0]])
        assert result == pytest.approx([2.0, 2.0])

    def test_result_values_are_floats(self):
        result = aggregate_states([[1, 2], [3, 4]])
        assert all(type(v) is float for v in result)
