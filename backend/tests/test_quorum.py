"""Tests for quorum evaluation."""
import pytest

from outing_planner.errors import ValidationError
from outing_planner.services.quorum import quorum


class TestQuorum:
    """ceil(expected * threshold) without float drift."""

    @pytest.mark.parametrize("expected, threshold, result", [
        (10, 0.7, 7),
        (5, 0.7, 4),
        (3, 0.5, 2),
        (2, 1.0, 2),
        (8, 0.0, 0),
        (0, 0.7, 0),
    ])
    def test_values(self, expected, threshold, result):
        assert quorum(expected, threshold) == result

    def test_negative_expected_rejected(self):
        with pytest.raises(ValidationError):
            quorum(-1, 0.5)

    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_threshold_out_of_range_rejected(self, threshold):
        with pytest.raises(ValidationError):
            quorum(5, threshold)
