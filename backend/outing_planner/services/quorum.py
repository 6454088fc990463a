"""Quorum evaluation: minimum accepted participants needed to move forward."""
import math
from decimal import Decimal

from outing_planner.errors import ValidationError


def quorum(expected_attendees: int, acceptance_threshold: float) -> int:
    """Return ``ceil(expected * threshold)``.

    Decimal arithmetic keeps ``quorum(10, 0.7)`` at 7; with floats the product
    is 7.000000000000001 and would round up to 8.
    """
    if expected_attendees is None or expected_attendees < 0:
        raise ValidationError("expected_attendees must be a non-negative integer")
    if acceptance_threshold is None or not 0 <= acceptance_threshold <= 1:
        raise ValidationError("acceptance_threshold must be between 0 and 1")
    product = Decimal(str(expected_attendees)) * Decimal(str(acceptance_threshold))
    return int(math.ceil(product))


def event_quorum(event) -> int:
    return quorum(event.expected_attendees, event.acceptance_threshold)
