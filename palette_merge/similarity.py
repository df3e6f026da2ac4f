"""RGB near-duplicate test used to decide which palette colors merge."""
from __future__ import annotations

from .palette_ops import Color

MIN_TOLERANCE = 1
MAX_TOLERANCE = 255
DEFAULT_TOLERANCE = 8
TOLERANCE_SCALE = 3
DEVIATION_RATIO = 0.15


def effective_tolerance(value: int) -> int:
    """Convert the per-channel tolerance a user picks into the summed bound."""

    value = int(value)
    if value < MIN_TOLERANCE or value > MAX_TOLERANCE:
        raise ValueError(
            f"Tolerance must be between {MIN_TOLERANCE} and {MAX_TOLERANCE}, got {value}"
        )
    return value * TOLERANCE_SCALE


def channel_spread(a: Color, b: Color) -> tuple[int, float]:
    """Return ``(sum_diff, max_dev)`` for a pair of colors.

    ``max_dev`` is how far the largest single-channel difference strays from
    the mean channel difference.
    """

    diff_r = abs(a.r - b.r)
    diff_g = abs(a.g - b.g)
    diff_b = abs(a.b - b.b)
    sum_diff = diff_r + diff_g + diff_b
    mean_diff = sum_diff / 3
    max_dev = max(
        abs(diff_r - mean_diff),
        abs(diff_g - mean_diff),
        abs(diff_b - mean_diff),
    )
    return sum_diff, max_dev


def is_similar(a: Color, b: Color, tolerance: float) -> bool:
    """True when ``a`` and ``b`` are within ``tolerance`` (already scaled).

    The summed channel distance must fit the tolerance, and the distance may
    not be concentrated in one channel: a tinted pair with a small sum is
    still rejected.
    """

    sum_diff, max_dev = channel_spread(a, b)
    return sum_diff <= tolerance and max_dev <= tolerance * DEVIATION_RATIO
