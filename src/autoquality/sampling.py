"""Sample placement for quality probing.

Samples avoid the intro and outro of the asset (opening titles, end credits)
and are spread evenly over what remains.
"""

from __future__ import annotations

from dataclasses import dataclass

from .constants import EXCLUSION_FRACTION, EXCLUSION_MIN_SECONDS, MIDPOINT_MIN_OFFSET


@dataclass(frozen=True)
class SamplePosition:
    """One clip to extract: start offset and length, in seconds."""

    start: float
    duration: float

    @property
    def seek_seconds(self) -> int:
        """Whole-second seek offset passed to ffmpeg."""
        return int(self.start)


def exclusion_seconds(total_duration: float) -> float:
    """Length of the excluded zone at each end of the asset."""
    return max(EXCLUSION_MIN_SECONDS, total_duration * EXCLUSION_FRACTION)


def plan_samples(
    total_duration: float, count: int, sample_duration: float
) -> tuple[SamplePosition, ...]:
    """Compute non-overlapping sample offsets across the usable span.

    Args:
        total_duration: Asset duration in seconds
        count: Desired number of samples
        sample_duration: Length of each sample in seconds

    Returns:
        Offsets in increasing order. A single midpoint sample (clamped to at
        least 10s) when the usable span is empty or count <= 1.
    """
    exclusion = exclusion_seconds(total_duration)
    usable = total_duration - 2 * exclusion - sample_duration

    if usable <= 0 or count <= 1:
        midpoint = max(MIDPOINT_MIN_OFFSET, (total_duration - sample_duration) / 2)
        return (SamplePosition(midpoint, sample_duration),)

    spacing = usable / (count - 1)
    return tuple(
        SamplePosition(exclusion + spacing * i, sample_duration) for i in range(count)
    )
