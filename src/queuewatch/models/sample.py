"""
Sample Models
=============

Point-in-time occupancy observations and their congestion label.

A Sample is produced once per poll and never modified afterwards. The
StatusLabel is derived from the sample count only (see
``queuewatch.signals.status``).
"""

from dataclasses import dataclass
from enum import Enum


class StatusLabel(str, Enum):
    """
    Ordinal congestion labels derived from an occupancy count.

    Attributes:
        VACANT: Nobody present (count == 0)
        SLIGHTLY_BUSY: A few people present (1..5)
        VERY_CROWDED: At or above six people
    """

    VACANT = "VACANT"
    SLIGHTLY_BUSY = "SLIGHTLY_BUSY"
    VERY_CROWDED = "VERY_CROWDED"

    @property
    def severity(self) -> int:
        """Ordinal position, 0 = least congested."""
        return _SEVERITY[self]


_SEVERITY = {
    StatusLabel.VACANT: 0,
    StatusLabel.SLIGHTLY_BUSY: 1,
    StatusLabel.VERY_CROWDED: 2,
}


@dataclass(frozen=True, slots=True)
class Sample:
    """
    Validated occupancy sample.

    Attributes:
        timestamp: Milliseconds since the UNIX epoch
        count: Number of people observed
    """

    timestamp: int
    count: int

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.count < 0:
            raise ValueError("count must be non-negative")
        if self.timestamp < 0:
            raise ValueError("timestamp must be non-negative")

    def __repr__(self) -> str:
        return f"Sample(t={self.timestamp}, count={self.count})"


@dataclass(frozen=True, slots=True)
class SampleRecord:
    """A sample as read back from the sample log, with its stored label."""

    location_id: str
    timestamp: int
    count: int
    status: StatusLabel

    def to_dict(self) -> dict:
        """Export as dictionary for serialization."""
        return {
            "location_id": self.location_id,
            "timestamp": self.timestamp,
            "count": self.count,
            "status": self.status.value,
        }
