"""
Sample Validator
================

Boundary check between the occupancy source and the queue detector.

Rejected (logged and dropped, detector state untouched):
    - counts that are not integers (strings, floats with a fraction, bools)
    - negative counts
    - timestamps that are not integers or are negative
    - timestamps equal to or older than the last accepted sample
      (duplicates and out-of-order delivery)

Design Rules:
    - Never raises for bad input; returns None instead
    - One validator per location (ordering is tracked per stream)
    - Exposes counters for the /metrics endpoint
"""

import logging
from numbers import Integral, Real
from typing import Any, Optional

from queuewatch.models.sample import Sample


logger = logging.getLogger(__name__)


class SampleValidatorMetrics:
    """Counters for SampleValidator observability."""

    __slots__ = (
        "accepted",
        "rejected_malformed",
        "rejected_negative",
        "rejected_out_of_order",
    )

    def __init__(self) -> None:
        self.accepted: int = 0
        self.rejected_malformed: int = 0
        self.rejected_negative: int = 0
        self.rejected_out_of_order: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "accepted": self.accepted,
            "rejected_malformed": self.rejected_malformed,
            "rejected_negative": self.rejected_negative,
            "rejected_out_of_order": self.rejected_out_of_order,
        }


class SampleValidator:
    """
    Validates raw (timestamp, count) pairs into Samples.

    Example:
        validator = SampleValidator()
        sample = validator.validate(1731200000000, 4)
        if sample is not None:
            monitor.process(sample)
    """

    def __init__(self) -> None:
        self._last_timestamp: Optional[int] = None
        self.metrics = SampleValidatorMetrics()

    @property
    def last_timestamp(self) -> Optional[int]:
        """Timestamp of the last accepted sample."""
        return self._last_timestamp

    def validate(self, timestamp: Any, count: Any) -> Optional[Sample]:
        """
        Validate one raw observation.

        Args:
            timestamp: Milliseconds since epoch
            count: Occupancy count

        Returns:
            Sample if valid, None if the observation was dropped
        """
        ts = _as_int(timestamp)
        value = _as_int(count)

        if ts is None or value is None or ts < 0:
            self.metrics.rejected_malformed += 1
            logger.warning(
                f"Dropping malformed sample: timestamp={timestamp!r}, count={count!r}"
            )
            return None

        if value < 0:
            self.metrics.rejected_negative += 1
            logger.warning(f"Dropping sample with negative count {value} at t={ts}")
            return None

        if self._last_timestamp is not None and ts <= self._last_timestamp:
            self.metrics.rejected_out_of_order += 1
            kind = "duplicate" if ts == self._last_timestamp else "out-of-order"
            logger.warning(
                f"Dropping {kind} sample: t={ts}, last accepted t={self._last_timestamp}"
            )
            return None

        self._last_timestamp = ts
        self.metrics.accepted += 1
        return Sample(timestamp=ts, count=value)

    def reset(self) -> None:
        """Forget the ordering watermark."""
        self._last_timestamp = None


def _as_int(value: Any) -> Optional[int]:
    """Return value as int if it is integral, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, Integral):
        return int(value)
    if isinstance(value, Real):
        as_float = float(value)
        if as_float.is_integer():
            return int(as_float)
    return None
