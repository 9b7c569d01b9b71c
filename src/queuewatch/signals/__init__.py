"""
Signals Module
==============

Turns raw observations into clean inputs for the detector.
"""

from queuewatch.signals.status import classify
from queuewatch.signals.validator import SampleValidator, SampleValidatorMetrics

__all__ = [
    "classify",
    "SampleValidator",
    "SampleValidatorMetrics",
]
