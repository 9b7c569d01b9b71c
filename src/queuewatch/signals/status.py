"""
Status Classifier
=================

Maps an occupancy count to a congestion label.

Threshold table (fixed):
    0        -> VACANT
    1 .. 5   -> SLIGHTLY_BUSY
    6 and up -> VERY_CROWDED

The mapping is pure and stateless; it is not part of the queue detector's
memory and does not depend on the detection thresholds.
"""

import logging

from queuewatch.models.sample import StatusLabel


logger = logging.getLogger(__name__)

SLIGHTLY_BUSY_MIN = 1
VERY_CROWDED_MIN = 6


def classify(count: int) -> StatusLabel:
    """
    Classify an occupancy count.

    Negative counts violate the caller contract; they are treated as 0 and
    logged.

    Args:
        count: Number of people observed

    Returns:
        StatusLabel for the count
    """
    if count < 0:
        logger.warning(f"Negative occupancy count {count} classified as VACANT")
        count = 0

    if count >= VERY_CROWDED_MIN:
        return StatusLabel.VERY_CROWDED
    if count >= SLIGHTLY_BUSY_MIN:
        return StatusLabel.SLIGHTLY_BUSY
    return StatusLabel.VACANT
