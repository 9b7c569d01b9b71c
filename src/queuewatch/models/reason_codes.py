"""
Reason Codes
============

Fixed set of machine-readable codes describing what one sample did to
the queue detection state machine.

Each evaluated sample produces exactly ONE reason code.
"""

from enum import Enum


class ReasonCode(str, Enum):
    """
    Detection outcome codes.

    Attributes:
        IDLE: No episode open and occupancy below capacity
        QUEUE_STARTED: Occupancy reached capacity, a new episode opened
        AT_CAPACITY: Still at capacity, no refill edge
        PEAK_RAISED: Still at capacity with a new maximum
        TURNOVER_DETECTED: Occupancy returned to capacity after a dip
        GAP_BELOW_CAPACITY: Episode open, occupancy between the thresholds
        QUEUE_DRAINED: Occupancy fell to the empty threshold, episode closed
        MAX_DURATION_EXCEEDED: Episode force-closed by the duration limit
        EVENT_MISSING: The open event vanished from the store; back to idle
    """

    IDLE = "IDLE"
    QUEUE_STARTED = "QUEUE_STARTED"
    AT_CAPACITY = "AT_CAPACITY"
    PEAK_RAISED = "PEAK_RAISED"
    TURNOVER_DETECTED = "TURNOVER_DETECTED"
    GAP_BELOW_CAPACITY = "GAP_BELOW_CAPACITY"
    QUEUE_DRAINED = "QUEUE_DRAINED"
    MAX_DURATION_EXCEEDED = "MAX_DURATION_EXCEEDED"
    EVENT_MISSING = "EVENT_MISSING"
