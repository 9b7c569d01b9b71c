"""
queuewatch
==========

Occupancy-driven queue detection and historical analytics for a single
monitored location.

This package samples an occupancy counter, turns the sample stream into
queue events (a line forming, refilling and draining) and produces
time-bucketed analytics over both raw occupancy and queue events.

Components:
    - signals: Sample validation and status classification
    - agent: LangGraph-driven queue detection state machine
    - store: SQLite event store and sample log
    - analytics: Bucket decomposition, aggregation and reports
    - stream: HTTP occupancy polling and live status fan-out

Example:
    from queuewatch.config import settings
    from queuewatch.models import Sample

    # The service is started via the FastAPI application
    # See main.py for entry point
"""

__version__ = "0.1.0"
__author__ = "queuewatch project"

__all__ = [
    "__version__",
]
