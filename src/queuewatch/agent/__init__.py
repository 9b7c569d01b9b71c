"""
Agent Module
============

LangGraph-based deterministic queue detection.

This module implements the detector:
    - transitions.py: Pure transition function and store effects
    - graph.py: Per-location driver applying effects to the store
    - registry.py: One monitor per location
    - recovery.py: Orphan handling at startup and replay from samples

Key Design Decisions:
    - LangGraph is used for STRUCTURE, not LLM reasoning
    - The transition function is pure; only the persist node does I/O
    - State advances only after the store accepted the write
"""

from queuewatch.agent.graph import QueueMonitorGraph
from queuewatch.agent.recovery import rebuild_events, recover_orphans
from queuewatch.agent.registry import MonitorRegistry
from queuewatch.agent.transitions import DetectionPolicy, DetectionThresholds

__all__ = [
    "QueueMonitorGraph",
    "MonitorRegistry",
    "DetectionPolicy",
    "DetectionThresholds",
    "recover_orphans",
    "rebuild_events",
]
