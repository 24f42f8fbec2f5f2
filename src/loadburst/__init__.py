"""LoadBurst: controlled bursts of HTTP requests with live results."""

from __future__ import annotations

from loadburst._internal.config import (
    MAX_CONCURRENCY,
    MAX_REQS_PER_SEC,
    MAX_TOTAL_REQUESTS,
    TestConfig,
    clamp_config,
)
from loadburst._internal.errors import AlreadyRunningError, ConfigError, LoadBurstError
from loadburst.engine.orchestrator import Orchestrator, RunPlan, RunState
from loadburst.engine.partitioner import WorkAssignment, partition
from loadburst.engine.protocol import DoneEvent, ResultSink
from loadburst.metrics.models import ResultRow, Summary

__version__ = "0.1.0"

__all__ = [
    "MAX_CONCURRENCY",
    "MAX_REQS_PER_SEC",
    "MAX_TOTAL_REQUESTS",
    "AlreadyRunningError",
    "ConfigError",
    "DoneEvent",
    "LoadBurstError",
    "Orchestrator",
    "ResultRow",
    "ResultSink",
    "RunPlan",
    "RunState",
    "Summary",
    "TestConfig",
    "WorkAssignment",
    "clamp_config",
    "partition",
]
