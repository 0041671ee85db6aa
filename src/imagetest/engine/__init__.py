# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Workflow execution for imagetest.

This module runs built workflows on the workflow engine and collects
their results from the artifact store.
"""

from imagetest.engine.artifacts import LocalObjectStore, ObjectStore, download_folder
from imagetest.engine.backend import CommandBackend, ExecutionBackend, MockBackend
from imagetest.engine.context import RoundRobin, RunContext, TestMetrics, ZoneAllocator
from imagetest.engine.scheduler import RunMode, Scheduler

__all__ = [
    "CommandBackend",
    "ExecutionBackend",
    "LocalObjectStore",
    "MockBackend",
    "ObjectStore",
    "RoundRobin",
    "RunContext",
    "RunMode",
    "Scheduler",
    "TestMetrics",
    "ZoneAllocator",
    "download_folder",
]
