# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Run-wide shared state.

A ``RunContext`` is created once per invocation and handed to every
test suite setup. It carries the settings that are not specific to one
workflow along with the objects shared across workflows.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class RoundRobin:
    """Hands out items from a fixed list in round-robin order.

    Safe to call from several threads.

    Example:
        >>> shapes = RoundRobin(["n1-standard-1", "n2-standard-2"])
        >>> shapes.next(), shapes.next(), shapes.next()
        ('n1-standard-1', 'n2-standard-2', 'n1-standard-1')
    """

    def __init__(self, items: list[str]) -> None:
        if not items:
            raise ValueError(f"{type(self).__name__} needs at least one item")
        self._items = list(items)
        self._index = 0
        self._lock = threading.Lock()

    @property
    def items(self) -> list[str]:
        return list(self._items)

    def next(self) -> str:
        """Return the next item."""
        with self._lock:
            item = self._items[self._index % len(self._items)]
            self._index += 1
            return item


class ZoneAllocator(RoundRobin):
    """Hands out zones in round-robin order.

    Example:
        >>> zones = ZoneAllocator(["us-central1-a", "us-central1-b"])
        >>> zones.next(), zones.next(), zones.next()
        ('us-central1-a', 'us-central1-b', 'us-central1-a')
    """

    @property
    def zones(self) -> list[str]:
        return self.items


class TestMetrics:
    """Counts workflows as they start and finish.

    Updated from scheduler tasks and read for progress output, so every
    access goes through a lock.
    """

    __test__ = False

    def __init__(self, total: int = 0) -> None:
        self._lock = threading.Lock()
        self._total = total
        self._started = 0
        self._finished = 0

    def reset(self, total: int) -> None:
        """Zero the counters for a new batch of ``total`` workflows."""
        with self._lock:
            self._total = total
            self._started = 0
            self._finished = 0

    def start(self) -> None:
        with self._lock:
            self._started += 1

    def done(self) -> None:
        with self._lock:
            self._finished += 1
            finished, total = self._finished, self._total
        logger.info(f"Finished {finished}/{total} workflows")

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    @property
    def started(self) -> int:
        with self._lock:
            return self._started

    @property
    def finished(self) -> int:
        with self._lock:
            return self._finished

    @property
    def running(self) -> int:
        """Number of workflows started but not yet finished."""
        with self._lock:
            return self._started - self._finished

    def snapshot(self) -> tuple[int, int, int]:
        """Return (started, finished, total) read atomically."""
        with self._lock:
            return self._started, self._finished, self._total


@dataclass
class RunContext:
    """Settings and shared objects for one run.

    Attributes:
        project: Project the test resources are created in.
        test_projects: Projects available for round-robin placement.
        zones: Zone allocator shared by every workflow.
        machine_type: Deprecated override for both machine shapes.
        accelerator_type: Accelerator requested by accelerator suites.
        metrics: Workflow progress counters.
    """

    project: str
    zones: ZoneAllocator
    test_projects: list[str] = field(default_factory=list)
    machine_type: str = ""
    accelerator_type: str = ""
    metrics: TestMetrics = field(default_factory=TestMetrics)
    _rotations: dict[str, RoundRobin] = field(default_factory=dict, init=False, repr=False)
    _rotations_lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    @property
    def zone(self) -> str:
        """The first configured zone."""
        return self.zones.zones[0]

    def round_robin(self, key: str, items: tuple[str, ...] | list[str]) -> RoundRobin:
        """Return the rotation registered under ``key`` for this run.

        Suites that spread VMs over a fixed set of zones or machine shapes
        share one rotation per key across all their workflows. The items
        are only read on the first call for a key.

        Args:
            key: Name of the rotation.
            items: Values to rotate through.

        Returns:
            The shared rotation.
        """
        with self._rotations_lock:
            rotation = self._rotations.get(key)
            if rotation is None:
                rotation = RoundRobin(list(items))
                self._rotations[key] = rotation
            return rotation
