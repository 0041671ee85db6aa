# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Concurrent execution of test workflows.

The scheduler runs a batch of workflows through an execution backend
with at most ``parallel_count`` in flight. Launches happen in batch order
and at least ``parallel_stagger`` apart, so that workflows sharing one
project do not all start creating resources at the same moment.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING

from imagetest.config.schema import parse_duration
from imagetest.engine.context import TestMetrics
from imagetest.exceptions import ArtifactError, ExecutionError, ResultParseError
from imagetest.results.parser import GoTestLogParser, ResultParser
from imagetest.results.reducer import TestSuiteResult, TestSuites, reduce_to_suite

if TYPE_CHECKING:
    from imagetest.engine.artifacts import ObjectStore
    from imagetest.engine.backend import ExecutionBackend
    from imagetest.graph.workflow import TestWorkflow

logger = logging.getLogger(__name__)


def _verbose_log(message: str, style: str = "dim") -> None:
    """Lazy import wrapper for verbose_log to avoid circular imports."""
    from imagetest.cli.run import verbose_log

    verbose_log(message, style)


def _verbose_log_workflow_start(workflow: TestWorkflow, started: int, total: int) -> None:
    """Lazy import wrapper for verbose_log_workflow_start."""
    from imagetest.cli.run import verbose_log_workflow_start

    verbose_log_workflow_start(workflow.name, workflow.image.name, started, total)


def _verbose_log_workflow_complete(result: TestSuiteResult, elapsed: float) -> None:
    """Lazy import wrapper for verbose_log_workflow_complete."""
    from imagetest.cli.run import verbose_log_workflow_complete

    verbose_log_workflow_complete(result, elapsed)


class RunMode(str, Enum):
    """What the scheduler does with each workflow."""

    RUN = "run"
    PRINT = "print"
    VALIDATE = "validate"


def suite_name(workflow: TestWorkflow) -> str:
    """Name of the suite result reported for a workflow."""
    return f"{workflow.name}-{workflow.image.name}"


def is_runnable(workflow: TestWorkflow) -> bool:
    """Return True unless the workflow was skipped or has no steps."""
    return not workflow.skipped and bool(workflow.steps)


class Scheduler:
    """Runs test workflows with bounded concurrency and staggered launches.

    Example:
        >>> async with CommandBackend() as backend:
        ...     scheduler = Scheduler(backend, parallel_count=5, parallel_stagger="60s",
        ...                           store=LocalObjectStore("results"))
        ...     suites = await scheduler.run(workflows)
    """

    def __init__(
        self,
        backend: ExecutionBackend,
        *,
        parallel_count: int = 5,
        parallel_stagger: float | str = 0.0,
        mode: RunMode | str = RunMode.RUN,
        store: ObjectStore | None = None,
        parser: ResultParser | None = None,
        metrics: TestMetrics | None = None,
        printer: Callable[[str], None] = print,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the scheduler.

        Args:
            backend: Backend that executes the workflows.
            parallel_count: Maximum number of workflows in flight.
            parallel_stagger: Minimum delay between two launches, in
                seconds or as a duration such as ``"1m30s"``.
            mode: ``run``, ``print`` or ``validate``.
            store: Object store the test logs are read from.
            parser: Log parser; defaults to ``GoTestLogParser``.
            metrics: Progress counters, reset at the start of each run. A
                new set is created when omitted.
            printer: Receives each workflow document in print mode.
            clock: Monotonic clock used for the launch stagger.
            sleep: Coroutine used to wait out the stagger.

        Raises:
            ValueError: If ``parallel_count`` is below 1 or the stagger is
                not a valid duration.
        """
        if parallel_count < 1:
            raise ValueError("parallel_count must be at least 1")
        if isinstance(parallel_stagger, str):
            parallel_stagger = parse_duration(parallel_stagger)

        self.backend = backend
        self.parallel_count = parallel_count
        self.parallel_stagger = float(parallel_stagger)
        self.mode = RunMode(mode)
        self.store = store
        self.parser = parser or GoTestLogParser()
        self.metrics = metrics or TestMetrics()
        self._printer = printer
        self._clock = clock
        self._sleep = sleep
        self._last_launch: float | None = None

    async def run(self, workflows: list[TestWorkflow]) -> TestSuites:
        """Execute a batch of workflows.

        Skipped workflows and workflows without steps are not executed
        and are reported as skipped suites. A failure of one workflow is
        recorded on its result and does not affect the others.

        Args:
            workflows: The workflows, in launch order.

        Returns:
            The results, in batch order.
        """
        suites = TestSuites()
        runnable = [wf for wf in workflows if is_runnable(wf)]

        if self.mode is RunMode.PRINT:
            for workflow in runnable:
                self._printer(workflow.to_json())
            return suites

        # Synchronization primitives are bound to the running loop
        semaphore = asyncio.Semaphore(self.parallel_count)
        launch_lock = asyncio.Lock()
        self._last_launch = None
        self.metrics.reset(len(runnable))

        async def run_one(workflow: TestWorkflow) -> TestSuiteResult:
            async with semaphore:
                await self._wait_for_launch_slot(launch_lock)
                return await self._execute(workflow)

        tasks = [asyncio.ensure_future(run_one(wf)) for wf in runnable]
        results = iter(await asyncio.gather(*tasks))

        for workflow in workflows:
            if is_runnable(workflow):
                result = next(results)
                if self.mode is RunMode.VALIDATE and not result.errors:
                    continue
                suites.add(result)
            elif self.mode is RunMode.RUN:
                reason = workflow.skipped_message or "no steps to run"
                suites.add(TestSuiteResult.from_skip(suite_name(workflow), reason))
        return suites

    async def _wait_for_launch_slot(self, launch_lock: asyncio.Lock) -> None:
        async with launch_lock:
            if self._last_launch is not None:
                remaining = self._last_launch + self.parallel_stagger - self._clock()
                if remaining > 0:
                    await self._sleep(remaining)
            self._last_launch = self._clock()

    async def _execute(self, workflow: TestWorkflow) -> TestSuiteResult:
        name = suite_name(workflow)
        self.metrics.start()
        started, _, total = self.metrics.snapshot()
        _verbose_log_workflow_start(workflow, started, total)
        logger.info(f"Launching {name} ({self.metrics.running} running)")
        start = time.time()

        try:
            if self.mode is RunMode.VALIDATE:
                await self.backend.validate(workflow)
                result = TestSuiteResult(name=name)
            else:
                await self.backend.run(workflow)
                result = await asyncio.to_thread(self._collect_results, workflow)
        except ExecutionError as e:
            logger.error(f"{name} failed to execute: {e}")
            result = TestSuiteResult.from_error(name, str(e))
        except Exception as e:
            logger.error(f"{name} failed unexpectedly: {e}")
            result = TestSuiteResult.from_error(name, f"{type(e).__name__}: {e}")
        finally:
            self.metrics.done()

        elapsed = time.time() - start
        _verbose_log_workflow_complete(result, elapsed)
        return result

    def _collect_results(self, workflow: TestWorkflow) -> TestSuiteResult:
        """Read every VM's log from the store and reduce them to one suite."""
        name = suite_name(workflow)
        if self.store is None:
            return TestSuiteResult.from_error(name, "no results store configured")

        logs: list[str] = []
        for vm_name in workflow.vms:
            path = workflow.results_url_for_vm(vm_name)
            try:
                logs.append(self.store.read_text(path))
            except ArtifactError as e:
                logger.warning(f"No test log for {vm_name} in {name}: {e}")
                _verbose_log(f"  No test log for {vm_name}", "yellow")

        if not logs:
            return TestSuiteResult.from_error(name, f"no test results found for {name}")

        try:
            return reduce_to_suite(logs, name, self.parser)
        except ResultParseError as e:
            logger.error(f"Failed to parse test results of {name}: {e}")
            return TestSuiteResult.from_error(name, str(e))
