# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Implementation of the 'imagetest run' command.

This module builds one workflow per (suite, image) pair, hands them to
the scheduler and writes the JUnit report.
"""

from __future__ import annotations

import asyncio
import itertools
import os
import time
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from imagetest.config.loader import build_config, load_config
from imagetest.engine.artifacts import LocalObjectStore, download_folder
from imagetest.engine.backend import CommandBackend
from imagetest.engine.context import RunContext, TestMetrics, ZoneAllocator
from imagetest.engine.scheduler import Scheduler
from imagetest.exceptions import ConfigurationError
from imagetest.graph.workflow import TestWorkflow, WorkflowOptions
from imagetest.images import resolve_image
from imagetest.results.junit import write_junit
from imagetest.suites import default_registry

if TYPE_CHECKING:
    from imagetest.config.schema import RunConfig
    from imagetest.engine.artifacts import ObjectStore
    from imagetest.engine.backend import ExecutionBackend
    from imagetest.images import ImageCatalog
    from imagetest.results.reducer import TestSuiteResult, TestSuites
    from imagetest.suites.registry import SuiteRegistry

# Verbose console for logging (stderr)
_verbose_console = Console(stderr=True, highlight=False)

ARTIFACTS_ENV = "ARTIFACTS"


def verbose_log(message: str, style: str = "dim") -> None:
    """Log a message if verbose mode is enabled.

    Args:
        message: The message to log.
        style: Rich style for the message.
    """
    from imagetest.cli.app import is_verbose

    if is_verbose():
        _verbose_console.print(f"[{style}]{message}[/{style}]")


def verbose_log_section(title: str, content: str, truncate: bool = True) -> None:
    """Log a section with title if verbose mode is enabled.

    Args:
        title: Section title.
        content: Section content.
        truncate: If True, truncate content to 500 chars unless full mode is enabled.
    """
    from imagetest.cli.app import is_full, is_verbose

    if is_verbose():
        display_content = content
        if truncate and not is_full() and len(content) > 500:
            display_content = content[:500] + "\n... [truncated, use --verbose for full]"

        _verbose_console.print(
            Panel(display_content, title=f"[cyan]{title}[/cyan]", border_style="dim")
        )


def verbose_log_timing(operation: str, elapsed: float) -> None:
    """Log timing information if verbose mode is enabled."""
    from imagetest.cli.app import is_verbose

    if is_verbose():
        _verbose_console.print(f"[dim]⏱ {operation}: {elapsed:.2f}s[/dim]")


def verbose_log_workflow_start(name: str, image: str, started: int, total: int) -> None:
    """Log a workflow launch with visual formatting.

    Args:
        name: Suite name of the workflow.
        image: Name of the image under test.
        started: Number of workflows launched so far, this one included.
        total: Number of workflows in the run.
    """
    from imagetest.cli.app import is_verbose

    if is_verbose():
        text = Text()
        text.append("┌─ ", style="cyan")
        text.append(name, style="cyan bold")
        text.append(f" on {image}", style="cyan")
        text.append(f" [{started}/{total}]", style="dim")
        _verbose_console.print(text)


def verbose_log_workflow_complete(result: TestSuiteResult, elapsed: float) -> None:
    """Log a workflow completion with its test counts."""
    from imagetest.cli.app import is_verbose

    if is_verbose():
        failed = result.failures + result.errors > 0
        style = "red" if failed else "green"
        parts = [f"{elapsed:.2f}s", f"{result.tests} tests"]
        if result.failures:
            parts.append(f"{result.failures} failed")
        if result.errors:
            parts.append(f"{result.errors} errors")
        if result.skipped:
            parts.append(f"{result.skipped} skipped")

        text = Text()
        text.append("└─ ", style=style)
        text.append("✗ " if failed else "✓ ", style=style)
        text.append(result.name, style=style)
        text.append(f"  ({', '.join(parts)})", style="dim")
        _verbose_console.print(text)


def resolve_run_config(
    config_path: Path | None, overrides: Mapping[str, Any]
) -> RunConfig:
    """Load the run configuration and apply command line overrides.

    ``$ARTIFACTS/junit.xml`` replaces the report path when the
    ``ARTIFACTS`` environment variable is set.

    Raises:
        ConfigurationError: If the configuration is invalid.
    """
    overrides = dict(overrides)
    artifacts = os.environ.get(ARTIFACTS_ENV)
    if artifacts:
        overrides["out_path"] = str(Path(artifacts) / "junit.xml")

    if config_path is not None:
        verbose_log(f"Loading configuration: {config_path}")
        return load_config(config_path, overrides)
    return build_config(overrides)


def build_context(config: RunConfig) -> RunContext:
    """Create the run-wide shared state for a configuration."""
    return RunContext(
        project=config.project,
        zones=ZoneAllocator(config.zones),
        test_projects=list(config.test_projects),
        machine_type=config.machine_type,
        accelerator_type=config.accelerator_type,
    )


def build_workflows(
    config: RunConfig,
    context: RunContext,
    registry: SuiteRegistry = default_registry,
    catalog: ImageCatalog | None = None,
) -> list[TestWorkflow]:
    """Build one workflow per selected suite and image.

    Workflows take their zone from the context's zone allocator and their
    project round-robin from the test projects.

    Args:
        config: The run configuration.
        context: Run-wide shared state.
        registry: Registry the suites are selected from.
        catalog: Catalog used to look up image metadata.

    Returns:
        The workflows, suites in registration order and images in the
        configured order.

    Raises:
        ConfigurationError: If no images are configured or no suite
            matches the filters.
        ImageResolutionError: If an image name cannot be resolved.
        WorkflowBuildError: If a suite setup fails.
    """
    from imagetest.cli.app import is_full

    config.check_runnable()
    images = [resolve_image(image) for image in config.images]
    suites = list(registry.iter_suites(config.filter, config.exclude))
    if not suites:
        raise ConfigurationError(
            f"No test suites match filter '{config.filter}' and exclude '{config.exclude}'",
            suggestion="List the available suites with 'imagetest suites'",
            field_path="filter",
        )

    projects = itertools.cycle(config.test_projects or [config.project])
    workflows: list[TestWorkflow] = []
    for suite in suites:
        for image in images:
            options = WorkflowOptions(
                name=suite.name,
                image=image,
                project=next(projects),
                zone=context.zones.next(),
                timeout=config.timeout,
                exclude_filter=config.exclude_discrete_tests,
                x86_shape=config.x86_shape,
                arm64_shape=config.arm64_shape,
                use_reservations=config.use_reservations,
                reservation_urls=list(config.reservation_urls),
                accelerator_type=config.accelerator_type,
            )
            workflow = TestWorkflow(options, catalog=catalog, context=context)
            suite.setup(workflow)
            verbose_log(
                f"Built {suite.name} on {workflow.image.name}: "
                f"{len(workflow.steps)} steps, {len(workflow.vms)} VMs"
            )
            if is_full() and workflow.steps:
                verbose_log_section(f"{suite.name} on {workflow.image.name}", workflow.to_json())
            workflows.append(workflow)
    return workflows


async def run_workflows_async(
    config: RunConfig,
    workflows: list[TestWorkflow],
    backend: ExecutionBackend | None = None,
    store: ObjectStore | None = None,
    metrics: TestMetrics | None = None,
) -> TestSuites:
    """Run workflows through the scheduler.

    Args:
        config: The run configuration.
        workflows: The workflows to run.
        backend: Execution backend; runs the engine binary when omitted.
        store: Results store; a local store at ``results_path`` when omitted.
        metrics: Progress counters shared with the run context.

    Returns:
        The results of every workflow.
    """
    if store is None and config.results_path:
        store = LocalObjectStore(config.results_path)
    if backend is None:
        backend = CommandBackend(config.engine_binary)

    async with backend:
        scheduler = Scheduler(
            backend,
            parallel_count=config.parallel_count,
            parallel_stagger=config.stagger_seconds,
            mode=config.mode,
            store=store,
            metrics=metrics,
        )
        return await scheduler.run(workflows)


def display_summary(suites: TestSuites, console: Console | None = None) -> None:
    """Display per-suite results with Rich formatting."""
    output_console = console if console is not None else Console()

    table = Table(title="Test Results")
    table.add_column("Suite", style="cyan")
    table.add_column("Tests", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Time", justify="right")

    for suite in suites.suites:
        failures = f"[red]{suite.failures}[/red]" if suite.failures else "0"
        errors = f"[red]{suite.errors}[/red]" if suite.errors else "0"
        table.add_row(
            suite.name,
            str(suite.tests),
            failures,
            errors,
            str(suite.skipped),
            f"{suite.time}s",
        )

    output_console.print(table)
    output_console.print(
        f"[dim]Total tests:[/dim] {suites.tests} | "
        f"[dim]Failures:[/dim] {suites.failures} | "
        f"[dim]Errors:[/dim] {suites.errors} | "
        f"[dim]Skipped:[/dim] {suites.skipped}"
    )


def run_tests(
    config: RunConfig,
    backend: ExecutionBackend | None = None,
    store: ObjectStore | None = None,
    console: Console | None = None,
) -> int:
    """Build, run and report every selected workflow.

    Args:
        config: The run configuration.
        backend: Execution backend override.
        store: Results store override.
        console: Console the summary is printed to.

    Returns:
        The process exit code: 1 if exit status reporting is on and any
        test failed or errored, otherwise 0.

    Raises:
        ImageTestError: If the configuration is incomplete, a suite setup
            fails, or no workflows were built.
    """
    start_time = time.time()

    context = build_context(config)
    workflows = build_workflows(config, context)
    if not workflows:
        raise ConfigurationError("No workflows to run")
    verbose_log_timing(f"Built {len(workflows)} workflows", time.time() - start_time)

    if store is None and config.results_path:
        store = LocalObjectStore(config.results_path)
    suites = asyncio.run(run_workflows_async(config, workflows, backend, store, context.metrics))

    if config.mode != "run":
        if suites.errors:
            display_summary(suites, console)
            return 1
        action = "validated" if config.mode == "validate" else "printed"
        verbose_log(f"{len(workflows)} workflows {action}")
        return 0

    report = write_junit(suites, config.out_path)
    verbose_log(f"JUnit report written to {report}")
    if config.local_path and store is not None:
        download_folder(store, "", config.local_path)

    display_summary(suites, console)
    verbose_log_timing("Run complete", time.time() - start_time)

    if config.set_exit_status and suites.has_failures():
        return 1
    return 0
