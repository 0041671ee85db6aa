# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Typer application definition for the imagetest CLI.

This module defines the main Typer app and global options.
"""

from __future__ import annotations

import contextvars
import logging
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from imagetest import __version__

# Create the main Typer app
app = typer.Typer(
    name="imagetest",
    help="imagetest - Run integration test suites against VM images.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console(stderr=True)
output_console = Console()

# Context variable for verbose mode (default True - show progress output)
verbose_mode: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "verbose_mode", default=True
)

# Context variable for full verbose mode (--verbose flag - show workflow documents)
full_mode: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "full_mode", default=False
)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def is_verbose() -> bool:
    """Check if verbose mode is enabled (default True)."""
    return verbose_mode.get()


def is_full() -> bool:
    """Check if full verbose mode is enabled (--verbose flag).

    When full mode is enabled, workflow documents are shown untruncated
    and library debug logging is turned on.
    """
    return full_mode.get()


def format_error(error: Exception) -> Panel:
    """Format an exception for Rich console display.

    Creates a styled Panel with error type, message, location (if available),
    and suggestion (if available).

    Args:
        error: The exception to format.

    Returns:
        Rich Panel with formatted error content.
    """
    from imagetest.exceptions import ImageTestError

    content = Text()

    # First line only for main message
    error_message = str(error).split("\n")[0]
    content.append(error_message, style="bold red")

    if isinstance(error, ImageTestError):
        if error.file_path or error.line_number:
            content.append("\n\n")
            content.append("📍 Location: ", style="yellow")
            if error.file_path:
                content.append(error.file_path, style="cyan")
            if error.line_number:
                if error.file_path:
                    content.append(":", style="yellow")
                content.append(f"line {error.line_number}", style="cyan")

        # Add field path for configuration errors
        if getattr(error, "field_path", None):
            content.append("\n")
            content.append("📋 Field: ", style="yellow")
            content.append(error.field_path, style="cyan")  # type: ignore[attr-defined]

        if error.suggestion:
            content.append("\n\n")
            content.append("💡 Suggestion: ", style="green")
            content.append(error.suggestion, style="white")

    error_type = type(error).__name__
    if isinstance(error, ImageTestError):
        error_type = error.error_type

    return Panel(
        content,
        title=f"[bold red]❌ {error_type}[/bold red]",
        border_style="red",
        padding=(1, 2),
    )


def print_error(error: Exception) -> None:
    """Print a formatted error to stderr.

    Args:
        error: The exception to print.
    """
    console.print(format_error(error))


def configure_logging(debug: bool) -> None:
    """Send library logging to stderr; DEBUG with --verbose, else WARNING."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


def version_callback(value: bool) -> None:
    """Display version information and exit."""
    if value:
        output_console.print(f"imagetest v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-V",
            help="Show workflow documents and debug logging.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Hide progress output.",
        ),
    ] = False,
) -> None:
    """imagetest - Run integration test suites against VM images."""
    full_mode.set(verbose)
    verbose_mode.set(not quiet)
    configure_logging(verbose)


@app.command()
def run(
    project: Annotated[
        str | None,
        typer.Option("--project", help="Project to create test resources in."),
    ] = None,
    test_projects: Annotated[
        str | None,
        typer.Option("--test-projects", help="Comma separated projects used round-robin."),
    ] = None,
    zone: Annotated[
        str | None,
        typer.Option(
            "--zone",
            help="Zone to run in [default: us-central1-a]. A comma list is used round-robin.",
        ),
    ] = None,
    images: Annotated[
        str | None,
        typer.Option("--images", help="Comma separated images: short names or full URLs."),
    ] = None,
    filter: Annotated[
        str | None,
        typer.Option("--filter", help="Only run suites whose names match this regex."),
    ] = None,
    exclude: Annotated[
        str | None,
        typer.Option("--exclude", help="Skip suites whose names match this regex."),
    ] = None,
    exclude_discrete_tests: Annotated[
        str | None,
        typer.Option(
            "--exclude-discrete-tests",
            help="Regex of individual tests the guests should skip.",
        ),
    ] = None,
    parallel_count: Annotated[
        int | None,
        typer.Option("--parallel-count", help="Workflows to run at once [default: 5]."),
    ] = None,
    parallel_stagger: Annotated[
        str | None,
        typer.Option(
            "--parallel-stagger",
            help="Minimum delay between workflow launches [default: 60s].",
        ),
    ] = None,
    timeout: Annotated[
        str | None,
        typer.Option("--timeout", help="Default step timeout [default: 45m]."),
    ] = None,
    out_path: Annotated[
        str | None,
        typer.Option(
            "--out-path",
            help="JUnit report path [default: junit.xml, or $ARTIFACTS/junit.xml].",
        ),
    ] = None,
    print_only: Annotated[
        bool,
        typer.Option("--print", help="Print the workflow documents instead of running them."),
    ] = False,
    validate_only: Annotated[
        bool,
        typer.Option("--validate", help="Validate the workflows instead of running them."),
    ] = False,
    set_exit_status: Annotated[
        bool | None,
        typer.Option(
            "--set-exit-status/--no-set-exit-status",
            help="Exit with status 1 when any test fails [default: on].",
        ),
    ] = None,
    machine_type: Annotated[
        str | None,
        typer.Option(
            "--machine-type",
            help="Deprecated. Machine type for every architecture.",
        ),
    ] = None,
    x86_shape: Annotated[
        str | None,
        typer.Option("--x86-shape", help="Machine type for X86_64 images."),
    ] = None,
    arm64_shape: Annotated[
        str | None,
        typer.Option("--arm64-shape", help="Machine type for ARM64 images."),
    ] = None,
    use_reservations: Annotated[
        bool,
        typer.Option("--use-reservations", help="Consume reservations when creating VMs."),
    ] = False,
    reservation_urls: Annotated[
        str | None,
        typer.Option("--reservation-urls", help="Comma separated reservations to consume."),
    ] = None,
    results_path: Annotated[
        str | None,
        typer.Option("--results-path", help="Local directory holding the test logs."),
    ] = None,
    local_path: Annotated[
        str | None,
        typer.Option("--local-path", help="Directory to mirror run artifacts into."),
    ] = None,
    engine_binary: Annotated[
        str | None,
        typer.Option("--engine-binary", help="Workflow engine executable [default: daisy]."),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="YAML file with run settings. Flags override its values.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
) -> None:
    """Run test suites against one or more images.

    Builds a workflow for every selected suite and image, runs them on
    the workflow engine and writes a JUnit report.

    \b
    Examples:
        imagetest run --project my-project --images debian-12,rhel-9
        imagetest run --project my-project --images debian-12 --filter '^network$'
        imagetest run --images debian-12 --project p --print
        imagetest run --config run.yaml --parallel-count 10
    """
    from imagetest.cli.run import resolve_run_config, run_tests
    from imagetest.exceptions import ConfigurationError

    mode: str | None = None
    if print_only:
        mode = "print"
    if validate_only:
        mode = "validate"

    overrides: dict[str, Any] = {
        "project": project,
        "test_projects": test_projects,
        "zone": zone,
        "images": images,
        "filter": filter,
        "exclude": exclude,
        "exclude_discrete_tests": exclude_discrete_tests,
        "parallel_count": parallel_count,
        "parallel_stagger": parallel_stagger,
        "timeout": timeout,
        "out_path": out_path,
        "mode": mode,
        "set_exit_status": set_exit_status,
        "machine_type": machine_type,
        "x86_shape": x86_shape,
        "arm64_shape": arm64_shape,
        "use_reservations": use_reservations or None,
        "reservation_urls": reservation_urls,
        "results_path": results_path,
        "local_path": local_path,
        "engine_binary": engine_binary,
    }

    try:
        if print_only and validate_only:
            raise ConfigurationError(
                "--print and --validate cannot be combined",
                suggestion="Pass only one of --print or --validate",
            )
        run_config = resolve_run_config(config, overrides)
        exit_code = run_tests(run_config, console=output_console)
    except Exception as e:
        print_error(e)
        raise typer.Exit(code=1) from None

    if exit_code:
        raise typer.Exit(code=exit_code)


@app.command()
def suites(
    filter: Annotated[
        str,
        typer.Option("--filter", help="Only list suites whose names match this regex."),
    ] = "",
    exclude: Annotated[
        str,
        typer.Option("--exclude", help="Hide suites whose names match this regex."),
    ] = "",
) -> None:
    """List the registered test suites.

    \b
    Examples:
        imagetest suites
        imagetest suites --filter '^image'
    """
    import re

    from imagetest.suites import iter_suites

    try:
        selected = list(iter_suites(filter, exclude))
    except re.error as e:
        print_error(e)
        raise typer.Exit(code=1) from None

    table = Table(title="Test Suites")
    table.add_column("Suite", style="cyan")
    table.add_column("Description")
    for suite in selected:
        table.add_row(suite.name, suite.description or "[dim]-[/dim]")
    output_console.print(table)
