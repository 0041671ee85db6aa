"""Pytest configuration and shared fixtures for imagetest tests.

This module contains fixtures used across multiple test modules.
"""

from pathlib import Path

import pytest

from imagetest.graph.workflow import TestWorkflow, WorkflowOptions
from imagetest.images import ARCH_ARM64, Image

DEBIAN_12 = "projects/debian-cloud/global/images/family/debian-12"
DEBIAN_12_ARM64 = "projects/debian-cloud/global/images/family/debian-12-arm64"
WINDOWS_2022 = "projects/windows-cloud/global/images/family/windows-2022"

PASSING_LOG = """\
=== RUN   TestGuestBoot
--- PASS: TestGuestBoot (0.02s)
=== RUN   TestGuestReboot
--- PASS: TestGuestReboot (1.50s)
PASS
"""

FAILING_LOG = """\
=== RUN   TestDiskResize
    disk_test.go:42: expected 200GB, got 10GB
    disk_test.go:43: resize did not happen
--- FAIL: TestDiskResize (0.03s)
FAIL
"""


@pytest.fixture
def options() -> WorkflowOptions:
    """Return workflow options for a suite run against debian-12."""
    return WorkflowOptions(
        name="imageboot",
        image=DEBIAN_12,
        project="test-project",
        zone="us-central1-a",
    )


@pytest.fixture
def workflow(options: WorkflowOptions) -> TestWorkflow:
    """Return an empty workflow for debian-12."""
    return TestWorkflow(options)


@pytest.fixture
def arm_workflow(options: WorkflowOptions) -> TestWorkflow:
    """Return an empty workflow for an ARM64 image."""
    options.image = DEBIAN_12_ARM64
    return TestWorkflow(options)


@pytest.fixture
def windows_workflow(options: WorkflowOptions) -> TestWorkflow:
    """Return an empty workflow for a Windows image."""
    options.image = WINDOWS_2022
    return TestWorkflow(options)


@pytest.fixture
def bare_arm_image() -> Image:
    """Return ARM64 image metadata without any guest OS features."""
    return Image(name="custom-arm64", architecture=ARCH_ARM64)


@pytest.fixture
def results_dir(tmp_path: Path) -> Path:
    """Return an empty directory acting as the results store root."""
    root = tmp_path / "results"
    root.mkdir()
    return root


@pytest.fixture
def passing_log() -> str:
    """Return go test output with two passing tests."""
    return PASSING_LOG


@pytest.fixture
def failing_log() -> str:
    """Return go test output with one failing test."""
    return FAILING_LOG
