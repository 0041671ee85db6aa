# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Suspend and resume test."""

from __future__ import annotations

from typing import TYPE_CHECKING

from imagetest.graph.models import Disk, Instance
from imagetest.images import ARCH_ARM64

if TYPE_CHECKING:
    from imagetest.graph.workflow import TestWorkflow

NAME = "suspendresume"

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

# Matched against the image name
UNSUPPORTED_IMAGES = (
    "windows-server-2025",
    "windows-2025-dc",
    "windows-11-24h2",
    "windows-server-2012-r2",
    "rhel-8-2-sap",
    "rhel-8-1-sap",
    "debian-10",
    "ubuntu-pro-1804-bionic-arm64",
)


def setup(workflow: TestWorkflow) -> None:
    """Let the guest suspend itself, then resume it from the host."""
    if workflow.image.architecture == ARCH_ARM64:
        workflow.skip("suspend/resume is not supported on ARM64")
        return
    if any(match in workflow.image.name for match in UNSUPPORTED_IMAGES):
        workflow.skip(f"suspend/resume is not supported on {workflow.image.name}")
        return

    vm = workflow.create_test_vm_multiple_disks(
        [Disk(name="suspend")],
        Instance(name="suspend", scopes=[CLOUD_PLATFORM_SCOPE]),
    )
    vm.run_tests("TestSuspend")
    vm.resume()
