# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Disk resize and block device naming tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from imagetest.graph.models import HYPERDISK_BALANCED, Disk, Instance
from imagetest.graph.vm import SHOULD_REBOOT_DURING_TEST
from imagetest.images import ARCH_ARM64, ARCH_X86_64

if TYPE_CHECKING:
    from imagetest.graph.workflow import TestWorkflow

NAME = "disk"

RESIZE_DISK_SIZE_GB = 200

# (machine type, architecture) pairs exercising NVMe device naming
BLOCK_NAMING_CASES = (
    ("c4a-standard-1", ARCH_ARM64),
    ("c3-standard-4", ARCH_X86_64),
)


def block_naming_vm_name(machine_type: str) -> str:
    series = machine_type.partition("-")[0]
    return f"blockNaming{series.upper()}"


def setup(workflow: TestWorkflow) -> None:
    """Resize the boot disk across a reboot and check block device names."""
    image = workflow.image
    vm = workflow.create_test_vm_multiple_disks(
        [Disk(name="resize")],
        Instance(name="resize", metadata={SHOULD_REBOOT_DURING_TEST: "true"}),
    )
    # The resize test only has a Linux implementation
    if not image.is_windows:
        vm.resize_disk_and_reboot(RESIZE_DISK_SIZE_GB)
    vm.run_tests("TestDiskReadWrite|TestDiskResize")

    if image.is_windows or not image.has_feature("GVNIC"):
        return
    for machine_type, architecture in BLOCK_NAMING_CASES:
        if architecture != image.architecture:
            continue
        name = block_naming_vm_name(machine_type)
        naming = workflow.create_test_vm_multiple_disks(
            [
                Disk(name=name, type=HYPERDISK_BALANCED),
                Disk(name="secondary", type=HYPERDISK_BALANCED, size_gb=10),
            ],
            Instance(name=name, machine_type=machine_type),
        )
        naming.run_tests("TestBlockDeviceNaming")
