# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Local SSD mount test."""

from __future__ import annotations

from typing import TYPE_CHECKING

from imagetest.graph.models import PD_BALANCED, Disk, Instance
from imagetest.images import ARCH_ARM64

if TYPE_CHECKING:
    from imagetest.graph.workflow import TestWorkflow

NAME = "lssd"

LSSD_ZONE = "us-central1-a"
LSSD_MACHINE_TYPE = "c3-standard-8-lssd"
BOOT_DISK_SIZE_GB = 10


def setup(workflow: TestWorkflow) -> None:
    """Boot a machine type with bundled local SSDs and mount one of them."""
    image = workflow.image
    if image.architecture == ARCH_ARM64 or not image.has_feature("GVNIC"):
        workflow.skip(f"{LSSD_MACHINE_TYPE} cannot run {image.name}")
        return

    vm = workflow.create_test_vm_multiple_disks(
        [Disk(name="remountLSSD", type=PD_BALANCED, size_gb=BOOT_DISK_SIZE_GB, zone=LSSD_ZONE)],
        Instance(name="remountLSSD", zone=LSSD_ZONE, machine_type=LSSD_MACHINE_TYPE),
    )
    # Local SSDs are not listed under their device name in /dev/disk/by-id
    if image.is_windows:
        vm.add_metadata("hotattach-disk-name", "nvme_card0")
    else:
        vm.add_metadata("hotattach-disk-name", "local-nvme-ssd-0")
    vm.run_tests("TestMount")
