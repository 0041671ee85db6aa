# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""VM spec change test.

A source VM is booted once, then its boot disk is moved to a derivative
VM with local SSDs and two extra NICs. The guest must cope with the
changed PCIe layout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from imagetest.graph.models import (
    LOCAL_SSD,
    LOCAL_SSD_SIZE_GB,
    PD_BALANCED,
    SCRATCH,
    Disk,
    InitializeParams,
)
from imagetest.images import ARCH_ARM64

if TYPE_CHECKING:
    from imagetest.graph.workflow import TestWorkflow

NAME = "vmspec"

# Zones and machine types in us-central1 with local SSD capacity
LSSD_REGION = "us-central1"
LSSD_ZONES = ("us-central1-a", "us-central1-b", "us-central1-c")
LSSD_MACHINE_TYPES = ("n1-standard-1", "n2-standard-2", "n2d-standard-2")


def _placement(workflow: TestWorkflow) -> tuple[str, str]:
    """Pick the zone and machine type for one workflow.

    Consecutive workflows of a run use different zones to avoid resource
    exhaustion. Without a run context the first of each is used.
    """
    context = workflow.context
    if context is None:
        return LSSD_ZONES[0], LSSD_MACHINE_TYPES[0]
    zone = context.round_robin("vmspec-zones", LSSD_ZONES).next()
    machine_type = context.round_robin("vmspec-machine-types", LSSD_MACHINE_TYPES).next()
    return zone, machine_type


def setup(workflow: TestWorkflow) -> None:
    """Boot a derivative VM with local SSDs and extra NICs."""
    image = workflow.image
    if image.architecture == ARCH_ARM64:
        workflow.skip("vmspec not supported on ARM images")
        return
    if "ubuntu" in image.name and "2204" in image.name:
        workflow.skip("vmspec not supported on ubuntu-2204")
        return

    network1 = workflow.create_network("test-network", False)
    subnet1 = network1.create_subnetwork("test-subnetwork-1", "10.128.0.0/16")
    subnet1.set_region(LSSD_REGION)
    network2 = workflow.create_network("test-network-2", False)
    subnet2 = network2.create_subnetwork("test-subnetwork-2", "10.0.0.0/24")
    subnet2.set_region(LSSD_REGION)

    zone, machine_type = _placement(workflow)

    source = workflow.create_test_vm_multiple_disks(
        [Disk(name="source", type=PD_BALANCED, zone=zone)]
    )
    source.force_machine_type(machine_type)
    source.force_zone(zone)
    source.run_tests("TestEmpty")

    derivative = source.create_derivative_vm("lssd")
    derivative.force_machine_type(machine_type)
    derivative.force_zone(zone)

    # Two local SSDs shift the PCIe slots of the NICs added after them
    local_ssd = InitializeParams(disk_size_gb=LOCAL_SSD_SIZE_GB, disk_type=LOCAL_SSD)
    derivative.add_disk(SCRATCH, local_ssd)
    derivative.add_disk(SCRATCH, local_ssd)
    derivative.add_custom_network(network1, subnet1)
    derivative.add_custom_network(network2, subnet2)

    ping_test = "TestWindowsPing" if image.is_windows else "TestPing"
    derivative.run_tests(f"TestPCIEChanged|{ping_test}|TestMetadataServer")
