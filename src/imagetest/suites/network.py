# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Multi-NIC networking tests.

Two VMs are attached to two custom-mode networks. The second VM also
gets an alias IP range from a secondary subnet range and reboots during
its tests.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from imagetest.graph.models import Disk, Instance
from imagetest.graph.vm import SHOULD_REBOOT_DURING_TEST

if TYPE_CHECKING:
    from imagetest.graph.workflow import TestWorkflow

NAME = "network"

PING1 = ("ping1", "192.168.0.2")
PING2 = ("ping2", "192.168.0.3")

# Images whose guest environment cannot configure alias ranges or extra NICs
_NO_MULTINIC_IMAGES = ("sles-15", "opensuse-leap", "ubuntu-1604", "ubuntu-pro-1604")

_EL7 = re.compile(r"(centos|rhel)-7")


def _multinic_supported(workflow: TestWorkflow) -> bool:
    image = workflow.image
    if image.is_windows:
        return False
    if image.name.startswith("cos-"):
        return False
    return not any(marker in image.name for marker in _NO_MULTINIC_IMAGES)


def setup(workflow: TestWorkflow) -> None:
    """Create two networks and two multi-NIC VMs that ping each other."""
    network1 = workflow.create_network("network-1", False)
    subnetwork1 = network1.create_subnetwork("subnetwork-1", "10.128.0.0/20")
    subnetwork1.add_secondary_range("secondary-range", "10.14.0.0/16")
    network1.create_firewall_rule("allow-tcp-net1", "tcp", None, ["10.128.0.0/20"])

    network2 = workflow.create_network("network-2", False)
    subnetwork2 = network2.create_subnetwork("subnetwork-2", "192.168.0.0/16")
    network2.create_firewall_rule("allow-tcp-net2", "tcp", None, ["192.168.0.0/16"])

    name, ip = PING1
    vm1 = workflow.create_test_vm(name)
    vm1.add_custom_network(network1, subnetwork1)
    vm1.add_custom_network_with_private_ip(network2, subnetwork2, ip)
    vm1.run_tests("TestSendPing|TestDHCP|TestDefaultMTU|TestNTP")

    tests = "TestStaticIP|TestWaitForPing"
    if _multinic_supported(workflow):
        tests += "|TestAlias|TestGgactlCommand|TestNetworkManagerRestart"

    name, ip = PING2
    vm2 = workflow.create_test_vm_multiple_disks(
        [Disk(name=name)],
        Instance(name=name, metadata={SHOULD_REBOOT_DURING_TEST: "true"}),
    )
    vm2.add_metadata("enable-guest-attributes", "TRUE")
    vm2.add_custom_network(network1, subnetwork1)
    vm2.add_custom_network_with_private_ip(network2, subnetwork2, ip)
    vm2.add_alias_ip_ranges("10.14.8.0/24", "secondary-range")
    vm2.reboot()

    el7 = _EL7.search(workflow.image.family or workflow.image.name) is not None
    if workflow.image.has_feature("GVNIC") and not el7:
        tests += "|TestGVNIC"
        vm2.use_gvnic()
    vm2.run_tests(tests)

    if el7:
        vm3 = workflow.create_test_vm("gvnic-el7")
        vm3.use_gvnic()
        vm3.run_tests("TestGVNIC")
