# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Test suites for imagetest.

Importing this package registers the built-in suites in the default
registry.
"""

from imagetest.suites import disk, imageboot, lssd, network, suspendresume, vmspec
from imagetest.suites.registry import (
    SuiteDefinition,
    SuiteRegistry,
    default_registry,
    iter_suites,
    register_suite,
)

BUILTIN_SUITES = (
    (imageboot.NAME, imageboot.setup, "Boot, reboot, boot time and secure boot"),
    (network.NAME, network.setup, "Multi-NIC networking, alias IPs and gVNIC"),
    (suspendresume.NAME, suspendresume.setup, "Guest suspend and host resume"),
    (lssd.NAME, lssd.setup, "Local SSD mount on an LSSD machine type"),
    (disk.NAME, disk.setup, "Boot disk resize and block device naming"),
    (vmspec.NAME, vmspec.setup, "Boot disk moved to a VM with a different spec"),
)


def register_builtin_suites(registry: SuiteRegistry = default_registry) -> None:
    """Register every built-in suite not yet present in ``registry``."""
    for name, setup, description in BUILTIN_SUITES:
        if name not in registry:
            registry.register(name, setup, description)


register_builtin_suites()

__all__ = [
    "BUILTIN_SUITES",
    "SuiteDefinition",
    "SuiteRegistry",
    "default_registry",
    "iter_suites",
    "register_builtin_suites",
    "register_suite",
]
