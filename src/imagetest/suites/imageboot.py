# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Boot, reboot and secure boot tests."""

from __future__ import annotations

import re
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from imagetest.graph.workflow import TestWorkflow

NAME = "imageboot"

# Images that cannot boot with secure boot enabled
SECURE_BOOT_UNSUPPORTED = (
    re.compile(r"debian-1[01].*arm64"),
    re.compile(r"windows-server-2012-r2-dc-core"),
    re.compile(r"rocky-linux-9.*arm64"),
    re.compile(r"rhel-9.*arm64"),
    re.compile(r"(sles-15|opensuse-leap).*arm64"),
)


def supports_secure_boot(workflow: TestWorkflow) -> bool:
    if any(pattern.search(workflow.image.name) for pattern in SECURE_BOOT_UNSUPPORTED):
        return False
    return workflow.image.has_feature("UEFI_COMPATIBLE")


def setup(workflow: TestWorkflow) -> None:
    """Boot and reboot the image, then check boot time and secure boot."""
    boot = workflow.create_test_vm("boot")
    boot.reboot()
    boot.run_tests("TestGuestBoot|TestGuestReboot$")

    guest_reboot = workflow.create_test_vm("guestreboot")
    guest_reboot.run_tests("TestGuestRebootOnHost")

    boot_time = workflow.create_test_vm("boottime")
    boot_time.add_metadata("start-time", str(int(time.time())))
    boot_time.run_tests("TestStartTime|TestBootTime")

    if not supports_secure_boot(workflow):
        return
    secure_boot = workflow.create_test_vm("secureboot")
    secure_boot.enable_secure_boot()
    secure_boot.run_tests("TestGuestSecureBoot")
