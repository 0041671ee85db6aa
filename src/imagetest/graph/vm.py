# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""VM lifecycle model.

A ``TestVM`` is a handle on one instance in a test workflow. Its
mutators either change the instance spec in place or append
steps to the VM's chain; every appended step depends on the step the VM
last touched, so operations on one VM always run in call order.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from imagetest.exceptions import PreconditionError, WorkflowBuildError
from imagetest.graph.instance import InstanceCapability, new_instance
from imagetest.graph.models import (
    LOCAL_SSD,
    LOCAL_SSD_SIZE_GB,
    PERSISTENT,
    SCRATCH,
    AccessConfig,
    AliasIpRange,
    AttachedDisk,
    Disk,
    InitializeParams,
    NetworkInterface,
)
from imagetest.graph.network import Network, Subnetwork, region_from_zone

if TYPE_CHECKING:
    from imagetest.graph.workflow import TestWorkflow

logger = logging.getLogger(__name__)

# Instance metadata keys read by the in-guest test wrapper
SHOULD_REBOOT_DURING_TEST = "shouldRebootDuringTest"
TEST_RUN_KEY = "_test_run"
TEST_VMNAME_KEY = "_test_vmname"
TEST_SUITE_NAME_KEY = "_test_suite_name"
TEST_PACKAGE_NAME_KEY = "_test_package_name"
TEST_PACKAGE_URL_KEY = "_test_package_url"
TEST_RESULTS_URL_KEY = "_test_results_url"
CIT_TIMEOUT_KEY = "_cit_timeout"
EXCLUDE_DISCRETE_TESTS_KEY = "_exclude_discrete_tests"
SSH_KEYS_KEY = "ssh-keys"

GVNIC = "GVNIC"
DEFAULT_NETWORK = "global/networks/default"

# Keys that describe the VM itself and are not inherited by derivatives
_PER_VM_KEYS = (TEST_VMNAME_KEY, TEST_RESULTS_URL_KEY)


class TestVM:
    """A VM in a test workflow.

    Attributes:
        name: Name of the VM.
        workflow: The workflow the VM belongs to.
        instance: The instance capability backing the VM.
        create_step: Name of the step that creates the VM.
    """

    __test__ = False

    def __init__(
        self,
        name: str,
        workflow: TestWorkflow,
        instance: InstanceCapability,
        create_step: str,
    ) -> None:
        self.name = name
        self.workflow = workflow
        self.instance = instance
        self.create_step = create_step
        self.custom_network = False

    def __repr__(self) -> str:
        return f"TestVM(name={self.name!r}, schema={self.instance.schema!r})"

    @property
    def last_step(self) -> str:
        """Name of the step this VM last touched."""
        return self.workflow.last_step_name_for_vm(self.name)

    # ------------------------------------------------------------------
    # Instance spec
    # ------------------------------------------------------------------

    def add_metadata(self, key: str, value: str) -> None:
        """Set an instance metadata entry; the last write wins."""
        self.instance.set_metadata(key, value)

    def add_user(self, user: str, public_key: str) -> None:
        """Add an SSH login to the ``ssh-keys`` metadata entry.

        Repeated calls append lines; existing entries are kept.
        """
        line = f"{user}:{public_key}"
        existing = self.instance.get_metadata(SSH_KEYS_KEY)
        self.instance.set_metadata(SSH_KEYS_KEY, f"{existing}\n{line}" if existing else line)

    def add_disk(
        self,
        mode: str,
        params: InitializeParams | None = None,
        name: str | None = None,
    ) -> None:
        """Attach an additional disk after the existing ones.

        Scratch disks are created along with the instance; local SSDs
        default to their fixed size. Persistent disks are also created by
        the shared ``create-disks`` step and need a name.

        Args:
            mode: ``PERSISTENT`` or ``SCRATCH``.
            params: Type, size and source image of the new disk.
            name: Name of the disk. Required for persistent disks.

        Raises:
            WorkflowBuildError: If the mode is unknown, or a persistent
                disk has no name or reuses an existing disk name.
        """
        params = params.model_copy() if params is not None else InitializeParams()
        if mode == SCRATCH:
            if (params.disk_type or "").endswith(LOCAL_SSD) and params.disk_size_gb is None:
                params.disk_size_gb = LOCAL_SSD_SIZE_GB
            self.instance.append_disk(
                AttachedDisk(
                    type=SCRATCH,
                    auto_delete=True,
                    device_name=name,
                    initialize_params=params,
                )
            )
            return

        if mode != PERSISTENT:
            raise WorkflowBuildError(
                f"Unknown disk mode '{mode}'",
                suggestion=f"Use '{PERSISTENT}' or '{SCRATCH}'",
                workflow_name=self.workflow.name,
            )
        if not name:
            raise WorkflowBuildError(
                f"A persistent disk added to VM '{self.name}' needs a name",
                workflow_name=self.workflow.name,
            )
        if name in self.workflow.disk_names():
            raise WorkflowBuildError(
                f"Disk '{name}' already exists in workflow '{self.workflow.name}'",
                workflow_name=self.workflow.name,
            )
        self.workflow.append_create_disks_step(
            Disk(
                name=name,
                source_image=params.source_image,
                type=params.disk_type,
                size_gb=params.disk_size_gb,
            )
        )
        self.instance.append_disk(AttachedDisk(source=name, device_name=name, auto_delete=True))

    def enable_secure_boot(self) -> None:
        self.instance.enable_secure_boot()

    def use_gvnic(self) -> None:
        """Use the gVNIC driver on every network interface.

        A VM without interfaces gets one on the default network.
        """
        interfaces = self.instance.network_interfaces()
        if not interfaces:
            interfaces.append(
                NetworkInterface(network=DEFAULT_NETWORK, access_configs=[AccessConfig()])
            )
        for interface in interfaces:
            interface.nic_type = GVNIC

    def force_machine_type(self, machine_type: str) -> None:
        self.instance.set_machine_type(machine_type)

    def force_zone(self, zone: str) -> None:
        """Pin the VM to a zone.

        Raises:
            ResourceReferenceError: If the zone is malformed.
        """
        region_from_zone(zone)
        self.instance.set_zone(zone)

    def set_min_cpu_platform(self, platform: str) -> None:
        self.instance.set_min_cpu_platform(platform)

    def add_scope(self, scope: str) -> None:
        self.instance.add_scope(scope)

    def run_tests(self, pattern: str) -> None:
        """Only run the tests whose names match ``pattern`` on this VM."""
        for key, value in self.workflow.test_metadata(self.name).items():
            self.instance.set_metadata(key, value)
        self.instance.set_metadata(TEST_RUN_KEY, pattern)

    # ------------------------------------------------------------------
    # Networking
    # ------------------------------------------------------------------

    def _check_network(self, network: Network, subnetwork: Subnetwork | None) -> None:
        if not self.workflow.networks:
            raise PreconditionError(
                f"Cannot attach VM '{self.name}' to a network: "
                f"workflow '{self.workflow.name}' has no networks",
                suggestion="Call create_network on the workflow first",
                workflow_name=self.workflow.name,
            )
        if network.workflow is not self.workflow:
            raise PreconditionError(
                f"Network '{network.name}' belongs to a different workflow",
                workflow_name=self.workflow.name,
            )
        if network.custom_mode and subnetwork is None:
            raise PreconditionError(
                f"Network '{network.name}' is in custom subnet mode; a subnetwork is required",
                suggestion="Pass a subnetwork created with network.create_subnetwork",
                workflow_name=self.workflow.name,
            )
        if subnetwork is not None and subnetwork.network is not network:
            raise PreconditionError(
                f"Subnetwork '{subnetwork.name}' is not part of network '{network.name}'",
                workflow_name=self.workflow.name,
            )

    def add_custom_network(
        self, network: Network, subnetwork: Subnetwork | None = None
    ) -> NetworkInterface:
        """Attach the VM to a workflow network.

        The first call configures the primary interface; every later
        call adds another interface.

        Args:
            network: A network created in this VM's workflow.
            subnetwork: Subnetwork of ``network``. Required when the
                network is in custom subnet mode.

        Returns:
            The configured network interface.

        Raises:
            PreconditionError: If the workflow has no networks, the network
                belongs to another workflow, or a required subnetwork is
                missing.
        """
        self._check_network(network, subnetwork)
        subnetwork_name = subnetwork.name if subnetwork is not None else None
        interfaces = self.instance.network_interfaces()
        if not self.custom_network and interfaces:
            interface = interfaces[0]
            interface.network = network.name
            interface.subnetwork = subnetwork_name
        else:
            interface = NetworkInterface(network=network.name, subnetwork=subnetwork_name)
            if not interfaces:
                interface.access_configs = [AccessConfig()]
            interfaces.append(interface)
        self.custom_network = True
        return interface

    def add_custom_network_with_private_ip(
        self, network: Network, subnetwork: Subnetwork | None, ip: str
    ) -> NetworkInterface:
        """Attach the VM to a network with a static private IP address."""
        interface = self.add_custom_network(network, subnetwork)
        interface.network_ip = ip
        return interface

    def add_alias_ip_ranges(
        self, ip_cidr_range: str, subnetwork_range_name: str | None = None
    ) -> None:
        """Route an additional IP range to the primary interface.

        Raises:
            PreconditionError: If ``add_custom_network`` was not called.
        """
        if not self.custom_network:
            raise PreconditionError(
                f"VM '{self.name}' needs a custom network before alias IP ranges",
                suggestion="Call add_custom_network first",
                workflow_name=self.workflow.name,
            )
        interface = self.instance.network_interfaces()[0]
        if interface.alias_ip_ranges is None:
            interface.alias_ip_ranges = []
        interface.alias_ip_ranges.append(
            AliasIpRange(
                ip_cidr_range=ip_cidr_range,
                subnetwork_range_name=subnetwork_range_name,
            )
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _reboot_step_names(self, counter: int) -> tuple[str, str]:
        suffix = f"{self.name}-{counter}"
        return f"stop-{suffix}", f"wait-started-{suffix}"

    def _append_reboot(self) -> str:
        wf = self.workflow
        wf.counter += 1
        suffix = f"{self.name}-{wf.counter}"
        stop = wf.add_stop_step(suffix, self.name, (self.last_step,))
        wait = wf.add_wait_step(f"started-{suffix}", self.name, (stop,))
        wf.set_last_step_for_vm(self.name, wait)
        return wait

    def reboot(self) -> str:
        """Stop the VM and wait for the test wrapper to finish after it boots.

        Starting the stopped instance is left to the engine, which
        restarts instances a wait step is pending on.

        Returns:
            The name of the final wait step.
        """
        self.workflow.ensure_free(*self._reboot_step_names(self.workflow.counter + 1))
        return self._append_reboot()

    def resume(self) -> str:
        """Wait for the guest to suspend itself, then resume it.

        The suspend wait starts once the VM is created and after any earlier
        lifecycle step, so a resume queued behind a reboot waits for it.

        Returns:
            The name of the final wait step.
        """
        wf = self.workflow
        suffix = f"{self.name}-{wf.counter + 1}"
        names = (f"wait-suspended-{suffix}", f"resume-{suffix}", f"wait-started-{suffix}")
        wf.ensure_free(*names)

        deps = (self.create_step,)
        if self.last_step != f"wait-{self.name}":
            deps += (self.last_step,)

        wf.counter += 1
        suspended = wf.add_wait_suspended_step(suffix, self.name, deps)
        resume = wf.add_resume_step(suffix, self.name, (suspended,))
        wait = wf.add_wait_step(f"started-{suffix}", self.name, (resume,))
        wf.set_last_step_for_vm(self.name, wait)
        return wait

    def resize_disk_and_reboot(self, size_gb: int) -> str:
        """Grow the boot disk, then reboot the VM.

        Args:
            size_gb: New size of the boot disk.

        Returns:
            The name of the final wait step.
        """
        wf = self.workflow
        resize = f"resize-disk-{self.name}-{wf.counter + 1}"
        wf.ensure_free(resize, *self._reboot_step_names(wf.counter + 2))

        wf.counter += 1
        wf.add_resize_disk_step(
            f"{self.name}-{wf.counter}", self.name, size_gb, (self.last_step,)
        )
        wf.set_last_step_for_vm(self.name, resize)
        return self._append_reboot()

    def create_derivative_vm(self, new_name: str | None = None) -> TestVM:
        """Boot a new VM from this VM's boot disk.

        The boot disk is detached from this VM once its tests finish and
        a new instance is created from it, inheriting this VM's metadata,
        machine type and zone.

        Args:
            new_name: Name of the new VM, used as given. When omitted the
                VM is named ``derivative-<name>`` after this VM.

        Returns:
            The new VM.

        Raises:
            WorkflowBuildError: If the name is invalid or already used.
        """
        wf = self.workflow
        name = new_name or f"derivative-{self.name}"
        wf.check_vm_name(name)
        counter = wf.counter + 1
        detach_name = f"detach-disk-{self.name}-{counter}"
        wf.ensure_free(detach_name, f"create-vms-{counter}", f"wait-{name}")

        source = self.instance.spec
        boot_disk = self.instance.disks()[0].source or self.name
        metadata = {k: v for k, v in source.metadata.items() if k not in _PER_VM_KEYS}
        derivative = new_instance(
            self.instance.schema,
            name,
            machine_type=source.machine_type,
            zone=source.zone,
            metadata=metadata,
            disks=[AttachedDisk(source=boot_disk, boot=True, auto_delete=True)],
        )
        derivative.set_reservation_affinity(source.reservation_affinity)
        wf.apply_test_metadata(derivative)

        wf.counter = counter
        detach = wf.add_detach_disk_step(
            f"{self.name}-{counter}", self.name, boot_disk, (self.last_step,)
        )
        wf.set_last_step_for_vm(self.name, detach)
        create = wf.add_new_vm_step(derivative, (detach,))
        wait = wf.add_wait_step(name, name, (create,))

        vm = TestVM(name, wf, derivative, create_step=create)
        wf.register_derivative_vm(vm, wait)
        logger.debug(f"Created derivative VM {name} from {self.name}")
        return vm
