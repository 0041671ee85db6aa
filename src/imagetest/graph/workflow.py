# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Resource-graph builder for one (test suite, image) pair.

A ``TestWorkflow`` owns a map of named steps, the dependency edges
between them and a monotonic step counter. Test suite setup code calls
the VM, network and quota APIs against it; the finished workflow is
serialized into the document the external workflow engine executes.

Every VM shares one ``create-disks`` step and one ``create-vms`` step,
extended as VMs are added. Each VM then forms its own chain of steps,
with every new step depending on the step that VM last touched.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from imagetest.exceptions import ResourceReferenceError, WorkflowBuildError
from imagetest.graph.instance import InstanceCapability, InstanceSchema, new_instance
from imagetest.graph.models import (
    PD_STANDARD,
    AttachedDisk,
    Disk,
    FirewallRule,
    Instance,
    NetworkSpec,
    ReservationAffinity,
    SubnetworkSpec,
)
from imagetest.graph.network import Network, region_from_zone
from imagetest.graph.quota import QuotaRequest, merge_quotas
from imagetest.graph.steps import (
    FIRST_BOOT_KEY,
    GUEST_ATTRIBUTE_TEST_KEY,
    CreateInstances,
    DetachDisk,
    InstanceNames,
    ResizeDisk,
    Step,
    WaitForAvailableQuotas,
    wait_signal,
)
from imagetest.graph.vm import (
    CIT_TIMEOUT_KEY,
    EXCLUDE_DISCRETE_TESTS_KEY,
    SHOULD_REBOOT_DURING_TEST,
    TEST_PACKAGE_NAME_KEY,
    TEST_PACKAGE_URL_KEY,
    TEST_RESULTS_URL_KEY,
    TEST_SUITE_NAME_KEY,
    TEST_VMNAME_KEY,
    TestVM,
)
from imagetest.images import ARCH_ARM64, Image, ImageCatalog, StaticImageCatalog

if TYPE_CHECKING:
    from imagetest.engine.context import RunContext

logger = logging.getLogger(__name__)

# Shared step names
CREATE_VMS_STEP = "create-vms"
CREATE_DISKS_STEP = "create-disks"
CREATE_NETWORKS_STEP = "create-networks"
CREATE_SUBNETWORKS_STEP = "create-subnetworks"
CREATE_FIREWALLS_STEP = "create-firewall-rules"
DEFAULT_QUOTA_STEP = "wait-for-quota"

DEFAULT_X86_SHAPE = "n1-standard-1"
DEFAULT_ARM64_SHAPE = "t2a-standard-1"
DEFAULT_TIMEOUT = "45m"
RESERVATION_NAME_KEY = "compute.googleapis.com/reservation-name"

_RESOURCE_NAME = re.compile(r"^[A-Za-z][-A-Za-z0-9]*$")

# (dependent, prerequisite) pairs between shared steps, wired as soon as
# both steps exist regardless of which was created first
_SHARED_EDGES = (
    (CREATE_VMS_STEP, CREATE_DISKS_STEP),
    (CREATE_VMS_STEP, CREATE_NETWORKS_STEP),
    (CREATE_VMS_STEP, CREATE_SUBNETWORKS_STEP),
    (CREATE_VMS_STEP, CREATE_FIREWALLS_STEP),
    (CREATE_SUBNETWORKS_STEP, CREATE_NETWORKS_STEP),
    (CREATE_FIREWALLS_STEP, CREATE_NETWORKS_STEP),
)


@dataclass
class WorkflowOptions:
    """Options for creating a test workflow.

    Attributes:
        name: Test suite name; also the workflow name.
        image: Full URL of the image under test.
        project: Project the resources are created in.
        zone: Default zone for disks and instances.
        timeout: Default per-step timeout handed to the engine.
        exclude_filter: Regex of discrete tests the guest should skip.
        x86_shape: Machine type for X86_64 images.
        arm64_shape: Machine type for ARM64 images.
        use_reservations: Consume reservations when creating VMs.
        reservation_urls: Specific reservations to consume; any
            reservation when empty.
        accelerator_type: Accelerator type requested by accelerator suites.
        results_url: Prefix the in-guest wrapper uploads results under.
        test_package_url: Prefix holding the compiled test packages.
    """

    name: str
    image: str
    project: str
    zone: str
    timeout: str = DEFAULT_TIMEOUT
    exclude_filter: str = ""
    x86_shape: str = DEFAULT_X86_SHAPE
    arm64_shape: str = DEFAULT_ARM64_SHAPE
    use_reservations: bool = False
    reservation_urls: list[str] = field(default_factory=list)
    accelerator_type: str = ""
    results_url: str = ""
    test_package_url: str = ""


def reservation_affinity(options: WorkflowOptions) -> ReservationAffinity | None:
    """Return the reservation affinity implied by the options, if any."""
    if not options.use_reservations:
        return None
    if options.reservation_urls:
        return ReservationAffinity(
            consume_reservation_type="SPECIFIC_RESERVATION",
            key=RESERVATION_NAME_KEY,
            values=list(options.reservation_urls),
        )
    return ReservationAffinity(consume_reservation_type="ANY_RESERVATION")


class TestWorkflow:
    """The step graph for running one test suite against one image.

    Built single-threaded during setup, then handed read-only to the
    scheduler.

    Attributes:
        name: Test suite name.
        document_name: Name used in the engine document.
        image_url: Full URL of the image under test.
        image: Metadata of the image under test.
        project: Project the resources are created in.
        zone: Default zone.
        machine_type: Default machine type for the image architecture.
        counter: Step counter; advanced by each multi-step VM operation.
        steps: Steps by name, in insertion order.
        dependencies: Step name to the names of the steps it waits for.
        vms: VMs created in this workflow by name.
        networks: Networks created in this workflow.
    """

    __test__ = False

    def __init__(
        self,
        options: WorkflowOptions,
        image: Image | None = None,
        catalog: ImageCatalog | None = None,
        context: RunContext | None = None,
    ) -> None:
        """Initialize the workflow.

        Args:
            options: Workflow options.
            image: Image metadata; looked up in ``catalog`` when omitted.
            catalog: Catalog used to look up image metadata.
            context: Run-wide shared state such as the zone allocator.

        Raises:
            ResourceReferenceError: If the zone is malformed.
        """
        region_from_zone(options.zone)

        self.options = options
        self.name = options.name
        self.document_name = options.name.replace("_", "-")
        self.image_url = options.image
        self.image = image or (catalog or StaticImageCatalog()).lookup(options.image)
        self.project = options.project
        self.zone = options.zone
        self.timeout = options.timeout
        self.exclude_filter = options.exclude_filter
        self.accelerator_type = options.accelerator_type
        self.reservation_affinity = reservation_affinity(options)
        if self.image.architecture == ARCH_ARM64:
            self.machine_type = options.arm64_shape
        else:
            self.machine_type = options.x86_shape
        self.context = context

        self.counter = 0
        self.steps: dict[str, Step] = {}
        self.dependencies: dict[str, set[str]] = {}
        self.vms: dict[str, TestVM] = {}
        self.networks: list[Network] = []
        self.skipped = False
        self.skipped_message = ""

        self._last_step: dict[str, str] = {}
        self._quota_steps: list[str] = []

    def __repr__(self) -> str:
        return f"TestWorkflow(name={self.name!r}, image={self.image_url!r})"

    @property
    def region(self) -> str:
        """Region of the workflow zone."""
        return region_from_zone(self.zone)

    @property
    def package_name(self) -> str:
        """Name of the compiled test package the guest runs."""
        if self.image.architecture == ARCH_ARM64:
            return f"{self.name}.arm64.test"
        return f"{self.name}.test"

    @property
    def results_url(self) -> str:
        """Prefix this workflow's results are uploaded under."""
        prefix = self.options.results_url.rstrip("/")
        return "/".join(p for p in (prefix, self.name, self.image.name) if p)

    def results_url_for_vm(self, vm_name: str) -> str:
        return f"{self.results_url}/{vm_name}.txt"

    def skip(self, message: str) -> None:
        """Mark the workflow as skipped; it will not be executed."""
        self.skipped = True
        self.skipped_message = message
        logger.info(f"Skipping {self.name} on {self.image.name}: {message}")

    # ------------------------------------------------------------------
    # Graph primitives
    # ------------------------------------------------------------------

    def ensure_free(self, *names: str) -> None:
        """Raise if any of the step names is already taken."""
        for name in names:
            if name in self.steps:
                raise WorkflowBuildError(
                    f"Step '{name}' already exists in workflow '{self.name}'",
                    workflow_name=self.name,
                )

    def disk_names(self) -> set[str]:
        """Return the names of the disks in the shared ``create-disks`` step."""
        step = self.steps.get(CREATE_DISKS_STEP)
        if step is None:
            return set()
        return {d.name for d in step.create_disks or []}

    def add_step(self, name: str, step: Step, depends_on: tuple[str, ...] = ()) -> str:
        """Insert a named step depending on existing steps.

        Raises:
            WorkflowBuildError: If the name is taken or a dependency does
                not exist. The graph is left unchanged.
        """
        self.ensure_free(name)
        for dependency in depends_on:
            if dependency not in self.steps:
                raise WorkflowBuildError(
                    f"Step '{name}' depends on unknown step '{dependency}'",
                    workflow_name=self.name,
                )
        self.steps[name] = step
        for dependency in depends_on:
            self.dependencies.setdefault(name, set()).add(dependency)
        logger.debug(f"Added {step.kind} step {name} to {self.name}")
        return name

    def add_dependency(self, step_name: str, *depends_on: str) -> None:
        """Add dependency edges between existing steps."""
        for name in (step_name, *depends_on):
            if name not in self.steps:
                raise WorkflowBuildError(
                    f"Unknown step '{name}'", workflow_name=self.name
                )
        self.dependencies.setdefault(step_name, set()).update(depends_on)

    def _wire_shared_steps(self) -> None:
        for dependent, prerequisite in _SHARED_EDGES:
            if dependent in self.steps and prerequisite in self.steps:
                self.dependencies.setdefault(dependent, set()).add(prerequisite)
        if CREATE_DISKS_STEP in self.steps:
            for quota_step in self._quota_steps:
                self.dependencies.setdefault(CREATE_DISKS_STEP, set()).add(quota_step)

    def check_vm_name(self, name: str) -> None:
        """Raise if ``name`` is not a valid, unused VM name."""
        self._check_resource_name("VM", name)
        if name in self.vms:
            raise WorkflowBuildError(
                f"VM '{name}' already exists in workflow '{self.name}'",
                workflow_name=self.name,
            )

    def _check_resource_name(self, kind: str, name: str) -> None:
        if not _RESOURCE_NAME.match(name or ""):
            raise WorkflowBuildError(
                f"Invalid {kind} name '{name}'",
                suggestion="Names start with a letter and contain only letters, "
                "digits and hyphens",
                workflow_name=self.name,
            )

    # ------------------------------------------------------------------
    # Step helpers
    # ------------------------------------------------------------------

    def add_start_step(self, step_name: str, vm_name: str, depends_on: tuple[str, ...] = ()) -> str:
        step = Step(start_instances=InstanceNames(instances=[vm_name]))
        return self.add_step(f"start-{step_name}", step, depends_on)

    def add_stop_step(self, step_name: str, vm_name: str, depends_on: tuple[str, ...] = ()) -> str:
        step = Step(stop_instances=InstanceNames(instances=[vm_name]))
        return self.add_step(f"stop-{step_name}", step, depends_on)

    def add_resume_step(self, step_name: str, vm_name: str, depends_on: tuple[str, ...] = ()) -> str:
        step = Step(resume_instances=InstanceNames(instances=[vm_name]))
        return self.add_step(f"resume-{step_name}", step, depends_on)

    def add_wait_step(
        self,
        step_name: str,
        vm_name: str,
        depends_on: tuple[str, ...] = (),
        *,
        key: str = GUEST_ATTRIBUTE_TEST_KEY,
    ) -> str:
        """Add a step waiting for the guest to report test completion."""
        step = Step(wait_for_instances_signal=[wait_signal(vm_name, key=key)])
        return self.add_step(f"wait-{step_name}", step, depends_on)

    def add_wait_reboot_ga_step(
        self, step_name: str, vm_name: str, depends_on: tuple[str, ...] = ()
    ) -> str:
        """Add a wait step keyed on the first-boot guest attribute."""
        return self.add_wait_step(step_name, vm_name, depends_on, key=FIRST_BOOT_KEY)

    def add_wait_stopped_step(
        self, step_name: str, vm_name: str, depends_on: tuple[str, ...] = ()
    ) -> str:
        step = Step(wait_for_instances_signal=[wait_signal(vm_name, stopped=True)])
        return self.add_step(f"wait-stopped-{step_name}", step, depends_on)

    def add_wait_suspended_step(
        self, step_name: str, vm_name: str, depends_on: tuple[str, ...] = ()
    ) -> str:
        step = Step(wait_for_instances_signal=[wait_signal(vm_name, suspended=True)])
        return self.add_step(f"wait-suspended-{step_name}", step, depends_on)

    def add_resize_disk_step(
        self, step_name: str, disk_name: str, size_gb: int, depends_on: tuple[str, ...] = ()
    ) -> str:
        step = Step(resize_disks=[ResizeDisk(name=disk_name, size_gb=size_gb)])
        return self.add_step(f"resize-disk-{step_name}", step, depends_on)

    def add_detach_disk_step(
        self,
        step_name: str,
        vm_name: str,
        device_name: str,
        depends_on: tuple[str, ...] = (),
    ) -> str:
        step = Step(detach_disks=[DetachDisk(instance=vm_name, device_name=device_name)])
        return self.add_step(f"detach-disk-{step_name}", step, depends_on)

    def append_create_disks_step(self, disk: Disk) -> str:
        """Append a disk to the shared ``create-disks`` step, creating it if needed."""
        if CREATE_DISKS_STEP in self.steps:
            self.steps[CREATE_DISKS_STEP].create_disks.append(disk)  # type: ignore[union-attr]
        else:
            self.add_step(CREATE_DISKS_STEP, Step(create_disks=[disk]))
        self._wire_shared_steps()
        return CREATE_DISKS_STEP

    def append_create_vm_step(self, instance: InstanceCapability) -> str:
        """Append an instance to the shared ``create-vms`` step, creating it if needed."""
        if CREATE_VMS_STEP not in self.steps:
            self.add_step(CREATE_VMS_STEP, Step(create_instances=CreateInstances()))
        instance.register(self.steps[CREATE_VMS_STEP].create_instances)  # type: ignore[arg-type]
        self._wire_shared_steps()
        return CREATE_VMS_STEP

    def add_new_vm_step(self, instance: InstanceCapability, depends_on: tuple[str, ...] = ()) -> str:
        """Add a standalone ``create-vms-<counter>`` step for one instance."""
        payload = CreateInstances()
        instance.register(payload)
        return self.add_step(
            f"{CREATE_VMS_STEP}-{self.counter}", Step(create_instances=payload), depends_on
        )

    def append_create_network_step(self, spec: NetworkSpec) -> str:
        if CREATE_NETWORKS_STEP in self.steps:
            self.steps[CREATE_NETWORKS_STEP].create_networks.append(spec)  # type: ignore[union-attr]
        else:
            self.add_step(CREATE_NETWORKS_STEP, Step(create_networks=[spec]))
        self._wire_shared_steps()
        return CREATE_NETWORKS_STEP

    def append_create_subnetwork_step(self, spec: SubnetworkSpec) -> str:
        self._check_resource_name("subnetwork", spec.name)
        if spec.region is None:
            spec.region = self.region
        existing = self.steps.get(CREATE_SUBNETWORKS_STEP)
        if existing is not None:
            if any(s.name == spec.name for s in existing.create_subnetworks or []):
                raise WorkflowBuildError(
                    f"Subnetwork '{spec.name}' already exists", workflow_name=self.name
                )
            existing.create_subnetworks.append(spec)  # type: ignore[union-attr]
        else:
            self.add_step(CREATE_SUBNETWORKS_STEP, Step(create_subnetworks=[spec]))
        self._wire_shared_steps()
        return CREATE_SUBNETWORKS_STEP

    def append_create_firewall_step(self, rule: FirewallRule) -> str:
        self._check_resource_name("firewall rule", rule.name)
        if CREATE_FIREWALLS_STEP in self.steps:
            self.steps[CREATE_FIREWALLS_STEP].create_firewall_rules.append(rule)  # type: ignore[union-attr]
        else:
            self.add_step(CREATE_FIREWALLS_STEP, Step(create_firewall_rules=[rule]))
        self._wire_shared_steps()
        return CREATE_FIREWALLS_STEP

    # ------------------------------------------------------------------
    # VMs
    # ------------------------------------------------------------------

    def create_test_vm(self, name: str) -> TestVM:
        """Create a VM with a single boot disk from the image under test.

        Args:
            name: Name of the VM and of its boot disk.

        Returns:
            The new VM.

        Raises:
            WorkflowBuildError: If the name is invalid or already used.
        """
        return self._create_test_vm([Disk(name=name)], None, "stable")

    def create_test_vm_beta(self, name: str) -> TestVM:
        """Create a VM backed by the preview instance schema."""
        return self._create_test_vm([Disk(name=name)], None, "preview")

    def create_test_vm_multiple_disks(
        self, disks: list[Disk], instance_overrides: Instance | None = None
    ) -> TestVM:
        """Create a VM with a boot disk and additional disks.

        The first disk is the boot disk and gives the VM its name. Every
        disk is added to the shared ``create-disks`` step.

        Args:
            disks: Disks to create, boot disk first.
            instance_overrides: Instance fields to keep, such as machine
                type, zone, scopes or metadata. A metadata entry
                ``shouldRebootDuringTest: "true"`` makes the VM's first wait
                step use the first-boot completion key.

        Returns:
            The new VM.
        """
        return self._create_test_vm(disks, instance_overrides, "stable")

    def create_test_vm_multiple_disks_beta(
        self, disks: list[Disk], instance_overrides: Instance | None = None
    ) -> TestVM:
        """Preview-schema variant of ``create_test_vm_multiple_disks``."""
        return self._create_test_vm(disks, instance_overrides, "preview")

    def _create_test_vm(
        self,
        disks: list[Disk],
        overrides: Instance | None,
        schema: InstanceSchema,
    ) -> TestVM:
        if not disks:
            raise WorkflowBuildError(
                "A VM needs at least a boot disk", workflow_name=self.name
            )
        name = disks[0].name
        self.check_vm_name(name)
        for disk in disks:
            self._check_resource_name("disk", disk.name)
        existing_disks = self.disk_names()
        new_disk_names = [d.name for d in disks]
        clashes = existing_disks.intersection(new_disk_names)
        if clashes or len(set(new_disk_names)) != len(new_disk_names):
            raise WorkflowBuildError(
                f"Disk names must be unique within a workflow: {sorted(clashes) or new_disk_names}",
                workflow_name=self.name,
            )
        if overrides is not None and overrides.zone:
            region_from_zone(overrides.zone)
        self.ensure_free(f"wait-{name}")

        fields: dict[str, Any] = {}
        if overrides is not None:
            fields = overrides.model_dump(exclude={"name", "disks"}, exclude_none=True)
        instance = new_instance(schema, name, **fields)
        if instance.spec.machine_type is None:
            instance.set_machine_type(self.machine_type)
        if self.reservation_affinity is not None:
            instance.set_reservation_affinity(self.reservation_affinity)

        boot_disk = disks[0].model_copy()
        if boot_disk.source_image is None:
            boot_disk.source_image = self.image_url
        if boot_disk.type is None:
            boot_disk.type = PD_STANDARD
        created = [boot_disk, *(d.model_copy() for d in disks[1:])]
        for i, disk in enumerate(created):
            instance.append_disk(
                AttachedDisk(source=disk.name, boot=(i == 0) or None, auto_delete=True)
            )
            self.append_create_disks_step(disk)

        self.apply_test_metadata(instance)
        self.append_create_vm_step(instance)

        if instance.get_metadata(SHOULD_REBOOT_DURING_TEST) == "true":
            wait = self.add_wait_reboot_ga_step(name, name, (CREATE_VMS_STEP,))
        else:
            wait = self.add_wait_step(name, name, (CREATE_VMS_STEP,))

        vm = TestVM(name, self, instance, create_step=CREATE_VMS_STEP)
        self.vms[name] = vm
        self._last_step[name] = wait
        logger.debug(f"Created {schema} VM {name} in {self.name}")
        return vm

    def test_metadata(self, vm_name: str) -> dict[str, str]:
        """Return the metadata the in-guest test wrapper reads for a VM."""
        metadata = {
            TEST_VMNAME_KEY: vm_name,
            TEST_SUITE_NAME_KEY: self.name,
            TEST_PACKAGE_NAME_KEY: self.package_name,
            TEST_RESULTS_URL_KEY: self.results_url_for_vm(vm_name),
            CIT_TIMEOUT_KEY: self.timeout,
        }
        if self.options.test_package_url:
            metadata[TEST_PACKAGE_URL_KEY] = (
                f"{self.options.test_package_url.rstrip('/')}/{self.package_name}"
            )
        if self.exclude_filter:
            metadata[EXCLUDE_DISCRETE_TESTS_KEY] = self.exclude_filter
        return metadata

    def apply_test_metadata(self, instance: InstanceCapability) -> None:
        """Set test wrapper metadata on an instance, keeping values already set."""
        for key, value in self.test_metadata(instance.name).items():
            if instance.get_metadata(key) is None:
                instance.set_metadata(key, value)

    def register_derivative_vm(self, vm: TestVM, last_step: str) -> None:
        """Record a VM created from another VM's disks."""
        self.vms[vm.name] = vm
        self._last_step[vm.name] = last_step

    def last_step_name_for_vm(self, name: str) -> str:
        """Return the name of the step the VM last touched."""
        try:
            return self._last_step[name]
        except KeyError:
            raise ResourceReferenceError(
                f"No VM named '{name}' in workflow '{self.name}'",
                workflow_name=self.name,
            ) from None

    def get_last_step_for_vm(self, name: str) -> Step:
        """Return the step the VM last touched.

        Raises:
            ResourceReferenceError: If the workflow has no such VM.
        """
        return self.steps[self.last_step_name_for_vm(name)]

    def set_last_step_for_vm(self, name: str, step_name: str) -> None:
        self._last_step[name] = step_name

    # ------------------------------------------------------------------
    # Networks and quota
    # ------------------------------------------------------------------

    def create_network(self, name: str, auto_subnetworks: bool) -> Network:
        """Create a VPC network.

        Args:
            name: Name of the network.
            auto_subnetworks: False creates a custom-mode network whose
                subnetworks must be created explicitly.

        Returns:
            The new network.
        """
        return self.create_network_from_spec(
            NetworkSpec(name=name, auto_create_subnetworks=auto_subnetworks)
        )

    def create_network_from_spec(self, spec: NetworkSpec) -> Network:
        """Create a network from a complete network payload.

        Raises:
            WorkflowBuildError: If the name is invalid or already used.
        """
        self._check_resource_name("network", spec.name)
        if any(n.name == spec.name for n in self.networks):
            raise WorkflowBuildError(
                f"Network '{spec.name}' already exists in workflow '{self.name}'",
                workflow_name=self.name,
            )
        self.append_create_network_step(spec)
        network = Network(spec, self)
        self.networks.append(network)
        return network

    def wait_for_quota(
        self, request: QuotaRequest, step_name: str = DEFAULT_QUOTA_STEP
    ) -> str:
        """Declare quota that must be available before disks are created.

        Requests for the same (metric, region) in one step are summed.

        Args:
            request: The quota needed.
            step_name: Name of the quota wait step.

        Returns:
            The name of the quota wait step.
        """
        existing = self.steps.get(step_name)
        if existing is None:
            self.add_step(
                step_name,
                Step(wait_for_available_quotas=WaitForAvailableQuotas(quotas=[request.model_copy()])),
            )
            self._quota_steps.append(step_name)
        elif existing.wait_for_available_quotas is None:
            raise WorkflowBuildError(
                f"Step '{step_name}' is not a quota wait step", workflow_name=self.name
            )
        else:
            payload = existing.wait_for_available_quotas
            payload.quotas = merge_quotas(payload.quotas, request)
        self._wire_shared_steps()
        return step_name

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        """Serialize the workflow into the document the engine executes."""
        return {
            "Name": self.document_name,
            "Project": self.project,
            "Zone": self.zone,
            "DefaultTimeout": self.timeout,
            "Steps": {name: step.to_document() for name, step in self.steps.items()},
            "Dependencies": {
                name: sorted(deps) for name, deps in self.dependencies.items() if deps
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_document(), indent=2)

    def write_document(self, path: str | Path) -> Path:
        """Write the engine document as JSON and return its path."""
        path = Path(path)
        path.write_text(self.to_json(), encoding="utf-8")
        return path
