"""Tests for the workflows built by the built-in test suites."""

from imagetest.engine.context import RunContext, ZoneAllocator
from imagetest.graph.models import LOCAL_SSD, SCRATCH
from imagetest.graph.steps import FIRST_BOOT_KEY
from imagetest.graph.workflow import (
    CREATE_FIREWALLS_STEP,
    CREATE_NETWORKS_STEP,
    CREATE_SUBNETWORKS_STEP,
    CREATE_VMS_STEP,
    TestWorkflow,
    WorkflowOptions,
)
from imagetest.images import Image
from imagetest.suites import disk, imageboot, lssd, network, suspendresume, vmspec


def _workflow(options: WorkflowOptions, image: str) -> TestWorkflow:
    options.image = image
    return TestWorkflow(options)


class TestImageboot:
    """Tests for the imageboot suite."""

    def test_vms(self, workflow: TestWorkflow) -> None:
        """Test the boot, reboot, boot time and secure boot VMs."""
        imageboot.setup(workflow)

        assert list(workflow.vms) == ["boot", "guestreboot", "boottime", "secureboot"]
        assert "stop-boot-1" in workflow.steps
        assert workflow.vms["boot"].last_step == "wait-started-boot-1"
        assert workflow.vms["boot"].instance.get_metadata("_test_run") == (
            "TestGuestBoot|TestGuestReboot$"
        )
        assert workflow.vms["boottime"].instance.get_metadata("start-time").isdigit()
        secure = workflow.vms["secureboot"].instance.spec
        assert secure.shielded_instance_config.enable_secure_boot is True

    def test_secure_boot_unsupported(self, options: WorkflowOptions) -> None:
        """Test images that cannot secure boot get no secure boot VM."""
        workflow = _workflow(options, "projects/debian-cloud/global/images/family/debian-11-arm64")
        imageboot.setup(workflow)
        assert "secureboot" not in workflow.vms

    def test_secure_boot_needs_uefi(self, options: WorkflowOptions, bare_arm_image: Image) -> None:
        """Test images without UEFI support get no secure boot VM."""
        workflow = TestWorkflow(options, image=bare_arm_image)
        imageboot.setup(workflow)
        assert "secureboot" not in workflow.vms


class TestNetwork:
    """Tests for the network suite."""

    def test_networks(self, workflow: TestWorkflow) -> None:
        """Test two custom networks with subnetworks and firewall rules."""
        network.setup(workflow)

        assert [n.name for n in workflow.steps[CREATE_NETWORKS_STEP].create_networks] == [
            "network-1",
            "network-2",
        ]
        subnetworks = workflow.steps[CREATE_SUBNETWORKS_STEP].create_subnetworks
        assert [s.ip_cidr_range for s in subnetworks] == ["10.128.0.0/20", "192.168.0.0/16"]
        assert subnetworks[0].secondary_ip_ranges[0].range_name == "secondary-range"
        rules = workflow.steps[CREATE_FIREWALLS_STEP].create_firewall_rules
        assert [r.name for r in rules] == ["allow-tcp-net1", "allow-tcp-net2"]
        assert CREATE_NETWORKS_STEP in workflow.dependencies[CREATE_VMS_STEP]

    def test_vms(self, workflow: TestWorkflow) -> None:
        """Test both VMs get two NICs and the second one an alias range."""
        network.setup(workflow)

        ping1 = workflow.vms["ping1"].instance.network_interfaces()
        assert [i.network for i in ping1] == ["network-1", "network-2"]
        assert ping1[1].network_ip == "192.168.0.2"

        ping2 = workflow.vms["ping2"].instance.network_interfaces()
        assert ping2[1].network_ip == "192.168.0.3"
        assert ping2[0].alias_ip_ranges[0].ip_cidr_range == "10.14.8.0/24"
        assert [i.nic_type for i in ping2] == ["GVNIC", "GVNIC"]

        wait = workflow.steps["wait-ping2"].wait_for_instances_signal[0]
        assert wait.guest_attribute.key_name == FIRST_BOOT_KEY
        assert "stop-ping2-1" in workflow.steps
        tests = workflow.vms["ping2"].instance.get_metadata("_test_run")
        assert "TestAlias" in tests
        assert "TestGVNIC" in tests

    def test_el7_gets_separate_gvnic_vm(self, options: WorkflowOptions) -> None:
        """Test EL7 images test gVNIC on a dedicated VM."""
        workflow = _workflow(options, "projects/centos-cloud/global/images/family/centos-7")
        network.setup(workflow)

        assert "gvnic-el7" in workflow.vms
        ping2 = workflow.vms["ping2"].instance.network_interfaces()
        assert all(i.nic_type is None for i in ping2)

    def test_windows_skips_multinic_tests(self, windows_workflow: TestWorkflow) -> None:
        """Test Windows images do not run the multi-NIC tests."""
        network.setup(windows_workflow)
        tests = windows_workflow.vms["ping2"].instance.get_metadata("_test_run")
        assert "TestAlias" not in tests


class TestSuspendResume:
    """Tests for the suspendresume suite."""

    def test_steps(self, workflow: TestWorkflow) -> None:
        """Test the suspend VM is resumed after it suspends itself."""
        suspendresume.setup(workflow)

        vm = workflow.vms["suspend"]
        assert vm.instance.spec.scopes == [suspendresume.CLOUD_PLATFORM_SCOPE]
        assert vm.last_step == "wait-started-suspend-1"
        assert workflow.dependencies["wait-suspended-suspend-1"] == {CREATE_VMS_STEP}

    def test_arm64_skipped(self, arm_workflow: TestWorkflow) -> None:
        """Test ARM64 images are skipped."""
        suspendresume.setup(arm_workflow)
        assert arm_workflow.skipped is True
        assert arm_workflow.steps == {}

    def test_unsupported_image_skipped(self, options: WorkflowOptions) -> None:
        """Test listed images are skipped."""
        workflow = _workflow(options, "projects/debian-cloud/global/images/family/debian-10")
        suspendresume.setup(workflow)
        assert workflow.skipped is True
        assert "debian-10" in workflow.skipped_message


class TestLssd:
    """Tests for the lssd suite."""

    def test_vm(self, workflow: TestWorkflow) -> None:
        """Test the LSSD machine type and zone are used."""
        lssd.setup(workflow)

        spec = workflow.vms["remountLSSD"].instance.spec
        assert spec.machine_type == "c3-standard-8-lssd"
        assert spec.zone == "us-central1-a"
        assert spec.metadata["hotattach-disk-name"] == "local-nvme-ssd-0"
        assert spec.metadata["_test_run"] == "TestMount"

    def test_windows_device_name(self, windows_workflow: TestWorkflow) -> None:
        """Test Windows looks for the NVMe card name."""
        lssd.setup(windows_workflow)
        spec = windows_workflow.vms["remountLSSD"].instance.spec
        assert spec.metadata["hotattach-disk-name"] == "nvme_card0"

    def test_skipped_without_gvnic(self, options: WorkflowOptions, bare_arm_image: Image) -> None:
        """Test images without gVNIC are skipped."""
        workflow = TestWorkflow(options, image=bare_arm_image)
        lssd.setup(workflow)
        assert workflow.skipped is True


class TestDisk:
    """Tests for the disk suite."""

    def test_resize(self, workflow: TestWorkflow) -> None:
        """Test the boot disk is resized across a reboot."""
        disk.setup(workflow)

        assert "resize-disk-resize-1" in workflow.steps
        assert workflow.vms["resize"].last_step == "wait-started-resize-2"

    def test_block_naming_x86(self, workflow: TestWorkflow) -> None:
        """Test x86 images get the C3 block naming VM."""
        disk.setup(workflow)

        vm = workflow.vms["blockNamingC3"]
        assert vm.instance.spec.machine_type == "c3-standard-4"
        assert [d.source for d in vm.instance.disks()] == ["blockNamingC3", "secondary"]
        assert "blockNamingC4A" not in workflow.vms

    def test_block_naming_arm64(self, arm_workflow: TestWorkflow) -> None:
        """Test ARM64 images get the C4A block naming VM."""
        disk.setup(arm_workflow)
        assert "blockNamingC4A" in arm_workflow.vms

    def test_windows(self, windows_workflow: TestWorkflow) -> None:
        """Test Windows images neither resize nor test block naming."""
        disk.setup(windows_workflow)

        assert list(windows_workflow.vms) == ["resize"]
        assert not any(name.startswith("resize-disk") for name in windows_workflow.steps)


class TestVmspec:
    """Tests for the vmspec suite."""

    def test_derivative(self, workflow: TestWorkflow) -> None:
        """Test the derivative VM gets local SSDs and two NICs."""
        vmspec.setup(workflow)

        source = workflow.vms["source"].instance.spec
        derivative = workflow.vms["lssd"].instance.spec
        assert source.zone in vmspec.LSSD_ZONES
        assert derivative.zone == source.zone
        assert derivative.machine_type == source.machine_type

        scratch = [d for d in derivative.disks if d.type == SCRATCH]
        assert len(scratch) == 2
        assert all(d.initialize_params.disk_type == LOCAL_SSD for d in scratch)
        assert [i.network for i in derivative.network_interfaces] == [
            "test-network",
            "test-network-2",
        ]
        assert "TestPing" in derivative.metadata["_test_run"]
        assert "detach-disk-source-1" in workflow.steps

    def test_subnetwork_region(self, workflow: TestWorkflow) -> None:
        """Test the subnetworks are placed in the LSSD region."""
        vmspec.setup(workflow)
        subnetworks = workflow.steps[CREATE_SUBNETWORKS_STEP].create_subnetworks
        assert {s.region for s in subnetworks} == {"us-central1"}

    def test_zones_rotate(self, options: WorkflowOptions) -> None:
        """Test consecutive workflows of one run use different zones and shapes."""
        context = RunContext(project="p", zones=ZoneAllocator(["us-central1-a"]))
        placements = []
        for _ in range(len(vmspec.LSSD_ZONES)):
            workflow = TestWorkflow(options, context=context)
            vmspec.setup(workflow)
            spec = workflow.vms["source"].instance.spec
            placements.append((spec.zone, spec.machine_type))

        assert placements == list(zip(vmspec.LSSD_ZONES, vmspec.LSSD_MACHINE_TYPES))

    def test_rotation_per_run(self, options: WorkflowOptions) -> None:
        """Test each run starts its rotation from the first zone."""
        for _ in range(2):
            context = RunContext(project="p", zones=ZoneAllocator(["us-central1-a"]))
            workflow = TestWorkflow(options, context=context)
            vmspec.setup(workflow)
            assert workflow.vms["source"].instance.spec.zone == vmspec.LSSD_ZONES[0]

    def test_without_context(self, options: WorkflowOptions) -> None:
        """Test a workflow without a run context uses the first zone and shape."""
        for _ in range(2):
            workflow = TestWorkflow(options)
            vmspec.setup(workflow)
            spec = workflow.vms["source"].instance.spec
            assert spec.zone == vmspec.LSSD_ZONES[0]
            assert spec.machine_type == vmspec.LSSD_MACHINE_TYPES[0]

    def test_skipped_images(self, arm_workflow: TestWorkflow, options: WorkflowOptions) -> None:
        """Test ARM64 and Ubuntu 22.04 images are skipped."""
        vmspec.setup(arm_workflow)
        assert arm_workflow.skipped is True

        ubuntu = _workflow(options, "projects/ubuntu-os-cloud/global/images/family/ubuntu-2204-lts")
        vmspec.setup(ubuntu)
        assert ubuntu.skipped is True
