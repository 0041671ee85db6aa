"""Tests for TestVM lifecycle and instance spec mutators.

Tests cover:
- Reboot, resume and resize step chains
- Derivative VMs
- Metadata, disks, scopes and machine placement
- Custom networks and alias IP ranges
"""

from collections.abc import Callable

import pytest

from imagetest.exceptions import PreconditionError, ResourceReferenceError, WorkflowBuildError
from imagetest.graph.models import LOCAL_SSD, PD_BALANCED, PERSISTENT, SCRATCH, InitializeParams
from imagetest.graph.vm import TestVM
from imagetest.graph.workflow import CREATE_DISKS_STEP, CREATE_VMS_STEP, TestWorkflow

VMFactory = Callable[[str], TestVM]


@pytest.fixture(params=["create_test_vm", "create_test_vm_beta"])
def create_vm(request: pytest.FixtureRequest, workflow: TestWorkflow) -> VMFactory:
    """Return a VM factory for the stable and the preview instance schema."""
    return getattr(workflow, request.param)


class TestReboot:
    """Tests for TestVM.reboot."""

    def test_reboot_steps(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test a reboot stops the VM and waits for it to come back."""
        vm = create_vm("boot")
        last = vm.reboot()

        assert last == "wait-started-boot-1"
        assert workflow.counter == 1
        assert workflow.dependencies["stop-boot-1"] == {"wait-boot"}
        assert workflow.dependencies["wait-started-boot-1"] == {"stop-boot-1"}
        assert workflow.steps["stop-boot-1"].stop_instances.instances == ["boot"]
        assert vm.last_step == "wait-started-boot-1"

    def test_reboot_chains(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test repeated reboots chain off each other."""
        vm = create_vm("boot")
        vm.reboot()
        vm.reboot()

        assert workflow.dependencies["stop-boot-2"] == {"wait-started-boot-1"}
        assert vm.last_step == "wait-started-boot-2"

    def test_counter_shared_across_vms(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test step numbers come from one workflow-wide counter."""
        vm1 = create_vm("vm1")
        vm2 = create_vm("vm2")
        vm1.reboot()
        vm2.reboot()

        assert "stop-vm1-1" in workflow.steps
        assert "stop-vm2-2" in workflow.steps

    def test_reboot_name_taken(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test a clashing step name leaves the graph and counter unchanged."""
        vm = create_vm("boot")
        workflow.add_stop_step("boot-1", "boot")
        steps_before = list(workflow.steps)

        with pytest.raises(WorkflowBuildError):
            vm.reboot()

        assert list(workflow.steps) == steps_before
        assert workflow.counter == 0
        assert vm.last_step == "wait-boot"


class TestResume:
    """Tests for TestVM.resume."""

    def test_resume_steps(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test resume waits for suspension after creation, then resumes."""
        vm = create_vm("suspend")
        last = vm.resume()

        assert last == "wait-started-suspend-1"
        assert workflow.dependencies["wait-suspended-suspend-1"] == {CREATE_VMS_STEP}
        assert workflow.dependencies["resume-suspend-1"] == {"wait-suspended-suspend-1"}
        assert workflow.dependencies["wait-started-suspend-1"] == {"resume-suspend-1"}

        signal = workflow.steps["wait-suspended-suspend-1"].wait_for_instances_signal[0]
        assert signal.suspended is True
        assert signal.guest_attribute is None

    def test_resume_after_reboot(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test a resume queued behind a reboot waits for the VM to restart."""
        vm = create_vm("vm")
        vm.reboot()
        last = vm.resume()

        assert last == "wait-started-vm-2"
        assert workflow.dependencies["wait-suspended-vm-2"] == {
            CREATE_VMS_STEP,
            "wait-started-vm-1",
        }
        assert vm.last_step == "wait-started-vm-2"

    def test_resume_twice(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test a second resume follows the first one."""
        vm = create_vm("vm")
        vm.resume()
        vm.resume()

        assert "wait-started-vm-1" in workflow.dependencies["wait-suspended-vm-2"]


class TestResizeDisk:
    """Tests for TestVM.resize_disk_and_reboot."""

    def test_resize_then_reboot(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test the resize step precedes a reboot with the next counter value."""
        vm = create_vm("resize")
        last = vm.resize_disk_and_reboot(200)

        assert last == "wait-started-resize-2"
        assert workflow.counter == 2
        assert workflow.dependencies["resize-disk-resize-1"] == {"wait-resize"}
        assert workflow.dependencies["stop-resize-2"] == {"resize-disk-resize-1"}

        resize = workflow.steps["resize-disk-resize-1"].resize_disks[0]
        assert resize.name == "resize"
        assert resize.size_gb == 200


class TestDerivativeVM:
    """Tests for TestVM.create_derivative_vm."""

    def test_derivative_steps(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test the boot disk is detached and reused by a new instance."""
        source = create_vm("source")
        derivative = source.create_derivative_vm("lssd")

        assert derivative.name == "lssd"
        assert workflow.dependencies["detach-disk-source-1"] == {"wait-source"}
        assert workflow.dependencies["create-vms-1"] == {"detach-disk-source-1"}
        assert workflow.dependencies["wait-lssd"] == {"create-vms-1"}
        assert derivative.last_step == "wait-lssd"
        assert source.last_step == "detach-disk-source-1"

        detach = workflow.steps["detach-disk-source-1"].detach_disks[0]
        assert detach.instance == "source"
        assert detach.device_name == "source"

    def test_derivative_inherits_spec(self, create_vm: VMFactory) -> None:
        """Test machine type, zone and metadata carry over to the derivative."""
        source = create_vm("source")
        source.force_machine_type("c3-standard-8")
        source.force_zone("us-east4-b")
        source.add_metadata("custom", "value")

        derivative = source.create_derivative_vm("copy")
        spec = derivative.instance.spec

        assert spec.machine_type == "c3-standard-8"
        assert spec.zone == "us-east4-b"
        assert spec.metadata["custom"] == "value"
        assert spec.metadata["_test_vmname"] == "copy"
        assert spec.metadata["_test_results_url"] == "imageboot/debian-12/copy.txt"
        assert [d.source for d in spec.disks] == ["source"]

    def test_derivative_not_in_shared_step(
        self, workflow: TestWorkflow, create_vm: VMFactory
    ) -> None:
        """Test the derivative gets its own create step."""
        source = create_vm("source")
        source.create_derivative_vm("copy")

        shared = workflow.steps[CREATE_VMS_STEP].create_instances.instances
        assert [i.name for i in shared] == ["source"]
        own = workflow.steps["create-vms-1"].create_instances.instances
        assert [i.name for i in own] == ["copy"]

    def test_default_name(self, create_vm: VMFactory) -> None:
        """Test the derivative name defaults to derivative-<name>."""
        source = create_vm("source")
        assert source.create_derivative_vm().name == "derivative-source"

    def test_default_name_steps(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test an unnamed derivative of "vm" is created after the disk detach."""
        source = create_vm("vm")
        derivative = source.create_derivative_vm()

        assert derivative.name == "derivative-vm"
        assert derivative.instance.schema == source.instance.schema
        assert workflow.counter == 1
        assert workflow.dependencies["create-vms-1"] == {"detach-disk-vm-1"}
        assert derivative.last_step == "wait-derivative-vm"
        assert workflow.steps["wait-derivative-vm"].wait_for_instances_signal[0].name == (
            "derivative-vm"
        )

    def test_given_name_used_as_is(self, create_vm: VMFactory) -> None:
        """Test a given name is not prefixed."""
        source = create_vm("vm")
        assert source.create_derivative_vm("copy").name == "copy"

    def test_given_name_of_source(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test the source's own name cannot be reused."""
        source = create_vm("vm")
        with pytest.raises(WorkflowBuildError):
            source.create_derivative_vm("vm")
        assert workflow.counter == 0
        assert "detach-disk-vm-1" not in workflow.steps

    def test_duplicate_name(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test the derivative name must be unused."""
        source = create_vm("source")
        create_vm("other")
        with pytest.raises(WorkflowBuildError):
            source.create_derivative_vm("other")
        assert workflow.counter == 0


class TestSpecMutators:
    """Tests for mutators that only change the instance spec."""

    def test_add_metadata_last_write_wins(self, create_vm: VMFactory) -> None:
        """Test metadata entries are overwritten."""
        vm = create_vm("boot")
        vm.add_metadata("key", "one")
        vm.add_metadata("key", "two")
        assert vm.instance.get_metadata("key") == "two"

    def test_add_user_appends(self, create_vm: VMFactory) -> None:
        """Test SSH keys accumulate one per line."""
        vm = create_vm("boot")
        vm.add_user("alice", "ssh-ed25519 AAAA")
        vm.add_user("bob", "ssh-ed25519 BBBB")
        assert vm.instance.get_metadata("ssh-keys") == (
            "alice:ssh-ed25519 AAAA\nbob:ssh-ed25519 BBBB"
        )

    def test_run_tests(self, create_vm: VMFactory) -> None:
        """Test the test filter is handed to the guest."""
        vm = create_vm("boot")
        vm.run_tests("TestGuestBoot$")
        assert vm.instance.get_metadata("_test_run") == "TestGuestBoot$"
        assert vm.instance.get_metadata("_test_package_name") == "imageboot.test"

    def test_secure_boot(self, create_vm: VMFactory) -> None:
        """Test secure boot is enabled in the shielded config."""
        vm = create_vm("boot")
        vm.enable_secure_boot()
        assert vm.instance.spec.shielded_instance_config.enable_secure_boot is True

    def test_add_scope_once(self, create_vm: VMFactory) -> None:
        """Test scopes are not duplicated."""
        vm = create_vm("boot")
        vm.add_scope("https://www.googleapis.com/auth/cloud-platform")
        vm.add_scope("https://www.googleapis.com/auth/cloud-platform")
        assert vm.instance.spec.scopes == ["https://www.googleapis.com/auth/cloud-platform"]

    def test_force_zone_invalid(self, create_vm: VMFactory) -> None:
        """Test a malformed zone is rejected."""
        vm = create_vm("boot")
        with pytest.raises(ResourceReferenceError):
            vm.force_zone("nowhere")

    def test_min_cpu_platform(self, create_vm: VMFactory) -> None:
        """Test the minimum CPU platform is set."""
        vm = create_vm("boot")
        vm.set_min_cpu_platform("Intel Ice Lake")
        assert vm.instance.spec.min_cpu_platform == "Intel Ice Lake"

    def test_gvnic_without_network(self, create_vm: VMFactory) -> None:
        """Test gVNIC on a VM without interfaces uses the default network."""
        vm = create_vm("boot")
        vm.use_gvnic()
        interfaces = vm.instance.network_interfaces()
        assert len(interfaces) == 1
        assert interfaces[0].network == "global/networks/default"
        assert interfaces[0].nic_type == "GVNIC"


class TestAddDisk:
    """Tests for TestVM.add_disk."""

    def test_scratch_local_ssd_default_size(
        self, workflow: TestWorkflow, create_vm: VMFactory
    ) -> None:
        """Test local SSDs get their fixed size and are not created separately."""
        vm = create_vm("boot")
        vm.add_disk(SCRATCH, InitializeParams(disk_type=LOCAL_SSD))

        attached = vm.instance.disks()[1]
        assert attached.type == SCRATCH
        assert attached.initialize_params.disk_size_gb == 375
        assert [d.name for d in workflow.steps[CREATE_DISKS_STEP].create_disks] == ["boot"]

    def test_persistent_disk(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test persistent disks join the shared create-disks step."""
        vm = create_vm("boot")
        vm.add_disk(PERSISTENT, InitializeParams(disk_type=PD_BALANCED, disk_size_gb=10), "data")

        disks = workflow.steps[CREATE_DISKS_STEP].create_disks
        assert disks[1].name == "data"
        assert disks[1].type == PD_BALANCED
        assert disks[1].size_gb == 10
        assert vm.instance.disks()[1].source == "data"

    def test_persistent_disk_needs_name(self, create_vm: VMFactory) -> None:
        """Test a persistent disk without a name is rejected."""
        vm = create_vm("boot")
        with pytest.raises(WorkflowBuildError, match="needs a name"):
            vm.add_disk(PERSISTENT)

    def test_persistent_disk_name_clash(self, create_vm: VMFactory) -> None:
        """Test a persistent disk cannot reuse a disk name."""
        vm = create_vm("boot")
        with pytest.raises(WorkflowBuildError, match="already exists"):
            vm.add_disk(PERSISTENT, name="boot")

    def test_unknown_mode(self, create_vm: VMFactory) -> None:
        """Test unknown attachment modes are rejected."""
        vm = create_vm("boot")
        with pytest.raises(WorkflowBuildError, match="Unknown disk mode"):
            vm.add_disk("READ_ONLY", name="ro")


class TestCustomNetworks:
    """Tests for attaching VMs to workflow networks."""

    def test_no_networks(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test attaching fails before any network exists."""
        other = TestWorkflow(workflow.options)
        network = other.create_network("net", auto_subnetworks=True)
        vm = create_vm("boot")
        with pytest.raises(PreconditionError, match="no networks"):
            vm.add_custom_network(network)

    def test_network_from_other_workflow(
        self, workflow: TestWorkflow, create_vm: VMFactory
    ) -> None:
        """Test networks must belong to the VM's workflow."""
        workflow.create_network("mine", auto_subnetworks=True)
        other = TestWorkflow(workflow.options)
        foreign = other.create_network("theirs", auto_subnetworks=True)
        vm = create_vm("boot")
        with pytest.raises(PreconditionError, match="different workflow"):
            vm.add_custom_network(foreign)

    def test_custom_mode_needs_subnetwork(
        self, workflow: TestWorkflow, create_vm: VMFactory
    ) -> None:
        """Test custom-mode networks require a subnetwork."""
        network = workflow.create_network("net", auto_subnetworks=False)
        vm = create_vm("boot")
        with pytest.raises(PreconditionError, match="subnetwork is required"):
            vm.add_custom_network(network)

    def test_primary_then_secondary(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test the first network is primary and later ones add interfaces."""
        net1 = workflow.create_network("net1", auto_subnetworks=False)
        sub1 = net1.create_subnetwork("sub1", "10.128.0.0/20")
        net2 = workflow.create_network("net2", auto_subnetworks=False)
        sub2 = net2.create_subnetwork("sub2", "192.168.0.0/16")

        vm = create_vm("vm1")
        vm.add_custom_network(net1, sub1)
        nic = vm.add_custom_network_with_private_ip(net2, sub2, "192.168.0.2")

        interfaces = vm.instance.network_interfaces()
        assert [(i.network, i.subnetwork) for i in interfaces] == [
            ("net1", "sub1"),
            ("net2", "sub2"),
        ]
        assert interfaces[0].access_configs is not None
        assert interfaces[1].access_configs is None
        assert nic.network_ip == "192.168.0.2"

    def test_alias_ranges_need_network(self, create_vm: VMFactory) -> None:
        """Test alias ranges require a custom network and leave interfaces alone."""
        vm = create_vm("boot")
        with pytest.raises(PreconditionError):
            vm.add_alias_ip_ranges("10.14.8.0/24", "secondary-range")
        assert vm.instance.spec.network_interfaces is None

    def test_alias_ranges_on_default_network(self, create_vm: VMFactory) -> None:
        """Test the default-network interface added by gVNIC is not a custom network."""
        vm = create_vm("boot")
        vm.use_gvnic()
        before = [i.model_dump() for i in vm.instance.network_interfaces()]

        with pytest.raises(PreconditionError):
            vm.add_alias_ip_ranges("10.14.8.0/24")

        assert [i.model_dump() for i in vm.instance.network_interfaces()] == before
        assert vm.instance.network_interfaces()[0].alias_ip_ranges is None

    def test_alias_ranges(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test alias ranges are added to the primary interface."""
        network = workflow.create_network("net", auto_subnetworks=False)
        subnetwork = network.create_subnetwork("sub", "10.128.0.0/20")
        subnetwork.add_secondary_range("secondary-range", "10.14.0.0/16")
        vm = create_vm("boot")
        vm.add_custom_network(network, subnetwork)
        vm.add_alias_ip_ranges("10.14.8.0/24", "secondary-range")

        alias = vm.instance.network_interfaces()[0].alias_ip_ranges[0]
        assert alias.ip_cidr_range == "10.14.8.0/24"
        assert alias.subnetwork_range_name == "secondary-range"

    def test_gvnic_on_custom_networks(self, workflow: TestWorkflow, create_vm: VMFactory) -> None:
        """Test gVNIC applies to every configured interface."""
        network = workflow.create_network("net", auto_subnetworks=True)
        vm = create_vm("boot")
        vm.add_custom_network(network)
        vm.use_gvnic()
        assert [i.nic_type for i in vm.instance.network_interfaces()] == ["GVNIC"]
