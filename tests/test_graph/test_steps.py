"""Tests for step models, quota merging and instance capabilities."""

import pytest
from pydantic import ValidationError

from imagetest.graph.instance import PreviewInstance, StableInstance, capability_for, new_instance
from imagetest.graph.models import Instance, InstanceBeta
from imagetest.graph.quota import QuotaRequest, aggregate_quotas, merge_quotas
from imagetest.graph.steps import (
    CreateInstances,
    InstanceNames,
    Step,
    wait_signal,
)


class TestStep:
    """Tests for the Step model."""

    def test_exactly_one_payload(self) -> None:
        """Test a step needs exactly one payload."""
        with pytest.raises(ValidationError):
            Step()
        with pytest.raises(ValidationError):
            Step(
                start_instances=InstanceNames(instances=["a"]),
                stop_instances=InstanceNames(instances=["a"]),
            )

    def test_kind(self) -> None:
        """Test the kind is the payload field name."""
        step = Step(stop_instances=InstanceNames(instances=["a"]))
        assert step.kind == "stop_instances"

    def test_document_omits_unset(self) -> None:
        """Test unset fields are not emitted and keys are PascalCase."""
        step = Step(timeout="10m", start_instances=InstanceNames(instances=["a"]))
        assert step.to_document() == {"Timeout": "10m", "StartInstances": {"Instances": ["a"]}}


class TestWaitSignal:
    """Tests for wait_signal."""

    def test_completion_signal(self) -> None:
        """Test completion waits watch the serial console and guest attributes."""
        signal = wait_signal("vm")
        assert signal.serial_output.success_match == "FINISHED-TEST"
        assert signal.serial_output.failure_match == ["FAILED-TEST"]
        assert signal.guest_attribute.namespace == "citTest"
        assert signal.guest_attribute.key_name == "test-complete"

    def test_stopped_signal(self) -> None:
        """Test state waits carry no markers."""
        signal = wait_signal("vm", stopped=True)
        assert signal.stopped is True
        assert signal.serial_output is None
        assert signal.guest_attribute is None


class TestQuotaMerging:
    """Tests for quota merging."""

    def test_merge_does_not_mutate(self) -> None:
        """Test merging returns new entries."""
        existing = [QuotaRequest(metric="CPUS", region="us-central1", units=2)]
        merged = merge_quotas(existing, QuotaRequest(metric="CPUS", region="us-central1", units=1))
        assert merged[0].units == 3
        assert existing[0].units == 2

    def test_regions_kept_apart(self) -> None:
        """Test the same metric in two regions stays two entries."""
        merged = aggregate_quotas(
            [
                QuotaRequest(metric="CPUS", region="us-central1", units=2),
                QuotaRequest(metric="CPUS", region="us-east1", units=2),
            ]
        )
        assert [q.key for q in merged] == [("CPUS", "us-central1"), ("CPUS", "us-east1")]

    def test_order_independent_totals(self) -> None:
        """Test the totals do not depend on request order."""
        requests = [
            QuotaRequest(metric="CPUS", region="r", units=1),
            QuotaRequest(metric="GPUS", region="r", units=4),
            QuotaRequest(metric="CPUS", region="r", units=2.5),
        ]
        forward = {q.key: q.units for q in aggregate_quotas(requests)}
        backward = {q.key: q.units for q in aggregate_quotas(reversed(requests))}
        assert forward == backward == {("CPUS", "r"): 3.5, ("GPUS", "r"): 4}


class TestInstanceCapability:
    """Tests for the stable and preview instance capabilities."""

    def test_stable_registers_in_instances(self) -> None:
        """Test stable instances go into the Instances slot."""
        payload = CreateInstances()
        instance = new_instance("stable", "vm")
        instance.register(payload)
        assert payload.instances == [instance.spec]
        assert payload.instances_beta is None

    def test_preview_registers_in_beta(self) -> None:
        """Test preview instances go into the InstancesBeta slot."""
        payload = CreateInstances()
        instance = new_instance("preview", "vm")
        instance.register(payload)
        assert payload.instances_beta == [instance.spec]
        assert isinstance(instance.spec, InstanceBeta)
        assert payload.all_instances() == [instance.spec]

    def test_unknown_schema(self) -> None:
        """Test unknown schemas are rejected."""
        with pytest.raises(ValueError):
            new_instance("alpha", "vm")  # type: ignore[arg-type]

    def test_capability_for(self) -> None:
        """Test wrapping picks the capability matching the model."""
        assert isinstance(capability_for(Instance(name="a")), StableInstance)
        assert isinstance(capability_for(InstanceBeta(name="a")), PreviewInstance)

    def test_schema_mismatch(self) -> None:
        """Test capabilities refuse models of the other schema."""
        with pytest.raises(TypeError):
            StableInstance(InstanceBeta(name="a"))
        with pytest.raises(TypeError):
            PreviewInstance(Instance(name="a"))  # type: ignore[arg-type]

    def test_metadata(self) -> None:
        """Test metadata get and set."""
        instance = new_instance("stable", "vm")
        assert instance.get_metadata("key") is None
        instance.set_metadata("key", "value")
        assert instance.get_metadata("key") == "value"
