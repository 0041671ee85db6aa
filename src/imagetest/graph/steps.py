# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Step vocabulary of a test workflow.

A step is a tagged node: exactly one of its payload fields is set and
that field decides what the engine does when the step runs. Dependency
edges between steps are held by the owning workflow, not by the steps.
"""

from __future__ import annotations

from pydantic import Field, model_validator

from imagetest.graph.models import (
    Disk,
    EngineModel,
    FirewallRule,
    Instance,
    InstanceBeta,
    NetworkSpec,
    SubnetworkSpec,
)
from imagetest.graph.quota import QuotaRequest

# Serial console markers written by the in-guest test wrapper
SUCCESS_MATCH = "FINISHED-TEST"
FAILURE_MATCH = "FAILED-TEST"
STATUS_MATCH = "STATUS-TEST"

# Guest attribute the in-guest test wrapper sets when it is done
GUEST_ATTRIBUTE_NAMESPACE = "citTest"
GUEST_ATTRIBUTE_TEST_KEY = "test-complete"
FIRST_BOOT_KEY = "first-boot-key"

DEFAULT_SIGNAL_INTERVAL = "5s"


class CreateInstances(EngineModel):
    """Instances created by one step, split by compute schema."""

    instances: list[Instance] | None = None
    instances_beta: list[InstanceBeta] | None = None

    def all_instances(self) -> list[Instance]:
        """Return the instances of both schemas."""
        return [*(self.instances or []), *(self.instances_beta or [])]


class InstanceNames(EngineModel):
    """Names of the instances a start, stop or resume step acts on."""

    instances: list[str] = Field(default_factory=list)


class SerialOutput(EngineModel):
    """Serial console markers a wait step watches for."""

    port: int = 1
    success_match: str = SUCCESS_MATCH
    failure_match: list[str] = Field(default_factory=lambda: [FAILURE_MATCH])
    status_match: str = STATUS_MATCH


class GuestAttribute(EngineModel):
    """Guest attribute a wait step polls for."""

    namespace: str = GUEST_ATTRIBUTE_NAMESPACE
    key_name: str = GUEST_ATTRIBUTE_TEST_KEY


class InstanceSignal(EngineModel):
    """One instance condition a wait step blocks on."""

    name: str
    interval: str = DEFAULT_SIGNAL_INTERVAL
    stopped: bool = False
    suspended: bool = False
    serial_output: SerialOutput | None = None
    guest_attribute: GuestAttribute | None = None


class ResizeDisk(EngineModel):
    """A disk resize performed by a ``resize-disks`` step."""

    name: str
    size_gb: int


class DetachDisk(EngineModel):
    """A disk detached from an instance by a ``detach-disks`` step."""

    instance: str
    device_name: str


class WaitForAvailableQuotas(EngineModel):
    """Quota the engine waits to become available before continuing."""

    quotas: list[QuotaRequest] = Field(default_factory=list)
    interval: str = "60s"


PAYLOAD_FIELDS = (
    "create_networks",
    "create_subnetworks",
    "create_firewall_rules",
    "create_disks",
    "create_instances",
    "start_instances",
    "stop_instances",
    "resume_instances",
    "wait_for_instances_signal",
    "resize_disks",
    "detach_disks",
    "wait_for_available_quotas",
)


class Step(EngineModel):
    """A named unit of work in a test workflow.

    Exactly one payload field is set. Payload lists may be extended
    after construction; shared steps such as ``create-vms`` grow as VMs
    are added to the workflow.
    """

    timeout: str | None = None
    """Per-step timeout override, e.g. ``"10m"``."""

    create_networks: list[NetworkSpec] | None = None
    create_subnetworks: list[SubnetworkSpec] | None = None
    create_firewall_rules: list[FirewallRule] | None = None
    create_disks: list[Disk] | None = None
    create_instances: CreateInstances | None = None
    start_instances: InstanceNames | None = None
    stop_instances: InstanceNames | None = None
    resume_instances: InstanceNames | None = None
    wait_for_instances_signal: list[InstanceSignal] | None = None
    resize_disks: list[ResizeDisk] | None = None
    detach_disks: list[DetachDisk] | None = None
    wait_for_available_quotas: WaitForAvailableQuotas | None = None

    @model_validator(mode="after")
    def validate_single_payload(self) -> Step:
        """Ensure exactly one payload field is set."""
        set_fields = [f for f in PAYLOAD_FIELDS if getattr(self, f) is not None]
        if len(set_fields) != 1:
            raise ValueError(
                f"a step must have exactly one payload, got {set_fields or 'none'}"
            )
        return self

    @property
    def kind(self) -> str:
        """Return the name of the payload field that is set."""
        for field_name in PAYLOAD_FIELDS:
            if getattr(self, field_name) is not None:
                return field_name
        raise ValueError("step has no payload")

    def to_document(self) -> dict:
        """Serialize the step the way the engine reads it."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def wait_signal(
    instance_name: str,
    *,
    key: str = GUEST_ATTRIBUTE_TEST_KEY,
    stopped: bool = False,
    suspended: bool = False,
) -> InstanceSignal:
    """Build the signal a wait step uses for one instance.

    A stopped or suspended signal waits for the instance to reach that
    state and watches neither the serial console nor guest attributes.

    Args:
        instance_name: Name of the instance to wait for.
        key: Guest attribute key that marks completion.
        stopped: Wait for the instance to reach the stopped state.
        suspended: Wait for the instance to reach the suspended state.

    Returns:
        The instance signal.
    """
    if stopped or suspended:
        return InstanceSignal(name=instance_name, stopped=stopped, suspended=suspended)
    return InstanceSignal(
        name=instance_name,
        serial_output=SerialOutput(),
        guest_attribute=GuestAttribute(key_name=key),
    )
