# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Instance capability interface and its two compute-schema implementations.

VM mutators are written once against ``InstanceCapability``. The stable
and preview schemas differ only in which model backs the instance and
which slot of a ``create-instances`` step it is registered in.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

from imagetest.graph.models import (
    AttachedDisk,
    Instance,
    InstanceBeta,
    NetworkInterface,
    ReservationAffinity,
    ShieldedInstanceConfig,
)
from imagetest.graph.steps import CreateInstances

InstanceSchema = Literal["stable", "preview"]


class InstanceCapability(ABC):
    """Operations a VM needs from its backing instance spec."""

    schema: InstanceSchema

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the instance name."""

    @property
    @abstractmethod
    def spec(self) -> Instance:
        """Return the underlying instance model."""

    @abstractmethod
    def get_metadata(self, key: str) -> str | None:
        """Return a metadata value, or None if the key is unset."""

    @abstractmethod
    def set_metadata(self, key: str, value: str) -> None:
        """Set a metadata value, replacing any previous value."""

    @abstractmethod
    def disks(self) -> list[AttachedDisk]:
        """Return the attached disks, boot disk first."""

    @abstractmethod
    def append_disk(self, disk: AttachedDisk) -> None:
        """Attach a disk after the existing ones."""

    @abstractmethod
    def network_interfaces(self) -> list[NetworkInterface]:
        """Return the network interfaces, creating the list if needed."""

    @abstractmethod
    def set_machine_type(self, machine_type: str) -> None:
        """Set the machine type."""

    @abstractmethod
    def set_zone(self, zone: str) -> None:
        """Set the zone."""

    @abstractmethod
    def enable_secure_boot(self) -> None:
        """Enable secure boot in the shielded instance config."""

    @abstractmethod
    def add_scope(self, scope: str) -> None:
        """Grant an OAuth scope to the instance service account."""

    @abstractmethod
    def set_min_cpu_platform(self, platform: str) -> None:
        """Set the minimum CPU platform."""

    @abstractmethod
    def set_reservation_affinity(self, affinity: ReservationAffinity | None) -> None:
        """Set which reservations the instance may consume."""

    @abstractmethod
    def register(self, step: CreateInstances) -> None:
        """Add the instance to a ``create-instances`` payload."""


class _ModelInstance(InstanceCapability):
    """Capability implemented over a pydantic instance model."""

    def __init__(self, instance: Instance) -> None:
        self._instance = instance

    @property
    def name(self) -> str:
        return self._instance.name

    @property
    def spec(self) -> Instance:
        return self._instance

    def get_metadata(self, key: str) -> str | None:
        return self._instance.metadata.get(key)

    def set_metadata(self, key: str, value: str) -> None:
        self._instance.metadata[key] = value

    def disks(self) -> list[AttachedDisk]:
        return self._instance.disks

    def append_disk(self, disk: AttachedDisk) -> None:
        self._instance.disks.append(disk)

    def network_interfaces(self) -> list[NetworkInterface]:
        if self._instance.network_interfaces is None:
            self._instance.network_interfaces = []
        return self._instance.network_interfaces

    def set_machine_type(self, machine_type: str) -> None:
        self._instance.machine_type = machine_type

    def set_zone(self, zone: str) -> None:
        self._instance.zone = zone

    def enable_secure_boot(self) -> None:
        if self._instance.shielded_instance_config is None:
            self._instance.shielded_instance_config = ShieldedInstanceConfig()
        self._instance.shielded_instance_config.enable_secure_boot = True

    def add_scope(self, scope: str) -> None:
        scopes = self._instance.scopes or []
        if scope not in scopes:
            scopes.append(scope)
        self._instance.scopes = scopes

    def set_min_cpu_platform(self, platform: str) -> None:
        self._instance.min_cpu_platform = platform

    def set_reservation_affinity(self, affinity: ReservationAffinity | None) -> None:
        self._instance.reservation_affinity = (
            affinity.model_copy(deep=True) if affinity is not None else None
        )


class StableInstance(_ModelInstance):
    """Instance backed by the stable compute schema."""

    schema: InstanceSchema = "stable"

    def __init__(self, instance: Instance) -> None:
        if isinstance(instance, InstanceBeta):
            raise TypeError("StableInstance requires a stable Instance model")
        super().__init__(instance)

    def register(self, step: CreateInstances) -> None:
        if step.instances is None:
            step.instances = []
        step.instances.append(self._instance)


class PreviewInstance(_ModelInstance):
    """Instance backed by the preview compute schema."""

    schema: InstanceSchema = "preview"

    def __init__(self, instance: InstanceBeta) -> None:
        if not isinstance(instance, InstanceBeta):
            raise TypeError("PreviewInstance requires an InstanceBeta model")
        super().__init__(instance)

    @property
    def spec(self) -> InstanceBeta:
        return self._instance  # type: ignore[return-value]

    def register(self, step: CreateInstances) -> None:
        if step.instances_beta is None:
            step.instances_beta = []
        step.instances_beta.append(self._instance)  # type: ignore[arg-type]


def new_instance(
    schema: InstanceSchema, name: str, **fields: object
) -> InstanceCapability:
    """Create an instance capability for the given schema.

    Args:
        schema: ``"stable"`` or ``"preview"``.
        name: Name of the instance.
        **fields: Additional instance model fields.

    Returns:
        The capability wrapping a freshly built instance model.
    """
    match schema:
        case "stable":
            return StableInstance(Instance(name=name, **fields))
        case "preview":
            return PreviewInstance(InstanceBeta(name=name, **fields))
        case _:
            raise ValueError(f"Unknown instance schema: {schema}")


def capability_for(instance: Instance) -> InstanceCapability:
    """Wrap an existing instance model in the capability for its schema."""
    if isinstance(instance, InstanceBeta):
        return PreviewInstance(instance)
    return StableInstance(instance)
