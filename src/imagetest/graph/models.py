# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Pydantic models for the resources a test workflow provisions.

These models are the payloads carried by workflow steps. They serialize
with PascalCase keys, the naming the external workflow engine reads,
while Python code constructs and mutates them by their snake_case
field names.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal

# Disk types
PD_STANDARD = "pd-standard"
PD_SSD = "pd-ssd"
PD_BALANCED = "pd-balanced"
PD_EXTREME = "pd-extreme"
HYPERDISK_BALANCED = "hyperdisk-balanced"
HYPERDISK_EXTREME = "hyperdisk-extreme"
HYPERDISK_THROUGHPUT = "hyperdisk-throughput"
LOCAL_SSD = "local-ssd"

# Attached disk modes
PERSISTENT = "PERSISTENT"
SCRATCH = "SCRATCH"

LOCAL_SSD_SIZE_GB = 375


class EngineModel(BaseModel):
    """Base model for all payloads handed to the workflow engine."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)


class Disk(EngineModel):
    """A persistent disk created by a ``create-disks`` step."""

    name: str
    """Name of the disk. A boot disk carries the name of its VM."""

    source_image: str | None = None
    """Image URL the disk is created from. Only set on boot disks."""

    type: str | None = None
    """Disk type, e.g. ``pd-balanced``."""

    size_gb: int | None = None
    """Requested size in GB. The engine uses the image size when unset."""

    zone: str | None = None
    """Zone override. Falls back to the workflow zone."""


class InitializeParams(EngineModel):
    """Parameters for a disk created as part of instance creation."""

    disk_size_gb: int | None = None
    disk_type: str | None = None
    source_image: str | None = None


class AttachedDisk(EngineModel):
    """A disk attached to an instance."""

    source: str | None = None
    """Name of a disk created by the workflow."""

    type: str = PERSISTENT
    """Attachment mode: ``PERSISTENT`` or ``SCRATCH``."""

    boot: bool | None = None
    auto_delete: bool | None = None
    device_name: str | None = None
    interface: str | None = None
    initialize_params: InitializeParams | None = None


class AccessConfig(EngineModel):
    """External access configuration for a network interface."""

    name: str = "External NAT"
    type: str = "ONE_TO_ONE_NAT"


class AliasIpRange(EngineModel):
    """A secondary IP range routed to a network interface."""

    ip_cidr_range: str
    subnetwork_range_name: str | None = None


class NetworkInterface(EngineModel):
    """A network interface of an instance."""

    network: str | None = None
    subnetwork: str | None = None
    network_ip: str | None = None
    """Static private IP address within the subnetwork."""

    nic_type: str | None = None
    """Virtual NIC type, e.g. ``GVNIC`` or ``VIRTIO_NET``."""

    access_configs: list[AccessConfig] | None = None
    alias_ip_ranges: list[AliasIpRange] | None = None


class ShieldedInstanceConfig(EngineModel):
    """Shielded VM options."""

    enable_secure_boot: bool = False
    enable_vtpm: bool | None = None
    enable_integrity_monitoring: bool | None = None


class ReservationAffinity(EngineModel):
    """Which reservations an instance may consume."""

    consume_reservation_type: str
    key: str | None = None
    values: list[str] | None = None


class Scheduling(EngineModel):
    """Host maintenance and restart behavior."""

    on_host_maintenance: str | None = None
    automatic_restart: bool | None = None
    preemptible: bool | None = None


class Instance(EngineModel):
    """An instance in the stable compute schema."""

    name: str
    zone: str | None = None
    """Zone override. Falls back to the workflow zone."""

    machine_type: str | None = None
    hostname: str | None = None
    description: str | None = None
    min_cpu_platform: str | None = None

    disks: list[AttachedDisk] = Field(default_factory=list)
    """Attached disks. The boot disk is always first."""

    network_interfaces: list[NetworkInterface] | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    scopes: list[str] | None = None
    shielded_instance_config: ShieldedInstanceConfig | None = None
    reservation_affinity: ReservationAffinity | None = None
    scheduling: Scheduling | None = None


class InstanceBeta(Instance):
    """An instance in the preview compute schema.

    Carries every stable field plus options only the preview API accepts.
    """

    performance_monitoring_unit: str | None = None
    enable_uefi_networking: bool | None = None


class SecondaryRange(EngineModel):
    """A named secondary IP range on a subnetwork."""

    range_name: str
    ip_cidr_range: str


class NetworkSpec(EngineModel):
    """A VPC network created by a ``create-networks`` step."""

    name: str
    auto_create_subnetworks: bool | None = None
    """Whether the network is in auto-subnet mode. ``False`` means custom mode."""

    mtu: int | None = None
    ipv4_range: str | None = None
    """Legacy network range; only valid for legacy networks."""

    description: str | None = None


class SubnetworkSpec(EngineModel):
    """A subnetwork created by a ``create-subnetworks`` step."""

    name: str
    network: str
    ip_cidr_range: str
    region: str | None = None
    secondary_ip_ranges: list[SecondaryRange] | None = None


class FirewallAllowed(EngineModel):
    """A protocol and port list a firewall rule admits."""

    ip_protocol: str
    ports: list[str] | None = None


class FirewallRule(EngineModel):
    """A firewall rule created by a ``create-firewall-rules`` step."""

    name: str
    network: str
    allowed: list[FirewallAllowed] = Field(default_factory=list)
    source_ranges: list[str] | None = None
