# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Network and subnetwork handles returned by the workflow builder.

Handles wrap the payload models already placed in the workflow's shared
``create-networks`` / ``create-subnetworks`` steps, so mutations made
through them (secondary ranges, region) are reflected in the emitted
document.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from imagetest.exceptions import ResourceReferenceError
from imagetest.graph.models import (
    FirewallAllowed,
    FirewallRule,
    NetworkSpec,
    SecondaryRange,
    SubnetworkSpec,
)

if TYPE_CHECKING:
    from imagetest.graph.workflow import TestWorkflow


def region_from_zone(zone: str) -> str:
    """Derive the region a zone belongs to.

    Raises:
        ResourceReferenceError: If the zone has no ``-`` separated suffix.

    Example:
        >>> region_from_zone("us-central1-a")
        'us-central1'
    """
    region, sep, suffix = (zone or "").rpartition("-")
    if not sep or not region or not suffix:
        raise ResourceReferenceError(
            f"Cannot derive a region from zone '{zone}'",
            suggestion="Zones look like 'us-central1-a': a region, a dash and a zone letter",
        )
    return region


class Network:
    """A VPC network created in a test workflow.

    Attributes:
        workflow: The workflow the network belongs to.
        subnetworks: Subnetworks created on this network, in creation order.
    """

    def __init__(self, spec: NetworkSpec, workflow: TestWorkflow) -> None:
        self.spec = spec
        self.workflow = workflow
        self.subnetworks: list[Subnetwork] = []
        self.firewall_rules: list[FirewallRule] = []

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def custom_mode(self) -> bool:
        """True if subnetworks must be created explicitly."""
        return self.spec.auto_create_subnetworks is False

    def create_subnetwork(self, name: str, ip_range: str) -> Subnetwork:
        """Create a subnetwork on this network.

        The region defaults to the region of the workflow zone; change it
        with ``Subnetwork.set_region``.

        Args:
            name: Name of the subnetwork.
            ip_range: Primary IPv4 range in CIDR notation.

        Returns:
            The new subnetwork.

        Raises:
            ResourceReferenceError: If the region cannot be derived from
                the workflow zone.
            WorkflowBuildError: If a subnetwork with that name exists.
        """
        spec = SubnetworkSpec(
            name=name,
            network=self.name,
            ip_cidr_range=ip_range,
            region=self.workflow.region,
        )
        self.workflow.append_create_subnetwork_step(spec)
        subnetwork = Subnetwork(spec, self)
        self.subnetworks.append(subnetwork)
        return subnetwork

    def create_firewall_rule(
        self,
        name: str,
        protocol: str,
        ports: list[str] | None,
        ranges: list[str] | None,
    ) -> FirewallRule:
        """Create a firewall rule admitting traffic on this network.

        Args:
            name: Name of the rule.
            protocol: IP protocol, e.g. ``tcp``.
            ports: Ports to admit, or None for every port.
            ranges: Source CIDR ranges.

        Returns:
            The firewall rule payload.
        """
        rule = FirewallRule(
            name=name,
            network=self.name,
            allowed=[FirewallAllowed(ip_protocol=protocol, ports=ports)],
            source_ranges=ranges,
        )
        self.workflow.append_create_firewall_step(rule)
        self.firewall_rules.append(rule)
        return rule


class Subnetwork:
    """A subnetwork created on a test network."""

    def __init__(self, spec: SubnetworkSpec, network: Network) -> None:
        self.spec = spec
        self.network = network

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def region(self) -> str | None:
        return self.spec.region

    def add_secondary_range(self, range_name: str, ip_range: str) -> None:
        """Add a named secondary range usable for alias IPs."""
        if self.spec.secondary_ip_ranges is None:
            self.spec.secondary_ip_ranges = []
        self.spec.secondary_ip_ranges.append(
            SecondaryRange(range_name=range_name, ip_cidr_range=ip_range)
        )

    def set_region(self, region: str) -> None:
        self.spec.region = region
