# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Resource-graph builder for imagetest.

This module turns VM, network, disk and quota declarations into the
ordered step graph executed by the external workflow engine.
"""

from imagetest.graph.network import Network, Subnetwork
from imagetest.graph.quota import QuotaRequest, aggregate_quotas, merge_quotas
from imagetest.graph.steps import Step
from imagetest.graph.vm import TestVM
from imagetest.graph.workflow import TestWorkflow, WorkflowOptions

__all__ = [
    "Network",
    "QuotaRequest",
    "Step",
    "Subnetwork",
    "TestVM",
    "TestWorkflow",
    "WorkflowOptions",
    "aggregate_quotas",
    "merge_quotas",
]
