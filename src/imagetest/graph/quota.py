# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Quota request merging.

Workflows declare the quota they need up front in a single
``wait-for-available-quotas`` step so that concurrently launched
workflows sharing one project wait their turn in the engine instead of
racing each other. Requests for the same metric in the same region are
folded into one entry.
"""

from __future__ import annotations

from collections.abc import Iterable

from imagetest.graph.models import EngineModel


class QuotaRequest(EngineModel):
    """An amount of a regional quota metric a workflow needs available."""

    metric: str
    """Quota metric name, e.g. ``CPUS`` or ``NVIDIA_H100_GPUS``."""

    region: str
    """Region the quota is checked in."""

    units: float
    """Number of units required."""

    @property
    def key(self) -> tuple[str, str]:
        """Merge key: requests with the same key are summed."""
        return (self.metric, self.region)


def merge_quotas(
    existing: Iterable[QuotaRequest], incoming: QuotaRequest
) -> list[QuotaRequest]:
    """Merge one request into a list of requests.

    A request whose (metric, region) already appears is summed into that
    entry; otherwise it is appended. The inputs are not modified.

    Args:
        existing: Requests merged so far.
        incoming: The request to merge in.

    Returns:
        A new list with at most one entry per (metric, region).

    Example:
        >>> merged = merge_quotas(
        ...     [QuotaRequest(metric="CPUS", region="us-central1", units=2)],
        ...     QuotaRequest(metric="CPUS", region="us-central1", units=1),
        ... )
        >>> merged[0].units
        3.0
    """
    merged = [q.model_copy() for q in existing]
    for quota in merged:
        if quota.key == incoming.key:
            quota.units += incoming.units
            return merged
    merged.append(incoming.model_copy())
    return merged


def aggregate_quotas(requests: Iterable[QuotaRequest]) -> list[QuotaRequest]:
    """Fold a sequence of requests into one entry per (metric, region).

    Entries keep the order in which their key first appeared. The
    resulting set of (key, units) pairs is independent of input order.

    Args:
        requests: The requests to fold.

    Returns:
        The merged requests.
    """
    merged: list[QuotaRequest] = []
    for request in requests:
        merged = merge_quotas(merged, request)
    return merged
