"""Network ownership classification and ownership tag conventions.

A cluster either owns its virtual network (created it, so it may create and
delete the NAT gateways attached to it) or runs in a network supplied by an
operator ("custom vnet" or shared mode), which this controller must never
modify.

The reconciler only looks at the vnet ID: an empty ID means managed. The
tags decide upstream, in ``resolve_vnet``, whether the ID stays empty.
"""

from __future__ import annotations

from enum import Enum

from .models import VnetSpec
from .resource_ids import vnet_id

# Tag key conventions shared with the rest of the cluster tooling
NAME_TAG = "Name"
ROLE_TAG = "sigs.k8s.io_cluster-api-provider-azure_role"
CLUSTER_TAG_PREFIX = "sigs.k8s.io_cluster-api-provider-azure_cluster_"

COMMON_ROLE = "common"


class ResourceLifecycle(str, Enum):
    """Value of the per-cluster ownership tag."""

    OWNED = "owned"
    SHARED = "shared"


class NetworkOwnership(str, Enum):
    """Whether the parent network is under this controller's ownership."""

    MANAGED = "managed"
    UNMANAGED = "unmanaged"


def cluster_tag_key(cluster_name: str) -> str:
    """Return the ownership tag key for a cluster."""
    return f"{CLUSTER_TAG_PREFIX}{cluster_name}"


def has_owned(tags: dict[str, str], cluster_name: str) -> bool:
    return tags.get(cluster_tag_key(cluster_name)) == ResourceLifecycle.OWNED.value


def has_shared(tags: dict[str, str], cluster_name: str) -> bool:
    return tags.get(cluster_tag_key(cluster_name)) == ResourceLifecycle.SHARED.value


def build_tags(
    cluster_name: str,
    name: str,
    role: str,
    lifecycle: ResourceLifecycle = ResourceLifecycle.OWNED,
    additional: dict[str, str] | None = None,
) -> dict[str, str]:
    """Build the tag set for a resource created on behalf of a cluster.

    Additional tags never override the ownership tags.
    """
    tags = dict(additional or {})
    tags.update({
        cluster_tag_key(cluster_name): lifecycle.value,
        ROLE_TAG: role,
        NAME_TAG: name,
    })
    return tags


def classify_network(vnet: VnetSpec) -> NetworkOwnership:
    """Classify a vnet by its ID alone."""
    if vnet.id:
        return NetworkOwnership.UNMANAGED
    return NetworkOwnership.MANAGED


def is_managed(vnet: VnetSpec) -> bool:
    """Return True if attached resources of ``vnet`` belong to this controller."""
    return classify_network(vnet) is NetworkOwnership.MANAGED


def resolve_vnet(
    vnet: VnetSpec,
    cluster_name: str,
    subscription_id: str,
    resource_group: str,
) -> VnetSpec:
    """Fill in the vnet ID for networks this cluster does not own.

    Resolution order:
    1. An explicit ID is kept as-is.
    2. Untagged vnets, or vnets tagged ``owned`` for this cluster, keep an
       empty ID (the cluster creates them).
    3. Anything else is pre-existing: its deterministic ID is filled in.
    """
    if vnet.id:
        return vnet

    if not vnet.tags or has_owned(vnet.tags, cluster_name):
        return vnet

    group = vnet.resource_group or resource_group
    return vnet.model_copy(update={"id": vnet_id(subscription_id, group, vnet.name)})
