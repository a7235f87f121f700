"""Azure resource identifier construction and parsing.

Resource IDs follow the pattern:
    /subscriptions/{sub}/resourceGroups/{rg}/providers/{namespace}/{type}/{name}

IDs built here are compared by exact string equality against the IDs
Azure reports, so casing and segment order must not change.
"""

from __future__ import annotations

from dataclasses import dataclass

NETWORK_PROVIDER_NAMESPACE = "Microsoft.Network"


@dataclass(frozen=True)
class ResourceKind:
    """A resource type under a provider namespace.

    Attributes:
        namespace: Provider namespace (e.g., "Microsoft.Network").
        type: Resource type segment (e.g., "natGateways").
        display_name: Human-readable name used in error messages.
    """

    namespace: str
    type: str
    display_name: str

    @property
    def full_type(self) -> str:
        """Namespace-qualified type, e.g. "Microsoft.Network/natGateways"."""
        return f"{self.namespace}/{self.type}"


NAT_GATEWAYS = ResourceKind(NETWORK_PROVIDER_NAMESPACE, "natGateways", "nat gateway")
PUBLIC_IP_ADDRESSES = ResourceKind(NETWORK_PROVIDER_NAMESPACE, "publicIPAddresses", "public ip")
VIRTUAL_NETWORKS = ResourceKind(NETWORK_PROVIDER_NAMESPACE, "virtualNetworks", "vnet")


def resource_id(subscription_id: str, resource_group: str, kind: ResourceKind, name: str) -> str:
    """Build the ARM ID of a resource group scoped resource."""
    return (
        f"/subscriptions/{subscription_id}"
        f"/resourceGroups/{resource_group}"
        f"/providers/{kind.namespace}/{kind.type}/{name}"
    )


def nat_gateway_id(subscription_id: str, resource_group: str, name: str) -> str:
    return resource_id(subscription_id, resource_group, NAT_GATEWAYS, name)


def public_ip_id(subscription_id: str, resource_group: str, name: str) -> str:
    return resource_id(subscription_id, resource_group, PUBLIC_IP_ADDRESSES, name)


def vnet_id(subscription_id: str, resource_group: str, name: str) -> str:
    return resource_id(subscription_id, resource_group, VIRTUAL_NETWORKS, name)


def parse_resource_type_from_id(resource_id: str | None) -> str:
    """Extract resource type from Azure resource ID.

    Args:
        resource_id: Azure resource ID.

    Returns:
        Resource type (e.g., "Microsoft.Network/natGateways") or "unknown".
    """
    if not resource_id:
        return "unknown"

    parts = resource_id.split("/providers/")
    if len(parts) < 2:
        return "unknown"

    segments = parts[-1].split("/")
    if len(segments) < 2:
        return "unknown"

    return f"{segments[0]}/{segments[1]}"


def parse_resource_name_from_id(resource_id: str | None) -> str:
    """Extract the trailing resource name from an ARM ID, or "" if absent."""
    if not resource_id or "/providers/" not in resource_id:
        return ""
    segments = resource_id.rstrip("/").split("/providers/")[-1].split("/")
    if len(segments) < 3:
        return ""
    return segments[-1]
