"""Pydantic models for the cluster network and its NAT gateways.

These models provide:
1. Type-safe YAML parsing of the cluster network spec
2. Validation at the boundary (fail fast, fail loudly)
3. The attachment records the reconciler writes back onto subnets
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Azure resource names: 1-80 chars, letters, digits, underscore, period, hyphen
AZURE_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,79}$"


class SubnetRole(str, Enum):
    """Role a subnet plays in the cluster."""

    NODE = "node"
    CONTROL_PLANE = "control-plane"


# =============================================================================
# Subnet attachments
# =============================================================================


class PublicIPSpec(BaseModel):
    """Public IP address referenced by a NAT gateway."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = ""


class NatGateway(BaseModel):
    """NAT gateway identity as recorded on a subnet.

    The reconciler fills in ``id`` once the gateway exists in Azure.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: str = ""
    name: str = ""
    nat_gateway_ip: PublicIPSpec = Field(default_factory=PublicIPSpec, alias="natGatewayIP")


class SubnetSpec(BaseModel):
    """Subnet record of the cluster virtual network."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    name: Annotated[str, Field(min_length=1, pattern=AZURE_NAME_PATTERN)]
    role: SubnetRole = SubnetRole.NODE
    cidr_blocks: list[str] = Field(default_factory=list, alias="cidrBlocks")
    nat_gateway: NatGateway = Field(default_factory=NatGateway, alias="natGateway")

    @field_validator("cidr_blocks")
    @classmethod
    def validate_cidr(cls, v: list[str]) -> list[str]:
        for block in v:
            if "/" not in block:
                raise ValueError(f"cidrBlocks entries must be in CIDR notation: {block}")
        return v

    def with_nat_gateway(self, nat_gateway: NatGateway) -> SubnetSpec:
        """Return a copy of this subnet attached to ``nat_gateway``."""
        return self.model_copy(update={"nat_gateway": nat_gateway})


class VnetSpec(BaseModel):
    """Virtual network that parents the cluster subnets.

    An empty ``id`` means the network is created and owned by this cluster.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: str = ""
    name: Annotated[str, Field(min_length=1, pattern=AZURE_NAME_PATTERN)]
    resource_group: str | None = Field(None, alias="resourceGroup")
    cidr_blocks: list[str] = Field(default_factory=list, alias="cidrBlocks")
    tags: dict[str, str] = Field(default_factory=dict)


class NatGatewaySpec(BaseModel):
    """Desired NAT gateway for a single subnet, produced per reconcile pass."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: Annotated[str, Field(min_length=1)]
    subnet: SubnetSpec
    nat_gateway_ip: PublicIPSpec = Field(default_factory=PublicIPSpec, alias="natGatewayIP")


# =============================================================================
# Cluster network document
# =============================================================================


class ClusterNetworkSpec(BaseModel):
    """Cluster network specification loaded from YAML."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    resource_group_name: str | None = Field(None, alias="resourceGroupName")
    location: str | None = None
    additional_tags: dict[str, str] = Field(default_factory=dict, alias="additionalTags")
    vnet: VnetSpec
    subnets: list[SubnetSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_names(self) -> ClusterNetworkSpec:
        seen_subnets: set[str] = set()
        seen_gateways: set[str] = set()
        for subnet in self.subnets:
            if subnet.name in seen_subnets:
                raise ValueError(f"duplicate subnet name: {subnet.name}")
            seen_subnets.add(subnet.name)

            gateway = subnet.nat_gateway.name
            if gateway:
                if gateway in seen_gateways:
                    raise ValueError(f"duplicate natGateway name: {gateway}")
                seen_gateways.add(gateway)
        return self


# =============================================================================
# Observed state
# =============================================================================


@dataclass(frozen=True)
class ObservedNatGateway:
    """NAT gateway as last reported by Azure.

    Fetched fresh on every pass; never cached.
    """

    id: str
    name: str
    public_ip_ids: frozenset[str] = field(default_factory=frozenset)
