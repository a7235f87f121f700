"""Desired-state scope consumed by the NAT gateway reconciler.

``NatGatewayScope`` is the capability set the reconciler needs: naming and
location context, the parent vnet, the desired NAT gateways, and a mutator
to record the resolved gateway identity on its subnet. ``ClusterScope`` is
the production implementation backed by a loaded ``ClusterNetworkSpec``.
"""

from __future__ import annotations

import logging
from typing import Protocol

from .config import Config
from .models import (
    ClusterNetworkSpec,
    NatGatewaySpec,
    PublicIPSpec,
    SubnetRole,
    SubnetSpec,
    VnetSpec,
)
from .ownership import has_shared, resolve_vnet

logger = logging.getLogger(__name__)


def default_nat_gateway_ip_name(cluster_name: str, subnet_name: str) -> str:
    """Default public IP name for the NAT gateway of a subnet."""
    return f"pip-{cluster_name}-{subnet_name}-natgw"


class NatGatewayScope(Protocol):
    """Read/write access to the desired state of one cluster."""

    def vnet(self) -> VnetSpec: ...

    def cluster_name(self) -> str: ...

    def nat_gateway_specs(self) -> list[NatGatewaySpec]: ...

    def subscription_id(self) -> str: ...

    def resource_group(self) -> str: ...

    def location(self) -> str: ...

    def additional_tags(self) -> dict[str, str]: ...

    def set_subnet(self, subnet: SubnetSpec) -> None: ...


class ClusterScope:
    """Scope over a cluster network spec and the controller configuration.

    Values in the spec (resource group, location) take precedence over the
    environment configuration.
    """

    def __init__(self, config: Config, spec: ClusterNetworkSpec) -> None:
        self._config = config
        self._spec = spec
        self._subnets: list[SubnetSpec] = list(spec.subnets)

    def vnet(self) -> VnetSpec:
        vnet = resolve_vnet(
            self._spec.vnet,
            cluster_name=self.cluster_name(),
            subscription_id=self.subscription_id(),
            resource_group=self.resource_group(),
        )
        if has_shared(vnet.tags, self.cluster_name()):
            logger.debug(
                "Vnet is shared with this cluster",
                extra={"vnet": vnet.name, "vnet_id": vnet.id, "cluster": self.cluster_name()},
            )
        return vnet

    def cluster_name(self) -> str:
        return self._config.cluster_name

    def subscription_id(self) -> str:
        return self._config.subscription_id

    def resource_group(self) -> str:
        return self._spec.resource_group_name or self._config.resource_group

    def location(self) -> str:
        return self._spec.location or self._config.location

    def additional_tags(self) -> dict[str, str]:
        tags = dict(self._config.additional_tags)
        tags.update(self._spec.additional_tags)
        return tags

    def nat_gateway_specs(self) -> list[NatGatewaySpec]:
        """Desired NAT gateways, in subnet declaration order.

        Only node subnets with a NAT gateway name produce a spec.
        """
        specs: list[NatGatewaySpec] = []
        for subnet in self._subnets:
            if subnet.role is not SubnetRole.NODE or not subnet.nat_gateway.name:
                continue
            ip_name = subnet.nat_gateway.nat_gateway_ip.name or default_nat_gateway_ip_name(
                self.cluster_name(), subnet.name
            )
            specs.append(
                NatGatewaySpec(
                    name=subnet.nat_gateway.name,
                    subnet=subnet,
                    nat_gateway_ip=PublicIPSpec(name=ip_name),
                )
            )
        return specs

    def set_subnet(self, subnet: SubnetSpec) -> None:
        """Replace the subnet record with the same name.

        Raises:
            KeyError: If no subnet with that name exists.
        """
        for index, existing in enumerate(self._subnets):
            if existing.name == subnet.name:
                self._subnets[index] = subnet
                return
        raise KeyError(f"subnet {subnet.name} not found in cluster network spec")

    def subnet(self, name: str) -> SubnetSpec:
        for subnet in self._subnets:
            if subnet.name == name:
                return subnet
        raise KeyError(f"subnet {name} not found in cluster network spec")

    def subnets(self) -> list[SubnetSpec]:
        return list(self._subnets)
