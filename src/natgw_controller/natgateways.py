"""NAT gateway reconciliation.

Converges the NAT gateways of a cluster's subnets to the desired state:

1. Skip entirely unless the cluster owns the parent vnet
2. For each desired gateway, in order, read it from Azure
3. Create it when absent, update it when its public IP differs, else leave it
4. Record the resolved gateway identity on the subnet

Delete removes every desired gateway, treating "not found" as done.

Both passes are fail-fast: the first unexpected provider error aborts the
pass, so a subnet record is never written from an unverified read.
"""

from __future__ import annotations

import logging

from azure.mgmt.network.models import NatGateway as NatGatewayResource
from azure.mgmt.network.models import NatGatewaySku, NatGatewaySkuName, SubResource

from .client import NatGatewayClient
from .errors import (
    PROVIDER_ERRORS,
    create_error,
    delete_error,
    describe_cause,
    get_error,
    is_not_found,
)
from .models import NatGateway, NatGatewaySpec, ObservedNatGateway, SubnetRole
from .ownership import build_tags, is_managed
from .resource_ids import NAT_GATEWAYS, nat_gateway_id, public_ip_id
from .scope import NatGatewayScope

logger = logging.getLogger(__name__)

KIND = NAT_GATEWAYS.display_name


class NatGatewayService:
    """Reconciles the NAT gateways of one cluster.

    Holds no state between passes: every pass reads the scope and Azure anew.
    """

    def __init__(self, scope: NatGatewayScope, client: NatGatewayClient) -> None:
        self.scope = scope
        self._client = client

    async def reconcile(self) -> None:
        """Create or update the NAT gateways of the cluster's node subnets.

        Raises:
            ReconcileError: On the first provider failure other than "not found".
        """
        if not self._owns_vnet():
            return

        for spec in self.scope.nat_gateway_specs():
            resource_group = self.scope.resource_group()

            existing: ObservedNatGateway | None
            try:
                existing = await self._client.get(resource_group, spec.name)
            except PROVIDER_ERRORS as e:
                if not is_not_found(e):
                    error = get_error(e, KIND, spec.name, resource_group)
                    logger.error(str(error), extra=self._log_context(spec, resource_group))
                    raise error from e
                existing = None

            if existing is not None:
                if not self._public_ip_needs_update(existing, spec):
                    logger.debug(
                        "NAT gateway is up to date",
                        extra=self._log_context(spec, resource_group),
                    )
                    self._record(spec)
                    continue
                logger.info(
                    "Updating NAT gateway public IP",
                    extra={
                        **self._log_context(spec, resource_group),
                        "observed_public_ips": sorted(existing.public_ip_ids),
                    },
                )
            else:
                logger.info("Creating NAT gateway", extra=self._log_context(spec, resource_group))

            try:
                await self._client.create_or_update(
                    resource_group, spec.name, self._desired_payload(spec)
                )
            except PROVIDER_ERRORS as e:
                error = create_error(e, KIND, spec.name, resource_group)
                logger.error(str(error), extra=self._log_context(spec, resource_group))
                raise error from e

            logger.info(
                "Successfully reconciled NAT gateway",
                extra=self._log_context(spec, resource_group),
            )
            self._record(spec)

    async def delete(self) -> None:
        """Delete the NAT gateways of the cluster's node subnets.

        Raises:
            ReconcileError: On the first provider failure other than "not found".
        """
        if not self._owns_vnet():
            return

        for spec in self.scope.nat_gateway_specs():
            resource_group = self.scope.resource_group()
            logger.info("Deleting NAT gateway", extra=self._log_context(spec, resource_group))
            try:
                await self._client.delete(resource_group, spec.name)
            except PROVIDER_ERRORS as e:
                if is_not_found(e):
                    logger.info(
                        "NAT gateway already deleted",
                        extra={
                            **self._log_context(spec, resource_group),
                            "error": describe_cause(e),
                        },
                    )
                    continue
                error = delete_error(e, KIND, spec.name, resource_group)
                logger.error(str(error), extra=self._log_context(spec, resource_group))
                raise error from e

            logger.info(
                "Successfully deleted NAT gateway",
                extra=self._log_context(spec, resource_group),
            )

    def _owns_vnet(self) -> bool:
        vnet = self.scope.vnet()
        cluster_name = self.scope.cluster_name()
        if is_managed(vnet):
            return True
        logger.info(
            "Skipping NAT gateways in custom vnet mode",
            extra={"vnet": vnet.name, "vnet_id": vnet.id, "cluster": cluster_name},
        )
        return False

    def _public_ip_needs_update(self, existing: ObservedNatGateway, spec: NatGatewaySpec) -> bool:
        expected = public_ip_id(
            self.scope.subscription_id(), self.scope.resource_group(), spec.nat_gateway_ip.name
        )
        return expected not in existing.public_ip_ids

    def _desired_payload(self, spec: NatGatewaySpec) -> NatGatewayResource:
        subscription_id = self.scope.subscription_id()
        resource_group = self.scope.resource_group()
        return NatGatewayResource(
            location=self.scope.location(),
            sku=NatGatewaySku(name=NatGatewaySkuName.STANDARD),
            public_ip_addresses=[
                SubResource(
                    id=public_ip_id(subscription_id, resource_group, spec.nat_gateway_ip.name)
                )
            ],
            tags=build_tags(
                cluster_name=self.scope.cluster_name(),
                name=spec.name,
                role=SubnetRole.NODE.value,
                additional=self.scope.additional_tags(),
            ),
        )

    def _record(self, spec: NatGatewaySpec) -> None:
        """Write the resolved gateway identity back onto its subnet."""
        nat_gateway = NatGateway(
            id=nat_gateway_id(self.scope.subscription_id(), self.scope.resource_group(), spec.name),
            name=spec.name,
            nat_gateway_ip=spec.nat_gateway_ip,
        )
        self.scope.set_subnet(spec.subnet.with_nat_gateway(nat_gateway))

    @staticmethod
    def _log_context(spec: NatGatewaySpec, resource_group: str) -> dict[str, str]:
        return {
            "nat_gateway": spec.name,
            "subnet": spec.subnet.name,
            "resource_group": resource_group,
        }
