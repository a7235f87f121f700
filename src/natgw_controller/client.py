"""Provider client for Azure NAT gateways.

``NatGatewayClient`` is the capability set the reconciler needs: read one
gateway, create or update it, delete it. ``AzureNatGatewayClient`` backs it
with the Azure SDK for Python.

SECURITY: Timeouts are enforced on all Azure API calls to prevent indefinite hangs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from azure.core.credentials import TokenCredential
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.network.models import NatGateway as NatGatewayResource

from .config import DEFAULT_OPERATION_TIMEOUT_SECONDS
from .models import ObservedNatGateway
from .resource_ids import parse_resource_name_from_id

logger = logging.getLogger(__name__)


class NatGatewayClient(Protocol):
    """Minimal NAT gateway operations against one subscription."""

    async def get(self, resource_group: str, name: str) -> ObservedNatGateway: ...

    async def create_or_update(
        self, resource_group: str, name: str, parameters: NatGatewayResource
    ) -> None: ...

    async def delete(self, resource_group: str, name: str) -> None: ...


def to_observed(resource: NatGatewayResource) -> ObservedNatGateway:
    """Convert an SDK NAT gateway model into the observed-state record."""
    ip_ids = frozenset(
        ip.id for ip in (resource.public_ip_addresses or []) if ip is not None and ip.id
    )
    resource_id = resource.id or ""
    return ObservedNatGateway(
        id=resource_id,
        name=resource.name or parse_resource_name_from_id(resource_id),
        public_ip_ids=ip_ids,
    )


class AzureNatGatewayClient:
    """NAT gateway client over ``azure.mgmt.network``.

    The SDK client is synchronous; every call runs in the default executor
    and is bounded by ``timeout_seconds``. A timeout surfaces as TimeoutError.
    """

    def __init__(
        self,
        credential: TokenCredential,
        subscription_id: str,
        timeout_seconds: int = DEFAULT_OPERATION_TIMEOUT_SECONDS,
    ) -> None:
        self._client = NetworkManagementClient(
            credential=credential,
            subscription_id=subscription_id,
        )
        self._timeout_seconds = timeout_seconds

    async def get(self, resource_group: str, name: str) -> ObservedNatGateway:
        resource = await self._call_with_timeout(
            lambda: self._client.nat_gateways.get(resource_group, name),
            operation_name="get nat gateway",
        )
        return to_observed(resource)

    async def create_or_update(
        self, resource_group: str, name: str, parameters: NatGatewayResource
    ) -> None:
        await self._execute_with_timeout(
            lambda: self._client.nat_gateways.begin_create_or_update(
                resource_group, name, parameters
            ),
            operation_name="create or update nat gateway",
        )

    async def delete(self, resource_group: str, name: str) -> None:
        await self._execute_with_timeout(
            lambda: self._client.nat_gateways.begin_delete(resource_group, name),
            operation_name="delete nat gateway",
        )

    async def _call_with_timeout(self, call: Callable[[], Any], operation_name: str) -> Any:
        """Run a blocking SDK call in the executor with timeout."""
        loop = asyncio.get_event_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, call),
                timeout=self._timeout_seconds,
            )
        except TimeoutError:
            logger.error(
                "Azure operation timed out",
                extra={"operation": operation_name, "timeout_seconds": self._timeout_seconds},
            )
            raise

    async def _execute_with_timeout(
        self, begin_operation: Callable[[], Any], operation_name: str
    ) -> Any:
        """Execute an Azure SDK poller operation with timeout.

        Args:
            begin_operation: Callable that returns an LROPoller.
            operation_name: Human-readable name for logging.

        Returns:
            The result of the poller operation.

        Raises:
            TimeoutError: If the operation exceeds the timeout.
            HttpResponseError: If Azure API returns an error.
        """
        poller = await self._call_with_timeout(begin_operation, operation_name)
        return await self._call_with_timeout(poller.result, operation_name)
