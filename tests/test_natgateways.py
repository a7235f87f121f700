"""Tests for NAT gateway reconcile and delete passes.

The scope and the provider client are in-memory doubles that record every
call, so each test asserts both the outcome and which provider calls were made.
"""

from __future__ import annotations

import asyncio
import logging

import pytest
from azure.mgmt.network.models import NatGateway as NatGatewayResource
from azure_mock import FakeNatGatewayScope, MockNatGatewayClient, http_error

from natgw_controller.errors import ErrorClass, ReconcileError
from natgw_controller.models import (
    NatGatewaySpec,
    ObservedNatGateway,
    PublicIPSpec,
    SubnetRole,
    SubnetSpec,
    VnetSpec,
)
from natgw_controller.natgateways import NatGatewayService
from natgw_controller.ownership import ROLE_TAG, cluster_tag_key

NATGW_ID = (
    "/subscriptions/123/resourceGroups/my-rg/providers/Microsoft.Network/"
    "natGateways/my-node-natgateway"
)
EXISTING_PIP_ID = (
    "/subscriptions/123/resourceGroups/my-rg/providers/Microsoft.Network/"
    "publicIPAddresses/pip-my-node-natgateway-node-subnet-natgw"
)


def node_spec(
    name: str = "my-node-natgateway",
    ip_name: str = "pip-node-subnet",
    subnet_name: str = "node-subnet",
) -> NatGatewaySpec:
    return NatGatewaySpec(
        name=name,
        subnet=SubnetSpec(name=subnet_name, role=SubnetRole.NODE),
        nat_gateway_ip=PublicIPSpec(name=ip_name),
    )


def existing_gateway(name: str = "my-node-natgateway", *ip_ids: str) -> ObservedNatGateway:
    return ObservedNatGateway(
        id=NATGW_ID.replace("my-node-natgateway", name),
        name=name,
        public_ip_ids=frozenset(ip_ids or (EXISTING_PIP_ID,)),
    )


@pytest.fixture
def custom_vnet() -> VnetSpec:
    """Vnet supplied by an operator: its ID is already known."""
    return VnetSpec(id="1234", name="my-vnet")


class TestReconcile:
    """Tests for NatGatewayService.reconcile()."""

    @pytest.mark.asyncio
    async def test_custom_vnet_mode_makes_no_calls(self, custom_vnet: VnetSpec) -> None:
        """Test that nothing is touched when the vnet is not owned."""
        scope = FakeNatGatewayScope(vnet_spec=custom_vnet, specs=[node_spec()])
        client = MockNatGatewayClient()

        await NatGatewayService(scope, client).reconcile()

        assert client.calls == []
        assert scope.subnets_set == []
        assert scope.call_count("nat_gateway_specs") == 0

    @pytest.mark.asyncio
    async def test_creates_missing_gateway(self) -> None:
        """Test that a 404 on read leads to exactly one create and a write-back."""
        scope = FakeNatGatewayScope(specs=[node_spec()])
        client = MockNatGatewayClient()

        await NatGatewayService(scope, client).reconcile()

        assert client.calls == [
            ("get", "my-rg", "my-node-natgateway"),
            ("create_or_update", "my-rg", "my-node-natgateway"),
        ]
        assert scope.call_count("location") == 1

        assert len(scope.subnets_set) == 1
        subnet = scope.subnets_set[0]
        assert subnet.name == "node-subnet"
        assert subnet.role is SubnetRole.NODE
        assert subnet.nat_gateway.id == NATGW_ID
        assert subnet.nat_gateway.name == "my-node-natgateway"
        assert subnet.nat_gateway.nat_gateway_ip.name == "pip-node-subnet"

    @pytest.mark.asyncio
    async def test_create_payload(self) -> None:
        """Test the desired NAT gateway sent to Azure."""
        scope = FakeNatGatewayScope(specs=[node_spec()], tags={"env": "test"})
        client = MockNatGatewayClient()

        await NatGatewayService(scope, client).reconcile()

        payload = client.payloads["my-node-natgateway"]
        assert isinstance(payload, NatGatewayResource)
        assert payload.location == "westus"
        assert payload.sku.name == "Standard"
        assert [ip.id for ip in payload.public_ip_addresses] == [
            "/subscriptions/123/resourceGroups/my-rg/providers/Microsoft.Network/"
            "publicIPAddresses/pip-node-subnet"
        ]
        assert payload.tags[cluster_tag_key("test-cluster")] == "owned"
        assert payload.tags[ROLE_TAG] == "node"
        assert payload.tags["Name"] == "my-node-natgateway"
        assert payload.tags["env"] == "test"

    @pytest.mark.asyncio
    async def test_updates_gateway_with_different_public_ip(self) -> None:
        """Test that a gateway pointing at another public IP is converged."""
        scope = FakeNatGatewayScope(specs=[node_spec(ip_name="different-pip-name")])
        client = MockNatGatewayClient(observed={"my-node-natgateway": existing_gateway()})

        await NatGatewayService(scope, client).reconcile()

        assert len(client.calls_for("create_or_update")) == 1
        payload = client.payloads["my-node-natgateway"]
        assert payload.public_ip_addresses[0].id.endswith("/publicIPAddresses/different-pip-name")
        assert scope.call_count("location") == 1

        assert len(scope.subnets_set) == 1
        assert scope.subnets_set[0].nat_gateway.id == NATGW_ID
        assert scope.subnets_set[0].nat_gateway.nat_gateway_ip.name == "different-pip-name"

    @pytest.mark.asyncio
    async def test_up_to_date_gateway_is_not_updated(self) -> None:
        """Test that a matching public IP produces no provider mutation."""
        scope = FakeNatGatewayScope(
            specs=[node_spec(ip_name="pip-my-node-natgateway-node-subnet-natgw")]
        )
        client = MockNatGatewayClient(observed={"my-node-natgateway": existing_gateway()})

        await NatGatewayService(scope, client).reconcile()

        assert client.calls == [("get", "my-rg", "my-node-natgateway")]
        assert scope.call_count("location") == 0

        assert len(scope.subnets_set) == 1
        nat_gateway = scope.subnets_set[0].nat_gateway
        assert nat_gateway.id == NATGW_ID
        assert nat_gateway.name == "my-node-natgateway"
        assert nat_gateway.nat_gateway_ip.name == "pip-my-node-natgateway-node-subnet-natgw"

    @pytest.mark.asyncio
    async def test_up_to_date_when_expected_ip_among_several(self) -> None:
        """Test that extra public IPs on the gateway do not force an update."""
        other_ip = EXISTING_PIP_ID.replace("pip-my-node-natgateway-node-subnet-natgw", "pip-extra")
        scope = FakeNatGatewayScope(
            specs=[node_spec(ip_name="pip-my-node-natgateway-node-subnet-natgw")]
        )
        client = MockNatGatewayClient(
            observed={
                "my-node-natgateway": existing_gateway(
                    "my-node-natgateway", other_ip, EXISTING_PIP_ID
                )
            }
        )

        await NatGatewayService(scope, client).reconcile()

        assert client.calls_for("create_or_update") == []

    @pytest.mark.asyncio
    async def test_id_casing_difference_triggers_update(self) -> None:
        """Test that IDs are compared exactly."""
        scope = FakeNatGatewayScope(
            specs=[node_spec(ip_name="pip-my-node-natgateway-node-subnet-natgw")]
        )
        client = MockNatGatewayClient(
            observed={
                "my-node-natgateway": existing_gateway(
                    "my-node-natgateway",
                    EXISTING_PIP_ID.replace("resourceGroups", "resourcegroups"),
                )
            }
        )

        await NatGatewayService(scope, client).reconcile()

        assert len(client.calls_for("create_or_update")) == 1

    @pytest.mark.asyncio
    async def test_get_failure_aborts(self) -> None:
        """Test that a non-404 read failure is wrapped and nothing is created."""
        scope = FakeNatGatewayScope(specs=[node_spec()])
        client = MockNatGatewayClient(errors={"get": http_error(500)})

        with pytest.raises(ReconcileError) as exc_info:
            await NatGatewayService(scope, client).reconcile()

        assert str(exc_info.value) == (
            "failed to get nat gateway my-node-natgateway in my-rg: Internal Server Error"
        )
        assert exc_info.value.classification is ErrorClass.TRANSIENT
        assert exc_info.value.retryable is True
        assert exc_info.value.operation == "get"
        assert client.calls_for("create_or_update") == []
        assert scope.subnets_set == []

    @pytest.mark.asyncio
    async def test_create_failure_is_wrapped(self) -> None:
        """Test that a failed create is wrapped and nothing is written back."""
        scope = FakeNatGatewayScope(specs=[node_spec()])
        client = MockNatGatewayClient(errors={"create_or_update": http_error(500)})

        with pytest.raises(ReconcileError) as exc_info:
            await NatGatewayService(scope, client).reconcile()

        assert str(exc_info.value) == (
            "failed to create nat gateway my-node-natgateway in resource group my-rg: "
            "Internal Server Error"
        )
        assert isinstance(exc_info.value.__cause__, Exception)
        assert scope.subnets_set == []

    @pytest.mark.asyncio
    async def test_permanent_rejection_is_fatal(self) -> None:
        """Test that a 4xx other than 404 is classified fatal."""
        scope = FakeNatGatewayScope(specs=[node_spec()])
        client = MockNatGatewayClient(
            errors={"create_or_update": http_error(400, "InvalidResourceReference")}
        )

        with pytest.raises(ReconcileError) as exc_info:
            await NatGatewayService(scope, client).reconcile()

        assert exc_info.value.classification is ErrorClass.FATAL
        assert exc_info.value.retryable is False
        assert str(exc_info.value).endswith(": InvalidResourceReference")

    @pytest.mark.asyncio
    async def test_failure_stops_remaining_specs(self) -> None:
        """Test fail-fast: specs after a failure are never attempted."""
        scope = FakeNatGatewayScope(
            specs=[
                node_spec("natgw-a", subnet_name="subnet-a"),
                node_spec("natgw-b", subnet_name="subnet-b"),
            ]
        )
        client = MockNatGatewayClient(errors={"get:natgw-a": http_error(403)})

        with pytest.raises(ReconcileError):
            await NatGatewayService(scope, client).reconcile()

        assert client.calls == [("get", "my-rg", "natgw-a")]
        assert scope.subnets_set == []

    @pytest.mark.asyncio
    async def test_later_failure_keeps_earlier_write_back(self) -> None:
        """Test that specs handled before a failure are still recorded."""
        scope = FakeNatGatewayScope(
            specs=[
                node_spec("natgw-a", subnet_name="subnet-a"),
                node_spec("natgw-b", subnet_name="subnet-b"),
                node_spec("natgw-c", subnet_name="subnet-c"),
            ]
        )
        client = MockNatGatewayClient(errors={"create_or_update:natgw-b": http_error(503)})

        with pytest.raises(ReconcileError) as exc_info:
            await NatGatewayService(scope, client).reconcile()

        assert exc_info.value.name == "natgw-b"
        assert [s.name for s in scope.subnets_set] == ["subnet-a"]
        assert ("get", "my-rg", "natgw-c") not in client.calls

    @pytest.mark.asyncio
    async def test_specs_processed_in_order(self) -> None:
        """Test that every spec is handled once, in scope order."""
        scope = FakeNatGatewayScope(
            specs=[
                node_spec("natgw-a", ip_name="pip-a", subnet_name="subnet-a"),
                node_spec(
                    "my-node-natgateway",
                    ip_name="pip-my-node-natgateway-node-subnet-natgw",
                    subnet_name="subnet-b",
                ),
            ]
        )
        client = MockNatGatewayClient(observed={"my-node-natgateway": existing_gateway()})

        await NatGatewayService(scope, client).reconcile()

        assert client.calls == [
            ("get", "my-rg", "natgw-a"),
            ("create_or_update", "my-rg", "natgw-a"),
            ("get", "my-rg", "my-node-natgateway"),
        ]
        assert [s.name for s in scope.subnets_set] == ["subnet-a", "subnet-b"]

    @pytest.mark.asyncio
    async def test_no_specs(self) -> None:
        """Test that an owned vnet without NAT gateways is a no-op."""
        scope = FakeNatGatewayScope(specs=[])
        client = MockNatGatewayClient()

        await NatGatewayService(scope, client).reconcile()

        assert client.calls == []
        assert scope.subnets_set == []

    @pytest.mark.asyncio
    async def test_timeout_is_fatal(self) -> None:
        """Test that a provider timeout is wrapped as a fatal error."""
        scope = FakeNatGatewayScope(specs=[node_spec()])
        client = MockNatGatewayClient(errors={"get": TimeoutError()})

        with pytest.raises(ReconcileError) as exc_info:
            await NatGatewayService(scope, client).reconcile()

        assert str(exc_info.value) == (
            "failed to get nat gateway my-node-natgateway in my-rg: TimeoutError"
        )
        assert exc_info.value.classification is ErrorClass.FATAL

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        """Test that cancelling the pass aborts it without wrapping."""
        scope = FakeNatGatewayScope(
            specs=[
                node_spec("natgw-a", subnet_name="subnet-a"),
                node_spec("natgw-b", subnet_name="subnet-b"),
            ]
        )
        started = asyncio.Event()

        class BlockingClient(MockNatGatewayClient):
            async def get(self, resource_group: str, name: str) -> ObservedNatGateway:
                self.calls.append(("get", resource_group, name))
                started.set()
                await asyncio.Event().wait()
                raise AssertionError("unreachable")

        client = BlockingClient()
        task = asyncio.create_task(NatGatewayService(scope, client).reconcile())
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert client.calls == [("get", "my-rg", "natgw-a")]
        assert scope.subnets_set == []

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that the wrapped error is logged before it is raised."""
        scope = FakeNatGatewayScope(specs=[node_spec()])
        client = MockNatGatewayClient(errors={"get": http_error(500)})

        with caplog.at_level(logging.ERROR, logger="natgw_controller.natgateways"):
            with pytest.raises(ReconcileError):
                await NatGatewayService(scope, client).reconcile()

        assert any("failed to get nat gateway" in r.getMessage() for r in caplog.records)


class TestDelete:
    """Tests for NatGatewayService.delete()."""

    @pytest.mark.asyncio
    async def test_custom_vnet_mode_makes_no_calls(self, custom_vnet: VnetSpec) -> None:
        """Test that gateways in a vnet we do not own are never deleted."""
        scope = FakeNatGatewayScope(vnet_spec=custom_vnet, specs=[node_spec()])
        client = MockNatGatewayClient()

        await NatGatewayService(scope, client).delete()

        assert client.calls == []
        assert scope.call_count("nat_gateway_specs") == 0

    @pytest.mark.asyncio
    async def test_deletes_gateway(self) -> None:
        """Test a successful delete."""
        scope = FakeNatGatewayScope(specs=[node_spec()])
        client = MockNatGatewayClient(observed={"my-node-natgateway": existing_gateway()})

        await NatGatewayService(scope, client).delete()

        assert client.calls == [("delete", "my-rg", "my-node-natgateway")]
        assert "my-node-natgateway" not in client.observed
        assert scope.subnets_set == []

    @pytest.mark.asyncio
    async def test_already_deleted(self) -> None:
        """Test that a 404 on delete counts as success."""
        scope = FakeNatGatewayScope(specs=[node_spec()])
        client = MockNatGatewayClient(errors={"delete": http_error(404, "Not Found")})

        await NatGatewayService(scope, client).delete()

        assert client.calls == [("delete", "my-rg", "my-node-natgateway")]

    @pytest.mark.asyncio
    async def test_not_found_continues_with_next_spec(self) -> None:
        """Test that an already-deleted gateway does not stop the pass."""
        scope = FakeNatGatewayScope(
            specs=[
                node_spec("natgw-a", subnet_name="subnet-a"),
                node_spec("natgw-b", subnet_name="subnet-b"),
            ]
        )
        client = MockNatGatewayClient(errors={"delete:natgw-a": http_error(404)})

        await NatGatewayService(scope, client).delete()

        assert client.calls == [
            ("delete", "my-rg", "natgw-a"),
            ("delete", "my-rg", "natgw-b"),
        ]

    @pytest.mark.asyncio
    async def test_delete_failure_is_wrapped(self) -> None:
        """Test that a non-404 delete failure is wrapped and returned."""
        scope = FakeNatGatewayScope(specs=[node_spec()])
        client = MockNatGatewayClient(errors={"delete": http_error(500)})

        with pytest.raises(ReconcileError) as exc_info:
            await NatGatewayService(scope, client).delete()

        assert str(exc_info.value) == (
            "failed to delete nat gateway my-node-natgateway in resource group my-rg: "
            "Internal Server Error"
        )
        assert exc_info.value.operation == "delete"
        assert exc_info.value.classification is ErrorClass.TRANSIENT

    @pytest.mark.asyncio
    async def test_delete_failure_stops_remaining_specs(self) -> None:
        """Test fail-fast on delete."""
        scope = FakeNatGatewayScope(
            specs=[
                node_spec("natgw-a", subnet_name="subnet-a"),
                node_spec("natgw-b", subnet_name="subnet-b"),
            ]
        )
        client = MockNatGatewayClient(errors={"delete:natgw-a": http_error(409)})

        with pytest.raises(ReconcileError) as exc_info:
            await NatGatewayService(scope, client).delete()

        assert exc_info.value.classification is ErrorClass.FATAL
        assert client.calls == [("delete", "my-rg", "natgw-a")]
