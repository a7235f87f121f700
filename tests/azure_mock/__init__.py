"""Azure API Mock for NAT gateway testing.

Provides in-memory doubles of the Azure network API and of the desired-state
scope so the reconciler can be tested without Azure connectivity.

Key Features:
- In-memory NAT gateway state
- Error injection with real azure-core exceptions and status codes
- Call recording on both the provider and the scope side
- Managed Identity simulation

Usage:
    from azure_mock import FakeNatGatewayScope, MockNatGatewayClient, http_error

    client = MockNatGatewayClient(errors={"get": http_error(500)})
    service = NatGatewayService(FakeNatGatewayScope(specs=[...]), client)
    with pytest.raises(ReconcileError):
        await service.reconcile()
"""

from .context import MockAzureContext
from .credential import MockManagedIdentityCredential, create_mock_credential
from .network import (
    MockNatGatewayClient,
    MockNetworkManagementClient,
    MockNetworkState,
    http_error,
)
from .scope import FakeNatGatewayScope

__all__ = [
    "FakeNatGatewayScope",
    "MockAzureContext",
    "MockManagedIdentityCredential",
    "MockNatGatewayClient",
    "MockNetworkManagementClient",
    "MockNetworkState",
    "create_mock_credential",
    "http_error",
]
