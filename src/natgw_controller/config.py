"""Configuration management with validation.

Configuration is loaded from the environment once per process and validated
at construction time, so a misconfigured controller fails before it makes
any Azure call.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_OPERATION_TIMEOUT_SECONDS = 300
MIN_OPERATION_TIMEOUT_SECONDS = 10
MAX_OPERATION_TIMEOUT_SECONDS = 3600

DEFAULT_SPEC_PATH = "/specs/cluster-network.yaml"

MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file
MAX_RESOURCE_GROUP_NAME_LENGTH = 90

# Input validation patterns
VALID_CLUSTER_NAME_PATTERN = r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$"
VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
VALID_LOCATION_PATTERN = r"^[a-z]{2,}[a-z0-9]*$"


def parse_tags(value: str) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` into a dict.

    Raises:
        ConfigurationError: If an entry has no ``=`` or an empty key.
    """
    tags: dict[str, str] = {}
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, sep, val = entry.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(f"ADDITIONAL_TAGS entries must be key=value: {entry}")
        tags[key.strip()] = val.strip()
    return tags


@dataclass(frozen=True)
class Config:
    """Controller configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-pass.
    """

    # Required fields
    subscription_id: str
    resource_group: str
    location: str
    cluster_name: str

    # Paths
    spec_path: Path = field(default_factory=lambda: Path(DEFAULT_SPEC_PATH))

    # Identity
    client_id: str | None = None

    # Timing
    operation_timeout_seconds: int = DEFAULT_OPERATION_TIMEOUT_SECONDS

    # Tags added to every NAT gateway on top of the ownership tags
    additional_tags: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.subscription_id:
            errors.append("AZURE_SUBSCRIPTION_ID is required")
        elif not re.match(VALID_SUBSCRIPTION_ID_PATTERN, self.subscription_id.lower()):
            errors.append(f"AZURE_SUBSCRIPTION_ID must be a valid GUID: {self.subscription_id}")

        if not self.resource_group:
            errors.append("AZURE_RESOURCE_GROUP is required")
        elif len(self.resource_group) > MAX_RESOURCE_GROUP_NAME_LENGTH:
            errors.append(
                f"AZURE_RESOURCE_GROUP exceeds maximum length of {MAX_RESOURCE_GROUP_NAME_LENGTH}"
            )

        if not self.location:
            errors.append("AZURE_LOCATION is required")
        elif not re.match(VALID_LOCATION_PATTERN, self.location.lower()):
            errors.append(f"AZURE_LOCATION must be a valid Azure region: {self.location}")

        if not self.cluster_name:
            errors.append("CLUSTER_NAME is required")
        elif not re.match(VALID_CLUSTER_NAME_PATTERN, self.cluster_name):
            errors.append(
                f"CLUSTER_NAME must match pattern {VALID_CLUSTER_NAME_PATTERN}: {self.cluster_name}"
            )

        if not (
            MIN_OPERATION_TIMEOUT_SECONDS
            <= self.operation_timeout_seconds
            <= MAX_OPERATION_TIMEOUT_SECONDS
        ):
            errors.append(
                f"OPERATION_TIMEOUT must be between {MIN_OPERATION_TIMEOUT_SECONDS} "
                f"and {MAX_OPERATION_TIMEOUT_SECONDS} seconds"
            )

        if not self.spec_path.exists():
            errors.append(f"Cluster spec file does not exist: {self.spec_path}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            AZURE_SUBSCRIPTION_ID: Subscription holding the cluster resources
            AZURE_RESOURCE_GROUP: Resource group of the cluster network
            AZURE_LOCATION: Region for newly created NAT gateways
            CLUSTER_NAME: Cluster name, used for ownership tags
            CLUSTER_SPEC_PATH: Path to the cluster network YAML
                (default: /specs/cluster-network.yaml)
            AZURE_CLIENT_ID: Optional user-assigned managed identity client ID
            OPERATION_TIMEOUT: Timeout per Azure operation in seconds (default: 300)
            ADDITIONAL_TAGS: Extra tags as key=value,key2=value2
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        return cls(
            subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID", ""),
            resource_group=os.environ.get("AZURE_RESOURCE_GROUP", ""),
            location=os.environ.get("AZURE_LOCATION", ""),
            cluster_name=os.environ.get("CLUSTER_NAME", ""),
            spec_path=Path(os.environ.get("CLUSTER_SPEC_PATH", DEFAULT_SPEC_PATH)),
            client_id=os.environ.get("AZURE_CLIENT_ID") or None,
            operation_timeout_seconds=get_int(
                "OPERATION_TIMEOUT", DEFAULT_OPERATION_TIMEOUT_SECONDS
            ),
            additional_tags=parse_tags(os.environ.get("ADDITIONAL_TAGS", "")),
        )
