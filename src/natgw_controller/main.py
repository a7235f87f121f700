"""Entry point for the NAT gateway controller.

Runs exactly one reconcile or delete pass and exits. Scheduling repeated
passes is left to the caller (a cron job, a Kubernetes Job, or an outer
controller), which should re-run the pass on a non-zero exit code.

Exit codes:
    0: pass completed
    1: configuration, spec or fatal provider error
    2: security violation (secret-bearing credentials in the environment)
    3: transient provider error; re-running the pass may succeed
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from datetime import UTC, datetime

import click

from .client import AzureNatGatewayClient
from .config import Config, ConfigurationError
from .errors import ReconcileError
from .natgateways import NatGatewayService
from .resource_ids import parse_resource_type_from_id
from .scope import ClusterScope
from .security import SecretlessViolationError, get_managed_identity_credential
from .spec_loader import SpecLoadError, load_cluster_spec

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_SECURITY_VIOLATION = 2
EXIT_TRANSIENT = 3

# Attributes every LogRecord has; anything else came in through ``extra``
_STANDARD_RECORD_ATTRS = frozenset({
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "exc_info",
    "exc_text",
    "thread",
    "threadName",
    "taskName",
    "message",
})


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str | None = None) -> None:
    """Configure JSON logging to stdout.

    Safe to call more than once: the handler is installed only once.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel((level or os.environ.get("LOG_LEVEL", "INFO")).upper())

    if not any(isinstance(h.formatter, JsonFormatter) for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        root_logger.addHandler(handler)

    # Reduce noise from Azure SDK
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


async def run_pass(action: str, config: Config, logger: logging.Logger) -> int:
    """Build the scope and client from ``config`` and run one pass.

    Returns:
        Exit code.
    """
    try:
        spec = load_cluster_spec(config.spec_path)
    except SpecLoadError as e:
        logger.error(
            "Cluster spec loading failed",
            extra={"error": str(e), "spec_path": str(config.spec_path)},
        )
        return EXIT_FAILURE

    try:
        credential = get_managed_identity_credential(config.client_id)
    except SecretlessViolationError as e:
        logger.critical(
            "Security violation: credentials detected in environment",
            extra={"error": str(e)},
        )
        return EXIT_SECURITY_VIOLATION

    scope = ClusterScope(config, spec)
    client = AzureNatGatewayClient(
        credential=credential,
        subscription_id=config.subscription_id,
        timeout_seconds=config.operation_timeout_seconds,
    )
    service = NatGatewayService(scope, client)

    try:
        if action == "delete":
            await service.delete()
        else:
            await service.reconcile()
    except ReconcileError as e:
        logger.error(
            "NAT gateway pass failed",
            extra={
                "action": action,
                "error": str(e),
                "classification": e.classification.value,
                "retryable": e.retryable,
            },
        )
        return EXIT_TRANSIENT if e.retryable else EXIT_FAILURE

    if action == "reconcile":
        for subnet in scope.subnets():
            if subnet.nat_gateway.id:
                logger.info(
                    "Subnet NAT gateway",
                    extra={
                        "subnet": subnet.name,
                        "nat_gateway_id": subnet.nat_gateway.id,
                        "resource_type": parse_resource_type_from_id(subnet.nat_gateway.id),
                        "public_ip": subnet.nat_gateway.nat_gateway_ip.name,
                    },
                )

    logger.info(
        "NAT gateway pass complete",
        extra={"action": action, "cluster": config.cluster_name},
    )
    return EXIT_OK


async def main(action: str) -> int:
    """Run the controller for ``action`` ("reconcile" or "delete")."""
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return EXIT_FAILURE

    logger.info(
        "Starting NAT gateway controller",
        extra={
            "action": action,
            "cluster": config.cluster_name,
            "subscription_id": config.subscription_id,
            "resource_group": config.resource_group,
            "location": config.location,
        },
    )
    return await run_pass(action, config, logger)


@click.command()
@click.argument(
    "action",
    type=click.Choice(["reconcile", "delete"]),
    default="reconcile",
)
def run(action: str) -> None:
    """Reconcile or delete the NAT gateways of a cluster network."""
    sys.exit(asyncio.run(main(action)))


if __name__ == "__main__":
    run()
