"""Classification and wrapping of Azure provider errors.

Provider failures fall into three classes:
- NOT_FOUND: the resource is absent. Success for delete, "must create" on read.
- TRANSIENT: provider-side 5xx failure. The caller may re-run the whole pass.
- FATAL: everything else, including timeouts and permanent rejections.

Nothing in this package retries. The class is attached to the wrapped error
so the outer control loop can decide.
"""

from __future__ import annotations

from enum import Enum

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError

HTTP_NOT_FOUND = 404
HTTP_SERVER_ERROR_MIN = 500
HTTP_SERVER_ERROR_MAX = 599

# Exceptions a provider call may raise that the reconciler classifies and wraps.
# asyncio.CancelledError is not listed: cancellation propagates unwrapped.
PROVIDER_ERRORS: tuple[type[BaseException], ...] = (AzureError, TimeoutError)


class ErrorClass(str, Enum):
    """Semantic outcome of a failed provider call."""

    NOT_FOUND = "NotFound"
    TRANSIENT = "Transient"
    FATAL = "Fatal"


def status_code_of(error: BaseException) -> int | None:
    """Return the HTTP status code carried by a provider error, if any."""
    if isinstance(error, HttpResponseError):
        return error.status_code
    return None


def classify_error(error: BaseException) -> ErrorClass:
    """Map a provider error to its semantic class.

    Only the status code is inspected; the message is left untouched.
    """
    status = status_code_of(error)
    if status is None:
        if isinstance(error, ResourceNotFoundError):
            return ErrorClass.NOT_FOUND
        return ErrorClass.FATAL

    if status == HTTP_NOT_FOUND:
        return ErrorClass.NOT_FOUND
    if HTTP_SERVER_ERROR_MIN <= status <= HTTP_SERVER_ERROR_MAX:
        return ErrorClass.TRANSIENT
    return ErrorClass.FATAL


def is_not_found(error: BaseException) -> bool:
    return classify_error(error) is ErrorClass.NOT_FOUND


def describe_cause(error: BaseException) -> str:
    """Verbatim error text, or the exception type when the text is empty."""
    return str(error) or type(error).__name__


class ReconcileError(Exception):
    """A provider call failed during a reconcile or delete pass.

    The message names the operation, resource kind, name and resource group,
    followed by the provider's own message.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        kind: str,
        name: str,
        resource_group: str,
        classification: ErrorClass,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.kind = kind
        self.name = name
        self.resource_group = resource_group
        self.classification = classification

    @property
    def retryable(self) -> bool:
        """True if re-running the whole pass later may succeed."""
        return self.classification is ErrorClass.TRANSIENT


def _wrap(
    error: BaseException,
    template: str,
    operation: str,
    kind: str,
    name: str,
    resource_group: str,
) -> ReconcileError:
    message = template.format(kind=kind, name=name, group=resource_group)
    return ReconcileError(
        f"{message}: {describe_cause(error)}",
        operation=operation,
        kind=kind,
        name=name,
        resource_group=resource_group,
        classification=classify_error(error),
    )


def get_error(error: BaseException, kind: str, name: str, resource_group: str) -> ReconcileError:
    return _wrap(error, "failed to get {kind} {name} in {group}", "get", kind, name, resource_group)


def create_error(
    error: BaseException, kind: str, name: str, resource_group: str
) -> ReconcileError:
    return _wrap(
        error,
        "failed to create {kind} {name} in resource group {group}",
        "create",
        kind,
        name,
        resource_group,
    )


def delete_error(
    error: BaseException, kind: str, name: str, resource_group: str
) -> ReconcileError:
    return _wrap(
        error,
        "failed to delete {kind} {name} in resource group {group}",
        "delete",
        kind,
        name,
        resource_group,
    )
