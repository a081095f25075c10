"""Common types and errors for the dataset controller."""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# Reconcile outcomes
OUTCOME_NOT_FOUND = 'not_found'
OUTCOME_UNREADY = 'unready'
OUTCOME_SKIPPED = 'skipped'
OUTCOME_PLUGIN_NOT_FOUND = 'plugin_not_found'
OUTCOME_CREATED = 'created'
OUTCOME_UPDATED = 'updated'


class ControllerError(Exception):
    """Base exception for controller errors."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class NotFoundError(ControllerError):
    """Object not present in the cluster state store."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__("E200", f"{kind} not found: {key}")


class ValidationError(ControllerError):
    """Object is incomplete or violates a controller invariant."""

    def __init__(self, message: str):
        super().__init__("E400", message)


class StoreError(ControllerError):
    """Read or write against the cluster state store failed."""

    def __init__(self, operation: str, key: str, message: str,
                 status: Optional[int] = None, code: str = "E500"):
        self.operation = operation
        self.key = key
        self.status = status
        super().__init__(code, f"{operation} {key} failed: {message}")


class ConflictError(StoreError):
    """Update rejected because the version token is stale."""

    def __init__(self, operation: str, key: str, message: str):
        super().__init__(operation, key, message, status=409, code="E409")


class ReconcileCancelled(ControllerError):
    """Reconciliation aborted by the caller's cancellation signal."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__("E499", f"Cancelled before {operation}")


def check_cancelled(cancel: Optional[threading.Event], operation: str) -> None:
    """Raise ReconcileCancelled if the cancellation event is set."""
    if cancel is not None and cancel.is_set():
        logger.debug(f"Cancellation requested, aborting {operation}")
        raise ReconcileCancelled(operation)


@dataclass(frozen=True)
class ObjectRef:
    """Identity of an object in the cluster state store."""
    api_version: str
    kind: str
    name: str
    namespace: str = ''

    @property
    def key(self) -> str:
        """namespace/name, or just name for cluster-scoped objects."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


@dataclass(frozen=True)
class Request:
    """A reconcile request for one Dataset."""
    namespace: str
    name: str

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class ReconcileResult:
    """Result returned by a reconciliation.

    Fatal errors are raised rather than returned; a result always
    means the cycle finished without error.
    """
    outcome: str
    message: str = ''
    requeue: bool = False
