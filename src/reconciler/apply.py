"""Create-or-update of a desired document against the state store."""

import logging
import threading
from typing import Optional

from common import (
    OUTCOME_CREATED,
    OUTCOME_UPDATED,
    NotFoundError,
    ValidationError,
    check_cancelled,
)
from manifest import Document
from store.base import StateStore

logger = logging.getLogger(__name__)


class ApplyEngine:
    """Applies fully formed documents to the state store.

    Reads the current object by identity, then creates it if absent or
    updates it carrying the store's resourceVersion. Conflicts and other
    store errors propagate to the caller without retry.
    """

    def __init__(self, store: StateStore):
        self.store = store

    def apply(self, doc: Document, cancel: Optional[threading.Event] = None) -> str:
        """Create or update doc.

        Returns:
            'created' or 'updated'

        Raises:
            ValidationError: If doc lacks name, namespace or controller reference
            StoreError: If the store read or write fails (ConflictError on a
                stale resourceVersion)
            ReconcileCancelled: If cancel is set before a store call
        """
        _check_complete(doc)
        ref = doc.ref()

        check_cancelled(cancel, f"get {ref.kind} {ref.key}")
        try:
            existing = self.store.get(ref, cancel)
        except NotFoundError:
            existing = None

        check_cancelled(cancel, f"apply {ref.kind} {ref.key}")
        if existing is None:
            self.store.create(doc, cancel)
            logger.info(f"{ref.kind} {ref.key} created")
            return OUTCOME_CREATED

        doc.resource_version = existing.resource_version
        self.store.update(doc, cancel)
        logger.info(f"{ref.kind} {ref.key} updated (resourceVersion {existing.resource_version})")
        return OUTCOME_UPDATED


def _check_complete(doc: Document) -> None:
    """Refuse documents that are not ready to be written."""
    if not doc.kind or not doc.api_version:
        raise ValidationError("document has no apiVersion/kind")
    if not doc.name:
        raise ValidationError(f"{doc.kind} document has no metadata.name")
    if not doc.namespace:
        raise ValidationError(f"{doc.kind} {doc.name} has no metadata.namespace")
    if doc.controller_reference() is None:
        raise ValidationError(f"{doc.kind} {doc.namespace}/{doc.name} has no controller owner reference")
