"""Interface to the cluster state store.

The reconciler only needs read-by-identity, create, update and status
update. Every call takes the caller's cancellation event and must not
start a request once it is set. A request already in flight is not
interrupted; it runs until it completes or the client's request timeout
(KUBE_REQUEST_TIMEOUT, 30s by default) expires.
"""

import threading
from typing import Optional, Protocol, runtime_checkable

from common import ObjectRef
from manifest import Document


@runtime_checkable
class StateStore(Protocol):
    """Protocol for cluster state store clients."""

    def get(self, ref: ObjectRef, cancel: Optional[threading.Event] = None) -> Document:
        """Read an object. Raises NotFoundError if absent."""

    def create(self, doc: Document, cancel: Optional[threading.Event] = None) -> Document:
        """Create an object. Returns the stored object."""

    def update(self, doc: Document, cancel: Optional[threading.Event] = None) -> Document:
        """Replace an object. doc must carry the current resourceVersion."""

    def update_status(self, doc: Document, cancel: Optional[threading.Event] = None) -> Document:
        """Replace an object's status subresource."""
