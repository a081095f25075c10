"""Generic manifest documents and decoding.

A rendered plugin manifest may describe any resource kind, so it is kept
as a plain mapping wrapped in Document. Only identity (apiVersion, kind,
namespace, name) and a few metadata fields are interpreted; the rest of
the payload is passed through to the cluster state store untouched.
"""

import copy
import logging
from typing import Any, Optional

import yaml

from common import ControllerError, ObjectRef

logger = logging.getLogger(__name__)


class DecodeError(ControllerError):
    """Rendered manifest is not a decodable object."""

    def __init__(self, message: str):
        super().__init__("E411", f"Cannot decode manifest: {message}")


class Document:
    """Schema-agnostic structured document.

    Wraps the decoded mapping. Accessors read and write the standard
    apiVersion/kind/metadata fields; everything else is opaque.
    """

    def __init__(self, obj: Optional[dict] = None):
        self.obj: dict = obj if obj is not None else {}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Document):
            return NotImplemented
        return self.obj == other.obj

    def __repr__(self) -> str:
        return f"Document({self.kind}/{self.ref().key})"

    @property
    def metadata(self) -> dict:
        if self.obj.get('metadata') is None:
            self.obj['metadata'] = {}
        return self.obj['metadata']

    def _meta(self, key: str) -> Any:
        """Read a metadata field; explicit nulls read as absent."""
        return (self.obj.get('metadata') or {}).get(key) or ''

    @property
    def api_version(self) -> str:
        return self.obj.get('apiVersion', '')

    @property
    def group(self) -> str:
        """API group ('' for the core group)."""
        if '/' in self.api_version:
            return self.api_version.split('/', 1)[0]
        return ''

    @property
    def version(self) -> str:
        return self.api_version.rsplit('/', 1)[-1]

    @property
    def kind(self) -> str:
        return self.obj.get('kind', '')

    @property
    def name(self) -> str:
        return self._meta('name')

    @property
    def namespace(self) -> str:
        return self._meta('namespace')

    @namespace.setter
    def namespace(self, value: str) -> None:
        self.metadata['namespace'] = value

    @property
    def uid(self) -> str:
        return self._meta('uid')

    @property
    def resource_version(self) -> str:
        return self._meta('resourceVersion')

    @resource_version.setter
    def resource_version(self, value: str) -> None:
        self.metadata['resourceVersion'] = value

    @property
    def owner_references(self) -> list[dict]:
        return (self.obj.get('metadata') or {}).get('ownerReferences') or []

    @owner_references.setter
    def owner_references(self, value: list[dict]) -> None:
        self.metadata['ownerReferences'] = value

    def controller_reference(self) -> Optional[dict]:
        """Return the owner reference marked controller: true, if any."""
        for ref in self.owner_references:
            if ref.get('controller'):
                return ref
        return None

    def ref(self) -> ObjectRef:
        return ObjectRef(
            api_version=self.api_version,
            kind=self.kind,
            name=self.name,
            namespace=self.namespace,
        )

    def copy(self) -> 'Document':
        return Document(copy.deepcopy(self.obj))

    def get(self, *path: str, default: Any = None) -> Any:
        """Walk nested mappings, returning default on any missing key."""
        node: Any = self.obj
        for key in path:
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node


def decode_manifest(text: str) -> Document:
    """Decode rendered manifest text into a Document.

    Accepts a single YAML (or JSON) object. No schema validation is
    performed beyond requiring apiVersion and kind and checking the
    shape of the metadata fields the controller writes.

    Raises:
        DecodeError: On syntax errors, multiple documents, a non-mapping
            root, a missing apiVersion/kind, or malformed metadata
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DecodeError(str(e))

    if not isinstance(data, dict):
        raise DecodeError(f"expected a mapping, got {type(data).__name__}")

    for required in ('apiVersion', 'kind'):
        value = data.get(required)
        if not isinstance(value, str) or not value:
            raise DecodeError(f"object '{required}' is missing")

    metadata = data.get('metadata')
    if metadata is None:
        return Document(data)
    if not isinstance(metadata, dict):
        raise DecodeError("metadata must be a mapping")

    owners = metadata.get('ownerReferences')
    if owners is not None and (
        not isinstance(owners, list) or not all(isinstance(o, dict) for o in owners)
    ):
        raise DecodeError("metadata.ownerReferences must be a list of mappings")

    return Document(data)
