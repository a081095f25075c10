"""Kubernetes API server client.

Speaks the REST API directly with requests. Resource paths are built
from the object's apiVersion and kind; the plural resource name and
scope come from API discovery and are cached per group/version.

    core group:  /api/v1/namespaces/{ns}/{plural}/{name}
    named group: /apis/{group}/{version}/namespaces/{ns}/{plural}/{name}
"""

import logging
import threading
from pathlib import Path
from typing import Optional

import requests

from common import (
    ConflictError,
    NotFoundError,
    ObjectRef,
    StoreError,
    check_cancelled,
)
from config import ControllerConfig
from manifest import Document

logger = logging.getLogger(__name__)


class KubeStore:
    """StateStore backed by the Kubernetes API server."""

    def __init__(
        self,
        api_server: str,
        token: str = '',
        ca_file: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        token_file: Optional[Path] = None,
    ):
        """Initialize the client.

        Args:
            api_server: API server URL (e.g., https://kubernetes.default.svc)
            token: Bearer token; omitted from requests when empty
            ca_file: CA bundle for TLS verification (system CAs if None)
            timeout: Per-request timeout in seconds
            session: Optional pre-built session (tests inject a mock)
            token_file: File the token is re-read from when the API server
                answers 401 (rotated service-account tokens)
        """
        self.api_server = api_server.rstrip('/')
        self.timeout = timeout
        self.verify: object = ca_file if ca_file else True
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json'})
        self.token_file = token_file
        self._token = ''
        if token:
            self._set_token(token)
        # (apiVersion, kind) -> (plural, namespaced)
        self._resources: dict[tuple[str, str], tuple[str, bool]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: ControllerConfig) -> 'KubeStore':
        ca_file = None
        if config.ca_file is not None and config.ca_file.exists():
            ca_file = str(config.ca_file)
        return cls(
            api_server=config.api_server,
            token=config.get_api_token(),
            ca_file=ca_file,
            timeout=config.request_timeout,
            token_file=config.token_file,
        )

    def _set_token(self, token: str) -> None:
        self._token = token
        self.session.headers.update({'Authorization': f'Bearer {token}'})

    def _refresh_token(self) -> bool:
        """Re-read the token file. Returns True if the token changed."""
        if self.token_file is None:
            return False
        try:
            token = self.token_file.read_text(encoding='utf-8').strip()
        except OSError as e:
            logger.warning(f"Unable to re-read API token {self.token_file}: {e}")
            return False
        if not token or token == self._token:
            return False
        logger.info(f"API token in {self.token_file} rotated, retrying with new token")
        self._set_token(token)
        return True

    @staticmethod
    def _group_path(api_version: str) -> str:
        if '/' in api_version:
            return f"/apis/{api_version}"
        return f"/api/{api_version}"

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        kind: str,
        key: str,
        cancel: Optional[threading.Event] = None,
        body: Optional[dict] = None,
    ) -> dict:
        """Issue one API request and map HTTP failures to store errors."""
        check_cancelled(cancel, f"{operation} {key}")

        resp = self._send(method, path, operation, key, body)
        if resp.status_code == 401 and self._refresh_token():
            check_cancelled(cancel, f"{operation} {key}")
            resp = self._send(method, path, operation, key, body)

        if resp.status_code == 404:
            raise NotFoundError(kind, key)
        if resp.status_code == 409:
            raise ConflictError(operation, key, _status_message(resp))
        if resp.status_code >= 400:
            raise StoreError(operation, key, _status_message(resp), status=resp.status_code)

        try:
            result: dict = resp.json()
        except ValueError as e:
            raise StoreError(operation, key, f"invalid JSON response: {e}", status=resp.status_code)
        return result

    def _send(self, method: str, path: str, operation: str, key: str,
              body: Optional[dict]) -> requests.Response:
        url = f"{self.api_server}{path}"
        logger.debug(f"{method} {url}")
        try:
            return self.session.request(
                method,
                url,
                json=body,
                timeout=self.timeout,
                verify=self.verify,
            )
        except requests.exceptions.Timeout:
            raise StoreError(operation, key, f"timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise StoreError(operation, key, str(e))

    def _resource(self, api_version: str, kind: str,
                  cancel: Optional[threading.Event] = None) -> tuple[str, bool]:
        """Resolve (plural, namespaced) for a kind via API discovery."""
        cache_key = (api_version, kind)
        with self._lock:
            if cache_key in self._resources:
                return self._resources[cache_key]

        try:
            listing = self._request(
                'GET', self._group_path(api_version), 'discover',
                kind, api_version, cancel,
            )
        except NotFoundError:
            raise StoreError('discover', api_version,
                             f"no matches for kind {kind} in version {api_version}")

        found: Optional[tuple[str, bool]] = None
        with self._lock:
            for resource in listing.get('resources', []):
                name = resource.get('name', '')
                if '/' in name:
                    continue  # subresource
                entry = (name, bool(resource.get('namespaced', False)))
                self._resources[(api_version, resource.get('kind', ''))] = entry
                if resource.get('kind') == kind:
                    found = entry

        if found is None:
            raise StoreError('discover', api_version,
                             f"no matches for kind {kind} in version {api_version}")
        logger.debug(f"Discovered {kind} as {found[0]} (namespaced={found[1]})")
        return found

    def _collection_path(self, ref: ObjectRef, cancel: Optional[threading.Event]) -> str:
        plural, namespaced = self._resource(ref.api_version, ref.kind, cancel)
        base = self._group_path(ref.api_version)
        if namespaced:
            if not ref.namespace:
                raise StoreError('resolve', ref.key, f"{ref.kind} is namespaced but no namespace given")
            return f"{base}/namespaces/{ref.namespace}/{plural}"
        return f"{base}/{plural}"

    def _object_path(self, ref: ObjectRef, cancel: Optional[threading.Event]) -> str:
        return f"{self._collection_path(ref, cancel)}/{ref.name}"

    def get(self, ref: ObjectRef, cancel: Optional[threading.Event] = None) -> Document:
        path = self._object_path(ref, cancel)
        return Document(self._request('GET', path, 'get', ref.kind, ref.key, cancel))

    def create(self, doc: Document, cancel: Optional[threading.Event] = None) -> Document:
        ref = doc.ref()
        path = self._collection_path(ref, cancel)
        return Document(self._request('POST', path, 'create', ref.kind, ref.key, cancel, body=doc.obj))

    def update(self, doc: Document, cancel: Optional[threading.Event] = None) -> Document:
        ref = doc.ref()
        path = self._object_path(ref, cancel)
        return Document(self._request('PUT', path, 'update', ref.kind, ref.key, cancel, body=doc.obj))

    def update_status(self, doc: Document, cancel: Optional[threading.Event] = None) -> Document:
        ref = doc.ref()
        path = f"{self._object_path(ref, cancel)}/status"
        return Document(self._request('PUT', path, 'update status', ref.kind, ref.key, cancel, body=doc.obj))


def _status_message(resp: requests.Response) -> str:
    """Extract the message from a Kubernetes Status response body."""
    try:
        data = resp.json()
        if isinstance(data, dict) and data.get('message'):
            return f"{resp.status_code} {data['message']}"
    except ValueError:
        pass
    return f"{resp.status_code} {resp.text[:200]}"
