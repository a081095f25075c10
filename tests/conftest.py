"""Shared pytest fixtures for dataset-controller tests."""

import copy
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from common import ConflictError, NotFoundError, ObjectRef
from config import ControllerConfig
from manifest import Document

NOTIFY_URL = 'http://notifier.datatunerx-dev.svc:8080/complete'
SYSTEM_NAMESPACE = 'datatunerx-dev'

PLUGIN_TEMPLATE = """\
apiVersion: batch/v1
kind: Job
metadata:
  name: dataset-loader
spec:
  template:
    metadata:
      annotations:
        x: "{{x}}"
        notify: "{{completeNotifyUrl}}"
    spec:
      restartPolicy: Never
      containers:
        - name: loader
          image: acme/loader:latest
          env:
            - name: X
              value: "{{x}}"
            - name: COMPLETE_NOTIFY_URL
              value: "{{completeNotifyUrl}}"
"""


class FakeStore:
    """In-memory StateStore.

    Mirrors API server behavior the reconciler depends on: resourceVersion
    is bumped only when an object's content changes, updates with a stale
    resourceVersion are rejected, and create of an existing object fails.
    Every call is recorded in `calls` as (operation, kind, key, resourceVersion).
    """

    def __init__(self):
        self.objects: dict[tuple, dict] = {}
        self.calls: list[tuple] = []
        self._version = 0

    @staticmethod
    def _key(ref: ObjectRef) -> tuple:
        return (ref.api_version, ref.kind, ref.namespace, ref.name)

    def _next_version(self) -> str:
        self._version += 1
        return f'v{self._version}'

    def add(self, obj: dict, resource_version: str = '') -> Document:
        """Seed an object directly, bypassing call recording."""
        doc = Document(copy.deepcopy(obj))
        doc.resource_version = resource_version or self._next_version()
        self.objects[self._key(doc.ref())] = doc.obj
        return doc.copy()

    def lookup(self, api_version: str, kind: str, namespace: str, name: str) -> dict:
        return self.objects[(api_version, kind, namespace, name)]

    def writes(self) -> list[tuple]:
        return [c for c in self.calls if c[0] != 'get']

    def get(self, ref, cancel=None):
        self.calls.append(('get', ref.kind, ref.key, None))
        key = self._key(ref)
        if key not in self.objects:
            raise NotFoundError(ref.kind, ref.key)
        return Document(copy.deepcopy(self.objects[key]))

    def create(self, doc, cancel=None):
        ref = doc.ref()
        self.calls.append(('create', ref.kind, ref.key, None))
        key = self._key(ref)
        if key in self.objects:
            raise ConflictError('create', ref.key, 'already exists')
        stored = copy.deepcopy(doc.obj)
        stored.setdefault('metadata', {})['resourceVersion'] = self._next_version()
        self.objects[key] = stored
        return Document(copy.deepcopy(stored))

    def _replace(self, operation, doc, merge):
        ref = doc.ref()
        self.calls.append((operation, ref.kind, ref.key, doc.resource_version))
        key = self._key(ref)
        if key not in self.objects:
            raise NotFoundError(ref.kind, ref.key)
        current = self.objects[key]
        if doc.resource_version != current['metadata']['resourceVersion']:
            raise ConflictError(operation, ref.key, 'the object has been modified')

        updated = merge(copy.deepcopy(current), copy.deepcopy(doc.obj))
        if updated != current:
            updated['metadata']['resourceVersion'] = self._next_version()
            self.objects[key] = updated
        return Document(copy.deepcopy(self.objects[key]))

    def update(self, doc, cancel=None):
        return self._replace('update', doc, lambda current, new: new)

    def update_status(self, doc, cancel=None):
        def merge(current, new):
            current['status'] = new.get('status', {})
            return current
        return self._replace('update_status', doc, merge)


def make_dataset(name='ds-2', namespace='team-a', subsets=None, load_plugin=True,
                 plugin_name='p1', parameters='{"x": 1}', state=None, uid=None) -> dict:
    """Build a Dataset object as the API server returns it."""
    if subsets is None:
        subsets = [{'train': 'a', 'test': 'b'}]
    obj = {
        'apiVersion': 'extension.datatunerx.io/v1beta1',
        'kind': 'Dataset',
        'metadata': {
            'name': name,
            'namespace': namespace,
            'uid': uid or f'uid-{name}',
        },
        'spec': {
            'datasetMetadata': {
                'datasetInfo': {
                    'subsets': [
                        {
                            'name': f'subset-{i}',
                            'splits': {
                                'train': {'file': s.get('train', '')},
                                'test': {'file': s.get('test', '')},
                            },
                        }
                        for i, s in enumerate(subsets)
                    ],
                },
                'plugin': {
                    'loadPlugin': load_plugin,
                    'name': plugin_name,
                    'parameters': parameters,
                },
            },
        },
    }
    if state is not None:
        obj['status'] = {'state': state}
    return obj


def make_data_plugin(name='p1', dataset_class='text', provider='acme',
                     namespace=SYSTEM_NAMESPACE) -> dict:
    """Build a DataPlugin descriptor object."""
    return {
        'apiVersion': 'extension.datatunerx.io/v1beta1',
        'kind': 'DataPlugin',
        'metadata': {'name': name, 'namespace': namespace},
        'spec': {'datasetClass': dataset_class, 'provider': provider},
    }


@pytest.fixture
def plugin_root(tmp_path):
    """Plugin root with plugins/text/acme/plugin.yaml."""
    plugin_dir = tmp_path / 'plugins' / 'text' / 'acme'
    plugin_dir.mkdir(parents=True)
    (plugin_dir / 'plugin.yaml').write_text(PLUGIN_TEMPLATE)
    return tmp_path


@pytest.fixture
def config(plugin_root):
    """Controller config pointing at the test plugin root."""
    return ControllerConfig(
        complete_notify_url=NOTIFY_URL,
        system_namespace=SYSTEM_NAMESPACE,
        plugin_root=plugin_root,
        token_file=None,
        ca_file=None,
    )


@pytest.fixture
def store():
    """Empty in-memory state store."""
    return FakeStore()
