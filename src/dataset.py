"""Dataset and DataPlugin resource models.

Both are custom resources in the extension.datatunerx.io/v1beta1 group.
Only the fields the controller reads are modelled; the source Document
is kept so status writes carry the full object back to the store.
"""

from dataclasses import dataclass, field
from typing import Optional

from manifest import Document

API_VERSION = 'extension.datatunerx.io/v1beta1'
DATASET_KIND = 'Dataset'
DATA_PLUGIN_KIND = 'DataPlugin'

# Dataset status.state values
DATASET_READY = 'READY'
DATASET_UNREADY = 'UNREADY'


@dataclass
class Subset:
    """A named slice of the dataset with its train/test file references."""
    name: str = ''
    train_file: str = ''
    test_file: str = ''

    @property
    def is_valid(self) -> bool:
        """True if both train and test files are set."""
        return bool(self.train_file) and bool(self.test_file)

    @classmethod
    def from_dict(cls, data: dict) -> 'Subset':
        splits = data.get('splits') or {}
        return cls(
            name=data.get('name') or '',
            train_file=(splits.get('train') or {}).get('file') or '',
            test_file=(splits.get('test') or {}).get('file') or '',
        )


@dataclass(frozen=True)
class PluginRef:
    """Dataset plugin reference.

    Attributes:
        load_plugin: Whether a plugin manifest should be applied
        name: DataPlugin descriptor name
        parameters: JSON-encoded parameter object for the template
    """
    load_plugin: bool = False
    name: str = ''
    parameters: str = ''

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'PluginRef':
        if not data:
            return cls()
        return cls(
            load_plugin=bool(data.get('loadPlugin', False)),
            name=data.get('name') or '',
            parameters=data.get('parameters') or '',
        )


@dataclass
class Dataset:
    """Dataset custom resource.

    Attributes:
        name: metadata.name
        namespace: metadata.namespace
        subsets: spec.datasetMetadata.datasetInfo.subsets
        plugin: spec.datasetMetadata.plugin
        state: status.state ('' when unset)
        document: The store document this Dataset was read from
    """
    name: str
    namespace: str
    subsets: list[Subset] = field(default_factory=list)
    plugin: PluginRef = field(default_factory=PluginRef)
    state: str = ''
    document: Document = field(default_factory=Document, repr=False, compare=False)

    @classmethod
    def from_document(cls, doc: Document) -> 'Dataset':
        metadata = doc.get('spec', 'datasetMetadata', default=None) or {}
        subsets = (metadata.get('datasetInfo') or {}).get('subsets') or []
        return cls(
            name=doc.name,
            namespace=doc.namespace,
            subsets=[Subset.from_dict(s) for s in subsets],
            plugin=PluginRef.from_dict(metadata.get('plugin')),
            state=doc.get('status', 'state', default='') or '',
            document=doc,
        )

    @property
    def uid(self) -> str:
        return self.document.uid

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def has_valid_subset(self) -> bool:
        """True if at least one subset declares both train and test files."""
        return any(subset.is_valid for subset in self.subsets)

    def with_state(self, state: str) -> Document:
        """Return a copy of the source document with status.state set."""
        doc = self.document.copy()
        status = doc.obj.get('status') or {}
        status['state'] = state
        doc.obj['status'] = status
        return doc

    def owner_reference(self) -> dict:
        """Controller owner reference pointing at this Dataset."""
        return {
            'apiVersion': self.document.api_version or API_VERSION,
            'kind': self.document.kind or DATASET_KIND,
            'name': self.name,
            'uid': self.uid,
            'controller': True,
            'blockOwnerDeletion': True,
        }


@dataclass
class DataPlugin:
    """DataPlugin descriptor: locates a plugin manifest template."""
    name: str
    dataset_class: str = ''
    provider: str = ''

    @classmethod
    def from_document(cls, doc: Document) -> 'DataPlugin':
        spec = doc.obj.get('spec') or {}
        return cls(
            name=doc.name,
            dataset_class=spec.get('datasetClass') or '',
            provider=spec.get('provider') or '',
        )


def plugin_changed(old: Dataset, new: Dataset) -> bool:
    """True if the plugin reference differs between two snapshots."""
    return old.plugin != new.plugin
