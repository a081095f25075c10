"""Desired-state construction for a Dataset.

Turns a Dataset into the child document its plugin manifest describes:

1. Check subset readiness (unready datasets get a status-only outcome)
2. Resolve the DataPlugin descriptor named by the plugin reference
3. Locate plugins/<datasetClass>/<provider>/plugin.yaml
4. Decode the parameter blob and inject completeNotifyUrl
5. Render, decode, then stamp namespace and owner reference
"""

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from common import ControllerError, NotFoundError, ObjectRef, ValidationError, check_cancelled
from config import ControllerConfig
from dataset import API_VERSION, DATA_PLUGIN_KIND, DataPlugin, Dataset
from manifest import Document, decode_manifest
from store.base import StateStore
from template import render_template

logger = logging.getLogger(__name__)

# Injected into every plugin's parameters
COMPLETE_NOTIFY_URL_KEY = 'completeNotifyUrl'

PLUGIN_MANIFEST = 'plugin.yaml'

# BuildOutcome.action values
ACTION_UNREADY = 'unready'
ACTION_SKIP = 'skip'
ACTION_PLUGIN_NOT_FOUND = 'plugin_not_found'
ACTION_APPLY = 'apply'


class ParameterDecodeError(ControllerError):
    """Plugin parameters are not a JSON object."""

    def __init__(self, message: str):
        super().__init__("E410", f"Invalid plugin parameters: {message}")


class TemplateNotFoundError(ControllerError):
    """Plugin manifest template cannot be read."""

    def __init__(self, path: Path, reason: str = 'not found'):
        self.path = path
        super().__init__("E413", f"Plugin manifest {reason}: {path}")


class OwnershipError(ControllerError):
    """Document is already controlled by another owner."""

    def __init__(self, key: str, owner: dict):
        super().__init__(
            "E420",
            f"{key} is already owned by {owner.get('kind', '?')}/{owner.get('name', '?')}",
        )


@dataclass
class BuildOutcome:
    """What the reconciler should do with a Dataset this cycle.

    Attributes:
        action: unready, skip, plugin_not_found, or apply
        document: Desired child document (apply only)
        template_path: Manifest template used (apply only)
    """
    action: str
    document: Optional[Document] = None
    template_path: Optional[Path] = None


def decode_parameters(blob: Optional[str]) -> dict[str, Any]:
    """Decode the plugin parameter blob into a mapping.

    null, empty and whitespace-only blobs decode to {}.

    Raises:
        ParameterDecodeError: If the blob is not valid JSON or not an object
    """
    if blob is None or not blob.strip():
        return {}
    try:
        params = json.loads(blob)
    except json.JSONDecodeError as e:
        raise ParameterDecodeError(str(e))
    if params is None:
        return {}
    if not isinstance(params, dict):
        raise ParameterDecodeError(f"expected a JSON object, got {type(params).__name__}")
    return params


def template_path(plugin_root: Path, plugin: DataPlugin) -> Path:
    """Path of a DataPlugin's manifest template under plugin_root.

    Raises:
        TemplateNotFoundError: If class or provider is empty or would
            resolve outside plugin_root/plugins
    """
    plugins_dir = plugin_root / 'plugins'
    path = plugins_dir / plugin.dataset_class / plugin.provider / PLUGIN_MANIFEST
    if not plugin.dataset_class or not plugin.provider:
        raise TemplateNotFoundError(path, 'path incomplete')
    if not path.resolve().is_relative_to(plugins_dir.resolve()):
        raise TemplateNotFoundError(path, 'path outside plugin root')
    return path


def set_controller_reference(doc: Document, owner: dict) -> None:
    """Make owner the controlling owner of doc.

    An existing reference to the same owner (by uid) is replaced.

    Raises:
        OwnershipError: If doc already has a different controller
    """
    current = doc.controller_reference()
    if current is not None and current.get('uid') != owner['uid']:
        raise OwnershipError(doc.ref().key, current)

    refs = [r for r in doc.owner_references if r.get('uid') != owner['uid']]
    refs.append(owner)
    doc.owner_references = refs


class DesiredStateBuilder:
    """Builds the desired child document for a Dataset."""

    def __init__(self, store: StateStore, config: ControllerConfig):
        self.store = store
        self.config = config

    def build(self, dataset: Dataset, cancel: Optional[threading.Event] = None) -> BuildOutcome:
        """Decide this cycle's action and, for apply, the document to apply.

        Raises:
            ParameterDecodeError, TemplateNotFoundError, TemplateResolutionError,
            DecodeError, OwnershipError, StoreError, ReconcileCancelled
        """
        if not dataset.has_valid_subset():
            logger.info(f"Dataset {dataset.key} has no subset with both train and test files")
            return BuildOutcome(ACTION_UNREADY)

        if not dataset.plugin.load_plugin:
            logger.debug(f"Dataset {dataset.key} does not load a plugin")
            return BuildOutcome(ACTION_SKIP)

        try:
            plugin = self._get_plugin(dataset.plugin.name, cancel)
        except NotFoundError:
            logger.error(f"DataPlugin {dataset.plugin.name!r} not found "
                         f"in {self.config.system_namespace} for Dataset {dataset.key}")
            return BuildOutcome(ACTION_PLUGIN_NOT_FOUND)

        path = template_path(self.config.plugin_root, plugin)
        logger.info(f"Rendering plugin manifest {path} for Dataset {dataset.key}")

        params = decode_parameters(dataset.plugin.parameters)
        params[COMPLETE_NOTIFY_URL_KEY] = self.config.complete_notify_url

        doc = decode_manifest(render_template(self._read_template(path), params))
        doc.namespace = dataset.namespace
        set_controller_reference(doc, dataset.owner_reference())

        return BuildOutcome(ACTION_APPLY, document=doc, template_path=path)

    def _get_plugin(self, name: str, cancel: Optional[threading.Event]) -> DataPlugin:
        if not name:
            raise ValidationError("plugin loading requested but no plugin name given")
        check_cancelled(cancel, f"get DataPlugin {name}")
        ref = ObjectRef(
            api_version=API_VERSION,
            kind=DATA_PLUGIN_KIND,
            name=name,
            namespace=self.config.system_namespace,
        )
        return DataPlugin.from_document(self.store.get(ref, cancel))

    @staticmethod
    def _read_template(path: Path) -> str:
        try:
            return path.read_text(encoding='utf-8')
        except FileNotFoundError:
            raise TemplateNotFoundError(path)
        except OSError as e:
            raise TemplateNotFoundError(path, f"unreadable ({e.strerror})")
