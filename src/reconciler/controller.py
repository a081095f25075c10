"""Dataset reconciler: the control-loop entry point.

Each call reads the Dataset fresh and recomputes its desired state; no
state survives between calls, so re-running after a crash or with a
stale event is safe.

    Start -> Fetched -> Unready                 (status write, stop)
                     -> PluginResolution -> Applied | Skipped
"""

import logging
import threading
from typing import Optional

from common import (
    OUTCOME_NOT_FOUND,
    OUTCOME_PLUGIN_NOT_FOUND,
    OUTCOME_SKIPPED,
    OUTCOME_UNREADY,
    ControllerError,
    NotFoundError,
    ObjectRef,
    ReconcileResult,
    Request,
    check_cancelled,
)
from config import ControllerConfig
from dataset import API_VERSION, DATASET_KIND, DATASET_UNREADY, Dataset, plugin_changed
from reconciler.apply import ApplyEngine
from reconciler.builder import (
    ACTION_APPLY,
    ACTION_PLUGIN_NOT_FOUND,
    ACTION_SKIP,
    ACTION_UNREADY,
    DesiredStateBuilder,
)
from store.base import StateStore
from store.kube import KubeStore

logger = logging.getLogger(__name__)

# Watch event types
EVENT_CREATE = 'create'
EVENT_UPDATE = 'update'
EVENT_DELETE = 'delete'
EVENT_GENERIC = 'generic'


def should_reconcile(event_type: str, old: Optional[Dataset], new: Optional[Dataset]) -> bool:
    """Event filter for the watch loop.

    Update events pass only when the plugin reference changed; all other
    event types pass.
    """
    if event_type != EVENT_UPDATE:
        return True
    if old is None or new is None:
        return False
    return plugin_changed(old, new)


class DatasetReconciler:
    """Reconciles Dataset resources toward their plugin manifests."""

    def __init__(self, store: StateStore, config: ControllerConfig):
        self.store = store
        self.config = config
        self.builder = DesiredStateBuilder(store, config)
        self.engine = ApplyEngine(store)

    @classmethod
    def from_config(cls, config: ControllerConfig) -> 'DatasetReconciler':
        """Build a reconciler talking to the API server named in config."""
        return cls(KubeStore.from_config(config), config)

    def reconcile(self, request: Request, cancel: Optional[threading.Event] = None) -> ReconcileResult:
        """Run one reconciliation for the Dataset named by request.

        Returns:
            ReconcileResult describing the outcome

        Raises:
            ControllerError: Any fatal failure, unchanged, for the caller's
                requeue/backoff policy
        """
        logger.info(f"Reconciling Dataset {request.key}")
        try:
            dataset = self._fetch(request, cancel)
        except NotFoundError:
            logger.info(f"Dataset {request.key} not found, nothing to do")
            return ReconcileResult(OUTCOME_NOT_FOUND)
        except ControllerError as e:
            logger.error(f"Unable to fetch Dataset {request.key}: {e}")
            raise

        try:
            outcome = self.builder.build(dataset, cancel)
        except ControllerError as e:
            logger.error(f"Unable to build plugin manifest for Dataset {request.key}: {e}")
            raise

        if outcome.action == ACTION_UNREADY:
            self._mark_unready(dataset, cancel)
            return ReconcileResult(OUTCOME_UNREADY, 'no subset with both train and test files')

        if outcome.action == ACTION_SKIP:
            return ReconcileResult(OUTCOME_SKIPPED, 'plugin loading not requested')

        if outcome.action == ACTION_PLUGIN_NOT_FOUND:
            return ReconcileResult(OUTCOME_PLUGIN_NOT_FOUND, f"DataPlugin {dataset.plugin.name} not found")

        if outcome.action != ACTION_APPLY or outcome.document is None:
            raise ValueError(f"Unexpected build outcome: {outcome.action}")

        ref = outcome.document.ref()
        try:
            result = self.engine.apply(outcome.document, cancel)
        except ControllerError as e:
            logger.error(f"Unable to apply plugin manifest {outcome.template_path} "
                         f"({ref.kind} {ref.key}) for Dataset {request.key}: {e}")
            raise

        return ReconcileResult(result, f"{ref.kind} {ref.key} {result}")

    def _fetch(self, request: Request, cancel: Optional[threading.Event]) -> Dataset:
        check_cancelled(cancel, f"get Dataset {request.key}")
        ref = ObjectRef(
            api_version=API_VERSION,
            kind=DATASET_KIND,
            name=request.name,
            namespace=request.namespace,
        )
        return Dataset.from_document(self.store.get(ref, cancel))

    def _mark_unready(self, dataset: Dataset, cancel: Optional[threading.Event]) -> None:
        """Write status.state=UNREADY unless it is already set."""
        if dataset.state == DATASET_UNREADY:
            logger.debug(f"Dataset {dataset.key} already {DATASET_UNREADY}")
            return
        check_cancelled(cancel, f"update Dataset {dataset.key} status")
        try:
            self.store.update_status(dataset.with_state(DATASET_UNREADY), cancel)
        except ControllerError as e:
            logger.error(f"Unable to update Dataset {dataset.key} status: {e}")
            raise
        logger.info(f"Dataset {dataset.key} marked {DATASET_UNREADY}")
