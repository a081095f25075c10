"""Tests for common.py - shared types, errors and cancellation."""

import sys
import threading
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from common import (
    ConflictError,
    ControllerError,
    NotFoundError,
    ObjectRef,
    ReconcileCancelled,
    ReconcileResult,
    Request,
    StoreError,
    ValidationError,
    check_cancelled,
)


class TestErrors:
    """Tests for the coded error hierarchy."""

    def test_not_found_error(self):
        error = NotFoundError('Dataset', 'team-a/ds-1')
        assert error.code == 'E200'
        assert error.kind == 'Dataset'
        assert 'team-a/ds-1' in error.message
        assert str(error).startswith('E200: ')

    def test_validation_error(self):
        error = ValidationError('missing name')
        assert error.code == 'E400'
        assert error.message == 'missing name'

    def test_store_error_carries_status(self):
        error = StoreError('update', 'team-a/job', '500 boom', status=500)
        assert error.code == 'E500'
        assert error.status == 500
        assert error.operation == 'update'
        assert 'update team-a/job failed' in error.message

    def test_conflict_is_store_error(self):
        error = ConflictError('update', 'team-a/job', 'stale')
        assert isinstance(error, StoreError)
        assert error.code == 'E409'
        assert error.status == 409
        assert str(error) == 'E409: update team-a/job failed: stale'

    def test_all_derive_from_controller_error(self):
        for error in (
            NotFoundError('Job', 'x'),
            ValidationError('x'),
            StoreError('get', 'x', 'y'),
            ReconcileCancelled('get x'),
        ):
            assert isinstance(error, ControllerError)


class TestCheckCancelled:
    """Tests for check_cancelled()."""

    def test_none_is_never_cancelled(self):
        check_cancelled(None, 'get x')

    def test_unset_event_passes(self):
        check_cancelled(threading.Event(), 'get x')

    def test_set_event_raises(self):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ReconcileCancelled) as exc_info:
            check_cancelled(cancel, 'create team-a/job')
        assert exc_info.value.code == 'E499'
        assert 'create team-a/job' in exc_info.value.message


class TestIdentity:
    """Tests for ObjectRef and Request."""

    def test_namespaced_key(self):
        ref = ObjectRef('batch/v1', 'Job', 'loader', 'team-a')
        assert ref.key == 'team-a/loader'

    def test_cluster_scoped_key(self):
        ref = ObjectRef('v1', 'Namespace', 'team-a')
        assert ref.key == 'team-a'

    def test_request_key(self):
        assert Request('team-a', 'ds-1').key == 'team-a/ds-1'

    def test_result_defaults(self):
        result = ReconcileResult('skipped')
        assert result.requeue is False
        assert result.message == ''
