"""Tests for pkicas.cas.cloudcas_client call and operation helpers."""

from __future__ import annotations

from datetime import timedelta

import pytest
from google.api_core import exceptions as gexc

from pkicas.cas.base import MissingCorrelation, OperationTimeout, RemoteError
from pkicas.cas.cloudcas_client import LongRunningOperation, call, seconds


class _Operation:
    def __init__(self, result=None, error=None):
        self._result = result
        self._error = error
        self.timeouts = []

    def result(self, timeout=None):
        self.timeouts.append(timeout)
        if self._error is not None:
            raise self._error
        return self._result


class TestCall:
    def test_passes_request_and_timeout(self):
        seen = {}

        def method(*, request, timeout):
            seen["request"] = request
            seen["timeout"] = timeout
            return "ok"

        assert call("Test", method, {"name": "x"}, timedelta(seconds=15)) == "ok"
        assert seen == {"request": {"name": "x"}, "timeout": 15.0}

    def test_timeout_is_retryable(self):
        def method(**_kwargs):
            raise TimeoutError

        with pytest.raises(OperationTimeout) as exc_info:
            call("Test", method, {}, timedelta(seconds=1))
        assert exc_info.value.retryable is True

    def test_grpc_deadline_exceeded_is_timeout(self):
        cause = gexc.DeadlineExceeded("deadline")

        def method(**_kwargs):
            raise cause

        with pytest.raises(OperationTimeout) as exc_info:
            call("FetchCertificateAuthorityCsr", method, {}, timedelta(seconds=60))
        assert exc_info.value.retryable is True
        assert exc_info.value.__cause__ is cause
        assert "60s" in exc_info.value.detail

    def test_other_grpc_errors_wrapped(self):
        def method(**_kwargs):
            raise gexc.PermissionDenied("no")

        with pytest.raises(RemoteError):
            call("Test", method, {}, timedelta(seconds=1))

    def test_other_errors_wrapped(self):
        cause = RuntimeError("permission denied")

        def method(**_kwargs):
            raise cause

        with pytest.raises(RemoteError) as exc_info:
            call("GetCertificateAuthority", method, {}, timedelta(seconds=1))
        assert exc_info.value.__cause__ is cause
        assert "GetCertificateAuthority" in exc_info.value.detail
        assert "permission denied" in exc_info.value.detail

    def test_domain_errors_pass_through(self):
        def method(**_kwargs):
            raise MissingCorrelation("nope")

        with pytest.raises(MissingCorrelation):
            call("Test", method, {}, timedelta(seconds=1))


class TestLongRunningOperation:
    def test_wait_returns_result(self):
        operation = _Operation(result="done")
        lro = LongRunningOperation("CreateCertificateAuthority", operation)
        assert lro.label == "CreateCertificateAuthority"
        assert lro.wait(timedelta(minutes=1)) == "done"
        assert operation.timeouts == [60.0]

    def test_wait_timeout(self):
        lro = LongRunningOperation("Op", _Operation(error=TimeoutError()))
        with pytest.raises(OperationTimeout):
            lro.wait(timedelta(seconds=1))

    def test_wait_deadline_exceeded(self):
        lro = LongRunningOperation("Op", _Operation(error=gexc.DeadlineExceeded("late")))
        with pytest.raises(OperationTimeout):
            lro.wait(timedelta(seconds=1))

    def test_wait_failure(self):
        lro = LongRunningOperation("Op", _Operation(error=ValueError("boom")))
        with pytest.raises(RemoteError):
            lro.wait(timedelta(seconds=1))


def test_seconds():
    assert seconds(timedelta(milliseconds=1500)) == 1.5
