"""Boundary to the remote certificate authority service API.

The adapter only needs six RPCs.  :class:`CertificateAuthorityClient`
describes them structurally so that tests can inject a plain stub while
production code uses the generated Google Cloud client, imported lazily
so that ``google-cloud-private-ca`` is only required when the
``cloudcas`` backend is actually selected.

Every RPC takes ``request=<dict>`` and ``timeout=<seconds>``.  Initiating
RPCs return an operation whose ``result(timeout=...)`` blocks until the
server side work is done; :class:`LongRunningOperation` wraps that call
with the error mapping used everywhere else in this package.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Protocol

from pkicas.cas.base import CASError, ConfigError, OperationTimeout, RemoteError

log = logging.getLogger(__name__)


class Operation(Protocol):
    def result(self, timeout: float | None = None) -> Any: ...


class CertificateAuthorityClient(Protocol):
    """The subset of the remote service API used by the adapter."""

    def create_certificate(self, *, request: dict[str, Any], timeout: float) -> Any: ...

    def revoke_certificate(self, *, request: dict[str, Any], timeout: float) -> Any: ...

    def get_certificate_authority(self, *, request: dict[str, Any], timeout: float) -> Any: ...

    def create_certificate_authority(
        self,
        *,
        request: dict[str, Any],
        timeout: float,
    ) -> Operation: ...

    def fetch_certificate_authority_csr(
        self,
        *,
        request: dict[str, Any],
        timeout: float,
    ) -> Any: ...

    def activate_certificate_authority(
        self,
        *,
        request: dict[str, Any],
        timeout: float,
    ) -> Operation: ...


def new_certificate_authority_client(credentials_file: str = "") -> CertificateAuthorityClient:
    """Create the production client.

    Parameters
    ----------
    credentials_file:
        Path to a service-account JSON file.  When empty, application
        default credentials are used.

    Raises
    ------
    ConfigError
        If ``google-cloud-private-ca`` is not installed.
    RemoteError
        If the client cannot be initialised (e.g. bad credentials).

    """
    try:
        from google.cloud.security import privateca_v1beta1  # noqa: PLC0415
    except ImportError as exc:
        msg = (
            "google-cloud-private-ca is not installed. "
            "Install with: pip install google-cloud-private-ca"
        )
        raise ConfigError(msg) from exc

    client_cls = privateca_v1beta1.CertificateAuthorityServiceClient
    try:
        if credentials_file:
            client = client_cls.from_service_account_file(credentials_file)
        else:
            client = client_cls()
    except Exception as exc:  # noqa: BLE001
        msg = f"Error creating certificate authority client: {exc}"
        raise RemoteError(msg) from exc

    log.debug(
        "Created certificate authority client (credentials=%s)",
        credentials_file or "application default",
    )
    return client


def seconds(deadline: timedelta) -> float:
    return deadline.total_seconds()


def _deadline_errors() -> tuple[type[BaseException], ...]:
    """Exception types that mean a deadline expired before the call finished."""
    from google.api_core import exceptions as gexc  # noqa: PLC0415

    return (TimeoutError, gexc.DeadlineExceeded)


def call(label: str, method: Any, request: dict[str, Any], deadline: timedelta) -> Any:
    """Invoke a client *method* bounded by *deadline*.

    Raises
    ------
    OperationTimeout
        If the call did not complete within *deadline*.
    RemoteError
        For any other failure, with the cause chained.

    """
    log.debug("Calling %s (timeout=%.1fs)", label, seconds(deadline))
    try:
        return method(request=request, timeout=seconds(deadline))
    except CASError:
        raise
    except _deadline_errors() as exc:
        msg = f"{label} did not complete within {seconds(deadline):.0f}s"
        raise OperationTimeout(msg) from exc
    except Exception as exc:  # noqa: BLE001
        msg = f"{label} failed: {exc}"
        raise RemoteError(msg) from exc


class LongRunningOperation:
    """Handle to a server-side operation started by an initiating RPC.

    Waiting never cancels the remote operation; on timeout the work may
    still complete later on the server.
    """

    def __init__(self, label: str, operation: Operation) -> None:
        self._label = label
        self._operation = operation

    @property
    def label(self) -> str:
        return self._label

    def wait(self, timeout: timedelta) -> Any:
        """Block until the operation finishes and return its result.

        Raises
        ------
        OperationTimeout
            If the operation is still running after *timeout*.
        RemoteError
            If the operation finished with an error.

        """
        log.debug("Waiting for %s (timeout=%.1fs)", self._label, seconds(timeout))
        try:
            return self._operation.result(timeout=seconds(timeout))
        except _deadline_errors() as exc:
            msg = f"{self._label} did not complete within {seconds(timeout):.0f}s"
            raise OperationTimeout(msg) from exc
        except Exception as exc:  # noqa: BLE001
            msg = f"{self._label} failed: {exc}"
            raise RemoteError(msg) from exc
