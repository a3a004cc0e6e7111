"""Mapping of RFC 5280 revocation reason codes to remote service reasons.

Reason 7 is unassigned in RFC 5280 and reason 8 (``removeFromCRL``) has
no equivalent in the remote service; both are rejected.
"""

from __future__ import annotations

from pkicas.cas.base import InvalidRevocationReason
from pkicas.cas.types import RevocationReason

REVOCATION_REASONS: dict[int, str] = {
    RevocationReason.UNSPECIFIED: "REVOCATION_REASON_UNSPECIFIED",
    RevocationReason.KEY_COMPROMISE: "KEY_COMPROMISE",
    RevocationReason.CA_COMPROMISE: "CERTIFICATE_AUTHORITY_COMPROMISE",
    RevocationReason.AFFILIATION_CHANGED: "AFFILIATION_CHANGED",
    RevocationReason.SUPERSEDED: "SUPERSEDED",
    RevocationReason.CESSATION_OF_OPERATION: "CESSATION_OF_OPERATION",
    RevocationReason.CERTIFICATE_HOLD: "CERTIFICATE_HOLD",
    RevocationReason.PRIVILEGE_WITHDRAWN: "PRIVILEGE_WITHDRAWN",
    RevocationReason.AA_COMPROMISE: "ATTRIBUTE_AUTHORITY_COMPROMISE",
}


def map_reason(code: int) -> tuple[str | None, bool]:
    """Return ``(reason, ok)`` for an RFC 5280 reason *code*."""
    reason = REVOCATION_REASONS.get(code)
    return reason, reason is not None


def require_reason(code: int) -> str:
    """Return the remote reason for *code* or raise.

    Raises
    ------
    InvalidRevocationReason
        For codes 7, 8 and anything outside 0-10.

    """
    reason, ok = map_reason(code)
    if not ok:
        msg = f"Revocation reasonCode={code} is invalid or not supported"
        raise InvalidRevocationReason(msg)
    return reason  # type: ignore[return-value]
