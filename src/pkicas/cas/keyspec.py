"""Key-version negotiation for remotely generated authority keys.

Maps a requested signature algorithm and key size onto one of the
sign-hash algorithms the remote service can generate keys for.  An
unspecified request resolves to ECDSA P-256 with SHA-256; RSA requests
without a size resolve to 3072 bits.

This module is pure: no I/O, no state.
"""

from __future__ import annotations

from dataclasses import dataclass

from pkicas.cas.base import UnsupportedKeySpec
from pkicas.cas.types import SignatureAlgorithm

DEFAULT_RSA_BITS = 3072

_RSA_PKCS1 = {
    2048: "RSA_PKCS1_2048_SHA256",
    3072: "RSA_PKCS1_3072_SHA256",
    4096: "RSA_PKCS1_4096_SHA256",
}

_RSA_PSS = {
    2048: "RSA_PSS_2048_SHA256",
    3072: "RSA_PSS_3072_SHA256",
    4096: "RSA_PSS_4096_SHA256",
}


@dataclass(frozen=True)
class KeyVersionSpec:
    """Resolved key specification.

    Attributes
    ----------
    signature_algorithm:
        The effective signature algorithm after applying defaults.
    bits:
        Key size in bits (curve size for EC keys).
    algorithm:
        The remote service's sign-hash algorithm name.

    """

    signature_algorithm: SignatureAlgorithm
    bits: int
    algorithm: str


def _rsa(
    table: dict[int, str],
    signature_algorithm: SignatureAlgorithm,
    bits: int,
    label: str,
) -> KeyVersionSpec:
    size = bits or DEFAULT_RSA_BITS
    algorithm = table.get(size)
    if algorithm is None:
        msg = f"Unsupported {label} key size '{bits}'; supported: {sorted(table)}"
        raise UnsupportedKeySpec(msg)
    return KeyVersionSpec(signature_algorithm, size, algorithm)


def _ec(
    signature_algorithm: SignatureAlgorithm,
    bits: int,
    curve_bits: int,
    algorithm: str,
) -> KeyVersionSpec:
    if bits not in (0, curve_bits):
        msg = f"Unsupported key size '{bits}' for {signature_algorithm.name}"
        raise UnsupportedKeySpec(msg)
    return KeyVersionSpec(signature_algorithm, curve_bits, algorithm)


def negotiate(
    signature_algorithm: SignatureAlgorithm | str | None = None,
    bits: int = 0,
) -> KeyVersionSpec:
    """Resolve *signature_algorithm* and *bits* to a :class:`KeyVersionSpec`.

    Raises
    ------
    UnsupportedKeySpec
        If the algorithm or the algorithm/size pair is not supported.

    """
    try:
        alg = SignatureAlgorithm(signature_algorithm or "")
    except ValueError:
        msg = f"Unknown or unsupported signature algorithm '{signature_algorithm}'"
        raise UnsupportedKeySpec(msg) from None

    if alg in (SignatureAlgorithm.UNSPECIFIED, SignatureAlgorithm.ECDSA_WITH_SHA256):
        return _ec(SignatureAlgorithm.ECDSA_WITH_SHA256, bits, 256, "EC_P256_SHA256")
    if alg is SignatureAlgorithm.ECDSA_WITH_SHA384:
        return _ec(alg, bits, 384, "EC_P384_SHA384")
    if alg is SignatureAlgorithm.SHA256_WITH_RSA:
        return _rsa(_RSA_PKCS1, alg, bits, "RSA PKCS #1")
    if alg is SignatureAlgorithm.SHA256_WITH_RSA_PSS:
        return _rsa(_RSA_PSS, alg, bits, "RSA-PSS")

    msg = f"Unknown or unsupported signature algorithm '{alg.value}'"
    raise UnsupportedKeySpec(msg)
