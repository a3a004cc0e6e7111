"""Root conftest for the PKICAS test suite."""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)


# ---------------------------------------------------------------------------
# Crypto material
# ---------------------------------------------------------------------------


def _name(cn: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])


def _self_signed(key: ec.EllipticCurvePrivateKey, cn: str) -> x509.Certificate:
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(_name(cn))
        .issuer_name(_name(cn))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def ec_key() -> ec.EllipticCurvePrivateKey:
    """A P-256 key shared by the whole session."""
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def root_ca() -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    """A self-signed test root and its key."""
    key = ec.generate_private_key(ec.SECP256R1())
    return _self_signed(key, "Test Root CA"), key


@pytest.fixture(scope="session")
def self_signed_factory():
    """Return ``make(cn) -> x509.Certificate`` for throwaway certificates."""

    def make(cn: str) -> x509.Certificate:
        return _self_signed(ec.generate_private_key(ec.SECP256R1()), cn)

    return make


# ---------------------------------------------------------------------------
# Config files
# ---------------------------------------------------------------------------


@pytest.fixture()
def minimal_config_data() -> dict:
    """Return a dict containing a valid cloudcas configuration."""
    return {
        "cas": {
            "backend": "cloudcas",
            "certificate_authority": "projects/p/locations/l/certificateAuthorities/ca",
        },
        "logging": {"level": "INFO", "format": "text"},
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, minimal_config_data: dict) -> Path:
    """Write *minimal_config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(minimal_config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


# ---------------------------------------------------------------------------
# Logging isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_pkicas_logger():
    """Undo ``configure_logging`` so caplog keeps seeing ``pkicas.*`` records."""
    yield
    logger = logging.getLogger("pkicas")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
