"""Tests for the PKICAS CLI entry point (pkicas.cli.main) and ca subcommands.

The remote client factory is patched where CloudCAS looks it up
(``pkicas.cas.cloudcas.new_certificate_authority_client``), so no Google
Cloud libraries or credentials are needed.
"""

from __future__ import annotations

import os
import stat
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import yaml
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from pkicas.cas.pemutil import encode_certificate
from pkicas.cli.main import _build_parser, main

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def parser():
    """Return a freshly built ArgumentParser."""
    return _build_parser()


def _write(tmp_path, data) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def softcas_config(tmp_path, root_ca):
    """Config file for a softcas backend with an issuer on disk."""
    cert, key = root_ca
    cert_path = tmp_path / "issuer.crt"
    key_path = tmp_path / "issuer.key"
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return _write(
        tmp_path,
        {
            "cas": {
                "backend": "softcas",
                "soft": {
                    "issuer_cert_path": str(cert_path),
                    "issuer_key_path": str(key_path),
                },
            },
            "logging": {"level": "WARNING", "format": "text"},
        },
    )


# ===========================================================================
# Parser construction
# ===========================================================================


class TestParser:
    def test_config_required(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args([])

    def test_ca_create_defaults(self, parser):
        args = parser.parse_args(["-c", "x.yaml", "ca", "create"])
        assert args.command == "ca"
        assert args.ca_command == "create"
        assert args.ca_type == "root"
        assert args.lifetime_days == 3650
        assert args.parent == ""

    def test_ca_create_intermediate(self, parser):
        args = parser.parse_args(
            ["-c", "x.yaml", "ca", "create", "--type", "intermediate", "--parent", "p"],
        )
        assert args.ca_type == "intermediate"
        assert args.parent == "p"

    def test_invalid_type(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["-c", "x.yaml", "ca", "create", "--type", "leaf"])

    def test_version(self, parser, capsys):
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["-v"])
        assert exc_info.value.code == 0
        assert "pkicas 1.0.0" in capsys.readouterr().out


# ===========================================================================
# main()
# ===========================================================================


class TestMain:
    def test_missing_config_file(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["-c", str(tmp_path / "missing.yaml"), "--validate-only"])
        assert exc_info.value.code == 1
        assert "configuration file not found" in capsys.readouterr().err

    def test_invalid_config(self, tmp_path, capsys):
        path = _write(tmp_path, {"cas": {"backend": "cloudcas"}})
        with pytest.raises(SystemExit) as exc_info:
            main(["-c", path, "--validate-only"])
        assert exc_info.value.code == 1
        assert "certificate_authority" in capsys.readouterr().err

    def test_validate_only(self, tmp_config_file, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["-c", str(tmp_config_file), "--validate-only"])
        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert "Configuration OK (backend=cloudcas)" in out
        assert "projects/p/locations/l/certificateAuthorities/ca" in out

    def test_no_command_prints_help(self, tmp_config_file):
        with pytest.raises(SystemExit) as exc_info:
            main(["-c", str(tmp_config_file)])
        assert exc_info.value.code == 2

    def test_ca_without_subcommand(self, tmp_config_file, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["-c", str(tmp_config_file), "ca"])
        assert exc_info.value.code == 1
        assert "missing ca subcommand" in capsys.readouterr().err


# ===========================================================================
# ca subcommands
# ===========================================================================


class TestCaRoot:
    def test_remote_root(self, tmp_config_file, self_signed_factory, capsys):
        root = self_signed_factory("Remote Root")
        client = SimpleNamespace(
            get_certificate_authority=lambda *, request, timeout: SimpleNamespace(
                pem_ca_certificates=[encode_certificate(root)],
            ),
        )
        with patch(
            "pkicas.cas.cloudcas.new_certificate_authority_client",
            return_value=client,
        ):
            main(["-c", str(tmp_config_file), "ca", "root"])
        out = capsys.readouterr().out
        assert encode_certificate(root) in out
        assert "Root fingerprint (sha256):" in out

    def test_remote_failure(self, tmp_config_file, capsys):
        def fail(*, request, timeout):
            raise RuntimeError("permission denied")

        client = SimpleNamespace(get_certificate_authority=fail)
        with patch(
            "pkicas.cas.cloudcas.new_certificate_authority_client",
            return_value=client,
        ), pytest.raises(SystemExit) as exc_info:
            main(["-c", str(tmp_config_file), "ca", "root"])
        assert exc_info.value.code == 1
        assert "permission denied" in capsys.readouterr().err

    def test_softcas_has_no_remote_root(self, softcas_config, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["-c", softcas_config, "ca", "root"])
        assert exc_info.value.code == 1
        assert "cannot return root certificates" in capsys.readouterr().err


class TestCaTestSign:
    def test_softcas(self, softcas_config, capsys):
        main(["-c", softcas_config, "ca", "test-sign"])
        out = capsys.readouterr().out
        assert "Test signing OK" in out
        assert "chain:       1 certificate(s)" in out


class TestCaCreate:
    def test_softcas_root_with_key_out(self, softcas_config, tmp_path, capsys):
        key_out = tmp_path / "new-root.key"
        main(
            [
                "-c",
                softcas_config,
                "ca",
                "create",
                "--name",
                "Example Root",
                "--lifetime-days",
                "30",
                "--key-out",
                str(key_out),
            ],
        )
        out = capsys.readouterr().out
        assert "Created root authority: Example Root" in out
        end = "-----END CERTIFICATE-----"
        pem = out[out.index("-----BEGIN CERTIFICATE-----") : out.index(end) + len(end)]
        cert = x509.load_pem_x509_certificate(pem.encode("ascii"))
        assert cert.subject.rfc4514_string() == "CN=Example Root"
        assert stat.S_IMODE(key_out.stat().st_mode) == 0o600
        serialization.load_pem_private_key(key_out.read_bytes(), password=None)

    def test_softcas_intermediate_from_issuer(self, softcas_config, root_ca, capsys):
        issuer, _ = root_ca
        main(
            [
                "-c",
                softcas_config,
                "ca",
                "create",
                "--type",
                "intermediate",
                "--common-name",
                "Example Intermediate",
            ],
        )
        out = capsys.readouterr().out
        assert "Created intermediate authority: Example Intermediate" in out
        assert encode_certificate(issuer) in out

    def test_cloudcas_requires_creator_settings(self, tmp_config_file, capsys):
        """A creator config without a project is rejected before any remote call."""
        data = yaml.safe_load(tmp_config_file.read_text(encoding="utf-8"))
        data["cas"] = {"backend": "cloudcas", "is_creator": True, "location": "l"}
        tmp_config_file.write_text(yaml.safe_dump(data), encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main(["-c", str(tmp_config_file), "ca", "create"])
        assert exc_info.value.code == 1
        assert "project" in capsys.readouterr().err

    def test_key_out_created_owner_only(self, softcas_config, tmp_path, capsys):
        key_out = tmp_path / "existing.key"
        key_out.write_text("old", encoding="utf-8")
        key_out.chmod(0o644)
        with patch("pkicas.cli.commands.ca.os.open", wraps=os.open) as opened:
            main(["-c", softcas_config, "ca", "create", "--key-out", str(key_out)])
        capsys.readouterr()
        (call,) = [c for c in opened.call_args_list if str(c.args[0]) == str(key_out)]
        assert call.args[2] == 0o600
        assert stat.S_IMODE(key_out.stat().st_mode) == 0o600
        serialization.load_pem_private_key(key_out.read_bytes(), password=None)

    def test_cloudcas_intermediate_parent_by_name(
        self,
        tmp_config_file,
        self_signed_factory,
        capsys,
    ):
        """--parent is passed through by name; its certificate is not looked up."""
        sub, root = (encode_certificate(self_signed_factory(n)) for n in ("sub", "root"))
        sub_name = "projects/p/locations/l/certificateAuthorities/sub"
        parent_name = "projects/p/locations/l/certificateAuthorities/root"
        calls = []

        def record(method, response):
            def handler(*, request, timeout):
                calls.append((method, request))
                return response

            return handler

        def operation(result):
            return SimpleNamespace(result=lambda timeout=None: result)

        client = SimpleNamespace(
            get_certificate_authority=record("get_certificate_authority", None),
            create_certificate_authority=record(
                "create_certificate_authority",
                operation(SimpleNamespace(name=sub_name, pem_ca_certificates=[])),
            ),
            fetch_certificate_authority_csr=record(
                "fetch_certificate_authority_csr",
                SimpleNamespace(pem_csr="CSR"),
            ),
            create_certificate=record(
                "create_certificate",
                SimpleNamespace(pem_certificate=sub, pem_certificate_chain=[root]),
            ),
            activate_certificate_authority=record(
                "activate_certificate_authority",
                operation(SimpleNamespace(name=sub_name, pem_ca_certificates=[sub, root])),
            ),
        )
        data = yaml.safe_load(tmp_config_file.read_text(encoding="utf-8"))
        data["cas"] = {
            "backend": "cloudcas",
            "is_creator": True,
            "project": "p",
            "location": "l",
        }
        tmp_config_file.write_text(yaml.safe_dump(data), encoding="utf-8")

        with patch(
            "pkicas.cas.cloudcas.new_certificate_authority_client",
            return_value=client,
        ):
            main(
                [
                    "-c",
                    str(tmp_config_file),
                    "ca",
                    "create",
                    "--type",
                    "intermediate",
                    "--name",
                    "sub",
                    "--parent",
                    parent_name,
                ],
            )

        assert "Created intermediate authority: " + sub_name in capsys.readouterr().out
        methods = [m for m, _ in calls]
        assert "get_certificate_authority" not in methods
        (sign,) = [r for m, r in calls if m == "create_certificate"]
        assert sign["parent"] == parent_name
