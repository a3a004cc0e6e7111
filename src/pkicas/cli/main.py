"""PKICAS command-line entry point.

Usage::

    pkicas -c /etc/pkicas/config.yaml --validate-only
    pkicas -c config.yaml ca root
    pkicas -c config.yaml ca create --type root --name "Example"
    pkicas -c config.yaml ca create --type intermediate --parent projects/p/locations/l/certificateAuthorities/root
    pkicas -c config.yaml ca test-sign
    python -m pkicas -c config.yaml ca root
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

log = logging.getLogger(__name__)


def _get_version() -> str:
    from pkicas import __version__

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pkicas",
        description="PKICAS - pluggable certificate authority service tooling",
    )
    parser.add_argument(
        "-c",
        "--config",
        required=True,
        metavar="PATH",
        help="Path to the configuration file (YAML or JSON).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration file and exit.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # ca
    ca_parser = subparsers.add_parser("ca", help="Certificate authority management")
    ca_sub = ca_parser.add_subparsers(dest="ca_command")
    ca_sub.add_parser("root", help="Print the root certificate of the configured authority")
    ca_sub.add_parser("test-sign", help="Issue a short-lived certificate for an ephemeral key")

    create = ca_sub.add_parser("create", help="Create a root or intermediate authority")
    create.add_argument(
        "--type",
        choices=("root", "intermediate"),
        default="root",
        dest="ca_type",
        help="Authority type (default: root)",
    )
    create.add_argument("--name", default="", help="Authority identifier")
    create.add_argument(
        "--parent",
        default="",
        help="Resource name of the parent authority (intermediate only)",
    )
    create.add_argument(
        "--lifetime-days",
        type=int,
        default=3650,
        help="Authority lifetime in days (default: 3650)",
    )
    create.add_argument("--common-name", default="", help="Subject common name")
    create.add_argument(
        "--key-out",
        default="",
        metavar="PATH",
        help="Write a locally generated authority key to PATH (softcas only)",
    )

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    print(f"error: {message}", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, dispatches."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # -- resolve config path ---
    config_path = Path(args.config)
    if not config_path.is_file():
        _print_error(f"configuration file not found: {config_path}")
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    # -- load & validate config ---
    from pkicas.config import ConfigValidationError, load_config

    try:
        settings = load_config(config_path)
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(1)
    except Exception as exc:
        if args.debug:
            raise
        _print_error(f"failed to load configuration: {exc}")
        sys.exit(1)

    # -- replace bootstrap logging with structured logging ---
    from pkicas.logging import configure_logging

    configure_logging(settings.logging)

    if args.validate_only:
        _print_settings_summary(settings)
        sys.exit(0)

    # -- dispatch subcommand ---
    if args.command == "ca":
        from pkicas.cli.commands.ca import run_ca

        run_ca(settings, args)
    else:
        parser.print_help(sys.stderr)
        sys.exit(2)


def _print_settings_summary(settings) -> None:
    """Print a short summary of the loaded configuration."""
    cas = settings.cas
    print(f"Configuration OK (backend={cas.backend})")
    if cas.backend == "cloudcas":
        print(f"  certificate_authority: {cas.certificate_authority or '-'}")
        print(f"  project/location:      {cas.project or '-'}/{cas.location or '-'}")
        print(f"  is_creator:            {cas.is_creator}")
    elif cas.backend == "softcas":
        print(f"  issuer_cert_path:      {cas.soft.issuer_cert_path or '-'}")
    print(f"  logging:               {settings.logging.level} ({settings.logging.format})")
