"""Utility for verifying that the Jira integration's environment is intact.

The tool performs two main checks:

1. It loads ``AppSettings`` from the provided ``.env`` file and builds the
   credential vault and OAuth client configuration, surfacing missing client
   credentials or encryption keys before the service refuses to start.
2. It can record and verify a checksum for the ``.env`` file so unexpected
   edits are detected.

Example usages::

    # Validate settings and record the expected checksum.
    python -m scripts.check_env record --env-file /opt/jira-bridge/.env \
        --hash-file /opt/jira-bridge/.env.sha256

    # Run later (e.g. from cron/systemd) to alert on drift.
    python -m scripts.check_env verify --env-file /opt/jira-bridge/.env \
        --hash-file /opt/jira-bridge/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from jira_bridge.core.config import AppSettings, ConfigurationError, load_env_file
from jira_bridge.clients import AtlassianOAuthClient
from jira_bridge.services import CredentialVault

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_CONFIGURATION_ERROR = 4
EXIT_RUNTIME_ERROR = 5


def _compute_hash(env_file: Path) -> str:
    """Return the SHA256 checksum for the target environment file."""
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _validate_settings(env_file: Path) -> list[str]:
    """
    Load settings from ``env_file`` and check the integration can be built.

    Returns warnings for configurations that work but should be fixed.
    """
    load_env_file(str(env_file))
    settings = AppSettings()  # type: ignore[call-arg]
    warnings: list[str] = []

    if not AtlassianOAuthClient(settings.atlassian, settings.oauth).is_configured:
        raise ConfigurationError(
            "ATLASSIAN_CLIENT_ID and ATLASSIAN_CLIENT_SECRET must both be set."
        )

    secret = settings.security.credential_encryption_key
    if not secret:
        if not settings.security.session_secret:
            raise ConfigurationError(
                "Set CREDENTIAL_ENCRYPTION_KEY (or at least SESSION_SECRET)."
            )
        warnings.append(
            "CREDENTIAL_ENCRYPTION_KEY is unset; tokens are encrypted with a key "
            "derived from SESSION_SECRET."
        )
        secret = settings.security.session_secret
    CredentialVault(secret=secret, salt=settings.security.encryption_salt)

    if "offline_access" not in settings.oauth.scopes:
        warnings.append(
            "OAUTH_SCOPES lacks offline_access; Atlassian will not issue refresh "
            "tokens and users must reconnect when the access token expires."
        )
    return warnings


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    """Persist the current checksum to ``hash_file``."""
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    """Compare the current checksum to the recorded baseline."""
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Investigate recent changes before restarting the service.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate Jira integration settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text, needs_hash in (
        ("record", "Validate settings and store the checksum baseline.", True),
        ("verify", "Validate settings and compare the checksum with the baseline.", True),
        ("check", "Validate settings without touching any checksum files.", False),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )
        if needs_hash:
            subparser.add_argument(
                "--hash-file",
                required=True,
                type=Path,
                help="Location of the checksum baseline.",
            )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    env_file: Path = args.env_file

    if not env_file.exists():
        print(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    try:
        warnings = _validate_settings(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Malformed values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION_ERROR

    for warning in warnings:
        print(f"warning: {warning}", file=sys.stderr)

    command: str = args.command
    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: EXIT_OK,
    }
    return handlers[command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
