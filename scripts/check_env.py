"""Utility for verifying that required environment configuration is intact.

The tool performs two main checks:

1. It loads every settings group (Gmail, Plaid, security, storage, scheduler)
   from the provided ``.env`` file and reports each missing or malformed
   variable by name before the API or the scheduler start failing.
2. It can record and verify a checksum for the ``.env`` file so unexpected
   edits are detected.

Example usages::

    python -m scripts.check_env record --env-file /opt/pds/.env \
        --hash-file /opt/pds/.env.sha256

    python -m scripts.check_env verify --env-file /opt/pds/.env \
        --hash-file /opt/pds/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError as SettingsValidationError
from pydantic_settings import BaseSettings

from pds.core.config import (
    AppSettings,
    GmailSettings,
    PlaidSettings,
    SchedulerSettings,
    SecuritySettings,
    StorageSettings,
    _load_env_file,
)

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5

_SETTINGS_GROUPS: tuple[type[BaseSettings], ...] = (
    GmailSettings,
    PlaidSettings,
    SecuritySettings,
    StorageSettings,
    SchedulerSettings,
)


def _compute_hash(env_file: Path) -> str:
    """Return the SHA256 checksum for the target environment file."""
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _collect_problems(env_file: Path) -> list[str]:
    """Load each settings group and describe every variable that failed."""
    _load_env_file(str(env_file))
    problems: list[str] = []
    for group in _SETTINGS_GROUPS:
        try:
            group()
        except SettingsValidationError as exc:
            for error in exc.errors():
                variable = ".".join(str(part) for part in error["loc"]) or group.__name__
                problems.append(f"{group.__name__}: {variable}: {error['msg']}")
    if not problems:
        AppSettings()  # type: ignore[call-arg]
    return problems


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
        description="Validate data store settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_env_file(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )

    def add_hash_file(subparser: argparse.ArgumentParser, help_text: str) -> None:
        subparser.add_argument("--hash-file", required=True, type=Path, help=help_text)

    record_parser = subparsers.add_parser(
        "record", help="Validate settings and store the checksum baseline."
    )
    add_env_file(record_parser)
    add_hash_file(record_parser, "Location to write the checksum baseline.")

    verify_parser = subparsers.add_parser(
        "verify", help="Validate settings and compare the checksum with the baseline."
    )
    add_env_file(verify_parser)
    add_hash_file(verify_parser, "Location of the previously recorded checksum baseline.")

    check_parser = subparsers.add_parser(
        "check", help="Validate settings without touching any checksum files."
    )
    add_env_file(check_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    if not env_file.exists():
        print(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    try:
        problems = _collect_problems(env_file)
    except SettingsValidationError as exc:
        problems = [str(exc)]
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    if problems:
        print("Settings validation failed:", file=sys.stderr)
        for problem in problems:
            print(f"  - {problem}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: EXIT_OK,
    }
    return handlers[args.command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
