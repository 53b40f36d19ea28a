"""Pre-flight check for the token service's ``.env`` file.

Loads the file into ``AppSettings``, parses the token encryption key ring
and reports the storage backend and auth mode the service would start with.
The ``record`` and ``verify`` commands additionally pin the file's SHA256 so
an unreviewed edit to credentials or keys is caught before a restart::

    python -m scripts.check_env record --env-file /opt/ghl-tokens/.env \
        --hash-file /opt/ghl-tokens/.env.sha256
    python -m scripts.check_env verify --env-file /opt/ghl-tokens/.env \
        --hash-file /opt/ghl-tokens/.env.sha256

Pass ``--strict`` in production to fail when ``INTERNAL_API_KEY`` is unset.
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path

from pydantic import ValidationError

from app.core.config import AppSettings, _load_env_file
from app.core.errors import ConfigurationError
from app.services.token_cipher import KeyRing

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _digest(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _inspect(env_file: Path, *, strict: bool) -> None:
    """Load ``env_file`` and raise if the service could not start with it."""
    _load_env_file(str(env_file))
    settings = AppSettings()  # type: ignore[call-arg]
    keyring = KeyRing.from_settings(settings.security)

    print(f"Environment:   {settings.environment}")
    print(f"Token store:   {settings.storage.backend}")
    print(f"Key ring:      {', '.join(keyring.versions)} (active {keyring.active.version})")
    if settings.security.internal_api_key:
        print(f"Internal auth: shared secret via {settings.security.internal_auth_header}")
    elif strict:
        raise ConfigurationError("INTERNAL_API_KEY must be set in strict mode.")
    else:
        print("Internal auth: DISABLED (INTERNAL_API_KEY unset)")


def _record(env_file: Path, hash_file: Path) -> int:
    checksum = _digest(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum {checksum} to {hash_file}")
    return EXIT_OK


def _verify(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"No checksum baseline at {hash_file}; run 'record' first.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _digest(env_file)
    if expected != actual:
        print(
            f"Checksum mismatch for {env_file}: expected {expected}, found {actual}. "
            "Review the change before restarting the token service.",
            file=sys.stderr,
        )
        return EXIT_CHECKSUM_ERROR
    print("Checksum OK.")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Validate token service configuration.")
    commands = parser.add_subparsers(dest="command", required=True)
    for name, help_text, needs_hash in (
        ("check", "Validate settings only.", False),
        ("record", "Validate settings and write a checksum baseline.", True),
        ("verify", "Validate settings and compare against the baseline.", True),
    ):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("--env-file", type=Path, default=Path(".env"))
        sub.add_argument(
            "--strict",
            action="store_true",
            help="Treat a missing INTERNAL_API_KEY as an error.",
        )
        if needs_hash:
            sub.add_argument("--hash-file", type=Path, required=True)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    if not env_file.exists():
        print(f"Environment file {env_file} does not exist.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    try:
        _inspect(env_file, strict=args.strict)
    except ValidationError as exc:
        print(f"Invalid settings:\n{exc.json(indent=2)}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR
    except ConfigurationError as exc:
        print(f"Configuration error: {exc.message}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    if args.command == "record":
        return _record(env_file, args.hash_file)
    if args.command == "verify":
        return _verify(env_file, args.hash_file)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
