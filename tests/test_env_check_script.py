"""Tests for the environment drift detection script."""

from __future__ import annotations

from pathlib import Path

import pytest

from scripts import check_env

REQUIRED_ENV_KEYS = [
    "GHL_CLIENT_ID",
    "GHL_CLIENT_SECRET",
    "GHL_REDIRECT_URI",
    "GHL_TOKEN_ENC_KEYRING",
    "GHL_TOKEN_ENC_KEY_ACTIVE",
    "GHL_LOCATION_TOKEN_TTL_SECONDS",
    "INTERNAL_API_KEY",
]

VALID_KEYRING = "v1:YWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWFhYWE="


def _write_env(env_path: Path, **values: str) -> None:
    contents = "\n".join(f"{key}={value}" for key, value in values.items())
    env_path.write_text(contents + "\n", encoding="utf-8")


def _clear_required_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # setenv first so monkeypatch restores values the .env loader writes.
    for key in REQUIRED_ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


@pytest.mark.parametrize("command", ["record", "verify", "check"])
def test_main_requires_existing_env_file(tmp_path: Path, command: str) -> None:
    env_file = tmp_path / ".missing-env"
    hash_file = tmp_path / ".env.sha256"

    argv = [command, "--env-file", str(env_file)]
    if command != "check":
        argv.extend(["--hash-file", str(hash_file)])

    exit_code = check_env.main(argv)
    assert exit_code == check_env.EXIT_RUNTIME_ERROR


def test_record_and_verify_detects_mismatched_checksum(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    hash_file = tmp_path / ".env.sha256"

    _clear_required_env(monkeypatch)
    _write_env(
        env_file,
        GHL_CLIENT_ID="abc",
        GHL_CLIENT_SECRET="secret",
        GHL_REDIRECT_URI="https://example.com/oauth/callback",
        GHL_TOKEN_ENC_KEYRING=VALID_KEYRING,
        INTERNAL_API_KEY="internal",
    )

    exit_code = check_env.main(
        [
            "record",
            "--env-file",
            str(env_file),
            "--hash-file",
            str(hash_file),
        ]
    )
    assert exit_code == check_env.EXIT_OK
    baseline = hash_file.read_text(encoding="utf-8").strip()
    assert baseline

    _clear_required_env(monkeypatch)
    exit_code = check_env.main(
        [
            "verify",
            "--env-file",
            str(env_file),
            "--hash-file",
            str(hash_file),
        ]
    )
    assert exit_code == check_env.EXIT_OK

    _write_env(
        env_file,
        GHL_CLIENT_ID="abc",
        GHL_CLIENT_SECRET="different",
        GHL_REDIRECT_URI="https://example.com/oauth/callback",
        GHL_TOKEN_ENC_KEYRING=VALID_KEYRING,
        INTERNAL_API_KEY="internal",
    )

    _clear_required_env(monkeypatch)
    exit_code = check_env.main(
        [
            "verify",
            "--env-file",
            str(env_file),
            "--hash-file",
            str(hash_file),
        ]
    )
    assert exit_code == check_env.EXIT_CHECKSUM_ERROR


@pytest.mark.parametrize(
    "keyring",
    [
        "",
        "v1:c2hvcnQ=",
        "missing-separator",
    ],
)
def test_validation_failure_for_bad_keyring(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, keyring: str
) -> None:
    env_file = tmp_path / ".env"

    _clear_required_env(monkeypatch)
    _write_env(
        env_file,
        GHL_CLIENT_ID="abc",
        GHL_TOKEN_ENC_KEYRING=keyring,
    )

    exit_code = check_env.main(["check", "--env-file", str(env_file)])
    assert exit_code == check_env.EXIT_VALIDATION_ERROR


def test_validation_failure_for_invalid_values(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"

    _clear_required_env(monkeypatch)
    _write_env(
        env_file,
        GHL_TOKEN_ENC_KEYRING=VALID_KEYRING,
        GHL_LOCATION_TOKEN_TTL_SECONDS="-5",
    )

    exit_code = check_env.main(["check", "--env-file", str(env_file)])
    assert exit_code == check_env.EXIT_VALIDATION_ERROR


def test_unknown_active_key_is_reported(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"

    _clear_required_env(monkeypatch)
    _write_env(
        env_file,
        GHL_TOKEN_ENC_KEYRING=VALID_KEYRING,
        GHL_TOKEN_ENC_KEY_ACTIVE="v2",
    )

    exit_code = check_env.main(["check", "--env-file", str(env_file)])
    assert exit_code == check_env.EXIT_VALIDATION_ERROR


@pytest.mark.parametrize(
    ("strict", "expected"),
    [(False, check_env.EXIT_OK), (True, check_env.EXIT_VALIDATION_ERROR)],
)
def test_strict_mode_requires_internal_key(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, strict: bool, expected: int
) -> None:
    env_file = tmp_path / ".env"

    _clear_required_env(monkeypatch)
    _write_env(env_file, GHL_TOKEN_ENC_KEYRING=VALID_KEYRING)

    argv = ["check", "--env-file", str(env_file)]
    if strict:
        argv.append("--strict")
    assert check_env.main(argv) == expected
