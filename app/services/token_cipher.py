"""Versioned AES-GCM encryption for tokens stored at rest.

Payloads look like ``<version>:<nonce>.<tag>.<ciphertext>`` with every binary
part base64 encoded. The version prefix selects the key used to decrypt, so
keys can be rotated by adding a new entry to the ring and pointing the
active version at it; older payloads keep decrypting as long as their key
stays in the ring. Payloads written before versioning was introduced carry
no prefix and are tried against every key in ring order.
"""

from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass
from typing import Optional, Sequence

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.core.config import SecuritySettings
from app.core.errors import (
    ConfigurationError,
    DecryptionFailedError,
    InvalidTokenFormatError,
    UnknownKeyVersionError,
)

KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16


@dataclass(frozen=True)
class KeyEntry:
    version: str
    key: bytes

    def __repr__(self) -> str:
        return f"KeyEntry(version={self.version!r})"


class KeyRing:
    """Ordered collection of key versions with one active entry."""

    def __init__(self, entries: Sequence[KeyEntry], active_version: Optional[str] = None) -> None:
        if not entries:
            raise ConfigurationError("Token encryption key ring is empty.")
        self._entries = tuple(entries)
        self._by_version = {entry.version: entry for entry in self._entries}
        if len(self._by_version) != len(self._entries):
            raise ConfigurationError("Token encryption key ring has duplicate versions.")
        if active_version:
            if active_version not in self._by_version:
                raise ConfigurationError(
                    f"Active key version {active_version} not found in key ring."
                )
            self._active = self._by_version[active_version]
        else:
            self._active = self._entries[0]

    @classmethod
    def parse(cls, raw: Optional[str], active_version: Optional[str] = None) -> "KeyRing":
        """Build a ring from a comma separated ``version:base64key`` list."""
        if not raw or not raw.strip():
            raise ConfigurationError("Missing token encryption key ring (GHL_TOKEN_ENC_KEYRING).")

        entries: list[KeyEntry] = []
        for chunk in raw.split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            version, sep, key_b64 = chunk.partition(":")
            version = version.strip()
            key_b64 = key_b64.strip()
            if not sep or not version or not key_b64:
                raise ConfigurationError("Key ring entries must use the format version:base64key.")
            try:
                key = _decode_key(key_b64)
            except (binascii.Error, ValueError) as exc:
                raise ConfigurationError(f"Key {version} is not valid base64.") from exc
            if len(key) != KEY_LENGTH:
                raise ConfigurationError(f"Key {version} must decode to {KEY_LENGTH} bytes.")
            entries.append(KeyEntry(version=version, key=key))

        return cls(entries, active_version=active_version or None)

    @classmethod
    def from_settings(cls, settings: SecuritySettings) -> "KeyRing":
        return cls.parse(settings.token_keyring, settings.token_active_key)

    @property
    def active(self) -> KeyEntry:
        return self._active

    @property
    def versions(self) -> tuple[str, ...]:
        return tuple(entry.version for entry in self._entries)

    def get(self, version: str) -> Optional[KeyEntry]:
        return self._by_version.get(version)

    def __iter__(self):
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


def _decode_key(text: str) -> bytes:
    """Decode standard or URL-safe base64, ignoring whitespace and missing padding."""
    text = "".join(text.split()).rstrip("=").replace("-", "+").replace("_", "/")
    return base64.b64decode(text + "=" * (-len(text) % 4), validate=True)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidTokenFormatError("Encrypted token contains invalid base64.") from exc


class TokenCipherService:
    """Encrypt and decrypt sensitive strings with a versioned key ring."""

    def __init__(self, *, keyring: KeyRing) -> None:
        self._keyring = keyring

    @classmethod
    def from_settings(cls, settings: SecuritySettings) -> "TokenCipherService":
        return cls(keyring=KeyRing.from_settings(settings))

    @property
    def active_version(self) -> str:
        return self._keyring.active.version

    def encrypt(self, plaintext: str) -> str:
        """Encrypt with the active key under a fresh random nonce."""
        entry = self._keyring.active
        nonce = os.urandom(NONCE_LENGTH)
        sealed = AESGCM(entry.key).encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{entry.version}:{_b64(nonce)}.{_b64(tag)}.{_b64(ciphertext)}"

    def decrypt(self, payload: str) -> str:
        """Decrypt a versioned or legacy payload and return the plaintext."""
        version, sep, body = payload.partition(":")
        if sep:
            entry = self._keyring.get(version)
            if entry is None:
                raise UnknownKeyVersionError(f"Unknown token key version {version}.")
            nonce, sealed = self._split(body)
            try:
                return self._open(entry.key, nonce, sealed)
            except InvalidTag as exc:
                raise DecryptionFailedError(
                    f"Failed to decrypt token with key version {version}."
                ) from exc

        nonce, sealed = self._split(payload)
        for entry in self._keyring:
            try:
                return self._open(entry.key, nonce, sealed)
            except InvalidTag:
                continue
        raise DecryptionFailedError("Unable to decrypt token with available keys.")

    def reencrypt(self, payload: str) -> str:
        """Return ``payload`` re-encrypted under the active key."""
        return self.encrypt(self.decrypt(payload))

    def needs_rotation(self, payload: str) -> bool:
        version, sep, _ = payload.partition(":")
        return not sep or version != self.active_version

    @staticmethod
    def _split(body: str) -> tuple[bytes, bytes]:
        parts = body.split(".")
        if len(parts) != 3 or not parts[0] or not parts[1]:
            raise InvalidTokenFormatError("Invalid encrypted token format.")
        nonce, tag, ciphertext = (_unb64(part) for part in parts)
        if len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
            raise InvalidTokenFormatError("Invalid encrypted token format.")
        return nonce, ciphertext + tag

    @staticmethod
    def _open(key: bytes, nonce: bytes, sealed: bytes) -> str:
        plaintext = AESGCM(key).decrypt(nonce, sealed, None)
        return plaintext.decode("utf-8")


__all__ = ["KeyEntry", "KeyRing", "TokenCipherService"]
