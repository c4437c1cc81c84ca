"""At-rest encryption for saved connection passwords.

Passwords are sealed with AES-256-GCM under a master key that is generated
once per installation and kept in a raw key file readable only by its owner.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import DecryptionError, KeyStorageError

logger = logging.getLogger(__name__)

KEY_SIZE = 32  # AES-256
NONCE_SIZE = 12  # 96-bit GCM nonce


@dataclass(frozen=True)
class EncryptedSecret:
    """Ciphertext (with GCM tag) and the nonce it was sealed with."""

    ciphertext: bytes
    nonce: bytes

    def to_dict(self) -> Dict[str, str]:
        return {
            "ciphertext": base64.b64encode(self.ciphertext).decode("ascii"),
            "nonce": base64.b64encode(self.nonce).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, str]) -> "EncryptedSecret":
        try:
            return cls(
                ciphertext=base64.b64decode(raw["ciphertext"], validate=True),
                nonce=base64.b64decode(raw["nonce"], validate=True),
            )
        except (KeyError, TypeError, binascii.Error) as e:
            raise DecryptionError("stored secret is malformed") from e


class CredentialVault:
    """Encrypt and decrypt secrets with the installation's master key."""

    def __init__(self, key_path: Path) -> None:
        self.key_path = key_path
        self._key: Optional[bytes] = None

    @property
    def initialized(self) -> bool:
        return self._key is not None

    def initialize(self) -> None:
        """Load the master key, generating and persisting it on first use."""
        if self._key is not None:
            return
        if self.key_path.exists():
            self._key = self._read_key()
        else:
            self._key = self._create_key()

    def _read_key(self) -> bytes:
        try:
            data = self.key_path.read_bytes()
        except OSError as e:
            raise KeyStorageError(f"cannot read key file {self.key_path}: {e}") from e
        if len(data) != KEY_SIZE:
            raise KeyStorageError(
                f"key file {self.key_path} has {len(data)} bytes, expected {KEY_SIZE}"
            )
        logger.debug("Loaded master key from %s", self.key_path)
        return data

    def _create_key(self) -> bytes:
        key = AESGCM.generate_key(bit_length=KEY_SIZE * 8)
        try:
            self.key_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            # O_EXCL: never clobber a key another invocation just wrote
            fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            return self._read_key()
        except OSError as e:
            raise KeyStorageError(f"cannot create key file {self.key_path}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(key)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise KeyStorageError(f"cannot write key file {self.key_path}: {e}") from e

        logger.info("Generated new master key at %s", self.key_path)
        return key

    def _require_key(self) -> bytes:
        if self._key is None:
            raise KeyStorageError("vault used before initialize()")
        return self._key

    def encrypt(self, plaintext: str) -> EncryptedSecret:
        nonce = secrets.token_bytes(NONCE_SIZE)
        ciphertext = AESGCM(self._require_key()).encrypt(nonce, plaintext.encode("utf-8"), None)
        return EncryptedSecret(ciphertext=ciphertext, nonce=nonce)

    def decrypt(self, secret: EncryptedSecret) -> str:
        aesgcm = AESGCM(self._require_key())
        try:
            plain = aesgcm.decrypt(secret.nonce, secret.ciphertext, None)
            return plain.decode("utf-8")
        except (InvalidTag, ValueError) as e:
            # ValueError covers bad nonce lengths and undecodable plaintext
            raise DecryptionError("decryption failed") from e
