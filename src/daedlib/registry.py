"""Persistent registry of named connection profiles."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import (
    CredentialCorruptError,
    DecryptionError,
    DuplicateNameError,
    InvalidNameError,
    NotFoundError,
    RegistryError,
)
from .vault import CredentialVault, EncryptedSecret

logger = logging.getLogger(__name__)

REGISTRY_VERSION = 1


@dataclass(frozen=True)
class ProfileInputs:
    """Everything needed to create a profile; ``name`` may be left to the registry."""

    host: str
    port: int
    database: str
    username: str
    password: str
    name: Optional[str] = None


@dataclass(frozen=True)
class ConnectionProfile:
    name: str
    host: str
    port: int
    database: str
    username: str
    encrypted_password: EncryptedSecret
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "username": self.username,
            "password": self.encrypted_password.to_dict(),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ConnectionProfile":
        try:
            return cls(
                name=str(raw["name"]),
                host=str(raw["host"]),
                port=int(raw["port"]),
                database=str(raw["database"]),
                username=str(raw["username"]),
                encrypted_password=EncryptedSecret.from_dict(raw.get("password") or {}),
                created_at=str(raw.get("created_at") or ""),
            )
        except DecryptionError:
            # Keep the record listable; resolve() reports the broken secret.
            return cls(
                name=str(raw["name"]),
                host=str(raw["host"]),
                port=int(raw["port"]),
                database=str(raw["database"]),
                username=str(raw["username"]),
                encrypted_password=EncryptedSecret(ciphertext=b"", nonce=b""),
                created_at=str(raw.get("created_at") or ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RegistryError(f"malformed connection record: {e}") from e

    def public_dict(self) -> Dict[str, Any]:
        """Profile fields that are safe to print."""
        return {
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "username": self.username,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class ResolvedProfile:
    name: str
    host: str
    port: int
    database: str
    username: str
    password: str

    def __repr__(self) -> str:
        return (
            f"ResolvedProfile(name={self.name!r}, host={self.host!r}, port={self.port}, "
            f"database={self.database!r}, username={self.username!r}, password='***')"
        )


def derive_name(host: str, database: str) -> str:
    return f"{database}@{host}"


class ConnectionRegistry:
    """CRUD over connection profiles stored in a single JSON file.

    Every mutation reads the whole file, applies the change in memory and
    writes the whole file back through a temp file + rename.
    """

    def __init__(self, path: Path, vault: CredentialVault) -> None:
        self.path = path
        self.vault = vault
        self._lock = threading.Lock()

    def _load(self) -> List[ConnectionProfile]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            raise RegistryError(f"registry file {self.path} is not valid JSON: {e}") from e
        except OSError as e:
            raise RegistryError(f"cannot read registry file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise RegistryError(f"registry file {self.path} must hold a JSON object")
        records = data.get("connections") or []
        if isinstance(records, dict):
            # Older files keyed records by name
            records = list(records.values())
        return [ConnectionProfile.from_dict(r) for r in records]

    def _save(self, profiles: List[ConnectionProfile]) -> None:
        parent = self.path.parent
        if not parent.exists():
            parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            logger.info("Created data directory: %s", parent)

        content = json.dumps(
            {
                "version": REGISTRY_VERSION,
                "connections": [p.to_dict() for p in profiles],
            },
            indent=2,
        )

        try:
            # Temp file in the same directory so the rename stays atomic
            fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix=".config_", dir=parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                    f.write("\n")
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_path, self.path)
            except Exception:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise
        except OSError as e:
            logger.error("Failed to save registry to %s: %s", self.path, e)
            raise RegistryError(f"cannot write registry file {self.path}: {e}") from e

        logger.info("Saved %d connections to %s", len(profiles), self.path)

    def list(self) -> List[ConnectionProfile]:
        return self._load()

    def names(self) -> List[str]:
        return [p.name for p in self._load()]

    def get(self, name: str) -> ConnectionProfile:
        for profile in self._load():
            if profile.name == name:
                return profile
        raise NotFoundError(f"Connection '{name}' not found.")

    def add(self, inputs: ProfileInputs) -> ConnectionProfile:
        with self._lock:
            profiles = self._load()
            taken = {p.name for p in profiles}

            if inputs.name is not None:
                name = inputs.name.strip()
                if not name:
                    raise InvalidNameError("Connection name must not be empty.")
                if name in taken:
                    raise DuplicateNameError(f"Connection '{name}' already exists.")
            else:
                base = derive_name(inputs.host, inputs.database)
                name = base
                suffix = 2
                while name in taken:
                    name = f"{base}-{suffix}"
                    suffix += 1

            self.vault.initialize()
            profile = ConnectionProfile(
                name=name,
                host=inputs.host,
                port=inputs.port,
                database=inputs.database,
                username=inputs.username,
                encrypted_password=self.vault.encrypt(inputs.password),
                created_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            )
            profiles.append(profile)
            self._save(profiles)

        logger.info("Added connection '%s' (%s:%d/%s)", name, inputs.host, inputs.port, inputs.database)
        return profile

    def remove(self, name: str) -> None:
        with self._lock:
            profiles = self._load()
            remaining = [p for p in profiles if p.name != name]
            if len(remaining) == len(profiles):
                raise NotFoundError(f"Connection '{name}' not found.")
            self._save(remaining)
        logger.info("Removed connection '%s'", name)

    def resolve(self, name: str) -> ResolvedProfile:
        """Return the profile with its password decrypted, for connecting."""
        profile = self.get(name)
        self.vault.initialize()
        try:
            password = self.vault.decrypt(profile.encrypted_password)
        except DecryptionError as e:
            logger.warning("Stored password for '%s' failed authentication", name)
            raise CredentialCorruptError(
                f"Stored password for '{name}' could not be decrypted"
            ) from e
        return ResolvedProfile(
            name=profile.name,
            host=profile.host,
            port=profile.port,
            database=profile.database,
            username=profile.username,
            password=password,
        )
