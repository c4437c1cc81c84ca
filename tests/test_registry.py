from __future__ import annotations

import base64
import json

import pytest

from daedlib.errors import (
    CredentialCorruptError,
    DuplicateNameError,
    InvalidNameError,
    NotFoundError,
    RegistryError,
)
from daedlib.registry import ConnectionRegistry, ProfileInputs, derive_name
from daedlib.vault import CredentialVault


def _inputs(**overrides) -> ProfileInputs:
    fields = dict(host="h", port=5432, database="d", username="u", password="p")
    fields.update(overrides)
    return ProfileInputs(**fields)


def test_add_list_remove(registry):
    assert registry.list() == []

    profile = registry.add(_inputs(name="mydb"))
    assert profile.name == "mydb"
    assert profile.created_at.endswith("Z")

    listed = registry.list()
    assert [p.name for p in listed] == ["mydb"]
    assert (listed[0].host, listed[0].port, listed[0].database, listed[0].username) == ("h", 5432, "d", "u")

    registry.remove("mydb")
    assert registry.names() == []


def test_names_are_unique(registry):
    registry.add(_inputs(name="mydb"))
    with pytest.raises(DuplicateNameError, match="already exists"):
        registry.add(_inputs(name="mydb", host="other"))
    assert registry.names() == ["mydb"]


def test_generated_names_avoid_collisions(registry):
    first = registry.add(_inputs())
    second = registry.add(_inputs())
    third = registry.add(_inputs())
    assert first.name == derive_name("h", "d") == "d@h"
    assert second.name == "d@h-2"
    assert third.name == "d@h-3"


def test_remove_unknown_name(registry):
    with pytest.raises(NotFoundError, match="Connection 'ghost' not found."):
        registry.remove("ghost")


def test_get_unknown_name(registry):
    with pytest.raises(NotFoundError):
        registry.get("ghost")


def test_password_never_stored_in_plaintext(registry):
    registry.add(_inputs(name="mydb", password="correct-horse-battery"))
    raw = registry.path.read_text()
    assert "correct-horse-battery" not in raw

    record = json.loads(raw)["connections"][0]
    assert set(record["password"]) == {"ciphertext", "nonce"}
    assert "password" not in registry.get("mydb").public_dict()


def test_resolve_decrypts(saved_registry):
    resolved = saved_registry.resolve("mydb")
    assert (resolved.host, resolved.port, resolved.database) == ("h", 5432, "d")
    assert resolved.username == "u"
    assert resolved.password == "p"
    assert "'p'" not in repr(resolved)


def test_tampered_ciphertext_is_reported_as_corrupt(saved_registry):
    data = json.loads(saved_registry.path.read_text())
    secret = data["connections"][0]["password"]
    raw = bytearray(base64.b64decode(secret["ciphertext"]))
    raw[0] ^= 0x01
    secret["ciphertext"] = base64.b64encode(bytes(raw)).decode("ascii")
    saved_registry.path.write_text(json.dumps(data))

    assert saved_registry.names() == ["mydb"]
    with pytest.raises(CredentialCorruptError, match="could not be decrypted"):
        saved_registry.resolve("mydb")


def test_garbled_secret_still_lists(saved_registry):
    data = json.loads(saved_registry.path.read_text())
    data["connections"][0]["password"] = {"ciphertext": "%%%", "nonce": "%%%"}
    saved_registry.path.write_text(json.dumps(data))

    assert saved_registry.names() == ["mydb"]
    with pytest.raises(CredentialCorruptError):
        saved_registry.resolve("mydb")


def test_new_key_cannot_read_old_passwords(saved_registry, daedalus_home):
    (daedalus_home / "key.bin").unlink()
    fresh = ConnectionRegistry(saved_registry.path, CredentialVault(daedalus_home / "key.bin"))
    with pytest.raises(CredentialCorruptError):
        fresh.resolve("mydb")


def test_reload_from_disk(saved_registry, daedalus_home):
    reopened = ConnectionRegistry(saved_registry.path, CredentialVault(daedalus_home / "key.bin"))
    assert reopened.resolve("mydb").password == "p"


def test_no_temp_files_left_behind(registry):
    for i in range(3):
        registry.add(_inputs(name=f"c{i}"))
    registry.remove("c1")
    leftovers = [p.name for p in registry.path.parent.iterdir() if p.name.startswith(".config_")]
    assert leftovers == []
    assert registry.names() == ["c0", "c2"]


def test_invalid_json_is_a_registry_error(registry):
    registry.path.parent.mkdir(parents=True, exist_ok=True)
    registry.path.write_text("{not json")
    with pytest.raises(RegistryError, match="not valid JSON"):
        registry.list()


def test_legacy_name_keyed_layout(registry, vault):
    secret = vault.encrypt("p").to_dict()
    registry.path.parent.mkdir(parents=True, exist_ok=True)
    registry.path.write_text(json.dumps({
        "connections": {
            "old": {"name": "old", "host": "h", "port": 5433, "database": "d", "username": "u", "password": secret}
        }
    }))
    assert registry.names() == ["old"]
    assert registry.resolve("old").port == 5433


def test_non_object_registry_file_is_a_registry_error(registry):
    registry.path.parent.mkdir(parents=True, exist_ok=True)
    registry.path.write_text("[]")
    with pytest.raises(RegistryError, match="must hold a JSON object"):
        registry.list()


@pytest.mark.parametrize("blank", ["", "   "])
def test_blank_explicit_name_is_rejected(registry, blank):
    with pytest.raises(InvalidNameError, match="must not be empty"):
        registry.add(_inputs(name=blank))
    assert registry.names() == []


def test_explicit_name_is_trimmed(registry):
    assert registry.add(_inputs(name="  mydb ")).name == "mydb"
