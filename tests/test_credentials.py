"""
tests/test_credentials.py
~~~~~~~~~~~~~~~~~~~~~~~~~
Tests for amtsbote.credentials — account rules, the in-memory store and
the encrypted credential file.
"""

from __future__ import annotations

import os
import stat

import pytest

from amtsbote import credentials
from amtsbote.credentials import (
    Account,
    AccountType,
    CredentialStore,
    EncryptedCredentialStore,
    MemoryCredentialStore,
    decrypt,
    encrypt,
)
from amtsbote.exceptions import (
    AccountNotFoundError,
    CredentialStoreError,
    DuplicateAccountError,
)


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    monkeypatch.setattr(credentials, "KDF_ITERATIONS", 1_000)


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------

class TestAccount:
    def test_fixtures_valid(self, fo_account, elda_account, fb_account):
        for account in (fo_account, elda_account, fb_account):
            account.validate()

    @pytest.mark.parametrize("field,value,message", [
        ("name", "", "name must not be empty"),
        ("name", "x" * 101, "100 characters"),
        ("type", "bank", "invalid account type"),
        ("tid", "12345", "12 digits"),
        ("benid", "", "benid"),
        ("pin", "", "pin"),
    ])
    def test_finanzonline_rules(self, fo_account, field, value, message):
        setattr(fo_account, field, value)
        with pytest.raises(CredentialStoreError, match=message):
            fo_account.validate()

    def test_elda_rules(self, elda_account):
        elda_account.dienstgeber_nr = "1234"
        with pytest.raises(CredentialStoreError, match="8 digits"):
            elda_account.validate()

    def test_firmenbuch_needs_key(self, fb_account):
        fb_account.api_key = ""
        with pytest.raises(CredentialStoreError, match="api_key"):
            fb_account.validate()

    def test_identifier(self, fo_account, elda_account, fb_account):
        assert fo_account.identifier == "123456789012"
        assert elda_account.identifier == "12345678"
        assert fb_account.identifier == "KEY-…"

    def test_public_dict_hides_secrets(self, fo_account):
        d = fo_account.public_dict()
        assert d == {"name": "firma-a", "type": "finanzonline", "identifier": "123456789012"}

    def test_dict_round_trip_drops_empty(self, elda_account):
        d = elda_account.to_dict()
        assert "tid" not in d
        assert Account.from_dict(d) == elda_account


# ---------------------------------------------------------------------------
# Memory store
# ---------------------------------------------------------------------------

class TestMemoryStore:
    def test_satisfies_protocol(self, memory_store):
        assert isinstance(memory_store, CredentialStore)

    def test_get_and_list(self, memory_store):
        assert memory_store.get_account("lohn").type == AccountType.ELDA.value
        assert [a.name for a in memory_store.list_accounts()] == ["firma-a", "lohn", "register"]
        assert [a.name for a in memory_store.list_accounts("firmenbuch")] == ["register"]

    def test_missing(self, memory_store):
        with pytest.raises(AccountNotFoundError, match="nobody"):
            memory_store.get_account("nobody")

    def test_duplicate(self, memory_store, fo_account):
        with pytest.raises(DuplicateAccountError):
            memory_store.add_account(Account.from_dict(fo_account.to_dict()))

    def test_invalid_not_added(self):
        store = MemoryCredentialStore()
        with pytest.raises(CredentialStoreError):
            store.add_account(Account(name="x", tid="1"))
        assert store.list_accounts() == []

    def test_remove(self, memory_store):
        memory_store.remove_account("lohn")
        assert len(memory_store.list_accounts()) == 2
        with pytest.raises(AccountNotFoundError):
            memory_store.remove_account("lohn")


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

class TestEncryption:
    def test_round_trip(self):
        blob = encrypt(b"geheim", "pw")
        assert decrypt(blob, "pw") == b"geheim"

    def test_fresh_salt_each_time(self):
        assert encrypt(b"x", "pw")[:16] != encrypt(b"x", "pw")[:16]

    def test_wrong_password(self):
        with pytest.raises(CredentialStoreError, match="invalid master password"):
            decrypt(encrypt(b"x", "pw"), "other")

    def test_too_short(self):
        with pytest.raises(CredentialStoreError, match="too short"):
            decrypt(b"0123456789", "pw")


class TestEncryptedStore:
    def test_empty_password(self, tmp_path):
        with pytest.raises(CredentialStoreError):
            EncryptedCredentialStore("", tmp_path / "c.enc")

    def test_missing_file_is_empty(self, tmp_path):
        store = EncryptedCredentialStore("pw", tmp_path / "c.enc")
        assert not store.exists
        assert store.list_accounts() == []

    def test_persist_and_reload(self, tmp_path, fo_account, fb_account):
        path = tmp_path / "c.enc"
        store = EncryptedCredentialStore("pw", path)
        store.add_account(fo_account)
        store.add_account(fb_account)
        assert b"secret" not in path.read_bytes()

        again = EncryptedCredentialStore("pw", path)
        assert again.get_account("firma-a") == fo_account
        assert [a.name for a in again.list_accounts()] == ["firma-a", "register"]

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_file_mode(self, tmp_path, fo_account):
        store = EncryptedCredentialStore("pw", tmp_path / "c.enc")
        store.add_account(fo_account)
        assert stat.S_IMODE(store.path.stat().st_mode) == 0o600

    def test_wrong_password_on_open(self, tmp_path, fo_account):
        path = tmp_path / "c.enc"
        EncryptedCredentialStore("pw", path).add_account(fo_account)
        with pytest.raises(CredentialStoreError, match="decryption failed"):
            EncryptedCredentialStore("falsch", path)

    def test_remove_persists(self, tmp_path, fo_account):
        path = tmp_path / "c.enc"
        store = EncryptedCredentialStore("pw", path)
        store.add_account(fo_account)
        store.remove_account("firma-a")
        assert EncryptedCredentialStore("pw", path).list_accounts() == []

    def test_bad_version(self, tmp_path):
        path = tmp_path / "c.enc"
        path.write_bytes(encrypt(b'{"version": 2, "accounts": []}', "pw"))
        with pytest.raises(CredentialStoreError, match="version"):
            EncryptedCredentialStore("pw", path)

    def test_not_json(self, tmp_path):
        path = tmp_path / "c.enc"
        path.write_bytes(encrypt(b"kein json", "pw"))
        with pytest.raises(CredentialStoreError, match="not valid JSON"):
            EncryptedCredentialStore("pw", path)

    def test_default_path(self, isolated_home):
        from amtsbote.config import cfg

        assert EncryptedCredentialStore("pw").path == cfg.credentials_path
        assert cfg.credentials_path.parent == isolated_home
