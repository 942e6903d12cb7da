"""
amtsbote.credentials
~~~~~~~~~~~~~~~~~~~~
Account credentials for FinanzOnline, ELDA and the companies register.

Two stores implement ``CredentialStore``:

* ``MemoryCredentialStore`` - process-local, used by tests and the HTTP API.
* ``EncryptedCredentialStore`` - one file on disk (``cfg.credentials_path``).

File format
-----------
``salt (16 bytes) || Fernet token``. The Fernet key is derived from the
master password with PBKDF2-HMAC-SHA256 (600 000 iterations) and the
salt. The token decrypts to::

    {"version": 1, "accounts": [{"name": ..., "type": ..., ...}]}

A fresh salt is drawn on every write; the file is created with mode 0600.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
import re
import secrets
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken

from .config import cfg
from .exceptions import (
    AccountNotFoundError,
    CredentialStoreError,
    DuplicateAccountError,
)

logger = logging.getLogger(__name__)

STORE_VERSION   = 1
SALT_SIZE       = 16
KDF_ITERATIONS  = 600_000
MAX_NAME_LENGTH = 100

_TID_RE = re.compile(r"^\d{12}$")
_DGN_RE = re.compile(r"^\d{8}$")


class AccountType(str, Enum):
    FINANZONLINE = "finanzonline"
    ELDA         = "elda"
    FIRMENBUCH   = "firmenbuch"

    def __str__(self) -> str:
        return self.value


@dataclass
class Account:
    name:           str
    type:           str = AccountType.FINANZONLINE.value
    # FinanzOnline
    tid:            str = ""
    benid:          str = ""
    pin:            str = ""
    # ELDA
    dienstgeber_nr: str = ""
    elda_benutzer:  str = ""
    elda_pin:       str = ""
    # Firmenbuch
    api_key:        str = ""

    def validate(self) -> None:
        """Raise ``CredentialStoreError`` if the fields required by ``type`` are missing."""
        if not self.name:
            raise CredentialStoreError("name must not be empty")
        if len(self.name) > MAX_NAME_LENGTH:
            raise CredentialStoreError(f"name must not exceed {MAX_NAME_LENGTH} characters")
        try:
            kind = AccountType(self.type)
        except ValueError:
            raise CredentialStoreError(f"invalid account type: {self.type!r}") from None

        if kind is AccountType.FINANZONLINE:
            if not _TID_RE.match(self.tid):
                raise CredentialStoreError("tid must be exactly 12 digits")
            if not self.benid:
                raise CredentialStoreError("benid must not be empty")
            if not self.pin:
                raise CredentialStoreError("pin must not be empty")
        elif kind is AccountType.ELDA:
            if not _DGN_RE.match(self.dienstgeber_nr):
                raise CredentialStoreError("dienstgeber_nr must be exactly 8 digits")
            if not self.elda_benutzer:
                raise CredentialStoreError("elda_benutzer must not be empty")
            if not self.elda_pin:
                raise CredentialStoreError("elda_pin must not be empty")
        elif not self.api_key:
            raise CredentialStoreError("api_key must not be empty")

    @property
    def identifier(self) -> str:
        """The non-secret id shown in listings: TID, Dienstgeber-Nr or a masked key."""
        if self.type == AccountType.ELDA:
            return self.dienstgeber_nr
        if self.type == AccountType.FIRMENBUCH:
            return f"{self.api_key[:4]}…" if self.api_key else ""
        return self.tid

    def to_dict(self) -> dict:
        d = {"name": self.name, "type": str(self.type)}
        for key in ("tid", "benid", "pin", "dienstgeber_nr", "elda_benutzer", "elda_pin", "api_key"):
            value = getattr(self, key)
            if value:
                d[key] = value
        return d

    def public_dict(self) -> dict:
        """Listing view without PINs or keys."""
        return {"name": self.name, "type": str(self.type), "identifier": self.identifier}

    @classmethod
    def from_dict(cls, d: dict) -> "Account":
        return cls(
            name=d.get("name", ""),
            type=d.get("type") or AccountType.FINANZONLINE.value,
            tid=d.get("tid", ""),
            benid=d.get("benid", ""),
            pin=d.get("pin", ""),
            dienstgeber_nr=d.get("dienstgeber_nr", ""),
            elda_benutzer=d.get("elda_benutzer", ""),
            elda_pin=d.get("elda_pin", ""),
            api_key=d.get("api_key", ""),
        )


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class CredentialStore(Protocol):
    """Storage abstraction for account credentials."""

    def get_account(self, name: str) -> Account:
        """Return the account called *name*; raise ``AccountNotFoundError`` otherwise."""
        ...

    def list_accounts(self, account_type: str | None = None) -> list[Account]:
        """All accounts in insertion order, optionally filtered by type."""
        ...

    def add_account(self, account: Account) -> None:
        """Validate and store; raise ``DuplicateAccountError`` if the name is taken."""
        ...

    def remove_account(self, name: str) -> None:
        """Delete by name; raise ``AccountNotFoundError`` if absent."""
        ...


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class MemoryCredentialStore:
    def __init__(self, accounts=()) -> None:
        self._lock = threading.Lock()
        self._accounts: list[Account] = []
        for a in accounts:
            self.add_account(a)

    def get_account(self, name: str) -> Account:
        for a in self._accounts:
            if a.name == name:
                return a
        raise AccountNotFoundError(f"account not found: {name}")

    def list_accounts(self, account_type: str | None = None) -> list[Account]:
        return [a for a in self._accounts if account_type is None or a.type == account_type]

    def add_account(self, account: Account) -> None:
        account.validate()
        with self._lock:
            if any(a.name == account.name for a in self._accounts):
                raise DuplicateAccountError(f"account with this name already exists: {account.name}")
            self._accounts.append(account)
            self._changed()

    def remove_account(self, name: str) -> None:
        with self._lock:
            before = len(self._accounts)
            self._accounts = [a for a in self._accounts if a.name != name]
            if len(self._accounts) == before:
                raise AccountNotFoundError(f"account not found: {name}")
            self._changed()

    def _changed(self) -> None:
        """Hook called under the lock after every mutation."""


# ---------------------------------------------------------------------------
# Encrypted file store
# ---------------------------------------------------------------------------

def derive_key(password: str, salt: bytes) -> bytes:
    """urlsafe-base64 Fernet key from *password* and *salt*."""
    raw = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, KDF_ITERATIONS, dklen=32)
    return base64.urlsafe_b64encode(raw)


def encrypt(plaintext: bytes, password: str) -> bytes:
    salt = secrets.token_bytes(SALT_SIZE)
    return salt + Fernet(derive_key(password, salt)).encrypt(plaintext)


def decrypt(blob: bytes, password: str) -> bytes:
    if len(blob) <= SALT_SIZE:
        raise CredentialStoreError("encrypted data too short")
    salt, token = blob[:SALT_SIZE], blob[SALT_SIZE:]
    try:
        return Fernet(derive_key(password, salt)).decrypt(token)
    except InvalidToken as exc:
        raise CredentialStoreError(
            "decryption failed: invalid master password or corrupted data", cause=exc,
        ) from exc


class EncryptedCredentialStore(MemoryCredentialStore):
    """
    Credential file encrypted under a master password.

    The file is read once on construction; every mutation rewrites it.
    A missing file is an empty store and is created on the first write.
    """

    def __init__(self, master_password: str, path: Path | str | None = None) -> None:
        if not master_password:
            raise CredentialStoreError("master password must not be empty")
        self.path = Path(path) if path else cfg.credentials_path
        self._password = master_password
        super().__init__()
        self._accounts = self._load()

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def _load(self) -> list[Account]:
        if not self.path.exists():
            return []
        plaintext = decrypt(self.path.read_bytes(), self._password)
        try:
            doc = json.loads(plaintext)
        except json.JSONDecodeError as exc:
            raise CredentialStoreError("credential store is not valid JSON", cause=exc) from exc
        if doc.get("version") != STORE_VERSION:
            raise CredentialStoreError(f"invalid credential store version: {doc.get('version')!r}")
        accounts = [Account.from_dict(a) for a in doc.get("accounts", [])]
        logger.debug("Loaded %d account(s) from %s", len(accounts), self.path)
        return accounts

    def _changed(self) -> None:
        doc = {"version": STORE_VERSION, "accounts": [a.to_dict() for a in self._accounts]}
        blob = encrypt(json.dumps(doc).encode("utf-8"), self._password)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fh:
            fh.write(blob)
        os.chmod(tmp, 0o600)
        os.replace(tmp, self.path)


__all__ = [
    "Account",
    "AccountType",
    "CredentialStore",
    "EncryptedCredentialStore",
    "MemoryCredentialStore",
    "decrypt",
    "derive_key",
    "encrypt",
]
