"""
amtsbote.sepa.models
~~~~~~~~~~~~~~~~~~~~
Data models for SEPA payment files.

All amounts are integer cents. Batches derive ``number_of_txs`` and
``control_sum`` from their transactions; ``validate()`` never raises and
reports issues with stable codes:

    message_id, debtor, debtor_account, creditor, creditor_account,
    creditor_id, transactions, amount, creditor_name, creditor_iban,
    debtor_name, debtor_iban, bic, end_to_end_id, mandate_id,
    mandate_date, sequence_type
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from ..identifiers import IdentifierError
from ..models import ValidationResult
from .bic import is_valid_bic
from .iban import normalize_iban, validate_iban


CREDIT = "CRDT"
DEBIT  = "DBIT"

# direct-debit sequence types
FIRST     = "FRST"
RECURRENT = "RCUR"
FINAL     = "FNAL"
ONE_OFF   = "OOFF"
SEQUENCE_TYPES = (FIRST, RECURRENT, FINAL, ONE_OFF)

MAX_ID_LENGTH = 35
COLLECTION_LEAD_DAYS = 5


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


def _check_iban(result: ValidationResult, code: str, path: str, iban: str) -> None:
    if not iban:
        result.add(code, path, "IBAN is required")
        return
    try:
        validate_iban(iban)
    except IdentifierError as exc:
        result.add(code, path, exc.message)


def _check_bic(result: ValidationResult, path: str, bic: str) -> None:
    if bic and not is_valid_bic(bic):
        result.add("bic", path, f"invalid BIC format: {bic}")


def _check_ids(result: ValidationResult, txs: list) -> None:
    seen: set[str] = set()
    for i, tx in enumerate(txs):
        path = f"transactions[{i}].end_to_end_id"
        if not tx.end_to_end_id:
            result.add("end_to_end_id", path, "end-to-end id is required")
        elif len(tx.end_to_end_id) > MAX_ID_LENGTH:
            result.add("end_to_end_id", path, f"end-to-end id exceeds {MAX_ID_LENGTH} characters")
        elif tx.end_to_end_id in seen:
            result.add("end_to_end_id", path, f"duplicate end-to-end id {tx.end_to_end_id!r}")
        seen.add(tx.end_to_end_id)


def _assign_ids(message_id: str, txs: list) -> None:
    """Fill missing instruction / end-to-end ids without colliding with given ones."""
    taken = {tx.end_to_end_id for tx in txs if tx.end_to_end_id}
    n = 0
    for i, tx in enumerate(txs, start=1):
        if not tx.instruction_id:
            tx.instruction_id = f"TXN-{i}"
        if not tx.end_to_end_id:
            while True:
                n += 1
                candidate = f"{message_id[:MAX_ID_LENGTH - 5]}-{n:04d}"
                if candidate not in taken:
                    break
            tx.end_to_end_id = candidate
            taken.add(candidate)


# ---------------------------------------------------------------------------
# Parties and accounts
# ---------------------------------------------------------------------------

@dataclass
class Address:
    country:     str = ""
    street_name: str = ""
    building_no: str = ""
    post_code:   str = ""
    town_name:   str = ""

    def to_dict(self) -> dict:
        return {
            "street_name": self.street_name,
            "building_no": self.building_no,
            "post_code":   self.post_code,
            "town_name":   self.town_name,
            "country":     self.country,
        }

    @classmethod
    def from_dict(cls, d: dict | None) -> "Address | None":
        if not d:
            return None
        return cls(
            country=d.get("country", ""),
            street_name=d.get("street_name", ""),
            building_no=d.get("building_no", ""),
            post_code=d.get("post_code", ""),
            town_name=d.get("town_name", ""),
        )


@dataclass
class PartyInfo:
    name:    str
    id:      str = ""
    address: Address | None = None

    def to_dict(self) -> dict:
        return {
            "name":    self.name,
            "id":      self.id,
            "address": self.address.to_dict() if self.address else None,
        }

    @classmethod
    def from_dict(cls, d: dict | None) -> "PartyInfo":
        d = d or {}
        return cls(name=d.get("name", ""), id=d.get("id", ""), address=Address.from_dict(d.get("address")))


@dataclass
class Account:
    iban:     str
    bic:      str = ""
    name:     str = ""
    currency: str = ""

    def __post_init__(self) -> None:
        self.iban = normalize_iban(self.iban)
        self.bic = self.bic.strip().upper()

    def to_dict(self) -> dict:
        return {"iban": self.iban, "bic": self.bic, "name": self.name, "currency": self.currency}

    @classmethod
    def from_dict(cls, d: dict | None) -> "Account":
        d = d or {}
        return cls(
            iban=d.get("iban", ""),
            bic=d.get("bic", ""),
            name=d.get("name", ""),
            currency=d.get("currency", ""),
        )


# ---------------------------------------------------------------------------
# Credit transfer (pain.001)
# ---------------------------------------------------------------------------

@dataclass
class CreditTransaction:
    amount:           int
    creditor:         PartyInfo
    creditor_account: Account
    end_to_end_id:    str = ""
    instruction_id:   str = ""
    currency:         str = "EUR"
    remittance_info:  str = ""

    def to_dict(self) -> dict:
        return {
            "instruction_id":   self.instruction_id,
            "end_to_end_id":    self.end_to_end_id,
            "amount":           self.amount,
            "currency":         self.currency,
            "creditor":         self.creditor.to_dict(),
            "creditor_account": self.creditor_account.to_dict(),
            "remittance_info":  self.remittance_info,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "CreditTransaction":
        return cls(
            amount=int(d.get("amount") or 0),
            creditor=PartyInfo.from_dict(d.get("creditor")),
            creditor_account=Account.from_dict(d.get("creditor_account")),
            end_to_end_id=d.get("end_to_end_id", ""),
            instruction_id=d.get("instruction_id", ""),
            currency=d.get("currency") or "EUR",
            remittance_info=d.get("remittance_info", ""),
        )


@dataclass
class CreditTransfer:
    message_id:       str
    debtor:           PartyInfo
    debtor_account:   Account
    transactions:     list[CreditTransaction] = field(default_factory=list)
    initiating_party: PartyInfo | None = None
    creation_time:    datetime = field(default_factory=_now)
    execution_date:   date | None = None

    @classmethod
    def build(
        cls,
        message_id:     str,
        debtor_name:    str,
        debtor_iban:    str,
        transactions,
        *,
        debtor_bic:     str = "",
        creation_time:  datetime | None = None,
        execution_date: date | None = None,
    ) -> "CreditTransfer":
        """A batch with generated ids and the debtor as initiating party."""
        ct = cls(
            message_id=message_id,
            debtor=PartyInfo(debtor_name),
            debtor_account=Account(debtor_iban, debtor_bic),
            transactions=list(transactions),
            initiating_party=PartyInfo(debtor_name),
            creation_time=creation_time or _now(),
            execution_date=execution_date,
        )
        _assign_ids(message_id, ct.transactions)
        return ct

    @property
    def number_of_txs(self) -> int:
        return len(self.transactions)

    @property
    def control_sum(self) -> int:
        return sum(tx.amount for tx in self.transactions)

    @property
    def requested_execution_date(self) -> date:
        return self.execution_date or self.creation_time.date()

    def validate(self) -> ValidationResult:
        result = ValidationResult()
        if not self.message_id:
            result.add("message_id", "message_id", "message id is required")
        elif len(self.message_id) > MAX_ID_LENGTH:
            result.add("message_id", "message_id", f"message id exceeds {MAX_ID_LENGTH} characters")
        if not self.debtor.name:
            result.add("debtor", "debtor.name", "debtor name is required")
        _check_iban(result, "debtor_account", "debtor_account.iban", self.debtor_account.iban)
        _check_bic(result, "debtor_account.bic", self.debtor_account.bic)

        if not self.transactions:
            result.add("transactions", "transactions", "at least one transaction is required")
        for i, tx in enumerate(self.transactions):
            p = f"transactions[{i}]"
            if tx.amount <= 0:
                result.add("amount", f"{p}.amount", "amount must be positive")
            if not tx.creditor.name:
                result.add("creditor_name", f"{p}.creditor.name", "creditor name is required")
            _check_iban(result, "creditor_iban", f"{p}.creditor_account.iban", tx.creditor_account.iban)
            _check_bic(result, f"{p}.creditor_account.bic", tx.creditor_account.bic)
        _check_ids(result, self.transactions)
        return result

    def to_dict(self) -> dict:
        return {
            "message_id":       self.message_id,
            "creation_time":    self.creation_time.isoformat(),
            "execution_date":   self.requested_execution_date.isoformat(),
            "number_of_txs":    self.number_of_txs,
            "control_sum":      self.control_sum,
            "initiating_party": (self.initiating_party or self.debtor).to_dict(),
            "debtor":           self.debtor.to_dict(),
            "debtor_account":   self.debtor_account.to_dict(),
            "transactions":     [tx.to_dict() for tx in self.transactions],
        }


# ---------------------------------------------------------------------------
# Direct debit (pain.008)
# ---------------------------------------------------------------------------

@dataclass
class DirectDebitTransaction:
    amount:          int
    debtor:          PartyInfo
    debtor_account:  Account
    mandate_id:      str
    mandate_date:    date | None
    sequence_type:   str = RECURRENT
    end_to_end_id:   str = ""
    instruction_id:  str = ""
    currency:        str = "EUR"
    remittance_info: str = ""

    def to_dict(self) -> dict:
        return {
            "instruction_id":  self.instruction_id,
            "end_to_end_id":   self.end_to_end_id,
            "amount":          self.amount,
            "currency":        self.currency,
            "debtor":          self.debtor.to_dict(),
            "debtor_account":  self.debtor_account.to_dict(),
            "mandate_id":      self.mandate_id,
            "mandate_date":    self.mandate_date.isoformat() if self.mandate_date else None,
            "sequence_type":   self.sequence_type,
            "remittance_info": self.remittance_info,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "DirectDebitTransaction":
        md = d.get("mandate_date")
        return cls(
            amount=int(d.get("amount") or 0),
            debtor=PartyInfo.from_dict(d.get("debtor")),
            debtor_account=Account.from_dict(d.get("debtor_account")),
            mandate_id=d.get("mandate_id", ""),
            mandate_date=date.fromisoformat(md) if md else None,
            sequence_type=d.get("sequence_type") or RECURRENT,
            end_to_end_id=d.get("end_to_end_id", ""),
            instruction_id=d.get("instruction_id", ""),
            currency=d.get("currency") or "EUR",
            remittance_info=d.get("remittance_info", ""),
        )


@dataclass
class DirectDebit:
    message_id:       str
    creditor:         PartyInfo
    creditor_account: Account
    creditor_id:      str
    transactions:     list[DirectDebitTransaction] = field(default_factory=list)
    creation_time:    datetime = field(default_factory=_now)
    collection_date:  date | None = None

    @classmethod
    def build(
        cls,
        message_id:      str,
        creditor_name:   str,
        creditor_iban:   str,
        creditor_id:     str,
        transactions,
        *,
        creditor_bic:    str = "",
        creation_time:   datetime | None = None,
        collection_date: date | None = None,
    ) -> "DirectDebit":
        dd = cls(
            message_id=message_id,
            creditor=PartyInfo(creditor_name),
            creditor_account=Account(creditor_iban, creditor_bic),
            creditor_id=creditor_id,
            transactions=list(transactions),
            creation_time=creation_time or _now(),
            collection_date=collection_date,
        )
        _assign_ids(message_id, dd.transactions)
        return dd

    @property
    def number_of_txs(self) -> int:
        return len(self.transactions)

    @property
    def control_sum(self) -> int:
        return sum(tx.amount for tx in self.transactions)

    @property
    def requested_collection_date(self) -> date:
        """Defaults to five days after creation (CORE lead time)."""
        return self.collection_date or (self.creation_time + timedelta(days=COLLECTION_LEAD_DAYS)).date()

    def validate(self) -> ValidationResult:
        result = ValidationResult()
        if not self.message_id:
            result.add("message_id", "message_id", "message id is required")
        elif len(self.message_id) > MAX_ID_LENGTH:
            result.add("message_id", "message_id", f"message id exceeds {MAX_ID_LENGTH} characters")
        if not self.creditor.name:
            result.add("creditor", "creditor.name", "creditor name is required")
        _check_iban(result, "creditor_account", "creditor_account.iban", self.creditor_account.iban)
        _check_bic(result, "creditor_account.bic", self.creditor_account.bic)
        if not self.creditor_id:
            result.add("creditor_id", "creditor_id", "SEPA creditor identifier is required")

        if not self.transactions:
            result.add("transactions", "transactions", "at least one transaction is required")
        for i, tx in enumerate(self.transactions):
            p = f"transactions[{i}]"
            if tx.amount <= 0:
                result.add("amount", f"{p}.amount", "amount must be positive")
            if not tx.debtor.name:
                result.add("debtor_name", f"{p}.debtor.name", "debtor name is required")
            _check_iban(result, "debtor_iban", f"{p}.debtor_account.iban", tx.debtor_account.iban)
            _check_bic(result, f"{p}.debtor_account.bic", tx.debtor_account.bic)
            if not tx.mandate_id:
                result.add("mandate_id", f"{p}.mandate_id", "mandate id is required")
            if tx.mandate_date is None:
                result.add("mandate_date", f"{p}.mandate_date", "mandate signature date is required")
            if tx.sequence_type not in SEQUENCE_TYPES:
                result.add(
                    "sequence_type", f"{p}.sequence_type",
                    f"sequence type must be one of {', '.join(SEQUENCE_TYPES)}",
                )
        _check_ids(result, self.transactions)
        return result

    def to_dict(self) -> dict:
        return {
            "message_id":       self.message_id,
            "creation_time":    self.creation_time.isoformat(),
            "collection_date":  self.requested_collection_date.isoformat(),
            "number_of_txs":    self.number_of_txs,
            "control_sum":      self.control_sum,
            "creditor":         self.creditor.to_dict(),
            "creditor_account": self.creditor_account.to_dict(),
            "creditor_id":      self.creditor_id,
            "transactions":     [tx.to_dict() for tx in self.transactions],
        }


# ---------------------------------------------------------------------------
# Bank statement (camt.053)
# ---------------------------------------------------------------------------

@dataclass
class StatementEntry:
    amount:            int
    credit_debit:      str
    booking_date:      date | None = None
    value_date:        date | None = None
    currency:          str = "EUR"
    reference:         str = ""
    end_to_end_id:     str = ""
    remittance_info:   str = ""
    counterparty_name: str = ""
    counterparty_iban: str = ""

    @property
    def is_credit(self) -> bool:
        return self.credit_debit == CREDIT

    @property
    def is_debit(self) -> bool:
        return self.credit_debit == DEBIT

    @property
    def signed_amount(self) -> int:
        return self.amount if self.is_credit else -self.amount

    def to_dict(self) -> dict:
        return {
            "amount":            self.amount,
            "currency":          self.currency,
            "credit_debit":      self.credit_debit,
            "booking_date":      self.booking_date.isoformat() if self.booking_date else None,
            "value_date":        self.value_date.isoformat() if self.value_date else None,
            "reference":         self.reference,
            "end_to_end_id":     self.end_to_end_id,
            "remittance_info":   self.remittance_info,
            "counterparty_name": self.counterparty_name,
            "counterparty_iban": self.counterparty_iban,
        }


@dataclass
class Statement:
    """
    One account statement. Balances are signed cents (negative when the
    bank reports them as ``DBIT``). They are taken from the file, never
    recomputed; ``balance_consistent`` compares them with the entries.
    """

    id:              str
    account:         Account
    opening_balance: int = 0
    closing_balance: int = 0
    creation_time:   datetime | None = None
    entries:         list[StatementEntry] = field(default_factory=list)

    @property
    def total_credits(self) -> int:
        return sum(e.amount for e in self.entries if e.is_credit)

    @property
    def total_debits(self) -> int:
        return sum(e.amount for e in self.entries if e.is_debit)

    @property
    def expected_closing_balance(self) -> int:
        return self.opening_balance + sum(e.signed_amount for e in self.entries)

    @property
    def balance_consistent(self) -> bool:
        return self.expected_closing_balance == self.closing_balance

    def to_dict(self) -> dict:
        return {
            "id":                 self.id,
            "creation_time":      self.creation_time.isoformat() if self.creation_time else None,
            "account":            self.account.to_dict(),
            "opening_balance":    self.opening_balance,
            "closing_balance":    self.closing_balance,
            "total_credits":      self.total_credits,
            "total_debits":       self.total_debits,
            "balance_consistent": self.balance_consistent,
            "entries":            [e.to_dict() for e in self.entries],
        }


__all__ = [
    "Account",
    "Address",
    "CREDIT",
    "CreditTransaction",
    "CreditTransfer",
    "DEBIT",
    "DirectDebit",
    "DirectDebitTransaction",
    "FINAL",
    "FIRST",
    "ONE_OFF",
    "PartyInfo",
    "RECURRENT",
    "SEQUENCE_TYPES",
    "Statement",
    "StatementEntry",
]
