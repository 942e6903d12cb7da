"""
amtsbote.cli
~~~~~~~~~~~~
Command-line interface for amtsbote.

Entry point registered in pyproject.toml::

    [project.scripts]
    amtsbote = "amtsbote.cli:main"

Usage examples
--------------
    amtsbote --version

    # Accounts live in ~/.fo/credentials.enc, encrypted under a master password
    amtsbote account add firma-a --type finanzonline --tid 123456789012 --benid WEBUSER
    amtsbote account list

    # Mailboxes of every account at once
    amtsbote dashboard --all --services fo,elda

    # Advance VAT return from a JSON file
    amtsbote --account firma-a uva validate uva_2025_01.json
    amtsbote --account firma-a uva submit uva_2025_01.json

    # SEPA credit transfer from CSV
    amtsbote sepa pain001 payments.csv --debtor-name "Muster GmbH" \\
        --debtor-iban AT611904300234573201 --output batch.xml

    # JSON output for scripting
    amtsbote --json fb search "Muster GmbH"

The active FinanzOnline session belongs to one ``CLIContext`` and ends
with the process; commands that need it log in on demand.
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import os
import sys
from datetime import date
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from .config import cfg
from .credentials import (
    Account,
    AccountType,
    CredentialStore,
    EncryptedCredentialStore,
)
from .dashboard import Dashboard, summary as dashboard_summary
from .elda import Abmeldung, Anmeldung, ELDAClient
from .erechnung import Invoice, encode_cii, encode_ubl, validate_invoice
from .exceptions import AmtsboteError, error_envelope
from .firmenbuch import FirmenbuchClient, Watchlist
from .fonws import (
    DataboxService,
    FileUploadService,
    Session,
    SessionService,
    SoapTransport,
    UIDService,
    parse_uid_csv,
    write_uid_results_csv,
)
from .identifiers import IdentifierError, normalize_fn, validate_fn, validate_uid_format
from .models import ValidationResult
from .money import format_major
from .sepa import (
    CreditTransfer,
    DirectDebit,
    DirectDebitTransaction,
    generate_pain001,
    generate_pain008,
    parse_camt053,
    parse_credit_transfer_csv,
    parse_pain001,
    reconcile,
    validate_iban_details,
)
from .storage import SQLiteSubmissionRepository, SubmissionRecord, SubmissionRepository
from .tax import UVA, ZM, parse_zm_csv

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

class CLIContext:
    """
    Everything one CLI invocation shares between commands: output mode,
    the selected account, the credential store, the HTTP transport, the
    submission history and the active FinanzOnline session.

    Collaborators are opened lazily so that purely local commands
    (``uva validate``, ``sepa validate-iban`` ...) never prompt for the
    master password or touch ``~/.fo``.
    """

    def __init__(
        self,
        *,
        json_output:         bool = False,
        account_name:        str | None = None,
        master_password_env: str | None = None,
        store:               CredentialStore | None = None,
        transport:           SoapTransport | None = None,
        repo:                SubmissionRepository | None = None,
        watchlist:           Watchlist | None = None,
    ) -> None:
        self.json_output         = json_output
        self.account_name        = account_name
        self.master_password_env = master_password_env
        self.session: Session | None = None
        self._store     = store
        self._transport = transport
        self._repo      = repo
        self._watchlist = watchlist

    # ------------------------------------------------------------------
    # Lazily opened collaborators
    # ------------------------------------------------------------------

    def master_password(self) -> str:
        if self.master_password_env:
            password = os.environ.get(self.master_password_env, "")
            if not password:
                raise AmtsboteError(f"environment variable {self.master_password_env} is empty or unset")
            return password
        return getpass.getpass("Master password: ")

    @property
    def store(self) -> CredentialStore:
        if self._store is None:
            self._store = EncryptedCredentialStore(self.master_password())
        return self._store

    @property
    def transport(self) -> SoapTransport:
        if self._transport is None:
            self._transport = SoapTransport()
        return self._transport

    @property
    def repo(self) -> SubmissionRepository:
        if self._repo is None:
            self._repo = SQLiteSubmissionRepository()
        return self._repo

    @property
    def watchlist(self) -> Watchlist:
        if self._watchlist is None:
            self._watchlist = Watchlist()
        return self._watchlist

    # ------------------------------------------------------------------
    # Accounts and session
    # ------------------------------------------------------------------

    def account(self, account_type: AccountType) -> Account:
        """
        The account named by ``--account``, or the only account of
        *account_type* when the store holds exactly one.
        """
        if self.account_name:
            account = self.store.get_account(self.account_name)
            if AccountType(account.type) is not account_type:
                raise AmtsboteError(f"account {account.name} is a {account.type} account, not {account_type}")
            return account
        candidates = self.store.list_accounts(account_type.value)
        if len(candidates) == 1:
            return candidates[0]
        if not candidates:
            raise AmtsboteError(f"no {account_type} account configured (see: amtsbote account add)")
        raise AmtsboteError(f"several {account_type} accounts configured, choose one with --account")

    def login(self) -> Session:
        if self.session is not None and self.session.valid:
            return self.session
        account = self.account(AccountType.FINANZONLINE)
        self.session = SessionService(self.transport).login(
            account.tid, account.benid, account.pin, account_name=account.name,
        )
        return self.session

    def logout(self) -> bool:
        """End the active session; ``False`` if there was none."""
        if self.session is None or not self.session.valid:
            return False
        try:
            SessionService(self.transport).logout(self.session)
        finally:
            self.session.invalidate()
        return True

    def close(self) -> None:
        try:
            self.logout()
        except AmtsboteError as exc:
            logger.warning("Logout failed: %s", exc)
        if self._transport is not None:
            self._transport.close()
        if self._repo is not None:
            self._repo.close()

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def emit(self, data, text: str | None = None) -> None:
        """Print *data* as JSON in ``--json`` mode, else the human *text*."""
        if self.json_output:
            print(json.dumps(data, indent=2, ensure_ascii=False, default=str))
        elif text is not None:
            print(text)

    def fail(self, exc: BaseException) -> int:
        if self.json_output:
            print(json.dumps(error_envelope(exc), indent=2, ensure_ascii=False))
        else:
            print(f"✗  {exc}", file=sys.stderr)
        return 1


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------

def _read_json(path: str | Path) -> dict:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise AmtsboteError(f"{path} is not valid JSON", cause=exc) from exc


def _load_uva(path: str | Path) -> UVA:
    p = Path(path)
    if p.suffix.lower() == ".xml":
        return UVA.from_xml(p.read_bytes())
    return UVA.from_dict(_read_json(p))


def _load_zm(path: str | Path) -> ZM:
    p = Path(path)
    if p.suffix.lower() == ".xml":
        return ZM.from_xml(p.read_bytes())
    return ZM.from_dict(_read_json(p))


def _load_elda(path: str | Path, kind: str | None = None) -> Anmeldung | Abmeldung:
    """Anmeldung (also from the flat employee shape) or Abmeldung from JSON."""
    d = _read_json(path)
    if kind is None:
        kind = "abmeldung" if "grund" in d else "anmeldung"
    if kind == "abmeldung":
        return Abmeldung.from_dict(d)
    if "first_name" in d:
        return Anmeldung.from_employee(d)
    return Anmeldung.from_dict(d)


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise AmtsboteError(f"invalid date {value!r}, expected YYYY-MM-DD") from None


def _write_or_print(data: bytes, output: str | None) -> Path | None:
    if not output:
        sys.stdout.write(data.decode("utf-8"))
        sys.stdout.write("\n")
        return None
    out = Path(output)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(data)
    return out


def _issues_text(result: ValidationResult) -> str:
    lines = [f"  ✗  [{i.code}] {i.field}: {i.message}" for i in result.errors]
    lines += [f"  ⚠  [{i.code}] {i.field}: {i.message}" for i in result.warnings]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# CLI class
# ---------------------------------------------------------------------------

class AmtsboteCLI:

    def __init__(self, ctx: CLIContext) -> None:
        self.ctx = ctx

    # ------------------------------------------------------------------
    # Utility
    # ------------------------------------------------------------------

    def print_version(self) -> None:
        try:
            print(f"amtsbote version: {version('amtsbote')}")
        except PackageNotFoundError:
            print("amtsbote version: unknown")

    def _report_validation(self, result: ValidationResult, what: str) -> int:
        if result.valid:
            text = f"✓  {what} is valid"
            if result.warnings:
                text += "\n" + _issues_text(result)
        else:
            text = f"✗  {what} is invalid ({len(result.errors)} error(s))\n" + _issues_text(result)
        self.ctx.emit(result.to_dict(), text)
        return 0 if result.valid else 1

    # ------------------------------------------------------------------
    # account
    # ------------------------------------------------------------------

    def account_add(self, name: str, account_type: str, **fields: str) -> int:
        """Add an account; PINs and keys not given as flags are prompted for."""
        secrets = {
            AccountType.FINANZONLINE.value: ("pin",),
            AccountType.ELDA.value:         ("elda_pin",),
            AccountType.FIRMENBUCH.value:   ("api_key",),
        }.get(account_type, ())
        for key in secrets:
            if not fields.get(key):
                fields[key] = getpass.getpass(f"{key.replace('_', ' ').upper()}: ")
        account = Account(name=name, type=account_type, **{k: v or "" for k, v in fields.items()})
        self.ctx.store.add_account(account)
        self.ctx.emit(account.public_dict(), f"✓  Added {account_type} account {name}")
        return 0

    def account_list(self, account_type: str | None = None) -> int:
        accounts = self.ctx.store.list_accounts(account_type)
        if not accounts:
            self.ctx.emit([], "No accounts configured.")
            return 0
        lines = [f"{'NAME':<30}{'TYPE':<15}IDENTIFIER", "─" * 60]
        lines += [f"{a.name:<30}{a.type:<15}{a.identifier}" for a in accounts]
        self.ctx.emit([a.public_dict() for a in accounts], "\n".join(lines))
        return 0

    def account_remove(self, name: str) -> int:
        self.ctx.store.remove_account(name)
        self.ctx.emit({"removed": name}, f"✓  Removed account {name}")
        return 0

    # ------------------------------------------------------------------
    # session
    # ------------------------------------------------------------------

    def session_login(self) -> int:
        session = self.ctx.login()
        self.ctx.emit(session.to_dict(), f"✓  Logged in as {session.tid}/{session.benid} ({session.account_name})")
        return 0

    def session_logout(self) -> int:
        if self.ctx.logout():
            self.ctx.emit({"logged_out": True}, "✓  Logged out")
        else:
            self.ctx.emit({"logged_out": False}, "No active session.")
        return 0

    # ------------------------------------------------------------------
    # dashboard
    # ------------------------------------------------------------------

    def dashboard(
        self,
        all_accounts: bool = False,
        services:     str | None = None,
        from_date:    str | None = None,
        to_date:      str | None = None,
    ) -> int:
        names = None if all_accounts or not self.ctx.account_name else [self.ctx.account_name]
        results = Dashboard(
            self.ctx.store, self.ctx.transport,
            services=services, from_date=from_date, to_date=to_date,
        ).run(names)
        self.ctx.emit([r.to_dict() for r in results], dashboard_summary(results))
        return 1 if any(r.has_error for r in results) else 0

    # ------------------------------------------------------------------
    # databox
    # ------------------------------------------------------------------

    def databox_list(self, from_date: str | None = None, to_date: str | None = None) -> int:
        session = self.ctx.login()
        entries = DataboxService(self.ctx.transport).list(session, from_date, to_date)
        lines = [f"{'APPLKEY':<24}{'DELIVERED':<22}{'TYPE':<22}DESCRIPTION", "─" * 90]
        for e in entries:
            flag = " !" if e.action_required else ""
            lines.append(f"{e.applkey:<24}{e.delivered_at:<22}{e.type_name + flag:<22}{e.description}")
        lines.append(f"{len(entries)} document(s), {sum(e.action_required for e in entries)} require action")
        self.ctx.emit([e.to_dict() for e in entries], "\n".join(lines))
        return 0

    def databox_download(self, applkey: str, output_dir: str | None = None) -> int:
        session = self.ctx.login()
        target = DataboxService(self.ctx.transport).download(
            session, applkey, Path(output_dir) if output_dir else cfg.download_dir,
        )
        self.ctx.emit({"applkey": applkey, "path": str(target)}, f"✓  Saved {target}")
        return 0

    # ------------------------------------------------------------------
    # uva
    # ------------------------------------------------------------------

    def uva_validate(self, path: str) -> int:
        uva = _load_uva(path)
        rc = self._report_validation(uva.validate(), f"UVA {uva.period_string}")
        if rc == 0 and not self.ctx.json_output:
            print(uva.summary())
        return rc

    def uva_submit(self, path: str) -> int:
        uva = _load_uva(path)
        uva.validate().raise_if_invalid("UVA")
        session = self.ctx.login()
        record = SubmissionRecord(
            account=session.account_name, kind="uva", period=uva.period_string, payload=uva.to_xml(),
        )
        self.ctx.repo.save(record)
        result = FileUploadService(self.ctx.transport).submit_uva(session, uva)
        self.ctx.repo.update_status(record.id, uva.status, reference=result.reference)
        self.ctx.emit(
            result.to_dict(),
            f"✓  UVA {uva.period_string} submitted, reference {result.reference}",
        )
        return 0

    def uva_status(self, limit: int = 20) -> int:
        records = list(self.ctx.repo.find(account=self.ctx.account_name, kind="uva"))[:limit]
        if not records:
            self.ctx.emit([], "No UVA submissions recorded.")
            return 0
        lines = [f"{'PERIOD':<12}{'STATUS':<12}{'REFERENCE':<24}{'ACCOUNT':<20}UPDATED", "─" * 90]
        for r in records:
            lines.append(
                f"{r.period:<12}{str(r.status):<12}{r.reference or '-':<24}{r.account:<20}"
                f"{r.updated_at:%Y-%m-%d %H:%M}"
            )
        self.ctx.emit([r.to_dict() for r in records], "\n".join(lines))
        return 0

    # ------------------------------------------------------------------
    # zm
    # ------------------------------------------------------------------

    def zm_generate(self, year: int, quarter: int, csv_path: str, output: str | None = None) -> int:
        zm = ZM.build(year, quarter, parse_zm_csv(Path(csv_path).read_bytes()))
        zm.validate().raise_if_invalid("ZM")
        xml = zm.to_xml()
        out = _write_or_print(xml, output)
        if out is not None:
            self.ctx.emit(
                {"path": str(out), "entries": len(zm.entries), "total_amount": zm.total_amount},
                f"✓  ZM {zm.period_string}: {len(zm.entries)} entries, "
                f"{format_major(zm.total_amount)} EUR → {out}",
            )
        return 0

    def zm_validate(self, path: str) -> int:
        zm = _load_zm(path)
        return self._report_validation(zm.validate(), f"ZM {zm.period_string}")

    def zm_submit(self, path: str) -> int:
        zm = _load_zm(path)
        zm.validate().raise_if_invalid("ZM")
        session = self.ctx.login()
        record = SubmissionRecord(
            account=session.account_name, kind="zm", period=zm.period_string, payload=zm.to_xml(),
        )
        self.ctx.repo.save(record)
        result = FileUploadService(self.ctx.transport).submit_zm(session, zm)
        self.ctx.repo.update_status(record.id, zm.status, reference=result.reference)
        self.ctx.emit(result.to_dict(), f"✓  ZM {zm.period_string} submitted, reference {result.reference}")
        return 0

    # ------------------------------------------------------------------
    # uid
    # ------------------------------------------------------------------

    def uid_check(self, uid: str, level: int = 1) -> int:
        fmt = validate_uid_format(uid)
        if not fmt.valid:
            self.ctx.emit(fmt.to_dict(), f"✗  {uid}: {fmt.error}")
            return 1
        result = UIDService(self.ctx.transport).query(self.ctx.login(), uid, level)
        if result.valid:
            text = f"✓  {result.uid} is valid: {result.company_name}"
            address = result.address.formatted()
            if address:
                text += f"\n   {address}"
        else:
            text = f"✗  {result.uid} is invalid: {result.error_message}"
        self.ctx.emit(result.to_dict(), text)
        return 0 if result.valid else 1

    def uid_batch(self, csv_path: str, output: str | None = None, level: int = 1) -> int:
        uids = parse_uid_csv(Path(csv_path).read_bytes())
        results = UIDService(self.ctx.transport).query_batch(self.ctx.login(), uids, level)
        if output:
            Path(output).write_text(write_uid_results_csv(results), encoding="utf-8")
        lines = [
            f"{'✓' if r.valid else '✗'}  {r.uid:<16} {r.company_name if r.valid else r.error_message}"
            for r in results
        ]
        valid = sum(r.valid for r in results)
        lines.append(f"{valid} of {len(results)} valid" + (f", results → {output}" if output else ""))
        self.ctx.emit([r.to_dict() for r in results], "\n".join(lines))
        return 0 if valid == len(results) else 1

    # ------------------------------------------------------------------
    # erechnung
    # ------------------------------------------------------------------

    def erechnung_create(self, path: str, fmt: str = "xrechnung", output: str | None = None) -> int:
        inv = Invoice.from_file(path).calc_totals()
        validate_invoice(inv).raise_if_invalid("invoice")
        xml = encode_ubl(inv) if fmt == "xrechnung" else encode_cii(inv)
        out = _write_or_print(xml, output)
        if out is not None:
            self.ctx.emit({"path": str(out), "format": fmt}, f"✓  {fmt} invoice {inv.id} → {out}")
        return 0

    def erechnung_validate(self, path: str) -> int:
        inv = Invoice.from_file(path).calc_totals()
        return self._report_validation(validate_invoice(inv), f"invoice {inv.id}")

    def erechnung_calc(self, path: str) -> int:
        inv = Invoice.from_file(path).calc_totals()
        self.ctx.emit(inv.to_dict(), inv.summary())
        return 0

    # ------------------------------------------------------------------
    # elda
    # ------------------------------------------------------------------

    def _elda_client(self) -> ELDAClient:
        account = self.ctx.account(AccountType.ELDA)
        return ELDAClient(account.dienstgeber_nr)

    def elda_validate(self, path: str, kind: str | None = None) -> int:
        doc = _load_elda(path, kind)
        return self._report_validation(doc.validate(), type(doc).__name__)

    def elda_anmelden(self, path: str) -> int:
        doc = _load_elda(path, "anmeldung")
        with self._elda_client() as client:
            resp = client.submit_anmeldung(doc)
        self.ctx.emit(resp.to_dict(), f"✓  Anmeldung submitted, reference {resp.reference}")
        return 0

    def elda_abmelden(self, path: str) -> int:
        doc = _load_elda(path, "abmeldung")
        with self._elda_client() as client:
            resp = client.submit_abmeldung(doc)
        self.ctx.emit(resp.to_dict(), f"✓  Abmeldung submitted, reference {resp.reference}")
        return 0

    def elda_status(self, reference: str) -> int:
        with self._elda_client() as client:
            resp = client.query_status(reference)
        self.ctx.emit(resp.to_dict(), f"{reference}: {resp.msg or 'ok'}")
        return 0

    # ------------------------------------------------------------------
    # fb
    # ------------------------------------------------------------------

    def _fb_client(self) -> FirmenbuchClient:
        account = self.ctx.account(AccountType.FIRMENBUCH)
        return FirmenbuchClient(account.api_key)

    def fb_search(self, name: str = "", fn: str = "", ort: str = "", max_hits: int = 20) -> int:
        with self._fb_client() as client:
            resp = client.search(name, fn=fn, ort=ort, max_hits=max_hits)
        lines = [f"{'FN':<12}{'FIRMA':<40}{'SITZ':<20}STATUS", "─" * 80]
        lines += [f"{r.fn:<12}{r.firma[:39]:<40}{r.sitz[:19]:<20}{r.status}" for r in resp.results]
        lines.append(f"{len(resp.results)} of {resp.total_count} hit(s)")
        self.ctx.emit(resp.to_dict(), "\n".join(lines))
        return 0

    def fb_extract(self, fn: str) -> int:
        with self._fb_client() as client:
            extract = client.extract(fn)
        self.ctx.emit(extract.to_dict(), extract.summary())
        return 0

    def fb_validate(self, fn: str) -> int:
        normalized = normalize_fn(fn)
        try:
            validate_fn(normalized)
        except IdentifierError as exc:
            self.ctx.emit({"fn": normalized, "valid": False, "error": exc.message}, f"✗  {normalized}: {exc.message}")
            return 1
        self.ctx.emit({"fn": normalized, "valid": True}, f"✓  {normalized} is a valid Firmenbuchnummer")
        return 0

    def watch_add(self, fn: str, firma: str = "", notes: str = "") -> int:
        entry = self.ctx.watchlist.add(fn, firma, notes)
        self.ctx.emit(entry.to_dict(), f"✓  Watching {entry.fn} {entry.firma}".rstrip())
        return 0

    def watch_list(self) -> int:
        entries = self.ctx.watchlist.list()
        lines = [f"{'FN':<12}{'FIRMA':<40}{'STATUS':<12}LAST CHECK", "─" * 80]
        for e in entries:
            last = f"{e.last_check:%Y-%m-%d %H:%M}" if e.last_check else "never"
            lines.append(f"{e.fn:<12}{e.firma[:39]:<40}{e.last_status or '-':<12}{last}")
        self.ctx.emit([e.to_dict() for e in entries], "\n".join(lines) if entries else "Watchlist is empty.")
        return 0

    def watch_remove(self, fn: str) -> int:
        if not self.ctx.watchlist.remove(fn):
            self.ctx.emit({"removed": False, "fn": fn}, f"✗  {fn} is not on the watchlist")
            return 1
        self.ctx.emit({"removed": True, "fn": fn}, f"✓  Removed {fn}")
        return 0

    def watch_check(self) -> int:
        with self._fb_client() as client:
            result = self.ctx.watchlist.check_all(client)
        lines = [
            f"Checked {result.items_checked}, changed {result.items_changed}, failed {result.items_failed}",
        ]
        for c in result.changes:
            what = "first check" if c.first_check else ", ".join(c.changed_fields)
            lines.append(f"  ●  {c.fn} {c.firma}: {what}")
        for fn, error in sorted(result.failed.items()):
            lines.append(f"  ✗  {fn}: {error}")
        self.ctx.emit(result.to_dict(), "\n".join(lines))
        return 1 if result.items_failed else 0

    # ------------------------------------------------------------------
    # sepa
    # ------------------------------------------------------------------

    def sepa_pain001(
        self,
        csv_path:       str,
        debtor_name:    str,
        debtor_iban:    str,
        debtor_bic:     str = "",
        message_id:     str | None = None,
        execution_date: str | None = None,
        output:         str | None = None,
    ) -> int:
        txs = parse_credit_transfer_csv(Path(csv_path).read_text(encoding="utf-8"))
        ct = CreditTransfer.build(
            message_id or f"CT-{date.today():%Y%m%d}-{Path(csv_path).stem}"[:35],
            debtor_name, debtor_iban, txs,
            debtor_bic=debtor_bic, execution_date=_parse_date(execution_date),
        )
        out = _write_or_print(generate_pain001(ct), output)
        if out is not None:
            self.ctx.emit(
                {"path": str(out), **ct.to_dict()},
                f"✓  pain.001 {ct.message_id}: {ct.number_of_txs} transfer(s), "
                f"{format_major(ct.control_sum)} EUR → {out}",
            )
        return 0

    def sepa_pain008(self, path: str, output: str | None = None) -> int:
        d = _read_json(path)
        dd = DirectDebit.build(
            d.get("message_id", ""),
            d.get("creditor_name", ""),
            d.get("creditor_iban", ""),
            d.get("creditor_id", ""),
            [DirectDebitTransaction.from_dict(t) for t in d.get("transactions", [])],
            creditor_bic=d.get("creditor_bic", ""),
            collection_date=_parse_date(d.get("collection_date")),
        )
        out = _write_or_print(generate_pain008(dd), output)
        if out is not None:
            self.ctx.emit(
                {"path": str(out), "message_id": dd.message_id, "number_of_txs": dd.number_of_txs},
                f"✓  pain.008 {dd.message_id}: {dd.number_of_txs} collection(s), "
                f"{format_major(dd.control_sum)} EUR → {out}",
            )
        return 0

    def sepa_camt053(self, path: str) -> int:
        stmt = parse_camt053(Path(path).read_bytes())
        lines = [
            f"Statement {stmt.id}  {stmt.account.iban}",
            f"  Opening : {format_major(stmt.opening_balance):>14} EUR",
            f"  Credits : {format_major(stmt.total_credits):>14} EUR",
            f"  Debits  : {format_major(stmt.total_debits):>14} EUR",
            f"  Closing : {format_major(stmt.closing_balance):>14} EUR",
            "─" * 60,
        ]
        for e in stmt.entries:
            who = e.counterparty_name or "-"
            lines.append(f"  {e.booking_date or '':<12}{format_major(e.signed_amount):>12}  {who[:30]:<30}")
        if not stmt.balance_consistent:
            lines.append("⚠  closing balance does not match opening balance plus entries")
        self.ctx.emit(stmt.to_dict(), "\n".join(lines))
        return 0

    def sepa_validate_iban(self, iban: str) -> int:
        result = validate_iban_details(iban)
        if result.valid:
            text = f"✓  {result.iban} is valid"
            if result.bank_name:
                text += f" ({result.bank_name}, {result.bic})"
        else:
            text = f"✗  {result.iban}: {result.error}"
        self.ctx.emit(result.to_dict(), text)
        return 0 if result.valid else 1

    def sepa_reconcile(
        self,
        statement_path: str,
        transfers:      list[str] | None = None,
        invoices:       list[str] | None = None,
    ) -> int:
        stmt = parse_camt053(Path(statement_path).read_bytes())
        report = reconcile(
            stmt,
            transfers=[parse_pain001(Path(p).read_bytes()) for p in transfers or ()],
            invoices=[Invoice.from_file(p).calc_totals() for p in invoices or ()],
        )
        self.ctx.emit(report.to_dict(), report.summary())
        return 0

    # ------------------------------------------------------------------
    # serve
    # ------------------------------------------------------------------

    def serve(self, host: str, port: int, reload: bool = False, open_browser: bool = False, log_level: str = "warning") -> int:
        from amtsbote.web.server import launch
        launch(host=host, port=port, reload=reload, open_browser=open_browser, log_level=log_level)
        return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="amtsbote",
        description="amtsbote: FinanzOnline, ELDA, Firmenbuch, e-invoices and SEPA from the command line.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Show package version and exit.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text.")
    parser.add_argument("--account", "-a", default=None, metavar="NAME", help="Account to act as.")
    parser.add_argument(
        "--master-password-env", default=None, metavar="VAR",
        help="Read the master password from this environment variable instead of prompting.",
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    # -- account ----------------------------------------------------------
    account = sub.add_parser("account", help="Manage stored credentials.").add_subparsers(dest="action", required=True)
    p = account.add_parser("add", help="Add an account.")
    p.add_argument("name")
    p.add_argument("--type", default="finanzonline", choices=[t.value for t in AccountType])
    p.add_argument("--tid", default="", help="FinanzOnline Teilnehmer-ID (12 digits).")
    p.add_argument("--benid", default="", help="FinanzOnline Benutzer-ID.")
    p.add_argument("--pin", default="", help="FinanzOnline PIN (prompted if omitted).")
    p.add_argument("--dienstgeber-nr", default="", help="ELDA Dienstgeber-Nummer (8 digits).")
    p.add_argument("--elda-benutzer", default="", help="ELDA user.")
    p.add_argument("--elda-pin", default="", help="ELDA PIN (prompted if omitted).")
    p.add_argument("--api-key", default="", help="Firmenbuch API key (prompted if omitted).")
    p = account.add_parser("list", help="List accounts.")
    p.add_argument("--type", default=None, choices=[t.value for t in AccountType])
    p = account.add_parser("remove", help="Remove an account.")
    p.add_argument("name")

    # -- session ----------------------------------------------------------
    session = sub.add_parser("session", help="FinanzOnline session.").add_subparsers(dest="action", required=True)
    session.add_parser("login", help="Log in with the selected account.")
    session.add_parser("logout", help="End the active session.")

    # -- dashboard --------------------------------------------------------
    p = sub.add_parser("dashboard", help="Status of all accounts at a glance.")
    p.add_argument("--all", action="store_true", dest="all_accounts", help="Check every account.")
    p.add_argument("--services", default=None, help="Comma-separated filter: fo, elda, fb.")
    p.add_argument("--from", dest="from_date", default=None, metavar="YYYY-MM-DD")
    p.add_argument("--to", dest="to_date", default=None, metavar="YYYY-MM-DD")

    # -- databox ----------------------------------------------------------
    databox = sub.add_parser("databox", help="FinanzOnline mailbox.").add_subparsers(dest="action", required=True)
    p = databox.add_parser("list", help="List mailbox documents.")
    p.add_argument("--from", dest="from_date", default=None, metavar="YYYY-MM-DD")
    p.add_argument("--to", dest="to_date", default=None, metavar="YYYY-MM-DD")
    p = databox.add_parser("download", help="Download one document.")
    p.add_argument("applkey")
    p.add_argument("--output-dir", default=None, metavar="DIR", help="Target directory (default ~/.fo/downloads).")

    # -- uva --------------------------------------------------------------
    uva = sub.add_parser("uva", help="Umsatzsteuervoranmeldung.").add_subparsers(dest="action", required=True)
    p = uva.add_parser("validate", help="Validate a UVA (JSON or XML).")
    p.add_argument("file")
    p = uva.add_parser("submit", help="Validate and submit a UVA.")
    p.add_argument("file")
    p = uva.add_parser("status", help="Recorded UVA submissions.")
    p.add_argument("--limit", type=int, default=20)

    # -- zm ---------------------------------------------------------------
    zm = sub.add_parser("zm", help="Zusammenfassende Meldung.").add_subparsers(dest="action", required=True)
    p = zm.add_parser("generate", help="Build ZM XML from a CSV.")
    p.add_argument("csv")
    p.add_argument("--year", type=int, default=date.today().year)
    p.add_argument("--quarter", type=int, required=True, choices=[1, 2, 3, 4])
    p.add_argument("--output", "-o", default=None, metavar="FILE")
    p = zm.add_parser("validate", help="Validate a ZM (JSON or XML).")
    p.add_argument("file")
    p = zm.add_parser("submit", help="Validate and submit a ZM.")
    p.add_argument("file")

    # -- uid --------------------------------------------------------------
    uid = sub.add_parser("uid", help="VAT identifier lookups.").add_subparsers(dest="action", required=True)
    p = uid.add_parser("check", help="Check one UID.")
    p.add_argument("uid")
    p.add_argument("--level", type=int, default=1, choices=[1, 2])
    p = uid.add_parser("batch", help="Check every UID in a CSV.")
    p.add_argument("csv")
    p.add_argument("--output", "-o", default=None, metavar="FILE")
    p.add_argument("--level", type=int, default=1, choices=[1, 2])

    # -- erechnung --------------------------------------------------------
    er = sub.add_parser("erechnung", help="Electronic invoices.").add_subparsers(dest="action", required=True)
    p = er.add_parser("create", help="Invoice JSON → XRechnung (UBL) or ZUGFeRD (CII).")
    p.add_argument("file")
    p.add_argument("--format", dest="fmt", default="xrechnung", choices=["xrechnung", "zugferd"])
    p.add_argument("--output", "-o", default=None, metavar="FILE")
    p = er.add_parser("validate", help="Validate invoice JSON.")
    p.add_argument("file")
    p = er.add_parser("calc", help="Compute totals and VAT breakdown.")
    p.add_argument("file")

    # -- elda -------------------------------------------------------------
    elda = sub.add_parser("elda", help="ELDA social-insurance declarations.").add_subparsers(dest="action", required=True)
    p = elda.add_parser("validate", help="Validate an Anmeldung or Abmeldung JSON.")
    p.add_argument("file")
    p.add_argument("--kind", default=None, choices=["anmeldung", "abmeldung"])
    p = elda.add_parser("anmelden", help="Submit an Anmeldung.")
    p.add_argument("file")
    p = elda.add_parser("abmelden", help="Submit an Abmeldung.")
    p.add_argument("file")
    p = elda.add_parser("status", help="Status of a submitted declaration.")
    p.add_argument("reference")

    # -- fb ---------------------------------------------------------------
    fb = sub.add_parser("fb", help="Firmenbuch (companies register).").add_subparsers(dest="action", required=True)
    p = fb.add_parser("search", help="Search companies.")
    p.add_argument("name", nargs="?", default="")
    p.add_argument("--fn", default="")
    p.add_argument("--ort", default="")
    p.add_argument("--max-hits", type=int, default=20)
    p = fb.add_parser("extract", help="Full register extract.")
    p.add_argument("fn")
    p = fb.add_parser("validate", help="Check a Firmenbuchnummer locally.")
    p.add_argument("fn")
    watch = fb.add_parser("watch", help="Watchlist of companies.").add_subparsers(dest="watch_action", required=True)
    p = watch.add_parser("add")
    p.add_argument("fn")
    p.add_argument("--firma", default="")
    p.add_argument("--notes", default="")
    watch.add_parser("list")
    p = watch.add_parser("remove")
    p.add_argument("fn")
    watch.add_parser("check")

    # -- sepa -------------------------------------------------------------
    sepa = sub.add_parser("sepa", help="SEPA payments and statements.").add_subparsers(dest="action", required=True)
    p = sepa.add_parser("pain001", help="Credit-transfer CSV → pain.001.")
    p.add_argument("csv")
    p.add_argument("--debtor-name", required=True)
    p.add_argument("--debtor-iban", required=True)
    p.add_argument("--debtor-bic", default="")
    p.add_argument("--message-id", default=None)
    p.add_argument("--execution-date", default=None, metavar="YYYY-MM-DD")
    p.add_argument("--output", "-o", default=None, metavar="FILE")
    p = sepa.add_parser("pain008", help="Direct-debit JSON → pain.008.")
    p.add_argument("file")
    p.add_argument("--output", "-o", default=None, metavar="FILE")
    p = sepa.add_parser("camt053", help="Show a camt.053 bank statement.")
    p.add_argument("file")
    p = sepa.add_parser("validate-iban", help="Validate an IBAN.")
    p.add_argument("iban")
    p = sepa.add_parser("reconcile", help="Match a statement against transfers and invoices.")
    p.add_argument("statement")
    p.add_argument("--transfers", nargs="*", default=[], metavar="PAIN001")
    p.add_argument("--invoices", nargs="*", default=[], metavar="INVOICE_JSON")

    # -- serve ------------------------------------------------------------
    p = sub.add_parser("serve", help="Start the HTTP API.")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--reload", action="store_true", help="Enable hot-reload (development mode).")
    p.add_argument("--open-browser", action="store_true", help="Open the API docs in a browser.")
    p.add_argument(
        "--log-level", default="warning", choices=["debug", "info", "warning", "error"],
        help="Uvicorn log level.",
    )

    return parser


def _dispatch(cli: AmtsboteCLI, args: argparse.Namespace) -> int | None:
    """Run the selected command; ``None`` when no command was given."""
    cmd, action = args.command, getattr(args, "action", None)

    if cmd == "account":
        if action == "add":
            return cli.account_add(
                args.name, args.type,
                tid=args.tid, benid=args.benid, pin=args.pin,
                dienstgeber_nr=args.dienstgeber_nr, elda_benutzer=args.elda_benutzer,
                elda_pin=args.elda_pin, api_key=args.api_key,
            )
        if action == "list":
            return cli.account_list(args.type)
        return cli.account_remove(args.name)

    if cmd == "session":
        return cli.session_login() if action == "login" else cli.session_logout()

    if cmd == "dashboard":
        return cli.dashboard(args.all_accounts, args.services, args.from_date, args.to_date)

    if cmd == "databox":
        if action == "list":
            return cli.databox_list(args.from_date, args.to_date)
        return cli.databox_download(args.applkey, args.output_dir)

    if cmd == "uva":
        if action == "validate":
            return cli.uva_validate(args.file)
        if action == "submit":
            return cli.uva_submit(args.file)
        return cli.uva_status(args.limit)

    if cmd == "zm":
        if action == "generate":
            return cli.zm_generate(args.year, args.quarter, args.csv, args.output)
        if action == "validate":
            return cli.zm_validate(args.file)
        return cli.zm_submit(args.file)

    if cmd == "uid":
        if action == "check":
            return cli.uid_check(args.uid, args.level)
        return cli.uid_batch(args.csv, args.output, args.level)

    if cmd == "erechnung":
        if action == "create":
            return cli.erechnung_create(args.file, args.fmt, args.output)
        if action == "validate":
            return cli.erechnung_validate(args.file)
        return cli.erechnung_calc(args.file)

    if cmd == "elda":
        if action == "validate":
            return cli.elda_validate(args.file, args.kind)
        if action == "anmelden":
            return cli.elda_anmelden(args.file)
        if action == "abmelden":
            return cli.elda_abmelden(args.file)
        return cli.elda_status(args.reference)

    if cmd == "fb":
        if action == "search":
            return cli.fb_search(args.name, args.fn, args.ort, args.max_hits)
        if action == "extract":
            return cli.fb_extract(args.fn)
        if action == "validate":
            return cli.fb_validate(args.fn)
        watch = args.watch_action
        if watch == "add":
            return cli.watch_add(args.fn, args.firma, args.notes)
        if watch == "list":
            return cli.watch_list()
        if watch == "remove":
            return cli.watch_remove(args.fn)
        return cli.watch_check()

    if cmd == "sepa":
        if action == "pain001":
            return cli.sepa_pain001(
                args.csv, args.debtor_name, args.debtor_iban, args.debtor_bic,
                args.message_id, args.execution_date, args.output,
            )
        if action == "pain008":
            return cli.sepa_pain008(args.file, args.output)
        if action == "camt053":
            return cli.sepa_camt053(args.file)
        if action == "validate-iban":
            return cli.sepa_validate_iban(args.iban)
        return cli.sepa_reconcile(args.statement, args.transfers, args.invoices)

    if cmd == "serve":
        return cli.serve(args.host, args.port, args.reload, args.open_browser, args.log_level)

    return None


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None, ctx: CLIContext | None = None) -> int:
    parser = _build_parser()
    args   = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        )

    if ctx is None:
        ctx = CLIContext(
            json_output=args.json,
            account_name=args.account,
            master_password_env=args.master_password_env,
        )
    cli = AmtsboteCLI(ctx)

    if args.version:
        cli.print_version()
        return 0

    try:
        rc = _dispatch(cli, args)
    except (AmtsboteError, OSError, ValueError) as exc:
        return ctx.fail(exc)
    except KeyboardInterrupt:
        print("\n✗  interrupted", file=sys.stderr)
        return 130
    finally:
        ctx.close()

    if rc is None:
        parser.print_help()
        return 0
    return rc


if __name__ == "__main__":
    sys.exit(main())
