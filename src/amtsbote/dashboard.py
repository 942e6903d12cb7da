"""
amtsbote.dashboard
~~~~~~~~~~~~~~~~~~
One status line per account across FinanzOnline, ELDA and the companies
register, collected in parallel.

Key design decisions
--------------------
* One worker thread per account (bounded by ``cfg.dashboard_workers``);
  all workers share one ``SoapTransport`` connection pool, but each
  FinanzOnline account logs in with its own session.
* A failing account becomes a ``ServiceResult`` with ``status="error"``;
  it never aborts its siblings and no exception escapes ``run()``.
* A shared ``threading.Event`` cancels every in-flight call.
* Output order is deterministic: errors first, then most pending items,
  then account name.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date

from .config import cfg
from .credentials import Account, AccountType, CredentialStore
from .elda.client import ELDAClient
from .exceptions import AmtsboteError, CancelledError
from .firmenbuch.client import FirmenbuchClient
from .fonws.databox import DataboxService
from .fonws.session import SessionService
from .fonws.transport import SoapTransport

logger = logging.getLogger(__name__)

STATUS_OK      = "ok"
STATUS_PENDING = "pending"
STATUS_ERROR   = "error"

# filter token → account type
SERVICE_TOKENS = {
    "fo":           AccountType.FINANZONLINE,
    "finanzonline": AccountType.FINANZONLINE,
    "elda":         AccountType.ELDA,
    "fb":           AccountType.FIRMENBUCH,
    "firmenbuch":   AccountType.FIRMENBUCH,
}


def parse_service_filter(services) -> set[AccountType] | None:
    """``"fo, elda"`` or ``["fo", "elda"]`` → account types; empty means all."""
    if not services:
        return None
    if isinstance(services, str):
        services = services.split(",")
    selected = set()
    for token in services:
        token = token.strip().lower()
        if not token:
            continue
        if token not in SERVICE_TOKENS:
            raise ValueError(f"unknown service {token!r} (use fo, elda or fb)")
        selected.add(SERVICE_TOKENS[token])
    return selected or None


@dataclass
class ServiceResult:
    account:       str
    service_type:  str
    identifier:    str = ""
    status:        str = STATUS_OK
    pending_items: int = 0
    total_items:   int = 0
    details:       str = ""
    error:         str = ""

    @property
    def has_error(self) -> bool:
        return bool(self.error) or self.status == STATUS_ERROR

    def to_dict(self) -> dict:
        return {
            "account":       self.account,
            "service_type":  self.service_type,
            "identifier":    self.identifier,
            "status":        self.status,
            "pending_items": self.pending_items,
            "total_items":   self.total_items,
            "details":       self.details,
            "error":         self.error,
            "has_error":     self.has_error,
        }


def sort_results(results: list[ServiceResult]) -> list[ServiceResult]:
    return sorted(results, key=lambda r: (not r.has_error, -r.pending_items, r.account))


class Dashboard:
    """
    Usage::

        with SoapTransport() as transport:
            results = Dashboard(store, transport, services="fo").run()
    """

    def __init__(
        self,
        store:        CredentialStore,
        transport:    SoapTransport | None = None,
        *,
        services=None,
        from_date:    date | str | None = None,
        to_date:      date | str | None = None,
        max_workers:  int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.store        = store
        self.transport    = transport or SoapTransport()
        self.services     = parse_service_filter(services)
        self.from_date    = from_date
        self.to_date      = to_date
        self.max_workers  = max_workers or cfg.dashboard_workers
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        self.cancel_event.set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, account_names: list[str] | None = None) -> list[ServiceResult]:
        """Check every selected account and return the sorted results."""
        if account_names is None:
            accounts = self.store.list_accounts()
            targets: list[Account | str] = [
                a for a in accounts if self.services is None or AccountType(a.type) in self.services
            ]
        else:
            targets = list(account_names)
        if not targets:
            return []

        results: list[ServiceResult] = []
        lock = threading.Lock()

        def task(target: Account | str) -> None:
            result = self._check_target(target)
            if result is not None:
                with lock:
                    results.append(result)

        logger.info("Checking %d account(s) with %d worker(s)", len(targets), self.max_workers)
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(targets)), thread_name_prefix="dashboard") as pool:
            for fut in [pool.submit(task, t) for t in targets]:
                fut.result()
        return sort_results(results)

    # ------------------------------------------------------------------
    # Per-account checks
    # ------------------------------------------------------------------

    def _check_target(self, target: Account | str) -> ServiceResult | None:
        name = target if isinstance(target, str) else target.name
        try:
            account = self.store.get_account(name) if isinstance(target, str) else target
            if self.services is not None and AccountType(account.type) not in self.services:
                return None
            if self.cancel_event.is_set():
                raise CancelledError("cancelled")
            return self.check_account(account)
        except AmtsboteError as exc:
            logger.warning("Dashboard check for %s failed: %s", name, exc)
            return ServiceResult(account=name, service_type=self._type_of(target), status=STATUS_ERROR, error=str(exc))
        except Exception as exc:
            # any other failure stays inside this account's record
            logger.exception("Unexpected error while checking %s", name)
            return ServiceResult(
                account=name, service_type=self._type_of(target), status=STATUS_ERROR,
                error=f"{type(exc).__name__}: {exc}",
            )

    @staticmethod
    def _type_of(target: Account | str) -> str:
        return "unknown" if isinstance(target, str) else str(target.type)

    def check_account(self, account: Account) -> ServiceResult:
        kind = AccountType(account.type)
        if kind is AccountType.ELDA:
            return self._check_elda(account)
        if kind is AccountType.FIRMENBUCH:
            return self._check_firmenbuch(account)
        return self._check_finanzonline(account)

    def _check_finanzonline(self, account: Account) -> ServiceResult:
        result = ServiceResult(account=account.name, service_type=str(AccountType.FINANZONLINE), identifier=account.tid)
        sessions = SessionService(self.transport)
        session = sessions.login(
            account.tid, account.benid, account.pin,
            account_name=account.name, cancel=self.cancel_event,
        )
        try:
            entries = DataboxService(self.transport).list(
                session, self.from_date, self.to_date, cancel=self.cancel_event,
            )
        finally:
            try:
                sessions.logout(session, cancel=self.cancel_event)
            except AmtsboteError as exc:
                logger.warning("Logout for %s failed: %s", account.name, exc)

        result.total_items = len(entries)
        result.pending_items = sum(1 for e in entries if e.action_required)
        if result.pending_items:
            result.status = STATUS_PENDING
            result.details = f"{result.total_items} docs, {result.pending_items} require action"
        else:
            result.details = f"{result.total_items} docs"
        return result

    def _check_elda(self, account: Account) -> ServiceResult:
        client = ELDAClient(account.dienstgeber_nr, transport=self.transport)
        conn = client.test_connection(cancel=self.cancel_event)
        result = ServiceResult(account=account.name, service_type=str(AccountType.ELDA), identifier=account.dienstgeber_nr)
        if conn.connected:
            result.details = f"connected ({conn.latency_ms} ms)"
        else:
            result.status = STATUS_ERROR
            result.error = conn.error or "connection failed"
        return result

    def _check_firmenbuch(self, account: Account) -> ServiceResult:
        client = FirmenbuchClient(account.api_key, transport=self.transport)
        resp = client.search(account.name, max_hits=1, cancel=self.cancel_event)
        return ServiceResult(
            account=account.name,
            service_type=str(AccountType.FIRMENBUCH),
            identifier=account.identifier,
            details=f"reachable, {resp.total_count} hit(s)",
        )


def summary(results: list[ServiceResult]) -> str:
    """Plain-text table of dashboard results."""
    lines = [
        "",
        f"{'ACCOUNT':<30}{'SERVICE':<15}{'IDENTIFIER':<17}{'PENDING':<9}STATUS",
        "─" * 79,
    ]
    for r in results:
        name = r.account if len(r.account) <= 29 else r.account[:26] + "..."
        pending = str(r.pending_items) if r.pending_items else "-"
        status = "ERROR" if r.has_error else r.status
        lines.append(f"{name:<30}{r.service_type:<15}{r.identifier[:16]:<17}{pending:<9}{status}")
        if r.error:
            lines.append(f"{'':<30}└ {r.error}")
    lines.append("─" * 79)
    errors = sum(1 for r in results if r.has_error)
    pending = sum(r.pending_items for r in results)
    tail = f"TOTAL: {len(results)} services, {pending} pending"
    if errors:
        tail += f", {errors} errors"
    lines.append(tail)
    return "\n".join(lines)


__all__ = [
    "Dashboard",
    "SERVICE_TOKENS",
    "ServiceResult",
    "parse_service_filter",
    "sort_results",
    "summary",
]
