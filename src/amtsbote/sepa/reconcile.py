"""
amtsbote.sepa.reconcile
~~~~~~~~~~~~~~~~~~~~~~~
Match booked statement entries against what we sent and what we billed.

Debits are matched to credit-transfer transactions by end-to-end id.
Credits are matched to open invoices whose number appears in the
remittance text and whose payable amount equals the booked amount.
Every entry, transaction and invoice is used at most once; first match
in statement order wins.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

from ..erechnung.model import Invoice
from ..money import format_major
from .models import CreditTransaction, CreditTransfer, Statement, StatementEntry

logger = logging.getLogger(__name__)

MATCH_TRANSFER = "transfer"
MATCH_INVOICE  = "invoice"


@dataclass
class ReconciliationMatch:
    entry:      StatementEntry
    kind:       str            # transfer | invoice
    reference:  str            # end-to-end id or invoice number
    expected:   int            # amount on our side, minor units
    difference: int = 0        # booked minus expected

    def to_dict(self) -> dict:
        return {
            "kind":       self.kind,
            "reference":  self.reference,
            "amount":     self.entry.amount,
            "expected":   self.expected,
            "difference": self.difference,
            "entry":      self.entry.to_dict(),
        }


@dataclass
class ReconciliationReport:
    matches:           list[ReconciliationMatch] = field(default_factory=list)
    unmatched_entries: list[StatementEntry] = field(default_factory=list)

    @property
    def matched_count(self) -> int:
        return len(self.matches)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched_entries)

    def to_dict(self) -> dict:
        return {
            "matched":   self.matched_count,
            "unmatched": self.unmatched_count,
            "matches":   [m.to_dict() for m in self.matches],
            "unmatched_entries": [e.to_dict() for e in self.unmatched_entries],
        }

    def summary(self) -> str:
        lines = [
            "=" * 60,
            "  Reconciliation",
            "=" * 60,
            f"  Matched:    {self.matched_count}",
            f"  Unmatched:  {self.unmatched_count}",
            "─" * 60,
        ]
        for m in self.matches:
            sign = "+" if m.entry.is_credit else "-"
            lines.append(f"  {sign}{format_major(m.entry.amount):>12}  {m.kind:<9} {m.reference}")
        for e in self.unmatched_entries:
            sign = "+" if e.is_credit else "-"
            text = e.remittance_info or e.counterparty_name or e.reference
            lines.append(f"  {sign}{format_major(e.amount):>12}  {'?':<9} {text[:40]}")
        lines.append("=" * 60)
        return "\n".join(lines)


def _mentions(text: str, number: str) -> bool:
    # whole-token match so "RE-1" does not hit "RE-10"
    pattern = r"(?<![0-9A-Za-z])" + re.escape(number) + r"(?![0-9A-Za-z])"
    return re.search(pattern, text, re.IGNORECASE) is not None


def _flatten(transfers: Iterable[CreditTransfer | CreditTransaction]) -> list[CreditTransaction]:
    out: list[CreditTransaction] = []
    for t in transfers:
        if isinstance(t, CreditTransfer):
            out.extend(t.transactions)
        else:
            out.append(t)
    return out


def reconcile(
    statement: Statement,
    transfers: Iterable[CreditTransfer | CreditTransaction] = (),
    invoices:  Iterable[Invoice] = (),
) -> ReconciliationReport:
    """Pair statement entries with outgoing transfers and open invoices."""
    by_e2e = {tx.end_to_end_id: tx for tx in _flatten(transfers) if tx.end_to_end_id}
    open_invoices = [inv for inv in invoices if inv.id]
    report = ReconciliationReport()

    for entry in statement.entries:
        match = None
        if entry.is_debit and entry.end_to_end_id:
            tx = by_e2e.pop(entry.end_to_end_id, None)
            if tx is not None:
                match = ReconciliationMatch(
                    entry=entry,
                    kind=MATCH_TRANSFER,
                    reference=tx.end_to_end_id,
                    expected=tx.amount,
                    difference=entry.amount - tx.amount,
                )
        elif entry.is_credit:
            text = " ".join(filter(None, (entry.remittance_info, entry.end_to_end_id, entry.reference)))
            for inv in open_invoices:
                if inv.payable_amount == entry.amount and _mentions(text, inv.id):
                    open_invoices.remove(inv)
                    match = ReconciliationMatch(
                        entry=entry,
                        kind=MATCH_INVOICE,
                        reference=inv.id,
                        expected=inv.payable_amount,
                    )
                    break

        if match is None:
            report.unmatched_entries.append(entry)
            logger.debug("unmatched %s entry %s", entry.credit_debit, entry.reference)
        else:
            report.matches.append(match)

    logger.info(
        "reconciled statement %s: %d matched, %d unmatched",
        statement.id, report.matched_count, report.unmatched_count,
    )
    return report


__all__ = [
    "MATCH_INVOICE",
    "MATCH_TRANSFER",
    "ReconciliationMatch",
    "ReconciliationReport",
    "reconcile",
]
