"""
amtsbote.firmenbuch.watchlist
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Local watchlist of companies with change detection.

The list lives in one JSON file (``cfg.watchlist_path``, mode 0600)::

    {"entries": [{"fn": "FN123456a", "firma": "...", "snapshot": {...}, ...}]}

``check_all`` fetches every enabled entry on a small thread pool, then
compares each extract with the stored snapshot by canonical JSON (sorted
keys, no whitespace), so key order never registers as a change. An entry
without a snapshot reports a change on its first check. A failed fetch
is counted and logged; the entry keeps its previous state.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from ..config import cfg
from ..exceptions import AmtsboteError, CodecError
from ..identifiers import normalize_fn, validate_fn
from .models import FBExtract, canonical_json

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


def _parse_dt(raw: str | None) -> datetime | None:
    return datetime.fromisoformat(raw) if raw else None


@dataclass
class WatchlistEntry:
    fn:          str
    firma:       str = ""
    added_at:    datetime = field(default_factory=_now)
    last_check:  datetime | None = None
    last_status: str = ""
    notes:       str = ""
    enabled:     bool = True
    snapshot:    dict | None = None

    def to_dict(self) -> dict:
        return {
            "fn":          self.fn,
            "firma":       self.firma,
            "added_at":    self.added_at.isoformat(),
            "last_check":  self.last_check.isoformat() if self.last_check else None,
            "last_status": self.last_status,
            "notes":       self.notes,
            "enabled":     self.enabled,
            "snapshot":    self.snapshot,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "WatchlistEntry":
        return cls(
            fn=d["fn"],
            firma=d.get("firma", ""),
            added_at=_parse_dt(d.get("added_at")) or _now(),
            last_check=_parse_dt(d.get("last_check")),
            last_status=d.get("last_status", ""),
            notes=d.get("notes", ""),
            enabled=d.get("enabled", True),
            snapshot=d.get("snapshot"),
        )


@dataclass
class WatchlistChange:
    fn:             str
    firma:          str
    old_status:     str
    new_status:     str
    changed_fields: list[str] = field(default_factory=list)
    first_check:    bool = False

    def to_dict(self) -> dict:
        return {
            "fn":             self.fn,
            "firma":          self.firma,
            "old_status":     self.old_status,
            "new_status":     self.new_status,
            "changed_fields": self.changed_fields,
            "first_check":    self.first_check,
        }


@dataclass
class WatchlistCheckResult:
    items_checked: int = 0
    items_changed: int = 0
    items_failed:  int = 0
    changes:       list[WatchlistChange] = field(default_factory=list)
    failed:        dict[str, str] = field(default_factory=dict)   # fn → error message

    def to_dict(self) -> dict:
        return {
            "items_checked": self.items_checked,
            "items_changed": self.items_changed,
            "items_failed":  self.items_failed,
            "changes":       [c.to_dict() for c in self.changes],
            "failed":        self.failed,
        }


def diff_snapshots(old: dict | None, new: dict) -> list[str]:
    """Top-level keys whose canonical JSON differs."""
    old = old or {}
    keys = set(old) | set(new)
    return sorted(k for k in keys if canonical_json(old.get(k)) != canonical_json(new.get(k)))


class Watchlist:
    """JSON-backed list of watched register numbers, upserted by FN."""

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path) if path else cfg.watchlist_path
        self._lock = threading.Lock()
        self.entries: list[WatchlistEntry] = self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> list[WatchlistEntry]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            raise CodecError(f"watchlist {self.path} is not valid JSON", cause=exc) from exc
        return [WatchlistEntry.from_dict(e) for e in data.get("entries", [])]

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({"entries": [e.to_dict() for e in self.entries]}, indent=2, ensure_ascii=False)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
        os.chmod(tmp, 0o600)
        os.replace(tmp, self.path)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def add(self, fn: str, firma: str = "", notes: str = "") -> WatchlistEntry:
        """Insert or update the entry for *fn*; an update keeps history fields."""
        fn = normalize_fn(fn)
        validate_fn(fn)
        with self._lock:
            entry = self.find(fn)
            if entry is None:
                entry = WatchlistEntry(fn=fn, firma=firma, notes=notes)
                self.entries.append(entry)
            else:
                entry.firma = firma or entry.firma
                entry.notes = notes or entry.notes
                entry.enabled = True
            self.save()
        logger.info("Watching %s (%s)", fn, firma or "?")
        return entry

    def remove(self, fn: str) -> bool:
        fn = normalize_fn(fn)
        with self._lock:
            before = len(self.entries)
            self.entries = [e for e in self.entries if e.fn != fn]
            removed = len(self.entries) != before
            if removed:
                self.save()
        return removed

    def find(self, fn: str) -> WatchlistEntry | None:
        fn = normalize_fn(fn)
        return next((e for e in self.entries if e.fn == fn), None)

    def list(self, *, enabled_only: bool = False) -> list[WatchlistEntry]:
        return [e for e in self.entries if e.enabled or not enabled_only]

    def __len__(self) -> int:
        return len(self.entries)

    # ------------------------------------------------------------------
    # Change detection
    # ------------------------------------------------------------------

    def _apply(self, entry: WatchlistEntry, extract: FBExtract) -> WatchlistChange | None:
        snapshot = extract.to_dict()
        first = entry.snapshot is None
        changed = first or canonical_json(entry.snapshot) != canonical_json(snapshot)
        change = None
        if changed:
            change = WatchlistChange(
                fn=entry.fn,
                firma=extract.firma or entry.firma,
                old_status=entry.last_status,
                new_status=extract.status,
                changed_fields=[] if first else diff_snapshots(entry.snapshot, snapshot),
                first_check=first,
            )
            entry.snapshot = snapshot
        entry.firma = extract.firma or entry.firma
        entry.last_status = extract.status
        entry.last_check = _now()
        return change

    def check_all(
        self,
        client,
        *,
        max_workers: int | None = None,
        cancel:      threading.Event | None = None,
    ) -> WatchlistCheckResult:
        """Fetch every enabled entry via ``client.extract`` and record changes."""
        result = WatchlistCheckResult()
        entries = self.list(enabled_only=True)
        if not entries:
            return result

        workers = min(max_workers or cfg.watchlist_workers, len(entries))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fb-watch") as pool:
            futures = {pool.submit(client.extract, e.fn, cancel=cancel): e for e in entries}
            for fut in as_completed(futures):
                entry = futures[fut]
                result.items_checked += 1
                try:
                    extract = fut.result()
                except AmtsboteError as exc:
                    logger.warning("Watchlist check for %s failed: %s", entry.fn, exc)
                    result.items_failed += 1
                    result.failed[entry.fn] = str(exc)
                    continue
                change = self._apply(entry, extract)
                if change is not None:
                    result.items_changed += 1
                    result.changes.append(change)

        result.changes.sort(key=lambda c: c.fn)
        with self._lock:
            self.save()
        logger.info(
            "Watchlist check: %d checked, %d changed, %d failed",
            result.items_checked, result.items_changed, result.items_failed,
        )
        return result


__all__ = [
    "Watchlist",
    "WatchlistChange",
    "WatchlistCheckResult",
    "WatchlistEntry",
    "diff_snapshots",
]
