"""
amtsbote.firmenbuch.models
~~~~~~~~~~~~~~~~~~~~~~~~~~
Company-register (Firmenbuch) records.

Vocabulary fields hold the plain wire string; the ``str`` enums below
compare equal to it, so ``extract.status == FBStatus.AKTIV`` works
without forcing unknown register values into an enum.

Money is in cents, shares in basis points (``2500`` = 25 %).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from ..money import format_major


class Rechtsform(str, Enum):
    GMBH           = "GmbH"
    AG             = "AG"
    KG             = "KG"
    OG             = "OG"
    EU             = "e.U."
    GENOSSENSCHAFT = "GenmbH"
    VEREIN         = "Verein"
    STIFTUNG       = "Stiftung"

    def __str__(self) -> str:
        return self.value


class FBStatus(str, Enum):
    AKTIV          = "aktiv"
    GELOESCHT      = "geloescht"
    IN_LIQUIDATION = "in_liquidation"
    INSOLVENT      = "insolvent"

    def __str__(self) -> str:
        return self.value


class Funktion(str, Enum):
    GESCHAEFTSFUEHRER = "GF"
    VORSTAND          = "VOR"
    PROKURIST         = "PRO"
    AUFSICHTSRAT      = "AR"
    KOMPLEMENTAER     = "KOMP"
    KOMMANDITIST      = "KOMM"

    def __str__(self) -> str:
        return self.value


class VertretungsArt(str, Enum):
    SELBSTAENDIG = "selbstaendig"
    GEMEINSAM    = "gemeinsam"

    def __str__(self) -> str:
        return self.value


FUNKTION_LABELS = {
    Funktion.GESCHAEFTSFUEHRER: "Geschäftsführer",
    Funktion.VORSTAND:          "Vorstand",
    Funktion.PROKURIST:         "Prokurist",
    Funktion.AUFSICHTSRAT:      "Aufsichtsrat",
    Funktion.KOMPLEMENTAER:     "Komplementär",
    Funktion.KOMMANDITIST:      "Kommanditist",
}


def _iso(d: date | None) -> str | None:
    return d.isoformat() if d else None


def _from_iso(raw: str | None) -> date | None:
    return date.fromisoformat(raw) if raw else None


@dataclass
class FBAddress:
    strasse: str = ""
    plz:     str = ""
    ort:     str = ""
    land:    str = ""

    def __str__(self) -> str:
        return ", ".join(p for p in (self.strasse, f"{self.plz} {self.ort}".strip(), self.land) if p)

    def to_dict(self) -> dict:
        return {"strasse": self.strasse, "plz": self.plz, "ort": self.ort, "land": self.land}

    @classmethod
    def from_dict(cls, d: dict | None) -> "FBAddress":
        d = d or {}
        return cls(d.get("strasse", ""), d.get("plz", ""), d.get("ort", ""), d.get("land", ""))


@dataclass
class FBPerson:
    vorname:        str
    nachname:       str
    funktion:       str = ""
    vertretungsart: str = ""
    geburtsdatum:   date | None = None
    seit:           date | None = None
    bis:            date | None = None

    @property
    def full_name(self) -> str:
        return f"{self.vorname} {self.nachname}".strip()

    @property
    def funktion_label(self) -> str:
        try:
            return FUNKTION_LABELS[Funktion(self.funktion)]
        except ValueError:
            return self.funktion

    def to_dict(self) -> dict:
        return {
            "vorname":        self.vorname,
            "nachname":       self.nachname,
            "funktion":       self.funktion,
            "vertretungsart": self.vertretungsart,
            "geburtsdatum":   _iso(self.geburtsdatum),
            "seit":           _iso(self.seit),
            "bis":            _iso(self.bis),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "FBPerson":
        return cls(
            vorname=d.get("vorname", ""),
            nachname=d.get("nachname", ""),
            funktion=d.get("funktion", ""),
            vertretungsart=d.get("vertretungsart", ""),
            geburtsdatum=_from_iso(d.get("geburtsdatum")),
            seit=_from_iso(d.get("seit")),
            bis=_from_iso(d.get("bis")),
        )


@dataclass
class FBShareholder:
    name:         str
    fn:           str = ""           # set when the shareholder is itself a company
    anteil:       int = 0            # basis points
    stammeinlage: int = 0            # cents
    seit:         date | None = None

    @property
    def anteil_prozent(self) -> float:
        return self.anteil / 100

    def to_dict(self) -> dict:
        return {
            "name":         self.name,
            "fn":           self.fn,
            "anteil":       self.anteil,
            "stammeinlage": self.stammeinlage,
            "seit":         _iso(self.seit),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "FBShareholder":
        return cls(
            name=d.get("name", ""),
            fn=d.get("fn", ""),
            anteil=int(d.get("anteil") or 0),
            stammeinlage=int(d.get("stammeinlage") or 0),
            seit=_from_iso(d.get("seit")),
        )


@dataclass
class FBSearchResult:
    fn:         str
    firma:      str
    rechtsform: str = ""
    sitz:       str = ""
    status:     str = ""

    def to_dict(self) -> dict:
        return {
            "fn":         self.fn,
            "firma":      self.firma,
            "rechtsform": self.rechtsform,
            "sitz":       self.sitz,
            "status":     self.status,
        }


@dataclass
class FBSearchResponse:
    results:     list[FBSearchResult] = field(default_factory=list)
    total_count: int = 0

    def to_dict(self) -> dict:
        return {"total_count": self.total_count, "results": [r.to_dict() for r in self.results]}


@dataclass
class FBExtract:
    fn:                str
    firma:             str
    rechtsform:        str = ""
    sitz:              str = ""
    adresse:           FBAddress = field(default_factory=FBAddress)
    stammkapital:      int = 0
    waehrung:          str = "EUR"
    status:            str = ""
    gruendungsdatum:   date | None = None
    letzte_aenderung:  date | None = None
    geschaeftsfuehrer: list[FBPerson] = field(default_factory=list)
    gesellschafter:    list[FBShareholder] = field(default_factory=list)
    gegenstand:        str = ""
    uid:               str = ""

    @property
    def is_active(self) -> bool:
        return self.status == FBStatus.AKTIV

    def to_dict(self) -> dict:
        return {
            "fn":                self.fn,
            "firma":             self.firma,
            "rechtsform":        self.rechtsform,
            "sitz":              self.sitz,
            "adresse":           self.adresse.to_dict(),
            "stammkapital":      self.stammkapital,
            "waehrung":          self.waehrung,
            "status":            self.status,
            "gruendungsdatum":   _iso(self.gruendungsdatum),
            "letzte_aenderung":  _iso(self.letzte_aenderung),
            "geschaeftsfuehrer": [p.to_dict() for p in self.geschaeftsfuehrer],
            "gesellschafter":    [g.to_dict() for g in self.gesellschafter],
            "gegenstand":        self.gegenstand,
            "uid":               self.uid,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "FBExtract":
        return cls(
            fn=d.get("fn", ""),
            firma=d.get("firma", ""),
            rechtsform=d.get("rechtsform", ""),
            sitz=d.get("sitz", ""),
            adresse=FBAddress.from_dict(d.get("adresse")),
            stammkapital=int(d.get("stammkapital") or 0),
            waehrung=d.get("waehrung") or "EUR",
            status=d.get("status", ""),
            gruendungsdatum=_from_iso(d.get("gruendungsdatum")),
            letzte_aenderung=_from_iso(d.get("letzte_aenderung")),
            geschaeftsfuehrer=[FBPerson.from_dict(p) for p in d.get("geschaeftsfuehrer") or []],
            gesellschafter=[FBShareholder.from_dict(g) for g in d.get("gesellschafter") or []],
            gegenstand=d.get("gegenstand", ""),
            uid=d.get("uid", ""),
        )

    def canonical_json(self) -> str:
        """Key-order independent serialisation used for change detection."""
        return canonical_json(self.to_dict())

    def summary(self) -> str:
        lines = [
            "=" * 60,
            f"  {self.firma}",
            f"  {self.fn}  ·  {self.rechtsform}  ·  {self.status or 'unknown'}",
            "=" * 60,
            f"  Sitz:          {self.sitz}",
            f"  Adresse:       {self.adresse}",
            f"  Stammkapital:  {format_major(self.stammkapital)} {self.waehrung}",
        ]
        if self.uid:
            lines.append(f"  UID:           {self.uid}")
        if self.gruendungsdatum:
            lines.append(f"  Gegründet:     {self.gruendungsdatum.strftime('%d.%m.%Y')}")
        if self.gegenstand:
            lines.append(f"  Gegenstand:    {self.gegenstand}")
        if self.geschaeftsfuehrer:
            lines.append("─" * 60)
            for p in self.geschaeftsfuehrer:
                lines.append(f"  {p.funktion_label:<16} {p.full_name}  ({p.vertretungsart or '-'})")
        if self.gesellschafter:
            lines.append("─" * 60)
            for g in self.gesellschafter:
                lines.append(f"  {g.anteil_prozent:>6.2f} %  {g.name}")
        lines.append("=" * 60)
        return "\n".join(lines)


def canonical_json(data) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "FBAddress",
    "FBExtract",
    "FBPerson",
    "FBSearchResponse",
    "FBSearchResult",
    "FBShareholder",
    "FBStatus",
    "Funktion",
    "Rechtsform",
    "VertretungsArt",
    "canonical_json",
]
