"""
amtsbote.elda.models
~~~~~~~~~~~~~~~~~~~~
Employee on-boarding (Anmeldung) and off-boarding (Abmeldung) declarations
for the Austrian social-insurance channel ELDA.

Amounts are cents. Dates are ``datetime.date``. Validation uses the ELDA
error catalogue codes so that local and remote rejections read the same.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

from ..exceptions import CodecError
from ..identifiers import IdentifierError, validate_sv_nummer, validate_sv_nummer_with_birth_date
from ..models import DocumentStatus, ValidationResult


# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

VOLLZEIT     = "vollzeit"
TEILZEIT     = "teilzeit"
GERINGFUEGIG = "geringfuegig"

EMPLOYMENT_TYPES = (VOLLZEIT, TEILZEIT, GERINGFUEGIG)

GENDERS = ("M", "W")

EXIT_REASONS = {
    "K":  "Kündigung",
    "E":  "Einvernehmlich",
    "EN": "Entlassung",
    "A":  "Vorzeitiger Austritt",
    "B":  "Befristung",
}

ERROR_CODES = {
    # validation
    "E001": "SV-Nummer ist ungültig",
    "E002": "Beitragsgruppe fehlt oder ist ungültig",
    "E003": "Zeitraum ist ungültig",
    "E004": "Betrag ist ungültig",
    "E005": "Datum ist ungültig",
    "E006": "Pflichtfeld fehlt",
    "E007": "Formatfehler",
    "E008": "Meldung bereits vorhanden",
    # authentication
    "E101": "ELDA-Zertifikat ist abgelaufen",
    "E102": "Keine Berechtigung für Dienstgeber",
    "E103": "ELDA-Zertifikat ist ungültig",
    "E104": "ELDA-Session ist abgelaufen",
    # business
    "E201": "Dienstnehmer nicht gefunden",
    "E202": "Dienstnehmer bereits angemeldet",
    "E203": "Dienstnehmer nicht angemeldet",
    "E204": "Meldung wurde bereits gesendet",
    "E205": "Korrektur nicht möglich",
    # system
    "E901": "ELDA-Server nicht erreichbar",
    "E902": "ELDA-System in Wartung",
    "E903": "ELDA-Anfrage Zeitüberschreitung",
    # warnings, the declaration is accepted
    "W001": "Geringfügige Beschäftigung",
    "W002": "Höchstbeitragsgrundlage überschritten",
    "W003": "Rückwirkende Meldung",
}

RETRYABLE_CODES = frozenset({"E104", "E901", "E902", "E903"})


def describe_elda_code(code: str) -> str:
    return ERROR_CODES.get(code.upper(), f"Unbekannter ELDA-Code {code}")


def is_warning_code(code: str) -> bool:
    return code.upper().startswith("W")


# ---------------------------------------------------------------------------
# Anmeldung parts
# ---------------------------------------------------------------------------

@dataclass
class Beschaeftigung:
    art:        str = VOLLZEIT
    taetigkeit: str = ""
    kollektiv:  str = ""
    einstufung: str = ""


@dataclass
class Arbeitszeit:
    stunden: float = 38.5
    tage:    int = 5


@dataclass
class Entgelt:
    """Monthly gross/net and yearly special payments, all cents."""

    brutto:     int = 0
    netto:      int = 0
    sonderzahl: int = 0


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------

@dataclass
class Anmeldung:
    sv_nummer:      str
    vorname:        str
    nachname:       str
    geburtsdatum:   date | None
    eintrittsdatum: date | None
    geschlecht:     str = "M"
    beschaeftigung: Beschaeftigung = field(default_factory=Beschaeftigung)
    arbeitszeit:    Arbeitszeit = field(default_factory=Arbeitszeit)
    entgelt:        Entgelt = field(default_factory=Entgelt)
    dienstgeber_nr: str = ""
    # lifecycle
    status:         DocumentStatus = DocumentStatus.DRAFT
    reference:      str = ""
    created_at:     datetime = field(default_factory=datetime.now)

    def validate(self, *, today: date | None = None) -> ValidationResult:
        result = ValidationResult()
        today = today or date.today()

        try:
            if self.geburtsdatum is not None:
                validate_sv_nummer_with_birth_date(self.sv_nummer, self.geburtsdatum, today=today)
            else:
                validate_sv_nummer(self.sv_nummer)
        except IdentifierError as exc:
            result.add("E001", "sv_nummer", str(exc))

        for name in ("vorname", "nachname"):
            if not getattr(self, name).strip():
                result.add("E006", name, f"{name} is required")
        if self.geburtsdatum is None:
            result.add("E006", "geburtsdatum", "geburtsdatum is required")
        if self.eintrittsdatum is None:
            result.add("E006", "eintrittsdatum", "eintrittsdatum is required")
        elif self.geburtsdatum is not None and self.eintrittsdatum <= self.geburtsdatum:
            result.add("E005", "eintrittsdatum", "eintrittsdatum must be after geburtsdatum")

        if self.geschlecht not in GENDERS:
            result.add("E007", "geschlecht", "geschlecht must be M or W")
        if self.beschaeftigung.art not in EMPLOYMENT_TYPES:
            result.add(
                "E007", "beschaeftigung.art",
                f"employment type must be one of {', '.join(EMPLOYMENT_TYPES)}",
            )

        if self.arbeitszeit.stunden < 0:
            result.add("E004", "arbeitszeit.stunden", "stunden must be non-negative")
        if not 0 <= self.arbeitszeit.tage <= 7:
            result.add("E004", "arbeitszeit.tage", "tage must be between 0 and 7")
        for name in ("brutto", "netto", "sonderzahl"):
            if getattr(self.entgelt, name) < 0:
                result.add("E004", f"entgelt.{name}", f"{name} must be non-negative")

        if self.beschaeftigung.art == GERINGFUEGIG:
            result.warn("W001", "beschaeftigung.art", ERROR_CODES["W001"])
        if self.eintrittsdatum is not None and self.eintrittsdatum < today:
            result.warn("W003", "eintrittsdatum", ERROR_CODES["W003"])
        return result

    def copy_as_draft(self) -> "Anmeldung":
        d = self.to_dict()
        for k in ("status", "reference", "created_at"):
            d.pop(k)
        return Anmeldung.from_dict(d)

    def to_dict(self) -> dict:
        return {
            "sv_nummer":      self.sv_nummer,
            "vorname":        self.vorname,
            "nachname":       self.nachname,
            "geburtsdatum":   _iso(self.geburtsdatum),
            "geschlecht":     self.geschlecht,
            "eintrittsdatum": _iso(self.eintrittsdatum),
            "beschaeftigung": {
                "art":        self.beschaeftigung.art,
                "taetigkeit": self.beschaeftigung.taetigkeit,
                "kollektiv":  self.beschaeftigung.kollektiv,
                "einstufung": self.beschaeftigung.einstufung,
            },
            "arbeitszeit": {
                "stunden": self.arbeitszeit.stunden,
                "tage":    self.arbeitszeit.tage,
            },
            "entgelt": {
                "brutto":     self.entgelt.brutto,
                "netto":      self.entgelt.netto,
                "sonderzahl": self.entgelt.sonderzahl,
            },
            "dienstgeber_nr": self.dienstgeber_nr,
            "status":         str(self.status),
            "reference":      self.reference,
            "created_at":     self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Anmeldung":
        b = d.get("beschaeftigung") or {}
        a = d.get("arbeitszeit") or {}
        e = d.get("entgelt") or {}
        obj = cls(
            sv_nummer=str(d.get("sv_nummer", "")).replace(" ", ""),
            vorname=d.get("vorname", ""),
            nachname=d.get("nachname", ""),
            geburtsdatum=_date(d.get("geburtsdatum")),
            eintrittsdatum=_date(d.get("eintrittsdatum")),
            geschlecht=d.get("geschlecht") or "M",
            beschaeftigung=Beschaeftigung(
                art=b.get("art") or VOLLZEIT,
                taetigkeit=b.get("taetigkeit", ""),
                kollektiv=b.get("kollektiv", ""),
                einstufung=b.get("einstufung", ""),
            ),
            arbeitszeit=Arbeitszeit(
                stunden=float(a.get("stunden", 38.5)),
                tage=int(a.get("tage", 5)),
            ),
            entgelt=Entgelt(
                brutto=int(e.get("brutto") or 0),
                netto=int(e.get("netto") or 0),
                sonderzahl=int(e.get("sonderzahl") or 0),
            ),
            dienstgeber_nr=d.get("dienstgeber_nr", ""),
            reference=d.get("reference") or "",
        )
        if d.get("status"):
            obj.status = DocumentStatus(d["status"])
        if d.get("created_at"):
            obj.created_at = datetime.fromisoformat(d["created_at"])
        return obj

    @classmethod
    def from_employee(cls, d: dict) -> "Anmeldung":
        """
        Build from the flat employee-file shape::

            {"sv_nummer": "...", "first_name": "...", "last_name": "...",
             "date_of_birth": "1989-01-15", "start_date": "2025-02-01",
             "employer_vsnr": "12345678", "job_title": "...",
             "weekly_hours": 38.5, "monthly_gross": 350000}

        Gender defaults to ``M``, hours to 38.5 and days to 5.
        """
        hours = float(d.get("weekly_hours") or 38.5)
        return cls(
            sv_nummer=str(d.get("sv_nummer", "")).replace(" ", ""),
            vorname=d.get("first_name", ""),
            nachname=d.get("last_name", ""),
            geburtsdatum=_date(d.get("date_of_birth")),
            eintrittsdatum=_date(d.get("start_date")),
            geschlecht=d.get("gender") or "M",
            beschaeftigung=Beschaeftigung(
                art=VOLLZEIT,
                taetigkeit=d.get("job_title", ""),
            ),
            arbeitszeit=Arbeitszeit(stunden=hours, tage=5),
            entgelt=Entgelt(brutto=int(d.get("monthly_gross") or 0)),
            dienstgeber_nr=d.get("employer_vsnr", ""),
        )


@dataclass
class Abmeldung:
    sv_nummer:      str
    austrittsdatum: date | None
    grund:          str
    abfertigung:    int = 0
    urlaubsersatz:  int = 0
    dienstgeber_nr: str = ""
    # lifecycle
    status:         DocumentStatus = DocumentStatus.DRAFT
    reference:      str = ""
    created_at:     datetime = field(default_factory=datetime.now)

    def validate(self) -> ValidationResult:
        result = ValidationResult()
        try:
            validate_sv_nummer(self.sv_nummer)
        except IdentifierError as exc:
            result.add("E001", "sv_nummer", str(exc))
        if self.austrittsdatum is None:
            result.add("E006", "austrittsdatum", "austrittsdatum is required")
        if self.grund not in EXIT_REASONS:
            result.add(
                "E007", "grund",
                f"grund must be one of {', '.join(EXIT_REASONS)}",
            )
        for name in ("abfertigung", "urlaubsersatz"):
            if getattr(self, name) < 0:
                result.add("E004", name, f"{name} must be non-negative")
        return result

    def copy_as_draft(self) -> "Abmeldung":
        return Abmeldung(
            sv_nummer=self.sv_nummer, austrittsdatum=self.austrittsdatum,
            grund=self.grund, abfertigung=self.abfertigung,
            urlaubsersatz=self.urlaubsersatz, dienstgeber_nr=self.dienstgeber_nr,
        )

    def to_dict(self) -> dict:
        return {
            "sv_nummer":      self.sv_nummer,
            "austrittsdatum": _iso(self.austrittsdatum),
            "grund":          self.grund,
            "grund_text":     EXIT_REASONS.get(self.grund, ""),
            "abfertigung":    self.abfertigung,
            "urlaubsersatz":  self.urlaubsersatz,
            "dienstgeber_nr": self.dienstgeber_nr,
            "status":         str(self.status),
            "reference":      self.reference,
            "created_at":     self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Abmeldung":
        obj = cls(
            sv_nummer=str(d.get("sv_nummer", "")).replace(" ", ""),
            austrittsdatum=_date(d.get("austrittsdatum")),
            grund=str(d.get("grund", "")).upper(),
            abfertigung=int(d.get("abfertigung") or 0),
            urlaubsersatz=int(d.get("urlaubsersatz") or 0),
            dienstgeber_nr=d.get("dienstgeber_nr", ""),
            reference=d.get("reference") or "",
        )
        if d.get("status"):
            obj.status = DocumentStatus(d["status"])
        if d.get("created_at"):
            obj.created_at = datetime.fromisoformat(d["created_at"])
        return obj


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

@dataclass
class ELDAResponse:
    rc:        int
    msg:       str = ""
    reference: str = ""

    @property
    def ok(self) -> bool:
        return self.rc == 0

    def to_dict(self) -> dict:
        return {"rc": self.rc, "msg": self.msg, "reference": self.reference}


@dataclass
class ConnectionTestResult:
    connected:   bool
    latency_ms:  int
    server_time: str = ""
    error:       str = ""

    def to_dict(self) -> dict:
        return {
            "connected":   self.connected,
            "latency_ms":  self.latency_ms,
            "server_time": self.server_time,
            "error":       self.error,
        }


def _iso(d: date | None) -> str | None:
    return d.isoformat() if d else None


def _date(value) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise CodecError(f"invalid date {value!r} (use YYYY-MM-DD)", cause=exc) from exc


__all__ = [
    "Abmeldung",
    "Anmeldung",
    "Arbeitszeit",
    "Beschaeftigung",
    "ConnectionTestResult",
    "ELDAResponse",
    "EMPLOYMENT_TYPES",
    "ERROR_CODES",
    "EXIT_REASONS",
    "Entgelt",
    "GENDERS",
    "GERINGFUEGIG",
    "RETRYABLE_CODES",
    "TEILZEIT",
    "VOLLZEIT",
    "describe_elda_code",
    "is_warning_code",
]
