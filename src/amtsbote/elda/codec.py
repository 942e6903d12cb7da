"""
amtsbote.elda.codec
~~~~~~~~~~~~~~~~~~~
XML for ELDA declarations.

Both documents open with a ``Kopf`` (employer number, creation date,
``MeldungsArt`` ``AN`` or ``AB``). Amounts travel as integer cents.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import date

from ..exceptions import CodecError
from .models import (
    Abmeldung,
    Anmeldung,
    Arbeitszeit,
    Beschaeftigung,
    ELDAResponse,
    Entgelt,
)
from .. import xmlutil


ELDA_NS = "https://www.elda.at/elda"


def _kopf(parent: ET.Element, dienstgeber_nr: str, art: str, datum: date | None) -> None:
    kopf = xmlutil.sub(parent, "Kopf")
    xmlutil.sub(kopf, "DienstgeberNr", dienstgeber_nr)
    xmlutil.sub(kopf, "Datum", (datum or date.today()).isoformat())
    xmlutil.sub(kopf, "MeldungsArt", art)


def _stunden(value: float) -> str:
    # 38.5 stays 38.5, 40.0 becomes 40
    return f"{value:g}"


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------

def anmeldung_element(a: Anmeldung, dienstgeber_nr: str = "", *, datum: date | None = None) -> ET.Element:
    root = ET.Element("Anmeldung", {"xmlns": ELDA_NS})
    _kopf(root, dienstgeber_nr or a.dienstgeber_nr, "AN", datum)
    xmlutil.sub(root, "SVNummer", a.sv_nummer)
    xmlutil.sub(root, "Vorname", a.vorname)
    xmlutil.sub(root, "Nachname", a.nachname)
    xmlutil.sub(root, "Geburtsdatum", a.geburtsdatum.isoformat() if a.geburtsdatum else "")
    xmlutil.sub(root, "Geschlecht", a.geschlecht)
    xmlutil.sub(root, "Eintrittsdatum", a.eintrittsdatum.isoformat() if a.eintrittsdatum else "")

    b = xmlutil.sub(root, "Beschaeftigung")
    xmlutil.sub(b, "Art", a.beschaeftigung.art)
    xmlutil.sub(b, "Taetigkeit", a.beschaeftigung.taetigkeit)
    xmlutil.sub(b, "Kollektiv", a.beschaeftigung.kollektiv)
    xmlutil.sub(b, "Einstufung", a.beschaeftigung.einstufung)

    az = xmlutil.sub(root, "Arbeitszeit")
    xmlutil.sub(az, "Stunden", _stunden(a.arbeitszeit.stunden))
    xmlutil.sub(az, "Tage", a.arbeitszeit.tage)

    e = xmlutil.sub(root, "Entgelt")
    xmlutil.sub(e, "Brutto", a.entgelt.brutto)
    xmlutil.sub(e, "Netto", a.entgelt.netto)
    xmlutil.sub(e, "Sonderzahl", a.entgelt.sonderzahl)
    return root


def abmeldung_element(a: Abmeldung, dienstgeber_nr: str = "", *, datum: date | None = None) -> ET.Element:
    root = ET.Element("Abmeldung", {"xmlns": ELDA_NS})
    _kopf(root, dienstgeber_nr or a.dienstgeber_nr, "AB", datum)
    xmlutil.sub(root, "SVNummer", a.sv_nummer)
    xmlutil.sub(root, "Austrittsdatum", a.austrittsdatum.isoformat() if a.austrittsdatum else "")
    xmlutil.sub(root, "Grund", a.grund)
    if a.abfertigung:
        xmlutil.sub(root, "Abfertigung", a.abfertigung)
    if a.urlaubsersatz:
        xmlutil.sub(root, "Urlaubsersatz", a.urlaubsersatz)
    return root


def encode_anmeldung(a: Anmeldung, dienstgeber_nr: str = "", *, datum: date | None = None) -> bytes:
    return xmlutil.to_bytes(anmeldung_element(a, dienstgeber_nr, datum=datum))


def encode_abmeldung(a: Abmeldung, dienstgeber_nr: str = "", *, datum: date | None = None) -> bytes:
    return xmlutil.to_bytes(abmeldung_element(a, dienstgeber_nr, datum=datum))


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------

def _date(el: ET.Element, path: str) -> date | None:
    raw = xmlutil.text(el, path)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise CodecError(f"{path}: invalid date {raw!r}", cause=exc) from exc


def _expect(root: ET.Element, name: str) -> None:
    if xmlutil.local(root.tag) != name:
        raise CodecError(f"expected {name}, got {xmlutil.local(root.tag)}")


def decode_anmeldung(data: bytes | str) -> Anmeldung:
    root = xmlutil.parse(data, "Anmeldung XML")
    _expect(root, "Anmeldung")
    try:
        stunden = float(xmlutil.text(root, "Arbeitszeit/Stunden") or 0)
    except ValueError as exc:
        raise CodecError("Arbeitszeit/Stunden: not a number", cause=exc) from exc
    return Anmeldung(
        sv_nummer=xmlutil.text(root, "SVNummer"),
        vorname=xmlutil.text(root, "Vorname"),
        nachname=xmlutil.text(root, "Nachname"),
        geburtsdatum=_date(root, "Geburtsdatum"),
        eintrittsdatum=_date(root, "Eintrittsdatum"),
        geschlecht=xmlutil.text(root, "Geschlecht"),
        beschaeftigung=Beschaeftigung(
            art=xmlutil.text(root, "Beschaeftigung/Art"),
            taetigkeit=xmlutil.text(root, "Beschaeftigung/Taetigkeit"),
            kollektiv=xmlutil.text(root, "Beschaeftigung/Kollektiv"),
            einstufung=xmlutil.text(root, "Beschaeftigung/Einstufung"),
        ),
        arbeitszeit=Arbeitszeit(
            stunden=stunden,
            tage=xmlutil.int_text(root, "Arbeitszeit/Tage"),
        ),
        entgelt=Entgelt(
            brutto=xmlutil.int_text(root, "Entgelt/Brutto"),
            netto=xmlutil.int_text(root, "Entgelt/Netto"),
            sonderzahl=xmlutil.int_text(root, "Entgelt/Sonderzahl"),
        ),
        dienstgeber_nr=xmlutil.text(root, "Kopf/DienstgeberNr"),
    )


def decode_abmeldung(data: bytes | str) -> Abmeldung:
    root = xmlutil.parse(data, "Abmeldung XML")
    _expect(root, "Abmeldung")
    return Abmeldung(
        sv_nummer=xmlutil.text(root, "SVNummer"),
        austrittsdatum=_date(root, "Austrittsdatum"),
        grund=xmlutil.text(root, "Grund"),
        abfertigung=xmlutil.int_text(root, "Abfertigung"),
        urlaubsersatz=xmlutil.int_text(root, "Urlaubsersatz"),
        dienstgeber_nr=xmlutil.text(root, "Kopf/DienstgeberNr"),
    )


def decode_response(payload: ET.Element) -> ELDAResponse:
    return ELDAResponse(
        rc=xmlutil.int_text(payload, "rc"),
        msg=xmlutil.text(payload, "msg"),
        reference=xmlutil.text(payload, "referenz"),
    )


__all__ = [
    "ELDA_NS",
    "abmeldung_element",
    "anmeldung_element",
    "decode_abmeldung",
    "decode_anmeldung",
    "decode_response",
    "encode_abmeldung",
    "encode_anmeldung",
]
