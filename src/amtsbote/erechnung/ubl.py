"""
amtsbote.erechnung.ubl
~~~~~~~~~~~~~~~~~~~~~~
XRechnung rendering: an OASIS UBL 2.1 ``Invoice`` document.

Amounts are written in major units with two decimals and a
``currencyID`` attribute; quantities and rates are written exactly as the
model holds them.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET

from ..exceptions import CodecError
from ..money import format_major
from .model import (
    BankAccount,
    Invoice,
    Line,
    Party,
    TaxSubtotal,
    decimal_text,
    parse_date,
    to_decimal,
)
from .. import xmlutil


UBL_INVOICE_NS = "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
CAC_NS         = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
CBC_NS         = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"

CUSTOMIZATION_ID = "urn:cen.eu:en16931:2017#compliant#urn:xoev-de:kosit:standard:xrechnung_2.3"
PROFILE_ID       = "urn:fdc:peppol.eu:2017:poacc:billing:01:1.0"


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------

def _amount(parent: ET.Element, tag: str, cents: int, currency: str) -> ET.Element:
    return xmlutil.sub(parent, tag, format_major(cents), currencyID=currency)


def _tax_scheme(parent: ET.Element) -> None:
    xmlutil.sub(xmlutil.sub(parent, "cac:TaxScheme"), "cbc:ID", "VAT")


def _party(parent: ET.Element, tag: str, party: Party) -> None:
    p = xmlutil.sub(xmlutil.sub(parent, tag), "cac:Party")
    if party.id:
        xmlutil.sub(xmlutil.sub(p, "cac:PartyIdentification"), "cbc:ID", party.id)
    xmlutil.sub(xmlutil.sub(p, "cac:PartyName"), "cbc:Name", party.name)

    addr = xmlutil.sub(p, "cac:PostalAddress")
    xmlutil.sub_if(addr, "cbc:StreetName", party.street)
    xmlutil.sub_if(addr, "cbc:AdditionalStreetName", party.additional_street)
    xmlutil.sub_if(addr, "cbc:CityName", party.city)
    xmlutil.sub_if(addr, "cbc:PostalZone", party.postal_code)
    xmlutil.sub(xmlutil.sub(addr, "cac:Country"), "cbc:IdentificationCode", party.country)

    if party.vat_number:
        ts = xmlutil.sub(p, "cac:PartyTaxScheme")
        xmlutil.sub(ts, "cbc:CompanyID", party.vat_number)
        _tax_scheme(ts)
    if party.tax_id:
        ts = xmlutil.sub(p, "cac:PartyTaxScheme")
        xmlutil.sub(ts, "cbc:CompanyID", party.tax_id)
        xmlutil.sub(xmlutil.sub(ts, "cac:TaxScheme"), "cbc:ID", "FC")

    if party.contact_name or party.contact_phone or party.email:
        c = xmlutil.sub(p, "cac:Contact")
        xmlutil.sub_if(c, "cbc:Name", party.contact_name)
        xmlutil.sub_if(c, "cbc:Telephone", party.contact_phone)
        xmlutil.sub_if(c, "cbc:ElectronicMail", party.email)


def _line(parent: ET.Element, line: Line, currency: str) -> None:
    el = xmlutil.sub(parent, "cac:InvoiceLine")
    xmlutil.sub(el, "cbc:ID", line.id)
    xmlutil.sub(el, "cbc:InvoicedQuantity", decimal_text(line.quantity), unitCode=line.unit_code)
    _amount(el, "cbc:LineExtensionAmount", line.line_total, currency)

    item = xmlutil.sub(el, "cac:Item")
    xmlutil.sub_if(item, "cbc:Description", line.detailed_description)
    xmlutil.sub(item, "cbc:Name", line.description)
    if line.item_id:
        xmlutil.sub(xmlutil.sub(item, "cac:SellersItemIdentification"), "cbc:ID", line.item_id)
    if line.gtin:
        xmlutil.sub(xmlutil.sub(item, "cac:StandardItemIdentification"), "cbc:ID", line.gtin, schemeID="0160")
    cat = xmlutil.sub(item, "cac:ClassifiedTaxCategory")
    xmlutil.sub(cat, "cbc:ID", line.tax_category)
    xmlutil.sub(cat, "cbc:Percent", decimal_text(line.tax_percent))
    _tax_scheme(cat)

    _amount(xmlutil.sub(el, "cac:Price"), "cbc:PriceAmount", line.unit_price, currency)


def ubl_element(inv: Invoice) -> ET.Element:
    """
    Build the UBL tree. Totals are calculated first when the invoice has
    no VAT breakdown yet.
    """
    if not inv.tax_subtotals:
        inv.calc_totals()
    cur = inv.currency

    root = ET.Element("Invoice", {
        "xmlns":     UBL_INVOICE_NS,
        "xmlns:cac": CAC_NS,
        "xmlns:cbc": CBC_NS,
    })
    xmlutil.sub(root, "cbc:CustomizationID", CUSTOMIZATION_ID)
    xmlutil.sub(root, "cbc:ProfileID", PROFILE_ID)
    xmlutil.sub(root, "cbc:ID", inv.id)
    xmlutil.sub(root, "cbc:IssueDate", inv.issue_date.isoformat() if inv.issue_date else "")
    if inv.due_date:
        xmlutil.sub(root, "cbc:DueDate", inv.due_date.isoformat())
    xmlutil.sub(root, "cbc:InvoiceTypeCode", inv.invoice_type)
    xmlutil.sub_if(root, "cbc:Note", inv.notes)
    xmlutil.sub(root, "cbc:DocumentCurrencyCode", cur)
    xmlutil.sub_if(root, "cbc:BuyerReference", inv.buyer_reference)
    if inv.order_reference:
        xmlutil.sub(xmlutil.sub(root, "cac:OrderReference"), "cbc:ID", inv.order_reference)

    if inv.seller:
        _party(root, "cac:AccountingSupplierParty", inv.seller)
    if inv.buyer:
        _party(root, "cac:AccountingCustomerParty", inv.buyer)

    means = inv.payment_means_code()
    if means:
        pm = xmlutil.sub(root, "cac:PaymentMeans")
        xmlutil.sub(pm, "cbc:PaymentMeansCode", means)
        if inv.bank_account:
            acct = xmlutil.sub(pm, "cac:PayeeFinancialAccount")
            xmlutil.sub(acct, "cbc:ID", inv.bank_account.iban)
            xmlutil.sub_if(acct, "cbc:Name", inv.bank_account.name)
            if inv.bank_account.bic:
                xmlutil.sub(xmlutil.sub(acct, "cac:FinancialInstitutionBranch"), "cbc:ID", inv.bank_account.bic)
    if inv.payment_terms:
        xmlutil.sub(xmlutil.sub(root, "cac:PaymentTerms"), "cbc:Note", inv.payment_terms)

    total = xmlutil.sub(root, "cac:TaxTotal")
    _amount(total, "cbc:TaxAmount", inv.tax_amount, cur)
    for ts in inv.tax_subtotals:
        sub = xmlutil.sub(total, "cac:TaxSubtotal")
        _amount(sub, "cbc:TaxableAmount", ts.taxable_amount, cur)
        _amount(sub, "cbc:TaxAmount", ts.tax_amount, cur)
        cat = xmlutil.sub(sub, "cac:TaxCategory")
        xmlutil.sub(cat, "cbc:ID", ts.tax_category)
        xmlutil.sub(cat, "cbc:Percent", decimal_text(ts.tax_percent))
        xmlutil.sub_if(cat, "cbc:TaxExemptionReason", ts.exemption_reason)
        _tax_scheme(cat)

    lmt = xmlutil.sub(root, "cac:LegalMonetaryTotal")
    _amount(lmt, "cbc:LineExtensionAmount", inv.tax_exclusive_amount, cur)
    _amount(lmt, "cbc:TaxExclusiveAmount", inv.tax_exclusive_amount, cur)
    _amount(lmt, "cbc:TaxInclusiveAmount", inv.tax_inclusive_amount, cur)
    _amount(lmt, "cbc:PayableAmount", inv.payable_amount, cur)

    for line in inv.lines:
        _line(root, line, cur)
    return root


def encode_ubl(inv: Invoice) -> bytes:
    return xmlutil.to_bytes(ubl_element(inv))


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------

def _decode_party(el: ET.Element | None) -> Party | None:
    p = xmlutil.child(el, "Party")
    if p is None:
        return None
    addr = xmlutil.child(p, "PostalAddress")
    party = Party(
        name=xmlutil.text(p, "PartyName/Name"),
        country=xmlutil.text(addr, "Country/IdentificationCode"),
        id=xmlutil.text(p, "PartyIdentification/ID"),
        street=xmlutil.text(addr, "StreetName"),
        additional_street=xmlutil.text(addr, "AdditionalStreetName"),
        city=xmlutil.text(addr, "CityName"),
        postal_code=xmlutil.text(addr, "PostalZone"),
        contact_name=xmlutil.text(p, "Contact/Name"),
        contact_phone=xmlutil.text(p, "Contact/Telephone"),
        email=xmlutil.text(p, "Contact/ElectronicMail"),
    )
    for ts in xmlutil.children(p, "PartyTaxScheme"):
        if xmlutil.text(ts, "TaxScheme/ID") == "VAT":
            party.vat_number = xmlutil.text(ts, "CompanyID")
        else:
            party.tax_id = xmlutil.text(ts, "CompanyID")
    return party


def _decode_line(el: ET.Element) -> Line:
    item = xmlutil.child(el, "Item")
    qty  = xmlutil.child(el, "InvoicedQuantity")
    return Line(
        id=xmlutil.text(el, "ID"),
        description=xmlutil.text(item, "Name"),
        quantity=to_decimal(xmlutil.text(el, "InvoicedQuantity"), "InvoicedQuantity"),
        unit_code=qty.get("unitCode", "") if qty is not None else "",
        unit_price=xmlutil.minor_text(el, "Price/PriceAmount"),
        tax_category=xmlutil.text(item, "ClassifiedTaxCategory/ID"),
        tax_percent=to_decimal(xmlutil.text(item, "ClassifiedTaxCategory/Percent"), "Percent"),
        line_total=xmlutil.minor_text(el, "LineExtensionAmount"),
        detailed_description=xmlutil.text(item, "Description"),
        item_id=xmlutil.text(item, "SellersItemIdentification/ID"),
        gtin=xmlutil.text(item, "StandardItemIdentification/ID"),
    )


def decode_ubl(data: bytes | str) -> Invoice:
    root = xmlutil.parse(data, "UBL invoice")
    if xmlutil.local(root.tag) != "Invoice":
        raise CodecError(f"expected UBL Invoice, got {xmlutil.local(root.tag)}")

    bank = None
    pm = xmlutil.child(root, "PaymentMeans")
    acct = xmlutil.child(pm, "PayeeFinancialAccount")
    if acct is not None:
        bank = BankAccount(
            iban=xmlutil.text(acct, "ID"),
            bic=xmlutil.text(acct, "FinancialInstitutionBranch/ID"),
            name=xmlutil.text(acct, "Name"),
        )

    total = xmlutil.child(root, "TaxTotal")
    subtotals = [
        TaxSubtotal(
            tax_category=xmlutil.text(sub, "TaxCategory/ID"),
            tax_percent=to_decimal(xmlutil.text(sub, "TaxCategory/Percent"), "Percent"),
            taxable_amount=xmlutil.minor_text(sub, "TaxableAmount"),
            tax_amount=xmlutil.minor_text(sub, "TaxAmount"),
            exemption_reason=xmlutil.text(sub, "TaxCategory/TaxExemptionReason"),
        )
        for sub in xmlutil.children(total, "TaxSubtotal")
    ]
    lmt = xmlutil.child(root, "LegalMonetaryTotal")

    return Invoice(
        id=xmlutil.text(root, "ID"),
        invoice_type=xmlutil.text(root, "InvoiceTypeCode"),
        issue_date=parse_date(xmlutil.text(root, "IssueDate"), "IssueDate"),
        due_date=parse_date(xmlutil.text(root, "DueDate"), "DueDate"),
        currency=xmlutil.text(root, "DocumentCurrencyCode"),
        buyer_reference=xmlutil.text(root, "BuyerReference"),
        order_reference=xmlutil.text(root, "OrderReference/ID"),
        seller=_decode_party(xmlutil.child(root, "AccountingSupplierParty")),
        buyer=_decode_party(xmlutil.child(root, "AccountingCustomerParty")),
        lines=[_decode_line(el) for el in xmlutil.children(root, "InvoiceLine")],
        payment_means=xmlutil.text(pm, "PaymentMeansCode"),
        payment_terms=xmlutil.text(root, "PaymentTerms/Note"),
        bank_account=bank,
        notes=xmlutil.text(root, "Note"),
        tax_subtotals=subtotals,
        tax_exclusive_amount=xmlutil.minor_text(lmt, "TaxExclusiveAmount"),
        tax_amount=xmlutil.minor_text(total, "TaxAmount"),
        tax_inclusive_amount=xmlutil.minor_text(lmt, "TaxInclusiveAmount"),
        payable_amount=xmlutil.minor_text(lmt, "PayableAmount"),
    )


__all__ = [
    "CUSTOMIZATION_ID",
    "PROFILE_ID",
    "UBL_INVOICE_NS",
    "decode_ubl",
    "encode_ubl",
    "ubl_element",
]
