"""
amtsbote.erechnung.cii
~~~~~~~~~~~~~~~~~~~~~~
ZUGFeRD / Factur-X rendering: a UN/CEFACT Cross Industry Invoice.

Same semantic model as the UBL dialect; only the tree differs. Dates use
``udt:DateTimeString`` with ``format="102"`` (``YYYYMMDD``).
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import date, datetime

from ..exceptions import CodecError
from ..money import format_major
from .model import (
    BankAccount,
    Invoice,
    Line,
    Party,
    TaxSubtotal,
    decimal_text,
    to_decimal,
)
from .. import xmlutil


RSM_NS = "urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100"
RAM_NS = "urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:100"
QDT_NS = "urn:un:unece:uncefact:data:standard:QualifiedDataType:100"
UDT_NS = "urn:un:unece:uncefact:data:standard:UnqualifiedDataType:100"

GUIDELINE_ID = "urn:factur-x.eu:1p0:extended"


def _date_time(parent: ET.Element, tag: str, value: date) -> None:
    xmlutil.sub(xmlutil.sub(parent, tag), "udt:DateTimeString", value.strftime("%Y%m%d"), format="102")


def _read_date(el: ET.Element | None, path: str) -> date | None:
    raw = xmlutil.text(el, path + "/DateTimeString")
    if not raw:
        return None
    try:
        return datetime.strptime(raw, "%Y%m%d").date()
    except ValueError as exc:
        raise CodecError(f"{path}: invalid date {raw!r} (format 102 is YYYYMMDD)", cause=exc) from exc


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------

def _party(parent: ET.Element, tag: str, party: Party) -> None:
    p = xmlutil.sub(parent, tag)
    xmlutil.sub_if(p, "ram:ID", party.id)
    xmlutil.sub(p, "ram:Name", party.name)
    if party.contact_name or party.contact_phone:
        c = xmlutil.sub(p, "ram:DefinedTradeContact")
        xmlutil.sub_if(c, "ram:PersonName", party.contact_name)
        if party.contact_phone:
            xmlutil.sub(xmlutil.sub(c, "ram:TelephoneUniversalCommunication"), "ram:CompleteNumber", party.contact_phone)

    addr = xmlutil.sub(p, "ram:PostalTradeAddress")
    xmlutil.sub_if(addr, "ram:PostcodeCode", party.postal_code)
    xmlutil.sub_if(addr, "ram:LineOne", party.street)
    xmlutil.sub_if(addr, "ram:LineTwo", party.additional_street)
    xmlutil.sub_if(addr, "ram:CityName", party.city)
    xmlutil.sub(addr, "ram:CountryID", party.country)

    if party.email:
        xmlutil.sub(xmlutil.sub(p, "ram:URIUniversalCommunication"), "ram:URIID", party.email, schemeID="EM")
    if party.vat_number:
        xmlutil.sub(xmlutil.sub(p, "ram:SpecifiedTaxRegistration"), "ram:ID", party.vat_number, schemeID="VA")
    if party.tax_id:
        xmlutil.sub(xmlutil.sub(p, "ram:SpecifiedTaxRegistration"), "ram:ID", party.tax_id, schemeID="FC")


def _line(parent: ET.Element, line: Line) -> None:
    el = xmlutil.sub(parent, "ram:IncludedSupplyChainTradeLineItem")
    xmlutil.sub(xmlutil.sub(el, "ram:AssociatedDocumentLineDocument"), "ram:LineID", line.id)

    product = xmlutil.sub(el, "ram:SpecifiedTradeProduct")
    if line.gtin:
        xmlutil.sub(product, "ram:GlobalID", line.gtin, schemeID="0160")
    xmlutil.sub_if(product, "ram:SellerAssignedID", line.item_id)
    xmlutil.sub(product, "ram:Name", line.description)
    xmlutil.sub_if(product, "ram:Description", line.detailed_description)

    agreement = xmlutil.sub(el, "ram:SpecifiedLineTradeAgreement")
    price = xmlutil.sub(agreement, "ram:NetPriceProductTradePrice")
    xmlutil.sub(price, "ram:ChargeAmount", format_major(line.unit_price))

    delivery = xmlutil.sub(el, "ram:SpecifiedLineTradeDelivery")
    xmlutil.sub(delivery, "ram:BilledQuantity", decimal_text(line.quantity), unitCode=line.unit_code)

    settlement = xmlutil.sub(el, "ram:SpecifiedLineTradeSettlement")
    tax = xmlutil.sub(settlement, "ram:ApplicableTradeTax")
    xmlutil.sub(tax, "ram:TypeCode", "VAT")
    xmlutil.sub(tax, "ram:CategoryCode", line.tax_category)
    xmlutil.sub(tax, "ram:RateApplicablePercent", decimal_text(line.tax_percent))
    summation = xmlutil.sub(settlement, "ram:SpecifiedTradeSettlementLineMonetarySummation")
    xmlutil.sub(summation, "ram:LineTotalAmount", format_major(line.line_total))


def cii_element(inv: Invoice) -> ET.Element:
    if not inv.tax_subtotals:
        inv.calc_totals()

    root = ET.Element("rsm:CrossIndustryInvoice", {
        "xmlns:rsm": RSM_NS,
        "xmlns:ram": RAM_NS,
        "xmlns:qdt": QDT_NS,
        "xmlns:udt": UDT_NS,
    })
    ctx = xmlutil.sub(root, "rsm:ExchangedDocumentContext")
    xmlutil.sub(xmlutil.sub(ctx, "ram:GuidelineSpecifiedDocumentContextParameter"), "ram:ID", GUIDELINE_ID)

    doc = xmlutil.sub(root, "rsm:ExchangedDocument")
    xmlutil.sub(doc, "ram:ID", inv.id)
    xmlutil.sub(doc, "ram:TypeCode", inv.invoice_type)
    if inv.issue_date:
        _date_time(doc, "ram:IssueDateTime", inv.issue_date)
    if inv.notes:
        xmlutil.sub(xmlutil.sub(doc, "ram:IncludedNote"), "ram:Content", inv.notes)

    tx = xmlutil.sub(root, "rsm:SupplyChainTradeTransaction")
    for line in inv.lines:
        _line(tx, line)

    agreement = xmlutil.sub(tx, "ram:ApplicableHeaderTradeAgreement")
    xmlutil.sub_if(agreement, "ram:BuyerReference", inv.buyer_reference)
    if inv.seller:
        _party(agreement, "ram:SellerTradeParty", inv.seller)
    if inv.buyer:
        _party(agreement, "ram:BuyerTradeParty", inv.buyer)
    if inv.order_reference:
        xmlutil.sub(
            xmlutil.sub(agreement, "ram:BuyerOrderReferencedDocument"),
            "ram:IssuerAssignedID", inv.order_reference,
        )

    xmlutil.sub(tx, "ram:ApplicableHeaderTradeDelivery")

    settlement = xmlutil.sub(tx, "ram:ApplicableHeaderTradeSettlement")
    xmlutil.sub(settlement, "ram:InvoiceCurrencyCode", inv.currency)
    means = inv.payment_means_code()
    if means:
        pm = xmlutil.sub(settlement, "ram:SpecifiedTradeSettlementPaymentMeans")
        xmlutil.sub(pm, "ram:TypeCode", means)
        if inv.bank_account:
            acct = xmlutil.sub(pm, "ram:PayeePartyCreditorFinancialAccount")
            xmlutil.sub(acct, "ram:IBANID", inv.bank_account.iban)
            xmlutil.sub_if(acct, "ram:AccountName", inv.bank_account.name)
            if inv.bank_account.bic:
                xmlutil.sub(
                    xmlutil.sub(pm, "ram:PayeeSpecifiedCreditorFinancialInstitution"),
                    "ram:BICID", inv.bank_account.bic,
                )

    for ts in inv.tax_subtotals:
        tax = xmlutil.sub(settlement, "ram:ApplicableTradeTax")
        xmlutil.sub(tax, "ram:CalculatedAmount", format_major(ts.tax_amount))
        xmlutil.sub(tax, "ram:TypeCode", "VAT")
        xmlutil.sub_if(tax, "ram:ExemptionReason", ts.exemption_reason)
        xmlutil.sub(tax, "ram:BasisAmount", format_major(ts.taxable_amount))
        xmlutil.sub(tax, "ram:CategoryCode", ts.tax_category)
        xmlutil.sub(tax, "ram:RateApplicablePercent", decimal_text(ts.tax_percent))

    if inv.payment_terms or inv.due_date:
        terms = xmlutil.sub(settlement, "ram:SpecifiedTradePaymentTerms")
        xmlutil.sub_if(terms, "ram:Description", inv.payment_terms)
        if inv.due_date:
            _date_time(terms, "ram:DueDateDateTime", inv.due_date)

    sums = xmlutil.sub(settlement, "ram:SpecifiedTradeSettlementHeaderMonetarySummation")
    xmlutil.sub(sums, "ram:LineTotalAmount", format_major(inv.tax_exclusive_amount))
    xmlutil.sub(sums, "ram:TaxBasisTotalAmount", format_major(inv.tax_exclusive_amount))
    xmlutil.sub(sums, "ram:TaxTotalAmount", format_major(inv.tax_amount), currencyID=inv.currency)
    xmlutil.sub(sums, "ram:GrandTotalAmount", format_major(inv.tax_inclusive_amount))
    xmlutil.sub(sums, "ram:DuePayableAmount", format_major(inv.payable_amount))
    return root


def encode_cii(inv: Invoice) -> bytes:
    return xmlutil.to_bytes(cii_element(inv))


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------

def _decode_party(p: ET.Element | None) -> Party | None:
    if p is None:
        return None
    addr = xmlutil.child(p, "PostalTradeAddress")
    party = Party(
        name=xmlutil.text(p, "Name"),
        country=xmlutil.text(addr, "CountryID"),
        id=xmlutil.text(p, "ID"),
        street=xmlutil.text(addr, "LineOne"),
        additional_street=xmlutil.text(addr, "LineTwo"),
        city=xmlutil.text(addr, "CityName"),
        postal_code=xmlutil.text(addr, "PostcodeCode"),
        email=xmlutil.text(p, "URIUniversalCommunication/URIID"),
        contact_name=xmlutil.text(p, "DefinedTradeContact/PersonName"),
        contact_phone=xmlutil.text(p, "DefinedTradeContact/TelephoneUniversalCommunication/CompleteNumber"),
    )
    for reg in xmlutil.children(p, "SpecifiedTaxRegistration"):
        el = xmlutil.child(reg, "ID")
        if el is None:
            continue
        if el.get("schemeID") == "FC":
            party.tax_id = xmlutil.text(el)
        else:
            party.vat_number = xmlutil.text(el)
    return party


def _decode_line(el: ET.Element) -> Line:
    qty = xmlutil.find(el, "SpecifiedLineTradeDelivery/BilledQuantity")
    tax = xmlutil.find(el, "SpecifiedLineTradeSettlement/ApplicableTradeTax")
    return Line(
        id=xmlutil.text(el, "AssociatedDocumentLineDocument/LineID"),
        description=xmlutil.text(el, "SpecifiedTradeProduct/Name"),
        quantity=to_decimal(xmlutil.text(qty), "BilledQuantity"),
        unit_code=qty.get("unitCode", "") if qty is not None else "",
        unit_price=xmlutil.minor_text(el, "SpecifiedLineTradeAgreement/NetPriceProductTradePrice/ChargeAmount"),
        tax_category=xmlutil.text(tax, "CategoryCode"),
        tax_percent=to_decimal(xmlutil.text(tax, "RateApplicablePercent"), "RateApplicablePercent"),
        line_total=xmlutil.minor_text(
            el, "SpecifiedLineTradeSettlement/SpecifiedTradeSettlementLineMonetarySummation/LineTotalAmount",
        ),
        detailed_description=xmlutil.text(el, "SpecifiedTradeProduct/Description"),
        item_id=xmlutil.text(el, "SpecifiedTradeProduct/SellerAssignedID"),
        gtin=xmlutil.text(el, "SpecifiedTradeProduct/GlobalID"),
    )


def decode_cii(data: bytes | str) -> Invoice:
    root = xmlutil.parse(data, "CII invoice")
    if xmlutil.local(root.tag) != "CrossIndustryInvoice":
        raise CodecError(f"expected CrossIndustryInvoice, got {xmlutil.local(root.tag)}")

    doc = xmlutil.child(root, "ExchangedDocument")
    tx = xmlutil.child(root, "SupplyChainTradeTransaction")
    agreement = xmlutil.child(tx, "ApplicableHeaderTradeAgreement")
    settlement = xmlutil.child(tx, "ApplicableHeaderTradeSettlement")
    pm = xmlutil.child(settlement, "SpecifiedTradeSettlementPaymentMeans")
    sums = xmlutil.child(settlement, "SpecifiedTradeSettlementHeaderMonetarySummation")

    bank = None
    acct = xmlutil.child(pm, "PayeePartyCreditorFinancialAccount")
    if acct is not None:
        bank = BankAccount(
            iban=xmlutil.text(acct, "IBANID"),
            bic=xmlutil.text(pm, "PayeeSpecifiedCreditorFinancialInstitution/BICID"),
            name=xmlutil.text(acct, "AccountName"),
        )

    subtotals = [
        TaxSubtotal(
            tax_category=xmlutil.text(tax, "CategoryCode"),
            tax_percent=to_decimal(xmlutil.text(tax, "RateApplicablePercent"), "RateApplicablePercent"),
            taxable_amount=xmlutil.minor_text(tax, "BasisAmount"),
            tax_amount=xmlutil.minor_text(tax, "CalculatedAmount"),
            exemption_reason=xmlutil.text(tax, "ExemptionReason"),
        )
        for tax in xmlutil.children(settlement, "ApplicableTradeTax")
    ]

    return Invoice(
        id=xmlutil.text(doc, "ID"),
        invoice_type=xmlutil.text(doc, "TypeCode"),
        issue_date=_read_date(doc, "IssueDateTime"),
        due_date=_read_date(settlement, "SpecifiedTradePaymentTerms/DueDateDateTime"),
        currency=xmlutil.text(settlement, "InvoiceCurrencyCode"),
        buyer_reference=xmlutil.text(agreement, "BuyerReference"),
        order_reference=xmlutil.text(agreement, "BuyerOrderReferencedDocument/IssuerAssignedID"),
        seller=_decode_party(xmlutil.child(agreement, "SellerTradeParty")),
        buyer=_decode_party(xmlutil.child(agreement, "BuyerTradeParty")),
        lines=[_decode_line(el) for el in xmlutil.children(tx, "IncludedSupplyChainTradeLineItem")],
        payment_means=xmlutil.text(pm, "TypeCode"),
        payment_terms=xmlutil.text(settlement, "SpecifiedTradePaymentTerms/Description"),
        bank_account=bank,
        notes=xmlutil.text(doc, "IncludedNote/Content"),
        tax_subtotals=subtotals,
        tax_exclusive_amount=xmlutil.minor_text(sums, "TaxBasisTotalAmount"),
        tax_amount=xmlutil.minor_text(sums, "TaxTotalAmount"),
        tax_inclusive_amount=xmlutil.minor_text(sums, "GrandTotalAmount"),
        payable_amount=xmlutil.minor_text(sums, "DuePayableAmount"),
    )


__all__ = ["GUIDELINE_ID", "cii_element", "decode_cii", "encode_cii"]
