# Overview: DIAN electronic-invoice document (UBL 2.1 XML, CUFE) and the pluggable signer.

"""
Compliance document generation

The XML is built from the persisted invoice only; amounts use the same
tax-inclusive convention as the invoice itself, so LegalMonetaryTotal
reconciles with the stored subtotal/tax/total.

SIGNING: a DocumentSigner is registered on the app as
``app.extensions["konta.document_signer"]``. Without one, documents are
served unsigned and ``sign()`` raises SigningNotConfiguredError; nothing
pretends to sign.
"""

from __future__ import annotations

import hashlib
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from flask import current_app

from ..models import Invoice
from ..money import included_tax_cents, tax_base_cents
from . import settings_service

NS = {
    "": "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2",
    "cac": "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2",
    "cbc": "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2",
    "ext": "urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2",
    "sts": "dian:gov:co:facturaelectronica:Structures-2-1",
}
for _prefix, _uri in NS.items():
    ET.register_namespace(_prefix, _uri)

SIGNER_EXTENSION_KEY = "konta.document_signer"

TAX_SCHEME_IVA = ("01", "IVA")
INVOICE_TYPE_CODE = "01"


class ComplianceError(Exception):
    """Raised when a compliance document cannot be produced."""


class SigningNotConfiguredError(ComplianceError):
    """Raised when signing is requested but no certificate-backed signer is registered."""


@dataclass(frozen=True)
class CompanyInfo:
    name: str
    nit: str
    resolution_number: str
    technical_key: str = ""
    environment: str = "2"
    currency: str = "COP"

    @classmethod
    def from_config(cls, config, settings: dict | None = None) -> "CompanyInfo":
        """Issuer data; edited company settings take precedence over the config."""
        settings = settings or {}
        return cls(
            name=settings.get("name") or config["COMPANY_NAME"],
            nit=settings.get("nit") or config["COMPANY_NIT"],
            resolution_number=settings.get("resolution_number") or config["DIAN_RESOLUTION_NUMBER"],
            technical_key=config.get("DIAN_TECHNICAL_KEY", ""),
            environment=str(config.get("DIAN_ENVIRONMENT", "2")),
            currency=config.get("CURRENCY", "COP"),
        )


class DocumentSigner:
    """Signs a serialized XML document (XAdES-BES with the issuer certificate)."""

    configured = True

    def sign(self, xml: bytes) -> bytes:
        raise NotImplementedError


class UnconfiguredSigner(DocumentSigner):
    configured = False

    def sign(self, xml: bytes) -> bytes:
        raise SigningNotConfiguredError("No signing certificate is configured")


def current_company() -> CompanyInfo:
    return CompanyInfo.from_config(current_app.config, settings_service.get_company_settings())


def get_signer() -> DocumentSigner:
    return current_app.extensions.get(SIGNER_EXTENSION_KEY) or UnconfiguredSigner()


def format_amount(cents: int) -> str:
    """Minor units to a decimal string with two places (12345 -> "123.45")."""
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


def _format_rate(bps: int) -> str:
    return format_amount(bps)


def tax_breakdown(invoice: Invoice) -> list[dict]:
    """Taxable base and tax per rate, computed line by line like the invoice totals."""
    by_rate: dict[int, dict] = {}
    for item in invoice.items:
        entry = by_rate.setdefault(item.tax_rate_bps, {"rate_bps": item.tax_rate_bps, "base_cents": 0, "tax_cents": 0})
        entry["base_cents"] += tax_base_cents(item.line_total_cents, item.tax_rate_bps)
        entry["tax_cents"] += included_tax_cents(item.line_total_cents, item.tax_rate_bps)
    return [by_rate[rate] for rate in sorted(by_rate)]


def compute_cufe(invoice: Invoice, company: CompanyInfo) -> str:
    """
    CUFE: SHA-384 over the DIAN field concatenation

    NumFac + FecFac + HorFac + ValFac + 01 + ValImp1 + 04 + ValImp2 + 03 +
    ValImp3 + ValTot + NitOFE + NumAdq + ClTec + TipoAmbiente
    """
    issued = invoice.created_at
    fields = [
        invoice.number,
        issued.strftime("%Y-%m-%d"),
        issued.strftime("%H:%M:%S") + "-05:00",
        format_amount(invoice.subtotal_cents),
        "01", format_amount(invoice.tax_cents),
        "04", format_amount(0),
        "03", format_amount(0),
        format_amount(invoice.total_cents),
        company.nit,
        invoice.customer.nit_cedula if invoice.customer else "",
        company.technical_key,
        company.environment,
    ]
    return hashlib.sha384("".join(fields).encode("utf-8")).hexdigest()


def _q(prefix: str, tag: str) -> str:
    return f"{{{NS[prefix]}}}{tag}"


def _sub(parent, prefix: str, tag: str, text=None, **attrs):
    el = ET.SubElement(parent, _q(prefix, tag), {k: str(v) for k, v in attrs.items()})
    if text is not None:
        el.text = str(text)
    return el


def _party(parent, tag: str, name: str, company_id: str, scheme_id: str, tax_scheme: tuple[str, str]) -> None:
    party = _sub(_sub(parent, "cac", tag), "cac", "Party")
    scheme = _sub(party, "cac", "PartyTaxScheme")
    _sub(scheme, "cbc", "RegistrationName", name)
    _sub(scheme, "cbc", "CompanyID", company_id, schemeID=scheme_id, schemeName=scheme_id)
    ts = _sub(scheme, "cac", "TaxScheme")
    _sub(ts, "cbc", "ID", tax_scheme[0])
    _sub(ts, "cbc", "Name", tax_scheme[1])


def build_invoice_element(invoice: Invoice, company: CompanyInfo) -> ET.Element:
    currency = {"currencyID": company.currency}
    root = ET.Element(_q("", "Invoice"))

    extension = _sub(_sub(_sub(root, "ext", "UBLExtensions"), "ext", "UBLExtension"), "ext", "ExtensionContent")
    control = _sub(_sub(extension, "sts", "DianExtensions"), "sts", "InvoiceControl")
    _sub(control, "sts", "InvoiceAuthorization", company.resolution_number)
    prefix, _, _ = invoice.number.partition("-")
    authorized = _sub(control, "sts", "AuthorizedInvoices")
    _sub(authorized, "sts", "Prefix", prefix)

    _sub(root, "cbc", "UBLVersionID", "UBL 2.1")
    _sub(root, "cbc", "CustomizationID", "10")
    _sub(root, "cbc", "ProfileID", "DIAN 2.1: Factura Electrónica de Venta")
    _sub(root, "cbc", "ProfileExecutionID", company.environment)
    _sub(root, "cbc", "ID", invoice.number)
    _sub(root, "cbc", "UUID", compute_cufe(invoice, company), schemeName="CUFE-SHA384")
    _sub(root, "cbc", "IssueDate", invoice.created_at.strftime("%Y-%m-%d"))
    _sub(root, "cbc", "IssueTime", invoice.created_at.strftime("%H:%M:%S") + "-05:00")
    _sub(root, "cbc", "InvoiceTypeCode", INVOICE_TYPE_CODE)
    _sub(root, "cbc", "DocumentCurrencyCode", company.currency)
    _sub(root, "cbc", "LineCountNumeric", len(invoice.items))

    _party(root, "AccountingSupplierParty", company.name, company.nit, "31", TAX_SCHEME_IVA)
    customer = invoice.customer
    _party(
        root,
        "AccountingCustomerParty",
        customer.name if customer else "",
        customer.nit_cedula if customer else "",
        "13",
        ("ZZ", "No aplica"),
    )

    tax_total = _sub(root, "cac", "TaxTotal")
    _sub(tax_total, "cbc", "TaxAmount", format_amount(invoice.tax_cents), **currency)
    for entry in tax_breakdown(invoice):
        subtotal = _sub(tax_total, "cac", "TaxSubtotal")
        _sub(subtotal, "cbc", "TaxableAmount", format_amount(entry["base_cents"]), **currency)
        _sub(subtotal, "cbc", "TaxAmount", format_amount(entry["tax_cents"]), **currency)
        category = _sub(subtotal, "cac", "TaxCategory")
        _sub(category, "cbc", "Percent", _format_rate(entry["rate_bps"]))
        scheme = _sub(category, "cac", "TaxScheme")
        _sub(scheme, "cbc", "ID", TAX_SCHEME_IVA[0])
        _sub(scheme, "cbc", "Name", TAX_SCHEME_IVA[1])

    totals = _sub(root, "cac", "LegalMonetaryTotal")
    _sub(totals, "cbc", "LineExtensionAmount", format_amount(invoice.subtotal_cents), **currency)
    _sub(totals, "cbc", "TaxExclusiveAmount", format_amount(invoice.subtotal_cents), **currency)
    _sub(totals, "cbc", "TaxInclusiveAmount", format_amount(invoice.total_cents), **currency)
    _sub(totals, "cbc", "PayableAmount", format_amount(invoice.total_cents), **currency)

    for item in invoice.items:
        line = _sub(root, "cac", "InvoiceLine")
        _sub(line, "cbc", "ID", item.position)
        _sub(line, "cbc", "InvoicedQuantity", item.quantity, unitCode="94")
        _sub(line, "cbc", "LineExtensionAmount",
             format_amount(tax_base_cents(item.line_total_cents, item.tax_rate_bps)), **currency)
        if item.discount_bps:
            allowance = _sub(line, "cac", "AllowanceCharge")
            _sub(allowance, "cbc", "ChargeIndicator", "false")
            _sub(allowance, "cbc", "MultiplierFactorNumeric", _format_rate(item.discount_bps))
            _sub(allowance, "cbc", "Amount",
                 format_amount(item.unit_price_cents * item.quantity - item.line_total_cents), **currency)
        line_tax = _sub(line, "cac", "TaxTotal")
        _sub(line_tax, "cbc", "TaxAmount",
             format_amount(included_tax_cents(item.line_total_cents, item.tax_rate_bps)), **currency)
        product = _sub(line, "cac", "Item")
        _sub(product, "cbc", "Description", item.product.name if item.product else "")
        if item.product is not None:
            _sub(_sub(product, "cac", "SellersItemIdentification"), "cbc", "ID", item.product.sku)
        price = _sub(line, "cac", "Price")
        _sub(price, "cbc", "PriceAmount", format_amount(item.unit_price_cents), **currency)

    return root


def generate_invoice_xml(invoice: Invoice, company: CompanyInfo | None = None) -> bytes:
    """Serialized, unsigned UBL invoice."""
    if not invoice.items:
        raise ComplianceError(f"Invoice {invoice.number} has no items")
    if company is None:
        company = current_company()
    root = build_invoice_element(invoice, company)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def render_invoice_document(invoice: Invoice) -> tuple[bytes, bool]:
    """
    XML for an invoice, signed when a signer is registered.

    Returns (document, signed).
    """
    xml = generate_invoice_xml(invoice)
    signer = get_signer()
    if not signer.configured:
        return xml, False
    return signer.sign(xml), True
