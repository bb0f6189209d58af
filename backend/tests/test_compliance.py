"""
DIAN document tests.

Checks the UBL structure and amounts of the generated XML, the CUFE, and
that signing never pretends to succeed without a configured signer.
"""

import hashlib
import xml.etree.ElementTree as ET
from datetime import datetime
from types import SimpleNamespace

import pytest

from konta.services import compliance
from konta.services.compliance import (
    NS,
    CompanyInfo,
    ComplianceError,
    DocumentSigner,
    SigningNotConfiguredError,
    UnconfiguredSigner,
)

COMPANY = CompanyInfo(
    name="KONTA S.A.S.",
    nit="900123456",
    resolution_number="18760000001",
    technical_key="fc8eac422eba16e22ffd8c6f94b3f40a6e38162c",
    environment="2",
)


def _find(root, path):
    return root.find(path, {k: v for k, v in NS.items() if k})


@pytest.mark.parametrize("cents,text", [(12345, "123.45"), (5, "0.05"), (0, "0.00"), (-150, "-1.50")])
def test_format_amount(cents, text):
    assert compliance.format_amount(cents) == text


def test_cufe_is_sha384_of_dian_fields():
    invoice = SimpleNamespace(
        number="POS-000001",
        created_at=datetime(2026, 3, 1, 14, 5, 9),
        subtotal_cents=10000,
        tax_cents=1900,
        total_cents=11900,
        customer=SimpleNamespace(nit_cedula="1020304050"),
    )
    expected = hashlib.sha384("".join([
        "POS-000001", "2026-03-01", "14:05:09-05:00",
        "100.00", "01", "19.00", "04", "0.00", "03", "0.00",
        "119.00", "900123456", "1020304050", COMPANY.technical_key, "2",
    ]).encode("utf-8")).hexdigest()

    cufe = compliance.compute_cufe(invoice, COMPANY)

    assert cufe == expected
    assert len(cufe) == 96


class TestInvoiceXml:

    def test_structure_and_totals(self, make_product, make_invoice):
        coffee = make_product(price_cents=11900)
        bread = make_product(price_cents=10500, tax_rate_bps=500)
        invoice = make_invoice((coffee, 2, 10), (bread, 1))

        xml = compliance.generate_invoice_xml(invoice, COMPANY)

        assert xml.startswith(b"<?xml")
        root = ET.fromstring(xml)
        assert root.tag == f"{{{NS['']}}}Invoice"
        assert _find(root, "cbc:ID").text == invoice.number
        assert _find(root, "cbc:LineCountNumeric").text == "2"

        uuid = _find(root, "cbc:UUID")
        assert uuid.get("schemeName") == "CUFE-SHA384"
        assert len(uuid.text) == 96
        int(uuid.text, 16)

        assert _find(root, "cac:AccountingSupplierParty/cac:Party/cac:PartyTaxScheme/cbc:CompanyID").text == "900123456"
        assert _find(root, "cac:AccountingCustomerParty/cac:Party/cac:PartyTaxScheme/cbc:CompanyID").text == "1020304050"

        totals = _find(root, "cac:LegalMonetaryTotal")
        assert _find(totals, "cbc:PayableAmount").text == compliance.format_amount(invoice.total_cents)
        assert _find(totals, "cbc:TaxExclusiveAmount").text == compliance.format_amount(invoice.subtotal_cents)
        assert _find(root, "cac:TaxTotal/cbc:TaxAmount").text == compliance.format_amount(invoice.tax_cents)

        subtotals = root.findall("cac:TaxTotal/cac:TaxSubtotal", {k: v for k, v in NS.items() if k})
        percents = [_find(s, "cac:TaxCategory/cbc:Percent").text for s in subtotals]
        assert percents == ["5.00", "19.00"]

        lines = root.findall("cac:InvoiceLine", {k: v for k, v in NS.items() if k})
        assert len(lines) == 2
        discounted = lines[0]
        assert _find(discounted, "cac:AllowanceCharge/cbc:MultiplierFactorNumeric").text == "10.00"
        assert _find(discounted, "cac:AllowanceCharge/cbc:Amount").text == "23.80"
        assert _find(discounted, "cac:Price/cbc:PriceAmount").text == "119.00"
        assert _find(lines[1], "cac:AllowanceCharge") is None

    def test_company_comes_from_config(self, product, make_invoice):
        invoice = make_invoice((product, 1))
        root = ET.fromstring(compliance.generate_invoice_xml(invoice))
        assert _find(root, "cac:AccountingSupplierParty/cac:Party/cac:PartyTaxScheme/cbc:CompanyID").text == "900123456"

    def test_invoice_without_items_rejected(self):
        empty = SimpleNamespace(number="POS-000009", items=[])
        with pytest.raises(ComplianceError):
            compliance.generate_invoice_xml(empty, COMPANY)


class TestSigning:

    def test_unconfigured_signer_refuses(self):
        signer = UnconfiguredSigner()
        assert signer.configured is False
        with pytest.raises(SigningNotConfiguredError):
            signer.sign(b"<Invoice/>")

    def test_document_served_unsigned_by_default(self, product, make_invoice):
        invoice = make_invoice((product, 1))
        document, signed = compliance.render_invoice_document(invoice)
        assert signed is False
        assert b"CUFE-SHA384" in document

    def test_registered_signer_is_used(self, app, monkeypatch, product, make_invoice):
        class EnvelopeSigner(DocumentSigner):
            def sign(self, xml: bytes) -> bytes:
                return xml + b"<!-- signed -->"

        monkeypatch.setitem(app.extensions, compliance.SIGNER_EXTENSION_KEY, EnvelopeSigner())
        invoice = make_invoice((product, 1))

        document, signed = compliance.render_invoice_document(invoice)

        assert signed is True
        assert document.endswith(b"<!-- signed -->")
