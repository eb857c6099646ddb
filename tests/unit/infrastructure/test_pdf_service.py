"""
Unit tests for InvoicePDFService HTML rendering.
"""

from datetime import date
from decimal import Decimal

from billsync.domain.models.invoice import Invoice, InvoiceLineItem, ClientContact
from billsync.domain.models.time_entry import TimeEntry
from billsync.infrastructure.pdf.pdf_service import InvoicePDFService


def make_invoice(**overrides) -> Invoice:
    fields = dict(
        id="inv-1",
        user_id="user-1",
        invoice_number="INV-0007",
        client=ClientContact(name="Acme Corp", email="billing@acme.example.com", address="1 Main St"),
        issue_date=date(2024, 3, 31),
        tax_rate=Decimal("0.10"),
        line_items=[
            InvoiceLineItem("Fix login bug (2024-03-05)", Decimal("1"), Decimal("100.00"), time_entry_id="e1"),
            InvoiceLineItem("Review (2024-03-06)", Decimal("1.5"), Decimal("50.00"), time_entry_id="e2"),
        ],
        notes="Thanks for your business"
    )
    fields.update(overrides)
    return Invoice(**fields)


class TestInvoicePDFService:
    """Test cases for InvoicePDFService."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = InvoicePDFService(
            company={"name": "Solo Dev LLC", "email": "hello@solo.example.com", "address": ""},
            currency="USD"
        )

    def test_render_invoice_html(self):
        html = self.service.render_invoice_html(make_invoice())

        assert "INV-0007" in html
        assert "Solo Dev LLC" in html
        assert "Acme Corp" in html
        assert "1 Main St" in html
        assert "$175.00" in html
        assert "$17.50" in html
        assert "$192.50" in html
        assert "10.0%" in html
        assert "1.5h" in html
        assert "Thanks for your business" in html

    def test_render_time_detail(self):
        entry = TimeEntry(
            id="e1",
            user_id="user-1",
            description="Pairing on checkout",
            duration=Decimal("2.25"),
            date=date(2024, 3, 5),
            jira_issue_key="SHOP-12"
        )

        html = self.service.render_invoice_html(make_invoice(), [entry])

        assert "Pairing on checkout" in html
        assert "SHOP-12" in html
        assert "2.25h" in html

    def test_html_is_escaped(self):
        invoice = make_invoice(client=ClientContact(name="<script>Acme</script>", email="billing@acme.example.com"))

        html = self.service.render_invoice_html(invoice)

        assert "<script>Acme" not in html
        assert "&lt;script&gt;Acme" in html

    def test_other_currency_symbol(self):
        service = InvoicePDFService(currency="EUR")

        html = service.render_invoice_html(make_invoice())

        assert "€192.50" in html

    def test_generate_invoice_pdf_writes_rendered_html(self, monkeypatch):
        written = []

        def fake_write(html_content):
            written.append(html_content)
            return b"%PDF-1.7"

        monkeypatch.setattr(self.service, "_write_pdf", fake_write)

        content = self.service.generate_invoice_pdf(make_invoice())

        assert content == b"%PDF-1.7"
        assert "INV-0007" in written[0]

    def test_filename(self):
        assert InvoicePDFService.filename_for(make_invoice()) == "invoice-INV-0007.pdf"
