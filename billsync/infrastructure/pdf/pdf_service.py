"""
PDF generation service using WeasyPrint and Jinja2.
Renders invoices to HTML from a template, then to PDF bytes.
"""

from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from billsync.domain.models.base import utcnow
from billsync.domain.models.invoice import Invoice
from billsync.domain.models.time_entry import TimeEntry

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "CLP": "$",
    "MXN": "$",
    "ARS": "$"
}


class InvoicePDFService:
    """Service for generating invoice PDF documents from templates."""

    def __init__(
        self,
        company: Optional[Dict[str, Any]] = None,
        currency: str = "USD",
        templates_dir: Optional[Path] = None
    ):
        """Initialize the PDF service with template environment."""
        self.templates_dir = templates_dir or Path(__file__).parent / "templates"
        self.company = company or {}
        self.currency = currency

        self.env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=select_autoescape(['html', 'xml'])
        )
        self._register_filters()

    def _register_filters(self):
        """Register custom Jinja2 filters."""

        def currency_format(value: Any, currency: Optional[str] = None) -> str:
            """Format currency with proper symbol and decimals."""
            code = currency or self.currency
            symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
            return f"{symbol}{Decimal(str(value)):,.2f}"

        def hours_format(value: Any) -> str:
            """Format decimal hours, dropping trailing zeros."""
            hours = Decimal(str(value)).normalize()
            return f"{hours:f}h"

        def percentage_format(value: Any) -> str:
            """Format a fraction as a percentage."""
            return f"{Decimal(str(value)) * 100:.1f}%"

        self.env.filters['currency'] = currency_format
        self.env.filters['hours'] = hours_format
        self.env.filters['percentage'] = percentage_format

    def render_invoice_html(
        self,
        invoice: Invoice,
        time_entries: Sequence[TimeEntry] = (),
        template_name: str = "invoice.html"
    ) -> str:
        """Render the invoice template to an HTML string."""
        template = self.env.get_template(template_name)
        return template.render(**self._prepare_invoice_context(invoice, time_entries))

    def generate_invoice_pdf(
        self,
        invoice: Invoice,
        time_entries: Sequence[TimeEntry] = (),
        template_name: str = "invoice.html"
    ) -> bytes:
        """
        Generate the PDF for an invoice.

        Blocking; async callers run it in a worker thread.

        Returns:
            bytes: The PDF document
        """
        html_content = self.render_invoice_html(invoice, time_entries, template_name)
        return self._write_pdf(html_content)

    def _write_pdf(self, html_content: str) -> bytes:
        # WeasyPrint loads its native libraries on import
        from weasyprint import HTML
        from weasyprint.text.fonts import FontConfiguration

        html_doc = HTML(string=html_content, base_url=str(self.templates_dir))
        return html_doc.write_pdf(font_config=FontConfiguration())

    def _prepare_invoice_context(self, invoice: Invoice, time_entries: Sequence[TimeEntry]) -> Dict[str, Any]:
        """Prepare template context for invoice rendering."""
        context = {
            "invoice": {
                **invoice.to_dict(),
                "subtotal": invoice.subtotal,
                "tax_amount": invoice.tax_amount,
                "total": invoice.total,
                "currency": self.currency,
                "status_display": invoice.status.value.title(),
            },
            "company": self.company,
            "now": utcnow()
        }

        if time_entries:
            context["time_entries"] = [
                {
                    **entry.to_dict(),
                    "jira_issue_key": entry.jira_issue_key or "",
                }
                for entry in sorted(time_entries, key=lambda e: (e.date, e.created_at))
            ]

        return context

    @staticmethod
    def filename_for(invoice: Invoice) -> str:
        return f"invoice-{invoice.invoice_number}.pdf"
