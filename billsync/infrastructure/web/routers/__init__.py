"""
API routers.
"""

from . import time_entries, invoices, invoice_data, jira

__all__ = ["time_entries", "invoices", "invoice_data", "jira"]
