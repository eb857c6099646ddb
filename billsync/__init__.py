"""
Billsync: time tracking, Jira worklog reconciliation and invoicing.
"""

__version__ = "1.0.0"
