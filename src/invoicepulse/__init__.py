"""
InvoicePulse — batch analytics for invoice backlog dashboards.

Snapshot every import. Compare the last two. Trend the last five.
"""

__version__ = "0.3.0"
__all__ = ["InvoicePulse"]

from invoicepulse.pilot import InvoicePulse  # noqa: E402
