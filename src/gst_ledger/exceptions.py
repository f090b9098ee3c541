"""
Exception types shared across the ledger, report and webhook layers.
"""


class GSTLedgerError(Exception):
    """Base class for all service errors."""


class WebhookValidationError(GSTLedgerError):
    """Webhook payload is missing a required field (HTTP 400)."""


class TransformError(GSTLedgerError):
    """Order payload could not be turned into invoice data."""


class ReportValidationError(GSTLedgerError):
    """Report query parameters are malformed (HTTP 400)."""


class DownstreamError(GSTLedgerError):
    """A collaborating service (document generation, location lookup) failed."""
