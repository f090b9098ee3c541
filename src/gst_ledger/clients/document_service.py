"""
Document Service Client
Calls the external PDF invoice generator and returns its document reference.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import requests

from gst_ledger import config
from gst_ledger.exceptions import DownstreamError


class DocumentServiceClient:
    """Synchronous HTTP client for invoice PDF generation."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url if url is not None else config.DOCUMENT_SERVICE_URL
        self.timeout = timeout or config.DOCUMENT_SERVICE_TIMEOUT
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def generate(
        self,
        invoice_data: Dict[str, Any],
        shop: str,
        order_id: str,
        order_name: str,
    ) -> Dict[str, Any]:
        """
        Render an invoice.

        Returns:
            Dict with invoiceId, s3Url, fileName and optionally emailSentTo.

        Raises:
            DownstreamError: service not configured, unreachable, or returned an error.
        """
        if not self.enabled:
            raise DownstreamError("DOCUMENT_SERVICE_URL is not configured")

        try:
            response = self.session.post(
                self.url,
                json={
                    "invoiceData": invoice_data,
                    "shop": shop,
                    "orderId": order_id,
                    "orderName": order_name,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            parsed = response.json()
        except requests.exceptions.Timeout as e:
            raise DownstreamError(f"Document service timed out after {self.timeout}s") from e
        except (requests.RequestException, ValueError) as e:
            raise DownstreamError(f"Document service call failed: {e}") from e

        # Function-style responses wrap the result in a JSON string body
        if isinstance(parsed, dict) and isinstance(parsed.get("body"), str):
            try:
                parsed = json.loads(parsed["body"])
            except ValueError as e:
                raise DownstreamError(f"Document service returned malformed body: {e}") from e

        if not isinstance(parsed, dict):
            raise DownstreamError("Document service returned a non-object response")

        return parsed
