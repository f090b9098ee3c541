"""
Webhook signature verification (base64 HMAC-SHA256 over the raw body).
"""
import base64
import hashlib
import hmac
from typing import Iterable, Optional

from gst_ledger import config


def compute_webhook_hmac(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_hmac(
    raw_body: bytes,
    received_hmac: Optional[str],
    secrets: Optional[Iterable[str]] = None,
) -> bool:
    """
    True when the header matches the HMAC under any configured secret.

    Args:
        raw_body: Request body exactly as received
        received_hmac: X-Shopify-Hmac-Sha256 header value
        secrets: Candidate secrets; defaults to the app and webhook secrets
    """
    if not received_hmac:
        return False

    if secrets is None:
        secrets = (config.SHOPIFY_API_SECRET, config.SHOPIFY_WEBHOOK_SECRET)

    received = received_hmac.encode("utf-8")
    return any(
        hmac.compare_digest(compute_webhook_hmac(raw_body, secret).encode("ascii"), received)
        for secret in secrets if secret
    )
