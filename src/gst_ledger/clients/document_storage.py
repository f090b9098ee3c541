"""
Document storage: rendered invoices and archived webhook payloads, laid out as
shops/{shop}/{area}/{file} under a storage root.
"""

from __future__ import annotations

import json
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from gst_ledger import config
from gst_ledger.utils.logger import get_logger


def sanitize_shop(shop: str) -> str:
    return shop.replace(".", "-")


class DocumentStorage:
    """Filesystem-backed object store keyed by relative paths."""

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = Path(root or config.DOCUMENT_STORAGE_ROOT)
        self.root.mkdir(parents=True, exist_ok=True)

    def list_keys(self, prefix: str) -> List[str]:
        base = self.root / prefix
        if not base.exists():
            return []
        return sorted(
            path.relative_to(self.root).as_posix()
            for path in base.rglob("*") if path.is_file()
        )

    def move_invoice_to_folder(self, order_name: str, shop: str, target_folder: str = "returned") -> List[str]:
        """
        Move an order's rendered invoice(s) from invoices/ to target_folder/.

        Best effort: errors are logged and the keys moved so far are returned.
        """
        logger = get_logger()
        moved: List[str] = []
        order_name_clean = order_name.replace("#", "")
        shop_dir = sanitize_shop(shop)

        try:
            matching = [
                key for key in self.list_keys(f"shops/{shop_dir}/invoices/")
                if f"invoice-{order_name_clean}" in key
            ]
            if not matching:
                logger.info(f"No invoice files found for order {order_name}", component="Storage")
                return moved

            for source_key in matching:
                file_name = source_key.split("/")[-1]
                destination_key = f"shops/{shop_dir}/{target_folder}/{file_name}"
                destination = self.root / destination_key
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(self.root / source_key, destination)
                (self.root / source_key).unlink()
                logger.info(f"Moved {source_key} to {destination_key}", component="Storage")
                moved.append(destination_key)
        except OSError as e:
            logger.error(f"Error moving invoice to {target_folder}: {e}", component="Storage")

        return moved

    def archive_webhook_payload(
        self,
        shop: str,
        topic: str,
        payload: Dict[str, Any],
        order_name: Optional[str] = None,
    ) -> str:
        """
        Keep a copy of a webhook body for data-loss recovery.

        Stored at shops/{shop}/webhook_requests/YYYY/MM/DD/{topic}/{id}-{name}-{ts}.json.
        Never raises; returns "" on failure.
        """
        try:
            shop_dir = re.sub(r"[^a-zA-Z0-9-]", "-", shop)
            topic_dir = topic.replace("/", "-")
            now = datetime.now(timezone.utc)
            object_id = payload.get("id") or payload.get("order_id") or "unknown"
            stamp = now.isoformat().replace(":", "-").replace(".", "-")
            suffix = f"-{order_name.replace('#', '')}" if order_name else ""

            key = (
                f"shops/{shop_dir}/webhook_requests/{now:%Y}/{now:%m}/{now:%d}/"
                f"{topic_dir}/{object_id}{suffix}-{stamp}.json"
            )
            path = self.root / key
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            return key
        except (OSError, TypeError, ValueError) as e:
            get_logger().error(f"Failed to archive {topic} payload: {e}", component="Archive")
            return ""
