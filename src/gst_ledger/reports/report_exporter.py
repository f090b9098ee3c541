"""
GSTR-1 Report Exporter
Writes B2C (Others) and HSN-wise summaries to CSV files for filing.
"""
import csv
import os
import sqlite3
from typing import Any, Dict, List, Optional

from gst_ledger import config
from gst_ledger.utils.logger import get_logger

from .gst_reports import GSTReportService, round_report
from .periods import format_period_label


class GSTReportExporter:
    """Export ledger reports as CSV"""

    def __init__(self, report_service: GSTReportService, export_folder: Optional[str] = None):
        """
        Args:
            report_service: GSTReportService bound to the ledger store
            export_folder: Output directory; defaults to config.EXPORT_FOLDER
        """
        self.report_service = report_service
        self.export_folder = export_folder or config.EXPORT_FOLDER
        self.logger = get_logger()

    # ────────────────────────────────────────────────────────────
    # Public API
    # ────────────────────────────────────────────────────────────

    def export_b2c_csv(self, shop: str, start: str, end: str, output_path: str = None) -> Dict:
        """
        Export the B2C (Others) summary.

        Returns:
            Dict with keys: success, message, output_file, row_count
        """
        period = format_period_label(start, end)
        try:
            report = round_report(self.report_service.generate_b2c_report(shop, start, end))
            output_path = output_path or self._default_path("B2C_Others", shop, start, end)

            rows = [
                [
                    row["placeOfSupply"], row.get("placeOfSupplyCode") or "", row["rate"],
                    row["totalQuantity"], row["totalTaxableValue"], row["integratedTax"],
                    row["centralTax"], row["stateTax"], row["cess"],
                ]
                for row in report["data"]
            ]
            totals = report["totals"]
            rows.append([
                "Totals", "", "", totals["totalQuantity"], totals["taxableValue"],
                totals["integratedTax"], totals["centralTax"], totals["stateTax"], totals["cess"],
            ])

            self._write_csv(output_path, "GSTR-1 B2C (Others) Report", period, self._b2c_headers(), rows)
            return {
                'success': True,
                'message': f'Exported B2C summary ({len(report["data"])} rows) for {period}',
                'output_file': output_path,
                'row_count': len(report["data"]),
            }
        except (OSError, sqlite3.Error) as e:
            self.logger.error(f"B2C export failed: {e}", component="Reports")
            return {'success': False, 'message': f'B2C export failed: {e}',
                    'output_file': None, 'row_count': 0}

    def export_hsn_csv(self, shop: str, start: str, end: str, output_path: str = None) -> Dict:
        """
        Export the HSN-wise summary.

        Returns:
            Dict with keys: success, message, output_file, row_count
        """
        period = format_period_label(start, end)
        try:
            report = round_report(self.report_service.generate_hsn_report(shop, start, end))
            output_path = output_path or self._default_path("HSN_Summary", shop, start, end)

            rows = [
                [
                    row["srNo"], row["hsn"], row.get("description") or "", row.get("uqc") or "",
                    row["totalQuantity"], row["totalTaxableValue"], row["rate"],
                    row["integratedTax"], row["centralTax"], row["stateTax"], row["cess"],
                ]
                for row in report["data"]
            ]
            totals = report["totals"]
            rows.append([
                "Totals", "", "", "", totals["totalQuantity"], totals["totalTaxableValue"], "",
                totals["integratedTax"], totals["centralTax"], totals["stateTax"], totals["cess"],
            ])

            self._write_csv(output_path, "HSN-wise Summary Report", period, self._hsn_headers(), rows)
            return {
                'success': True,
                'message': f'Exported HSN summary ({len(report["data"])} codes) for {period}',
                'output_file': output_path,
                'row_count': len(report["data"]),
            }
        except (OSError, sqlite3.Error) as e:
            self.logger.error(f"HSN export failed: {e}", component="Reports")
            return {'success': False, 'message': f'HSN export failed: {e}',
                    'output_file': None, 'row_count': 0}

    # ────────────────────────────────────────────────────────────
    # Helpers
    # ────────────────────────────────────────────────────────────

    def _default_path(self, kind: str, shop: str, start: str, end: str) -> str:
        shop_slug = shop.replace(".", "-")
        return os.path.join(self.export_folder, f"{kind}_{shop_slug}_{start}_{end}.csv")

    @staticmethod
    def _b2c_headers() -> List[str]:
        return [
            'Place of Supply', 'State Code', 'Rate (%)', 'Quantity', 'Taxable Value',
            'Integrated Tax', 'Central Tax', 'State Tax', 'Cess',
        ]

    @staticmethod
    def _hsn_headers() -> List[str]:
        return [
            'Sr. No', 'HSN', 'Description', 'UQC', 'Total Quantity', 'Total Taxable Value',
            'Rate (%)', 'Integrated Tax', 'Central Tax', 'State Tax', 'Cess',
        ]

    @staticmethod
    def _write_csv(path: str, title: str, period: str, headers: List[str], rows: List[List[Any]]):
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            writer.writerow([title])
            writer.writerow([f"Period: {period}"])
            writer.writerow([])
            writer.writerow(headers)
            writer.writerows(rows)
