"""
GST Report Aggregation
B2C (Others) and HSN-wise summaries for GSTR-1 filing, computed from ledger
rows over a date range.

Inclusion rule: cancelled rows are voided and skipped; returned rows carry
negative amounts and are summed so they offset the original sale.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from gst_ledger.gst.tax_utils import round2
from gst_ledger.storage.ledger_db import LedgerDB
from gst_ledger.utils.logger import get_logger

UNCLASSIFIED_HSN = "UNCLASSIFIED"

_AMOUNT_FIELDS = {
    "totalTaxableValue": "taxableValue",
    "integratedTax": "igst",
    "centralTax": "cgst",
    "stateTax": "sgst",
    "cess": "cess",
}


def year_months_in_range(start: str, end: str) -> List[str]:
    """Every YYYY-MM from the month of start through the month of end."""
    year, month = int(start[:4]), int(start[5:7])
    end_year, end_month = int(end[:4]), int(end[5:7])

    months = []
    while (year, month) <= (end_year, end_month):
        months.append(f"{year:04d}-{month:02d}")
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return months


def query_range(db: LedgerDB, shop: str, start: str, end: str) -> List[Dict[str, Any]]:
    """Ledger rows whose invoice date (date part) falls in [start, end]."""
    rows: List[Dict[str, Any]] = []
    for year_month in year_months_in_range(start, end):
        rows.extend(db.query_ledger_month(shop, year_month))

    return [row for row in rows if start <= (row.get("invoiceDate") or "")[:10] <= end]


def _included(entries: Iterable[Dict[str, Any]]) -> Iterable[Dict[str, Any]]:
    return (entry for entry in entries if entry.get("status") != "cancelled")


def _add_amounts(bucket: Dict[str, Any], entry: Dict[str, Any]) -> None:
    for report_field, ledger_field in _AMOUNT_FIELDS.items():
        bucket[report_field] += entry.get(ledger_field) or 0


def aggregate_by_jurisdiction_and_rate(entries: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """
    B2C (Others) summary grouped by (place of supply, tax rate).

    Returns:
        {'data': [...sorted by place of supply, then rate], 'totals': {...}}
    """
    grouped: Dict[tuple, Dict[str, Any]] = {}
    for entry in _included(entries):
        place = entry.get("placeOfSupply") or ""
        rate = entry.get("taxRate") or 0
        key = (place, rate)
        if key not in grouped:
            grouped[key] = {
                "placeOfSupply": place,
                "placeOfSupplyCode": entry.get("placeOfSupplyCode"),
                "rate": rate,
                "totalQuantity": 0,
                **{field: 0.0 for field in _AMOUNT_FIELDS},
            }
        bucket = grouped[key]
        bucket["totalQuantity"] += entry.get("quantity") or 0
        _add_amounts(bucket, entry)

    data = [grouped[key] for key in sorted(grouped)]

    totals = {
        "totalQuantity": sum(row["totalQuantity"] for row in data),
        "taxableValue": sum(row["totalTaxableValue"] for row in data),
        "integratedTax": sum(row["integratedTax"] for row in data),
        "centralTax": sum(row["centralTax"] for row in data),
        "stateTax": sum(row["stateTax"] for row in data),
        "cess": sum(row["cess"] for row in data),
    }
    return {"data": data, "totals": totals}


def aggregate_by_classification(entries: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """
    HSN-wise summary. Rows without an HSN go under UNCLASSIFIED; uqc and
    rate are taken from the first row seen for a code.
    """
    grouped: Dict[str, Dict[str, Any]] = {}
    for entry in _included(entries):
        hsn = entry.get("hsn") or UNCLASSIFIED_HSN
        if hsn not in grouped:
            grouped[hsn] = {
                "hsn": hsn,
                "description": "",
                "uqc": entry.get("uqc"),
                "rate": entry.get("taxRate") or 0,
                "totalQuantity": 0,
                **{field: 0.0 for field in _AMOUNT_FIELDS},
            }
        bucket = grouped[hsn]
        bucket["totalQuantity"] += entry.get("quantity") or 0
        _add_amounts(bucket, entry)

    data = [
        {"srNo": sr_no, **grouped[hsn]}
        for sr_no, hsn in enumerate(sorted(grouped), start=1)
    ]

    totals = {
        "totalQuantity": sum(row["totalQuantity"] for row in data),
        "totalTaxableValue": sum(row["totalTaxableValue"] for row in data),
        "integratedTax": sum(row["integratedTax"] for row in data),
        "centralTax": sum(row["centralTax"] for row in data),
        "stateTax": sum(row["stateTax"] for row in data),
        "cess": sum(row["cess"] for row in data),
    }
    return {"data": data, "totals": totals}


def round_report(report: Dict[str, Any]) -> Dict[str, Any]:
    """Round every float in data rows and totals to 2 places."""
    def _round_row(row: Dict[str, Any]) -> Dict[str, Any]:
        return {key: round2(value) if isinstance(value, float) else value for key, value in row.items()}

    return {
        **report,
        "data": [_round_row(row) for row in report["data"]],
        "totals": _round_row(report["totals"]),
    }


class GSTReportService:
    """Read-only report generation over the ledger store"""

    def __init__(self, db: LedgerDB):
        self.db = db
        self.logger = get_logger()

    def generate_b2c_report(self, shop: str, start: str, end: str) -> Dict[str, Any]:
        entries = query_range(self.db, shop, start, end)
        self.logger.info(f"B2C report {start}..{end} for {shop}: {len(entries)} row(s)", component="Reports")
        return aggregate_by_jurisdiction_and_rate(entries)

    def generate_hsn_report(self, shop: str, start: str, end: str) -> Dict[str, Any]:
        entries = query_range(self.db, shop, start, end)
        self.logger.info(f"HSN report {start}..{end} for {shop}: {len(entries)} row(s)", component="Reports")
        return aggregate_by_classification(entries)
