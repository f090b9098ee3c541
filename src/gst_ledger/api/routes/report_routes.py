"""
Report routes - B2C (Others) and HSN-wise summaries over the GST ledger.
Read only. Dates are inclusive calendar days (YYYY-MM-DD).
"""
import os
import sqlite3
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool

from gst_ledger.api.dependencies import Services, get_services
from gst_ledger.exceptions import ReportValidationError
from gst_ledger.reports.gst_reports import round_report
from gst_ledger.reports.periods import format_period_label, resolve_date_range

router = APIRouter()


def _date_range(start_date: Optional[str], end_date: Optional[str], period: Optional[str]):
    try:
        return resolve_date_range(start_date, end_date, period)
    except ReportValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _report_response(report: dict, start: str, end: str) -> dict:
    return {
        **round_report(report),
        "period": format_period_label(start, end),
        "startDate": start,
        "endDate": end,
    }


def _file_response(result: dict) -> FileResponse:
    if not result.get("success"):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=result.get("message", "Export failed"),
        )
    output = result["output_file"]
    return FileResponse(path=output, media_type="text/csv", filename=os.path.basename(output))


# ═══════════════════════════════════════════════════════════════════
# B2C (Others)
# ═══════════════════════════════════════════════════════════════════

@router.get("/b2c", summary="B2C summary by place of supply and rate")
async def b2c_report(
    shop: str = Query(..., min_length=1, description="Shop domain"),
    startDate: Optional[str] = Query(None, description="Start date (YYYY-MM-DD)"),
    endDate: Optional[str] = Query(None, description="End date (YYYY-MM-DD)"),
    period: Optional[str] = Query(None, description="monthly, quarterly, yearly, last-month or last-quarter"),
    services: Services = Depends(get_services),
):
    """
    Taxable value and tax per (place of supply, rate), for GSTR-1 Table 7.

    Cancelled rows are left out; returned rows stay in and credit-note rows net against sales.
    """
    start, end = _date_range(startDate, endDate, period)
    try:
        report = await run_in_threadpool(services.reports.generate_b2c_report, shop, start, end)
    except sqlite3.Error as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"B2C report failed: {e}")
    return _report_response(report, start, end)


@router.get("/b2c/export", summary="Download B2C summary as CSV")
async def b2c_export(
    shop: str = Query(..., min_length=1, description="Shop domain"),
    startDate: Optional[str] = Query(None, description="Start date (YYYY-MM-DD)"),
    endDate: Optional[str] = Query(None, description="End date (YYYY-MM-DD)"),
    period: Optional[str] = Query(None, description="Preset period"),
    services: Services = Depends(get_services),
):
    start, end = _date_range(startDate, endDate, period)
    result = await run_in_threadpool(services.exporter.export_b2c_csv, shop, start, end)
    return _file_response(result)


# ═══════════════════════════════════════════════════════════════════
# HSN summary
# ═══════════════════════════════════════════════════════════════════

@router.get("/hsn-summary", summary="HSN-wise summary")
async def hsn_report(
    shop: str = Query(..., min_length=1, description="Shop domain"),
    startDate: Optional[str] = Query(None, description="Start date (YYYY-MM-DD)"),
    endDate: Optional[str] = Query(None, description="End date (YYYY-MM-DD)"),
    period: Optional[str] = Query(None, description="Preset period"),
    services: Services = Depends(get_services),
):
    """Quantity, taxable value and tax per HSN code, for GSTR-1 Table 12."""
    start, end = _date_range(startDate, endDate, period)
    try:
        report = await run_in_threadpool(services.reports.generate_hsn_report, shop, start, end)
    except sqlite3.Error as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"HSN report failed: {e}")
    return _report_response(report, start, end)


@router.get("/hsn-summary/export", summary="Download HSN summary as CSV")
async def hsn_export(
    shop: str = Query(..., min_length=1, description="Shop domain"),
    startDate: Optional[str] = Query(None, description="Start date (YYYY-MM-DD)"),
    endDate: Optional[str] = Query(None, description="End date (YYYY-MM-DD)"),
    period: Optional[str] = Query(None, description="Preset period"),
    services: Services = Depends(get_services),
):
    start, end = _date_range(startDate, endDate, period)
    result = await run_in_threadpool(services.exporter.export_hsn_csv, shop, start, end)
    return _file_response(result)
