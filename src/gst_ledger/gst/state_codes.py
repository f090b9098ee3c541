"""
GST state codes
The 2-digit codes that prefix every GSTIN, keyed by state / UT name.
"""

from __future__ import annotations

from typing import Dict, Optional

GST_STATE_CODES: Dict[str, str] = {
    "Jammu and Kashmir": "01",
    "Himachal Pradesh": "02",
    "Punjab": "03",
    "Chandigarh": "04",
    "Uttarakhand": "05",
    "Haryana": "06",
    "Delhi": "07",
    "Rajasthan": "08",
    "Uttar Pradesh": "09",
    "Bihar": "10",
    "Sikkim": "11",
    "Arunachal Pradesh": "12",
    "Nagaland": "13",
    "Manipur": "14",
    "Mizoram": "15",
    "Tripura": "16",
    "Meghalaya": "17",
    "Assam": "18",
    "West Bengal": "19",
    "Jharkhand": "20",
    "Odisha": "21",
    "Chhattisgarh": "22",
    "Madhya Pradesh": "23",
    "Gujarat": "24",
    "Dadra and Nagar Haveli and Daman and Diu": "26",
    "Maharashtra": "27",
    "Andhra Pradesh": "28",
    "Karnataka": "29",
    "Goa": "30",
    "Lakshadweep": "31",
    "Kerala": "32",
    "Tamil Nadu": "33",
    "Puducherry": "34",
    "Andaman and Nicobar Islands": "35",
    "Telangana": "36",
    "Andhra Pradesh (New)": "37",
    "Ladakh": "38",
}

STATE_NAMES_BY_CODE: Dict[str, str] = {code: name for name, code in GST_STATE_CODES.items()}

_LOWER_LOOKUP: Dict[str, str] = {name.lower(): code for name, code in GST_STATE_CODES.items()}


def get_state_code(state_name: Optional[str]) -> Optional[str]:
    """Exact match first, then case-insensitive. None when unknown."""
    if not state_name:
        return None
    name = state_name.strip()
    if name in GST_STATE_CODES:
        return GST_STATE_CODES[name]
    return _LOWER_LOOKUP.get(name.lower())


def get_state_name(state_code: Optional[str]) -> Optional[str]:
    if not state_code:
        return None
    return STATE_NAMES_BY_CODE.get(state_code.strip().zfill(2))


def is_valid_state(state_name: Optional[str]) -> bool:
    return get_state_code(state_name) is not None
