"""
GST Tax Utilities
Intrastate detection, CGST/SGST/IGST splitting and the two-slab rate
inference used by the invoice transformer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .state_codes import get_state_code

# Rate inference: prices are assumed 5% inclusive until the discounted base
# reaches this amount, then 18%. Approximation of the real slab table; it does
# not model 0/3/12/28% slabs or cess.
LOWER_SLAB_RATE = 0.05
LOWER_SLAB_DIVISOR = 1.05
UPPER_SLAB_RATE = 0.18
UPPER_SLAB_DIVISOR = 1.18
UPPER_SLAB_THRESHOLD = 2500


@dataclass(frozen=True)
class TaxSplit:
    cgst: float
    sgst: float
    igst: float


def round2(value: float) -> float:
    """Round to 2 decimal places, halves away from zero."""
    rounded = math.floor(abs(value) * 100 + 0.5) / 100
    return -rounded if value < 0 and rounded else rounded


def is_intrastate(seller_state: Optional[str], buyer_state: Optional[str]) -> bool:
    """True only when both states resolve to the same GST state code."""
    if not seller_state or not buyer_state:
        return False

    seller_code = get_state_code(seller_state)
    buyer_code = get_state_code(buyer_state)
    return seller_code is not None and seller_code == buyer_code


def split_tax(tax_amount: float, intrastate: bool) -> TaxSplit:
    """Split into CGST+SGST halves (intrastate) or a single IGST amount."""
    if intrastate:
        half = tax_amount / 2
        return TaxSplit(cgst=half, sgst=half, igst=0.0)
    return TaxSplit(cgst=0.0, sgst=0.0, igst=tax_amount)


def infer_tax_rate(price_after_discount: float) -> Tuple[float, float]:
    """Return (rate, divisor) for a unit's discounted base price.

    The threshold is inclusive on the upper slab.
    """
    if price_after_discount >= UPPER_SLAB_THRESHOLD:
        return UPPER_SLAB_RATE, UPPER_SLAB_DIVISOR
    return LOWER_SLAB_RATE, LOWER_SLAB_DIVISOR
