"""
Tests for GST state codes and tax helpers (rounding, splitting, rate slabs).
"""
import math
import sys
import unittest
from pathlib import Path

# Ensure src/ is on path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / 'src'))

from gst_ledger.gst.state_codes import get_state_code, get_state_name, is_valid_state
from gst_ledger.gst.tax_utils import infer_tax_rate, is_intrastate, round2, split_tax


class TestStateCodes(unittest.TestCase):

    def test_exact_name(self):
        self.assertEqual(get_state_code("Maharashtra"), "27")
        self.assertEqual(get_state_code("Karnataka"), "29")

    def test_case_insensitive_and_trimmed(self):
        self.assertEqual(get_state_code("  maharashtra "), "27")
        self.assertEqual(get_state_code("TAMIL NADU"), "33")

    def test_unknown_state(self):
        self.assertIsNone(get_state_code("Unknown"))
        self.assertIsNone(get_state_code(""))
        self.assertIsNone(get_state_code(None))
        self.assertFalse(is_valid_state("Atlantis"))

    def test_reverse_lookup_pads_code(self):
        self.assertEqual(get_state_name("7"), "Delhi")
        self.assertEqual(get_state_name("27"), "Maharashtra")
        self.assertIsNone(get_state_name("99"))


class TestRound2(unittest.TestCase):

    def test_halves_round_away_from_zero(self):
        self.assertEqual(round2(0.125), 0.13)
        self.assertEqual(round2(-0.125), -0.13)

    def test_no_negative_zero(self):
        result = round2(-0.001)
        self.assertEqual(result, 0.0)
        self.assertEqual(math.copysign(1, result), 1.0)

    def test_plain_values(self):
        self.assertEqual(round2(450.0), 450.0)
        self.assertEqual(round2(112.38095238), 112.38)


class TestIntrastate(unittest.TestCase):

    def test_same_state(self):
        self.assertTrue(is_intrastate("Maharashtra", "maharashtra"))

    def test_different_state(self):
        self.assertFalse(is_intrastate("Maharashtra", "Karnataka"))

    def test_unresolvable_state_is_interstate(self):
        self.assertFalse(is_intrastate("Unknown", "Unknown"))
        self.assertFalse(is_intrastate("Maharashtra", ""))
        self.assertFalse(is_intrastate(None, "Maharashtra"))


class TestSplitTax(unittest.TestCase):

    def test_intrastate_halves(self):
        split = split_tax(450.0, intrastate=True)
        self.assertEqual(split.cgst, 225.0)
        self.assertEqual(split.sgst, 225.0)
        self.assertEqual(split.igst, 0.0)

    def test_interstate_igst(self):
        split = split_tax(450.0, intrastate=False)
        self.assertEqual((split.cgst, split.sgst, split.igst), (0.0, 0.0, 450.0))

    def test_components_sum_to_tax(self):
        for amount in (0.01, 5.62, 1350.0, 9999.99):
            for intrastate in (True, False):
                split = split_tax(amount, intrastate)
                self.assertAlmostEqual(split.cgst + split.sgst + split.igst, amount, places=9)


class TestInferTaxRate(unittest.TestCase):

    def test_threshold_is_inclusive_on_upper_slab(self):
        self.assertEqual(infer_tax_rate(2500.0), (0.18, 1.18))

    def test_just_below_threshold(self):
        self.assertEqual(infer_tax_rate(2499.99), (0.05, 1.05))

    def test_low_price(self):
        self.assertEqual(infer_tax_rate(112.38), (0.05, 1.05))


if __name__ == '__main__':
    unittest.main()
