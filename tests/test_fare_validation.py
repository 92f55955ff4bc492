"""
Test pricing tier lookup, plausible fare ranges and fare checksums.
"""

import math
import unittest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from fare_validation import (
    DEFAULT_PRICING_TIER,
    generate_fare_checksum,
    get_valid_fare_range,
    get_vehicle_pricing_tier,
    validate_fare_amount,
    validate_fare_checksum,
)


class TestPricingTier(unittest.TestCase):

    def test_exact_match(self):
        tier = get_vehicle_pricing_tier("innova_hycross")
        self.assertEqual(tier.category, "premium_mpv")
        self.assertEqual(tier.base_price, 5730)

    def test_display_names_are_normalized(self):
        self.assertEqual(get_vehicle_pricing_tier("Innova Crysta").category, "mpv")

    def test_substring_match(self):
        self.assertEqual(get_vehicle_pricing_tier("Swift Dzire").display_name, "Dzire")
        self.assertEqual(get_vehicle_pricing_tier("tempo_traveller").category, "tempo")

    def test_unknown_falls_back_to_standard_vehicle(self):
        tier = get_vehicle_pricing_tier("etios")
        self.assertEqual(tier, DEFAULT_PRICING_TIER)
        self.assertEqual(tier.display_name, "Standard Vehicle")
        self.assertEqual(get_vehicle_pricing_tier(None), DEFAULT_PRICING_TIER)


class TestFareRange(unittest.TestCase):

    def test_local_trips_have_lower_minimum(self):
        self.assertEqual(get_valid_fare_range("sedan", "local"), (1000, 8000))
        self.assertEqual(get_valid_fare_range("sedan", "outstation"), (2000, 8000))

    def test_category_ranges(self):
        self.assertEqual(get_valid_fare_range("ertiga", "airport"), (2500, 12000))
        self.assertEqual(get_valid_fare_range("innova_hycross", "local"), (2000, 15000))
        self.assertEqual(get_valid_fare_range("luxury", "outstation"), (4000, 20000))
        self.assertEqual(get_valid_fare_range("tempo", "local"), (4000, 25000))

    def test_validate_fare_amount(self):
        self.assertTrue(validate_fare_amount(5000, "sedan", "outstation"))
        self.assertFalse(validate_fare_amount(1500, "sedan", "outstation"))
        self.assertTrue(validate_fare_amount(1500, "sedan", "local"))
        self.assertFalse(validate_fare_amount(9000, "sedan", "outstation"))

    def test_non_numbers_are_invalid(self):
        self.assertFalse(validate_fare_amount(0, "sedan", "local"))
        self.assertFalse(validate_fare_amount(-10, "sedan", "local"))
        self.assertFalse(validate_fare_amount(math.nan, "sedan", "local"))
        self.assertFalse(validate_fare_amount("5000", "sedan", "local"))
        self.assertFalse(validate_fare_amount(True, "sedan", "local"))


class TestChecksum(unittest.TestCase):

    def test_checksum_format(self):
        self.assertEqual(
            generate_fare_checksum(2550, "Innova Crysta", "outstation"),
            "2550_innova_crysta_outstation_50",
        )
        self.assertEqual(
            generate_fare_checksum(2550.0, "innova_crysta", "outstation"),
            "2550_innova_crysta_outstation_50",
        )
        self.assertEqual(
            generate_fare_checksum(1234.75, "sedan", "local"),
            "1234.75_sedan_local_34",
        )

    def test_validate_checksum(self):
        token = generate_fare_checksum(4810, "sedan", "outstation")
        self.assertTrue(validate_fare_checksum(4810, "sedan", "outstation", token))
        self.assertFalse(validate_fare_checksum(4811, "sedan", "outstation", token))
        self.assertFalse(validate_fare_checksum(4810, "sedan", "local", token))


if __name__ == "__main__":
    unittest.main()
