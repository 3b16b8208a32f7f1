from __future__ import annotations

import unittest

from consign.utils.commission import (
    compute_sale_split_minor,
    fee_bps_for_tier,
    money_major_to_minor,
    money_minor_to_major,
)


class CommissionMinorTestCase(unittest.TestCase):
    def test_tier_rates(self):
        self.assertEqual(fee_bps_for_tier("NEW_SELLER"), 1000)
        self.assertEqual(fee_bps_for_tier("rising_seller"), 800)
        self.assertEqual(fee_bps_for_tier("PRO_SELLER"), 600)
        self.assertEqual(fee_bps_for_tier("ELITE_SELLER"), 500)
        # Unknown tiers fall back to the new-seller rate.
        self.assertEqual(fee_bps_for_tier("PLATINUM"), 1000)
        self.assertEqual(fee_bps_for_tier(None), 1000)

    def test_half_up_rounding_and_split(self):
        split = compute_sale_split_minor(price_minor=12345, fee_tier="NEW_SELLER")  # 10% = 1234.5 -> 1235
        self.assertEqual(split["held_minor"], 12345)
        self.assertEqual(split["fee_minor"], 1235)
        self.assertEqual(split["payout_minor"], 11110)
        self.assertEqual(split["fee_bps"], 1000)

        small = compute_sale_split_minor(price_minor=10, fee_tier="ELITE_SELLER")  # 5% = 0.5 -> 1
        self.assertEqual(small["fee_minor"], 1)
        self.assertEqual(small["payout_minor"], 9)

    def test_negative_or_missing_prices_clamp_to_zero(self):
        for price in (-500, None, 0):
            with self.subTest(price=price):
                split = compute_sale_split_minor(price_minor=price, fee_tier="PRO_SELLER")
                self.assertEqual((split["held_minor"], split["fee_minor"], split["payout_minor"]), (0, 0, 0))

    def test_major_minor_conversions(self):
        self.assertEqual(money_major_to_minor("199.995"), 20000)
        self.assertEqual(money_major_to_minor(None), 0)
        self.assertEqual(money_minor_to_major(123456), 1234.56)
        self.assertEqual(money_minor_to_major(None), 0.0)


if __name__ == "__main__":
    unittest.main()
