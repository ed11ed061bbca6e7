# tests/test_cart_parser.py

"""Tests for Store API cart payload parsing."""

import unittest

from src.services.cart_parser import (
    coupon_error_message,
    from_minor,
    parse_coupon,
    parse_discount_total,
    parse_item,
    parse_totals,
)


class TestMinorUnits(unittest.TestCase):

    def test_string_minor_units(self) -> None:
        self.assertAlmostEqual(from_minor("1299"), 12.99)

    def test_blank_and_garbage(self) -> None:
        self.assertEqual(from_minor(None), 0.0)
        self.assertEqual(from_minor(""), 0.0)
        self.assertEqual(from_minor("abc"), 0.0)


class TestParseItem(unittest.TestCase):

    def test_item_fields(self) -> None:
        item = parse_item(
            {
                "key": "abc",
                "id": 12,
                "quantity": 2,
                "name": "Mug",
                "prices": {"price": "450"},
                "images": [{"src": "https://shop.example.com/mug.jpg"}],
            }
        )
        self.assertEqual(item.key, "abc")
        self.assertEqual(item.quantity, 2)
        self.assertAlmostEqual(item.price, 4.5)
        self.assertEqual(item.image, "https://shop.example.com/mug.jpg")

    def test_item_without_images(self) -> None:
        self.assertEqual(parse_item({"key": "k", "id": 1}).image, "")


class TestCoupons(unittest.TestCase):

    def test_coupon_discount_from_totals(self) -> None:
        coupon = parse_coupon(
            {
                "code": "SAVE10",
                "discount_type": "percent",
                "totals": {"total_discount": "1000", "discount_tax": "50"},
            }
        )
        self.assertEqual(coupon.code, "SAVE10")
        self.assertAlmostEqual(coupon.discount_total, 10.0)
        self.assertAlmostEqual(coupon.discount_tax, 0.5)
        self.assertEqual(coupon.amount, "10.0")

    def test_zero_field_skipped_for_next(self) -> None:
        coupon = parse_coupon(
            {"code": "X", "totals": {"total_discount": "0", "discount": "250"}}
        )
        self.assertAlmostEqual(coupon.discount_total, 2.5)

    def test_amount_fallback_is_display_units(self) -> None:
        coupon = parse_coupon({"code": "FLAT", "amount": "5.00"})
        self.assertAlmostEqual(coupon.discount_total, 5.0)
        self.assertEqual(coupon.amount, "5.00")
        self.assertEqual(coupon.discount_type, "fixed_cart")


class TestTotals(unittest.TestCase):

    def test_cart_level_discount_priority(self) -> None:
        cart = {
            "totals": {
                "total_discount": "",
                "total_coupon_discount": "300",
                "discount_total": "999",
            }
        }
        self.assertAlmostEqual(parse_discount_total(cart), 3.0)

    def test_discount_summed_from_coupons(self) -> None:
        cart = {
            "totals": {"total_discount": "0"},
            "coupons": [
                {"code": "A", "totals": {"total_discount": "100"}},
                {"code": "B", "totals": {"discount": "250"}},
            ],
        }
        self.assertAlmostEqual(parse_discount_total(cart), 3.5)

    def test_parse_totals(self) -> None:
        totals = parse_totals(
            {
                "totals": {
                    "total_items": "2000",
                    "total_tax": "150",
                    "total_shipping": "500",
                    "total_price": "2650",
                }
            }
        )
        self.assertAlmostEqual(totals.subtotal, 20.0)
        self.assertAlmostEqual(totals.tax_total, 1.5)
        self.assertAlmostEqual(totals.shipping_total, 5.0)
        self.assertAlmostEqual(totals.total, 26.5)
        self.assertEqual(totals.discount_total, 0)


class TestCouponErrorMessage(unittest.TestCase):

    def test_known_code(self) -> None:
        self.assertEqual(
            coupon_error_message("woocommerce_coupon_expired", "raw"),
            "This coupon has expired",
        )

    def test_amount_limit_prefers_server_message(self) -> None:
        self.assertEqual(
            coupon_error_message(
                "woocommerce_coupon_minimum_amount", "Spend at least $50"
            ),
            "Spend at least $50",
        )
        self.assertEqual(
            coupon_error_message("woocommerce_coupon_minimum_amount"),
            "Minimum order amount not met",
        )

    def test_unknown_code_default(self) -> None:
        self.assertEqual(coupon_error_message("other"), "Failed to apply coupon")


if __name__ == "__main__":
    unittest.main()
