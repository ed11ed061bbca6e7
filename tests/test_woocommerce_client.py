# tests/test_woocommerce_client.py

"""Tests for the WooCommerce REST v3 client."""

import json
import unittest
from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

from src.clients.errors import OriginAuthError, OriginUnavailableError
from src.clients.origin_client import OriginClient
from src.clients.woocommerce_client import WooCommerceClient, _email_allowed

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def make_response(
    status: int = 200,
    data: Any = None,
    headers: dict[str, str] | None = None,
) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = json.dumps(data) if data is not None else ""
    resp.headers = headers or {}
    return resp


class TestWooCommerceClient(unittest.TestCase):

    def setUp(self) -> None:
        self.session = MagicMock()
        self.client = WooCommerceClient(
            OriginClient(
                base_url="https://shop.example.com",
                auth=("ck", "cs"),
                session=self.session,
            ),
            consumer_key="ck",
            consumer_secret="cs",
        )
        with open(FIXTURES_DIR / "wc_product.json", encoding="utf-8") as f:
            self.product = json.load(f)

    def test_products_walks_every_page(self) -> None:
        pages = {"x-wp-totalpages": "2", "x-wp-total": "2"}
        self.session.request.side_effect = [
            make_response(200, [self.product], pages),
            make_response(200, [dict(self.product, id=43)], pages),
        ]
        products = self.client.get_products({"per_page": 1})

        self.assertEqual([p["id"] for p in products], [42, 43])
        second = self.session.request.call_args_list[1].kwargs["params"]
        self.assertEqual(second, {"per_page": 1, "page": 2})
        self.assertEqual(
            self.session.request.call_args.kwargs["auth"], ("ck", "cs")
        )

    def test_missing_credentials(self) -> None:
        client = WooCommerceClient(
            OriginClient(base_url="https://shop.example.com", session=self.session),
            consumer_key="",
            consumer_secret="",
        )
        self.assertFalse(client.has_credentials)
        with self.assertRaises(OriginAuthError):
            client.get_products()
        self.session.request.assert_not_called()

    def test_check_status_uses_system_status(self) -> None:
        self.session.request.return_value = make_response(200, {"environment": {}})
        self.client.check_status()
        url = self.session.request.call_args.args[1]
        self.assertTrue(url.endswith("/wp-json/wc/v3/system_status"))


class TestValidateCoupon(unittest.TestCase):
    """Restriction checks against a stubbed coupon lookup."""

    def setUp(self) -> None:
        self.client = WooCommerceClient(
            MagicMock(), consumer_key="ck", consumer_secret="cs"
        )
        self.now = datetime(2026, 3, 1, 12, 0)

    def _validate(self, coupon: dict[str, Any] | None, **kwargs: Any):
        with patch.object(
            self.client, "get_coupon_by_code", return_value=coupon
        ):
            return self.client.validate_coupon("code", now=self.now, **kwargs)

    def test_valid(self) -> None:
        result = self._validate({"code": "code"}, cart_total=10)
        self.assertTrue(result.valid)
        self.assertEqual(result.coupon, {"code": "code"})

    def test_not_found(self) -> None:
        result = self._validate(None)
        self.assertEqual(result.error_code, "woocommerce_coupon_not_exist")

    def test_expired(self) -> None:
        result = self._validate({"date_expires": "2026-02-01T00:00:00"})
        self.assertEqual(result.error_code, "woocommerce_coupon_expired")

    def test_usage_limit(self) -> None:
        result = self._validate({"usage_limit": 5, "usage_count": 5})
        self.assertEqual(
            result.error_code, "woocommerce_coupon_usage_limit_reached"
        )

    def test_minimum_amount(self) -> None:
        result = self._validate({"minimum_amount": "50.00"}, cart_total=20)
        self.assertEqual(result.error_code, "woocommerce_coupon_minimum_amount")
        self.assertIn("50.00", result.error)

    def test_maximum_amount(self) -> None:
        result = self._validate({"maximum_amount": "100"}, cart_total=120)
        self.assertEqual(result.error_code, "woocommerce_coupon_maximum_amount")

    def test_email_restriction(self) -> None:
        coupon = {"email_restrictions": ["*@example.com"]}
        self.assertTrue(
            self._validate(coupon, email="ann@example.com").valid
        )
        result = self._validate(coupon, email="ann@other.org")
        self.assertEqual(
            result.error_code, "woocommerce_coupon_not_valid_for_email"
        )

    def test_lookup_failure(self) -> None:
        with patch.object(
            self.client,
            "get_coupon_by_code",
            side_effect=OriginUnavailableError("down"),
        ):
            result = self.client.validate_coupon("code")
        self.assertFalse(result.valid)
        self.assertEqual(result.error, "Error validating coupon")

    def test_email_wildcards(self) -> None:
        self.assertTrue(_email_allowed(["A@B.com"], "a@b.com"))
        self.assertFalse(_email_allowed(["a.b@c.com"], "axb@c.com"))


if __name__ == "__main__":
    unittest.main()
