# tests/test_health_checker.py

"""Tests for the origin health checker service."""

import unittest
from unittest.mock import MagicMock, patch

from src.clients.errors import (
    OriginAuthError,
    OriginNotFoundError,
    OriginUnavailableError,
)
from src.services.health_checker import (
    HealthChecker,
    HealthResult,
    probe_endpoint,
    probe_store,
)


def _woocommerce(configured: bool = True, credentials: bool = True) -> MagicMock:
    client = MagicMock()
    client.origin.is_configured = configured
    client.has_credentials = credentials
    return client


class TestProbeEndpoint(unittest.TestCase):
    """Tests for the per-endpoint health probe function."""

    def test_ok_status(self) -> None:
        """A fast successful call should return 'ok' status."""
        result = probe_endpoint("wordpress", lambda: None)
        self.assertEqual(result.status, "ok")
        self.assertEqual(result.source_id, "wordpress")

    def test_down_on_http_error(self) -> None:
        """An HTTP error should return 'down' with the status code."""
        call = MagicMock(side_effect=OriginAuthError("Forbidden", 403))
        result = probe_endpoint("woocommerce", call)
        self.assertEqual(result.status, "down")
        self.assertIn("403", result.message)

    def test_down_on_network_error(self) -> None:
        """A network error should return 'down' with its message."""
        call = MagicMock(
            side_effect=OriginUnavailableError("Connection refused")
        )
        result = probe_endpoint("store-api", call)
        self.assertEqual(result.status, "down")
        self.assertIn("Connection refused", result.message)

    @patch("src.services.health_checker.time")
    def test_slow_status(self, mock_time: MagicMock) -> None:
        """A call over five seconds should be flagged 'slow'."""
        mock_time.monotonic.side_effect = [0.0, 6.0]
        result = probe_endpoint("wordpress", lambda: None)
        self.assertEqual(result.status, "slow")
        self.assertAlmostEqual(result.latency_ms, 6000.0)


class TestProbeStore(unittest.TestCase):
    """WooCommerce availability classification."""

    def test_not_configured(self) -> None:
        status = probe_store(_woocommerce(credentials=False))
        self.assertFalse(status.is_configured)
        self.assertFalse(status.is_available)

    def test_active(self) -> None:
        status = probe_store(_woocommerce())
        self.assertTrue(status.is_available)
        self.assertEqual(status.message, "")

    def test_bad_credentials_still_active(self) -> None:
        client = _woocommerce()
        client.check_status.side_effect = OriginAuthError("no", 401)
        status = probe_store(client)
        self.assertTrue(status.is_active)
        self.assertEqual(
            status.message, "WooCommerce API credentials are invalid"
        )

    def test_plugin_missing(self) -> None:
        client = _woocommerce()
        client.check_status.side_effect = OriginNotFoundError("no route", 404)
        status = probe_store(client)
        self.assertFalse(status.is_active)
        self.assertIn("not active", status.message)

    def test_unreachable(self) -> None:
        client = _woocommerce()
        client.check_status.side_effect = OriginUnavailableError("timeout")
        status = probe_store(client)
        self.assertFalse(status.is_available)
        self.assertIn("Cannot connect", status.message)


class TestHealthChecker(unittest.IsolatedAsyncioTestCase):
    """Tests for the HealthChecker orchestrator."""

    def _checker(self, configured: bool = True) -> HealthChecker:
        origin = MagicMock()
        origin.is_configured = configured
        return HealthChecker(
            origin=origin,
            woocommerce=_woocommerce(configured),
            store_api=MagicMock(),
        )

    @patch("src.services.health_checker.probe_endpoint")
    async def test_check_all_returns_all_endpoints(
        self, mock_probe: MagicMock,
    ) -> None:
        """check_all should return one result per endpoint."""
        mock_probe.return_value = HealthResult(
            source_id="test",
            status="ok",
            latency_ms=100.0,
            message="",
        )

        checker = self._checker()
        results = await checker.check_all()

        self.assertEqual(len(results), len(checker._probes()))
        self.assertEqual(mock_probe.call_count, 3)

    async def test_unconfigured_origin_reports_down(self) -> None:
        results = await self._checker(configured=False).check_all()
        self.assertEqual({r.status for r in results}, {"down"})
        self.assertEqual(
            [r.source_id for r in results],
            ["wordpress", "woocommerce", "store-api"],
        )

    async def test_store_status(self) -> None:
        status = await self._checker().store_status()
        self.assertTrue(status.is_available)


if __name__ == "__main__":
    unittest.main()
