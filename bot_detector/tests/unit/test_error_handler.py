"""Tests for the retry decorator."""

import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from aiohttp import RequestInfo
from aiohttp.client_exceptions import ClientResponseError
from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL

from bot_detector.collector.error_handler import with_exponential_backoff
from bot_detector.exceptions import ConfigurationError


def response_error(status, headers=None):
    request_info = RequestInfo(URL("https://oauth.reddit.com/test"), "GET", CIMultiDictProxy(CIMultiDict()))
    return ClientResponseError(request_info, (), status=status, message="error", headers=headers)


@patch("bot_detector.collector.error_handler.asyncio.sleep", new_callable=AsyncMock)
class TestExponentialBackoff(unittest.IsolatedAsyncioTestCase):
    """Test cases for with_exponential_backoff."""

    async def test_success_first_try(self, mock_sleep):
        func = AsyncMock(return_value="ok")
        wrapped = with_exponential_backoff(max_retries=3)(func)

        self.assertEqual(await wrapped("a", key="b"), "ok")
        func.assert_called_once_with("a", key="b")
        mock_sleep.assert_not_called()

    async def test_retries_server_errors_with_backoff(self, mock_sleep):
        func = AsyncMock(side_effect=[response_error(503), response_error(502), "ok"])
        wrapped = with_exponential_backoff(max_retries=3, initial_backoff=1.0, backoff_factor=2.0)(func)

        self.assertEqual(await wrapped(), "ok")
        self.assertEqual(func.call_count, 3)
        self.assertEqual([c.args[0] for c in mock_sleep.call_args_list], [1.0, 2.0])

    async def test_backoff_is_capped(self, mock_sleep):
        func = AsyncMock(side_effect=[response_error(500)] * 4 + ["ok"])
        wrapped = with_exponential_backoff(max_retries=5, initial_backoff=4.0, max_backoff=8.0)(func)

        await wrapped()

        self.assertEqual([c.args[0] for c in mock_sleep.call_args_list], [4.0, 8.0, 8.0, 8.0])

    async def test_gives_up_after_max_retries(self, mock_sleep):
        func = AsyncMock(side_effect=response_error(500))
        wrapped = with_exponential_backoff(max_retries=2)(func)

        with self.assertRaises(ClientResponseError):
            await wrapped()
        self.assertEqual(func.call_count, 3)

    async def test_client_errors_are_not_retried(self, mock_sleep):
        func = AsyncMock(side_effect=response_error(404))
        wrapped = with_exponential_backoff(max_retries=5)(func)

        with self.assertRaises(ClientResponseError):
            await wrapped()
        func.assert_called_once()

    async def test_configuration_errors_are_not_retried(self, mock_sleep):
        func = AsyncMock(side_effect=ConfigurationError("no credentials"))
        wrapped = with_exponential_backoff(max_retries=5)(func)

        with self.assertRaises(ConfigurationError):
            await wrapped()
        func.assert_called_once()

    async def test_transport_errors_are_retried(self, mock_sleep):
        func = AsyncMock(side_effect=[ConnectionError("reset"), "ok"])
        wrapped = with_exponential_backoff(max_retries=1)(func)

        self.assertEqual(await wrapped(), "ok")

    async def test_zero_retries_raises_immediately(self, mock_sleep):
        func = AsyncMock(side_effect=ConnectionError("reset"))
        wrapped = with_exponential_backoff(max_retries=0)(func)

        with self.assertRaises(ConnectionError):
            await wrapped()
        func.assert_called_once()
        mock_sleep.assert_not_called()

    async def test_429_waits_through_rate_limiter(self, mock_sleep):
        rate_limiter = MagicMock()
        rate_limiter.handle_429 = AsyncMock()
        func = AsyncMock(side_effect=[response_error(429, headers={"Retry-After": "5"}), "ok"])
        wrapped = with_exponential_backoff(max_retries=0, rate_limiter=rate_limiter)(func)

        self.assertEqual(await wrapped(), "ok")
        rate_limiter.handle_429.assert_awaited_once_with("5")

    async def test_429_waits_are_bounded(self, mock_sleep):
        rate_limiter = MagicMock()
        rate_limiter.handle_429 = AsyncMock()
        func = AsyncMock(side_effect=response_error(429))
        wrapped = with_exponential_backoff(max_retries=0, rate_limiter=rate_limiter, max_rate_limit_waits=2)(func)

        with self.assertRaises(ClientResponseError):
            await wrapped()
        self.assertEqual(rate_limiter.handle_429.await_count, 2)
        self.assertEqual(func.call_count, 3)


if __name__ == "__main__":
    unittest.main()
