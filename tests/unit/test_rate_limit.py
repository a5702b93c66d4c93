"""Tests for rate limiting utilities."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from kubernetes.client.exceptions import ApiException

from uptimerobot_operator.utils.rate_limit import (
    _MinIntervalLimiter,
    handle_rate_limit_error,
    rate_limit_k8s,
    rate_limit_uptimerobot,
)


class TestRateLimitDecorators:
    """Test cases for the rate limiting decorators."""

    @pytest.mark.parametrize("decorator", [rate_limit_k8s, rate_limit_uptimerobot])
    def test_passes_arguments_through(self, decorator):
        """Test that wrapped functions receive their arguments and return values."""

        @decorator
        def call(a, b, c=None):
            return f"{a}-{b}-{c}"

        assert call("x", "y", c="z") == "x-y-z"

    def test_preserves_name(self):
        """Test that the wrapper keeps the wrapped function's name."""

        @rate_limit_k8s
        def list_things():
            return []

        assert list_things.__name__ == "list_things"


class TestMinIntervalLimiter:
    """Test cases for the interval limiter."""

    def test_sleeps_when_called_too_soon(self):
        """Test that back-to-back calls are spaced by 1/rate seconds."""
        limiter = _MinIntervalLimiter(10.0)
        with patch("uptimerobot_operator.utils.rate_limit.time.monotonic", side_effect=[100.0, 100.0, 100.05, 100.1]), patch(
            "uptimerobot_operator.utils.rate_limit.time.sleep"
        ) as mock_sleep:
            limiter.wait()
            limiter.wait()

        assert mock_sleep.call_count == 1
        assert mock_sleep.call_args[0][0] == pytest.approx(0.05)

    def test_zero_rate_never_sleeps(self):
        """Test that a non-positive rate disables limiting."""
        limiter = _MinIntervalLimiter(0)
        with patch("uptimerobot_operator.utils.rate_limit.time.sleep") as mock_sleep:
            limiter.wait()
            limiter.wait()

        mock_sleep.assert_not_called()


class TestHandleRateLimitError:
    """Test cases for handle_rate_limit_error."""

    def test_429(self):
        """Test that 429 is retried."""
        with patch("uptimerobot_operator.utils.rate_limit.time.sleep") as mock_sleep:
            assert handle_rate_limit_error(ApiException(status=429, reason="Too Many Requests")) is True

        mock_sleep.assert_called_once_with(1)

    def test_503_rate_limit(self):
        """Test that a 503 mentioning rate limiting is retried."""
        error = ApiException(status=503, reason="Service Unavailable: rate limit exceeded")
        with patch("uptimerobot_operator.utils.rate_limit.time.sleep"):
            assert handle_rate_limit_error(error) is True

    @pytest.mark.parametrize("status,reason", [(503, "Service Unavailable"), (404, "Not Found")])
    def test_other_errors(self, status, reason):
        """Test that other errors are not retried."""
        with patch("uptimerobot_operator.utils.rate_limit.time.sleep") as mock_sleep:
            assert handle_rate_limit_error(ApiException(status=status, reason=reason)) is False

        mock_sleep.assert_not_called()

    def test_non_api_exception(self):
        """Test that non-Kubernetes errors are not retried."""
        assert handle_rate_limit_error(ValueError("x")) is False

    def test_exponential_backoff(self):
        """Test that the delay doubles with each attempt."""
        error = ApiException(status=429)
        with patch("uptimerobot_operator.utils.rate_limit.time.sleep") as mock_sleep:
            for attempt in range(3):
                assert handle_rate_limit_error(error, attempt=attempt) is True

        assert [c[0][0] for c in mock_sleep.call_args_list] == [1, 2, 4]

    def test_max_retries(self):
        """Test that retries stop at max_retries."""
        with patch("uptimerobot_operator.utils.rate_limit.time.sleep"):
            assert handle_rate_limit_error(ApiException(status=429), attempt=3, max_retries=3) is False
            assert handle_rate_limit_error(ApiException(status=429), attempt=0, max_retries=1) is True
