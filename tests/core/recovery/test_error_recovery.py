"""
Tests for the Error Recovery System

Tests for error classification and bounded retry strategies.
"""

import pytest

from cctp_bridge.core.recovery import (
    # Errors
    RecoverableError,
    UnrecoverableError,
    RateLimitError,
    NetworkError,
    TimeoutError,
    TransactionRevertedError,
    classify_error,
    # Strategies
    RetryStrategy,
    ExponentialBackoffStrategy,
)
from cctp_bridge.core.recovery.errors import ErrorCategory
from cctp_bridge.core.recovery.strategies import RetryConfig


# =============================================================================
# Error Classification Tests
# =============================================================================

class TestErrorClassification:
    """Tests for error classification."""

    def test_recoverable_error_is_recoverable(self):
        """Test that RecoverableError is classified as recoverable."""
        error = RecoverableError("Test error")
        assert error.context.recoverable is True

    def test_unrecoverable_error_is_not_recoverable(self):
        """Test that UnrecoverableError is classified as not recoverable."""
        error = UnrecoverableError("Test error")
        assert error.context.recoverable is False

    def test_rate_limit_error(self):
        """Test RateLimitError properties."""
        error = RateLimitError(retry_after=30.0, provider="base")

        assert error.category == ErrorCategory.RATE_LIMIT
        assert error.retry_after == 30.0
        assert error.context.provider == "base"

    def test_network_error(self):
        """Test NetworkError properties."""
        error = NetworkError(provider="iris")

        assert error.category == ErrorCategory.NETWORK
        assert error.context.recoverable is True

    def test_timeout_error_records_operation(self):
        error = TimeoutError("receipt not found", operation="wait_for_receipt")

        assert error.category == ErrorCategory.TIMEOUT
        assert error.context.details == {"operation": "wait_for_receipt"}

    def test_transaction_reverted_error(self):
        """Test TransactionRevertedError properties."""
        error = TransactionRevertedError(
            tx_hash="0x123",
            reason="Nonce already used",
            chain="POLYGON",
        )

        assert error.category == ErrorCategory.TRANSACTION_REVERTED
        assert error.context.tx_hash == "0x123"
        assert error.context.chain == "POLYGON"
        assert error.reason == "Nonce already used"

    def test_classified_errors_keep_their_context(self):
        error = NetworkError("rpc down", provider="ethereum")

        assert classify_error(error) is error.context

    def test_classify_rate_limit_error(self):
        """Test classification of rate limit errors."""
        error = Exception("429 Too Many Requests")
        context = classify_error(error)

        assert context.category == ErrorCategory.RATE_LIMIT
        assert context.recoverable is True

    def test_classify_network_error(self):
        """Test classification of network errors."""
        error = Exception("Connection refused")
        context = classify_error(error)

        assert context.category == ErrorCategory.NETWORK
        assert context.recoverable is True

    def test_classify_insufficient_funds(self):
        """Test classification of insufficient funds errors."""
        error = Exception("ERC20: transfer amount exceeds balance")
        context = classify_error(error)

        assert context.category == ErrorCategory.INSUFFICIENT_FUNDS
        assert context.recoverable is False

    def test_classify_revert_error(self):
        """Test classification of revert errors."""
        error = Exception("execution reverted: Invalid attestation length")
        context = classify_error(error)

        assert context.category == ErrorCategory.TRANSACTION_REVERTED
        assert context.recoverable is False

    def test_classify_unknown_error(self):
        """Test classification of unknown errors."""
        error = Exception("Something weird happened")
        context = classify_error(error)

        assert context.category == ErrorCategory.UNKNOWN
        # Unknown defaults to recoverable; the attempt cap still applies
        assert context.recoverable is True


# =============================================================================
# Retry Strategy Tests
# =============================================================================

class TestRetryStrategy:
    """Tests for retry strategies."""

    @pytest.mark.asyncio
    async def test_successful_operation(self):
        """Test successful operation doesn't retry."""
        strategy = RetryStrategy(RetryConfig(max_attempts=3))

        call_count = 0
        async def operation():
            nonlocal call_count
            call_count += 1
            return "success"

        result = await strategy.execute(operation)

        assert result == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_recoverable_error(self):
        """Test retry on recoverable error."""
        strategy = RetryStrategy(RetryConfig(
            max_attempts=3,
            initial_delay_seconds=0.01,
        ))

        call_count = 0
        async def operation():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise NetworkError("Temporary failure")
            return "success"

        result = await strategy.execute(operation)

        assert result == "success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_no_retry_unrecoverable(self):
        """Test no retry on unrecoverable error."""
        strategy = RetryStrategy(RetryConfig(max_attempts=3))

        call_count = 0
        async def operation():
            nonlocal call_count
            call_count += 1
            raise TransactionRevertedError("eth_estimateGas reverted")

        with pytest.raises(TransactionRevertedError):
            await strategy.execute(operation)

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_all_retries_exhausted(self):
        """Exhaustion re-raises the last error instead of stalling."""
        strategy = RetryStrategy(RetryConfig(
            max_attempts=3,
            initial_delay_seconds=0,
            jitter=False,
        ))

        call_count = 0
        async def operation():
            nonlocal call_count
            call_count += 1
            raise NetworkError(f"Always fails ({call_count})")

        with pytest.raises(NetworkError, match=r"\(3\)"):
            await strategy.execute(operation)

        assert call_count == 3

    @pytest.mark.asyncio
    async def test_retry_after_caps_delay(self, monkeypatch):
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        monkeypatch.setattr("cctp_bridge.core.recovery.strategies.asyncio.sleep", fake_sleep)
        strategy = RetryStrategy(RetryConfig(max_attempts=2, max_delay_seconds=5.0))

        async def operation():
            raise RateLimitError(retry_after=60.0)

        with pytest.raises(RateLimitError):
            await strategy.execute(operation)

        assert delays == [5.0]

    def test_should_retry_recoverable(self):
        """Test should_retry for recoverable errors."""
        strategy = RetryStrategy(RetryConfig(max_attempts=3))

        assert strategy.should_retry(NetworkError("test"), attempt=0) is True
        assert strategy.should_retry(NetworkError("test"), attempt=2) is False
        assert strategy.should_retry(TransactionRevertedError("test"), attempt=0) is False
        assert strategy.should_retry(Exception("insufficient funds"), attempt=0) is False


# =============================================================================
# Exponential Backoff Tests
# =============================================================================

class TestExponentialBackoff:
    """Tests for exponential backoff strategy."""

    def test_backoff_increases(self):
        """Test that backoff delay increases."""
        strategy = ExponentialBackoffStrategy(
            max_attempts=5,
            initial_delay=0.01,
            max_delay=1.0,
        )

        config = strategy.config
        delays = [config.get_delay(i) for i in range(5)]

        # Each delay should be roughly 2x the previous (with jitter)
        for i in range(1, 4):
            # Allow for jitter variation
            assert delays[i] >= delays[i-1] * 0.8

    def test_max_delay_enforced(self):
        """Test that max delay is enforced."""
        config = RetryConfig(
            initial_delay_seconds=1.0,
            max_delay_seconds=10.0,
            exponential_base=2.0,
        )

        delay = config.get_delay(100)  # Very high attempt number
        assert delay <= 10.0 * 1.1  # Allow for jitter
