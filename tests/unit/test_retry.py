"""
Unit tests for the retry policy

Tests verify:
- Exponential backoff calculation
- Jitter implementation
- Exception classification
- Retry callbacks
"""

import sqlite3
from unittest.mock import Mock

import pytest

from dbdiff.errors import ReadError, TransientReadError
from dbdiff.utils.db_pool import PoolExhaustedError
from dbdiff.utils.retry import NO_RETRY, RetryPolicy, is_retryable_db_exception


def no_sleep_policy(**kwargs) -> tuple[RetryPolicy, Mock]:
    sleep = Mock()
    return RetryPolicy(sleep=sleep, **kwargs), sleep


class TestRetryPolicy:
    """Test RetryPolicy.call"""

    def test_success_on_first_attempt(self):
        """Function succeeds on first attempt without retries"""
        policy, sleep = no_sleep_policy(max_retries=3)
        func = Mock(return_value="success")

        assert policy.call(func) == "success"
        assert func.call_count == 1
        sleep.assert_not_called()

    def test_success_after_retries(self):
        """Function succeeds after transient failures"""
        policy, sleep = no_sleep_policy(max_retries=3)
        func = Mock(side_effect=[
            ConnectionError("Connection failed"),
            TransientReadError("OperationalError: server closed the connection"),
            "success",
        ])

        assert policy.call(func) == "success"
        assert func.call_count == 3
        assert sleep.call_count == 2

    def test_max_retries_exceeded(self):
        """Last exception is re-raised once retries are exhausted"""
        policy, _ = no_sleep_policy(max_retries=2)
        func = Mock(side_effect=TimeoutError("Persistent timeout"))

        with pytest.raises(TimeoutError, match="Persistent timeout"):
            policy.call(func)

        # initial + 2 retries
        assert func.call_count == 3

    def test_non_retryable_error_raised_immediately(self):
        """Permanent errors are not retried"""
        policy, sleep = no_sleep_policy(max_retries=5)
        func = Mock(side_effect=ReadError("OperationalError: no such table: orders"))

        with pytest.raises(ReadError):
            policy.call(func)

        assert func.call_count == 1
        sleep.assert_not_called()

    def test_exponential_backoff_timing(self):
        """Delays double without jitter"""
        policy, sleep = no_sleep_policy(max_retries=2, base_delay=1.0, exponential_base=2.0, jitter=False)
        func = Mock(side_effect=[TimeoutError("Timeout"), TimeoutError("Timeout"), "success"])

        policy.call(func)

        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_max_delay_cap(self):
        """Delay is capped at max_delay"""
        policy = RetryPolicy(max_retries=5, base_delay=10.0, max_delay=15.0, jitter=False)

        assert list(policy.delays()) == [10.0, 15.0, 15.0, 15.0, 15.0]

    def test_jitter_stays_within_bounds(self):
        """Jitter varies delays within +/-25%"""
        policy = RetryPolicy(max_retries=3, base_delay=1.0, exponential_base=2.0, jitter=True)

        for _ in range(20):
            first, second, third = policy.delays()
            assert 0.75 <= first <= 1.25
            assert 1.5 <= second <= 2.5
            assert 3.0 <= third <= 5.0

    def test_min_delay_floor(self):
        policy = RetryPolicy(max_retries=2, base_delay=0.01, min_delay=0.5, jitter=False)

        assert list(policy.delays()) == [0.5, 0.5]

    def test_on_retry_callback(self):
        """Callback receives attempt number, exception and delay"""
        policy, _ = no_sleep_policy(max_retries=2, base_delay=1.0, jitter=False)
        callback = Mock()
        error = ConnectionError("Connection reset")
        func = Mock(side_effect=[error, "ok"])

        policy.call(func, on_retry=callback)

        callback.assert_called_once_with(1, error, 1.0)

    def test_failing_callback_does_not_stop_retry(self):
        policy, _ = no_sleep_policy(max_retries=1)
        func = Mock(side_effect=[ConnectionError("Connection reset"), "ok"])

        assert policy.call(func, on_retry=Mock(side_effect=RuntimeError("boom"))) == "ok"

    def test_arguments_passed_through(self):
        policy, _ = no_sleep_policy()
        func = Mock(return_value=1)

        policy.call(func, "a", 2, key="value")

        func.assert_called_once_with("a", 2, key="value")

    def test_decorator_form(self):
        policy, _ = no_sleep_policy(max_retries=1)
        attempts = []

        @policy
        def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise TimeoutError("timed out")
            return "done"

        assert flaky() == "done"
        assert flaky.__name__ == "flaky"
        assert len(attempts) == 2

    def test_no_retry_policy(self):
        func = Mock(side_effect=ConnectionError("Connection refused"))

        with pytest.raises(ConnectionError):
            NO_RETRY.call(func)

        assert func.call_count == 1

    def test_custom_retryable_predicate(self):
        policy, _ = no_sleep_policy(max_retries=2, retryable=lambda e: isinstance(e, KeyError))
        func = Mock(side_effect=[KeyError("x"), "ok"])

        assert policy.call(func) == "ok"

    def test_policy_is_frozen_and_comparable(self):
        assert RetryPolicy(max_retries=2) == RetryPolicy(max_retries=2, sleep=Mock())
        with pytest.raises(AttributeError):
            RetryPolicy().max_retries = 10  # type: ignore[misc]


class TestIsRetryableDbException:
    """Test database exception classification"""

    @pytest.mark.parametrize(
        "error",
        [
            ConnectionError("Connection refused"),
            TimeoutError("Query timed out"),
            Exception("deadlock detected"),
            Exception("canceling statement due to statement timeout"),
            Exception("[08S01] Communication link failure"),
            sqlite3.OperationalError("database is locked"),
            TransientReadError("read failed"),
            PoolExhaustedError("No connection available within 30s"),
        ],
    )
    def test_retryable(self, error):
        assert is_retryable_db_exception(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            ValueError("invalid literal"),
            sqlite3.OperationalError("no such table: orders"),
            Exception('relation "orders" does not exist'),
            Exception("syntax error at or near SELECT"),
            Exception("Invalid object name 'dbo.orders'"),
            ReadError("ProgrammingError: permission denied for table orders"),
        ],
    )
    def test_not_retryable(self, error):
        assert is_retryable_db_exception(error) is False

    @pytest.mark.parametrize(
        "error,expected",
        [
            (ReadError("DataError: invalid input for statement_timeout"), False),
            (ReadError("ProgrammingError: unknown connection attribute"), False),
            (TransientReadError("DatabaseError: disk I/O error"), True),
        ],
    )
    def test_classified_read_errors_keep_their_class(self, error, expected):
        """Words like 'timeout' in a permanent ReadError do not make it retryable"""
        assert is_retryable_db_exception(error) is expected

    def test_permanent_read_error_mentioning_connection_is_not_retried(self):
        policy, sleep = no_sleep_policy(max_retries=3)
        func = Mock(side_effect=ReadError("ProgrammingError: connection option rejected"))

        with pytest.raises(ReadError):
            policy.call(func)

        assert func.call_count == 1
        sleep.assert_not_called()

    def test_permanent_message_wins_over_retryable_type(self):
        """An OperationalError naming a missing table is permanent"""
        assert is_retryable_db_exception(sqlite3.OperationalError("no such column: x")) is False
        assert is_retryable_db_exception(sqlite3.OperationalError("disk I/O error")) is True
