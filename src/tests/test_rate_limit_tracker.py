"""
Test suite for RateLimitTracker component
Following TDD approach with AAA pattern and descriptive naming
"""

import threading
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from cms_client.rate_limit_tracker import RateLimitTracker, parse_retry_after


class TestRateLimitTracker:
    """Test suite for RateLimitTracker quota tracking functionality"""

    def test_update_from_headers_with_quota_headers_records_snapshot(self):
        """
        Test that limit, remaining and reset headers are recorded for the token
        """
        # Arrange
        tracker = RateLimitTracker()

        # Act
        snapshot = tracker.update_from_headers(
            'token_a',
            {'X-RateLimit-Limit': '60', 'X-RateLimit-Remaining': '42', 'X-RateLimit-Reset': '10'},
            now=100.0
        )

        # Assert
        assert snapshot.limit == 60
        assert snapshot.remaining == 42
        assert snapshot.reset_at == 110.0
        assert tracker.get_snapshot('token_a') == snapshot

    def test_update_from_headers_with_lowercase_headers_parses_values(self):
        """
        Test that header names are matched case-insensitively
        """
        # Arrange
        tracker = RateLimitTracker()

        # Act
        snapshot = tracker.update_from_headers('token_a', {'x-ratelimit-remaining': '3'})

        # Assert
        assert snapshot.remaining == 3

    def test_update_from_headers_with_missing_headers_keeps_previous_values(self):
        """
        Test that absent headers do not erase earlier observations
        """
        # Arrange
        tracker = RateLimitTracker()
        tracker.update_from_headers('token_a', {'X-RateLimit-Limit': '60', 'X-RateLimit-Remaining': '5'}, now=0.0)

        # Act
        snapshot = tracker.update_from_headers('token_a', {'X-RateLimit-Remaining': '4'}, now=1.0)

        # Assert
        assert snapshot.limit == 60
        assert snapshot.remaining == 4
        assert snapshot.updated_at == 1.0

    def test_update_from_headers_with_different_tokens_tracks_separately(self):
        """
        Test that each token has its own quota state
        """
        # Arrange
        tracker = RateLimitTracker()

        # Act
        tracker.update_from_headers('token_a', {'X-RateLimit-Remaining': '0'})
        tracker.update_from_headers('token_b', {'X-RateLimit-Remaining': '50'})

        # Assert
        assert tracker.get_snapshot('token_a').remaining == 0
        assert tracker.get_snapshot('token_b').remaining == 50

    def test_token_key_does_not_contain_token(self):
        """
        Test that state is keyed by a hash rather than the raw token
        """
        # Act
        key = RateLimitTracker.token_key('secret_token_value')

        # Assert
        assert 'secret' not in key
        assert len(key) == 16
        assert key == RateLimitTracker.token_key('secret_token_value')

    def test_get_delay_with_remaining_quota_returns_zero(self):
        """
        Test that no delay is needed while quota remains
        """
        # Arrange
        tracker = RateLimitTracker()
        tracker.update_from_headers('token_a', {'X-RateLimit-Remaining': '1', 'X-RateLimit-Reset': '30'}, now=0.0)

        # Act
        delay = tracker.get_delay('token_a', now=0.0)

        # Assert
        assert delay == 0.0

    def test_get_delay_with_exhausted_quota_returns_time_until_reset(self):
        """
        Test that exhausted quota delays until the reset time
        """
        # Arrange
        tracker = RateLimitTracker()
        tracker.update_from_headers('token_a', {'X-RateLimit-Remaining': '0', 'X-RateLimit-Reset': '30'}, now=0.0)

        # Act
        delay = tracker.get_delay('token_a', now=10.0)

        # Assert
        assert delay == 20.0

    def test_get_delay_with_distant_reset_is_capped_at_max_delay(self):
        """
        Test that the delay never exceeds max_delay
        """
        # Arrange
        tracker = RateLimitTracker(max_delay=60.0)
        tracker.update_from_headers('token_a', {'X-RateLimit-Remaining': '0', 'Retry-After': '3600'}, now=0.0)

        # Act
        delay = tracker.get_delay('token_a', now=0.0)

        # Assert
        assert delay == 60.0

    def test_get_delay_with_unknown_token_returns_zero(self):
        """
        Test that tokens without observations are not delayed
        """
        # Arrange
        tracker = RateLimitTracker()

        # Act & Assert
        assert tracker.get_delay('never_seen') == 0.0

    def test_reset_with_token_forgets_only_that_token(self):
        """
        Test that resetting one token keeps the others
        """
        # Arrange
        tracker = RateLimitTracker()
        tracker.update_from_headers('token_a', {'X-RateLimit-Remaining': '0'})
        tracker.update_from_headers('token_b', {'X-RateLimit-Remaining': '0'})

        # Act
        tracker.reset('token_a')

        # Assert
        assert tracker.get_snapshot('token_a') is None
        assert tracker.get_snapshot('token_b') is not None

    def test_update_from_headers_from_many_threads_keeps_consistent_snapshot(self):
        """
        Test that concurrent writers always leave a complete snapshot
        """
        # Arrange
        tracker = RateLimitTracker()

        def worker(remaining):
            for _ in range(100):
                tracker.update_from_headers('token_a', {'X-RateLimit-Limit': '60',
                                                        'X-RateLimit-Remaining': str(remaining)})

        threads = [threading.Thread(target=worker, args=(value,)) for value in range(8)]

        # Act
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # Assert
        snapshot = tracker.get_snapshot('token_a')
        assert snapshot.limit == 60
        assert snapshot.remaining in range(8)


class TestParseRetryAfter:
    """Test suite for Retry-After header parsing"""

    def test_parse_retry_after_with_seconds_returns_float(self):
        """
        Test that numeric values are read as seconds
        """
        assert parse_retry_after('2') == 2.0
        assert parse_retry_after('1.5') == 1.5

    def test_parse_retry_after_with_http_date_returns_seconds_until_date(self):
        """
        Test that HTTP dates are converted to a delay
        """
        # Arrange
        retry_at = datetime.now(timezone.utc) + timedelta(seconds=30)

        # Act
        delay = parse_retry_after(format_datetime(retry_at, usegmt=True))

        # Assert
        assert 25.0 <= delay <= 30.0

    def test_parse_retry_after_with_past_date_returns_zero(self):
        """
        Test that dates in the past mean no delay
        """
        # Arrange
        retry_at = datetime.now(timezone.utc) - timedelta(minutes=5)

        # Act & Assert
        assert parse_retry_after(format_datetime(retry_at, usegmt=True)) == 0.0

    def test_parse_retry_after_with_missing_or_invalid_value_returns_none(self):
        """
        Test that unusable values are ignored
        """
        assert parse_retry_after(None) is None
        assert parse_retry_after('') is None
        assert parse_retry_after('soon') is None
