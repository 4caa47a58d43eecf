"""
RateLimitTracker module for tracking API quota per token from response headers
"""

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Dict, Mapping, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitSnapshot:
    """Quota information observed on the latest response for one token"""
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[float] = None  # time.monotonic() based
    updated_at: float = 0.0


class RateLimitTracker:
    """
    Tracks remaining API quota per API token

    One instance is normally owned by one client and can be shared between
    clients using the same token. Writers are serialised by a lock; readers
    only ever see a complete snapshot and never take the lock.
    """

    LIMIT_HEADER = 'X-RateLimit-Limit'
    REMAINING_HEADER = 'X-RateLimit-Remaining'
    RESET_HEADER = 'X-RateLimit-Reset'
    RETRY_AFTER_HEADER = 'Retry-After'

    def __init__(self, max_delay: float = 60.0):
        self.max_delay = max_delay
        self._snapshots: Dict[str, RateLimitSnapshot] = {}
        self._lock = threading.Lock()

    @staticmethod
    def token_key(api_token: str) -> str:
        """Key used to store state for a token without keeping the token itself"""
        return hashlib.sha256(api_token.encode('utf-8')).hexdigest()[:16]

    def update_from_headers(self, api_token: str, headers: Mapping[str, str],
                            now: Optional[float] = None) -> RateLimitSnapshot:
        """
        Record quota information from response headers

        Headers that are absent keep their previously observed value.

        Args:
            api_token: Token the request was made with
            headers: Response headers (case-insensitive mapping preferred)
            now: Monotonic timestamp, defaults to time.monotonic()

        Returns:
            The snapshot stored for the token
        """
        now = time.monotonic() if now is None else now
        headers = _case_insensitive(headers)
        key = self.token_key(api_token)

        limit = _parse_int(headers.get(self.LIMIT_HEADER.lower()))
        remaining = _parse_int(headers.get(self.REMAINING_HEADER.lower()))
        reset_in = parse_retry_after(headers.get(self.RETRY_AFTER_HEADER.lower()))
        if reset_in is None:
            reset_in = parse_retry_after(headers.get(self.RESET_HEADER.lower()))

        with self._lock:
            previous = self._snapshots.get(key, RateLimitSnapshot())
            snapshot = RateLimitSnapshot(
                limit=limit if limit is not None else previous.limit,
                remaining=remaining if remaining is not None else previous.remaining,
                reset_at=now + reset_in if reset_in is not None else previous.reset_at,
                updated_at=now
            )
            self._snapshots[key] = snapshot

        if snapshot.remaining is not None and snapshot.remaining <= 0:
            logger.debug(f"Rate limit quota exhausted for token {key}")
        return snapshot

    def get_snapshot(self, api_token: str) -> Optional[RateLimitSnapshot]:
        return self._snapshots.get(self.token_key(api_token))

    def get_delay(self, api_token: str, now: Optional[float] = None) -> float:
        """
        Seconds to wait before the next request to stay within quota

        Args:
            api_token: Token the next request will use
            now: Monotonic timestamp, defaults to time.monotonic()

        Returns:
            0.0 when quota is available or unknown, otherwise the time to reset
        """
        snapshot = self.get_snapshot(api_token)
        if snapshot is None or snapshot.remaining is None or snapshot.remaining > 0:
            return 0.0
        if snapshot.reset_at is None:
            return 0.0

        now = time.monotonic() if now is None else now
        return min(max(snapshot.reset_at - now, 0.0), self.max_delay)

    def reset(self, api_token: Optional[str] = None) -> None:
        """Forget observed quota for one token or for all tokens"""
        with self._lock:
            if api_token is None:
                self._snapshots.clear()
            else:
                self._snapshots.pop(self.token_key(api_token), None)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After style header value

    Args:
        value: Delay in seconds or an HTTP date

    Returns:
        Delay in seconds, or None if the value is missing or unparseable
    """
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None

    try:
        return max(float(value), 0.0)
    except ValueError:
        pass

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at is None:
        return None
    return max(retry_at.timestamp() - time.time(), 0.0)


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _case_insensitive(headers: Mapping[str, str]) -> Dict[str, str]:
    return {str(key).lower(): value for key, value in (headers or {}).items()}
