"""
HTTPClient module for sending authenticated API requests with rate limit and retry handling
"""

import logging
import random
import threading
import requests
import requests_cache
from typing import Dict, Any, Optional
from datetime import datetime
from dataclasses import dataclass, field

from .cancellation import CancellationToken, Cancelled, interruptible_sleep
from .error_classifier import classify, NetworkError, RateLimitExceededFatal
from .rate_limit_tracker import RateLimitTracker, parse_retry_after


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://site-api.datocms.com'


@dataclass
class APIRequest:
    """Represents a single API request"""
    method: str
    path: str
    query: Dict[str, Any] = field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    resource_id: Optional[str] = None


@dataclass
class APIResponse:
    """Standardised API response wrapper"""
    raw_data: Any
    metadata: Dict[str, Any]
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    request_timestamp: datetime = field(default_factory=datetime.now)


class HTTPClient:
    """HTTP transport with authentication, rate limiting and retry logic"""

    # Statuses retried with exponential backoff
    SERVER_RETRY_STATUS_CODES = {500, 502, 503, 504}
    RATE_LIMIT_STATUS_CODE = 429

    def __init__(self, base_url: str = DEFAULT_BASE_URL, api_token: Optional[str] = None,
                 environment: Optional[str] = None, timeout: float = 30.0,
                 max_server_retries: int = 3, backoff_base: float = 0.2,
                 backoff_factor: float = 2.0, jitter: float = 0.2,
                 max_rate_limit_retries: int = 5, max_retry_after: float = 60.0,
                 rate_limit_tracker: Optional[RateLimitTracker] = None,
                 cache: Optional[Dict[str, Any]] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.environment = environment
        self.timeout = timeout
        self.max_server_retries = max_server_retries
        self.backoff_base = backoff_base
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self.max_rate_limit_retries = max_rate_limit_retries
        self.max_retry_after = max_retry_after
        self.rate_limit_tracker = rate_limit_tracker or RateLimitTracker(max_delay=max_retry_after)
        self.cache_config = cache or {}
        self.headers: Dict[str, str] = {
            'Accept': 'application/json',
            'Content-Type': 'application/vnd.api+json',
            'X-Api-Version': '3'
        }
        self.api_token: Optional[str] = None
        self.session: Optional[requests.Session] = session
        self._session_lock = threading.Lock()

        if api_token:
            self.authenticate({'type': 'bearer_token', 'token': api_token})

    def authenticate(self, credentials: Dict[str, Any]) -> None:
        """
        Configure authentication headers based on credential type

        Args:
            credentials: Dictionary containing authentication information

        Raises:
            ValueError: If authentication type is not supported
        """
        auth_type = credentials.get('type')

        if auth_type == 'bearer_token':
            self.api_token = credentials['token']
            self.headers['Authorization'] = f"Bearer {self.api_token}"
        else:
            raise ValueError(f"Unsupported authentication type: {auth_type}")

    def build_headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Combine authentication, environment and per-request headers"""
        headers = dict(self.headers)
        if self.environment:
            headers['X-Environment'] = self.environment
        headers.update(extra or {})
        return headers

    def send(self, method: str, path: str, query: Optional[Dict[str, Any]] = None,
             body: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None,
             resource_id: Optional[str] = None,
             cancel_token: Optional[CancellationToken] = None) -> APIResponse:
        """Shortcut building an APIRequest and passing it to make_request()"""
        request = APIRequest(
            method=method.upper(),
            path=path,
            query=query or {},
            body=body,
            headers=headers or {},
            resource_id=resource_id
        )
        return self.make_request(request, cancel_token=cancel_token)

    def make_request(self, request: APIRequest,
                     cancel_token: Optional[CancellationToken] = None) -> APIResponse:
        """
        Make HTTP request with rate limit handling and exponential backoff

        Args:
            request: APIRequest object containing request details
            cancel_token: Optional token checked at every suspend point

        Returns:
            APIResponse object with the decoded response body

        Raises:
            RateLimitExceededFatal: If 429 responses persist past the retry budget
            ServerError: If 5xx responses persist after all retries
            NetworkError: If connection errors persist after all retries
            APIError: Subclass matching any other non-success status
            Cancelled: If the cancel token fires
        """
        session = self._get_session()

        url = f"{self.base_url}/{request.path.lstrip('/')}"
        combined_headers = self.build_headers(request.headers)

        server_retries = 0
        rate_limit_hits = 0
        total_rate_limit_hits = 0
        request_timestamp = datetime.now()

        while True:
            self._check_cancelled(cancel_token)
            if not rate_limit_hits:
                # A 429 wait already covers the quota reset
                self.apply_rate_limit(cancel_token)

            logger.debug(f"{request.method} {url} params={request.query}")
            try:
                response = session.request(
                    request.method,
                    url,
                    params=request.query or None,
                    json=request.body,
                    headers=combined_headers,
                    timeout=self.timeout
                )
            except requests.exceptions.RequestException as e:
                # In-flight calls end at the timeout; a cancelled result is discarded
                self._check_cancelled(cancel_token)
                server_retries += 1
                if server_retries > self.max_server_retries:
                    raise NetworkError(
                        f"Failed after {self.max_server_retries} retry attempts. "
                        f"Last error: {str(e)}",
                        method=request.method,
                        path=request.path
                    ) from e
                delay = self.compute_backoff(server_retries)
                logger.warning(
                    f"Network error on {request.method} {request.path}, "
                    f"retry {server_retries}/{self.max_server_retries} in {delay:.2f}s: {e}"
                )
                interruptible_sleep(delay, cancel_token)
                continue

            response_headers = dict(response.headers)
            if self.api_token:
                self.rate_limit_tracker.update_from_headers(self.api_token, response_headers)
            self._check_cancelled(cancel_token)

            status = response.status_code
            raw_data = self._decode_body(response)

            if status == self.RATE_LIMIT_STATUS_CODE:
                rate_limit_hits += 1
                total_rate_limit_hits += 1
                retry_after = self.get_retry_after(response_headers, rate_limit_hits)
                if rate_limit_hits >= self.max_rate_limit_retries:
                    raise RateLimitExceededFatal(
                        f"Rate limit still exceeded after {rate_limit_hits} attempts "
                        f"for {request.method} {request.path}",
                        attempts=rate_limit_hits,
                        retry_after=retry_after,
                        status=status,
                        payload=raw_data,
                        headers=response_headers,
                        method=request.method,
                        path=request.path
                    )
                logger.warning(
                    f"Rate limited on {request.method} {request.path}, "
                    f"attempt {rate_limit_hits}/{self.max_rate_limit_retries}, waiting {retry_after:.2f}s"
                )
                interruptible_sleep(retry_after, cancel_token)
                continue

            rate_limit_hits = 0

            if status in self.SERVER_RETRY_STATUS_CODES:
                server_retries += 1
                if server_retries > self.max_server_retries:
                    raise classify(
                        status, raw_data, headers=response_headers,
                        method=request.method, path=request.path,
                        resource_id=request.resource_id
                    )
                delay = self.compute_backoff(server_retries)
                logger.warning(
                    f"Server error {status} on {request.method} {request.path}, "
                    f"retry {server_retries}/{self.max_server_retries} in {delay:.2f}s"
                )
                interruptible_sleep(delay, cancel_token)
                continue

            if status >= 400:
                # 401, 403, 404, 409, 422... are never retried
                raise classify(
                    status, raw_data, headers=response_headers,
                    method=request.method, path=request.path,
                    resource_id=request.resource_id
                )

            return APIResponse(
                raw_data=raw_data,
                metadata={
                    'url': url,
                    'method': request.method,
                    'parameters': request.query,
                    'retry_count': server_retries,
                    'rate_limit_hits': total_rate_limit_hits
                },
                status_code=status,
                headers=response_headers,
                request_timestamp=request_timestamp
            )

    def compute_backoff(self, attempt: int) -> float:
        """
        Exponential backoff with proportional jitter

        Args:
            attempt: 1-based retry number

        Returns:
            Delay in seconds: base * factor ^ (attempt - 1), +/- jitter
        """
        delay = self.backoff_base * (self.backoff_factor ** (attempt - 1))
        if self.jitter:
            delay *= random.uniform(1 - self.jitter, 1 + self.jitter)
        return delay

    def get_retry_after(self, headers: Dict[str, str], attempt: int) -> float:
        """Retry hint from a 429 response, bounded by max_retry_after"""
        lowered = {key.lower(): value for key, value in headers.items()}
        retry_after = parse_retry_after(lowered.get('retry-after'))
        if retry_after is None:
            retry_after = parse_retry_after(lowered.get('x-ratelimit-reset'))
        if retry_after is None:
            retry_after = self.compute_backoff(attempt)
        return min(retry_after, self.max_retry_after)

    def apply_rate_limit(self, cancel_token: Optional[CancellationToken] = None) -> None:
        """
        Wait for quota reset when the last response reported none remaining
        """
        if not self.api_token:
            return

        delay = self.rate_limit_tracker.get_delay(self.api_token)
        if delay > 0:
            logger.warning(f"Rate limit quota exhausted, waiting {delay:.2f}s before next request")
            interruptible_sleep(delay, cancel_token)

    def close_connection(self) -> None:
        """
        Close HTTP session and release resources
        """
        with self._session_lock:
            if self.session:
                self.session.close()
                self.session = None

    def _get_session(self) -> requests.Session:
        # Threads sharing the client must not each open a session
        if self.session is None:
            with self._session_lock:
                if self.session is None:
                    self.session = self._create_session()
        return self.session

    def _create_session(self) -> requests.Session:
        if self.cache_config.get('enabled', False):
            # Development cache for read-only calls
            logger.info(f"Using response cache {self.cache_config.get('cache_name', 'cms_client_cache')}")
            return requests_cache.CachedSession(
                self.cache_config.get('cache_name', 'cms_client_cache'),
                expire_after=self.cache_config.get('expiration_seconds', 3600),
                allowable_methods=('GET',)
            )
        return requests.Session()

    @staticmethod
    def _decode_body(response: requests.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            # Handle non-JSON responses
            return {'text': response.text}

    @staticmethod
    def _check_cancelled(cancel_token: Optional[CancellationToken]) -> None:
        if cancel_token is not None and cancel_token.cancelled:
            raise Cancelled(cancel_token.reason or "Request cancelled")
