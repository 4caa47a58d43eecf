"""
JobWaiter module for polling asynchronous job results until a terminal state
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from .cancellation import CancellationToken, interruptible_sleep
from .error_classifier import CMSClientError


logger = logging.getLogger(__name__)

PENDING = 'pending'
SUCCESS = 'success'
FAILED = 'failed'


class JobFailed(CMSClientError):
    """Raised when an asynchronous job ends in the failed state"""

    def __init__(self, reason: Any, job_id: Optional[str] = None):
        super().__init__(f"Job {job_id} failed: {reason}" if job_id else f"Job failed: {reason}")
        self.reason = reason
        self.job_id = job_id


class JobTimeout(CMSClientError):
    """Raised when an asynchronous job is still pending at the deadline"""

    def __init__(self, job_id: str, timeout: float, polls: int):
        super().__init__(f"Job {job_id} not finished after {timeout}s ({polls} polls)")
        self.job_id = job_id
        self.timeout = timeout
        self.polls = polls


class JobWaiter:
    """Polls a job status source with backoff until the job finishes"""

    def __init__(self, fetch_status: Callable[[str, Optional[CancellationToken]], Optional[Dict[str, Any]]],
                 poll_interval: float = 0.5, backoff_factor: float = 1.5,
                 max_interval: float = 5.0, timeout: float = 60.0):
        self.fetch_status = fetch_status
        self.poll_interval = poll_interval
        self.backoff_factor = backoff_factor
        self.max_interval = max_interval
        self.timeout = timeout

    def wait(self, job_id: str, timeout: Optional[float] = None,
             cancel_token: Optional[CancellationToken] = None) -> Any:
        """
        Block until the job reaches success or failed

        Args:
            job_id: Identifier of the job to poll
            timeout: Seconds before giving up, defaults to the waiter timeout
            cancel_token: Optional token interrupting the wait

        Returns:
            The job result payload

        Raises:
            JobFailed: If the job reports failure
            JobTimeout: If the job does not finish in time
            Cancelled: If the cancel token fires
        """
        timeout = self.timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        interval = self.poll_interval
        polls = 0

        while True:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            polls += 1
            state, result, error = job_state(self.fetch_status(job_id, cancel_token))
            logger.debug(f"Job {job_id} poll {polls}: {state}")

            if state == SUCCESS:
                logger.info(f"Job {job_id} succeeded after {polls} polls")
                return result
            if state == FAILED:
                logger.info(f"Job {job_id} failed after {polls} polls")
                raise JobFailed(error, job_id=job_id)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise JobTimeout(job_id, timeout, polls)

            interruptible_sleep(min(interval, remaining), cancel_token)
            interval = min(interval * self.backoff_factor, self.max_interval)


def job_state(attributes: Optional[Dict[str, Any]]) -> Tuple[str, Any, Any]:
    """
    Read (state, result, error) from a job result record

    Accepts {status: 'pending'|'success'|'failed', result, error} as well as
    HTTP style {status: 200, payload} records. A missing record is pending.
    """
    if not attributes:
        return PENDING, None, None

    status = attributes.get('status')

    if isinstance(status, int):
        payload = attributes.get('payload', attributes.get('result'))
        if 200 <= status < 300:
            return SUCCESS, payload, None
        return FAILED, None, attributes.get('error') or payload

    status = str(status or PENDING).lower()
    if status in (SUCCESS, 'succeeded', 'completed'):
        return SUCCESS, attributes.get('result', attributes.get('payload')), None
    if status in (FAILED, 'failure', 'error'):
        return FAILED, None, attributes.get('error')
    return PENDING, None, None


@dataclass
class JobHandle:
    """Handle returned by operations that run as asynchronous jobs"""
    job_id: str
    waiter: Optional[JobWaiter] = field(default=None, repr=False, compare=False)

    def wait(self, timeout: Optional[float] = None,
             cancel_token: Optional[CancellationToken] = None) -> Any:
        if self.waiter is None:
            raise RuntimeError(f"Job handle {self.job_id} is not bound to a waiter")
        return self.waiter.wait(self.job_id, timeout=timeout, cancel_token=cancel_token)
