"""
Test suite for JobWaiter component
Following TDD approach with AAA pattern and descriptive naming
"""

import pytest
from unittest.mock import Mock, patch
from cms_client.cancellation import CancellationToken, Cancelled
from cms_client.job_waiter import JobWaiter, JobHandle, JobFailed, JobTimeout, job_state


class TestJobWaiter:
    """Test suite for job polling"""

    @patch('time.sleep')
    def test_wait_with_pending_then_success_returns_result_after_three_polls(self, mock_sleep):
        """
        Test that polling continues until the job succeeds
        """
        # Arrange
        fetch_status = Mock(side_effect=[
            {'status': 'pending'},
            {'status': 'pending'},
            {'status': 'success', 'result': {'deleted': 3}}
        ])
        waiter = JobWaiter(fetch_status)

        # Act
        result = waiter.wait('job_1')

        # Assert
        assert result == {'deleted': 3}
        assert fetch_status.call_count == 3
        assert mock_sleep.call_count == 2

    @patch('time.sleep')
    def test_wait_with_pending_polls_backs_off_up_to_max_interval(self, mock_sleep):
        """
        Test that poll intervals grow by the backoff factor and are capped
        """
        # Arrange
        fetch_status = Mock(side_effect=[None] * 6 + [{'status': 'success'}])
        waiter = JobWaiter(fetch_status, poll_interval=0.5, backoff_factor=2.0, max_interval=3.0)

        # Act
        waiter.wait('job_1')

        # Assert
        intervals = [call[0][0] for call in mock_sleep.call_args_list]
        assert intervals == pytest.approx([0.5, 1.0, 2.0, 3.0, 3.0, 3.0])

    def test_wait_with_failed_job_raises_job_failed_with_reason(self):
        """
        Test that a failed job surfaces its reason
        """
        # Arrange
        waiter = JobWaiter(Mock(return_value={'status': 'failed', 'error': 'x'}))

        # Act & Assert
        with pytest.raises(JobFailed) as exc_info:
            waiter.wait('job_1')

        assert exc_info.value.reason == 'x'
        assert exc_info.value.job_id == 'job_1'

    @patch('time.sleep')
    @patch('time.monotonic')
    def test_wait_with_job_never_finishing_raises_job_timeout(self, mock_monotonic, mock_sleep):
        """
        Test that the wait gives up at the deadline
        """
        # Arrange
        mock_monotonic.side_effect = [0.0, 1.0, 2.0, 11.0]
        fetch_status = Mock(return_value={'status': 'pending'})
        waiter = JobWaiter(fetch_status, timeout=10.0)

        # Act & Assert
        with pytest.raises(JobTimeout) as exc_info:
            waiter.wait('job_1')

        assert exc_info.value.polls == 3
        assert exc_info.value.timeout == 10.0

    def test_wait_with_cancelled_token_raises_cancelled_without_polling(self):
        """
        Test that a cancelled token stops the wait before polling
        """
        # Arrange
        fetch_status = Mock(return_value={'status': 'pending'})
        waiter = JobWaiter(fetch_status)
        token = CancellationToken()
        token.cancel()

        # Act & Assert
        with pytest.raises(Cancelled):
            waiter.wait('job_1', cancel_token=token)

        fetch_status.assert_not_called()

    @patch('time.sleep')
    def test_wait_passes_cancel_token_to_every_poll(self, mock_sleep):
        """
        Test that status fetches receive the token so their requests can be cancelled
        """
        # Arrange
        token = CancellationToken()
        fetch_status = Mock(side_effect=[{'status': 'pending'}, {'status': 'success', 'result': 1}])
        waiter = JobWaiter(fetch_status, poll_interval=0.01)

        # Act
        waiter.wait('job_1', cancel_token=token)

        # Assert
        assert [call[0] for call in fetch_status.call_args_list] == [('job_1', token), ('job_1', token)]

    def test_wait_cancelled_during_sleep_wakes_up_immediately(self):
        """
        Test that cancelling interrupts a pending poll interval
        """
        # Arrange
        token = CancellationToken()

        def fetch_status(job_id, cancel_token):
            token.cancel("shutting down")
            return {'status': 'pending'}

        waiter = JobWaiter(fetch_status, poll_interval=30.0, timeout=60.0)

        # Act & Assert
        with pytest.raises(Cancelled) as exc_info:
            waiter.wait('job_1', cancel_token=token)

        assert "shutting down" in str(exc_info.value)

    def test_job_handle_wait_delegates_to_waiter(self):
        """
        Test that a handle waits on its own job id
        """
        # Arrange
        waiter = Mock()
        waiter.wait.return_value = 'done'
        handle = JobHandle(job_id='job_9', waiter=waiter)

        # Act
        result = handle.wait(timeout=5)

        # Assert
        assert result == 'done'
        waiter.wait.assert_called_once_with('job_9', timeout=5, cancel_token=None)


class TestJobState:
    """Test suite for job record interpretation"""

    @pytest.mark.parametrize("record,expected", [
        (None, ('pending', None, None)),
        ({'status': 'pending'}, ('pending', None, None)),
        ({'status': 'success', 'result': 1}, ('success', 1, None)),
        ({'status': 'failed', 'error': 'boom'}, ('failed', None, 'boom')),
        ({'status': 200, 'payload': {'data': []}}, ('success', {'data': []}, None)),
        ({'status': 422, 'payload': {'errors': []}}, ('failed', None, {'errors': []})),
    ])
    def test_job_state_with_record_forms_returns_state(self, record, expected):
        """
        Test that status-string and HTTP-style job records are both understood
        """
        # Act & Assert
        assert job_state(record) == expected
