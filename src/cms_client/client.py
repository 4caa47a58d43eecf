"""
CMSClient module wiring transport, resources and job polling behind one object
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from .cancellation import CancellationToken
from .config_loader import ConfigLoader, ClientConfig
from .error_classifier import NotFound
from .http_client import HTTPClient, DEFAULT_BASE_URL
from .job_waiter import JobWaiter, JobHandle
from .logging_config import configure_logging
from .rate_limit_tracker import RateLimitTracker
from .resource_client import ResourceClient, ResourceDescriptor
from .resources import DEFAULT_RESOURCES, index_resources
from .response_normalizer import parse_envelope, normalize, SIMPLE


class CMSClient:
    """
    Entry point of the content management API client

    Every resource descriptor becomes an attribute exposing the generic
    resource methods:

        client = CMSClient(api_token="...")
        uploads = client.uploads.list(filter={'type': 'image'}, page={'limit': 10})
        for item in client.items.list_all(filter={'title': {'matches': 'news'}}):
            ...
    """

    JOB_RESULTS_PATH = '/job-results'

    def __init__(self, api_token: str, base_url: str = DEFAULT_BASE_URL,
                 environment: Optional[str] = None,
                 resources: Iterable[ResourceDescriptor] = DEFAULT_RESOURCES,
                 http_client: Optional[HTTPClient] = None,
                 rate_limit_tracker: Optional[RateLimitTracker] = None,
                 job_settings: Optional[Dict[str, Any]] = None,
                 **transport_options):
        """
        Initialise CMSClient with dependency injection

        Args:
            api_token: Bearer token for the API
            base_url: API root URL
            environment: Sandbox environment name, None for the primary one
            resources: Resource descriptors to expose
            http_client: Pre-built transport (tests, custom sessions)
            rate_limit_tracker: Shared rate limit state, one per client if omitted
            job_settings: JobWaiter options (poll_interval, backoff_factor, max_interval, timeout)
            transport_options: Extra HTTPClient keyword arguments (timeout, retries, cache)
        """
        if not api_token:
            raise ValueError("An API token is required")

        self.logger = logging.getLogger(__name__)
        if http_client is None:
            http_client = HTTPClient(
                base_url=base_url,
                api_token=api_token,
                environment=environment,
                rate_limit_tracker=rate_limit_tracker or RateLimitTracker(
                    max_delay=transport_options.get('max_retry_after', 60.0)
                ),
                **transport_options
            )
        self.http_client = http_client
        self.rate_limit_tracker = http_client.rate_limit_tracker
        self.job_waiter = JobWaiter(self.fetch_job_status, **(job_settings or {}))
        self.descriptors = index_resources(resources)
        self._resources: Dict[str, ResourceClient] = {
            name: ResourceClient(descriptor, self.http_client, self.job_waiter)
            for name, descriptor in self.descriptors.items()
        }

        self.logger.debug(
            f"Initialised client for {base_url} with {len(self._resources)} resources"
            + (f" (environment {environment})" if environment else "")
        )

    @classmethod
    def from_config(cls, config: Union[ClientConfig, Path, str],
                    setup_logging: bool = False, **overrides) -> 'CMSClient':
        """
        Build a client from a ClientConfig or a TOML/YAML configuration file

        Args:
            config: ClientConfig instance or path to a configuration file
            setup_logging: Apply the [logging] section to the logging module
            overrides: Keyword arguments overriding configured values

        Raises:
            ConfigurationError: If the configuration is invalid
            EnvironmentError: If the token environment variable is not set
        """
        if not isinstance(config, ClientConfig):
            config = ConfigLoader.load_config(Path(config))

        if setup_logging:
            configure_logging(config.logging)

        ConfigLoader.validate_environment_variables(config)

        options: Dict[str, Any] = {
            'api_token': ConfigLoader.resolve_api_token(config),
            'base_url': config.base_url,
            'environment': config.environment,
            'timeout': config.timeout,
            'job_settings': config.jobs or None,
            'cache': config.cache or None,
        }
        options.update(config.retries)
        options.update(overrides)
        return cls(**options)

    def __getattr__(self, name: str) -> ResourceClient:
        resources = self.__dict__.get('_resources', {})
        if name in resources:
            return resources[name]
        raise AttributeError(f"'{type(self).__name__}' has no resource or attribute '{name}'")

    def __dir__(self):
        return list(super().__dir__()) + list(self._resources)

    def __enter__(self) -> 'CMSClient':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def resource(self, name: str) -> ResourceClient:
        """Return the client of a resource by descriptor name"""
        try:
            return self._resources[name]
        except KeyError:
            raise KeyError(f"Unknown resource: {name}") from None

    def fetch_job_status(self, job_id: str,
                         cancel_token: Optional[CancellationToken] = None) -> Optional[Dict[str, Any]]:
        """
        Fetch the current state of an asynchronous job

        Returns:
            Job result attributes, or None while the result is not available yet

        Raises:
            Cancelled: If the cancel token fires while the request is retried
        """
        try:
            response = self.http_client.send(
                'GET', f"{self.JOB_RESULTS_PATH}/{job_id}",
                resource_id=job_id,
                cancel_token=cancel_token
            )
        except NotFound:
            # Job results only exist once the job has finished
            return None
        return normalize(parse_envelope(response.raw_data), SIMPLE)

    def wait_for_job(self, job: Union[JobHandle, str], timeout: Optional[float] = None,
                     cancel_token: Optional[CancellationToken] = None) -> Any:
        """
        Block until an asynchronous job finishes and return its result

        Raises:
            JobFailed: If the job reports failure
            JobTimeout: If the job does not finish in time
            Cancelled: If the cancel token fires
        """
        job_id = job.job_id if isinstance(job, JobHandle) else job
        return self.job_waiter.wait(job_id, timeout=timeout, cancel_token=cancel_token)

    def close(self) -> None:
        self.http_client.close_connection()
