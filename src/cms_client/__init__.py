"""
Resource client for the hosted CMS content management REST API
Provides a generic, descriptor-driven layer with filtering, pagination, rate limit handling and job polling
"""

from .cancellation import CancellationToken, Cancelled
from .client import CMSClient
from .config_loader import ConfigLoader, ClientConfig, ConfigurationError, EnvironmentError
from .error_classifier import (
    CMSClientError,
    APIError,
    Unauthorized,
    Forbidden,
    NotFound,
    ValidationFailed,
    Conflict,
    RateLimited,
    RateLimitExceededFatal,
    ServerError,
    NetworkError,
    UnknownError,
    classify,
)
from .http_client import HTTPClient, APIRequest, APIResponse
from .job_waiter import JobWaiter, JobHandle, JobFailed, JobTimeout
from .logging_config import configure_logging
from .pagination_strategy import PaginationFactory
from .query_encoder import (
    QueryEncoder,
    PageSpec,
    InvalidFilterOperator,
    InvalidSortDirection,
    PageLimitExceeded,
)
from .rate_limit_tracker import RateLimitTracker
from .resource_client import ResourceClient, ResourceDescriptor, ExtraOperation, UnsupportedOperation
from .resources import DEFAULT_RESOURCES
from .response_normalizer import Envelope, Entity, normalize, parse_envelope

__all__ = [
    'CMSClient',
    'CancellationToken',
    'Cancelled',
    'ConfigLoader',
    'ClientConfig',
    'ConfigurationError',
    'EnvironmentError',
    'CMSClientError',
    'APIError',
    'Unauthorized',
    'Forbidden',
    'NotFound',
    'ValidationFailed',
    'Conflict',
    'RateLimited',
    'RateLimitExceededFatal',
    'ServerError',
    'NetworkError',
    'UnknownError',
    'classify',
    'HTTPClient',
    'APIRequest',
    'APIResponse',
    'JobWaiter',
    'JobHandle',
    'JobFailed',
    'JobTimeout',
    'configure_logging',
    'PaginationFactory',
    'QueryEncoder',
    'PageSpec',
    'InvalidFilterOperator',
    'InvalidSortDirection',
    'PageLimitExceeded',
    'RateLimitTracker',
    'ResourceClient',
    'ResourceDescriptor',
    'ExtraOperation',
    'UnsupportedOperation',
    'DEFAULT_RESOURCES',
    'Envelope',
    'Entity',
    'normalize',
    'parse_envelope'
]
