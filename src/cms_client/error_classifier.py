"""
ErrorClassifier module mapping HTTP failures to a closed error taxonomy
"""

from typing import Dict, Any, List, Optional, Type


class CMSClientError(Exception):
    """Base class for every error raised by the CMS client"""
    pass


class APIError(CMSClientError):
    """Raised when the API answers with a non-success status"""

    def __init__(self, message: str, status: Optional[int] = None,
                 payload: Any = None, headers: Optional[Dict[str, str]] = None,
                 method: Optional[str] = None, path: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.payload = payload
        self.headers = headers or {}
        self.method = method
        self.path = path
        self.errors = extract_error_objects(payload)

    @property
    def codes(self) -> List[str]:
        """Error codes reported in the JSON:API error objects"""
        return [code for code in (_error_code(error) for error in self.errors) if code]


class Unauthorized(APIError):
    """Missing or invalid API token (401)"""
    pass


class Forbidden(APIError):
    """Token lacks permission for the requested operation (403)"""
    pass


class NotFound(APIError):
    """Requested record does not exist (404)"""

    def __init__(self, message: str, resource_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.resource_id = resource_id


class ValidationFailed(APIError):
    """Request body was rejected by server-side validation (422)"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.field_errors = extract_field_errors(self.errors)


class Conflict(APIError):
    """Record is in use or was modified concurrently (409)"""
    pass


class RateLimited(APIError):
    """API quota exhausted (429)"""

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class RateLimitExceededFatal(RateLimited):
    """Raised when 429 responses persist past the configured retry budget"""

    def __init__(self, message: str, attempts: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts


class ServerError(APIError):
    """Server-side failure (5xx) that persisted after retries"""
    pass


class NetworkError(ServerError):
    """Connection-level failure that persisted after retries"""
    pass


class UnknownError(APIError):
    """Failure that fits no other category"""
    pass


# Status codes with an unambiguous category
STATUS_CLASSES: Dict[int, Type[APIError]] = {
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    409: Conflict,
    412: Conflict,
    422: ValidationFailed,
    429: RateLimited,
    500: ServerError,
    502: ServerError,
    503: ServerError,
    504: ServerError,
}

# Error codes used to refine statuses that carry no category of their own
CODE_CLASSES: Dict[str, Type[APIError]] = {
    'INVALID_AUTHORIZATION_HEADER': Unauthorized,
    'UNAUTHORIZED': Unauthorized,
    'FORBIDDEN': Forbidden,
    'ACCESS_DENIED': Forbidden,
    'INSUFFICIENT_PERMISSIONS': Forbidden,
    'NOT_FOUND': NotFound,
    'INVALID_FIELD': ValidationFailed,
    'INVALID_ATTRIBUTES': ValidationFailed,
    'VALIDATION_ERROR': ValidationFailed,
    'CONFLICT': Conflict,
    'STALE_ITEM_VERSION': Conflict,
    'DELETE_RESTRICTION': Conflict,
    'RATE_LIMIT_EXCEEDED': RateLimited,
    'INTERNAL_SERVER_ERROR': ServerError,
}


def classify(status: Optional[int], payload: Any = None,
             headers: Optional[Dict[str, str]] = None,
             method: Optional[str] = None, path: Optional[str] = None,
             resource_id: Optional[str] = None,
             retry_after: Optional[float] = None) -> APIError:
    """
    Build the taxonomy error matching an HTTP status and response body

    Args:
        status: HTTP status code of the failed response
        payload: Decoded response body (JSON:API errors document if any)
        headers: Response headers
        method: HTTP method of the failed request
        path: Request path of the failed request
        resource_id: Record id the request targeted, if any
        retry_after: Retry hint in seconds for rate limited responses

    Returns:
        APIError subclass instance, ready to raise
    """
    error_class = STATUS_CLASSES.get(status)
    if error_class is None and status is not None and status >= 500:
        error_class = ServerError

    if error_class is None:
        # 400 and other generic statuses: let the body decide
        for code in (_error_code(error) for error in extract_error_objects(payload)):
            if code and code.upper() in CODE_CLASSES:
                error_class = CODE_CLASSES[code.upper()]
                break

    if error_class is None:
        error_class = UnknownError

    message = _build_message(error_class, status, payload, method, path)
    kwargs = {
        'status': status,
        'payload': payload,
        'headers': headers,
        'method': method,
        'path': path
    }

    if error_class is NotFound:
        return NotFound(message, resource_id=resource_id, **kwargs)
    if error_class is RateLimited:
        return RateLimited(message, retry_after=retry_after, **kwargs)
    return error_class(message, **kwargs)


def extract_error_objects(payload: Any) -> List[Dict[str, Any]]:
    """Return the list of JSON:API error objects contained in a payload"""
    if not isinstance(payload, dict):
        return []
    errors = payload.get('errors')
    if isinstance(errors, dict):
        return [errors]
    if isinstance(errors, list):
        return [error for error in errors if isinstance(error, dict)]
    return []


def extract_field_errors(errors: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """
    Group validation messages by the attribute they refer to

    Supports the standard JSON:API form (``source.pointer`` + ``detail``) as
    well as the ``attributes.details.field`` form. Errors without a field
    are collected under ``base``.

    Args:
        errors: JSON:API error objects

    Returns:
        Mapping of field name to list of messages
    """
    field_errors: Dict[str, List[str]] = {}

    for error in errors:
        details = (error.get('attributes') or {}).get('details') or {}
        field_name = _pointer_to_field((error.get('source') or {}).get('pointer'))
        if field_name is None and isinstance(details, dict):
            field_name = details.get('field')

        message = error.get('detail') or error.get('title')
        if not message and isinstance(details, dict):
            message = details.get('message') or details.get('code')
        if not message:
            message = _error_code(error) or 'invalid'

        field_errors.setdefault(field_name or 'base', []).append(message)

    return field_errors


def _pointer_to_field(pointer: Optional[str]) -> Optional[str]:
    """Turn '/data/attributes/name' into 'name'"""
    if not pointer:
        return None
    parts = [part for part in pointer.split('/') if part]
    for prefix in ('attributes', 'relationships'):
        if prefix in parts:
            index = parts.index(prefix)
            if index + 1 < len(parts):
                return '.'.join(parts[index + 1:])
    return parts[-1] if parts else None


def _error_code(error: Dict[str, Any]) -> Optional[str]:
    code = error.get('code')
    if code is None:
        code = (error.get('attributes') or {}).get('code')
    return str(code) if code is not None else None


def _build_message(error_class: Type[APIError], status: Optional[int], payload: Any,
                   method: Optional[str], path: Optional[str]) -> str:
    target = f"{method} {path}" if method and path else (path or 'request')
    summary = f"{error_class.__name__} ({status}) for {target}"

    errors = extract_error_objects(payload)
    if errors:
        first = errors[0]
        detail = first.get('detail') or first.get('title') or _error_code(first)
        if detail:
            summary = f"{summary}: {detail}"
    return summary
