"""
QueryEncoder module turning filter, order and page specifications into wire parameters
"""

import json
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Union, Sequence

from .error_classifier import CMSClientError


FILTER_OPERATORS = frozenset({
    'eq', 'neq', 'in', 'notIn', 'any_in', 'all_in',
    'gt', 'gte', 'lt', 'lte', 'exists', 'matches'
})

SORT_DIRECTIONS = ('ASC', 'DESC')

FilterSpec = Dict[str, Any]
OrderSpec = Union[str, Sequence[str]]
QueryParameters = Dict[str, Union[str, List[str]]]


class InvalidFilterOperator(CMSClientError):
    """Raised when a filter uses an operator outside the supported set"""

    def __init__(self, field: str, operator: str):
        super().__init__(
            f"Unsupported filter operator '{operator}' on field '{field}'. "
            f"Supported operators: {', '.join(sorted(FILTER_OPERATORS))}"
        )
        self.field = field
        self.operator = operator


class InvalidSortDirection(CMSClientError):
    """Raised when an order token has an unknown direction suffix"""

    def __init__(self, token: str, direction: str):
        super().__init__(
            f"Invalid sort direction '{direction}' in '{token}', expected ASC or DESC"
        )
        self.token = token
        self.direction = direction


class PageLimitExceeded(CMSClientError):
    """Raised when a page limit is above the resource maximum"""

    def __init__(self, limit: int, max_limit: int):
        super().__init__(f"Page limit {limit} exceeds the maximum of {max_limit}")
        self.limit = limit
        self.max_limit = max_limit


@dataclass(frozen=True)
class PageSpec:
    """Offset/limit or cursor pagination request, never both"""
    offset: Optional[int] = None
    limit: Optional[int] = None
    cursor: Optional[str] = None

    def __post_init__(self):
        if self.offset is not None and self.cursor is not None:
            raise ValueError("PageSpec accepts either offset or cursor, not both")
        if self.offset is not None and self.offset < 0:
            raise ValueError(f"Page offset must not be negative, got {self.offset}")
        if self.limit is not None and self.limit <= 0:
            raise ValueError(f"Page limit must be positive, got {self.limit}")

    @classmethod
    def coerce(cls, page: Union['PageSpec', Dict[str, Any], None]) -> Optional['PageSpec']:
        """Accept a PageSpec or a plain {offset, limit} / {cursor} mapping"""
        if page is None or isinstance(page, PageSpec):
            return page
        unknown = set(page) - {'offset', 'limit', 'cursor'}
        if unknown:
            raise ValueError(f"Unknown page keys: {', '.join(sorted(unknown))}")
        return cls(**page)


class QueryEncoder:
    """Validates and encodes filter/order/page specifications"""

    def __init__(self, filter_param: str = 'filter', cursor_param: str = 'next_token',
                 max_page_size: Optional[int] = None):
        self.filter_param = filter_param
        self.cursor_param = cursor_param
        self.max_page_size = max_page_size

    def encode(self, filter: Optional[FilterSpec] = None, order: Optional[OrderSpec] = None,
               page: Union[PageSpec, Dict[str, Any], None] = None,
               extra: Optional[Dict[str, Any]] = None) -> QueryParameters:
        """
        Encode a list request as flat query-string parameters

        Args:
            filter: Field name to literal or operator mapping
            order: Order tokens ('title_ASC'), comma string or '-field' shorthand
            page: PageSpec or mapping with offset/limit or cursor
            extra: Additional parameters passed through as-is (locale, version...)

        Returns:
            Flat dictionary of string (or list of string) values

        Raises:
            InvalidFilterOperator: If an operator key is not supported
            InvalidSortDirection: If an order token has an unknown direction
            PageLimitExceeded: If the page limit is above the resource maximum
        """
        params: QueryParameters = {}

        for field_name, operators in self.normalise_filter(filter).items():
            for operator, value in operators.items():
                params[f"{self.filter_param}[{field_name}][{operator}]"] = _to_query_value(value)

        order_tokens = self.normalise_order(order)
        if order_tokens:
            params['order_by'] = ','.join(order_tokens)

        page_spec = self.validate_page(page)
        if page_spec is not None:
            if page_spec.cursor is not None:
                params[self.cursor_param] = page_spec.cursor
            if page_spec.offset is not None:
                params['page[offset]'] = str(page_spec.offset)
            if page_spec.limit is not None:
                params['page[limit]'] = str(page_spec.limit)

        for key, value in (extra or {}).items():
            if value is not None:
                params[key] = _to_query_value(value)

        return params

    def encode_body(self, filter: Optional[FilterSpec] = None, order: Optional[OrderSpec] = None,
                    page: Union[PageSpec, Dict[str, Any], None] = None,
                    extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Encode a list request as nested attributes for a POST body

        Values keep their JSON types. Validation rules are the same as encode().

        Returns:
            Dictionary with 'filter', 'order_by', 'page' and cursor keys as needed
        """
        body: Dict[str, Any] = {}

        normalised = self.normalise_filter(filter)
        if normalised:
            body['filter'] = normalised

        order_tokens = self.normalise_order(order)
        if order_tokens:
            body['order_by'] = ','.join(order_tokens)

        page_spec = self.validate_page(page)
        if page_spec is not None:
            if page_spec.cursor is not None:
                body[self.cursor_param] = page_spec.cursor
            page_body = {}
            if page_spec.offset is not None:
                page_body['offset'] = page_spec.offset
            if page_spec.limit is not None:
                page_body['limit'] = page_spec.limit
            if page_body:
                body['page'] = page_body

        for key, value in (extra or {}).items():
            if value is not None:
                body[key] = value

        return body

    def normalise_filter(self, filter: Optional[FilterSpec]) -> Dict[str, Dict[str, Any]]:
        """Expand implicit equality and reject unknown operators"""
        normalised: Dict[str, Dict[str, Any]] = {}

        for field_name, value in (filter or {}).items():
            if isinstance(value, dict):
                if not value:
                    raise ValueError(f"Empty operator mapping for filter field '{field_name}'")
                for operator in value:
                    if operator not in FILTER_OPERATORS:
                        raise InvalidFilterOperator(field_name, operator)
                normalised[field_name] = dict(value)
            else:
                normalised[field_name] = {'eq': value}

        return normalised

    def normalise_order(self, order: Optional[OrderSpec]) -> List[str]:
        """Return order as a list of 'field_DIRECTION' tokens"""
        if not order:
            return []

        if isinstance(order, str):
            tokens = [token.strip() for token in order.split(',') if token.strip()]
            if len(tokens) == 1 and not _has_direction_suffix(tokens[0]):
                return [_expand_shorthand(tokens[0])]
        else:
            tokens = list(order)

        return [_validate_order_token(token) for token in tokens]

    def validate_page(self, page: Union[PageSpec, Dict[str, Any], None]) -> Optional[PageSpec]:
        page_spec = PageSpec.coerce(page)
        if page_spec is None or page_spec.limit is None:
            return page_spec
        if self.max_page_size is not None and page_spec.limit > self.max_page_size:
            raise PageLimitExceeded(page_spec.limit, self.max_page_size)
        return page_spec


def _to_query_value(value: Any) -> Union[str, List[str]]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_scalar_to_string(item) for item in value]
    return _scalar_to_string(value)


def _scalar_to_string(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if value is None:
        return 'null'
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def _has_direction_suffix(token: str) -> bool:
    # An upper-case suffix is read as a direction, so 'title_UP' is rejected
    # while 'created_at' is shorthand for 'created_at_ASC'
    if token.startswith('-') or '_' not in token:
        return False
    suffix = token.rsplit('_', 1)[-1]
    return suffix.upper() in SORT_DIRECTIONS or (suffix.isalpha() and suffix.isupper())


def _expand_shorthand(token: str) -> str:
    if token.startswith('-'):
        return f"{token[1:]}_DESC"
    return f"{token}_ASC"


def _validate_order_token(token: str) -> str:
    if not isinstance(token, str) or '_' not in token.lstrip('_'):
        raise InvalidSortDirection(str(token), '')
    field_name, direction = token.rsplit('_', 1)
    if not field_name or direction.upper() not in SORT_DIRECTIONS:
        raise InvalidSortDirection(token, direction)
    return f"{field_name}_{direction.upper()}"
