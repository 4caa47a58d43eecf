"""
ResourceClient module generating list/find/create/update/destroy methods from resource descriptors
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple, Union
from urllib.parse import quote

from .cancellation import CancellationToken
from .error_classifier import CMSClientError
from .http_client import HTTPClient
from .job_waiter import JobHandle, JobWaiter
from .pagination_strategy import PaginationFactory, iterate_entities
from .query_encoder import QueryEncoder, PageSpec, FilterSpec, OrderSpec
from .response_normalizer import Envelope, Entity, parse_envelope, normalize, SIMPLE


CANONICAL_OPERATIONS: FrozenSet[str] = frozenset({'list', 'find', 'create', 'update', 'destroy'})

BODY_KINDS = ('none', 'attributes', 'id_list', 'filter')
RETURN_KINDS = ('entity', 'collection', 'job', 'none')

JOB_TYPE = 'job'


class UnsupportedOperation(CMSClientError):
    """Raised when calling an operation the resource does not declare"""

    def __init__(self, resource: str, operation: str):
        super().__init__(f"Resource '{resource}' does not support '{operation}'")
        self.resource = resource
        self.operation = operation


@dataclass(frozen=True)
class ExtraOperation:
    """Resource-specific endpoint beyond the canonical five"""
    name: str
    method: str
    path: str
    body: str = 'none'
    returns: str = 'entity'
    body_type: Optional[str] = None
    relationship: Optional[str] = None

    def __post_init__(self):
        if self.body not in BODY_KINDS:
            raise ValueError(f"Unsupported body kind for '{self.name}': {self.body}")
        if self.returns not in RETURN_KINDS:
            raise ValueError(f"Unsupported return kind for '{self.name}': {self.returns}")

    @property
    def targets_member(self) -> bool:
        return '{id}' in self.path


@dataclass(frozen=True)
class ResourceDescriptor:
    """Static definition of one API resource"""
    name: str
    type: str
    path: str
    operations: FrozenSet[str] = CANONICAL_OPERATIONS
    pagination: str = 'offset_limit'
    default_page_size: int = 30
    max_page_size: int = 100
    list_encoding: str = 'query'
    list_path: Optional[str] = None
    list_body_type: Optional[str] = None
    filter_param: str = 'filter'
    cursor_param: str = 'next_token'
    extras: Tuple[ExtraOperation, ...] = ()

    def __post_init__(self):
        if self.list_encoding not in ('query', 'body'):
            raise ValueError(f"Unsupported list encoding for '{self.name}': {self.list_encoding}")
        if self.default_page_size > self.max_page_size:
            raise ValueError(f"Default page size of '{self.name}' exceeds its maximum")

    def member_path(self, resource_id: str) -> str:
        return f"{self.path}/{quote(str(resource_id), safe='')}"

    def get_extra(self, name: str) -> Optional[ExtraOperation]:
        for extra in self.extras:
            if extra.name == name:
                return extra
        return None


class ResourceClient:
    """Generic client for one resource, driven entirely by its descriptor"""

    def __init__(self, descriptor: ResourceDescriptor, http_client: HTTPClient,
                 job_waiter: Optional[JobWaiter] = None):
        self.descriptor = descriptor
        self.http_client = http_client
        self.job_waiter = job_waiter
        self.encoder = QueryEncoder(
            filter_param=descriptor.filter_param,
            cursor_param=descriptor.cursor_param,
            max_page_size=descriptor.max_page_size
        )
        self.pagination = PaginationFactory.create_strategy({
            'strategy': descriptor.pagination,
            'items_per_page': descriptor.default_page_size
        })
        self.logger = logging.getLogger(__name__)

    def __repr__(self) -> str:
        return f"<ResourceClient {self.descriptor.name}>"

    def __getattr__(self, name: str):
        # Only reached for attributes not defined on the class
        descriptor = self.__dict__.get('descriptor')
        extra = descriptor.get_extra(name) if descriptor else None
        if extra is None:
            raise AttributeError(f"'{type(self).__name__}' for '{descriptor.name if descriptor else '?'}' "
                                 f"has no attribute '{name}'")

        def invoke(*args, **kwargs):
            return self._invoke_extra(extra, *args, **kwargs)

        invoke.__name__ = name
        return invoke

    # Listing

    def raw_list(self, filter: Optional[FilterSpec] = None, order: Optional[OrderSpec] = None,
                 page: Union[PageSpec, Dict[str, Any], None] = None,
                 params: Optional[Dict[str, Any]] = None,
                 cancel_token: Optional[CancellationToken] = None) -> Envelope:
        """
        Fetch one page of records as the untouched envelope (with meta)

        Args:
            filter: Field name to literal or operator mapping
            order: Order tokens or '-field' shorthand
            page: PageSpec or {offset, limit} / {cursor} mapping
            params: Extra request parameters (locale, version, nested...)
            cancel_token: Optional cancellation token

        Returns:
            Envelope with the list of entities and pagination meta
        """
        self._require('list')
        return self._fetch_list(filter, order, page, params, cancel_token)

    def list(self, filter: Optional[FilterSpec] = None, order: Optional[OrderSpec] = None,
             page: Union[PageSpec, Dict[str, Any], None] = None,
             params: Optional[Dict[str, Any]] = None,
             cancel_token: Optional[CancellationToken] = None) -> List[Dict[str, Any]]:
        """Fetch one page of records as plain dictionaries"""
        return normalize(self.raw_list(filter, order, page, params, cancel_token), SIMPLE)

    def list_all(self, filter: Optional[FilterSpec] = None, order: Optional[OrderSpec] = None,
                 page_size: Optional[int] = None, params: Optional[Dict[str, Any]] = None,
                 raw: bool = False,
                 cancel_token: Optional[CancellationToken] = None) -> Iterator[Union[Dict[str, Any], Entity]]:
        """
        Lazily iterate over every matching record

        Validation happens immediately; requests are only sent while the
        returned iterator is consumed, one page at a time. Each call returns
        a fresh iterator starting from the first page.

        Args:
            filter: Field name to literal or operator mapping
            order: Order tokens or '-field' shorthand
            page_size: Items per request, defaults to the resource default
            params: Extra request parameters
            raw: Yield Entity objects instead of plain dictionaries
            cancel_token: Optional cancellation token

        Returns:
            Iterator over records
        """
        self._require('list')
        page_size = page_size or self.pagination.items_per_page

        # Pre-flight validation before any request is made
        self.encoder.normalise_filter(filter)
        self.encoder.normalise_order(order)
        self.encoder.validate_page(PageSpec(limit=page_size))

        def fetch_page(page: PageSpec) -> Envelope:
            return self._fetch_list(filter, order, page, params, cancel_token)

        entities = iterate_entities(fetch_page, self.pagination, page_size, cancel_token)
        if raw:
            return entities
        return (entity.to_simple() for entity in entities)

    # Single records

    def raw_find(self, resource_id: str, params: Optional[Dict[str, Any]] = None,
                 cancel_token: Optional[CancellationToken] = None) -> Envelope:
        self._require('find')
        response = self.http_client.send(
            'GET', self.descriptor.member_path(resource_id),
            query=self._extra_params(params),
            resource_id=str(resource_id),
            cancel_token=cancel_token
        )
        return parse_envelope(response.raw_data)

    def find(self, resource_id: str, params: Optional[Dict[str, Any]] = None,
             cancel_token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """
        Fetch a single record by id

        Raises:
            NotFound: If no record has this id (carries resource_id)
        """
        return normalize(self.raw_find(resource_id, params, cancel_token), SIMPLE)

    def raw_create(self, attributes: Dict[str, Any], relationships: Optional[Dict[str, Any]] = None,
                   meta: Optional[Dict[str, Any]] = None, params: Optional[Dict[str, Any]] = None,
                   cancel_token: Optional[CancellationToken] = None) -> Envelope:
        self._require('create')
        body = self._resource_body(None, attributes, relationships, meta)
        response = self.http_client.send(
            'POST', self.descriptor.path,
            query=self._extra_params(params),
            body=body,
            cancel_token=cancel_token
        )
        return parse_envelope(response.raw_data)

    def create(self, attributes: Dict[str, Any], relationships: Optional[Dict[str, Any]] = None,
               meta: Optional[Dict[str, Any]] = None, params: Optional[Dict[str, Any]] = None,
               cancel_token: Optional[CancellationToken] = None) -> Union[Dict[str, Any], JobHandle]:
        """
        Create a record

        Returns:
            The created record, or a JobHandle when the server processes it asynchronously

        Raises:
            ValidationFailed: If the server rejects the attributes (field_errors set)
        """
        envelope = self.raw_create(attributes, relationships, meta, params, cancel_token)
        return self._entity_or_job(envelope)

    def raw_update(self, resource_id: str, attributes: Dict[str, Any],
                   relationships: Optional[Dict[str, Any]] = None,
                   meta: Optional[Dict[str, Any]] = None, params: Optional[Dict[str, Any]] = None,
                   cancel_token: Optional[CancellationToken] = None) -> Envelope:
        self._require('update')
        body = self._resource_body(resource_id, attributes, relationships, meta)
        response = self.http_client.send(
            'PUT', self.descriptor.member_path(resource_id),
            query=self._extra_params(params),
            body=body,
            resource_id=str(resource_id),
            cancel_token=cancel_token
        )
        return parse_envelope(response.raw_data)

    def update(self, resource_id: str, attributes: Dict[str, Any],
               relationships: Optional[Dict[str, Any]] = None,
               meta: Optional[Dict[str, Any]] = None, params: Optional[Dict[str, Any]] = None,
               cancel_token: Optional[CancellationToken] = None) -> Union[Dict[str, Any], JobHandle]:
        """
        Update a record; attributes not given are left unchanged

        Raises:
            NotFound: If no record has this id
            ValidationFailed: If the server rejects the attributes
        """
        envelope = self.raw_update(resource_id, attributes, relationships, meta, params, cancel_token)
        return self._entity_or_job(envelope)

    def raw_destroy(self, resource_id: str, params: Optional[Dict[str, Any]] = None,
                    cancel_token: Optional[CancellationToken] = None) -> Envelope:
        self._require('destroy')
        response = self.http_client.send(
            'DELETE', self.descriptor.member_path(resource_id),
            query=self._extra_params(params),
            resource_id=str(resource_id),
            cancel_token=cancel_token
        )
        return parse_envelope(response.raw_data)

    def destroy(self, resource_id: str, params: Optional[Dict[str, Any]] = None,
                cancel_token: Optional[CancellationToken] = None) -> Optional[JobHandle]:
        """
        Delete a record

        Returns:
            None, or a JobHandle when the deletion runs asynchronously

        Raises:
            NotFound: If no record has this id
            Conflict: If the record is still in use
        """
        envelope = self.raw_destroy(resource_id, params, cancel_token)
        job = self._job_handle(envelope)
        if job is not None:
            return job
        self.logger.info(f"Destroyed {self.descriptor.type} {resource_id}")
        return None

    # Resource-specific operations

    def call(self, name: str, resource_id: Optional[str] = None, payload: Any = None,
             filter: Optional[FilterSpec] = None, order: Optional[OrderSpec] = None,
             page: Union[PageSpec, Dict[str, Any], None] = None, raw: bool = False,
             cancel_token: Optional[CancellationToken] = None) -> Any:
        """
        Invoke a resource-specific operation declared on the descriptor

        Args:
            name: Operation name (e.g. 'bulk_destroy', 'resend_webhook', 'query')
            resource_id: Record id for member operations
            payload: Attributes, list of ids or extra body attributes depending on the operation
            filter: Filter for 'filter' body operations
            order: Order for 'filter' body operations
            page: Page for 'filter' body operations
            raw: Return the Envelope instead of the simplified result
            cancel_token: Optional cancellation token

        Returns:
            Depends on the operation: record, list of records, JobHandle or None
        """
        extra = self.descriptor.get_extra(name)
        if extra is None:
            raise UnsupportedOperation(self.descriptor.name, name)

        if extra.targets_member:
            if resource_id is None:
                raise ValueError(f"Operation '{name}' requires a record id")
            path = extra.path.format(id=quote(str(resource_id), safe=''))
        else:
            path = extra.path

        body = self._extra_body(extra, payload, filter, order, page)
        response = self.http_client.send(
            extra.method, path,
            body=body,
            resource_id=str(resource_id) if resource_id is not None else None,
            cancel_token=cancel_token
        )
        envelope = parse_envelope(response.raw_data)

        if raw:
            return envelope
        if extra.returns == 'job':
            job = self._job_handle(envelope)
            if job is None:
                raise CMSClientError(f"Operation '{name}' did not return a job")
            return job
        if extra.returns == 'none':
            return None
        return normalize(envelope, SIMPLE)

    def _invoke_extra(self, extra: ExtraOperation, *args, **kwargs) -> Any:
        args = list(args)
        if extra.targets_member and args:
            kwargs.setdefault('resource_id', args.pop(0))
        if extra.body in ('attributes', 'id_list') and args:
            kwargs.setdefault('payload', args.pop(0))
        if extra.body == 'filter' and args:
            kwargs.setdefault('filter', args.pop(0))
        if args:
            raise TypeError(f"{extra.name}() got unexpected positional arguments: {args!r}")
        return self.call(extra.name, **kwargs)

    # Internals

    def _require(self, operation: str) -> None:
        if operation not in self.descriptor.operations:
            raise UnsupportedOperation(self.descriptor.name, operation)

    def _fetch_list(self, filter, order, page, params, cancel_token) -> Envelope:
        descriptor = self.descriptor
        list_path = descriptor.list_path or descriptor.path

        if descriptor.list_encoding == 'body':
            attributes = self.encoder.encode_body(filter, order, page, extra=params)
            response = self.http_client.send(
                'POST', list_path,
                body={'data': {'type': descriptor.list_body_type or f"{descriptor.type}_query",
                               'attributes': attributes}},
                cancel_token=cancel_token
            )
        else:
            query = self.encoder.encode(filter, order, page, extra=params)
            response = self.http_client.send('GET', list_path, query=query, cancel_token=cancel_token)

        envelope = parse_envelope(response.raw_data)
        if envelope.data is not None and not envelope.is_collection:
            envelope = Envelope(data=[envelope.data], meta=envelope.meta,
                                included=envelope.included, links=envelope.links)
        return envelope

    def _extra_params(self, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return self.encoder.encode(extra=params) if params else {}

    def _resource_body(self, resource_id: Optional[str], attributes: Dict[str, Any],
                       relationships: Optional[Dict[str, Any]],
                       meta: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        data: Dict[str, Any] = {'type': self.descriptor.type, 'attributes': dict(attributes or {})}
        if resource_id is not None:
            data['id'] = str(resource_id)
        if relationships:
            data['relationships'] = relationships
        if meta:
            data['meta'] = meta
        return {'data': data}

    def _extra_body(self, extra: ExtraOperation, payload: Any, filter, order, page) -> Optional[Dict[str, Any]]:
        body_type = extra.body_type or f"{self.descriptor.type}_{extra.name}"

        if extra.body == 'none':
            return None
        if extra.body == 'attributes':
            return {'data': {'type': body_type, 'attributes': dict(payload or {})}}
        if extra.body == 'id_list':
            if not payload:
                raise ValueError(f"Operation '{extra.name}' requires at least one id")
            return {'data': {
                'type': body_type,
                'attributes': {},
                'relationships': {
                    extra.relationship or self.descriptor.name: {
                        'data': [{'type': self.descriptor.type, 'id': str(item_id)} for item_id in payload]
                    }
                }
            }}
        attributes = self.encoder.encode_body(filter, order, page, extra=payload)
        return {'data': {'type': body_type, 'attributes': attributes}}

    def _job_handle(self, envelope: Envelope) -> Optional[JobHandle]:
        data = envelope.data
        if isinstance(data, Entity) and data.type == JOB_TYPE and data.id:
            self.logger.info(f"{self.descriptor.name}: started job {data.id}")
            return JobHandle(job_id=data.id, waiter=self.job_waiter)
        return None

    def _entity_or_job(self, envelope: Envelope) -> Union[Dict[str, Any], JobHandle]:
        job = self._job_handle(envelope)
        if job is not None:
            return job
        return normalize(envelope, SIMPLE)
