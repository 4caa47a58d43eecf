"""
Descriptor table of the content management API resources
"""

from typing import Dict, Iterable, Tuple

from .resource_client import ResourceDescriptor, ExtraOperation


READ_ONLY = frozenset({'list', 'find'})


ITEMS = ResourceDescriptor(
    name='items',
    type='item',
    path='/items',
    default_page_size=30,
    max_page_size=500,
    filter_param='filter[fields]',
    extras=(
        ExtraOperation('bulk_destroy', 'POST', '/items/bulk/destroy',
                       body='id_list', returns='job',
                       body_type='item_bulk_destroy_operation', relationship='items'),
        ExtraOperation('bulk_publish', 'POST', '/items/bulk/publish',
                       body='id_list', returns='job',
                       body_type='item_bulk_publish_operation', relationship='items'),
        ExtraOperation('bulk_unpublish', 'POST', '/items/bulk/unpublish',
                       body='id_list', returns='job',
                       body_type='item_bulk_unpublish_operation', relationship='items'),
        ExtraOperation('publish', 'PUT', '/items/{id}/publish'),
        ExtraOperation('unpublish', 'PUT', '/items/{id}/unpublish'),
        ExtraOperation('duplicate', 'POST', '/items/{id}/duplicate', returns='job'),
        ExtraOperation('references', 'GET', '/items/{id}/references', returns='collection'),
    )
)

ITEM_TYPES = ResourceDescriptor(
    name='item_types',
    type='item_type',
    path='/item-types',
    max_page_size=100,
)

UPLOADS = ResourceDescriptor(
    name='uploads',
    type='upload',
    path='/uploads',
    default_page_size=30,
    max_page_size=500,
    extras=(
        ExtraOperation('bulk_destroy', 'POST', '/uploads/bulk/destroy',
                       body='id_list', returns='job',
                       body_type='upload_bulk_destroy_operation', relationship='uploads'),
        ExtraOperation('bulk_tag', 'PUT', '/uploads/bulk/tag',
                       body='attributes', returns='job',
                       body_type='upload_bulk_tag_operation'),
        ExtraOperation('references', 'GET', '/uploads/{id}/references', returns='collection'),
    )
)

UPLOAD_FILTERS = ResourceDescriptor(
    name='upload_filters',
    type='upload_filter',
    path='/upload-filters',
    max_page_size=100,
)

UPLOAD_COLLECTIONS = ResourceDescriptor(
    name='upload_collections',
    type='upload_collection',
    path='/upload-collections',
    max_page_size=100,
)

WEBHOOKS = ResourceDescriptor(
    name='webhooks',
    type='webhook',
    path='/webhooks',
    max_page_size=100,
)

WEBHOOK_CALLS = ResourceDescriptor(
    name='webhook_calls',
    type='webhook_call',
    path='/webhook_calls',
    operations=READ_ONLY,
    default_page_size=30,
    max_page_size=500,
    extras=(
        ExtraOperation('resend_webhook', 'POST', '/webhook_calls/{id}/resend_webhook',
                       returns='none'),
    )
)

AUDIT_LOG_EVENTS = ResourceDescriptor(
    name='audit_log_events',
    type='audit_log_event',
    path='/audit_log_events',
    operations=frozenset({'list'}),
    pagination='cursor_based',
    default_page_size=50,
    max_page_size=500,
    list_encoding='body',
    list_path='/audit_log_events/query',
    list_body_type='audit_log_query',
    extras=(
        ExtraOperation('query', 'POST', '/audit_log_events/query',
                       body='filter', returns='collection',
                       body_type='audit_log_query'),
    )
)

SEARCH_RESULTS = ResourceDescriptor(
    name='search_results',
    type='search_result',
    path='/search_results',
    operations=frozenset({'list'}),
    default_page_size=20,
    max_page_size=100,
)

ENVIRONMENTS = ResourceDescriptor(
    name='environments',
    type='environment',
    path='/environments',
    operations=frozenset({'list', 'find', 'update', 'destroy'}),
    extras=(
        ExtraOperation('fork', 'POST', '/environments/{id}/fork',
                       body='attributes', returns='job',
                       body_type='environment'),
        ExtraOperation('promote', 'PUT', '/environments/{id}/promote'),
    )
)

USERS = ResourceDescriptor(
    name='users',
    type='user',
    path='/users',
    operations=frozenset({'list', 'find', 'update', 'destroy'}),
)

ROLES = ResourceDescriptor(
    name='roles',
    type='role',
    path='/roles',
)

ACCESS_TOKENS = ResourceDescriptor(
    name='access_tokens',
    type='access_token',
    path='/access_tokens',
    extras=(
        ExtraOperation('regenerate_token', 'POST', '/access_tokens/{id}/regenerate_token'),
    )
)

DEFAULT_RESOURCES: Tuple[ResourceDescriptor, ...] = (
    ITEMS,
    ITEM_TYPES,
    UPLOADS,
    UPLOAD_FILTERS,
    UPLOAD_COLLECTIONS,
    WEBHOOKS,
    WEBHOOK_CALLS,
    AUDIT_LOG_EVENTS,
    SEARCH_RESULTS,
    ENVIRONMENTS,
    USERS,
    ROLES,
    ACCESS_TOKENS,
)


def index_resources(descriptors: Iterable[ResourceDescriptor]) -> Dict[str, ResourceDescriptor]:
    """Map descriptor names to descriptors, rejecting duplicates"""
    indexed: Dict[str, ResourceDescriptor] = {}
    for descriptor in descriptors:
        if descriptor.name in indexed:
            raise ValueError(f"Duplicate resource descriptor: {descriptor.name}")
        indexed[descriptor.name] = descriptor
    return indexed
