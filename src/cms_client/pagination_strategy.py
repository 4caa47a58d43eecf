"""
PaginationStrategy module for offset and cursor based list iteration
"""

import logging
from typing import Any, Callable, Dict, Iterator, Optional, Protocol

from .cancellation import CancellationToken
from .query_encoder import PageSpec
from .response_normalizer import Entity, Envelope


logger = logging.getLogger(__name__)

FetchPage = Callable[[PageSpec], Envelope]

DEFAULT_PAGE_SIZE = 30


class PaginationStrategy(Protocol):
    """Protocol for different pagination strategies"""

    items_per_page: int

    def first_page(self, page_size: Optional[int] = None) -> PageSpec:
        """Return the page specification of the first request"""
        ...

    def next_page(self, current: PageSpec, envelope: Envelope) -> Optional[PageSpec]:
        """Return the next page specification, or None if no more pages"""
        ...


class OffsetLimitPagination:
    """Offset-based pagination strategy (page[offset] / page[limit])"""

    def __init__(self, config: Dict[str, Any]):
        self.items_per_page = config.get('items_per_page', DEFAULT_PAGE_SIZE)

    def first_page(self, page_size: Optional[int] = None) -> PageSpec:
        return PageSpec(offset=0, limit=page_size or self.items_per_page)

    def next_page(self, current: PageSpec, envelope: Envelope) -> Optional[PageSpec]:
        """Advance the offset by the page size"""
        received = len(envelope.entities)

        # Short page means we reached the end
        if received < current.limit:
            return None

        next_offset = (current.offset or 0) + received
        total_count = envelope.total_count
        if total_count is not None and next_offset >= total_count:
            return None

        return PageSpec(offset=next_offset, limit=current.limit)


class CursorBasedPagination:
    """Cursor-based pagination strategy following meta.next_token"""

    def __init__(self, config: Dict[str, Any]):
        self.items_per_page = config.get('items_per_page', DEFAULT_PAGE_SIZE)

    def first_page(self, page_size: Optional[int] = None) -> PageSpec:
        return PageSpec(limit=page_size or self.items_per_page)

    def next_page(self, current: PageSpec, envelope: Envelope) -> Optional[PageSpec]:
        next_token = envelope.next_token
        if not next_token or not envelope.entities:
            return None
        return PageSpec(cursor=next_token, limit=current.limit)


class PaginationFactory:
    """Factory for creating appropriate pagination strategy based on config"""

    STRATEGIES = {
        'offset_limit': OffsetLimitPagination,
        'cursor_based': CursorBasedPagination
    }

    @classmethod
    def create_strategy(cls, pagination_config: Dict[str, Any]) -> PaginationStrategy:
        """Create pagination strategy instance based on configuration"""
        strategy_type = pagination_config['strategy']

        if strategy_type not in cls.STRATEGIES:
            raise ValueError(f"Unsupported pagination strategy: {strategy_type}")

        strategy_class = cls.STRATEGIES[strategy_type]
        return strategy_class(pagination_config)


def iterate_pages(fetch_page: FetchPage, strategy: PaginationStrategy,
                  page_size: Optional[int] = None,
                  cancel_token: Optional[CancellationToken] = None) -> Iterator[Envelope]:
    """
    Lazily fetch successive pages

    A page is only requested once the consumer has asked for it, so stopping
    iteration early never triggers another request. Items added or removed
    between two fetches can be skipped or repeated.

    Args:
        fetch_page: Callable issuing one list request for a PageSpec
        strategy: Strategy computing the next PageSpec
        page_size: Number of items requested per page, defaults to the strategy setting
        cancel_token: Optional token checked before each fetch

    Yields:
        One Envelope per page
    """
    page: Optional[PageSpec] = strategy.first_page(page_size)
    page_number = 1

    while page is not None:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        envelope = fetch_page(page)
        logger.debug(f"Fetched page {page_number} ({len(envelope.entities)} items)")
        yield envelope

        page = strategy.next_page(page, envelope)
        page_number += 1


def iterate_entities(fetch_page: FetchPage, strategy: PaginationStrategy,
                     page_size: Optional[int] = None,
                     cancel_token: Optional[CancellationToken] = None) -> Iterator[Entity]:
    """Flatten iterate_pages() into a stream of entities"""
    for envelope in iterate_pages(fetch_page, strategy, page_size, cancel_token):
        yield from envelope.entities
