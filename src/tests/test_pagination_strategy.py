"""
Test suite for PaginationStrategy components
Following TDD approach with AAA pattern and descriptive naming
"""

import pytest
from unittest.mock import Mock
from cms_client.cancellation import CancellationToken, Cancelled
from cms_client.pagination_strategy import (
    PaginationFactory, OffsetLimitPagination, CursorBasedPagination, iterate_pages, iterate_entities
)
from cms_client.query_encoder import PageSpec
from cms_client.response_normalizer import Envelope, Entity


def _page(ids, **meta):
    return Envelope(data=[Entity(id=str(item_id), type='item') for item_id in ids], meta=meta)


class TestPaginationFactory:
    """Test suite for PaginationFactory strategy creation"""

    def test_create_strategy_with_offset_limit_type_returns_offset_strategy(self):
        """
        Test that factory creates OffsetLimitPagination for offset_limit type
        """
        # Act
        strategy = PaginationFactory.create_strategy({'strategy': 'offset_limit', 'items_per_page': 30})

        # Assert
        assert isinstance(strategy, OffsetLimitPagination)
        assert strategy.items_per_page == 30

    def test_create_strategy_with_cursor_based_type_returns_cursor_strategy(self):
        """
        Test that factory creates CursorBasedPagination for cursor_based type
        """
        # Act
        strategy = PaginationFactory.create_strategy({'strategy': 'cursor_based'})

        # Assert
        assert isinstance(strategy, CursorBasedPagination)

    def test_create_strategy_with_unsupported_type_raises_value_error(self):
        """
        Test that factory raises ValueError for unsupported pagination types
        """
        # Act & Assert
        with pytest.raises(ValueError) as exc_info:
            PaginationFactory.create_strategy({'strategy': 'page_number'})

        assert "Unsupported pagination strategy: page_number" in str(exc_info.value)


class TestOffsetLimitPagination:
    """Test suite for OffsetLimitPagination strategy"""

    def test_first_page_without_page_size_uses_items_per_page(self):
        """
        Test that the configured items_per_page is the default limit
        """
        # Arrange
        configured = OffsetLimitPagination({'items_per_page': 25})
        unconfigured = OffsetLimitPagination({})

        # Act & Assert
        assert configured.first_page() == PageSpec(offset=0, limit=25)
        assert configured.first_page(10) == PageSpec(offset=0, limit=10)
        assert unconfigured.first_page() == PageSpec(offset=0, limit=30)

    def test_next_page_with_full_page_advances_offset(self):
        """
        Test that a full page moves the offset by the page size
        """
        # Arrange
        strategy = OffsetLimitPagination({})
        current = strategy.first_page(2)

        # Act
        next_page = strategy.next_page(current, _page([1, 2], total_count=5))

        # Assert
        assert current == PageSpec(offset=0, limit=2)
        assert next_page == PageSpec(offset=2, limit=2)

    def test_next_page_with_short_page_returns_none(self):
        """
        Test that a page with fewer items than requested ends iteration
        """
        # Arrange
        strategy = OffsetLimitPagination({})

        # Act
        next_page = strategy.next_page(PageSpec(offset=4, limit=2), _page([5]))

        # Assert
        assert next_page is None

    def test_next_page_with_total_count_reached_returns_none(self):
        """
        Test that an exactly full last page does not trigger an empty fetch
        """
        # Arrange
        strategy = OffsetLimitPagination({})

        # Act
        next_page = strategy.next_page(PageSpec(offset=2, limit=2), _page([3, 4], total_count=4))

        # Assert
        assert next_page is None


class TestCursorBasedPagination:
    """Test suite for CursorBasedPagination strategy"""

    def test_first_page_without_page_size_uses_items_per_page(self):
        """
        Test that the configured items_per_page is the default cursor page limit
        """
        # Arrange
        strategy = CursorBasedPagination({'items_per_page': 20})

        # Act & Assert
        assert strategy.first_page() == PageSpec(limit=20)

    def test_next_page_with_next_token_returns_cursor_page(self):
        """
        Test that the next_token in meta becomes the next cursor
        """
        # Arrange
        strategy = CursorBasedPagination({})
        current = strategy.first_page(50)

        # Act
        next_page = strategy.next_page(current, _page([1], next_token='cursor_2'))

        # Assert
        assert next_page == PageSpec(cursor='cursor_2', limit=50)

    def test_next_page_without_next_token_returns_none(self):
        """
        Test that missing next_token ends iteration
        """
        # Arrange
        strategy = CursorBasedPagination({})

        # Act & Assert
        assert strategy.next_page(PageSpec(limit=50), _page([1])) is None


class TestIteratePages:
    """Test suite for lazy page iteration"""

    def test_iterate_entities_with_seven_items_fetches_three_pages(self):
        """
        Test that N items with page size P take ceil(N/P) fetches
        """
        # Arrange
        pages = {0: _page([1, 2, 3], total_count=7), 3: _page([4, 5, 6], total_count=7),
                 6: _page([7], total_count=7)}
        fetch_page = Mock(side_effect=lambda page: pages[page.offset])

        # Act
        ids = [entity.id for entity in iterate_entities(fetch_page, OffsetLimitPagination({}), 3)]

        # Assert
        assert ids == ['1', '2', '3', '4', '5', '6', '7']
        assert fetch_page.call_count == 3

    def test_iterate_pages_without_consumption_makes_no_request(self):
        """
        Test that creating the iterator does not fetch anything
        """
        # Arrange
        fetch_page = Mock(return_value=_page([1]))

        # Act
        iterate_pages(fetch_page, OffsetLimitPagination({}), 10)

        # Assert
        fetch_page.assert_not_called()

    def test_iterate_entities_stopped_early_makes_no_further_requests(self):
        """
        Test that breaking out of iteration never reads ahead
        """
        # Arrange
        fetch_page = Mock(side_effect=lambda page: _page(range(page.offset + 1, page.offset + 3), total_count=100))
        entities = iterate_entities(fetch_page, OffsetLimitPagination({}), 2)

        # Act
        first_three = [next(entities).id for _ in range(3)]

        # Assert
        assert first_three == ['1', '2', '3']
        assert fetch_page.call_count == 2

    def test_iterate_pages_with_cursor_strategy_follows_tokens(self):
        """
        Test that cursor pages are fetched until no token is returned
        """
        # Arrange
        pages = {None: _page([1, 2], next_token='b'), 'b': _page([3], next_token='c'), 'c': _page([4])}
        fetch_page = Mock(side_effect=lambda page: pages[page.cursor])

        # Act
        envelopes = list(iterate_pages(fetch_page, CursorBasedPagination({}), 2))

        # Assert
        assert len(envelopes) == 3
        assert [call[0][0].cursor for call in fetch_page.call_args_list] == [None, 'b', 'c']

    def test_iterate_pages_with_cancelled_token_stops_before_next_fetch(self):
        """
        Test that cancellation is checked between pages
        """
        # Arrange
        token = CancellationToken()
        fetch_page = Mock(return_value=_page([1, 2], total_count=10))
        pages = iterate_pages(fetch_page, OffsetLimitPagination({}), 2, cancel_token=token)

        # Act
        next(pages)
        token.cancel()

        # Assert
        with pytest.raises(Cancelled):
            next(pages)
        assert fetch_page.call_count == 1
