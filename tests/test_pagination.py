"""Tests for contact pagination."""

import pytest

from wabridge.pagination import page, page_count


ITEMS = list(range(20))


class TestPage:
    def test_first_page(self):
        p = page(ITEMS, 8, 0)
        assert p.rows == list(range(8))
        assert not p.has_prev
        assert p.has_next

    def test_middle_page(self):
        p = page(ITEMS, 8, 1)
        assert p.rows == list(range(8, 16))
        assert p.has_prev and p.has_next

    def test_last_partial_page(self):
        p = page(ITEMS, 8, 2)
        assert p.rows == [16, 17, 18, 19]
        assert p.has_prev
        assert not p.has_next

    def test_exact_fit_has_no_next(self):
        p = page(list(range(16)), 8, 1)
        assert len(p.rows) == 8
        assert not p.has_next

    def test_past_the_end_is_empty(self):
        p = page(ITEMS, 8, 5)
        assert p.rows == []
        assert not p.has_next

    def test_empty_list(self):
        p = page([], 8, 0)
        assert p.rows == []
        assert not p.has_prev and not p.has_next

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            page(ITEMS, 0, 0)
        with pytest.raises(ValueError):
            page(ITEMS, 8, -1)


class TestPageCount:
    @pytest.mark.parametrize("total,expected", [(0, 1), (1, 1), (8, 1), (9, 2), (20, 3)])
    def test_counts(self, total, expected):
        assert page_count(total, 8) == expected
