"""Tests for list queries, pages and list-response parsing."""

import pytest
from pydantic import ValidationError

from marketplace_console.errors import MalformedResponseError
from marketplace_console.schemas.common import ListQuery, Page, parse_page
from marketplace_console.schemas.entities import Course, CourseStatus


@pytest.mark.unit
class TestListQuery:
    """Test filter changes and URL serialization."""

    @pytest.mark.parametrize("patch", [
        {"status": "pending"},
        {"search": "watercolor"},
        {"sort": "-createdAt"},
        {"page_size": 25},
        {"search": ""},
    ])
    def test_filter_change_resets_page(self, patch):
        """Test every change that does not set page lands on page 1."""
        query = ListQuery(page=4, search="oil")
        assert query.with_filter(**patch).page == 1

    def test_explicit_page_is_kept(self):
        """Test an explicit page in the same patch wins."""
        query = ListQuery(page=1).with_filter(status="pending", page=3)
        assert query.page == 3
        assert query.status == "pending"

    def test_unknown_filter_rejected(self):
        """Test a typo in a filter name is an error, not silently ignored."""
        with pytest.raises(ValueError, match="colour"):
            ListQuery().with_filter(colour="red")

    def test_query_is_immutable(self):
        """Test queries are values: with_filter returns a new one."""
        query = ListQuery()
        query.with_filter(status="pending")
        assert query.status == "all"
        with pytest.raises(ValidationError):
            query.page = 2

    def test_empty_status_means_all(self):
        """Test an empty status filter is normalized to 'all'."""
        assert ListQuery(status="").status == "all"

    def test_to_params(self):
        """Test wire params omit empty search and sort."""
        params = ListQuery(page=2, page_size=10, status="pending").to_params()
        assert params == {"page": "2", "limit": "10", "status": "pending"}

        params = ListQuery(search="watercolor", sort="title").to_params()
        assert params["search"] == "watercolor"
        assert params["sort"] == "title"

    def test_query_string_round_trip(self):
        """Test the URL query string restores the same view."""
        query = ListQuery(page=2, page_size=20, status="pending", search="water color")
        assert ListQuery.from_query_string(query.to_query_string()) == query

    def test_bad_query_string_values_fall_back(self):
        """Test garbage in a shared URL degrades to defaults."""
        query = ListQuery.from_query_string("?page=abc&limit=-5&status=&search=%20oil%20")
        assert query.page == 1
        assert query.page_size == ListQuery().page_size
        assert query.status == "all"
        assert query.search == "oil"


@pytest.mark.unit
class TestPage:
    """Test page arithmetic."""

    @pytest.mark.parametrize("total,size,pages", [
        (0, 10, 0),
        (1, 10, 1),
        (10, 10, 1),
        (11, 10, 2),
        (25, 10, 3),
        (30, 10, 3),
    ])
    def test_total_pages_is_ceiling(self, total, size, pages):
        """Test total_pages == ceil(total_items / page_size)."""
        assert Page(total_items=total, page_size=size).total_pages == pages

    def test_items_never_exceed_page_size(self):
        """Test a page cannot hold more items than its size."""
        with pytest.raises(ValidationError):
            Page(items=[1, 2, 3], total_items=3, page_size=2)

    def test_navigation_flags(self):
        """Test has_next / has_previous."""
        page = Page(total_items=25, page=2, page_size=10)
        assert page.has_next and page.has_previous
        last = Page(total_items=25, page=3, page_size=10)
        assert not last.has_next


@pytest.mark.unit
class TestParsePage:
    """Test list-response validation at the boundary."""

    def test_parse_paginated_response(self):
        """Test the marketplace list shape."""
        data = {
            "courses": [{"_id": "c1", "title": "Watercolor", "status": "pending"}],
            "pagination": {"page": 2, "limit": 10, "total": 21, "pages": 3},
        }
        page, summary = parse_page(data, model=Course, items_key="courses", query=ListQuery(page=2))
        assert page.total_pages == 3
        assert page.page == 2
        assert page.items[0].status is CourseStatus.PENDING
        assert summary == {}

    def test_parse_summary(self):
        """Test per-status aggregates are kept."""
        data = {
            "courses": [],
            "pagination": {"total": 0},
            "summary": {"pending": {"count": 2, "total": 150.5}},
        }
        _, summary = parse_page(data, model=Course, items_key="courses", query=ListQuery())
        assert summary["pending"].count == 2
        assert summary["pending"].total == 150.5

    def test_unpaginated_response_is_one_page(self):
        """Test endpoints without pagination give a single page."""
        data = {"items": [{"id": f"c{i}", "title": "x"} for i in range(12)]}
        page, _ = parse_page(data, model=Course, items_key="courses", query=ListQuery(page_size=10))
        assert page.total_items == 12
        assert page.total_pages == 1

    def test_unknown_status_fails_at_boundary(self):
        """Test a status outside the enum is a malformed response."""
        data = {"courses": [{"_id": "c1", "title": "x", "status": "haunted"}], "pagination": {"total": 1}}
        with pytest.raises(MalformedResponseError):
            parse_page(data, model=Course, items_key="courses", query=ListQuery())

    def test_missing_items_array(self):
        """Test a response without the items array."""
        with pytest.raises(MalformedResponseError, match="courses"):
            parse_page({"pagination": {"total": 0}}, model=Course, items_key="courses", query=ListQuery())

    def test_server_page_count_mismatch_is_logged(self, caplog):
        """Test total_pages is computed locally even if the server disagrees."""
        data = {"courses": [], "pagination": {"total": 25, "pages": 2}}
        page, _ = parse_page(data, model=Course, items_key="courses", query=ListQuery(page_size=10))
        assert page.total_pages == 3
        assert "Server reported 2 pages" in caplog.text
