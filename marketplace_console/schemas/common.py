"""Common schemas used across the console: list queries and pages."""

import logging
import math
from typing import Any, Generic, TypeVar
from urllib.parse import parse_qs, urlencode

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from marketplace_console.config import settings
from marketplace_console.errors import MalformedResponseError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALL_STATUSES = "all"


class ListQuery(BaseModel):
    """Filter, search, sort and page parameters of one list view.

    The URL query string is the canonical serialization:

        page=2&limit=10&status=pending&search=watercolor
    """
    model_config = ConfigDict(frozen=True)

    page: int = Field(1, ge=1)
    page_size: int = Field(default_factory=lambda: settings.default_page_size, gt=0)
    search: str = ""
    status: str = ALL_STATUSES
    sort: str = ""

    @model_validator(mode="before")
    @classmethod
    def normalize_status(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("status"):
            data = {**data, "status": ALL_STATUSES}
        return data

    def with_filter(self, **patch: Any) -> "ListQuery":
        """Return a new query with ``patch`` applied.

        Any patch that does not set ``page`` explicitly lands on page 1.
        """
        unknown = set(patch) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown list filter(s): {', '.join(sorted(unknown))}")
        if "page" not in patch:
            patch["page"] = 1
        return type(self).model_validate({**self.model_dump(), **patch})

    def to_params(self) -> dict[str, str]:
        """Wire parameters for ``GET {collection}``."""
        params = {
            "page": str(self.page),
            "limit": str(self.page_size),
            "status": self.status,
        }
        if self.search:
            params["search"] = self.search
        if self.sort:
            params["sort"] = self.sort
        return params

    def to_query_string(self) -> str:
        return urlencode(self.to_params())

    @classmethod
    def from_query_string(cls, query_string: str) -> "ListQuery":
        """Parse a URL query string; bad or unknown values fall back to defaults."""
        raw = parse_qs(query_string.lstrip("?"), keep_blank_values=True)

        def first(key: str) -> str | None:
            values = raw.get(key)
            return values[0] if values else None

        data: dict[str, Any] = {}
        for key, field in (("page", "page"), ("limit", "page_size")):
            value = first(key)
            if value is None:
                continue
            try:
                number = int(value)
            except ValueError:
                continue
            if number >= 1:
                data[field] = number
        for key in ("search", "status", "sort"):
            value = first(key)
            if value is not None:
                data[key] = value.strip()
        return cls.model_validate(data)


class Page(BaseModel, Generic[T]):
    """One page of a remote collection.

    ``total_pages`` is always derived from ``total_items`` and
    ``page_size``; the server's own ``pages`` figure is only cross-checked.
    """
    items: list[T] = Field(default_factory=list)
    total_items: int = Field(0, ge=0)
    page: int = Field(1, ge=1)
    page_size: int = Field(gt=0)

    @model_validator(mode="after")
    def items_fit_page(self):
        if len(self.items) > self.page_size:
            raise ValueError(
                f"Page holds {len(self.items)} items but page size is {self.page_size}"
            )
        return self

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @classmethod
    def empty(cls, page_size: int | None = None) -> "Page":
        return cls(page_size=page_size or settings.default_page_size)


class Pagination(BaseModel):
    """``pagination`` object of a list response."""
    page: int | None = None
    limit: int | None = None
    total: int = Field(ge=0)
    pages: int | None = Field(None, ge=0)


class StatusSummary(BaseModel):
    """Aggregate per status, e.g. ``{"pending": {"count": 3, "total": 1200.0}}``."""
    count: int = Field(0, ge=0)
    total: float = 0.0


def parse_items(data: Any, *, model: type[T], items_key: str) -> list[T]:
    """Validate the item array of a list response."""
    if not isinstance(data, dict):
        raise MalformedResponseError("List response is not a JSON object")
    raw_items = data.get(items_key, data.get("items"))
    if not isinstance(raw_items, list):
        raise MalformedResponseError(f"List response has no '{items_key}' array")
    try:
        return TypeAdapter(list[model]).validate_python(raw_items)
    except ValidationError as exc:
        raise MalformedResponseError(f"Invalid item in '{items_key}': {exc}") from exc


def parse_page(
    data: Any,
    *,
    model: type[T],
    items_key: str,
    query: ListQuery,
) -> tuple[Page[T], dict[str, StatusSummary]]:
    """Validate a list response into a ``Page`` plus its optional summary.

    Expected shape:
        {
            "<items_key>": [...],          # or "items"
            "pagination": {"page": 1, "limit": 10, "total": 42, "pages": 5},
            "summary": {"pending": {"count": 2, "total": 10.0}}   # optional
        }
    """
    items = parse_items(data, model=model, items_key=items_key)
    try:
        summary = TypeAdapter(dict[str, StatusSummary]).validate_python(data.get("summary") or {})
        raw_pagination = data.get("pagination")
        if raw_pagination is None:
            # Unpaginated endpoint: everything fits on one page.
            page = Page(
                items=items,
                total_items=len(items),
                page=1,
                page_size=max(query.page_size, len(items)),
            )
            return page, summary
        pagination = Pagination.model_validate(raw_pagination)
        page = Page(
            items=items,
            total_items=pagination.total,
            page=query.page,
            page_size=query.page_size,
        )
    except ValidationError as exc:
        raise MalformedResponseError(f"Invalid list response: {exc}") from exc

    if pagination.pages is not None and pagination.pages != page.total_pages:
        logger.warning(
            "Server reported %d pages for %d items (limit %d); using %d",
            pagination.pages, page.total_items, page.page_size, page.total_pages,
        )
    return page, summary
