"""Boundary models: every response is validated here before reaching a view."""

from marketplace_console.schemas.common import ListQuery, Page, StatusSummary, parse_page  # noqa: F401
from marketplace_console.schemas.entities import (  # noqa: F401
    Course,
    Entity,
    Payout,
    Product,
    PromoCode,
    ReturnRequest,
    UserAccount,
    Workshop,
)
