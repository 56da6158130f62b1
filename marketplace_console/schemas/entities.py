"""Pydantic schemas for marketplace entities as the admin/studio API returns them.

Responses use camelCase keys and Mongo-style ``_id``; both ``_id`` and
``id`` are accepted.  Status fields are closed enums so an unknown status
fails at the boundary instead of reaching a view.
"""

import enum
from datetime import datetime, timezone
from typing import Any, ClassVar, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from marketplace_console.errors import MalformedResponseError

E = TypeVar("E", bound="Entity")


# ── Status enums ─────────────────────────────────────────────

class CourseStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    PUBLISHED = "published"
    REJECTED = "rejected"
    ARCHIVED = "archived"
    BLOCKED = "blocked"


class ProductStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    SOLD = "sold"
    ARCHIVED = "archived"
    REJECTED = "rejected"
    BLOCKED = "blocked"


class WorkshopStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    UPCOMING = "upcoming"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"


class ReturnStatus(str, enum.Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    BANNED = "banned"


class PromoStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"  # display only, never stored


def status_value(status: Any) -> str | None:
    """Plain string for an enum member or a raw status."""
    if status is None:
        return None
    return getattr(status, "value", status)


# ── Base ─────────────────────────────────────────────────────

class Entity(BaseModel):
    """Anything addressable by id under a REST collection."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("_id", "id"), serialization_alias="_id")


class ReviewedEntity(Entity):
    """Studio-submitted content that goes through the moderation workflow.

    ``rejection_reason`` is only kept while the entity is rejected; the
    server clears it with an empty string on approval.
    """
    REJECTED_STATUSES: ClassVar[frozenset[str]] = frozenset({"rejected"})

    rejection_reason: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def rejection_reason_only_when_rejected(self):
        reason = (self.rejection_reason or "").strip()
        if not reason or status_value(getattr(self, "status", None)) not in self.REJECTED_STATUSES:
            self.rejection_reason = None
        return self


def overlay(entity: E, fields: dict[str, Any]) -> E:
    """Re-validate ``entity`` with the server's ``fields`` laid over it.

    Used when a mutation answers with a partial object (e.g. only
    ``{"id", "status"}``): server values win, the rest is kept.
    """
    try:
        return type(entity).model_validate({**entity.model_dump(by_alias=True), **fields})
    except ValidationError as exc:
        raise MalformedResponseError(f"Invalid {type(entity).__name__} in response: {exc}") from exc


def parse_entity(model: type[E], data: Any) -> E:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise MalformedResponseError(f"Invalid {model.__name__} in response: {exc}") from exc


# ── Content ──────────────────────────────────────────────────

class Course(ReviewedEntity):
    title: str
    slug: str | None = None
    thumbnail: str | None = None
    price: float | None = None
    instructor_name: str | None = None
    status: CourseStatus = CourseStatus.DRAFT
    is_published: bool | None = None
    total_students: int = 0
    average_rating: float | None = None


class Product(ReviewedEntity):
    name: str
    slug: str | None = None
    category: str | None = None
    price: float | None = None
    currency: str | None = None
    seller_name: str | None = None
    stock: int | None = None
    status: ProductStatus = ProductStatus.DRAFT


class Workshop(ReviewedEntity):
    title: str | None = None
    instructor_name: str | None = None
    workshop_type: str | None = None
    start_date: datetime | None = None
    price: float | None = None
    status: WorkshopStatus = WorkshopStatus.DRAFT


# ── People and money ─────────────────────────────────────────

class UserAccount(Entity):
    name: str | None = None
    email: str
    role: str = "user"
    is_active: bool = True
    is_verified: bool = False
    created_at: datetime | None = None

    @property
    def status(self) -> UserStatus:
        return UserStatus.ACTIVE if self.is_active else UserStatus.BANNED


class PromoCode(Entity):
    code: str
    name: str | None = None
    discount_type: str = "percentage"
    discount_value: float = 0.0
    is_active: bool = True
    start_date: datetime | None = None
    end_date: datetime | None = None
    usage_limit: int | None = None
    used_count: int = 0

    @property
    def status(self) -> PromoStatus:
        """Stored state; the server's ``isActive`` is authoritative."""
        return PromoStatus.ACTIVE if self.is_active else PromoStatus.PAUSED

    def display_status(self, now: datetime | None = None) -> PromoStatus:
        """Active/paused/expired for display only. Never sent back."""
        if not self.is_active:
            return PromoStatus.PAUSED
        if self.end_date is not None:
            now = now or datetime.now(timezone.utc)
            end = self.end_date
            if end.tzinfo is None:
                end = end.replace(tzinfo=timezone.utc)
            if now.tzinfo is None:
                now = now.replace(tzinfo=timezone.utc)
            if end < now:
                return PromoStatus.EXPIRED
        return PromoStatus.ACTIVE


class ReturnRequest(Entity):
    order: str | dict | None = None
    user: str | dict | None = None
    type: str | None = None
    reason: str | None = None
    description: str | None = None
    refund_amount: float | None = None
    status: ReturnStatus = ReturnStatus.PENDING
    admin_review: dict | None = None
    created_at: datetime | None = None

    @property
    def rejection_reason(self) -> str | None:
        if self.status is not ReturnStatus.REJECTED or not self.admin_review:
            return None
        return self.admin_review.get("notes") or None


class Payout(Entity):
    seller: str | dict | None = None
    seller_name: str | None = None
    seller_email: str | None = None
    amount: float = 0.0
    net_earnings: float | None = None
    currency: str = "INR"
    status: PayoutStatus = PayoutStatus.PENDING
    payment_method: str | None = None
    failure_reason: str | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None
