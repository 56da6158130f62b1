"""Resource registry — one entry per REST collection the console manages.

Each ``ResourceSpec`` names the collection path, the JSON keys the server
wraps items in, the boundary model and the status workflow.

Collections:
    courses            /api/admin/courses        admin moderation
    products           /api/admin/products       admin moderation
    workshops          /api/admin/workshops      admin moderation
    users              /api/admin/users          ban / activate / verify
    promo-codes        /api/admin/promo-codes    pause / resume
    returns            /api/admin/returns        return & refund review
    payouts            /api/admin/payouts        studio payouts
    studio-courses     /api/studio/courses       studio authoring
    studio-products    /api/studio/products      studio authoring
    studio-workshops   /api/studio/workshops     studio authoring
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from marketplace_console.errors import MalformedResponseError
from marketplace_console.schemas.entities import (
    Course,
    CourseStatus,
    Entity,
    Payout,
    PayoutStatus,
    Product,
    ProductStatus,
    PromoCode,
    PromoStatus,
    ReturnRequest,
    ReturnStatus,
    UserAccount,
    UserStatus,
    Workshop,
    WorkshopStatus,
)
from marketplace_console.services.status_machine import ActionStyle, Workflow, transition


@dataclass(frozen=True)
class ResourceSpec:
    name: str
    label: str
    path: str
    items_key: str
    entity_key: str
    model: type[Entity]
    workflow: Workflow
    default_style: ActionStyle = ActionStyle.STATUS_PATCH

    def item_path(self, entity_id: str) -> str:
        return f"{self.path}/{entity_id}"

    def unwrap_entity(self, data: Any) -> dict[str, Any]:
        """Pull the entity object out of ``{"<entity_key>": {...}, ...}``."""
        if isinstance(data, dict):
            inner = data.get(self.entity_key)
            if isinstance(inner, dict):
                return inner
            if "_id" in data or "id" in data:
                return data
        raise MalformedResponseError(f"Response has no '{self.entity_key}' object")


# ── Admin moderation workflows ───────────────────────────────

COURSE_REVIEW = Workflow("course-review", [
    transition("approve", [CourseStatus.PENDING], CourseStatus.PUBLISHED, admin_only=True),
    transition(
        "reject", [CourseStatus.PENDING], CourseStatus.REJECTED,
        requires_reason=True, requires_confirmation=True, admin_only=True,
    ),
    transition(
        "block", [CourseStatus.PUBLISHED, CourseStatus.PENDING], CourseStatus.BLOCKED,
        requires_confirmation=True, admin_only=True,
    ),
    transition("unblock", [CourseStatus.BLOCKED], CourseStatus.PUBLISHED, admin_only=True),
])

PRODUCT_REVIEW = Workflow("product-review", [
    transition("approve", [ProductStatus.PENDING], ProductStatus.ACTIVE, admin_only=True),
    transition(
        "reject", [ProductStatus.PENDING], ProductStatus.REJECTED,
        requires_reason=True, requires_confirmation=True, admin_only=True,
    ),
    transition(
        "block", [ProductStatus.ACTIVE], ProductStatus.BLOCKED,
        requires_confirmation=True, admin_only=True,
    ),
    transition("unblock", [ProductStatus.BLOCKED], ProductStatus.ACTIVE, admin_only=True),
    transition(
        "archive", [ProductStatus.ACTIVE, ProductStatus.SOLD], ProductStatus.ARCHIVED,
        requires_confirmation=True, admin_only=True,
    ),
])

WORKSHOP_REVIEW = Workflow("workshop-review", [
    transition("approve", [WorkshopStatus.PENDING], WorkshopStatus.UPCOMING, admin_only=True),
    transition(
        "reject", [WorkshopStatus.PENDING], WorkshopStatus.REJECTED,
        requires_reason=True, requires_confirmation=True, admin_only=True,
    ),
    transition(
        "cancel", [WorkshopStatus.UPCOMING], WorkshopStatus.CANCELLED,
        requires_confirmation=True, admin_only=True,
    ),
    transition("complete", [WorkshopStatus.UPCOMING], WorkshopStatus.COMPLETED, admin_only=True),
])

RETURN_REVIEW = Workflow("return-review", [
    transition("review", [ReturnStatus.PENDING], ReturnStatus.UNDER_REVIEW, admin_only=True),
    transition(
        "approve", [ReturnStatus.PENDING, ReturnStatus.UNDER_REVIEW], ReturnStatus.APPROVED,
        admin_only=True, style=ActionStyle.DECISION_PATCH, reason_field="notes",
    ),
    transition(
        "reject", [ReturnStatus.PENDING, ReturnStatus.UNDER_REVIEW], ReturnStatus.REJECTED,
        requires_reason=True, requires_confirmation=True, admin_only=True,
        style=ActionStyle.DECISION_PATCH, reason_field="notes",
    ),
    transition("complete", [ReturnStatus.APPROVED], ReturnStatus.COMPLETED, admin_only=True),
])

PAYOUT_LIFECYCLE = Workflow("payout", [
    transition("process", [PayoutStatus.PENDING], PayoutStatus.PROCESSING, admin_only=True),
    transition("complete", [PayoutStatus.PROCESSING], PayoutStatus.COMPLETED, admin_only=True),
    transition(
        "fail", [PayoutStatus.PENDING, PayoutStatus.PROCESSING], PayoutStatus.FAILED,
        requires_reason=True, requires_confirmation=True, admin_only=True,
        reason_field="failureReason",
    ),
    transition(
        "cancel", [PayoutStatus.PENDING], PayoutStatus.CANCELLED,
        requires_confirmation=True, admin_only=True,
    ),
])

USER_ACCOUNT = Workflow("user-account", [
    transition(
        "ban", [UserStatus.ACTIVE], UserStatus.BANNED,
        requires_confirmation=True, admin_only=True,
    ),
    transition("activate", [UserStatus.BANNED], UserStatus.ACTIVE, admin_only=True),
    transition("verify", [UserStatus.ACTIVE, UserStatus.BANNED], admin_only=True),
    transition("unverify", [UserStatus.ACTIVE, UserStatus.BANNED], admin_only=True),
])

PROMO_CODE = Workflow("promo-code", [
    transition(
        "pause", [PromoStatus.ACTIVE], PromoStatus.PAUSED,
        admin_only=True, style=ActionStyle.FIELD_PATCH, fields={"isActive": False},
    ),
    transition(
        "resume", [PromoStatus.PAUSED], PromoStatus.ACTIVE,
        admin_only=True, style=ActionStyle.FIELD_PATCH, fields={"isActive": True},
    ),
], toggle=("resume", "pause"))


# ── Studio authoring workflows ───────────────────────────────

def _authoring(name: str, statuses: type, live: Any, retired: tuple = ()) -> Workflow:
    """draft → pending (submit), rejected → pending (resubmit), draft ⇄ live.

    ``archive`` exists only where the status set has an archived state;
    ``retired`` adds extra sources for it (sold products).
    """
    transitions = [
        transition(
            "submit", [statuses.DRAFT], statuses.PENDING,
            requires_confirmation=True,
        ),
        transition("resubmit", [statuses.REJECTED], statuses.PENDING),
        transition("publish", [statuses.DRAFT], live),
        transition("unpublish", [live], statuses.DRAFT),
    ]
    if hasattr(statuses, "ARCHIVED"):
        transitions.append(transition(
            "archive", [live, *retired], statuses.ARCHIVED,
            requires_confirmation=True,
        ))
    return Workflow(name, transitions, toggle=("publish", "unpublish"))


COURSE_AUTHORING = _authoring("course-authoring", CourseStatus, CourseStatus.PUBLISHED)
PRODUCT_AUTHORING = _authoring(
    "product-authoring", ProductStatus, ProductStatus.ACTIVE, retired=(ProductStatus.SOLD,),
)
WORKSHOP_AUTHORING = _authoring("workshop-authoring", WorkshopStatus, WorkshopStatus.UPCOMING)


RESOURCES: dict[str, ResourceSpec] = {
    spec.name: spec
    for spec in (
        ResourceSpec(
            "courses", "Course", "/api/admin/courses", "courses", "course",
            Course, COURSE_REVIEW, ActionStyle.ACTION_ENDPOINT,
        ),
        ResourceSpec(
            "products", "Product", "/api/admin/products", "products", "product",
            Product, PRODUCT_REVIEW,
        ),
        ResourceSpec(
            "workshops", "Workshop", "/api/admin/workshops", "workshops", "workshop",
            Workshop, WORKSHOP_REVIEW,
        ),
        ResourceSpec(
            "users", "User", "/api/admin/users", "users", "user",
            UserAccount, USER_ACCOUNT, ActionStyle.ACTION_ENDPOINT,
        ),
        ResourceSpec(
            "promo-codes", "Promo code", "/api/admin/promo-codes", "promoCodes", "promoCode",
            PromoCode, PROMO_CODE, ActionStyle.FIELD_PATCH,
        ),
        ResourceSpec(
            "returns", "Return request", "/api/admin/returns", "requests", "request",
            ReturnRequest, RETURN_REVIEW,
        ),
        ResourceSpec(
            "payouts", "Payout", "/api/admin/payouts", "payouts", "payout",
            Payout, PAYOUT_LIFECYCLE,
        ),
        ResourceSpec(
            "studio-courses", "Course", "/api/studio/courses", "courses", "course",
            Course, COURSE_AUTHORING,
        ),
        ResourceSpec(
            "studio-products", "Product", "/api/studio/products", "products", "product",
            Product, PRODUCT_AUTHORING,
        ),
        ResourceSpec(
            "studio-workshops", "Workshop", "/api/studio/workshops", "workshops", "workshop",
            Workshop, WORKSHOP_AUTHORING,
        ),
    )
}


def get_resource(name: "str | ResourceSpec") -> ResourceSpec:
    if isinstance(name, ResourceSpec):
        return name
    try:
        return RESOURCES[name]
    except KeyError:
        raise KeyError(
            f"Unknown resource '{name}'. Known: {', '.join(sorted(RESOURCES))}"
        ) from None
