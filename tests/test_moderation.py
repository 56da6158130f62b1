"""Tests for the moderation list facade: confirmation, rollback, toggles."""

import asyncio

import httpx
import pytest

from marketplace_console.errors import (
    ConflictError,
    PayloadValidationError,
    ServerError,
    TransitionNotAllowedError,
)
from marketplace_console.schemas.entities import CourseStatus, PromoStatus, WorkshopStatus
from marketplace_console.services.menu import Rect
from marketplace_console.services.moderation import ModerationList

from fake_api import course, product, promo, user, workshop

ROW = Rect(left=1100, top=200, right=1140, bottom=230)


@pytest.mark.integration
@pytest.mark.asyncio
class TestConfirmation:
    """Test the confirmation step before blocking actions."""

    async def test_reject_end_to_end(self, api, fake, menu):
        """Test reject with a reason updates the held course from the server's answer."""
        fake.seed("courses", [course("X", "pending", "Watercolor"), course("Z", "pending")])
        view = ModerationList(api, "courses", menu=menu)
        await view.refresh()
        menu.open("X", ROW)

        prepared = view.prepare("X", "reject")
        assert prepared.requires_confirmation
        assert prepared.requires_reason
        assert prepared.reason_field == "rejectionReason"
        assert prepared.prompt == "Reject this course?"

        result = await prepared.confirm({"rejectionReason": "missing video"})

        assert result.ok
        assert fake.mutations()[-1].body == {"action": "reject", "rejectionReason": "missing video"}
        held = view.store.get("X")
        assert held.status is CourseStatus.REJECTED
        assert held.rejection_reason == "missing video"
        assert not menu.is_open
        assert view.last_error is None

    async def test_cancel_has_no_side_effects(self, api, fake):
        """Test a cancelled confirmation sends nothing and changes nothing."""
        fake.seed("courses", [course("X", "published")])
        view = ModerationList(api, "courses")
        await view.refresh()
        before = view.store.get("X")
        requests_before = len(fake.requests)

        prepared = view.prepare("X", "block")
        prepared.cancel()

        assert len(fake.requests) == requests_before
        assert view.store.get("X") == before
        with pytest.raises(RuntimeError):
            await prepared.confirm()

    async def test_delete_needs_confirmation(self, api, fake):
        """Test delete always asks first."""
        fake.seed("products", [{"_id": "p1", "name": "Brush set", "status": "active"}])
        view = ModerationList(api, "products")
        prepared = view.prepare("p1", "delete")
        assert prepared.requires_confirmation
        assert "cannot be undone" in prepared.prompt

    async def test_approve_does_not_need_confirmation(self, api, fake):
        """Test approve goes straight through."""
        fake.seed("courses", [course("X", "pending")])
        view = ModerationList(api, "courses")
        await view.refresh()
        assert not view.prepare("X", "approve").requires_confirmation

    async def test_prepare_refuses_invalid_transition(self, api, fake):
        """Test actions not valid from the held status are refused up front."""
        fake.seed("courses", [course("X", "published")])
        view = ModerationList(api, "courses")
        await view.refresh()
        with pytest.raises(TransitionNotAllowedError):
            view.prepare("X", "approve")

    async def test_allowed_actions_for_row_menu(self, api, fake):
        """Test the row menu offers workflow actions plus delete."""
        fake.seed("courses", [course("X", "blocked")])
        view = ModerationList(api, "courses")
        await view.refresh()
        assert view.allowed_actions("X") == ["unblock", "delete"]
        assert view.allowed_actions("missing") == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestRollback:
    """Test failed actions leave the displayed entity unchanged."""

    async def test_failed_optimistic_flip_is_rolled_back(self, api, fake):
        """Test a 500 puts the pre-call status back exactly."""
        fake.seed("courses", [course("X", "pending", "Watercolor")])
        view = ModerationList(api, "courses")
        await view.refresh()
        before = view.store.get("X")

        fake.fail_next("POST", 500, "Database unavailable", entity_id="X")
        result = await view.perform("X", "approve", optimistic=True)

        assert isinstance(result.error, ServerError)
        assert view.store.get("X") == before
        assert view.store.get("X").status is CourseStatus.PENDING
        assert view.last_error is result.error

    async def test_failed_plain_action_leaves_status(self, api, fake):
        """Test a non-optimistic failure never touches the store."""
        fake.seed("products", [{"_id": "p1", "name": "Brush set", "status": "active"}])
        view = ModerationList(api, "products")
        await view.refresh()
        before = view.store.get("p1")

        fake.fail_next("PATCH", 409, "Product changed", entity_id="p1")
        result = await view.perform("p1", "block")

        assert not result.ok
        assert view.store.get("p1") == before

    async def test_optimistic_flip_visible_while_in_flight(self, mock_api):
        """Test the store shows the guessed status until the server answers."""
        release = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={"courses": [course("X", "pending")], "pagination": {"total": 1}})
            await release.wait()
            return httpx.Response(500, json={"error": "boom"})

        view = ModerationList(mock_api(handler), "courses")
        await view.refresh()
        task = asyncio.create_task(view.perform("X", "approve", optimistic=True))
        await asyncio.sleep(0.01)

        assert view.store.get("X").status is CourseStatus.PUBLISHED
        assert view.is_busy("X")

        release.set()
        await task
        assert view.store.get("X").status is CourseStatus.PENDING
        assert not view.is_busy("X")


@pytest.mark.integration
@pytest.mark.asyncio
class TestTogglePublish:
    """Test the publish/unpublish switch."""

    async def test_publish_and_unpublish(self, api, fake):
        """Test draft -> upcoming -> draft on a studio workshop."""
        fake.seed("studio-workshops", [workshop("w1", "draft", "Ink wash")])
        view = ModerationList(api, "studio-workshops")
        await view.refresh()

        result = await view.toggle_publish("w1")
        assert result.ok
        assert view.store.get("w1").status is WorkshopStatus.UPCOMING
        assert fake.mutations()[-1].body == {"status": "upcoming"}

        await view.toggle_publish("w1")
        assert view.store.get("w1").status is WorkshopStatus.DRAFT

    async def test_failed_publish_rolls_back(self, api, fake):
        """Test a failed publish shows draft again."""
        fake.seed("studio-workshops", [workshop("w1", "draft")])
        view = ModerationList(api, "studio-workshops")
        await view.refresh()

        fake.fail_next("PATCH", 500, "Failed to update status", entity_id="w1")
        result = await view.toggle_publish("w1")

        assert not result.ok
        assert view.store.get("w1").status is WorkshopStatus.DRAFT

    async def test_reclick_while_in_flight_is_noop(self, mock_api):
        """Test a second toggle during the first does nothing."""
        release = asyncio.Event()
        patches = []

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={"workshops": [workshop("w1", "draft")], "pagination": {"total": 1}})
            patches.append(request)
            await release.wait()
            return httpx.Response(200, json={"workshop": workshop("w1", "upcoming")})

        view = ModerationList(mock_api(handler), "studio-workshops")
        await view.refresh()
        first = asyncio.create_task(view.toggle_publish("w1"))
        await asyncio.sleep(0.01)

        assert await view.toggle_publish("w1") is None
        release.set()
        assert (await first).ok
        assert len(patches) == 1

    async def test_promo_pause(self, api, fake):
        """Test the promo toggle patches isActive and keeps expiry display-only."""
        fake.seed("promo-codes", [promo("p1", "SPRING10", end_date="2020-01-01T00:00:00Z")])
        view = ModerationList(api, "promo-codes")
        await view.refresh()
        assert view.store.get("p1").display_status() is PromoStatus.EXPIRED

        result = await view.toggle_publish("p1")

        assert result.ok
        assert fake.mutations()[-1].body == {"isActive": False}
        assert view.store.get("p1").status is PromoStatus.PAUSED

    async def test_toggle_unknown_entity(self, api, fake):
        """Test toggling something not on the page reports not found."""
        view = ModerationList(api, "studio-workshops")
        result = await view.toggle_publish("ghost")
        assert result.error.error_code == "RESOURCE_NOT_FOUND"


@pytest.mark.integration
@pytest.mark.asyncio
class TestRefetchOnBareSuccess:
    """Test actions answered without an entity refresh the page."""

    async def test_user_ban_refetches(self, mock_api):
        """Test {success: true} answers trigger a refetch."""
        banned = {"flag": False}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                row = user("u1", "a@example.com", is_active=not banned["flag"])
                return httpx.Response(200, json={"users": [row], "pagination": {"total": 1}})
            banned["flag"] = True
            return httpx.Response(200, json={"success": True})

        view = ModerationList(mock_api(handler), "users")
        await view.refresh()
        result = await view.perform("u1", "ban")

        assert result.ok and result.entity is None
        assert view.store.get("u1").is_active is False


@pytest.mark.integration
@pytest.mark.asyncio
class TestConfirmAfterRefresh:
    """Test a confirmation that outlives a list refresh."""

    async def test_merges_into_refreshed_copy(self, api, fake):
        """Test a partial answer is laid over the refreshed item, not the prepared one."""
        fake.seed("workshops", [workshop("w1", "pending", "Old title")])
        view = ModerationList(api, "workshops")
        await view.refresh()
        prepared = view.prepare("w1", "approve")

        fake.find("workshops", "w1")["title"] = "New title"
        await view.refresh()
        assert view.store.get("w1").title == "New title"

        result = await prepared.confirm()

        assert result.ok
        held = view.store.get("w1")
        assert held.title == "New title"
        assert held.status is WorkshopStatus.UPCOMING

    async def test_checks_refreshed_status(self, api, fake):
        """Test the transition is checked against the status after refresh."""
        fake.seed("courses", [course("X", "pending")])
        view = ModerationList(api, "courses")
        await view.refresh()
        prepared = view.prepare("X", "approve")

        fake.find("courses", "X")["status"] = "published"
        await view.refresh()
        result = await prepared.confirm()

        assert isinstance(result.error, TransitionNotAllowedError)
        assert fake.mutations() == []
        assert view.store.get("X").status is CourseStatus.PUBLISHED


@pytest.mark.integration
@pytest.mark.asyncio
class TestEdits:
    """Test create, update and replace through the list."""

    async def test_create_promo_code(self, api, fake):
        """Test a created code shows up after the refetch."""
        fake.seed("promo-codes", [promo("p1", "SPRING")])
        view = ModerationList(api, "promo-codes")
        await view.refresh()

        result = await view.create({"code": "SUMMER", "discountValue": 15})

        assert result.ok
        assert result.entity.code == "SUMMER"
        request = fake.mutations()[-1]
        assert (request.method, request.path) == ("POST", "/api/admin/promo-codes")
        assert [p.code for p in view.items] == ["SPRING", "SUMMER"]
        assert view.store.page.total_items == 2

    async def test_duplicate_code_is_conflict(self, api, fake):
        """Test a 409 on create is reported and the list is untouched."""
        fake.seed("promo-codes", [promo("p1", "SPRING")])
        view = ModerationList(api, "promo-codes")
        await view.refresh()

        result = await view.create({"code": "SPRING"})

        assert isinstance(result.error, ConflictError)
        assert view.last_error is result.error
        assert [p.code for p in view.items] == ["SPRING"]

    async def test_update_merges_server_entity(self, api, fake):
        """Test a PATCH edit replaces the held item with the server's copy."""
        fake.seed("products", [product("p1", "active", "Brush set")])
        view = ModerationList(api, "products")
        await view.refresh()

        result = await view.update("p1", {"price": 150})

        assert result.ok
        assert fake.mutations()[-1].body == {"price": 150}
        held = view.store.get("p1")
        assert held.price == 150
        assert held.name == "Brush set"

    async def test_replace_promo_code(self, api, fake):
        """Test a full PUT edit of a promo code."""
        fake.seed("promo-codes", [promo("p1", "SPRING")])
        view = ModerationList(api, "promo-codes")
        await view.refresh()

        result = await view.replace("p1", {"code": "SPRING", "discountValue": 25, "isActive": False})

        assert result.ok
        assert fake.mutations()[-1].method == "PUT"
        held = view.store.get("p1")
        assert held.discount_value == 25
        assert held.status is PromoStatus.PAUSED

    async def test_edit_cannot_change_status(self, api, fake):
        """Test status changes are refused in an edit."""
        fake.seed("products", [product("p1", "active")])
        view = ModerationList(api, "products")
        await view.refresh()

        result = await view.update("p1", {"status": "archived"})

        assert isinstance(result.error, PayloadValidationError)
        assert result.error.field == "status"
        assert fake.mutations() == []
