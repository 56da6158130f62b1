"""Moderation list — one admin or studio list view wired end to end.

Composes the collection store, the dispatcher and the row menu:

    async with ApiClient() as api:
        courses = ModerationList(api, "courses")
        await courses.refresh()
        prepared = courses.prepare(course_id, "reject")
        if prepared.requires_confirmation:
            ...  # show prepared.prompt, collect a reason
        result = await prepared.confirm({"rejectionReason": "missing video"})

A failed action never changes what the list shows: an optimistic status
flip is put back exactly as it was.
"""

import logging
from typing import Any

from marketplace_console.errors import ConsoleError, ResourceNotFoundError, TransitionNotAllowedError
from marketplace_console.resources import ResourceSpec, get_resource
from marketplace_console.schemas.common import ListQuery
from marketplace_console.schemas.entities import Entity, overlay, status_value
from marketplace_console.services.api import ApiClient
from marketplace_console.services.collection_store import RemoteCollectionStore
from marketplace_console.services.dispatcher import ActionDispatcher, ActionResult, PendingAction
from marketplace_console.services.menu import MenuController
from marketplace_console.services.status_machine import ActionKind

logger = logging.getLogger(__name__)


class PreparedAction:
    """An action waiting for the user's confirmation.

    Cancelling has no side effects; nothing is sent until ``confirm()``.
    ``current`` is the copy seen at prepare time. If the list is refreshed
    in between, ``confirm()`` checks and merges against the refreshed copy.
    """

    def __init__(
        self,
        owner: "ModerationList",
        entity_id: str,
        action: str,
        payload: dict[str, Any],
        *,
        requires_confirmation: bool,
        requires_reason: bool = False,
        reason_field: str | None = None,
        prompt: str = "",
        current: Entity | None = None,
    ):
        self.owner = owner
        self.entity_id = entity_id
        self.action = action
        self.payload = payload
        self.requires_confirmation = requires_confirmation
        self.requires_reason = requires_reason
        self.reason_field = reason_field
        self.prompt = prompt
        self.current = current
        self.cancelled = False
        self.result: ActionResult | None = None

    async def confirm(self, payload: dict[str, Any] | None = None, *, optimistic: bool = False) -> ActionResult:
        """Send the action; ``payload`` adds fields collected in the dialog."""
        if self.cancelled:
            raise RuntimeError(f"{self.action} on {self.entity_id} was cancelled")
        if self.result is not None:
            raise RuntimeError(f"{self.action} on {self.entity_id} was already confirmed")
        self.result = await self.owner.perform(
            self.entity_id, self.action, {**self.payload, **(payload or {})},
            optimistic=optimistic, current=self.current,
        )
        return self.result

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self) -> str:
        return f"PreparedAction({self.action!r}, {self.entity_id!r}, confirm={self.requires_confirmation})"


class ModerationList:

    def __init__(
        self,
        api: ApiClient,
        resource: str | ResourceSpec,
        menu: MenuController | None = None,
        query: ListQuery | None = None,
        *,
        debounce: float | None = None,
    ):
        self.resource = get_resource(resource)
        self.store = RemoteCollectionStore(api, self.resource, query, debounce=debounce)
        self.dispatcher = ActionDispatcher(api, self.resource)
        self.menu = menu
        self.last_error: ConsoleError | None = None

    # ── Reads ────────────────────────────────────────────────

    @property
    def items(self) -> list[Entity]:
        return self.store.items

    async def refresh(self):
        return await self.store.fetch_page()

    def set_filter(self, **patch: Any) -> None:
        self.store.set_filter(**patch)

    def allowed_actions(self, entity_id: str) -> list[str]:
        """Actions to offer in the row menu, delete included."""
        entity = self.store.get(entity_id)
        if entity is None:
            return []
        return [*self.resource.workflow.allowed_actions(getattr(entity, "status", None)), "delete"]

    def is_busy(self, entity_id: str) -> bool:
        """True while an action for ``entity_id`` is in flight."""
        return self.dispatcher.is_pending(entity_id)

    # ── Actions ──────────────────────────────────────────────

    def prepare(
        self,
        entity_id: str,
        action: str,
        payload: dict[str, Any] | None = None,
        *,
        current: Entity | None = None,
    ) -> PreparedAction:
        """Describe ``action`` before it is sent.

        ``current`` overrides the held copy, for entities not on the page.

        Raises:
            TransitionNotAllowedError: the action is unknown, or not valid
                from the entity's status.
        """
        payload = dict(payload or {})
        label = self.resource.label.lower()
        if action == ActionKind.DELETE.value:
            return PreparedAction(
                self, entity_id, action, payload,
                requires_confirmation=True,
                prompt=f"Delete this {label}? This cannot be undone.",
                current=current,
            )

        current = current or self.store.get(entity_id)
        status = getattr(current, "status", None) if current is not None else None
        t = self.resource.workflow.get(action)
        if status is not None and not t.allows(status):
            raise TransitionNotAllowedError(action, status_value(status))
        return PreparedAction(
            self, entity_id, action, payload,
            requires_confirmation=t.requires_confirmation or t.requires_reason,
            requires_reason=t.requires_reason,
            reason_field=t.reason_key if t.requires_reason else None,
            prompt=f"{action.replace('_', ' ').capitalize()} this {label}?",
            current=current,
        )

    async def perform(
        self,
        entity_id: str,
        action: "str | ActionKind",
        payload: dict[str, Any] | None = None,
        *,
        optimistic: bool = False,
        current: Entity | None = None,
    ) -> ActionResult:
        """Dispatch and reconcile the store with the outcome.

        The held copy is read at dispatch time; ``current`` is only used
        for an entity that is not on the page.
        """
        current = self.store.get(entity_id) or current
        flipped = None
        if optimistic and current is not None and not self.is_busy(entity_id):
            flipped = self._optimistic(current, action, payload)
            if flipped is not None:
                self.store.replace(flipped)

        result = await self.dispatcher.dispatch(entity_id, action, payload, current=current)

        if not result.ok:
            if flipped is not None:
                self.store.replace(current)
                logger.debug("Rolled back %s on %s %s", result.action.action, self.resource.name, entity_id)
            self.last_error = result.error
            return result

        self.last_error = None
        if result.deleted:
            self.store.remove(entity_id)
            await self.store.fetch_page()
        elif result.entity is not None:
            if not self.store.replace(result.entity):
                logger.debug("%s %s not on the current page", self.resource.name, entity_id)
        else:
            await self.store.fetch_page()
        if self.menu is not None:
            self.menu.close()
        return result

    # ── Edits ──────────────────────────────────────────────

    async def create(self, fields: dict[str, Any]) -> ActionResult:
        """Create an entity, then refetch so it lands where the server sorts it."""
        result = await self.dispatcher.create(fields)
        if not result.ok:
            self.last_error = result.error
            return result
        self.last_error = None
        await self.store.fetch_page()
        return result

    async def update(self, entity_id: str, fields: dict[str, Any]) -> ActionResult:
        """Save changed fields of one entity."""
        result = await self.dispatcher.update(entity_id, fields, current=self.store.get(entity_id))
        return await self._reconcile_edit(result)

    async def replace(self, entity_id: str, fields: dict[str, Any]) -> ActionResult:
        """Save a full edit form."""
        result = await self.dispatcher.replace(entity_id, fields)
        return await self._reconcile_edit(result)

    async def _reconcile_edit(self, result: ActionResult) -> ActionResult:
        if not result.ok:
            self.last_error = result.error
            return result
        self.last_error = None
        if result.entity is None:
            await self.store.fetch_page()
        elif not self.store.replace(result.entity):
            logger.debug("%s %s not on the current page", self.resource.name, result.entity.id)
        return result

    def _optimistic(self, current: Entity, action: Any, payload: dict[str, Any] | None) -> Entity | None:
        try:
            _, _, t = self.dispatcher.resolve(action, payload, getattr(current, "status", None))
        except ConsoleError:
            return None
        if t is None or t.target is None:
            return None
        try:
            return overlay(current, {"status": t.target, **t.fields})
        except ConsoleError:
            return None

    async def toggle_publish(self, entity_id: str) -> ActionResult | None:
        """Publish/unpublish (or pause/resume) switch.

        Returns None without doing anything while a toggle for the same
        entity is still in flight.
        """
        if self.is_busy(entity_id):
            return None
        current = self.store.get(entity_id)
        if current is None:
            error = ResourceNotFoundError(f"{self.resource.label} {entity_id} is not loaded")
            self.last_error = error
            return ActionResult(PendingAction(entity_id, "toggle", ActionKind.STATUS_CHANGE), error=error)
        try:
            action = self.resource.workflow.toggle_action(getattr(current, "status", None))
        except ConsoleError as exc:
            self.last_error = exc
            return ActionResult(PendingAction(entity_id, "toggle", ActionKind.STATUS_CHANGE), error=exc)
        return await self.perform(entity_id, action, optimistic=True)
