"""Action dispatcher — sends status transitions, deletes and edits, one per entity.

At most one action per entity id is in flight.  A second dispatch for the
same id is refused before any request is built.  Failures come back as
``ActionResult.error``; ``ConsoleError`` is never raised to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from marketplace_console.errors import AlreadyInProgressError, ConsoleError, PayloadValidationError
from marketplace_console.resources import ResourceSpec, get_resource
from marketplace_console.schemas.entities import Entity, overlay, parse_entity, status_value
from marketplace_console.services.api import ApiClient
from marketplace_console.services.status_machine import ActionKind, Transition, encode

logger = logging.getLogger(__name__)

# In-flight key for a create, until the server assigns an id.
NEW_ENTITY = "new"


@dataclass
class PendingAction:
    entity_id: str
    action: str
    action_kind: ActionKind
    payload: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ActionResult:
    action: PendingAction
    entity: Entity | None = None
    error: ConsoleError | None = None
    deleted: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class ActionDispatcher:

    def __init__(self, api: ApiClient, resource: str | ResourceSpec):
        self.api = api
        self.resource = get_resource(resource)
        self._in_flight: dict[str, PendingAction] = {}

    def is_pending(self, entity_id: str) -> bool:
        return entity_id in self._in_flight

    def pending(self, entity_id: str) -> PendingAction | None:
        return self._in_flight.get(entity_id)

    def resolve(
        self,
        action: str | ActionKind,
        payload: dict[str, Any] | None = None,
        status: Any = None,
    ) -> tuple[str, ActionKind, Transition | None]:
        """Turn ``action`` into ``(action name, kind, checked transition)``.

        ``ActionKind.STATUS_CHANGE`` reads the target from ``payload["status"]``
        and ``ActionKind.CUSTOM`` the action name from ``payload["action"]``.
        Delete has no transition.

        Raises:
            TransitionNotAllowedError: no such action from ``status``.
            PayloadValidationError: the payload is missing a required reason.
        """
        payload = payload or {}
        workflow = self.resource.workflow

        if action in (ActionKind.DELETE, ActionKind.DELETE.value):
            return ActionKind.DELETE.value, ActionKind.DELETE, None

        if action is ActionKind.STATUS_CHANGE:
            t = workflow.for_target(payload.get("status"), status)
            action = t.action
        elif action is ActionKind.CUSTOM:
            action = str(payload.get("action") or "")
        elif isinstance(action, ActionKind):
            action = action.value

        t = workflow.check(action, status, payload)
        return t.action, t.kind, t

    async def dispatch(
        self,
        entity_id: str,
        action: str | ActionKind,
        payload: dict[str, Any] | None = None,
        *,
        current: Entity | None = None,
    ) -> ActionResult:
        """Run one action against ``entity_id``.

        ``current`` is the locally held copy: its status drives the local
        transition check, and it is the base a partial server response is
        laid over.  Without it the source status check is left to the server.
        """
        payload = dict(payload or {})
        kind_hint = action if isinstance(action, ActionKind) else ActionKind.CUSTOM
        name_hint = action.value if isinstance(action, ActionKind) else action
        probe = PendingAction(entity_id, name_hint, kind_hint, payload)

        # Checked before the first await so a double submission never
        # reaches the transport.
        if entity_id in self._in_flight:
            return ActionResult(probe, error=AlreadyInProgressError(entity_id))

        status = getattr(current, "status", None) if current is not None else None
        try:
            name, kind, t = self.resolve(action, payload, status)
        except ConsoleError as exc:
            logger.info(
                "Refused %s on %s %s: %s", name_hint, self.resource.name, entity_id, exc,
            )
            return ActionResult(probe, error=exc)

        pending = PendingAction(entity_id, name, kind, payload)
        self._in_flight[entity_id] = pending
        try:
            if t is None:
                return await self._delete(pending)
            return await self._transition(pending, t, current)
        finally:
            self._in_flight.pop(entity_id, None)

    # ── Edits ───────────────────────────────────────────────

    async def create(self, fields: dict[str, Any]) -> ActionResult:
        """POST a new entity to the collection.

        A second create while one is in flight is refused, so a double
        submitted form creates one entity.
        """
        return await self._write(NEW_ENTITY, ActionKind.CREATE, "POST", self.resource.path, fields)

    async def update(
        self,
        entity_id: str,
        fields: dict[str, Any],
        *,
        current: Entity | None = None,
    ) -> ActionResult:
        """PATCH the given fields; the answer is laid over ``current``."""
        return await self._write(
            entity_id, ActionKind.UPDATE, "PATCH", self.resource.item_path(entity_id), fields, current,
        )

    async def replace(self, entity_id: str, fields: dict[str, Any]) -> ActionResult:
        """PUT the full entity."""
        return await self._write(
            entity_id, ActionKind.REPLACE, "PUT", self.resource.item_path(entity_id), fields,
        )

    async def _write(
        self,
        key: str,
        kind: ActionKind,
        method: str,
        path: str,
        fields: dict[str, Any],
        current: Entity | None = None,
    ) -> ActionResult:
        fields = dict(fields or {})
        pending = PendingAction(key, kind.value, kind, fields)
        if key in self._in_flight:
            return ActionResult(pending, error=AlreadyInProgressError(key))
        if not fields:
            return ActionResult(pending, error=PayloadValidationError(f"Nothing to {kind.value}"))
        if "status" in fields:
            return ActionResult(pending, error=PayloadValidationError(
                "Status changes go through an action, not an edit", field="status",
            ))

        self._in_flight[key] = pending
        try:
            data = await self.api.request(method, path, json=fields)
            entity = self._entity_from(data, current)
        except ConsoleError as exc:
            logger.warning("%s of %s %s failed: %s", kind.value, self.resource.name, key, exc)
            return ActionResult(pending, error=exc)
        finally:
            self._in_flight.pop(key, None)

        logger.info(
            "%s %s %s", kind.value, self.resource.name, entity.id if entity is not None else key,
        )
        return ActionResult(pending, entity=entity)

    async def _delete(self, pending: PendingAction) -> ActionResult:
        try:
            await self.api.delete(self.resource.item_path(pending.entity_id))
        except ConsoleError as exc:
            logger.warning(
                "Delete of %s %s failed: %s", self.resource.name, pending.entity_id, exc,
            )
            return ActionResult(pending, error=exc)
        logger.info("Deleted %s %s", self.resource.name, pending.entity_id)
        return ActionResult(pending, deleted=True)

    async def _transition(
        self,
        pending: PendingAction,
        t: Transition,
        current: Entity | None,
    ) -> ActionResult:
        payload = {k: v for k, v in pending.payload.items() if k not in ("status", "action")}
        method, path, body = encode(
            t, self.resource.item_path(pending.entity_id), payload, self.resource.default_style,
        )
        try:
            data = await self.api.request(method, path, json=body)
            entity = self._entity_from(data, current)
        except ConsoleError as exc:
            logger.warning(
                "%s on %s %s failed: %s", t.action, self.resource.name, pending.entity_id, exc,
            )
            return ActionResult(pending, error=exc)

        logger.info(
            "%s %s %s -> %s",
            t.action, self.resource.name, pending.entity_id,
            status_value(getattr(entity, "status", None)) if entity is not None else "?",
        )
        return ActionResult(pending, entity=entity)

    def _entity_from(self, data: Any, current: Entity | None) -> Entity | None:
        """Canonical entity from a mutation response.

        Returns None when the server answers without an entity (e.g.
        ``{"success": true}``); the caller refetches in that case.
        """
        if not isinstance(data, dict):
            return None
        if self.resource.entity_key not in data and "_id" not in data and "id" not in data:
            return None
        fields = self.resource.unwrap_entity(data)
        if current is not None:
            return overlay(current, fields)
        return parse_entity(self.resource.model, fields)

