"""Entity status machine — allowed transitions and their wire encoding.

A ``Workflow`` is pure configuration: which actions exist, which statuses
each one starts from, where it lands, and what it needs (a reason, a
confirmation step).  Checks run locally before any request is sent, so
an invalid action never reaches the network.

Delete is deliberately not a transition; the dispatcher handles it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterable

from marketplace_console.errors import PayloadValidationError, TransitionNotAllowedError
from marketplace_console.schemas.entities import status_value


class ActionKind(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    DELETE = "delete"
    STATUS_CHANGE = "status_change"
    CUSTOM = "custom"
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"


class ActionStyle(str, enum.Enum):
    """How a transition is sent to the server."""
    ACTION_ENDPOINT = "action_endpoint"  # POST {path}/{id}/action {"action", reason?}
    STATUS_PATCH = "status_patch"        # PATCH {path}/{id} {"status", reason?}
    DECISION_PATCH = "decision_patch"    # PATCH {path}/{id} {"decision", notes?}
    FIELD_PATCH = "field_patch"          # PATCH {path}/{id} {**fields}


# Payload keys a caller may use for the free-text reason.
REASON_KEYS = ("reason", "rejectionReason", "failureReason", "notes")


@dataclass(frozen=True)
class Transition:
    """One allowed edge (or custom action) of a workflow."""
    action: str
    sources: frozenset[str]
    target: str | None = None  # None: custom action, status unchanged
    requires_reason: bool = False
    requires_confirmation: bool = False
    admin_only: bool = False
    reason_field: str | None = None  # None: "rejectionReason" when a reason is required
    style: ActionStyle | None = None  # None: resource default
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> ActionKind:
        if self.action == "approve":
            return ActionKind.APPROVE
        if self.action == "reject":
            return ActionKind.REJECT
        if self.target is None:
            return ActionKind.CUSTOM
        return ActionKind.STATUS_CHANGE

    @property
    def reason_key(self) -> str:
        return self.reason_field or "rejectionReason"

    @property
    def takes_reason(self) -> bool:
        return self.requires_reason or self.reason_field is not None

    def allows(self, status: Any) -> bool:
        return status_value(status) in self.sources


def transition(action: str, sources: Iterable[Any], target: Any = None, **options: Any) -> Transition:
    """Build a ``Transition`` from enum members or raw status strings."""
    return Transition(
        action=action,
        sources=frozenset(status_value(s) for s in sources),
        target=status_value(target),
        **options,
    )


def extract_reason(transition: Transition, payload: dict[str, Any]) -> str:
    for key in (transition.reason_key, *REASON_KEYS):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


class Workflow:
    """Allowed actions per status for one entity type."""

    def __init__(
        self,
        name: str,
        transitions: Iterable[Transition],
        *,
        toggle: tuple[str, str] | None = None,
    ):
        """
        Args:
            name: Workflow identifier, used in log lines.
            transitions: The allowed edges.
            toggle: ``(on_action, off_action)`` pair for a publish-style switch.
        """
        self.name = name
        self._transitions = {t.action: t for t in transitions}
        self.toggle = toggle

    @property
    def actions(self) -> list[str]:
        return list(self._transitions)

    def get(self, action: str) -> Transition:
        try:
            return self._transitions[action]
        except KeyError:
            raise TransitionNotAllowedError(action, None) from None

    def allowed_actions(self, status: Any) -> list[str]:
        return [t.action for t in self._transitions.values() if t.allows(status)]

    def can(self, action: str, status: Any) -> bool:
        t = self._transitions.get(action)
        return t is not None and t.allows(status)

    def for_target(self, target: Any, status: Any) -> Transition:
        """Find the transition that moves ``status`` to ``target``."""
        wanted = status_value(target)
        for t in self._transitions.values():
            if t.target == wanted and (status is None or t.allows(status)):
                return t
        raise TransitionNotAllowedError(f"change status to '{wanted}'", status_value(status))

    def toggle_action(self, status: Any) -> str:
        """Resolve the toggle pair to the action valid from ``status``."""
        if self.toggle is None:
            raise TransitionNotAllowedError("toggle", status_value(status))
        on_action, off_action = self.toggle
        if self.can(off_action, status):
            return off_action
        if self.can(on_action, status):
            return on_action
        raise TransitionNotAllowedError(on_action, status_value(status))

    def check(self, action: str, status: Any, payload: dict[str, Any] | None = None) -> Transition:
        """Validate ``action`` from ``status`` with ``payload``.

        ``status`` may be None when the caller has no local copy; the
        source check is then left to the server.

        Raises:
            TransitionNotAllowedError: unknown action or wrong source status.
            PayloadValidationError: a required reason is missing or blank.
        """
        t = self.get(action)
        if status is not None and not t.allows(status):
            raise TransitionNotAllowedError(action, status_value(status))
        if t.requires_reason and not extract_reason(t, payload or {}):
            raise PayloadValidationError(
                f"A reason is required to {action}",
                field=t.reason_key,
            )
        return t

    def __repr__(self) -> str:
        return f"Workflow({self.name!r}, actions={self.actions!r})"


def encode(
    transition: Transition,
    item_path: str,
    payload: dict[str, Any] | None = None,
    default_style: ActionStyle = ActionStyle.STATUS_PATCH,
) -> tuple[str, str, dict[str, Any]]:
    """Build ``(method, path, body)`` for a checked transition."""
    payload = dict(payload or {})
    reason = extract_reason(transition, payload)
    extras = {k: v for k, v in payload.items() if k not in REASON_KEYS}
    style = transition.style or default_style

    body: dict[str, Any]
    if style is ActionStyle.ACTION_ENDPOINT:
        body = {"action": transition.action}
        path = f"{item_path}/action"
        method = "POST"
    elif style is ActionStyle.DECISION_PATCH:
        body = {"decision": transition.target}
        path, method = item_path, "PATCH"
    elif style is ActionStyle.FIELD_PATCH:
        body = {}
        path, method = item_path, "PATCH"
    else:
        body = {"status": transition.target}
        path, method = item_path, "PATCH"

    if reason and transition.takes_reason:
        body[transition.reason_key] = reason
    body.update(transition.fields)
    body.update(extras)
    return method, path, body
