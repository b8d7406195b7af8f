"""
Action dispatch: the seam between CTA action ids and the outside world.

The engine only hands out action-id strings. This adapter resolves them to an
``ActionIntent`` that a host application can execute (dial a number, open a URL)
or present. Real dialer, maps and telehealth integration stay with the host.

Design principles: handlers are swappable per action id, and an unknown id is an
expected failure returned as a ``Result`` error rather than raised.
"""

from enum import Enum
from typing import Protocol
from urllib.parse import quote_plus

import structlog
from pydantic import BaseModel, ConfigDict

from triage.config import AppConfig, emergency_number, get_config
from triage.domain.models import ActionId
from triage.result import Result

logger = structlog.get_logger(__name__)

ER_SEARCH_QUERY = "emergency room near me"


class IntentKind(str, Enum):
    DIAL = "dial"
    OPEN_URL = "open_url"
    PRESENT = "present"  # host renders its own screen for the action


class ActionIntent(BaseModel):
    """What the host application should do for an action id."""

    model_config = ConfigDict(frozen=True)

    action_id: ActionId
    kind: IntentKind
    target: str | None = None
    summary: str


class UnknownActionError(LookupError):
    """An action id outside the closed action-id contract."""


class ActionHandler(Protocol):
    """
    Protocol for resolving one action id.

    Why Protocol over ABC: hosts can plug in their own handlers without
    inheriting from anything here.
    """

    action_id: ActionId

    def resolve(self) -> ActionIntent:
        """Build the intent for this action."""
        ...


class DialHandler:
    """Dial the local emergency number."""

    def __init__(self, number: str) -> None:
        self.action_id = ActionId.EMERGENCY_CALL
        self.number = number

    def resolve(self) -> ActionIntent:
        return ActionIntent(
            action_id=self.action_id,
            kind=IntentKind.DIAL,
            target=f"tel:{self.number}",
            summary=f"Call {self.number}",
        )


class MapSearchHandler:
    """Open a map search for the nearest emergency room."""

    def __init__(self, base_url: str, query: str = ER_SEARCH_QUERY) -> None:
        self.action_id = ActionId.FIND_ER
        self.base_url = base_url
        self.query = query

    def resolve(self) -> ActionIntent:
        return ActionIntent(
            action_id=self.action_id,
            kind=IntentKind.OPEN_URL,
            target=f"{self.base_url}{quote_plus(self.query)}",
            summary="Search maps for the nearest emergency room",
        )


class PlaceholderHandler:
    """Presentation-only action; the host owns the actual flow."""

    def __init__(self, action_id: ActionId, summary: str) -> None:
        self.action_id = action_id
        self.summary = summary

    def resolve(self) -> ActionIntent:
        return ActionIntent(action_id=self.action_id, kind=IntentKind.PRESENT, summary=self.summary)


PLACEHOLDER_SUMMARIES: dict[ActionId, str] = {
    ActionId.CONNECT_DOCTOR: "Connect with a doctor today",
    ActionId.BOOK_HOME_VISIT: "Book a home visit",
    ActionId.SCHEDULE_TELECONSULT: "Schedule a teleconsultation",
    ActionId.HOME_VISIT_OPTIONS: "Show home visit options",
    ActionId.SET_REMINDER: "Set a check-in reminder",
    ActionId.HOME_REMEDIES: "Show the home remedies checklist",
    ActionId.SAVE_SHARE: "Save or share the triage summary",
}


def default_handlers(config: AppConfig | None = None) -> list[ActionHandler]:
    config = config or get_config()
    handlers: list[ActionHandler] = [
        DialHandler(emergency_number(config)),
        MapSearchHandler(config.safety.er_search_base_url),
    ]
    handlers.extend(
        PlaceholderHandler(action_id, summary)
        for action_id, summary in PLACEHOLDER_SUMMARIES.items()
    )
    return handlers


class ActionDispatcher:
    """Resolves action ids handed out by the CTA mapper."""

    def __init__(
        self,
        config: AppConfig | None = None,
        handlers: list[ActionHandler] | None = None,
    ) -> None:
        self.logger = logger.bind(component="action_dispatcher")
        self.handlers: dict[ActionId, ActionHandler] = {}
        for handler in default_handlers(config) if handlers is None else handlers:
            self.register(handler)

    def register(self, handler: ActionHandler) -> None:
        """Add or replace the handler for ``handler.action_id``."""
        self.handlers[handler.action_id] = handler

    def dispatch(self, action_id: str | ActionId) -> Result[ActionIntent, UnknownActionError]:
        """
        Resolve an action id.

        Returns:
            Result[ActionIntent, UnknownActionError]: the intent, or an error for
            ids outside the contract or without a registered handler.
        """
        try:
            known = ActionId(action_id)
        except ValueError:
            self.logger.warning("unknown_action_id", action_id=str(action_id))
            return Result.err(UnknownActionError(f"Unknown action id: {action_id}"))

        handler = self.handlers.get(known)
        if handler is None:
            self.logger.warning("action_handler_missing", action_id=known.value)
            return Result.err(UnknownActionError(f"No handler registered for {known.value}"))

        intent = handler.resolve()
        self.logger.info("action_dispatched", action_id=known.value, kind=intent.kind.value)
        return Result.ok(intent)
