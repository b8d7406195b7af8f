"""Resolution of CTA action ids into host-executable intents."""

from .dispatch import ActionDispatcher, ActionHandler, ActionIntent, IntentKind, UnknownActionError

__all__ = [
    "ActionDispatcher",
    "ActionHandler",
    "ActionIntent",
    "IntentKind",
    "UnknownActionError",
]
