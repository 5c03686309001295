from __future__ import annotations

from typing import Callable, Optional

from snippet_feed.application.events import IdentityEventStream
from snippet_feed.domain.interfaces.identity_provider_interface import (
    IdentityChanged,
    IdentityListener,
    IIdentityProvider,
)
from snippet_feed.observability import bind_user_context, emit_event


class SessionIdentityProvider(IIdentityProvider):
    """Identity signal fed by the host application's auth session.

    The host calls ``sign_in`` / ``sign_out`` from its auth callbacks; an event
    is published only on an actual transition.
    """

    def __init__(self, user_id: Optional[str] = None) -> None:
        self._current: Optional[str] = user_id or None
        self._events = IdentityEventStream()

    def current_identity(self) -> Optional[str]:
        return self._current

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id is required")
        self._transition(user_id)

    def sign_out(self) -> None:
        self._transition(None)

    def _transition(self, user_id: Optional[str]) -> None:
        previous = self._current
        if previous == user_id:
            return
        self._current = user_id
        bind_user_context(user_id=user_id)
        emit_event("identity_changed", signed_in=user_id is not None)
        self._events.publish(IdentityChanged(previous=previous, current=user_id))
