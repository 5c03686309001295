from __future__ import annotations

import threading
from typing import Callable, List

from snippet_feed.domain.interfaces.identity_provider_interface import IdentityChanged, IdentityListener
from snippet_feed.observability import emit_event


class IdentityEventStream:
    """Explicit sign-in/sign-out event stream.

    Stateful components subscribe and reset their identity-derived caches on
    every event instead of reading a shared "current user" global. A failing
    listener is logged and does not prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._listeners: List[IdentityListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: IdentityChanged) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                emit_event(
                    "identity_listener_error",
                    severity="error",
                    operation="identity_changed",
                    error=str(e),
                )

    def __len__(self) -> int:
        return len(self._listeners)
