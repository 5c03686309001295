from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class IdentityChanged:
    previous: Optional[str]
    current: Optional[str]


IdentityListener = Callable[[IdentityChanged], None]


class IIdentityProvider(ABC):
    """Opaque "current user or none" signal with change notifications."""

    @abstractmethod
    def current_identity(self) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        raise NotImplementedError
