"""Listener registry with opaque cancellation handles."""

import itertools
from typing import Callable, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class Subscription:
    """
    Cancellation handle returned by ``SubscriptionRegistry.subscribe``.

    Calling the handle (or ``cancel()``) removes the listener. Cancelling more
    than once is harmless.
    """

    __slots__ = ("_registry", "_token")

    def __init__(self, registry: "SubscriptionRegistry", token: int):
        self._registry: Optional[SubscriptionRegistry] = registry
        self._token = token

    @property
    def active(self) -> bool:
        """Whether the listener is still registered."""
        return self._registry is not None and self._registry.has(self._token)

    def cancel(self) -> None:
        """Remove the listener from its registry."""
        if self._registry is not None:
            self._registry.remove(self._token)
            self._registry = None

    def __call__(self) -> None:
        self.cancel()


class SubscriptionRegistry(Generic[T]):
    """Ordered set of listeners; iteration follows subscription order."""

    def __init__(self) -> None:
        self._listeners: Dict[int, Callable[[T], None]] = {}
        self._tokens = itertools.count()

    def subscribe(self, listener: Callable[[T], None]) -> Subscription:
        """
        Register a listener.

        Args:
            listener: Callable invoked with each published item

        Returns:
            Subscription handle that removes the listener
        """
        token = next(self._tokens)
        self._listeners[token] = listener
        return Subscription(self, token)

    def has(self, token: int) -> bool:
        return token in self._listeners

    def remove(self, token: int) -> None:
        self._listeners.pop(token, None)

    def clear(self) -> None:
        self._listeners.clear()

    def snapshot(self) -> List[Callable[[T], None]]:
        """Listeners in subscription order, safe to iterate while others unsubscribe."""
        return list(self._listeners.values())

    def __len__(self) -> int:
        return len(self._listeners)
