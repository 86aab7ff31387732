"""Change Notifier: coarse "the stock map changed" fan-out.

Observers learn that something changed, not what; they are expected to
re-read the stock map. Subscriptions are explicit handles so the same
callable can be registered (and removed) more than once.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from itertools import count

import structlog

logger = structlog.get_logger(__name__)

Observer = Callable[[], None]

_sequence = count(1)


@dataclass(frozen=True)
class Subscription:
    """Handle returned by ``ChangeNotifier.subscribe``."""

    subscription_id: int = field(default_factory=lambda: next(_sequence))


class ChangeNotifier:
    def __init__(self) -> None:
        self._observers: dict[Subscription, Observer] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._observers)

    def subscribe(self, observer: Observer) -> Subscription:
        if not callable(observer):
            raise TypeError("Observer must be callable")
        subscription = Subscription()
        with self._lock:
            self._observers[subscription] = observer
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a subscription. Returns False if it was not registered."""
        with self._lock:
            return self._observers.pop(subscription, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._observers.clear()

    def publish(self) -> int:
        """Invoke every observer once, in registration order.

        Observers run outside the notifier lock. A failing observer is
        logged and does not stop the others. Returns how many were invoked.
        """
        with self._lock:
            observers = list(self._observers.items())

        for subscription, observer in observers:
            try:
                observer()
            except Exception:
                logger.exception(
                    "Stock change observer failed",
                    subscription_id=subscription.subscription_id,
                )
        return len(observers)
