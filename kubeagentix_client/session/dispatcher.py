"""Event dispatcher — synchronous fan-out of decoded events to observers."""

from __future__ import annotations

import logging
from typing import Callable

from kubeagentix_client.session.models import AnyEvent

logger = logging.getLogger(__name__)

Observer = Callable[[AnyEvent], None]


class EventDispatcher:
    """Calls every subscribed observer, in subscription order, for each event.

    The member set is a tuple replaced on every subscribe/unsubscribe, so a
    dispatch always iterates the snapshot taken when it started. Changes made
    from inside an observer apply from the next event onward.
    """

    def __init__(self) -> None:
        self._observers: tuple[Observer, ...] = ()

    def __len__(self) -> int:
        return len(self._observers)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Add *observer*; returns a callable that removes it again."""
        self._observers = self._observers + (observer,)

        def unsubscribe() -> None:
            observers = list(self._observers)
            if observer in observers:
                observers.remove(observer)
                self._observers = tuple(observers)

        return unsubscribe

    def dispatch(self, event: AnyEvent) -> None:
        for observer in self._observers:
            try:
                observer(event)
            except Exception:
                logger.exception("Observer %r failed on %s event", observer, event.type)
