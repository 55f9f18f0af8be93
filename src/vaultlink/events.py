"""Vault change events, used to keep derived caches in step with notes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    Handler = Callable[["VaultEvent"], Awaitable[None]]

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Kinds of vault change a host reports."""

    FILE_MODIFIED = "file_modified"
    FILE_DELETED = "file_deleted"
    FILE_RENAMED = "file_renamed"


@dataclass(frozen=True, slots=True)
class VaultEvent:
    """Immutable record of a vault change.

    Attributes:
        event_type: The kind of change.
        path: Vault path of the affected note (destination for renames).
        old_path: Previous path (renames only).
    """

    event_type: EventType
    path: str
    old_path: str | None = None

    @property
    def paths(self) -> tuple[str, ...]:
        """Every path this event touches."""
        if self.old_path is None:
            return (self.path,)
        return (self.old_path, self.path)


class EventBus:
    """Dispatches vault events to subscribed handlers.

    Handlers run sequentially in subscription order.  A failing handler is
    logged and skipped; it never stops the remaining handlers or the host.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Handler]] = {et: [] for et in EventType}

    def subscribe(self, handler: Handler, *event_types: EventType) -> Callable[[], None]:
        """Call *handler* for *event_types* (all types when none given).

        Returns a function that removes the subscription again.
        """
        types = event_types or tuple(EventType)
        for et in types:
            self._handlers[et].append(handler)

        def unsubscribe() -> None:
            for et in types:
                if handler in self._handlers[et]:
                    self._handlers[et].remove(handler)

        return unsubscribe

    async def emit(self, event: VaultEvent) -> None:
        """Dispatch *event* to every handler subscribed to its type."""
        for handler in list(self._handlers[event.event_type]):
            try:
                await handler(event)
            except Exception:
                logger.warning(
                    "Handler %r failed for %s on %s",
                    handler,
                    event.event_type.value,
                    event.path,
                    exc_info=True,
                )
