"""Tests for EventBus and event types."""

from __future__ import annotations

import logging

from vaultlink.events import EventBus, EventType, VaultEvent

# =========================================================================
# Helpers
# =========================================================================


async def _failing_handler(event: VaultEvent) -> None:
    """Handler that always raises."""
    raise RuntimeError(f"boom on {event.path}")


# =========================================================================
# VaultEvent
# =========================================================================


class TestVaultEvent:
    def test_paths_single(self):
        assert VaultEvent(EventType.FILE_MODIFIED, "a.md").paths == ("a.md",)

    def test_paths_rename(self):
        ev = VaultEvent(EventType.FILE_RENAMED, "b.md", old_path="a.md")
        assert ev.paths == ("a.md", "b.md")


# =========================================================================
# EventBus
# =========================================================================


class TestEventBus:
    async def test_handler_called_with_event(self):
        bus = EventBus()
        collected: list[VaultEvent] = []

        async def handler(event: VaultEvent) -> None:
            collected.append(event)

        bus.subscribe(handler, EventType.FILE_MODIFIED)
        ev = VaultEvent(EventType.FILE_MODIFIED, "a.md")
        await bus.emit(ev)

        assert collected == [ev]

    async def test_only_subscribed_types(self):
        bus = EventBus()
        collected: list[VaultEvent] = []

        async def handler(event: VaultEvent) -> None:
            collected.append(event)

        bus.subscribe(handler, EventType.FILE_DELETED)
        await bus.emit(VaultEvent(EventType.FILE_MODIFIED, "a.md"))

        assert collected == []

    async def test_subscribe_all_types(self):
        bus = EventBus()
        seen: list[EventType] = []

        async def handler(event: VaultEvent) -> None:
            seen.append(event.event_type)

        bus.subscribe(handler)
        for et in EventType:
            await bus.emit(VaultEvent(et, "a.md"))

        assert seen == list(EventType)

    async def test_handlers_called_in_order(self):
        bus = EventBus()
        order: list[int] = []

        async def first(event: VaultEvent) -> None:
            order.append(1)

        async def second(event: VaultEvent) -> None:
            order.append(2)

        bus.subscribe(first)
        bus.subscribe(second)
        await bus.emit(VaultEvent(EventType.FILE_DELETED, "a.md"))

        assert order == [1, 2]

    async def test_failing_handler_isolated(self, caplog):
        bus = EventBus()
        collected: list[VaultEvent] = []

        async def handler(event: VaultEvent) -> None:
            collected.append(event)

        bus.subscribe(_failing_handler)
        bus.subscribe(handler)

        with caplog.at_level(logging.WARNING, logger="vaultlink.events"):
            await bus.emit(VaultEvent(EventType.FILE_MODIFIED, "a.md"))

        assert len(collected) == 1
        assert "failed" in caplog.text

    async def test_unsubscribe(self):
        bus = EventBus()
        collected: list[VaultEvent] = []

        async def handler(event: VaultEvent) -> None:
            collected.append(event)

        unsubscribe = bus.subscribe(handler, EventType.FILE_MODIFIED, EventType.FILE_DELETED)
        await bus.emit(VaultEvent(EventType.FILE_DELETED, "a.md"))
        unsubscribe()
        await bus.emit(VaultEvent(EventType.FILE_MODIFIED, "a.md"))
        await bus.emit(VaultEvent(EventType.FILE_DELETED, "a.md"))

        assert [e.event_type for e in collected] == [EventType.FILE_DELETED]
