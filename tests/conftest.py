"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

from insights_chat.config import ChatConfig
from insights_chat.core.orchestrator import SendOrchestrator
from insights_chat.core.session import SessionStore
from insights_chat.services.timers import CallbackTimers
from insights_chat.storage.database import MemoryKeyValueStore
from insights_chat.storage.history import HistoryGateway
from insights_chat.storage.preferences import PreferencesRepository
from insights_chat.transport.client import ChatReply, ChatTransport


class FakeClock:
    """Settable clock for TTL tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 12, 14, 15, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeTransport(ChatTransport):
    """Scripted transport. Queue replies or exceptions; optionally hold calls open."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self._script: list[ChatReply | Exception] = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    def reply(self, message: str = "ok", conversation_id: str = "conv-1", **kwargs) -> None:
        self._script.append(ChatReply(message=message, conversation_id=conversation_id, **kwargs))

    def fail(self, error: Exception) -> None:
        self._script.append(error)

    async def send(self, message, conversation_id=None, include_charts=True) -> ChatReply:
        self.calls.append(
            {
                "message": message,
                "conversation_id": conversation_id,
                "include_charts": include_charts,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        outcome = self._script.pop(0) if self._script else ChatReply(message="ok", conversation_id="conv-1")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


class ManualTimers(CallbackTimers):
    """Timers that only fire when the test says so."""

    def __init__(self) -> None:
        self.pending: dict[str, tuple[float, Callable[[], None]]] = {}

    def schedule(self, name, delay_seconds, callback) -> None:
        self.pending[name] = (delay_seconds, callback)

    def cancel(self, name) -> bool:
        return self.pending.pop(name, None) is not None

    def is_pending(self, name) -> bool:
        return name in self.pending

    def fire(self, name: str) -> None:
        _, callback = self.pending.pop(name)
        callback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def gateway(kv_store: MemoryKeyValueStore, clock: FakeClock) -> HistoryGateway:
    return HistoryGateway(kv_store, clock=clock)


@pytest.fixture
def preferences(kv_store: MemoryKeyValueStore) -> PreferencesRepository:
    return PreferencesRepository(kv_store)


@pytest.fixture
def store(gateway: HistoryGateway, preferences: PreferencesRepository) -> SessionStore:
    return SessionStore(gateway, preferences=preferences)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def orchestrator(store: SessionStore, transport: FakeTransport, timers: ManualTimers) -> SendOrchestrator:
    return SendOrchestrator(store, transport, timers, ChatConfig())


@pytest.fixture
def bar_chart() -> dict:
    return {"type": "bar", "title": "Q1", "data": [{"m": 1, "rev": 10}]}
