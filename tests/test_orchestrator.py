from __future__ import annotations

import asyncio

import pytest

from insights_chat.core.orchestrator import (
    ERROR_DISMISS_TIMER,
    SEND_FAILED_MESSAGE,
    THINKING_HINT_TIMER,
    SendOrchestrator,
    SendOutcome,
    SendState,
)
from insights_chat.core.session import SessionStore
from insights_chat.core.types import MessageStatus, Role
from insights_chat.transport.client import TransportError


@pytest.mark.parametrize("text", ["", "   ", "a", " b ", "x" * 1001])
async def test_invalid_utterances_do_not_touch_the_log(orchestrator, store, transport, text):
    result = await orchestrator.send(text)

    assert result.outcome is SendOutcome.REJECTED
    assert store.messages == ()
    assert transport.calls == []
    assert orchestrator.state is SendState.IDLE


async def test_length_bounds_are_inclusive(orchestrator, store):
    assert (await orchestrator.send("ok")).outcome is SendOutcome.SENT
    assert (await orchestrator.send("y" * 1000)).outcome is SendOutcome.SENT


async def test_successful_exchange(orchestrator, store: SessionStore, transport, bar_chart):
    transport.reply("Revenue is up", conversation_id="abc", charts=[bar_chart, {"type": "nope"}], processing_time_ms=4197)
    transport.gate = asyncio.Event()

    task = asyncio.create_task(orchestrator.send("What's our revenue trend?"))
    await asyncio.sleep(0)

    (pending,) = store.messages
    assert pending.role is Role.USER
    assert pending.status is MessageStatus.SENDING
    assert store.is_loading is True
    assert orchestrator.state is SendState.AWAITING_REMOTE

    transport.gate.set()
    result = await task

    assert result.outcome is SendOutcome.SENT
    user, assistant = store.messages
    assert user.status is MessageStatus.SENT
    assert store.conversation_id == "abc"
    assert assistant.role is Role.ASSISTANT
    assert assistant.content == "Revenue is up"
    assert assistant.status is None
    assert [c.title for c in assistant.charts] == ["Q1"]
    assert assistant.metadata.processing_time_ms == 4197
    assert store.is_loading is False
    assert orchestrator.state is SendState.RECONCILED_SUCCESS
    assert transport.calls == [
        {"message": "What's our revenue trend?", "conversation_id": None, "include_charts": True}
    ]


async def test_chart_flag_follows_intent(orchestrator, transport):
    await orchestrator.send("Hello there")

    assert transport.calls[0]["include_charts"] is False


async def test_conversation_id_binds_once(orchestrator, store, transport):
    transport.reply(conversation_id="abc")
    transport.reply(conversation_id="other")

    await orchestrator.send("first question")
    await orchestrator.send("second question")

    assert store.conversation_id == "abc"
    assert transport.calls[1]["conversation_id"] == "abc"


async def test_failure_then_retry(orchestrator, store: SessionStore, transport, timers):
    transport.fail(TransportError("Network error"))
    transport.reply("Recovered", conversation_id="abc")

    failed = await orchestrator.send("What's our revenue trend?")

    assert failed.outcome is SendOutcome.FAILED
    (user,) = store.messages
    assert user.status is MessageStatus.ERROR
    assert store.error == "Network error"
    assert store.is_loading is False
    assert orchestrator.can_retry
    assert orchestrator.state is SendState.RECONCILED_ERROR
    assert timers.is_pending(ERROR_DISMISS_TIMER)

    retried = await orchestrator.retry()

    assert retried.outcome is SendOutcome.SENT
    user, assistant = store.messages
    assert [m.role for m in store.messages] == [Role.USER, Role.ASSISTANT]
    assert user.status is MessageStatus.SENT
    assert assistant.content == "Recovered"
    assert store.error is None
    assert not timers.is_pending(ERROR_DISMISS_TIMER)
    assert transport.calls[0]["message"] == transport.calls[1]["message"] == "What's our revenue trend?"
    assert orchestrator.can_retry is False


async def test_failed_retry_keeps_retry_available(orchestrator, store, transport):
    transport.fail(TransportError("down"))
    transport.fail(TransportError("still down"))

    await orchestrator.send("hello there")
    result = await orchestrator.retry()

    assert result.outcome is SendOutcome.FAILED
    assert store.error == "still down"
    assert store.messages[0].status is MessageStatus.ERROR
    assert orchestrator.pending_retry_text == "hello there"
    assert len(store.messages) == 1


async def test_retry_without_failure_is_rejected(orchestrator):
    assert (await orchestrator.retry()).outcome is SendOutcome.REJECTED


async def test_new_send_supersedes_retry(orchestrator, transport):
    transport.fail(TransportError("down"))

    await orchestrator.send("first try")
    await orchestrator.send("another question")

    assert orchestrator.can_retry is False


async def test_empty_transport_error_uses_fallback(orchestrator, store, transport):
    transport.fail(TransportError(""))

    await orchestrator.send("hello there")

    assert store.error == SEND_FAILED_MESSAGE


async def test_unexpected_exception_is_reconciled(orchestrator, store, transport):
    transport.fail(RuntimeError("boom"))

    result = await orchestrator.send("hello there")

    assert result.outcome is SendOutcome.FAILED
    assert store.error == "boom"
    assert store.is_loading is False
    assert orchestrator.is_sending is False


async def test_concurrent_send_is_rejected(orchestrator, store, transport):
    transport.gate = asyncio.Event()
    first = asyncio.create_task(orchestrator.send("first question"))
    await asyncio.sleep(0)

    second = await orchestrator.send("second question")
    retry = await orchestrator.retry()

    assert second.outcome is SendOutcome.BUSY
    assert retry.outcome is SendOutcome.BUSY
    assert len(store.messages) == 1
    assert orchestrator.state is SendState.AWAITING_REMOTE

    transport.gate.set()
    await first
    assert len(transport.calls) == 1


async def test_error_auto_dismisses(orchestrator, store, transport, timers):
    transport.fail(TransportError("Network error"))
    await orchestrator.send("hello there")

    delay, _ = timers.pending[ERROR_DISMISS_TIMER]
    assert delay == 10
    timers.fire(ERROR_DISMISS_TIMER)

    assert store.error is None


async def test_manual_dismiss_cancels_timer(orchestrator, store, transport, timers):
    transport.fail(TransportError("Network error"))
    await orchestrator.send("hello there")

    orchestrator.dismiss_error()

    assert store.error is None
    assert not timers.is_pending(ERROR_DISMISS_TIMER)


async def test_thinking_hint_shows_while_loading(store, transport, timers):
    hints: list[bool] = []
    orchestrator = SendOrchestrator(store, transport, timers, on_thinking_hint=hints.append)
    transport.gate = asyncio.Event()

    task = asyncio.create_task(orchestrator.send("hello there"))
    await asyncio.sleep(0)
    delay, _ = timers.pending[THINKING_HINT_TIMER]
    timers.fire(THINKING_HINT_TIMER)

    assert delay == 3
    assert orchestrator.thinking_hint_visible is True

    transport.gate.set()
    await task

    assert orchestrator.thinking_hint_visible is False
    assert hints == [True, False]
    assert not timers.is_pending(THINKING_HINT_TIMER)


async def test_restart_during_flight_is_tolerated(orchestrator, store, transport):
    transport.reply("late answer", conversation_id="abc")
    transport.gate = asyncio.Event()

    task = asyncio.create_task(orchestrator.send("hello there"))
    await asyncio.sleep(0)
    orchestrator.restart()
    assert store.messages == ()

    transport.gate.set()
    result = await task

    assert result.outcome is SendOutcome.SENT
    assert [m.content for m in store.messages] == ["late answer"]
    assert store.is_loading is False


async def test_late_reply_after_restart_keeps_session_unbound(orchestrator, store, transport):
    transport.reply("first", conversation_id="old-conv")
    await orchestrator.send("hello there")
    assert store.conversation_id == "old-conv"

    transport.reply("late answer", conversation_id="old-conv")
    transport.gate = asyncio.Event()
    task = asyncio.create_task(orchestrator.send("and another"))
    await asyncio.sleep(0)
    orchestrator.restart()

    transport.gate.set()
    result = await task

    assert result.outcome is SendOutcome.SENT
    assert transport.calls[1]["conversation_id"] == "old-conv"
    assert store.conversation_id is None

    transport.gate = None
    transport.reply("fresh", conversation_id="new-conv")
    await orchestrator.send("start over")

    assert transport.calls[2]["conversation_id"] is None
    assert store.conversation_id == "new-conv"


async def test_restart_drops_pending_retry(orchestrator, store, transport):
    transport.fail(TransportError("down"))
    await orchestrator.send("hello there")

    orchestrator.restart()

    assert orchestrator.can_retry is False
    assert store.error is None
    assert store.messages == ()
