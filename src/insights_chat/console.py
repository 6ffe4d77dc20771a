"""Interactive terminal front end for an insights chat session."""

from __future__ import annotations

import asyncio
from typing import Optional

from insights_chat.app import InsightsChatApp
from insights_chat.charts.intent import classify_chart_intent
from insights_chat.core.models import ChartPayload, Message
from insights_chat.core.orchestrator import SUGGESTED_PROMPTS, SendOutcome
from insights_chat.core.rendering import render_message
from insights_chat.core.types import MessageStatus, Role
from insights_chat.utils.timefmt import format_relative_time, group_by_date, session_duration

HELP_TEXT = """Commands:
  /retry            re-send the last failed message
  /dismiss          hide the current error
  /clear            clear the conversation
  /restart          start a new conversation
  /history on|off   save or stop saving history on this machine
  /suggest [n]      list suggested prompts, or send prompt n
  /info             show session details
  /help             show this help
  /quit             exit"""

_STATUS_MARKS = {
    MessageStatus.SENDING: "...",
    MessageStatus.SENT: "",
    MessageStatus.ERROR: " [failed, /retry to resend]",
}


def describe_chart(chart: ChartPayload) -> str:
    labels = ""
    if chart.labels and (chart.labels.x or chart.labels.y):
        labels = f" ({chart.labels.x or '-'} vs {chart.labels.y or '-'})"
    return f"[{chart.type.value} chart] {chart.title}{labels}: {len(chart.data)} points"


def format_message(message: Message) -> str:
    rendered = render_message(message)
    who = "You" if message.role is Role.USER else "Assistant"
    mark = _STATUS_MARKS.get(message.status, "") if message.status else ""
    lines = [f"{who} ({format_relative_time(message.timestamp)}){mark}:", rendered.text]
    lines.extend(f"  {describe_chart(chart)}" for chart in rendered.charts)
    return "\n".join(lines)


class ChatConsole:
    """Reads lines from stdin and drives the app's orchestrator."""

    def __init__(self, app: InsightsChatApp):
        self._app = app
        self._store = app.store
        self._orchestrator = app.orchestrator
        self._last_error: Optional[str] = None
        self._running = True

    async def run(self) -> None:
        self._print_history()
        print("Type a question, or /help for commands.")
        while self._running:
            try:
                line = await asyncio.to_thread(input, "> ")
            except (EOFError, KeyboardInterrupt):
                break
            await self.handle_line(line)

    async def handle_line(self, line: str) -> None:
        text = line.strip()
        if not text:
            return
        if text.startswith("/"):
            await self._handle_command(text)
            return

        if not self._orchestrator.is_valid_utterance(text):
            limits = self._app.config.chat
            print(f"Messages must be {limits.min_input_length}-{limits.max_input_length} characters.")
            return

        intent = classify_chart_intent(text)
        if intent.detected:
            print(f"(chart mode: {intent.suggested_type})")
        await self._send(text)

    async def _send(self, text: str) -> None:
        result = await self._orchestrator.send(text)
        if result.outcome is SendOutcome.BUSY:
            print("Still waiting on the previous message.")
            return
        self._print_exchange(result.message_id, result.reply_id)

    async def _handle_command(self, text: str) -> None:
        command, _, arg = text.partition(" ")
        arg = arg.strip()
        match command.lower():
            case "/quit" | "/exit":
                self._running = False
            case "/help":
                print(HELP_TEXT)
            case "/retry":
                result = await self._orchestrator.retry()
                if result.outcome is SendOutcome.REJECTED:
                    print("Nothing to retry.")
                else:
                    self._print_exchange(result.message_id, result.reply_id)
            case "/dismiss":
                self._orchestrator.dismiss_error()
            case "/clear":
                self._orchestrator.clear()
                print("Chat cleared.")
            case "/restart":
                self._orchestrator.restart()
                print("Conversation restarted.")
            case "/history":
                if arg.lower() not in ("on", "off"):
                    state = "on" if self._store.save_history else "off"
                    print(f"History saving is {state}. Use /history on|off.")
                    return
                self._store.set_save_history(arg.lower() == "on")
                print(f"History saving turned {arg.lower()}.")
            case "/suggest":
                await self._suggest(arg)
            case "/info":
                messages = self._store.messages
                print(f"Messages: {len(messages)}")
                print(f"Session: {session_duration(messages)}")
                print(f"Conversation: {self._store.conversation_id or '(new)'}")
                print(f"History saving: {'on' if self._store.save_history else 'off'}")
                for name, healthy in (await self._app.health_check()).items():
                    print(f"Service {name}: {'up' if healthy else 'down'}")
            case _:
                print(f"Unknown command: {command}. Try /help.")

    async def _suggest(self, arg: str) -> None:
        if not arg:
            for index, prompt in enumerate(SUGGESTED_PROMPTS, start=1):
                print(f"  {index}. {prompt}")
            return
        try:
            prompt = SUGGESTED_PROMPTS[int(arg) - 1]
        except (ValueError, IndexError):
            print(f"Pick a number between 1 and {len(SUGGESTED_PROMPTS)}.")
            return
        print(f"> {prompt}")
        result = await self._orchestrator.send_suggested(prompt)
        self._print_exchange(result.message_id, result.reply_id)

    def _print_exchange(self, message_id: Optional[str], reply_id: Optional[str]) -> None:
        if reply_id:
            reply = self._store.get_message(reply_id)
            if reply is not None:
                print(format_message(reply))
        error = self._store.error
        if error and error != self._last_error:
            print(f"Error: {error}")
        self._last_error = error

    def _print_history(self) -> None:
        messages = self._store.messages
        if not messages:
            return
        print(f"Restored conversation ({len(messages)} messages, {session_duration(messages)}):")
        for label, group in group_by_date(messages).items():
            print(f"--- {label} ---")
            for message in group:
                print(format_message(message))
