"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from datetime import timedelta
from typing import Callable

from insights_chat.config import AppConfig
from insights_chat.core.orchestrator import SendOrchestrator
from insights_chat.core.session import SessionStore
from insights_chat.log import get_logger
from insights_chat.services.base import Service
from insights_chat.services.timers import TimerService
from insights_chat.storage.database import Database, KeyValueStore, MemoryKeyValueStore
from insights_chat.storage.history import HistoryGateway
from insights_chat.storage.preferences import PreferencesRepository
from insights_chat.transport.client import ChatTransport, HttpChatTransport

logger = get_logger(__name__)


class InsightsChatApp:
    """Top-level application object owning one chat session."""

    def __init__(
        self,
        config: AppConfig,
        transport: ChatTransport | None = None,
        ephemeral: bool = False,
        on_thinking_hint: Callable[[bool], None] | None = None,
    ):
        self.config = config
        self.db: Database | None = None if ephemeral else Database(config.storage.db_path)
        kv_store: KeyValueStore = self.db if self.db is not None else MemoryKeyValueStore()

        self.history = HistoryGateway(
            kv_store,
            key=config.storage.history_key,
            ttl=timedelta(hours=config.storage.history_ttl_hours),
        )
        self.preferences = PreferencesRepository(kv_store, key=config.storage.preferences_key)
        self.store = SessionStore(
            self.history,
            preferences=self.preferences,
            save_history=config.chat.default_save_history,
        )
        self.transport = transport or HttpChatTransport(config.transport)
        self.timers = TimerService()
        self._services: list[Service] = [self.timers]
        self.orchestrator = SendOrchestrator(
            store=self.store,
            transport=self.transport,
            timers=self.timers,
            settings=config.chat,
            on_thinking_hint=on_thinking_hint,
        )

    async def start(self) -> None:
        """Open storage, start timers and rehydrate the saved session."""
        if self.db is not None:
            self.db.initialize()

        for service in self._services:
            await service.start()

        save_history = self.preferences.get_save_history(self.config.chat.default_save_history)
        if save_history != self.store.save_history:
            self.store.set_save_history(save_history)

        restored = self.store.load_history()
        logger.info(
            "insights_chat_started",
            save_history=save_history,
            restored=restored,
            messages=len(self.store.messages),
        )

    async def health_check(self) -> dict[str, bool]:
        """Report each service by name, logging the ones that are down."""
        report: dict[str, bool] = {}
        for service in self._services:
            healthy = await service.health_check()
            if not healthy:
                logger.warning("service_unhealthy", service=service.service_name)
            report[service.service_name] = healthy
        return report

    async def stop(self) -> None:
        """Shut down in reverse order of start."""
        self.orchestrator.close()
        for service in reversed(self._services):
            await service.stop()
        try:
            await self.transport.close()
        except Exception as e:
            logger.error("transport_close_error", error=str(e))
        if self.db is not None:
            self.db.close()
        logger.info("insights_chat_stopped")
