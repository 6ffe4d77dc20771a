"""Named, cancellable one-shot callbacks on top of APScheduler.

UI affordances such as the error auto-dismiss and the "still thinking" hint
are delayed callbacks that must be cancelled once the state they describe is
superseded. Each callback has a name; scheduling a name again replaces the
pending callback.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from insights_chat.log import get_logger
from insights_chat.services.base import Service

logger = get_logger(__name__)


class CallbackTimers(ABC):
    """What the send orchestrator needs from a timer facility."""

    @abstractmethod
    def schedule(self, name: str, delay_seconds: float, callback: Callable[[], None]) -> None:
        """Run *callback* after *delay_seconds*, replacing any pending *name*."""
        ...

    @abstractmethod
    def cancel(self, name: str) -> bool:
        """Cancel the pending callback *name*. Returns True if one was pending."""
        ...

    @abstractmethod
    def is_pending(self, name: str) -> bool:
        ...


class TimerService(Service, CallbackTimers):
    """Timer facility backed by an asyncio APScheduler.

    Callbacks run on the event loop thread, never in a worker thread, so they
    may touch the session store directly.
    """

    def __init__(self, timezone_name: str = "UTC"):
        self._timezone_name = timezone_name
        self._scheduler = AsyncIOScheduler(timezone=timezone_name)

    @property
    def service_name(self) -> str:
        return "timers"

    async def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("timers_started", timezone=self._timezone_name)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("timers_stopped")

    async def health_check(self) -> bool:
        return self._scheduler.running

    def schedule(self, name: str, delay_seconds: float, callback: Callable[[], None]) -> None:
        run_at = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)

        async def _fire() -> None:
            logger.debug("timer_fired", name=name)
            try:
                callback()
            except Exception as e:
                logger.error("timer_callback_failed", name=name, error=str(e))

        self._scheduler.add_job(
            _fire,
            DateTrigger(run_date=run_at),
            id=name,
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.debug("timer_scheduled", name=name, delay_seconds=delay_seconds)

    def cancel(self, name: str) -> bool:
        try:
            self._scheduler.remove_job(name)
        except JobLookupError:
            return False
        logger.debug("timer_cancelled", name=name)
        return True

    def is_pending(self, name: str) -> bool:
        return self._scheduler.get_job(name) is not None
