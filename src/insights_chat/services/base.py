"""Lifecycle contract for the engine's long-lived helpers."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Service(ABC):
    """A helper that ``InsightsChatApp`` starts, stops and reports on.

    ``start`` and ``stop`` must be safe to call twice. ``health_check`` is
    what the console's ``/info`` shows next to :attr:`service_name`.
    """

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True while the service can do its job."""
        ...
