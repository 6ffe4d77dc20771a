"""Persisted user preferences (the history privacy flag)."""

from __future__ import annotations

import sqlite3

from insights_chat.log import get_logger
from insights_chat.storage.database import KeyValueStore

logger = get_logger(__name__)

DEFAULT_PREFERENCES_KEY = "insights_chat_save_history"


class PreferencesRepository:
    """Stores the save-history flag apart from the history record itself."""

    def __init__(self, store: KeyValueStore, key: str = DEFAULT_PREFERENCES_KEY):
        self._store = store
        self._key = key

    def get_save_history(self, default: bool = True) -> bool:
        try:
            value = self._store.get(self._key)
        except (sqlite3.Error, RuntimeError) as e:
            logger.error("preferences_load_failed", error=str(e))
            return default
        if value == "true":
            return True
        if value == "false":
            return False
        return default

    def set_save_history(self, enabled: bool) -> None:
        try:
            self._store.set(self._key, "true" if enabled else "false")
        except (sqlite3.Error, RuntimeError) as e:
            logger.error("preferences_save_failed", error=str(e))
