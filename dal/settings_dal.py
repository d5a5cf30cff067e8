"""Async Data Access Layer for the SESSION_SETTINGS table.

Stores the settings of the last successfully started session so the next
launch can pre-fill `start`. There is at most one row.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Protocol

from models.session_models import InstructionProfile, ProviderKind, StoredSettings, Verbosity
from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)


class SettingsStore(Protocol):
    """Durable storage for the last successful session settings."""

    async def save(self, settings: StoredSettings) -> None:
        ...

    async def load(self) -> Optional[StoredSettings]:
        ...


class SettingsDAL:
    """SQLite-backed `SettingsStore`.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = ("provider", "credential", "profile", "search_tool_enabled", "verbosity")

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def save(self, settings: StoredSettings) -> None:
        """Insert or replace the single settings row."""
        async with self._db.connection() as conn:
            await conn.execute(
                """
                INSERT INTO SESSION_SETTINGS (id, provider, credential, profile, search_tool_enabled, verbosity, updated_at)
                VALUES (1, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    provider = excluded.provider,
                    credential = excluded.credential,
                    profile = excluded.profile,
                    search_tool_enabled = excluded.search_tool_enabled,
                    verbosity = excluded.verbosity,
                    updated_at = excluded.updated_at
                """,
                (
                    settings.provider.value,
                    settings.credential,
                    settings.profile.value,
                    1 if settings.search_tool_enabled else 0,
                    settings.verbosity.value,
                    int(time.time()),
                ),
            )
            await conn.commit()

    async def load(self) -> Optional[StoredSettings]:
        """Return the stored settings, or None when nothing usable was saved."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {', '.join(self._COLUMNS)} FROM SESSION_SETTINGS WHERE id = 1"
            )
            row = await cur.fetchone()
            await cur.close()

        if row is None:
            return None

        provider, credential, profile, search_tool_enabled, verbosity = row
        try:
            return StoredSettings(
                provider=ProviderKind(provider),
                credential=credential,
                profile=InstructionProfile(profile),
                search_tool_enabled=bool(search_tool_enabled),
                verbosity=Verbosity(verbosity),
            )
        except ValueError as exc:
            LOGGER.warning("Ignoring unreadable stored settings: %s", exc)
            return None

