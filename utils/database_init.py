import os
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite


class AsyncDatabaseInitializer:
    """
    Manage the async SQLite database holding durable session settings.

    - The database file is located at: <DATABASE_DIR>/settings.db, or inside
      the explicitly given directory.
    - DATABASE_DIR is required when no directory is passed. A RuntimeError is
      raised if it is missing or invalid (not a directory and cannot be created).
    - Unlike a scratch database, an existing file is kept: settings must survive
      restarts so the last successful session can be restored.
    - Subsequent calls to `ensure_database()` on the same instance are no-ops,
      so it is safe for `connection()` to call it.
    """

    def __init__(self, db_dir: Optional[Path | str] = None) -> None:
        env_dir = str(db_dir) if db_dir is not None else os.getenv("DATABASE_DIR")

        if env_dir is None or not env_dir.strip():
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite database file will be stored."
            )

        path = Path(env_dir).expanduser()

        if path.exists() and not path.is_dir():
            raise RuntimeError(
                f"DATABASE_DIR={env_dir!r} points to a file, not a directory "
                f"({path}). Please set DATABASE_DIR to a directory path."
            )

        try:
            path.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create or access database directory at {path}"
            ) from exc

        self.db_dir = path
        self.db_path = self.db_dir / "settings.db"
        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Ensure the SQLite database and the SESSION_SETTINGS table exist.

        Subsequent calls on the same instance are no-ops.
        """
        if self._initialized:
            return

        max_attempts = 3
        for attempt in range(1, max_attempts + 1):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    # Single-row table: id is always 1.
                    await db.execute(
                        """
                        CREATE TABLE IF NOT EXISTS SESSION_SETTINGS (
                            id INTEGER PRIMARY KEY CHECK (id = 1),
                            provider TEXT NOT NULL,
                            credential TEXT NOT NULL,
                            profile TEXT NOT NULL,
                            search_tool_enabled INTEGER NOT NULL DEFAULT 1,
                            verbosity TEXT NOT NULL DEFAULT 'short',
                            updated_at INTEGER NOT NULL
                        )
                        """
                    )
                    await db.commit()
                break
            except FileNotFoundError:
                # On some platforms a transient missing file error may occur; retry a few times.
                if attempt >= max_attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The database is created on first use via `ensure_database()`.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
