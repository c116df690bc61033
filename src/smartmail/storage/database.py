# =============================================================================
# SQLite Store
# =============================================================================
# Owns the aiosqlite connection of the local mirror and creates its tables.
#
#   accounts     one row per configured account: settings, INBOX watermark,
#                time of the last sync and the last reported quota
#   emails       mirrored messages, primary key from make_email_id()
#   attachments  payloads of an email, removed together with it
#
# The connection runs in WAL mode with foreign keys enforced. Writes go
# through Database.transaction(), which serializes concurrent writers.
# =============================================================================

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from smartmail.config import Config

logger = logging.getLogger(__name__)

# Bump together with a new entry in MIGRATIONS
SCHEMA_VERSION = 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL,
    provider TEXT NOT NULL DEFAULT '',
    color TEXT NOT NULL DEFAULT '',
    imap_host TEXT NOT NULL DEFAULT '',
    imap_port INTEGER NOT NULL DEFAULT 993,
    imap_security TEXT NOT NULL DEFAULT 'ssl',
    username TEXT NOT NULL DEFAULT '',
    last_sync_uid INTEGER NOT NULL DEFAULT 0,
    last_sync_time TEXT,
    storage_used INTEGER NOT NULL DEFAULT 0,
    storage_total INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS emails (
    id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
    uid INTEGER NOT NULL,
    folder TEXT NOT NULL DEFAULT 'Posteingang',
    sender TEXT,
    sender_email TEXT,
    subject TEXT,
    body TEXT,
    body_html TEXT,
    date TEXT,
    is_read INTEGER NOT NULL DEFAULT 0,
    is_flagged INTEGER NOT NULL DEFAULT 0,
    has_attachments INTEGER NOT NULL DEFAULT 0,
    smart_category TEXT
);

CREATE TABLE IF NOT EXISTS attachments (
    id TEXT PRIMARY KEY,
    email_id TEXT NOT NULL REFERENCES emails(id) ON DELETE CASCADE,
    filename TEXT NOT NULL,
    content_type TEXT NOT NULL,
    size INTEGER NOT NULL DEFAULT 0,
    data BLOB
);

CREATE INDEX IF NOT EXISTS idx_emails_account_folder ON emails(account_id, folder, uid);
CREATE INDEX IF NOT EXISTS idx_emails_date ON emails(date DESC);
CREATE INDEX IF NOT EXISTS idx_attachments_email ON attachments(email_id);
"""

# Upgrade scripts keyed by the version they produce
MIGRATIONS: dict[int, str] = {}


class Database:
    """
    Connection to the local mirror.

    Usage:
        >>> async with Database(path) as db:
        ...     repo = Repository(db)

    Attributes:
        db_path: SQLite file; created on first connect.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or Config.database_path()
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the file (creating it if needed) and bring the schema up to date."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Opening database {self.db_path}")

        self._connection = await aiosqlite.connect(self.db_path)
        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._connection.execute("PRAGMA journal_mode = WAL")

        await self._ensure_schema()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def conn(self) -> aiosqlite.Connection:
        """
        The open connection.

        Raises:
            RuntimeError: If connect() hasn't been called.
        """
        if self._connection is None:
            raise RuntimeError("Database is not open; call connect() first")
        return self._connection

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Run a group of writes as one transaction.

        Writers sharing the connection are serialized, so one caller's commit
        never includes another caller's unfinished statements. Commits when
        the block exits normally and rolls back if it raises.

        Usage:
            >>> async with db.transaction() as conn:
            ...     await conn.execute("DELETE FROM emails WHERE id = ?", (email_id,))
        """
        async with self._write_lock:
            try:
                yield self.conn
            except BaseException:
                await self.conn.rollback()
                raise
            await self.conn.commit()

    async def schema_version(self) -> int:
        """Version recorded in the file, 0 for a new database."""
        try:
            async with self.conn.execute("SELECT MAX(version) FROM schema_version") as cursor:
                row = await cursor.fetchone()
        except aiosqlite.OperationalError:
            return 0
        return row[0] if row and row[0] is not None else 0

    async def _ensure_schema(self) -> None:
        version = await self.schema_version()
        if version >= SCHEMA_VERSION:
            return

        if version == 0:
            logger.info(f"Creating database schema v{SCHEMA_VERSION}")
            await self.conn.executescript(SCHEMA)
        else:
            for target in range(version + 1, SCHEMA_VERSION + 1):
                logger.info(f"Migrating database schema to v{target}")
                await self.conn.executescript(MIGRATIONS[target])

        await self.conn.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,)
        )
        await self.conn.commit()
