# =============================================================================
# Repository - Data Access Layer
# =============================================================================
# Provides the storage operations the sync engine and the CLI need.
#
# It handles:
#   - Converting between domain models and database rows
#   - Upserting emails by their deterministic local ID
#   - The UID bookkeeping used by incremental sync (watermark, listings,
#     bulk deletes, flag mirroring, folder relabeling)
#
# All methods are async for non-blocking database access.
# =============================================================================

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

from smartmail.core import Account, Attachment, Email

if TYPE_CHECKING:
    from smartmail.storage.database import Database

logger = logging.getLogger(__name__)

# smart_category value marking placeholder rows
PLACEHOLDER_CATEGORY = "System Error"

_ACCOUNT_COLUMNS = (
    "id, name, email, provider, color, imap_host, imap_port, imap_security, "
    "username, last_sync_uid, last_sync_time, storage_used, storage_total"
)
_EMAIL_LIST_COLUMNS = (
    "id, account_id, uid, folder, sender, sender_email, subject, date, "
    "is_read, is_flagged, has_attachments, smart_category"
)


class Repository:
    """
    Data access layer for SmartMail.

    Usage:
        >>> repo = Repository(database)
        >>> await repo.add_account(account)
        >>> await repo.save_email(email)
        >>> emails = await repo.get_emails(account.id)

    Attributes:
        db: Database instance for executing queries.
    """

    def __init__(self, db: "Database") -> None:
        self.db = db

    # =========================================================================
    # Account Operations
    # =========================================================================

    async def add_account(self, account: Account) -> Account:
        """
        Insert an account, or update its settings if it already exists.

        Sync state (watermark, last sync time, quota) of an existing row is
        left untouched. Replacing the row outright would cascade-delete its
        emails.
        """
        async with self.db.transaction() as conn:
            await conn.execute(
                f"""INSERT INTO accounts ({_ACCOUNT_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        name=excluded.name, email=excluded.email,
                        provider=excluded.provider, color=excluded.color,
                        imap_host=excluded.imap_host, imap_port=excluded.imap_port,
                        imap_security=excluded.imap_security,
                        username=excluded.username""",
                (account.id, account.name, account.email, account.provider,
                 account.color, account.imap_host, account.imap_port,
                 account.imap_security, account.username, account.last_sync_uid,
                 account.last_sync_time.isoformat() if account.last_sync_time else None,
                 account.storage_used, account.storage_total)
            )
        return account

    async def get_accounts(self) -> list[Account]:
        """Get all accounts, ordered by name."""
        async with self.db.conn.execute(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts ORDER BY name"
        ) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_account(row) for row in rows]

    async def get_account(self, account_id: str) -> Account | None:
        """
        Get an account by ID.

        Returns:
            Account if found, None otherwise.
        """
        async with self.db.conn.execute(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = ?", (account_id,)
        ) as cursor:
            row = await cursor.fetchone()
            return self._row_to_account(row) if row else None

    async def delete_account(self, account_id: str) -> None:
        """Delete an account and all its emails."""
        async with self.db.transaction() as conn:
            await conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))

    async def update_account_sync(
        self,
        account_id: str,
        last_sync_uid: int,
        last_sync_time: datetime,
    ) -> None:
        """Record the watermark and time of a finished sync."""
        async with self.db.transaction() as conn:
            await conn.execute(
                "UPDATE accounts SET last_sync_uid = ?, last_sync_time = ? WHERE id = ?",
                (last_sync_uid, last_sync_time.isoformat(), account_id)
            )

    async def update_account_quota(self, account_id: str, used_kb: int, total_kb: int) -> None:
        """Record the last known storage quota (KB)."""
        async with self.db.transaction() as conn:
            await conn.execute(
                "UPDATE accounts SET storage_used = ?, storage_total = ? WHERE id = ?",
                (used_kb, total_kb, account_id)
            )

    def _row_to_account(self, row) -> Account:
        return Account(
            id=row[0],
            name=row[1],
            email=row[2],
            provider=row[3] or "",
            color=row[4] or "",
            imap_host=row[5] or "",
            imap_port=row[6],
            imap_security=row[7] or "ssl",
            username=row[8] or "",
            last_sync_uid=row[9] or 0,
            last_sync_time=datetime.fromisoformat(row[10]) if row[10] else None,
            storage_used=row[11] or 0,
            storage_total=row[12] or 0,
        )

    # =========================================================================
    # Email Operations
    # =========================================================================

    async def save_email(self, email: Email) -> Email:
        """
        Insert or replace an email by its local ID.

        The attachment set is replaced wholesale with `email.attachments`.
        The row and its attachments are written in one transaction.
        """
        async with self.db.transaction() as conn:
            await conn.execute(
                """INSERT OR REPLACE INTO emails
                   (id, account_id, uid, folder, sender, sender_email, subject,
                    body, body_html, date, is_read, is_flagged, has_attachments,
                    smart_category)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (email.id, email.account_id, email.uid, email.folder, email.sender,
                 email.sender_email, email.subject, email.body, email.body_html,
                 email.date.isoformat() if email.date else None,
                 int(email.is_read), int(email.is_flagged),
                 int(email.has_attachments), email.smart_category)
            )

            await conn.execute("DELETE FROM attachments WHERE email_id = ?", (email.id,))
            for index, att in enumerate(email.attachments):
                att.id = f"{email.id}-att{index}"
                att.email_id = email.id
                await conn.execute(
                    """INSERT INTO attachments (id, email_id, filename, content_type, size, data)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (att.id, email.id, att.filename, att.content_type, att.size, att.data)
                )

        return email

    async def get_emails(self, account_id: str, folder: str | None = None) -> list[Email]:
        """
        Get the emails of an account for list views (without bodies).

        Args:
            account_id: Owning account.
            folder: Restrict to one canonical folder.

        Returns:
            Emails, newest first.
        """
        sql = f"SELECT {_EMAIL_LIST_COLUMNS} FROM emails WHERE account_id = ?"
        params: list = [account_id]
        if folder is not None:
            sql += " AND folder = ?"
            params.append(folder)
        sql += " ORDER BY date DESC, uid DESC"

        async with self.db.conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_email(row) for row in rows]

    async def get_email(self, email_id: str) -> Email | None:
        """Get one email with its body and attachments."""
        async with self.db.conn.execute(
            f"SELECT {_EMAIL_LIST_COLUMNS}, body, body_html FROM emails WHERE id = ?",
            (email_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None

        email = self._row_to_email(row)
        email.body = row[12] or ""
        email.body_html = row[13]
        email.attachments = await self.get_attachments(email_id)
        return email

    async def get_attachments(self, email_id: str) -> list[Attachment]:
        """Load the attachments of an email."""
        async with self.db.conn.execute(
            """SELECT id, email_id, filename, content_type, size, data
               FROM attachments WHERE email_id = ? ORDER BY id""",
            (email_id,)
        ) as cursor:
            rows = await cursor.fetchall()
            return [
                Attachment(
                    id=row[0],
                    email_id=row[1],
                    filename=row[2],
                    content_type=row[3],
                    size=row[4],
                    data=row[5],
                )
                for row in rows
            ]

    async def update_email_flags(
        self,
        email_id: str,
        *,
        is_read: bool | None = None,
        is_flagged: bool | None = None,
    ) -> None:
        """Update the read and/or flagged state of a single email."""
        assignments, params = _flag_assignments(is_read, is_flagged)
        if not assignments:
            return

        params.append(email_id)
        async with self.db.transaction() as conn:
            await conn.execute(
                f"UPDATE emails SET {', '.join(assignments)} WHERE id = ?", params
            )

    async def update_email_flags_by_uid(
        self,
        account_id: str,
        folder: str,
        uid: int,
        *,
        is_read: bool | None = None,
        is_flagged: bool | None = None,
    ) -> int:
        """
        Update the read and/or flagged state of the email at (account, folder, uid).

        Keyed on the stored folder and UID rather than the local ID, so rows
        whose ID predates a folder migration are still found.

        Returns:
            Number of rows updated
        """
        assignments, params = _flag_assignments(is_read, is_flagged)
        if not assignments:
            return 0

        params.extend([account_id, folder, uid])
        async with self.db.transaction() as conn:
            cursor = await conn.execute(
                f"""UPDATE emails SET {', '.join(assignments)}
                    WHERE account_id = ? AND folder = ? AND uid = ?""",
                params
            )
            return cursor.rowcount

    async def delete_email(self, email_id: str) -> None:
        """Delete a single email (attachments cascade)."""
        async with self.db.transaction() as conn:
            await conn.execute("DELETE FROM emails WHERE id = ?", (email_id,))

    async def get_unread_count(self, account_id: str | None = None) -> int:
        """Number of unread emails, optionally for one account."""
        sql = "SELECT COUNT(*) FROM emails WHERE is_read = 0"
        params: tuple = ()
        if account_id is not None:
            sql += " AND account_id = ?"
            params = (account_id,)
        async with self.db.conn.execute(sql, params) as cursor:
            row = await cursor.fetchone()
            return row[0] if row else 0

    def _row_to_email(self, row) -> Email:
        return Email(
            id=row[0],
            account_id=row[1],
            uid=row[2],
            folder=row[3],
            sender=row[4] or "",
            sender_email=row[5] or "",
            subject=row[6] or "",
            date=datetime.fromisoformat(row[7]) if row[7] else None,
            is_read=bool(row[8]),
            is_flagged=bool(row[9]),
            has_attachments=bool(row[10]),
            smart_category=row[11],
        )

    # =========================================================================
    # Sync Operations
    # =========================================================================
    # UID-based lookups and bulk updates used by the sync engine.

    async def get_all_uids_for_folder(self, account_id: str, folder: str) -> set[int]:
        """All UIDs stored for a canonical folder."""
        async with self.db.conn.execute(
            "SELECT uid FROM emails WHERE account_id = ? AND folder = ?",
            (account_id, folder)
        ) as cursor:
            rows = await cursor.fetchall()
            return {row[0] for row in rows}

    async def get_max_uid_for_folder(self, account_id: str, folder: str) -> int:
        """Highest UID stored for a canonical folder, 0 if none."""
        async with self.db.conn.execute(
            "SELECT MAX(uid) FROM emails WHERE account_id = ? AND folder = ?",
            (account_id, folder)
        ) as cursor:
            row = await cursor.fetchone()
            return row[0] if row and row[0] is not None else 0

    async def delete_emails_by_uid(
        self,
        account_id: str,
        uids: Iterable[int],
        folder: str,
    ) -> int:
        """
        Delete emails of a folder by UID.

        Returns:
            Number of emails deleted.
        """
        uids = list(uids)
        if not uids:
            return 0

        deleted = 0
        async with self.db.transaction() as conn:
            # Stay below SQLite's bound-parameter limit
            for start in range(0, len(uids), 500):
                chunk = uids[start:start + 500]
                placeholders = ",".join("?" * len(chunk))
                cursor = await conn.execute(
                    f"""DELETE FROM emails
                        WHERE account_id = ? AND folder = ? AND uid IN ({placeholders})""",
                    (account_id, folder, *chunk)
                )
                deleted += cursor.rowcount
        logger.debug(f"Deleted {deleted} emails from {folder} ({account_id})")
        return deleted

    async def migrate_folder(
        self,
        old_folder: str,
        new_folder: str,
        account_id: str | None = None,
    ) -> int:
        """
        Relabel all emails stored under one folder to another.

        Returns:
            Number of emails relabeled.
        """
        if old_folder == new_folder:
            return 0

        sql = "UPDATE emails SET folder = ? WHERE folder = ?"
        params: list = [new_folder, old_folder]
        if account_id is not None:
            sql += " AND account_id = ?"
            params.append(account_id)

        async with self.db.transaction() as conn:
            cursor = await conn.execute(sql, params)
            relabeled = cursor.rowcount
        logger.debug(f"Relabeled {relabeled} emails: {old_folder!r} -> {new_folder!r}")
        return relabeled

    async def update_flags_bulk(
        self,
        account_id: str,
        folder: str,
        uid_flags: dict[int, tuple[bool, bool]],
    ) -> None:
        """
        Mirror server flags onto stored emails.

        Placeholder rows keep their fixed flags.

        Args:
            account_id: Owning account.
            folder: Canonical folder.
            uid_flags: UID -> (is_read, is_flagged).
        """
        if not uid_flags:
            return

        updates = [
            (int(is_read), int(is_flagged), account_id, folder, uid, PLACEHOLDER_CATEGORY)
            for uid, (is_read, is_flagged) in uid_flags.items()
        ]
        async with self.db.transaction() as conn:
            await conn.executemany(
                """UPDATE emails SET is_read = ?, is_flagged = ?
                   WHERE account_id = ? AND folder = ? AND uid = ?
                     AND (smart_category IS NULL OR smart_category != ?)""",
                updates
            )


def _flag_assignments(
    is_read: bool | None,
    is_flagged: bool | None,
) -> tuple[list[str], list]:
    """SET clauses and parameters for the flags that were given."""
    assignments = []
    params: list = []
    if is_read is not None:
        assignments.append("is_read = ?")
        params.append(int(is_read))
    if is_flagged is not None:
        assignments.append("is_flagged = ?")
        params.append(int(is_flagged))
    return assignments, params
