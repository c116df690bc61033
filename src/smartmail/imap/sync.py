# =============================================================================
# IMAP Sync Manager
# =============================================================================
# Mirrors remote mailboxes into the local SQLite store.
#
# Per account run:
#   1. Connect (a failure here ends the run, nothing is touched)
#   2. List mailboxes, build the folder map, migrate old folder labels
#   3. For every mapped folder, under its mailbox lock:
#        FETCHING     list UID + FLAGS in sequence ranges (no bodies)
#        DOWNLOADING  download UIDs we don't have yet, in small batches
#        RECONCILING  delete local emails the server no longer has
#   4. Optionally record the storage quota
#   5. Record the INBOX watermark and sync time, log out
#
# Key concepts:
#   - Watermark: highest UID stored for a folder. Everything above it is
#     new. UIDs below it that are missing locally (left over from a failed
#     batch) are backfilled in the same pass.
#   - Reconciliation needs a complete remote listing. If any range failed,
#     or the listing is shorter than the mailbox's EXISTS count, deletions
#     are skipped for that folder.
#   - Each folder commits as it goes. A failing folder is recorded in the
#     result and the run continues with the next one.
#
# Accounts are independent; sync_all_accounts() runs them concurrently,
# each with its own session.
# =============================================================================

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Callable, Iterable

from smartmail.core import INBOX_FOLDER, Account, Quota
from smartmail.imap.client import IMAPSession
from smartmail.imap.connection import SessionFactory, connect_account
from smartmail.imap.fetch import UidHeader, download_message_batch, fetch_uid_batch
from smartmail.imap.folders import build_folder_map, migrate_folders
from smartmail.imap.quota import check_account_quota
from smartmail.imap.reconcile import reconcile_orphans

if TYPE_CHECKING:
    from smartmail.config import SyncConfig
    from smartmail.storage.repository import Repository


logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Phase of an account sync run."""
    IDLE = auto()               # Not syncing
    CONNECTING = auto()         # Opening the session
    FAILED = auto()             # Run aborted (terminal)
    CONNECTED = auto()          # Logged in
    MAPPING_FOLDERS = auto()    # Listing mailboxes, building the folder map
    FETCHING = auto()           # Listing UIDs of a folder
    DOWNLOADING = auto()        # Downloading new messages of a folder
    RECONCILING = auto()        # Removing orphans of a folder
    QUOTA_CHECK = auto()        # Reading the storage quota
    DONE = auto()               # Run finished (terminal)


@dataclass
class SyncProgress:
    """
    Progress information for a sync run.

    Attributes:
        status: Current phase.
        account: Account being synced.
        folder: Local folder currently being synced (if any).
        total_folders: Folders to sync in this run.
        synced_folders: Folders finished so far.
        total_messages: Messages in the current phase of the current folder.
        synced_messages: Messages handled so far in that phase.
        new_messages: New messages saved so far in this run.
        deleted_messages: Orphans removed so far in this run.
        error: Error message if status is FAILED.
    """
    status: SyncStatus = SyncStatus.IDLE
    account: str | None = None
    folder: str | None = None
    total_folders: int = 0
    synced_folders: int = 0
    total_messages: int = 0
    synced_messages: int = 0
    new_messages: int = 0
    deleted_messages: int = 0
    error: str | None = None

    @property
    def percent_complete(self) -> float:
        """Returns completion percentage (0.0 - 100.0) for current folder."""
        if self.total_messages == 0:
            return 0.0
        return (self.synced_messages / self.total_messages) * 100.0

    @property
    def overall_percent(self) -> float:
        """Returns overall completion percentage across all folders."""
        if self.total_folders == 0:
            return 0.0
        return (self.synced_folders / self.total_folders) * 100.0


# Type alias for progress callbacks
ProgressCallback = Callable[[SyncProgress], None]


@dataclass
class FolderSyncResult:
    """Outcome of syncing one folder."""
    remote_folder: str
    local_folder: str
    new_messages: int = 0
    deleted_messages: int = 0
    listing_complete: bool = True


@dataclass
class SyncResult:
    """
    Result of an account sync run.

    Attributes:
        success: False if the account could not be synced at all.
        account_id: Account that was synced.
        count: New messages saved (placeholders not counted).
        deleted: Orphaned messages removed locally.
        error: Why the run failed (when success is False).
        errors: Per-folder errors of an otherwise successful run.
        quota: Quota recorded during the run, if any.
        duration_seconds: Time taken for the run.
    """
    success: bool = True
    account_id: str = ""
    count: int = 0
    deleted: int = 0
    error: str | None = None
    errors: list[str] = field(default_factory=list)
    quota: Quota | None = None
    duration_seconds: float = 0.0


class SyncManager:
    """
    Synchronizes accounts into local storage.

    Collaborators are passed in: the repository, and a factory that builds a
    session from a SessionConfig (IMAPSession by default).

    Usage:
        >>> manager = SyncManager(repo, progress_callback=update_ui)
        >>> result = await manager.sync_account(account)
        >>> print(result.count, "new")

    Attributes:
        repo: Storage repository.
        session_factory: Builds protocol sessions.
        sync_config: Batch sizes and quota switch.
    """

    def __init__(
        self,
        repo: "Repository",
        *,
        session_factory: SessionFactory = IMAPSession,
        sync_config: "SyncConfig | None" = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        if sync_config is None:
            from smartmail.config import SyncConfig
            sync_config = SyncConfig()

        self.repo = repo
        self.session_factory = session_factory
        self.sync_config = sync_config
        self.progress_callback = progress_callback
        self._progress = SyncProgress()

    def _report_progress(self, **updates: Any) -> None:
        """Update progress and notify the callback."""
        for key, value in updates.items():
            if hasattr(self._progress, key):
                setattr(self._progress, key, value)

        if self.progress_callback:
            self.progress_callback(self._progress)

    # =========================================================================
    # Account Sync
    # =========================================================================

    async def sync_account(self, account: Account) -> SyncResult:
        """
        Sync all mapped folders of an account.

        Never raises for connection, listing or folder errors; they are
        reported in the result.

        Args:
            account: Account to sync.

        Returns:
            SyncResult with success flag and counts.
        """
        start_time = datetime.now()
        result = SyncResult(account_id=account.id)
        self._progress = SyncProgress(account=account.id)

        self._report_progress(status=SyncStatus.CONNECTING)
        try:
            session = await connect_account(account, self.session_factory)
        except Exception as e:
            error_msg = f"Connection failed: {e}"
            logger.error(f"Sync of {account.email} aborted: {error_msg}")
            result.success = False
            result.error = error_msg
            self._report_progress(status=SyncStatus.FAILED, error=error_msg)
            result.duration_seconds = (datetime.now() - start_time).total_seconds()
            return result

        self._report_progress(status=SyncStatus.CONNECTED)
        logger.info(f"Starting sync for account: {account.email}")

        try:
            await self.repo.add_account(account)

            self._report_progress(status=SyncStatus.MAPPING_FOLDERS)
            mailboxes = await session.list()
            folder_map = build_folder_map(mailboxes)
            await migrate_folders(self.repo, folder_map, account.id, mailboxes)

            folders = self._unique_folders(folder_map.items())
            self._report_progress(total_folders=len(folders))

            for i, (remote_folder, local_folder) in enumerate(folders):
                self._report_progress(folder=local_folder, synced_folders=i)
                try:
                    folder_result = await self._sync_folder(
                        session, account, remote_folder, local_folder
                    )
                    result.count += folder_result.new_messages
                    result.deleted += folder_result.deleted_messages
                except Exception as e:
                    error_msg = f"Error syncing {remote_folder}: {e}"
                    logger.error(error_msg, exc_info=True)
                    result.errors.append(error_msg)

            self._report_progress(folder=None, synced_folders=len(folders))

            if self.sync_config.check_quota:
                self._report_progress(status=SyncStatus.QUOTA_CHECK)
                quota = await check_account_quota(session, account.id)
                if quota is not None:
                    await self.repo.update_account_quota(
                        account.id, quota.used_kb, quota.total_kb
                    )
                    account.storage_used = quota.used_kb
                    account.storage_total = quota.total_kb
                    result.quota = quota

            last_uid = await self.repo.get_max_uid_for_folder(account.id, INBOX_FOLDER)
            now = datetime.now(timezone.utc)
            await self.repo.update_account_sync(account.id, last_uid, now)
            account.last_sync_uid = last_uid
            account.last_sync_time = now

            self._report_progress(status=SyncStatus.DONE)
            logger.info(
                f"Sync of {account.email} complete: {result.count} new, "
                f"{result.deleted} deleted, {len(result.errors)} folder errors"
            )

        except Exception as e:
            error_msg = f"Sync failed: {e}"
            logger.error(error_msg, exc_info=True)
            result.success = False
            result.error = error_msg
            self._report_progress(status=SyncStatus.FAILED, error=error_msg)

        finally:
            await session.logout()

        result.duration_seconds = (datetime.now() - start_time).total_seconds()
        return result

    def _unique_folders(self, items: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
        """
        Drop map entries whose local folder is already claimed.

        Two mailboxes feeding one local folder would reconcile each other's
        messages away.
        """
        seen: dict[str, str] = {}
        folders = []
        for remote_folder, local_folder in items:
            if local_folder in seen:
                logger.warning(
                    f"Skipping {remote_folder!r}: {local_folder!r} is already "
                    f"synced from {seen[local_folder]!r}"
                )
                continue
            seen[local_folder] = remote_folder
            folders.append((remote_folder, local_folder))
        return folders

    # =========================================================================
    # Folder Sync
    # =========================================================================

    async def sync_folder_messages(
        self,
        session: Any,
        account: Account,
        remote_folder: str,
        local_folder: str,
    ) -> int:
        """
        Sync one remote mailbox into a local folder.

        Args:
            session: Connected session.
            account: Owning account.
            remote_folder: Remote mailbox path.
            local_folder: Canonical local folder.

        Returns:
            Number of new messages saved (placeholders not counted).

        Raises:
            IMAPError: If the mailbox can't be selected.
        """
        folder_result = await self._sync_folder(session, account, remote_folder, local_folder)
        return folder_result.new_messages

    async def _sync_folder(
        self,
        session: Any,
        account: Account,
        remote_folder: str,
        local_folder: str,
    ) -> FolderSyncResult:
        result = FolderSyncResult(remote_folder=remote_folder, local_folder=local_folder)
        logger.debug(f"Syncing folder: {remote_folder} -> {local_folder}")

        lock = await session.get_mailbox_lock(remote_folder)
        try:
            mailbox = session.mailbox
            exists = mailbox.exists if mailbox else 0

            watermark = await self.repo.get_max_uid_for_folder(account.id, local_folder)
            local_uids = await self.repo.get_all_uids_for_folder(account.id, local_folder)

            # Listing
            self._report_progress(
                status=SyncStatus.FETCHING,
                total_messages=exists,
                synced_messages=0,
            )
            headers, complete = await self._list_headers(session, exists)
            result.listing_complete = complete
            remote_uids = {header.uid for header in headers}

            await self._mirror_flags(account, local_folder, headers, local_uids)

            new_uids = sorted(
                uid for uid in remote_uids
                if uid > watermark or uid not in local_uids
            )
            backfill = sum(1 for uid in new_uids if uid <= watermark)
            if backfill:
                logger.info(f"Backfilling {backfill} missing messages in {local_folder}")

            # Download
            batch_size = self.sync_config.message_batch_size
            self._report_progress(
                status=SyncStatus.DOWNLOADING,
                total_messages=len(new_uids),
                synced_messages=0,
            )
            for start in range(0, len(new_uids), batch_size):
                chunk = new_uids[start:start + batch_size]
                saved = await download_message_batch(
                    session, chunk, account, local_folder, self.repo
                )
                result.new_messages += saved
                self._report_progress(
                    synced_messages=start + len(chunk),
                    new_messages=self._progress.new_messages + saved,
                )

            # Reconciliation
            self._report_progress(status=SyncStatus.RECONCILING)
            if complete:
                stored = await self.repo.get_all_uids_for_folder(account.id, local_folder)
                result.deleted_messages = await reconcile_orphans(
                    self.repo, account.id, local_folder, stored, remote_uids
                )
                self._report_progress(
                    deleted_messages=self._progress.deleted_messages + result.deleted_messages
                )
            else:
                logger.warning(
                    f"Skipping orphan reconciliation for {local_folder}: "
                    f"remote listing incomplete ({len(headers)} of {exists} messages)"
                )

        finally:
            lock.release()

        logger.info(
            f"Folder {local_folder}: {result.new_messages} new, "
            f"{result.deleted_messages} deleted"
        )
        return result

    async def _list_headers(self, session: Any, exists: int) -> tuple[list[UidHeader], bool]:
        """
        List UID + FLAGS of the selected mailbox in sequence ranges.

        Returns:
            (headers, complete). complete is False if any range failed or
            fewer headers than EXISTS came back.
        """
        headers: list[UidHeader] = []
        complete = True
        batch_size = self.sync_config.uid_batch_size

        for start in range(1, exists + 1, batch_size):
            end = min(start + batch_size - 1, exists)
            try:
                batch = await fetch_uid_batch(session, f"{start}:{end}")
            except Exception as e:
                logger.warning(f"Listing range {start}:{end} failed: {e}")
                complete = False
                continue
            headers.extend(batch.headers)
            self._report_progress(synced_messages=len(headers))

        if complete and len(headers) != exists:
            logger.warning(f"Listing returned {len(headers)} UIDs, mailbox has {exists}")
            complete = False

        return headers, complete

    async def _mirror_flags(
        self,
        account: Account,
        local_folder: str,
        headers: list[UidHeader],
        local_uids: set[int],
    ) -> None:
        """Copy server read/flagged state onto already stored emails."""
        uid_flags = {
            header.uid: (header.is_read, header.is_flagged)
            for header in headers
            if header.uid in local_uids
        }
        if uid_flags:
            await self.repo.update_flags_bulk(account.id, local_folder, uid_flags)


async def sync_all_accounts(
    accounts: Iterable[Account],
    repo: "Repository",
    *,
    session_factory: SessionFactory = IMAPSession,
    sync_config: "SyncConfig | None" = None,
    progress_callback: ProgressCallback | None = None,
) -> list[SyncResult]:
    """
    Sync several accounts concurrently, one session per account.

    Returns:
        One SyncResult per account, in input order.
    """
    runs = []
    for account in accounts:
        manager = SyncManager(
            repo,
            session_factory=session_factory,
            sync_config=sync_config,
            progress_callback=progress_callback,
        )
        runs.append(manager.sync_account(account))

    return list(await asyncio.gather(*runs))
