# =============================================================================
# Message Actions
# =============================================================================
# Single-message mutations pushed to the server: delete, set/clear a flag.
#
# Every action:
#   1. Rejects a missing UID before any network I/O ("No UID")
#   2. Opens a session and resolves the local folder to a remote mailbox
#      (see folders.resolve_remote_path)
#   3. Applies the UID-scoped operation under the mailbox lock
#   4. Logs out, and reports failures as ActionResult instead of raising
# =============================================================================

import logging
from typing import Any

from smartmail.core import INBOX_FOLDER, REMOTE_INBOX, Account
from smartmail.imap.client import IMAPSession
from smartmail.imap.connection import ActionResult, SessionFactory, open_session
from smartmail.imap.folders import resolve_remote_path

logger = logging.getLogger(__name__)

NO_UID_ERROR = "No UID"


def _coerce_uid(uid: Any) -> Any:
    """Convert numeric strings to int; leave anything else unchanged."""
    if isinstance(uid, str):
        try:
            return int(uid)
        except ValueError:
            return uid
    return uid


async def _resolve_mailbox(session: Any, folder: str | None) -> str:
    if not folder or folder == INBOX_FOLDER:
        return REMOTE_INBOX
    return resolve_remote_path(folder, await session.list())


async def delete_email(
    account: Account,
    uid: Any,
    folder: str | None = None,
    *,
    session_factory: SessionFactory = IMAPSession,
) -> ActionResult:
    """
    Delete a message on the server.

    Args:
        account: Owning account.
        uid: Remote UID of the message.
        folder: Canonical local folder of the message (None = inbox).
        session_factory: Builds the session (IMAPSession by default).

    Returns:
        ActionResult; failures are reported, never raised.
    """
    if not uid:
        return ActionResult.failed(NO_UID_ERROR)

    target = _coerce_uid(uid)
    try:
        async with open_session(account, session_factory) as session:
            mailbox = await _resolve_mailbox(session, folder)
            lock = await session.get_mailbox_lock(mailbox)
            try:
                await session.message_delete(target, uid=True)
            finally:
                lock.release()
    except Exception as e:
        logger.error(f"Failed to delete UID {uid} of {account.email}: {e}")
        return ActionResult.failed(str(e))

    logger.info(f"Deleted UID {uid} from {mailbox} ({account.email})")
    return ActionResult.ok()


async def set_email_flag(
    account: Account,
    uid: Any,
    flag: str,
    value: bool,
    folder: str | None = None,
    *,
    session_factory: SessionFactory = IMAPSession,
) -> ActionResult:
    """
    Set or clear a flag on a message on the server.

    Args:
        account: Owning account.
        uid: Remote UID of the message.
        flag: IMAP flag token, e.g. "\\Seen" or "\\Flagged".
        value: True to add the flag, False to remove it.
        folder: Canonical local folder of the message (None = inbox).
        session_factory: Builds the session (IMAPSession by default).

    Returns:
        ActionResult; failures are reported, never raised.
    """
    if not uid:
        return ActionResult.failed(NO_UID_ERROR)

    target = _coerce_uid(uid)
    try:
        async with open_session(account, session_factory) as session:
            mailbox = await _resolve_mailbox(session, folder)
            lock = await session.get_mailbox_lock(mailbox)
            try:
                if value:
                    await session.message_flags_add(target, [flag], uid=True)
                else:
                    await session.message_flags_remove(target, [flag], uid=True)
            finally:
                lock.release()
    except Exception as e:
        logger.error(f"Failed to set {flag}={value} on UID {uid} of {account.email}: {e}")
        return ActionResult.failed(str(e))

    logger.debug(f"Set {flag}={value} on UID {uid} in {mailbox} ({account.email})")
    return ActionResult.ok()
