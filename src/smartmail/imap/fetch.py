# =============================================================================
# UID Listing and Message Download
# =============================================================================
# Two steps of a folder sync:
#
#   fetch_uid_batch()         Cheap listing of UID + FLAGS for a sequence
#                             range. Never requests message sources.
#   download_message_batch()  Downloads, parses and stores a list of UIDs.
#
# A message that can't be downloaded or parsed is stored as a placeholder
# ("System Error" row) instead of being dropped, so it stays visible and is
# not considered new again on the next run.
# =============================================================================

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable

from smartmail.core import FLAGGED, SEEN, Account, Email, make_email_id
from smartmail.imap.parser import parse_message

if TYPE_CHECKING:
    from smartmail.storage.repository import Repository

logger = logging.getLogger(__name__)

# Fixed values of placeholder rows
PLACEHOLDER_SENDER = "System Error"
PLACEHOLDER_SENDER_EMAIL = "error@local"
PLACEHOLDER_CATEGORY = "System Error"


@dataclass(frozen=True)
class UidHeader:
    """UID and flags of one message, without its content."""
    uid: int
    flags: frozenset[str] = frozenset()

    @property
    def is_read(self) -> bool:
        return SEEN in self.flags

    @property
    def is_flagged(self) -> bool:
        return FLAGGED in self.flags


@dataclass
class UidBatch:
    """Result of listing one sequence range."""
    uids: list[int] = field(default_factory=list)
    headers: list[UidHeader] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.headers)


async def fetch_uid_batch(session: Any, seq_range: str) -> UidBatch:
    """
    List UIDs and flags for a sequence range of the selected mailbox.

    Args:
        session: Connected session with a mailbox selected.
        seq_range: Sequence set such as "1:5000".

    Returns:
        The UIDs and headers, in server order. Empty for an empty range.

    Raises:
        IMAPError: If the FETCH fails. Callers treat the listing as partial.
    """
    batch = UidBatch()
    if not seq_range:
        return batch

    async for message in session.fetch(seq_range, source=False, uid=False):
        if message.uid is None:
            logger.warning(f"Server returned no UID for sequence number {message.seq}")
            continue
        batch.uids.append(message.uid)
        batch.headers.append(UidHeader(uid=message.uid, flags=frozenset(message.flags)))

    logger.debug(f"Listed {len(batch)} UIDs for range {seq_range}")
    return batch


def build_placeholder(uid: int, account_id: str, folder: str, reason: str = "") -> Email:
    """
    Build the row stored for a message whose content couldn't be retrieved.

    Args:
        uid: Remote UID.
        account_id: Owning account.
        folder: Canonical local folder.
        reason: Short description of what went wrong.
    """
    body = f"The message with UID {uid} could not be loaded from the server."
    if reason:
        body += f"\n\nReason: {reason}"

    return Email(
        id=make_email_id(uid, account_id, folder),
        account_id=account_id,
        uid=uid,
        folder=folder,
        sender=PLACEHOLDER_SENDER,
        sender_email=PLACEHOLDER_SENDER_EMAIL,
        subject=f"Empty Body UID {uid}",
        body=body,
        is_read=True,
        is_flagged=False,
        smart_category=PLACEHOLDER_CATEGORY,
    )


def _email_from_source(
    uid: int,
    source: bytes,
    flags: frozenset[str],
    account_id: str,
    folder: str,
) -> Email:
    parsed = parse_message(source)
    return Email(
        id=make_email_id(uid, account_id, folder),
        account_id=account_id,
        uid=uid,
        folder=folder,
        sender=parsed.from_text,
        sender_email=parsed.from_address,
        subject=parsed.subject,
        body=parsed.text,
        body_html=parsed.html,
        date=parsed.date,
        is_read=SEEN in flags,
        is_flagged=FLAGGED in flags,
        attachments=parsed.attachments,
    )


async def download_message_batch(
    session: Any,
    uids: Iterable[int],
    account: Account,
    folder: str,
    repository: "Repository",
) -> int:
    """
    Download, parse and store messages by UID.

    Every requested UID ends up stored: parsed messages normally, missing or
    broken ones as placeholders. A failure of the whole FETCH stores nothing
    and returns 0; the UIDs are picked up again by the next sync.

    Args:
        session: Connected session with the source mailbox selected.
        uids: UIDs to download.
        account: Owning account.
        folder: Canonical local folder to store into.
        repository: Storage repository.

    Returns:
        Number of messages parsed and saved (placeholders not counted).
    """
    wanted = list(dict.fromkeys(uids))
    if not wanted:
        return 0

    received = {}
    try:
        async for message in session.fetch(wanted, source=True, uid=True):
            if message.uid is not None:
                received[message.uid] = message
    except Exception as e:
        logger.error(
            f"Fetching {len(wanted)} messages from {folder} failed: {e}",
            exc_info=True,
        )
        return 0

    saved = 0
    for uid in wanted:
        message = received.get(uid)
        email = None
        reason = ""

        if message is None:
            reason = "not returned by the server"
        elif not message.source:
            reason = "empty message source"
        else:
            try:
                email = _email_from_source(
                    uid, message.source, message.flags, account.id, folder
                )
            except Exception as e:
                reason = f"parse error: {e}"
                logger.error(f"Failed to parse UID {uid} in {folder}: {e}")

        if email is None:
            logger.warning(f"Storing placeholder for UID {uid} in {folder} ({reason})")
            email = build_placeholder(uid, account.id, folder, reason)

        try:
            await repository.save_email(email)
        except Exception as e:
            logger.error(f"Failed to save UID {uid} in {folder}: {e}", exc_info=True)
            continue

        if email.smart_category != PLACEHOLDER_CATEGORY:
            saved += 1

    logger.debug(f"Saved {saved}/{len(wanted)} messages into {folder}")
    return saved
