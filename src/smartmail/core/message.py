# =============================================================================
# Email Model
# =============================================================================
# Represents a locally mirrored email message and its attachments.
#
# The local ID of an email is derived from its remote UID, the account and
# (for folders other than the inbox) the canonical folder. Syncing the same
# message twice therefore overwrites the stored row instead of adding a
# duplicate.
# =============================================================================

import re
from dataclasses import dataclass, field
from datetime import datetime

from smartmail.core.folder import INBOX_FOLDER

# IMAP system flags we mirror locally
SEEN = "\\Seen"
FLAGGED = "\\Flagged"
DELETED = "\\Deleted"

_WHITESPACE = re.compile(r"\s+")


def make_email_id(uid: int, account_id: str, folder: str = INBOX_FOLDER) -> str:
    """
    Build the deterministic local ID for a message.

    Examples:
        >>> make_email_id(42, "work")
        '42-work'
        >>> make_email_id(42, "work", "Posteingang/Online Shops")
        '42-Posteingang/Online_Shops-work'
    """
    if folder == INBOX_FOLDER:
        return f"{uid}-{account_id}"
    return f"{uid}-{_WHITESPACE.sub('_', folder)}-{account_id}"


@dataclass
class Attachment:
    """
    A file attached to an email.

    Attributes:
        filename: Original filename (or a generated one).
        content_type: MIME type, e.g. "application/pdf".
        size: Size of the payload in bytes.
        data: The payload. None when loaded for list views only.
        id: Database primary key (assigned on save).
        email_id: Owning email's local ID.
    """
    filename: str
    content_type: str = "application/octet-stream"
    size: int = 0
    data: bytes | None = None
    id: str | None = None
    email_id: str | None = None


@dataclass
class Email:
    """
    A mirrored email message.

    Attributes:
        id: Deterministic local ID (see make_email_id).
        account_id: Owning account.
        uid: Remote UID, scoped to the remote mailbox behind `folder`.
        folder: Canonical local folder path.
        sender: Display form of the sender ("Name <addr>").
        sender_email: Bare sender address.
        subject: Decoded subject line.
        body: Plain text body.
        body_html: HTML body, if the message had one.
        date: Sent date (UTC).
        is_read: Mirrors the \\Seen flag.
        is_flagged: Mirrors the \\Flagged flag.
        smart_category: Category label; "System Error" for placeholders.
        attachments: Attachment list (empty when loaded for list views).
        has_attachments: Whether the message carries attachments. Set from
            `attachments` when those are given.
    """
    id: str
    account_id: str
    uid: int
    folder: str = INBOX_FOLDER
    sender: str = "Unknown"
    sender_email: str = ""
    subject: str = "(No Subject)"
    body: str = ""
    body_html: str | None = None
    date: datetime | None = None
    is_read: bool = False
    is_flagged: bool = False
    smart_category: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    has_attachments: bool = False

    def __post_init__(self) -> None:
        if self.attachments:
            self.has_attachments = True

    def __repr__(self) -> str:
        return (
            f"Email(id={self.id!r}, uid={self.uid}, folder={self.folder!r}, "
            f"subject={self.subject[:30]!r})"
        )
