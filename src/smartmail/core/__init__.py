# =============================================================================
# SmartMail Core Module
# =============================================================================
# Core domain models. These are plain dataclasses with no external
# dependencies, so they can be imported anywhere without causing circular
# imports.
#
#   - Account / Quota: a mail account and its storage snapshot
#   - Mailbox: a remote mailbox from the LIST response
#   - Email / Attachment: a mirrored message
#   - Canonical local folder names
# =============================================================================

from smartmail.core.account import Account, Quota
from smartmail.core.folder import (
    INBOX_FOLDER,
    LOCAL_DELIMITER,
    REMOTE_INBOX,
    SENT_FOLDER,
    SPAM_FOLDER,
    SYSTEM_FOLDERS,
    TRASH_FOLDER,
    Mailbox,
)
from smartmail.core.message import (
    DELETED,
    FLAGGED,
    SEEN,
    Attachment,
    Email,
    make_email_id,
)

__all__ = [
    "Account",
    "Quota",
    "Mailbox",
    "Email",
    "Attachment",
    "make_email_id",
    "SEEN",
    "FLAGGED",
    "DELETED",
    "INBOX_FOLDER",
    "SENT_FOLDER",
    "TRASH_FOLDER",
    "SPAM_FOLDER",
    "SYSTEM_FOLDERS",
    "REMOTE_INBOX",
    "LOCAL_DELIMITER",
]
