# =============================================================================
# Folder Model
# =============================================================================
# Local folders are canonical display paths that do not depend on the
# server's naming or hierarchy delimiter. The four system folders carry
# fixed (German) names; user folders below the inbox become
# "Posteingang/<Sub>/<Deeper>".
#
# Remote mailboxes are described by the Mailbox dataclass, which mirrors
# one line of an IMAP LIST response.
# =============================================================================

from dataclasses import dataclass

# Canonical local folder names
INBOX_FOLDER = "Posteingang"
SENT_FOLDER = "Gesendet"
TRASH_FOLDER = "Papierkorb"
SPAM_FOLDER = "Spam"
SYSTEM_FOLDERS = (INBOX_FOLDER, SENT_FOLDER, SPAM_FOLDER, TRASH_FOLDER)

# Name of the inbox on every IMAP server (RFC 3501 reserves it)
REMOTE_INBOX = "INBOX"

# Separator used in canonical local folder paths
LOCAL_DELIMITER = "/"


@dataclass(frozen=True)
class Mailbox:
    """
    A remote mailbox as advertised by the server's LIST response.

    Attributes:
        name: Leaf name of the mailbox (e.g. "Amazon").
        path: Full remote path (e.g. "INBOX.Amazon").
        delimiter: Hierarchy delimiter reported by the server, if any.
        special_use: RFC 6154 attribute such as "\\Sent", or None.
    """
    name: str
    path: str
    delimiter: str | None = "/"
    special_use: str | None = None

    @property
    def separator(self) -> str:
        """The hierarchy delimiter, defaulting to "/" when the server sent none."""
        return self.delimiter or LOCAL_DELIMITER

    @property
    def is_inbox(self) -> bool:
        return self.path.upper() == REMOTE_INBOX
