# =============================================================================
# Folder Mapping
# =============================================================================
# Translates between remote mailbox paths and canonical local folders.
#
# Providers disagree on almost everything here: GMX uses "/" as hierarchy
# delimiter, Dovecot setups often use ".", Gmail hides its special folders
# under "[Gmail]/...", and the display names depend on the account language.
# Locally we only ever use:
#
#   Posteingang                   <- INBOX
#   Posteingang/<Sub>/<Deeper>    <- INBOX.<Sub>.<Deeper> or INBOX/<Sub>/<Deeper>
#   Gesendet / Papierkorb / Spam  <- \Sent / \Trash / \Junk
#
# Each rule is a small matcher tagged with a FolderRule. Rules are evaluated
# in a fixed order and the first match wins:
#
#   build_folder_map()     SPECIAL_USE, INBOX_CHILD
#   resolve_remote_path()  SPECIAL_USE, NAME_ALIAS, INBOX_CHILD, then INBOX
# =============================================================================

import logging
import re
from enum import Enum, auto
from typing import TYPE_CHECKING, Callable, Iterable

from smartmail.core import (
    INBOX_FOLDER,
    LOCAL_DELIMITER,
    REMOTE_INBOX,
    SENT_FOLDER,
    SPAM_FOLDER,
    TRASH_FOLDER,
    Mailbox,
)

if TYPE_CHECKING:
    from smartmail.storage.repository import Repository

logger = logging.getLogger(__name__)

FolderMap = dict[str, str]


class FolderRule(Enum):
    """Kinds of folder matchers, listed in priority order."""
    SPECIAL_USE = auto()    # \Sent, \Trash, \Junk attribute
    NAME_ALIAS = auto()     # Well-known mailbox names ("Sent", "Papierkorb", ...)
    INBOX_CHILD = auto()    # Mailboxes below INBOX


# Substring of the special-use attribute -> canonical folder
SPECIAL_USE_FOLDERS = (
    ("sent", SENT_FOLDER),
    ("trash", TRASH_FOLDER),
    ("junk", SPAM_FOLDER),
)

# Lower-cased mailbox names -> canonical folder
NAME_ALIASES = {
    "sent": SENT_FOLDER,
    "gesendet": SENT_FOLDER,
    "trash": TRASH_FOLDER,
    "papierkorb": TRASH_FOLDER,
    "junk": SPAM_FOLDER,
    "spam": SPAM_FOLDER,
}


def _match_special_use(mailbox: Mailbox) -> str | None:
    if not mailbox.special_use:
        return None
    attribute = mailbox.special_use.lower()
    for needle, folder in SPECIAL_USE_FOLDERS:
        if needle in attribute:
            return folder
    return None


def _match_name_alias(mailbox: Mailbox) -> str | None:
    return NAME_ALIASES.get(mailbox.name.strip().lower())


def _match_inbox_child(mailbox: Mailbox) -> str | None:
    path = mailbox.path
    if not path.upper().startswith(REMOTE_INBOX) or path.upper() == REMOTE_INBOX:
        return None

    segments = path.split(mailbox.separator)
    if segments[0].upper() == REMOTE_INBOX:
        segments[0] = INBOX_FOLDER
    return LOCAL_DELIMITER.join(segments)


_MATCHERS: dict[FolderRule, Callable[[Mailbox], str | None]] = {
    FolderRule.SPECIAL_USE: _match_special_use,
    FolderRule.NAME_ALIAS: _match_name_alias,
    FolderRule.INBOX_CHILD: _match_inbox_child,
}

MAP_RULES = (FolderRule.SPECIAL_USE, FolderRule.INBOX_CHILD)
RESOLVE_RULES = (FolderRule.SPECIAL_USE, FolderRule.NAME_ALIAS, FolderRule.INBOX_CHILD)


def canonical_name(
    mailbox: Mailbox,
    rules: Iterable[FolderRule] = MAP_RULES,
) -> tuple[FolderRule, str] | None:
    """
    Find the canonical local folder for a single mailbox.

    Args:
        mailbox: Remote mailbox descriptor.
        rules: Matchers to try, in order.

    Returns:
        (rule that matched, canonical folder) or None.
    """
    for rule in rules:
        folder = _MATCHERS[rule](mailbox)
        if folder:
            return rule, folder
    return None


def build_folder_map(mailboxes: Iterable[Mailbox]) -> FolderMap:
    """
    Map remote mailbox paths to canonical local folders.

    The result always contains INBOX -> Posteingang. Mailboxes that no rule
    claims are left out.

    Example:
        >>> build_folder_map([
        ...     Mailbox("INBOX", "INBOX", "."),
        ...     Mailbox("Amazon", "INBOX.Amazon", "."),
        ... ])
        {'INBOX': 'Posteingang', 'INBOX.Amazon': 'Posteingang/Amazon'}
    """
    folder_map: FolderMap = {REMOTE_INBOX: INBOX_FOLDER}

    for mailbox in mailboxes:
        match = canonical_name(mailbox)
        if match is None:
            logger.debug(f"No local folder for mailbox {mailbox.path!r}")
            continue
        rule, folder = match
        logger.debug(f"Mapped {mailbox.path!r} -> {folder!r} ({rule.name})")
        folder_map[mailbox.path] = folder

    return folder_map


def resolve_remote_path(folder: str | None, mailboxes: Iterable[Mailbox]) -> str:
    """
    Find the remote mailbox behind a canonical local folder.

    Rules are tried in priority order across all mailboxes. When nothing
    matches the account's INBOX is used.

    Args:
        folder: Canonical local folder (None means the inbox).
        mailboxes: The account's remote mailboxes.

    Returns:
        Remote mailbox path.
    """
    if not folder or folder == INBOX_FOLDER:
        return REMOTE_INBOX

    mailboxes = list(mailboxes)
    for rule in RESOLVE_RULES:
        matcher = _MATCHERS[rule]
        for mailbox in mailboxes:
            if matcher(mailbox) == folder:
                logger.debug(f"Resolved {folder!r} -> {mailbox.path!r} ({rule.name})")
                return mailbox.path

    logger.debug(f"No mailbox for {folder!r}, falling back to {REMOTE_INBOX}")
    return REMOTE_INBOX


# =============================================================================
# Migration
# =============================================================================

def _legacy_labels(path: str, delimiter: str | None) -> set[str]:
    """Labels an older sync may have stored for a remote path."""
    labels = {path}
    if delimiter:
        labels.add(path.split(delimiter)[-1])
        labels.add(path.replace(delimiter, LOCAL_DELIMITER))
    else:
        labels.add(re.split(r"[./]", path)[-1])
    return {label for label in labels if label}


async def migrate_folders(
    repository: "Repository",
    folder_map: FolderMap,
    account_id: str | None = None,
    mailboxes: Iterable[Mailbox] = (),
) -> int:
    """
    Relabel stored emails whose folder label no longer matches the map.

    Earlier syncs may have stored a mailbox under its leaf name ("Amazon")
    or raw path ("INBOX.Amazon"). Those labels are moved to the canonical
    folder the map now gives ("Posteingang/Amazon"). Labels that are
    themselves canonical folders in the map are never touched.

    Args:
        repository: Storage repository.
        folder_map: Current remote path -> canonical folder map.
        account_id: Restrict relabeling to one account.
        mailboxes: The listing the map was built from, for delimiters.

    Returns:
        Number of emails relabeled.
    """
    delimiters = {m.path: m.delimiter for m in mailboxes}
    canonical = set(folder_map.values())
    migrated = 0

    for path, folder in folder_map.items():
        if path.upper() == REMOTE_INBOX:
            continue

        for label in sorted(_legacy_labels(path, delimiters.get(path))):
            if label in canonical or label.upper() == REMOTE_INBOX:
                continue
            count = await repository.migrate_folder(label, folder, account_id)
            if count:
                logger.info(f"Migrated {count} emails from {label!r} to {folder!r}")
                migrated += count

    return migrated
