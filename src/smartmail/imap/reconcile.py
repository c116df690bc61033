# =============================================================================
# Orphan Reconciliation
# =============================================================================
# Removes local emails whose UID no longer exists in the remote mailbox
# (deleted or moved away by another client).
#
# The remote UID set must be a complete listing of the mailbox. Feeding a
# partial listing would delete emails that still exist on the server; the
# sync manager checks completeness before calling in here.
# =============================================================================

import logging
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from smartmail.storage.repository import Repository

logger = logging.getLogger(__name__)


def find_orphans(local_uids: Iterable[int], remote_uids: Iterable[int]) -> list[int]:
    """Return the local UIDs missing from the remote set, sorted."""
    return sorted(set(local_uids) - set(remote_uids))


async def reconcile_orphans(
    repository: "Repository",
    account_id: str,
    folder: str,
    local_uids: Iterable[int],
    remote_uids: Iterable[int],
) -> int:
    """
    Delete local emails of a folder that the server no longer has.

    Args:
        repository: Storage repository.
        account_id: Owning account.
        folder: Canonical local folder.
        local_uids: All UIDs stored locally for the folder.
        remote_uids: All UIDs present in the remote mailbox (complete).

    Returns:
        Number of emails deleted.
    """
    orphans = find_orphans(local_uids, remote_uids)
    if not orphans:
        return 0

    logger.info(f"Removing {len(orphans)} orphaned emails from {folder}")
    logger.debug(f"Orphaned UIDs in {folder}: {orphans}")
    return await repository.delete_emails_by_uid(account_id, orphans, folder)
