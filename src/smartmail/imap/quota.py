# =============================================================================
# Quota Check
# =============================================================================
# Best-effort storage quota lookup (RFC 2087).
#
# Many providers don't support QUOTA at all, so "no information" is a normal
# outcome and is reported as None. Nothing in here may fail a sync.
# =============================================================================

import logging
import math
from typing import Any

from smartmail.core import REMOTE_INBOX, Quota

logger = logging.getLogger(__name__)


def bytes_to_kb(value: int | float) -> int:
    """
    Convert bytes to KB, rounding half up.

    Examples:
        >>> bytes_to_kb(1536)
        2
        >>> bytes_to_kb(2560)
        3
    """
    return int(math.floor(value / 1024 + 0.5))


async def check_account_quota(session: Any, account_id: str) -> Quota | None:
    """
    Fetch the storage quota of an account.

    Args:
        session: Connected session.
        account_id: Account the quota belongs to (for logging).

    Returns:
        Quota in KB, or None when the server has no usable quota information
        or the lookup failed.
    """
    if "QUOTA" not in session.capabilities:
        logger.debug(f"Server of account {account_id} does not support QUOTA")
        return None

    try:
        result = await session.get_quota(REMOTE_INBOX)
    except Exception as e:
        logger.warning(f"Quota lookup failed for account {account_id}: {e}")
        return None

    storage = result.get("storage") if result else None
    if not storage or not storage.get("limit"):
        logger.debug(f"No storage quota reported for account {account_id}")
        return None

    quota = Quota(
        used_kb=bytes_to_kb(storage.get("used") or 0),
        total_kb=bytes_to_kb(storage["limit"]),
    )
    logger.debug(f"Quota for account {account_id}: {quota.used_kb}/{quota.total_kb} KB")
    return quota
