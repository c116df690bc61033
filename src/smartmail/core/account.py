# =============================================================================
# Account Model
# =============================================================================
# Represents a mail account that SmartMail mirrors locally: identity, IMAP
# connection details, the incremental sync watermark and the last known
# storage quota.
#
# Passwords are normally NOT stored here. They are retrieved from the system
# keyring at connect time using the 'keyring' library. An explicit password
# may be set in memory (e.g. right after the user typed it in).
# =============================================================================

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Quota:
    """
    Storage quota snapshot in kilobytes.

    Attributes:
        used_kb: Storage currently used on the server.
        total_kb: Storage limit on the server.
    """
    used_kb: int
    total_kb: int

    @property
    def percent_used(self) -> float:
        """Returns usage as a percentage (0.0 - 100.0)."""
        if self.total_kb <= 0:
            return 0.0
        return (self.used_kb / self.total_kb) * 100.0


@dataclass
class Account:
    """
    Represents a mail account with its IMAP configuration and sync state.

    Attributes:
        id: Stable identifier for this account. Used in local email IDs,
            so it must never change once messages have been stored.
        email: The email address of this account.
        name: Human readable label shown in account lists.
        provider: Optional provider key (see imap.providers), e.g. "gmx".

        imap_host: Hostname of the IMAP server.
        imap_port: Port for the IMAP connection (993 for SSL).
        imap_security: "ssl" or "starttls".
        username: Login name, if different from the email address.
        password: In-memory password. If empty the keyring is consulted.

        last_sync_uid: Highest INBOX UID seen at the end of the last sync.
        last_sync_time: When the last sync finished.
        storage_used: Last known used storage in KB (0 = unknown).
        storage_total: Last known storage limit in KB (0 = unknown).

    Example:
        >>> account = Account(
        ...     id="work",
        ...     email="me@example.com",
        ...     imap_host="imap.example.com",
        ... )
        >>> account.auth_user
        'me@example.com'
    """

    # Account identification
    id: str
    email: str
    name: str = ""
    provider: str = ""
    color: str = ""

    # IMAP configuration
    imap_host: str = ""
    imap_port: int = 993
    imap_security: str = "ssl"          # "ssl" or "starttls"
    username: str = ""
    password: str = ""

    # Sync state
    last_sync_uid: int = 0
    last_sync_time: datetime | None = None
    storage_used: int = 0
    storage_total: int = 0

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.email

    @property
    def auth_user(self) -> str:
        """The login identity: explicit username, else the email address."""
        return self.username or self.email

    @property
    def keyring_service(self) -> str:
        """
        Returns the service name used for keyring password storage.

        Passwords can be managed with the keyring CLI:
            keyring set smartmail:work me@example.com
        """
        return f"smartmail:{self.id}"

    @property
    def quota(self) -> Quota | None:
        """The last recorded quota, or None if the server never reported one."""
        if self.storage_total <= 0:
            return None
        return Quota(used_kb=self.storage_used, total_kb=self.storage_total)

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"

    def __repr__(self) -> str:
        return (
            f"Account(id={self.id!r}, email={self.email!r}, "
            f"imap={self.imap_host}:{self.imap_port})"
        )
