# =============================================================================
# IMAP Module
# =============================================================================
# Everything that talks to, or reasons about, the IMAP server:
#   - Provider presets and session setup (providers, connection)
#   - The aioimaplib session wrapper and message parser (client, parser)
#   - Folder mapping between remote mailboxes and local folders (folders)
#   - Incremental sync: listing, download, reconciliation, quota
#     (fetch, reconcile, quota, sync)
#   - Single-message delete/flag actions (actions)
# =============================================================================

from smartmail.imap.actions import delete_email, set_email_flag
from smartmail.imap.client import (
    FetchedMessage,
    IMAPAuthenticationError,
    IMAPConnectionError,
    IMAPError,
    IMAPSession,
    MailboxLock,
    MailboxStatus,
    SessionConfig,
)
from smartmail.imap.connection import (
    ActionResult,
    build_session_config,
    open_session,
    test_connection,
)
from smartmail.imap.folders import (
    FolderRule,
    build_folder_map,
    canonical_name,
    migrate_folders,
    resolve_remote_path,
)
from smartmail.imap.parser import MessageParseError, ParsedMessage, parse_message
from smartmail.imap.providers import PROVIDERS, ProviderPreset, get_provider
from smartmail.imap.sync import (
    SyncManager,
    SyncProgress,
    SyncResult,
    SyncStatus,
    sync_all_accounts,
)

__all__ = [
    # Session
    "IMAPSession",
    "SessionConfig",
    "MailboxLock",
    "MailboxStatus",
    "FetchedMessage",
    "IMAPError",
    "IMAPConnectionError",
    "IMAPAuthenticationError",
    # Connection
    "ActionResult",
    "build_session_config",
    "open_session",
    "test_connection",
    # Providers
    "PROVIDERS",
    "ProviderPreset",
    "get_provider",
    # Parsing
    "parse_message",
    "ParsedMessage",
    "MessageParseError",
    # Folders
    "FolderRule",
    "build_folder_map",
    "canonical_name",
    "migrate_folders",
    "resolve_remote_path",
    # Sync
    "SyncManager",
    "SyncStatus",
    "SyncProgress",
    "SyncResult",
    "sync_all_accounts",
    # Actions
    "delete_email",
    "set_email_flag",
]
