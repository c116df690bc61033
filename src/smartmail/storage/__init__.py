# =============================================================================
# Storage Module
# =============================================================================
# Handles persistent storage using SQLite.
#
# Provides:
#   - Database initialization and schema creation
#   - Account and email CRUD operations
#   - UID bookkeeping for incremental sync
#   - Async operations via aiosqlite
#
# All email data is stored locally for offline access. The database
# is stored in the XDG data directory (~/.local/share/smartmail/).
# =============================================================================

from smartmail.storage.database import Database
from smartmail.storage.repository import Repository

__all__ = ["Database", "Repository"]
