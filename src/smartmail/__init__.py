# =============================================================================
# SmartMail: Multi-Account IMAP Mirror
# =============================================================================
#
# SmartMail keeps a local, queryable copy of several IMAP accounts and
# pushes read/flag/delete changes back to the servers.
#
# Features:
#   - Incremental UID-based sync with batched downloads
#   - One folder layout for every provider (Posteingang, Gesendet, ...)
#   - Server-side deletions are mirrored locally
#   - Storage quota reporting where the server supports it
#   - XDG Base Directory compliant
#
# =============================================================================

__version__ = "0.1.0"
__app_name__ = "smartmail"

# Main entry point - this is what gets called by the 'smartmail' command
from smartmail.app import main

__all__ = ["main", "__version__", "__app_name__"]
