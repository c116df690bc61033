# =============================================================================
# IMAP Session
# =============================================================================
# Async IMAP session wrapper around aioimaplib.
#
# This is the only module that speaks to the server. Everything above it
# (sync, folder mapping, mutations) works against the small surface below:
#
#   connect() / logout()
#   list()                          -> [Mailbox]
#   get_mailbox_lock(path)          -> MailboxLock (selects the mailbox)
#   fetch(range, source=, uid=)     -> async iterator of FetchedMessage
#   message_flags_add/remove(...)
#   message_delete(...)
#   get_quota(mailbox)              -> {"storage": {"used", "limit"}} | None
#   capabilities                    -> frozenset of capability tokens
#
# Design notes:
#   - One mailbox is selected at a time; get_mailbox_lock() serializes access
#     so two coroutines sharing a session cannot interleave SELECTs.
#   - Bodies are fetched with BODY.PEEK[] so downloading never marks mail read.
#   - Timeouts are aioimaplib's; this module doesn't add its own.
# =============================================================================

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable

from aioimaplib import aioimaplib

from smartmail.core import DELETED, Mailbox

logger = logging.getLogger(__name__)

# RFC 6154 SPECIAL-USE attributes we recognise on LIST responses
SPECIAL_USE_ATTRIBUTES = (
    "\\Sent", "\\Trash", "\\Junk", "\\Drafts", "\\Archive", "\\All", "\\Flagged",
)

_LIST_LINE = re.compile(
    r'^\((?P<flags>[^)]*)\)\s+(?:"(?P<delimiter>[^"]*)"|NIL)\s+(?P<name>.+)$',
    re.IGNORECASE,
)
_FETCH_START = re.compile(r"^(\d+)\s+FETCH\s*\(", re.IGNORECASE)
_LITERAL_MARKER = re.compile(r"\{(\d+)\}\s*$")
_UID = re.compile(r"\bUID\s+(\d+)", re.IGNORECASE)
_FLAGS = re.compile(r"FLAGS\s*\(([^)]*)\)", re.IGNORECASE)
_STORAGE = re.compile(r"STORAGE\s+(\d+)\s+(\d+)", re.IGNORECASE)


def _quote_folder_name(name: str) -> str:
    """
    Quote an IMAP folder name if it contains special characters.

    Args:
        name: The folder name to quote.

    Returns:
        Properly quoted folder name for IMAP commands.
    """
    if " " in name or '"' in name or "\\" in name or any(c in name for c in "(){}[]"):
        escaped = name.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return name


def _decode_line(line: Any) -> str:
    if isinstance(line, (bytes, bytearray)):
        return bytes(line).decode("utf-8", errors="replace")
    return str(line)


@dataclass
class SessionConfig:
    """
    Everything needed to open a session.

    Attributes:
        host: IMAP server hostname.
        port: IMAP server port.
        user: Login identity.
        password: Login secret.
        security: "ssl" (implicit TLS) or "starttls".
        timeout: Per-command timeout in seconds, enforced by aioimaplib.
    """
    host: str
    port: int
    user: str
    password: str
    security: str = "ssl"
    timeout: int = 30


@dataclass
class MailboxStatus:
    """Status of the currently selected mailbox, from the SELECT response."""
    path: str
    exists: int = 0
    uidvalidity: int | None = None
    uidnext: int | None = None


@dataclass
class FetchedMessage:
    """
    One FETCH result.

    Attributes:
        seq: Sequence number of the message.
        uid: UID, if the server returned one.
        flags: IMAP flags, e.g. {"\\Seen", "\\Flagged"}.
        source: Raw RFC 822 source when requested and delivered.
    """
    seq: int
    uid: int | None = None
    flags: frozenset[str] = frozenset()
    source: bytes | None = None


class MailboxLock:
    """
    Lease on the session's selected mailbox.

    Release it on every exit path, typically in a ``finally`` block.
    Releasing twice is harmless.
    """

    def __init__(self, path: str, lock: asyncio.Lock) -> None:
        self.path = path
        self._lock = lock
        self._released = False

    def release(self) -> None:
        if not self._released:
            self._released = True
            self._lock.release()


class IMAPSession:
    """
    Async IMAP session for one account.

    Usage:
        >>> session = IMAPSession(config)
        >>> await session.connect()
        >>> lock = await session.get_mailbox_lock("INBOX")
        >>> try:
        ...     async for msg in session.fetch("1:10"):
        ...         print(msg.uid, msg.flags)
        ... finally:
        ...     lock.release()
        >>> await session.logout()
    """

    def __init__(self, config: SessionConfig) -> None:
        self.config = config
        self._client: aioimaplib.IMAP4_SSL | aioimaplib.IMAP4 | None = None
        self._authenticated = False
        self._mailbox: MailboxStatus | None = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._authenticated

    @property
    def capabilities(self) -> frozenset[str]:
        """Capabilities advertised by the server (upper-cased)."""
        if self._client is None:
            return frozenset()
        return frozenset(str(c).upper() for c in self._client.protocol.capabilities)

    @property
    def mailbox(self) -> MailboxStatus | None:
        """Status of the mailbox selected by the last get_mailbox_lock()."""
        return self._mailbox

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self) -> None:
        """
        Connect and authenticate.

        Raises:
            IMAPConnectionError: If unable to connect to server.
            IMAPAuthenticationError: If login fails.
        """
        logger.info(f"Connecting to {self.config.host}:{self.config.port}")

        try:
            if self.config.security == "ssl":
                self._client = aioimaplib.IMAP4_SSL(
                    host=self.config.host,
                    port=self.config.port,
                    timeout=self.config.timeout,
                )
            else:
                self._client = aioimaplib.IMAP4(
                    host=self.config.host,
                    port=self.config.port,
                    timeout=self.config.timeout,
                )

            await self._client.wait_hello_from_server()

            if self.config.security == "starttls":
                if not self._client.has_capability("STARTTLS"):
                    raise IMAPConnectionError("Server does not support STARTTLS")
                logger.debug("Upgrading to TLS via STARTTLS")
                await self._client.starttls()

        except asyncio.TimeoutError as e:
            self._client = None
            raise IMAPConnectionError(
                f"Connection timed out to {self.config.host}:{self.config.port}"
            ) from e
        except OSError as e:
            self._client = None
            raise IMAPConnectionError(
                f"Failed to connect to {self.config.host}:{self.config.port}: {e}"
            ) from e

        logger.debug(f"Authenticating as {self.config.user}")
        response = await self._client.login(self.config.user, self.config.password)
        if response.result != "OK":
            raise IMAPAuthenticationError(
                f"Authentication failed for {self.config.user}: {response.lines}"
            )

        self._authenticated = True
        logger.debug(f"Server capabilities: {sorted(self.capabilities)}")

    async def logout(self) -> None:
        """Send LOGOUT and drop the connection. Never raises."""
        if self._client is None:
            return
        try:
            await self._client.logout()
        except Exception as e:
            logger.warning(f"Error during logout: {e}")
        finally:
            self._client = None
            self._authenticated = False
            self._mailbox = None

    def _require_client(self) -> aioimaplib.IMAP4:
        if self._client is None or not self._authenticated:
            raise IMAPConnectionError("Session is not connected")
        return self._client

    # =========================================================================
    # Mailboxes
    # =========================================================================

    async def list(self) -> list[Mailbox]:
        """
        List all mailboxes.

        Returns:
            Mailbox descriptors in server order.

        Raises:
            IMAPError: If the LIST command fails.
        """
        client = self._require_client()
        response = await client.list('""', "*")
        if response.result != "OK":
            raise IMAPError(f"Failed to list mailboxes: {response.lines}")

        mailboxes = []
        for line in response.lines:
            mailbox = self._parse_list_line(_decode_line(line))
            if mailbox:
                mailboxes.append(mailbox)

        logger.debug(f"Found {len(mailboxes)} mailboxes")
        return mailboxes

    def _parse_list_line(self, line: str) -> Mailbox | None:
        """
        Parse a single LIST response line.

        LIST response format:
            (\\HasNoChildren) "/" "INBOX"
            (\\HasNoChildren \\Sent) "." "Gesendet"
            (\\Noselect) NIL ""
        """
        if not line or "completed" in line.lower():
            return None

        match = _LIST_LINE.match(line.strip())
        if not match:
            logger.warning(f"Could not parse mailbox line: {line}")
            return None

        attributes = match.group("flags").split()
        delimiter = match.group("delimiter") or None
        path = match.group("name").strip()
        if path.startswith('"') and path.endswith('"') and len(path) >= 2:
            path = path[1:-1].replace('\\"', '"').replace("\\\\", "\\")

        if "\\NOSELECT" in (a.upper() for a in attributes) or not path:
            return None

        special_use = None
        upper_attributes = {a.upper() for a in attributes}
        for candidate in SPECIAL_USE_ATTRIBUTES:
            if candidate.upper() in upper_attributes:
                special_use = candidate
                break

        name = path.rsplit(delimiter, 1)[-1] if delimiter else path
        return Mailbox(name=name, path=path, delimiter=delimiter, special_use=special_use)

    async def get_mailbox_lock(self, path: str) -> MailboxLock:
        """
        Acquire the session lock and select a mailbox.

        Args:
            path: Remote mailbox path.

        Returns:
            A lock that must be released when done with the mailbox.

        Raises:
            IMAPError: If the mailbox can't be selected (lock is released).
        """
        await self._lock.acquire()
        try:
            self._mailbox = await self._select(path)
        except BaseException:
            self._lock.release()
            raise
        return MailboxLock(path, self._lock)

    async def _select(self, path: str) -> MailboxStatus:
        client = self._require_client()
        logger.debug(f"Selecting mailbox: {path}")
        response = await client.select(_quote_folder_name(path))
        if response.result != "OK":
            raise IMAPError(f"Failed to select mailbox '{path}': {response.lines}")
        return self._parse_select_response(path, response.lines)

    def _parse_select_response(self, path: str, lines: Iterable[Any]) -> MailboxStatus:
        """Parse SELECT response lines into a MailboxStatus."""
        status = MailboxStatus(path=path)

        for raw in lines:
            line = _decode_line(raw)

            match = re.search(r"(\d+)\s+EXISTS", line, re.IGNORECASE)
            if match:
                status.exists = int(match.group(1))

            match = re.search(r"UIDVALIDITY\s+(\d+)", line, re.IGNORECASE)
            if match:
                status.uidvalidity = int(match.group(1))

            match = re.search(r"UIDNEXT\s+(\d+)", line, re.IGNORECASE)
            if match:
                status.uidnext = int(match.group(1))

        return status

    # =========================================================================
    # Message Fetching
    # =========================================================================

    async def fetch(
        self,
        message_set: str | Iterable[int],
        *,
        source: bool = False,
        uid: bool = False,
    ) -> AsyncIterator[FetchedMessage]:
        """
        Fetch UID and flags (and optionally the raw source) of messages.

        Args:
            message_set: Range expression ("1:50") or a list of numbers.
            source: Also fetch the full message source.
            uid: Interpret message_set as UIDs instead of sequence numbers.

        Yields:
            One FetchedMessage per message returned by the server.

        Raises:
            IMAPError: If the FETCH command fails.
        """
        client = self._require_client()

        if not isinstance(message_set, str):
            message_set = ",".join(str(n) for n in message_set)
        items = "(UID FLAGS BODY.PEEK[])" if source else "(UID FLAGS)"

        logger.debug(f"Fetching {items} for {message_set} (UID={uid})")
        if uid:
            response = await client.uid("fetch", message_set, items)
        else:
            response = await client.fetch(message_set, items)

        if response.result != "OK":
            raise IMAPError(f"Fetch failed for {message_set}: {response.lines}")

        for message in self._parse_fetch_response(response.lines):
            yield message

    def _parse_fetch_response(self, lines: Iterable[Any]) -> "list[FetchedMessage]":
        """
        Group FETCH response items into messages.

        aioimaplib returns a message's literal (the raw source after a
        "BODY[] {N}" marker) as a separate item directly after the line that
        announces it.
        """
        messages: list[FetchedMessage] = []
        current: dict[str, Any] | None = None
        expect_literal = False

        for item in lines:
            if expect_literal and current is not None:
                current["source"] = bytes(item) if isinstance(item, (bytes, bytearray)) \
                    else str(item).encode("utf-8")
                expect_literal = False
                continue

            line = _decode_line(item)
            start = _FETCH_START.match(line)
            if start:
                if current is not None:
                    messages.append(self._build_fetched(current))
                current = {"seq": int(start.group(1)), "text": line, "source": None}
            elif current is not None and "completed" not in line.lower():
                current["text"] += " " + line.strip()
            else:
                continue

            if _LITERAL_MARKER.search(line):
                expect_literal = True

        if current is not None:
            messages.append(self._build_fetched(current))

        return messages

    def _build_fetched(self, data: dict[str, Any]) -> FetchedMessage:
        text = _LITERAL_MARKER.sub("", data["text"])
        uid_match = _UID.search(text)
        flags_match = _FLAGS.search(text)
        return FetchedMessage(
            seq=data["seq"],
            uid=int(uid_match.group(1)) if uid_match else None,
            flags=frozenset(flags_match.group(1).split()) if flags_match else frozenset(),
            source=data["source"] or None,
        )

    # =========================================================================
    # Flag and Delete Operations
    # =========================================================================

    async def _store(self, target: Any, command: str, flags: Iterable[str], uid: bool) -> None:
        client = self._require_client()
        flags_str = " ".join(flags)
        logger.debug(f"STORE {target} {command} ({flags_str}) (UID={uid})")
        if uid:
            response = await client.uid("store", str(target), command, f"({flags_str})")
        else:
            response = await client.store(str(target), command, f"({flags_str})")
        if response.result != "OK":
            raise IMAPError(f"Failed to store flags on {target}: {response.lines}")

    async def message_flags_add(
        self,
        target: Any,
        flags: Iterable[str],
        *,
        uid: bool = True,
    ) -> None:
        """Add flags to messages in the selected mailbox."""
        await self._store(target, "+FLAGS", flags, uid)

    async def message_flags_remove(
        self,
        target: Any,
        flags: Iterable[str],
        *,
        uid: bool = True,
    ) -> None:
        """Remove flags from messages in the selected mailbox."""
        await self._store(target, "-FLAGS", flags, uid)

    async def message_delete(self, target: Any, *, uid: bool = True) -> None:
        """Mark messages \\Deleted in the selected mailbox and expunge."""
        await self._store(target, "+FLAGS", [DELETED], uid)
        response = await self._require_client().expunge()
        if response.result != "OK":
            raise IMAPError(f"Expunge failed: {response.lines}")

    # =========================================================================
    # Quota
    # =========================================================================

    async def get_quota(self, mailbox: str = "INBOX") -> dict | None:
        """
        Query the storage quota for the quota root of a mailbox.

        Returns:
            {"storage": {"used": bytes, "limit": bytes}} or None if the
            server reported no STORAGE resource.

        Raises:
            IMAPError: If the GETQUOTAROOT command fails.
        """
        client = self._require_client()
        response = await client.getquotaroot(_quote_folder_name(mailbox))
        if response.result != "OK":
            raise IMAPError(f"GETQUOTAROOT failed: {response.lines}")

        for raw in response.lines:
            match = _STORAGE.search(_decode_line(raw))
            if match:
                # RFC 2087 reports STORAGE in units of 1024 octets
                return {
                    "storage": {
                        "used": int(match.group(1)) * 1024,
                        "limit": int(match.group(2)) * 1024,
                    }
                }
        return None


# =============================================================================
# Exceptions
# =============================================================================

class IMAPError(Exception):
    """Base exception for IMAP operations."""
    pass


class IMAPConnectionError(IMAPError):
    """Raised when unable to connect to IMAP server."""
    pass


class IMAPAuthenticationError(IMAPError):
    """Raised when IMAP authentication fails."""
    pass
