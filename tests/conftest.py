# =============================================================================
# Pytest Configuration and Fixtures
# =============================================================================
# Shared fixtures for the SmartMail test suite.
#
# Network access is replaced by FakeServer, an in-memory IMAP server. It is
# used as the `session_factory` of the sync manager and the actions and
# hands out FakeSession objects that implement the same surface as
# IMAPSession. Every session call is recorded in `server.calls`.
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import format_datetime

import pytest
import pytest_asyncio

from smartmail.core import Account, Mailbox
from smartmail.imap.client import (
    FetchedMessage,
    IMAPConnectionError,
    IMAPError,
    MailboxStatus,
)
from smartmail.storage import Database, Repository


@dataclass
class FakeMessage:
    uid: int
    source: bytes | None
    flags: set[str] = field(default_factory=set)


class FakeLock:
    def __init__(self, server: "FakeServer", path: str) -> None:
        self.server = server
        self.path = path
        self.released = False

    def release(self) -> None:
        if not self.released:
            self.released = True
            self.server.calls.append(("release", self.path))


class FakeSession:
    """In-memory stand-in for IMAPSession."""

    def __init__(self, server: "FakeServer", config) -> None:
        self.server = server
        self.config = config
        self.mailbox: MailboxStatus | None = None

    @property
    def capabilities(self) -> frozenset[str]:
        return frozenset(self.server.capabilities)

    async def connect(self) -> None:
        self.server.calls.append(("connect", self.config.user))
        if self.server.connect_error is not None:
            raise self.server.connect_error

    async def logout(self) -> None:
        self.server.calls.append(("logout",))

    async def list(self) -> list[Mailbox]:
        self.server.calls.append(("list",))
        if self.server.list_error is not None:
            raise self.server.list_error
        return list(self.server.mailboxes)

    async def get_mailbox_lock(self, path: str) -> FakeLock:
        self.server.calls.append(("lock", path))
        if path not in self.server.messages:
            raise IMAPError(f"Mailbox does not exist: {path}")
        messages = self.server.messages[path]
        self.mailbox = MailboxStatus(
            path=path,
            exists=len(messages),
            uidvalidity=1,
            uidnext=max(messages, default=0) + 1,
        )
        return FakeLock(self.server, path)

    def _ordered(self) -> "list[FakeMessage]":
        messages = self.server.messages[self.mailbox.path]
        return [messages[uid] for uid in sorted(messages)]

    def _fetched(self, seq: int, message: FakeMessage, source: bool) -> FetchedMessage:
        return FetchedMessage(
            seq=seq,
            uid=message.uid,
            flags=frozenset(message.flags),
            source=message.source if source else None,
        )

    async def fetch(self, message_set, *, source: bool = False, uid: bool = False):
        wanted = message_set if isinstance(message_set, str) else tuple(message_set)
        self.server.calls.append(("fetch", self.mailbox.path, wanted, source, uid))
        ordered = self._ordered()

        if uid:
            if source and self.server.body_fetch_error is not None:
                raise self.server.body_fetch_error
            positions = {m.uid: seq for seq, m in enumerate(ordered, start=1)}
            for target in wanted:
                if target in positions and target not in self.server.withheld:
                    message = ordered[positions[target] - 1]
                    yield self._fetched(positions[target], message, source)
            return

        if wanted in self.server.failing_ranges:
            raise IMAPError(f"Fetch failed for {wanted}")
        start, end = (int(part) for part in wanted.split(":"))
        for seq, message in enumerate(ordered, start=1):
            if start <= seq <= end:
                yield self._fetched(seq, message, source)

    async def message_flags_add(self, target, flags, *, uid: bool = True) -> None:
        self.server.calls.append(("flags_add", self.mailbox.path, target, tuple(flags)))
        message = self.server.messages[self.mailbox.path].get(target)
        if message:
            message.flags.update(flags)

    async def message_flags_remove(self, target, flags, *, uid: bool = True) -> None:
        self.server.calls.append(("flags_remove", self.mailbox.path, target, tuple(flags)))
        message = self.server.messages[self.mailbox.path].get(target)
        if message:
            message.flags.difference_update(flags)

    async def message_delete(self, target, *, uid: bool = True) -> None:
        self.server.calls.append(("delete", self.mailbox.path, target))
        if self.server.delete_error is not None:
            raise self.server.delete_error
        self.server.messages[self.mailbox.path].pop(target, None)

    async def get_quota(self, mailbox: str = "INBOX"):
        self.server.calls.append(("quota", mailbox))
        if isinstance(self.server.quota, Exception):
            raise self.server.quota
        return self.server.quota


class FakeServer:
    """In-memory IMAP server; call it with a SessionConfig to get a session."""

    def __init__(self) -> None:
        self.mailboxes: list[Mailbox] = [Mailbox("INBOX", "INBOX", "/")]
        self.messages: dict[str, dict[int, FakeMessage]] = {"INBOX": {}}
        self.capabilities: set[str] = {"IMAP4REV1"}
        self.quota = None
        self.connect_error: Exception | None = None
        self.list_error: Exception | None = None
        self.body_fetch_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.failing_ranges: set[str] = set()
        self.withheld: set[int] = set()
        self.calls: list[tuple] = []
        self.configs: list = []

    def __call__(self, config) -> FakeSession:
        self.configs.append(config)
        return FakeSession(self, config)

    def add_mailbox(self, mailbox: Mailbox) -> None:
        self.mailboxes.append(mailbox)
        self.messages.setdefault(mailbox.path, {})

    def add_message(
        self,
        path: str,
        uid: int,
        source: bytes | None,
        flags: tuple[str, ...] = (),
    ) -> None:
        self.messages.setdefault(path, {})[uid] = FakeMessage(uid, source, set(flags))

    def expunge(self, path: str, uid: int) -> None:
        self.messages[path].pop(uid, None)

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


def build_raw_message(
    subject: str = "Hello",
    sender: str = "Alice Example <alice@example.com>",
    body: str = "Hi there",
    html: str | None = None,
    attachment: tuple[str, bytes] | None = None,
    date: datetime | None = None,
) -> bytes:
    """Build an RFC 822 message."""
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = "me@example.com"
    msg["Date"] = format_datetime(date or datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))
    if body:
        msg.set_content(body)
    if html is not None:
        if body:
            msg.add_alternative(html, subtype="html")
        else:
            msg.set_content(html, subtype="html")
    if attachment is not None:
        filename, data = attachment
        msg.add_attachment(data, maintype="application", subtype="pdf", filename=filename)
    return msg.as_bytes()


@pytest.fixture
def raw_message():
    """Builder for raw RFC 822 messages."""
    return build_raw_message


@pytest.fixture
def server():
    """An empty in-memory IMAP server with just an INBOX."""
    return FakeServer()


@pytest.fixture
def session(server):
    """A FakeSession on the `server` fixture."""
    return server(None)


@pytest.fixture
def account():
    """Create a sample Account for testing."""
    return Account(
        id="work",
        email="me@example.com",
        name="Work",
        imap_host="imap.example.com",
        imap_port=993,
        imap_security="ssl",
        password="secret",
    )


@pytest_asyncio.fixture
async def repo(tmp_path, account):
    """Repository on a fresh SQLite database, with `account` stored."""
    db = Database(tmp_path / "test.db")
    await db.connect()
    repository = Repository(db)
    await repository.add_account(account)
    yield repository
    await db.close()


@pytest.fixture
def connection_refused():
    return IMAPConnectionError("Failed to connect to imap.example.com:993: refused")
