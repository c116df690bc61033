# =============================================================================
# Connection Manager
# =============================================================================
# Opens IMAP sessions for accounts.
#
# The login identity is the account's explicit username, falling back to its
# email address. Passwords come from the account record when set, otherwise
# from the system keyring (service "smartmail:<account id>").
#
# Everything that needs a session takes a `session_factory` argument so tests
# can substitute an in-memory server for IMAPSession.
# =============================================================================

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable

import keyring
from keyring.errors import KeyringError

from smartmail.core import Account
from smartmail.imap.client import (
    IMAPAuthenticationError,
    IMAPConnectionError,
    IMAPSession,
    SessionConfig,
)
from smartmail.imap.providers import get_provider

logger = logging.getLogger(__name__)

SessionFactory = Callable[[SessionConfig], Any]


@dataclass
class ActionResult:
    """Outcome of an account-level operation that never raises."""
    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> "ActionResult":
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)


def get_password(account: Account) -> str | None:
    """Return the account password from the record or the system keyring."""
    if account.password:
        return account.password
    try:
        return keyring.get_password(account.keyring_service, account.email)
    except KeyringError as e:
        logger.warning(f"Keyring lookup failed for {account.email}: {e}")
        return None


def build_session_config(account: Account, timeout: int = 30) -> SessionConfig:
    """
    Build the session configuration for an account.

    Host and port default to the provider preset when the account has no
    explicit host.

    Raises:
        IMAPConnectionError: If no host is known for the account.
        IMAPAuthenticationError: If no password is available.
    """
    host = account.imap_host
    port = account.imap_port
    security = account.imap_security

    if not host:
        preset = get_provider(account.provider)
        if preset is None:
            raise IMAPConnectionError(f"No IMAP host configured for {account.email}")
        host, port = preset.host, preset.port
        security = "ssl" if preset.secure else "starttls"

    password = get_password(account)
    if not password:
        raise IMAPAuthenticationError(
            f"No password found in keyring for {account.email}. "
            f"Set it with: keyring set {account.keyring_service} {account.email}"
        )

    return SessionConfig(
        host=host,
        port=port,
        user=account.auth_user,
        password=password,
        security=security,
        timeout=timeout,
    )


async def connect_account(
    account: Account,
    session_factory: SessionFactory = IMAPSession,
) -> Any:
    """
    Create a session for an account and connect it.

    Returns:
        The connected session. The caller must log it out.

    Raises:
        IMAPError: If the connection or login fails.
    """
    session = session_factory(build_session_config(account))
    try:
        await session.connect()
    except BaseException:
        await session.logout()
        raise
    logger.info(f"Connected to {account.email} as {account.auth_user}")
    return session


@asynccontextmanager
async def open_session(
    account: Account,
    session_factory: SessionFactory = IMAPSession,
) -> AsyncIterator[Any]:
    """
    Connected session for the duration of an ``async with`` block.

    Usage:
        >>> async with open_session(account) as session:
        ...     mailboxes = await session.list()
    """
    session = await connect_account(account, session_factory)
    try:
        yield session
    finally:
        await session.logout()


async def test_connection(
    account: Account,
    *,
    session_factory: SessionFactory = IMAPSession,
) -> ActionResult:
    """
    Check that an account can connect and log in.

    Returns:
        ActionResult; failures are reported, never raised.
    """
    try:
        async with open_session(account, session_factory):
            pass
    except Exception as e:
        logger.warning(f"Connection test failed for {account.email}: {e}")
        return ActionResult.failed(str(e))
    return ActionResult.ok()


# Not a pytest test
test_connection.__test__ = False  # type: ignore[attr-defined]
