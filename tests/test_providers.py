# =============================================================================
# Provider Registry and Connection Tests
# =============================================================================

import pytest

from smartmail.core import Account
from smartmail.imap.client import IMAPAuthenticationError, IMAPConnectionError
from smartmail.imap.connection import build_session_config, test_connection
from smartmail.imap.providers import PROVIDERS, get_provider


class TestProviderRegistry:
    def test_known_providers(self):
        assert get_provider("gmx").host == "imap.gmx.net"
        assert get_provider("webde").host == "imap.web.de"
        assert get_provider("gmail").host == "imap.gmail.com"

    def test_presets_use_implicit_tls(self):
        for preset in PROVIDERS.values():
            assert preset.port == 993
            assert preset.secure is True

    def test_lookup_is_case_insensitive(self):
        assert get_provider("GMX") == get_provider("gmx")

    def test_unknown_provider(self):
        assert get_provider("example") is None
        assert get_provider("") is None


class TestSessionConfig:
    def test_email_is_login_without_username(self, account):
        config = build_session_config(account)

        assert config.user == "me@example.com"
        assert config.host == "imap.example.com"
        assert config.password == "secret"

    def test_explicit_username_wins(self, account):
        account.username = "login-name"

        assert build_session_config(account).user == "login-name"

    def test_provider_preset_fills_host(self):
        account = Account(id="gmx", email="me@gmx.net", provider="gmx", password="pw")

        config = build_session_config(account)

        assert config.host == "imap.gmx.net"
        assert config.port == 993
        assert config.security == "ssl"

    def test_missing_host(self):
        account = Account(id="x", email="me@example.com", password="pw")

        with pytest.raises(IMAPConnectionError):
            build_session_config(account)

    def test_password_from_keyring(self, account, monkeypatch):
        account.password = ""
        lookups = []

        def fake_get_password(service, user):
            lookups.append((service, user))
            return "from-keyring"

        monkeypatch.setattr("smartmail.imap.connection.keyring.get_password", fake_get_password)

        assert build_session_config(account).password == "from-keyring"
        assert lookups == [("smartmail:work", "me@example.com")]

    def test_missing_password(self, account, monkeypatch):
        account.password = ""
        monkeypatch.setattr(
            "smartmail.imap.connection.keyring.get_password", lambda service, user: None
        )

        with pytest.raises(IMAPAuthenticationError, match="keyring set smartmail:work"):
            build_session_config(account)


class TestConnectionCheck:
    async def test_success_opens_and_closes(self, account, server):
        result = await test_connection(account, session_factory=server)

        assert result.success is True
        assert result.error is None
        assert [call[0] for call in server.calls] == ["connect", "logout"]

    async def test_login_identity(self, account, server):
        account.username = "imap-user"

        await test_connection(account, session_factory=server)

        assert server.calls[0] == ("connect", "imap-user")

    async def test_failure_is_reported(self, account, server):
        server.connect_error = IMAPAuthenticationError("Authentication failed")

        result = await test_connection(account, session_factory=server)

        assert result.success is False
        assert "Authentication failed" in result.error
        assert server.calls_named("logout")

    async def test_missing_password_is_reported(self, account, server, monkeypatch):
        account.password = ""
        monkeypatch.setattr(
            "smartmail.imap.connection.keyring.get_password", lambda service, user: None
        )

        result = await test_connection(account, session_factory=server)

        assert result.success is False
        assert server.calls == []
