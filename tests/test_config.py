# =============================================================================
# Configuration Tests
# =============================================================================

import pytest

from smartmail.config import Config, ConfigError, SyncConfig, get_xdg_config_home


@pytest.fixture(autouse=True)
def xdg_home(tmp_path, monkeypatch):
    """Point every XDG directory into tmp_path."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "state"))
    return tmp_path


def write_config(tmp_path, text):
    path = tmp_path / "config.toml"
    path.write_text(text, encoding="utf-8")
    return path


class TestPaths:
    def test_xdg_override(self, xdg_home):
        assert get_xdg_config_home() == xdg_home / "config" / "smartmail"
        assert Config.database_path() == xdg_home / "data" / "smartmail" / "smartmail.db"
        assert Config.log_file_path() == xdg_home / "state" / "smartmail" / "smartmail.log"

    def test_missing_file_gives_defaults(self, xdg_home):
        config = Config.load()

        assert config.accounts == {}
        assert config.sync == SyncConfig()
        assert (xdg_home / "data" / "smartmail").is_dir()


class TestLoad:
    def test_accounts_and_sync(self, tmp_path):
        path = write_config(tmp_path, """
[general]
default_account = "work"

[sync]
uid_batch_size = 1000
message_batch_size = 10
check_quota = false

[accounts.work]
email = "me@example.com"
name = "Work"
imap_host = "mail.example.com"
imap_port = 143
imap_security = "starttls"
username = "me"
""")

        config = Config.load(path)

        assert config.default_account == "work"
        assert config.sync == SyncConfig(1000, 10, False)
        account = config.accounts["work"]
        assert account.id == "work"
        assert account.imap_host == "mail.example.com"
        assert account.imap_port == 143
        assert account.imap_security == "starttls"
        assert account.auth_user == "me"

    def test_provider_fills_host(self, tmp_path):
        path = write_config(tmp_path, """
[accounts.home]
email = "me@gmx.de"
provider = "gmx"
""")

        account = Config.load(path).accounts["home"]

        assert account.imap_host == "imap.gmx.net"
        assert account.imap_port == 993
        assert account.name == "me@gmx.de"

    def test_unknown_provider(self, tmp_path):
        path = write_config(tmp_path, """
[accounts.home]
email = "me@example.org"
provider = "nope"
""")

        with pytest.raises(ConfigError, match="unknown provider"):
            Config.load(path)

    def test_missing_email(self, tmp_path):
        path = write_config(tmp_path, "[accounts.home]\nname = 'Home'\n")

        with pytest.raises(ConfigError, match="no email"):
            Config.load(path)

    def test_invalid_toml(self, tmp_path):
        path = write_config(tmp_path, "[accounts\n")

        with pytest.raises(ConfigError, match="Invalid config file"):
            Config.load(path)

    def test_invalid_batch_size(self, tmp_path):
        path = write_config(tmp_path, "[sync]\nuid_batch_size = 0\n")

        with pytest.raises(ConfigError, match="uid_batch_size"):
            Config.load(path)


class TestSave:
    def test_save_and_reload(self, tmp_path):
        path = write_config(tmp_path, """
[accounts.work]
email = "me@example.com"
imap_host = "mail.example.com"
""")
        config = Config.load(path)
        config.accounts["work"].password = "secret"
        config.sync.check_quota = False

        config.save(path)
        reloaded = Config.load(path)

        assert reloaded.accounts["work"].imap_host == "mail.example.com"
        assert reloaded.accounts["work"].password == ""
        assert reloaded.sync.check_quota is False
        assert "secret" not in path.read_text(encoding="utf-8")
