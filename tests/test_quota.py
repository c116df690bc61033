# =============================================================================
# Quota Check Tests
# =============================================================================

from smartmail.core import Quota
from smartmail.imap.client import IMAPError
from smartmail.imap.quota import bytes_to_kb, check_account_quota


class TestBytesToKb:
    def test_rounds_half_up(self):
        assert bytes_to_kb(1536) == 2
        assert bytes_to_kb(2560) == 3

    def test_rounds_to_nearest(self):
        assert bytes_to_kb(1024) == 1
        assert bytes_to_kb(1500) == 1
        assert bytes_to_kb(0) == 0


class TestCheckAccountQuota:
    async def test_converts_to_kb(self, server, session):
        server.capabilities.add("QUOTA")
        server.quota = {"storage": {"used": 1536, "limit": 2560}}

        quota = await check_account_quota(session, "work")

        assert quota == Quota(used_kb=2, total_kb=3)
        assert server.calls_named("quota") == [("quota", "INBOX")]

    async def test_zero_limit(self, server, session):
        server.capabilities.add("QUOTA")
        server.quota = {"storage": {"used": 1000, "limit": 0}}

        assert await check_account_quota(session, "work") is None

    async def test_without_capability_no_call(self, server, session):
        server.quota = {"storage": {"used": 1536, "limit": 2560}}

        assert await check_account_quota(session, "work") is None
        assert server.calls_named("quota") == []

    async def test_no_result(self, server, session):
        server.capabilities.add("QUOTA")
        server.quota = None

        assert await check_account_quota(session, "work") is None

    async def test_no_storage_resource(self, server, session):
        server.capabilities.add("QUOTA")
        server.quota = {"message": {"used": 10, "limit": 100}}

        assert await check_account_quota(session, "work") is None

    async def test_errors_are_suppressed(self, server, session):
        server.capabilities.add("QUOTA")
        server.quota = IMAPError("GETQUOTAROOT failed")

        assert await check_account_quota(session, "work") is None
