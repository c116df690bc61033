# =============================================================================
# Repository Tests
# =============================================================================

from datetime import datetime, timezone

from smartmail.core import Account, Attachment, Email, make_email_id


def make_email(uid, folder="Posteingang", account_id="work", **kwargs):
    return Email(
        id=make_email_id(uid, account_id, folder),
        account_id=account_id,
        uid=uid,
        folder=folder,
        **kwargs,
    )


class TestAccounts:
    async def test_round_trip(self, repo, account):
        stored = await repo.get_account("work")

        assert stored.email == "me@example.com"
        assert stored.imap_host == "imap.example.com"
        assert stored.last_sync_uid == 0
        assert stored.password == ""

    async def test_missing_account(self, repo):
        assert await repo.get_account("nobody") is None

    async def test_add_again_keeps_sync_state_and_emails(self, repo, account):
        await repo.save_email(make_email(1))
        sync_time = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
        await repo.update_account_sync("work", 42, sync_time)
        await repo.update_account_quota("work", 100, 1000)

        account.name = "Renamed"
        await repo.add_account(account)

        stored = await repo.get_account("work")
        assert stored.name == "Renamed"
        assert stored.last_sync_uid == 42
        assert stored.last_sync_time == sync_time
        assert (stored.storage_used, stored.storage_total) == (100, 1000)
        assert await repo.get_all_uids_for_folder("work", "Posteingang") == {1}

    async def test_quota_property(self, repo):
        await repo.update_account_quota("work", 250, 1000)

        quota = (await repo.get_account("work")).quota

        assert quota.percent_used == 25.0

    async def test_delete_cascades(self, repo):
        await repo.save_email(make_email(1, attachments=[Attachment("a.txt", data=b"x")]))

        await repo.delete_account("work")

        assert await repo.get_accounts() == []
        assert await repo.get_email("1-work") is None
        assert await repo.get_attachments("1-work") == []

    async def test_accounts_ordered_by_name(self, repo):
        await repo.add_account(Account(id="a", email="a@example.com", name="Alpha"))

        names = [account.name for account in await repo.get_accounts()]

        assert names == ["Alpha", "Work"]


class TestEmails:
    async def test_save_and_load(self, repo):
        date = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        await repo.save_email(make_email(
            7,
            sender="Alice <alice@example.com>",
            sender_email="alice@example.com",
            subject="Hello",
            body="Hi",
            body_html="<p>Hi</p>",
            date=date,
            is_flagged=True,
        ))

        email = await repo.get_email("7-work")

        assert email.subject == "Hello"
        assert email.body == "Hi"
        assert email.body_html == "<p>Hi</p>"
        assert email.date == date
        assert email.is_flagged is True
        assert email.is_read is False

    async def test_same_id_overwrites(self, repo):
        await repo.save_email(make_email(7, subject="First"))
        await repo.save_email(make_email(7, subject="Second"))

        emails = await repo.get_emails("work")

        assert [email.subject for email in emails] == ["Second"]

    async def test_attachments_replaced_on_save(self, repo):
        await repo.save_email(make_email(7, attachments=[
            Attachment("a.pdf", "application/pdf", 3, b"abc"),
            Attachment("b.txt", "text/plain", 1, b"b"),
        ]))
        await repo.save_email(make_email(7, attachments=[
            Attachment("c.txt", "text/plain", 1, b"c"),
        ]))

        attachments = await repo.get_attachments("7-work")

        assert [att.filename for att in attachments] == ["c.txt"]
        assert attachments[0].data == b"c"
        assert attachments[0].id == "7-work-att0"

    async def test_list_view_keeps_attachment_marker(self, repo):
        await repo.save_email(make_email(7, attachments=[Attachment("a.pdf", data=b"abc")]))

        listed = (await repo.get_emails("work"))[0]

        assert listed.has_attachments is True
        assert listed.attachments == []
        assert listed.body == ""

    async def test_list_newest_first_and_by_folder(self, repo):
        await repo.save_email(make_email(1, date=datetime(2024, 1, 1, tzinfo=timezone.utc)))
        await repo.save_email(make_email(2, date=datetime(2024, 2, 1, tzinfo=timezone.utc)))
        await repo.save_email(make_email(3, folder="Gesendet"))

        inbox = await repo.get_emails("work", "Posteingang")

        assert [email.uid for email in inbox] == [2, 1]
        assert len(await repo.get_emails("work")) == 3

    async def test_update_single_flags(self, repo):
        await repo.save_email(make_email(1))

        await repo.update_email_flags("1-work", is_read=True)
        email = await repo.get_email("1-work")
        assert (email.is_read, email.is_flagged) == (True, False)

        await repo.update_email_flags("1-work", is_flagged=True)
        email = await repo.get_email("1-work")
        assert (email.is_read, email.is_flagged) == (True, True)

    async def test_update_flags_by_uid_after_migration(self, repo):
        await repo.save_email(make_email(7, folder="Amazon"))
        await repo.save_email(make_email(7))
        await repo.migrate_folder("Amazon", "Posteingang/Amazon", "work")

        updated = await repo.update_email_flags_by_uid(
            "work", "Posteingang/Amazon", 7, is_flagged=True
        )

        assert updated == 1
        assert (await repo.get_email(make_email_id(7, "work", "Amazon"))).is_flagged is True
        assert (await repo.get_email("7-work")).is_flagged is False

    async def test_update_flags_by_uid_without_flags(self, repo):
        await repo.save_email(make_email(7))

        assert await repo.update_email_flags_by_uid("work", "Posteingang", 7) == 0

    async def test_unread_count(self, repo):
        await repo.add_account(Account(id="home", email="home@example.com"))
        await repo.save_email(make_email(1))
        await repo.save_email(make_email(2, is_read=True))
        await repo.save_email(make_email(1, account_id="home"))

        assert await repo.get_unread_count("work") == 1
        assert await repo.get_unread_count() == 2

    async def test_delete_single_email(self, repo):
        await repo.save_email(make_email(1))

        await repo.delete_email("1-work")

        assert await repo.get_email("1-work") is None


class TestSyncQueries:
    async def test_uids_and_watermark_per_folder(self, repo):
        for uid in (3, 9, 4):
            await repo.save_email(make_email(uid))
        await repo.save_email(make_email(50, folder="Gesendet"))

        assert await repo.get_all_uids_for_folder("work", "Posteingang") == {3, 4, 9}
        assert await repo.get_max_uid_for_folder("work", "Posteingang") == 9
        assert await repo.get_max_uid_for_folder("work", "Spam") == 0

    async def test_delete_by_uid_scoped_to_folder(self, repo):
        await repo.save_email(make_email(1))
        await repo.save_email(make_email(1, folder="Gesendet"))

        deleted = await repo.delete_emails_by_uid("work", [1], "Posteingang")

        assert deleted == 1
        assert await repo.get_all_uids_for_folder("work", "Gesendet") == {1}

    async def test_delete_by_uid_empty(self, repo):
        assert await repo.delete_emails_by_uid("work", [], "Posteingang") == 0

    async def test_migrate_folder(self, repo):
        await repo.save_email(make_email(1, folder="Amazon"))
        await repo.save_email(make_email(2, folder="Amazon"))

        moved = await repo.migrate_folder("Amazon", "Posteingang/Amazon", "work")

        assert moved == 2
        assert await repo.get_all_uids_for_folder("work", "Posteingang/Amazon") == {1, 2}
        assert await repo.get_email(make_email_id(1, "work", "Amazon")) is not None

    async def test_migrate_same_folder_is_noop(self, repo):
        await repo.save_email(make_email(1))

        assert await repo.migrate_folder("Posteingang", "Posteingang") == 0

    async def test_bulk_flags_skip_placeholders(self, repo):
        await repo.save_email(make_email(1))
        await repo.save_email(make_email(
            2, is_read=True, sender="System Error", smart_category="System Error"
        ))

        await repo.update_flags_bulk("work", "Posteingang", {1: (True, True), 2: (False, True)})

        first = await repo.get_email("1-work")
        placeholder = await repo.get_email("2-work")
        assert (first.is_read, first.is_flagged) == (True, True)
        assert (placeholder.is_read, placeholder.is_flagged) == (True, False)
