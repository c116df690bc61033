# =============================================================================
# Orphan Reconciliation Tests
# =============================================================================

from smartmail.core import Email, make_email_id
from smartmail.imap.reconcile import find_orphans, reconcile_orphans


async def _store(repo, folder, *uids):
    for uid in uids:
        await repo.save_email(Email(
            id=make_email_id(uid, "work", folder),
            account_id="work",
            uid=uid,
            folder=folder,
        ))


class TestFindOrphans:
    def test_set_difference(self):
        assert find_orphans({100, 200, 300}, {100, 300}) == [200]

    def test_empty_remote(self):
        assert find_orphans([300, 100, 200], []) == [100, 200, 300]

    def test_empty_local(self):
        assert find_orphans([], [1, 2, 3]) == []


class TestReconcileOrphans:
    async def test_deletes_exactly_the_missing_uid(self, repo):
        await _store(repo, "Posteingang", 100, 200, 300)

        deleted = await reconcile_orphans(
            repo, "work", "Posteingang", {100, 200, 300}, {100, 300}
        )

        assert deleted == 1
        assert await repo.get_all_uids_for_folder("work", "Posteingang") == {100, 300}

    async def test_empty_remote_deletes_everything(self, repo):
        await _store(repo, "Posteingang", 100, 200, 300)

        deleted = await reconcile_orphans(repo, "work", "Posteingang", {100, 200, 300}, set())

        assert deleted == 3
        assert await repo.get_all_uids_for_folder("work", "Posteingang") == set()

    async def test_empty_local_is_noop(self, repo):
        assert await reconcile_orphans(repo, "work", "Posteingang", set(), {1, 2}) == 0

    async def test_other_folders_untouched(self, repo):
        await _store(repo, "Posteingang", 1, 2)
        await _store(repo, "Gesendet", 1, 2)

        await reconcile_orphans(repo, "work", "Posteingang", {1, 2}, set())

        assert await repo.get_all_uids_for_folder("work", "Gesendet") == {1, 2}

    async def test_large_mailbox(self, repo):
        local = set(range(1, 1201))
        remote = {uid for uid in local if uid % 2}
        await _store(repo, "Posteingang", *local)

        deleted = await reconcile_orphans(repo, "work", "Posteingang", local, remote)

        assert deleted == 600
        assert await repo.get_all_uids_for_folder("work", "Posteingang") == remote
