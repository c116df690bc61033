# =============================================================================
# SmartMail Command Line
# =============================================================================
# Entry point of the `smartmail` command.
#
#   smartmail sync [ACCOUNT...]     Sync configured accounts (all by default)
#   smartmail test [ACCOUNT]        Check that an account can log in
#   smartmail accounts              List accounts with sync state and quota
#   smartmail delete UID            Delete a message on the server
#   smartmail flag UID ...          Set or clear \Seen / \Flagged
#
# test, delete and flag act on --account, else on default_account, else on
# the only configured account.
#
# The app manages:
#   - Configuration loading
#   - Logging setup
#   - Opening the database and running the async command
# =============================================================================

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from smartmail import __app_name__, __version__
from smartmail.config import Config, ConfigError, print_paths
from smartmail.core import FLAGGED, INBOX_FOLDER, SEEN, Account
from smartmail.imap import (
    SyncResult,
    delete_email,
    set_email_flag,
    sync_all_accounts,
    test_connection,
)
from smartmail.logging_cfg import setup_logging
from smartmail.storage import Database, Repository

logger = logging.getLogger(__name__)

FLAG_NAMES = {"seen": SEEN, "flagged": FLAGGED}


# =============================================================================
# Commands
# =============================================================================

def _select_accounts(config: Config, names: list[str]) -> list[Account]:
    """Pick accounts by ID, or all configured accounts."""
    if not names:
        return list(config.accounts.values())

    unknown = [name for name in names if name not in config.accounts]
    if unknown:
        raise ConfigError(f"Unknown account(s): {', '.join(unknown)}")
    return [config.accounts[name] for name in names]


def _resolve_account(config: Config, name: str | None) -> Account:
    """
    Pick the account a single-account command acts on.

    Falls back to `default_account`, then to the only configured account.

    Raises:
        ConfigError: If no account can be determined or the ID is unknown.
    """
    name = name or config.default_account
    if not name:
        if len(config.accounts) != 1:
            raise ConfigError("No account given and no default_account configured")
        name = next(iter(config.accounts))
    return _select_accounts(config, [name])[0]


def _print_result(account: Account, result: SyncResult) -> None:
    if not result.success:
        print(f"{account.id}: FAILED - {result.error}")
        return

    line = f"{account.id}: {result.count} new, {result.deleted} deleted"
    if result.quota:
        line += f", {result.quota.used_kb}/{result.quota.total_kb} KB used"
    line += f" ({result.duration_seconds:.1f}s)"
    print(line)
    for error in result.errors:
        print(f"  ! {error}")


async def cmd_sync(config: Config, repo: Repository, names: list[str]) -> int:
    accounts = _select_accounts(config, names)
    if not accounts:
        print("No accounts configured.")
        return 1

    logger.info(f"Syncing {len(accounts)} account(s)")
    results = await sync_all_accounts(accounts, repo, sync_config=config.sync)
    for account, result in zip(accounts, results):
        _print_result(account, result)

    return 0 if all(result.success for result in results) else 1


async def cmd_test(config: Config, name: str | None) -> int:
    account = _resolve_account(config, name)
    result = await test_connection(account)
    if result.success:
        print(f"{account.id}: connection OK")
        return 0
    print(f"{account.id}: connection failed - {result.error}")
    return 1


async def cmd_accounts(repo: Repository) -> int:
    accounts = await repo.get_accounts()
    if not accounts:
        print("No accounts have been synced yet.")
        return 0

    for account in accounts:
        last_sync = (
            account.last_sync_time.strftime("%Y-%m-%d %H:%M")
            if account.last_sync_time else "never"
        )
        unread = await repo.get_unread_count(account.id)
        line = f"{account.id:<12} {account.email:<32} last sync: {last_sync}, {unread} unread"
        quota = account.quota
        if quota:
            line += f", quota {quota.percent_used:.0f}% of {quota.total_kb} KB"
        print(line)
    return 0


async def cmd_delete(
    config: Config,
    repo: Repository,
    name: str | None,
    uid: int,
    folder: str,
) -> int:
    account = _resolve_account(config, name)
    result = await delete_email(account, uid, folder)
    if not result.success:
        print(f"Delete failed: {result.error}")
        return 1

    # Stored IDs can predate a folder migration; match on folder and UID
    await repo.delete_emails_by_uid(account.id, [uid], folder)
    print(f"Deleted UID {uid} from {folder}")
    return 0


async def cmd_flag(
    config: Config,
    repo: Repository,
    name: str | None,
    uid: int,
    flag: str,
    value: bool,
    folder: str,
) -> int:
    account = _resolve_account(config, name)
    result = await set_email_flag(account, uid, FLAG_NAMES[flag], value, folder)
    if not result.success:
        print(f"Flag update failed: {result.error}")
        return 1

    if flag == "seen":
        await repo.update_email_flags_by_uid(account.id, folder, uid, is_read=value)
    else:
        await repo.update_email_flags_by_uid(account.id, folder, uid, is_flagged=value)
    print(f"{'Set' if value else 'Cleared'} {flag} on UID {uid}")
    return 0


async def run(args: argparse.Namespace, config: Config) -> int:
    """Open the database and dispatch the selected command."""
    if args.command == "test":
        return await cmd_test(config, args.account)

    async with Database(Config.database_path()) as db:
        repo = Repository(db)
        if args.command == "sync":
            return await cmd_sync(config, repo, args.accounts)
        if args.command == "accounts":
            return await cmd_accounts(repo)
        if args.command == "delete":
            return await cmd_delete(config, repo, args.account, args.uid, args.folder)
        if args.command == "flag":
            return await cmd_flag(
                config, repo, args.account, args.uid, args.flag,
                args.state == "on", args.folder,
            )

    raise ValueError(f"Unknown command: {args.command}")


# =============================================================================
# CLI Entry Point
# =============================================================================

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="SmartMail: mirror IMAP accounts into a local store",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--paths",
        action="store_true",
        help="Print configuration paths and exit",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (default: XDG config location)",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (verbose logging)",
    )

    commands = parser.add_subparsers(dest="command")

    sync = commands.add_parser("sync", help="Sync accounts")
    sync.add_argument("accounts", nargs="*", metavar="ACCOUNT",
                      help="Account IDs to sync (default: all)")

    test = commands.add_parser("test", help="Test the connection of an account")
    test.add_argument("account", nargs="?", metavar="ACCOUNT",
                      help="Account ID (default: default_account)")

    commands.add_parser("accounts", help="List synced accounts")

    delete = commands.add_parser("delete", help="Delete a message on the server")
    delete.add_argument("uid", type=int, metavar="UID")
    delete.add_argument("-a", "--account",
                        help="Account ID (default: default_account)")
    delete.add_argument("--folder", default=INBOX_FOLDER,
                        help=f"Local folder of the message (default: {INBOX_FOLDER})")

    flag = commands.add_parser("flag", help="Set or clear a message flag")
    flag.add_argument("uid", type=int, metavar="UID")
    flag.add_argument("-a", "--account",
                      help="Account ID (default: default_account)")
    flag.add_argument("flag", choices=sorted(FLAG_NAMES))
    flag.add_argument("state", choices=["on", "off"])
    flag.add_argument("--folder", default=INBOX_FOLDER,
                      help=f"Local folder of the message (default: {INBOX_FOLDER})")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for SmartMail.

    This function:
        1. Parses command-line arguments
        2. Handles special flags (--paths, --version)
        3. Sets up logging and loads configuration
        4. Runs the selected command

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    args = parse_args(argv)

    if args.paths:
        print_paths()
        return 0

    if args.command is None:
        parse_args(["--help"])
        return 0

    setup_logging(debug=args.debug, log_file=Config.log_file_path())

    try:
        config = Config.load(args.config)
        return asyncio.run(run(args, config))
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 1


if __name__ == "__main__":
    sys.exit(main())
