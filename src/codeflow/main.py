"""
CodeFlow Authenticator command-line interface

Usage examples:
    codeflow register --email me@example.com
    codeflow codes --email me@example.com --watch
    codeflow add --email me@example.com --name alice --issuer GitHub --secret JBSWY3DPEHPK3PXP
    codeflow import-qr --email me@example.com export.png
    codeflow change-password --email me@example.com

Passwords are always read interactively with getpass.
"""

import sys
import time
import getpass
import logging
import argparse

from . import config
from .errors import CodeFlowError
from .security.account_store import AccountStore
from .security.exporters import SecretExporter, provisioning_uri
from .security.importers import SecretImporter
from .security.kv_store import JsonFileStore
from .security.vault_session import AdminConsole, VaultSession, normalize_account_fields, reset_user
from .totp.ticker import TotpTicker
from .utils.colorprint import print_error, print_info, print_success, print_warning
from .utils.logger import get_log_file_path, set_console_level, setup_logger

logger = logging.getLogger(__name__)


def _ask_password(prompt="Password: ", confirm=False):
    password = getpass.getpass(prompt)
    if confirm and getpass.getpass("Confirm password: ") != password:
        raise CodeFlowError("Passwords don't match")
    return password


def _ask_email(args):
    return args.email or input("Email: ").strip()


def _open_session(args, store):
    session = VaultSession(store)
    session.login(_ask_email(args), _ask_password())
    return session


def _print_codes(session, now=None):
    for account, code, remaining in session.current_codes(now):
        print(f"{account.id:>16}  {code}  {remaining:>2}s  {account.issuer} ({account.name})")


def cmd_register(args, store):
    session = VaultSession(store)
    session.register(_ask_email(args), _ask_password("New password: ", confirm=True))
    print_success(f"Registered {session.current_user}")
    return 0


def cmd_codes(args, store):
    session = _open_session(args, store)
    if args.search:
        session.accounts = session.search(args.search)
    if not session.accounts:
        print_info("No accounts in this vault")
        return 0

    if not args.watch:
        _print_codes(session)
        return 0

    labels = {account.id: f"{account.issuer} ({account.name})" for account in session.accounts}

    def render(codes, remaining, refreshed):
        if refreshed:
            print()
            for account_id, code in codes.items():
                print(f"{code}  {labels[account_id]}")
        print(f"\rNext refresh in {remaining:>2}s", end="", flush=True)

    ticker = TotpTicker({account.id: account.secret for account in session.accounts}, render)
    try:
        with ticker:
            while True:
                time.sleep(1)
    except KeyboardInterrupt:
        print()
    return 0


def cmd_add(args, store):
    fields = normalize_account_fields(
        name=args.name or input("Account name: "),
        secret=args.secret or getpass.getpass("Secret (Base32): "),
        issuer=args.issuer or "",
        username=args.username,
    )
    session = _open_session(args, store)
    code = input("Enter the current 6-digit code from the account to verify: ")
    account = session.verify_and_add(fields, code)
    print_success(f"Account added: {account.issuer} ({account.name})")
    return 0


def _add_scanned(args, store, result):
    session = _open_session(args, store)
    if result.kind == "single":
        fields = result.accounts[0]
        code = input(f"Enter the current code for {fields['issuer']} ({fields['name']}) to verify: ")
        session.verify_and_add(fields, code)
        print_success("Account added")
    else:
        added = session.add_accounts(result.accounts)
        print_success(f"{len(added)} account(s) imported")
    return 0


def cmd_import_uri(args, store):
    text = args.uri or input("URI: ")
    return _add_scanned(args, store, SecretImporter().import_from_text(text))


def cmd_import_qr(args, store):
    return _add_scanned(args, store, SecretImporter().import_from_image(args.image))


def cmd_import_json(args, store):
    return _add_scanned(args, store, SecretImporter().import_from_file(args.file))


def cmd_export_json(args, store):
    session = _open_session(args, store)
    print_warning("The export file will contain every secret in plaintext.")
    path = SecretExporter(config.EXPORTS_DIR).export_to_json(session.accounts, args.output)
    print_success(f"Exported {len(session.accounts)} account(s) to {path}")
    return 0


def cmd_export_qr(args, store):
    session = _open_session(args, store)
    for account in session.accounts:
        if account.id == args.account_id:
            path = SecretExporter(config.EXPORTS_DIR).export_to_qr(account, args.output)
            print_info(provisioning_uri(account))
            print_success(f"Saved QR code to {path}")
            return 0
    print_error(f"No account with id {args.account_id}")
    return 1


def cmd_delete(args, store):
    session = _open_session(args, store)
    if not session.delete_account(args.account_id):
        print_error(f"No account with id {args.account_id}")
        return 1
    print_success("Account deleted")
    return 0


def cmd_change_password(args, store):
    session = VaultSession(store)
    email = _ask_email(args)
    current = _ask_password("Current password: ")
    session.login(email, current)
    session.change_password(current, _ask_password("New password: ", confirm=True))
    print_success("Password changed")
    return 0


def cmd_reset(args, store):
    email = _ask_email(args)
    print_warning(f"All data for {email}, including every 2FA account, will be permanently deleted.")
    if input("Type the email again to confirm: ").strip() != email:
        print_info("Reset cancelled")
        return 1
    reset_user(store, email)
    print_success("Account reset. Register again with a new password.")
    return 0


def _admin_console(args, store):
    console = AdminConsole(store)
    if not store.user_exists(console.admin_email):
        print_info(f"Creating administrator account {console.admin_email}")
        console.ensure_admin(_ask_password("New administrator password: ", confirm=True))
    console.login(console.admin_email, _ask_password("Administrator password: "))
    return console


def cmd_users(args, store):
    console = _admin_console(args, store)
    if args.rename:
        old_email, new_email = args.rename
        console.rename_user(old_email, new_email)
        print_success(f"Renamed {old_email} to {new_email}")
    elif args.reset_password:
        print_warning(f"Resetting the password erases every 2FA account of {args.reset_password}.")
        console.reset_password(args.reset_password, _ask_password("New password: ", confirm=True))
        print_success("Password reset")
    elif args.delete:
        console.delete_user(args.delete)
        print_success(f"Deleted {args.delete}")
    else:
        for record in console.list_users():
            print(record.email)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="codeflow", description="CodeFlow Authenticator: TOTP codes from an encrypted vault")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--store", default=None, help=f"Vault store file (default: {config.STORE_FILE})")
    parser.add_argument("--version", action="version", version=f"{config.APP_NAME} {config.APP_VERSION}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_command(name, handler, help_text):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--email", help="User email")
        sub.set_defaults(handler=handler)
        return sub

    add_command("register", cmd_register, "Create a new user")

    sub = add_command("codes", cmd_codes, "Show current codes")
    sub.add_argument("--watch", action="store_true", help="Keep refreshing every second")
    sub.add_argument("--search", help="Only show accounts whose issuer or name matches")

    sub = add_command("add", cmd_add, "Add an account manually")
    sub.add_argument("--name")
    sub.add_argument("--issuer")
    sub.add_argument("--secret")
    sub.add_argument("--username")

    sub = add_command("import-uri", cmd_import_uri, "Import an otpauth:// or otpauth-migration:// URI")
    sub.add_argument("uri", nargs="?")

    sub = add_command("import-qr", cmd_import_qr, "Import from a QR code image")
    sub.add_argument("image")

    sub = add_command("import-json", cmd_import_json, "Import a JSON account list")
    sub.add_argument("file")

    sub = add_command("export-json", cmd_export_json, "Export accounts as plaintext JSON")
    sub.add_argument("--output")

    sub = add_command("export-qr", cmd_export_qr, "Save an account as a QR code image")
    sub.add_argument("account_id")
    sub.add_argument("--output")

    sub = add_command("delete", cmd_delete, "Delete an account")
    sub.add_argument("account_id")

    add_command("change-password", cmd_change_password, "Change your password")
    add_command("reset", cmd_reset, "Forgot password: delete a user and all their data")

    sub = add_command("users", cmd_users, "Administrator: list and manage users")
    group = sub.add_mutually_exclusive_group()
    group.add_argument("--rename", nargs=2, metavar=("OLD", "NEW"))
    group.add_argument("--reset-password", metavar="EMAIL")
    group.add_argument("--delete", metavar="EMAIL")

    return parser


def main(argv=None):
    """
    Main entry point for the application.

    Returns:
        int: 0 for successful execution, non-zero for errors
    """
    args = build_parser().parse_args(argv)
    setup_logger()
    if args.debug:
        set_console_level(logging.DEBUG)
    if get_log_file_path():
        logger.debug(f"Logging to {get_log_file_path()}")

    store = AccountStore(JsonFileStore(args.store or config.STORE_FILE))
    try:
        return args.handler(args, store)
    except (CodeFlowError, ValueError) as e:
        print_error(str(e))
        return 1
    except (KeyboardInterrupt, EOFError):
        print()
        return 130


if __name__ == "__main__":
    sys.exit(main())
