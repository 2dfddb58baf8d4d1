"""Command-line front end for the basic bank."""

import argparse
import getpass
import sys
from decimal import Decimal
from typing import List, Optional

from .config import BankConfig, get_config
from .coordinator import CONFIRM_LABELS, ActionCoordinator, ActionStatus, BlockingScheduler
from .currency import format_inr
from .errors import BankError
from .events import EventDispatcher
from .ledger import EntryType
from .logging_config import setup_logging
from .reporting import build_dashboard
from .session import SessionManager
from .storage import create_storage


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="basicbank",
        description="A single-user toy bank kept in a local store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  basicbank signup --name "Asha Rao" --mobile "+91 98765 43210" --pin 1234
  basicbank deposit 500
  basicbank transfer 9123456789 250.50
  basicbank statement --search deposit --limit 5
        """,
    )
    parser.add_argument(
        "--store",
        help="Path of the store file (default: from configuration)",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Confirm large transactions without asking",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Debug logging",
    )

    commands = parser.add_subparsers(dest="command", metavar="command")
    commands.required = True

    signup = commands.add_parser("signup", help="Create the user and account")
    signup.add_argument("--name", required=True)
    signup.add_argument("--mobile", required=True)
    signup.add_argument("--pin", help="4-digit PIN (prompted if omitted)")

    login = commands.add_parser("login", help="Log in with mobile and PIN")
    login.add_argument("--mobile", required=True)
    login.add_argument("--pin", help="4-digit PIN (prompted if omitted)")

    deposit = commands.add_parser("deposit", help="Deposit cash")
    deposit.add_argument("amount")

    withdraw = commands.add_parser("withdraw", help="Withdraw cash")
    withdraw.add_argument("amount")

    transfer = commands.add_parser("transfer", help="Send money to a mobile number")
    transfer.add_argument("mobile")
    transfer.add_argument("amount")

    statement = commands.add_parser("statement", help="Show balance and recent transactions")
    statement.add_argument("--search", default="", help="Filter by type, reference or amount")
    statement.add_argument("--limit", type=int, help="Number of entries to show")

    commands.add_parser("profile", help="Show profile and account details")

    rename = commands.add_parser("rename", help="Change the display name")
    rename.add_argument("name")

    change_pin = commands.add_parser("change-pin", help="Change the PIN")
    change_pin.add_argument("--current", help="Current PIN (prompted if omitted)")
    change_pin.add_argument("--new", help="New PIN (prompted if omitted)")

    return parser


def _pin(value: Optional[str], prompt: str = "PIN: ") -> str:
    return value if value is not None else getpass.getpass(prompt)


def _prompt_confirm(entry_type: EntryType, amount: Decimal) -> bool:
    answer = input(f"Confirm {CONFIRM_LABELS[entry_type].lower()} of {format_inr(amount)}? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def _print_errors(error: BankError) -> None:
    for field_error in error.errors:
        print(f"Error ({field_error.field}): {field_error.message}", file=sys.stderr)


def _run_action(coordinator: ActionCoordinator, args: argparse.Namespace) -> int:
    if args.command == "deposit":
        action = coordinator.deposit(args.amount)
    elif args.command == "withdraw":
        action = coordinator.withdraw(args.amount)
    else:
        action = coordinator.transfer(args.mobile, args.amount)

    if action is None:
        print("Cancelled.")
        return 0
    if action.status == ActionStatus.FAILED:
        if isinstance(action.error, BankError):
            _print_errors(action.error)
        else:
            print(f"Error: {action.error}", file=sys.stderr)
        return 1

    print(action.success_message)
    print(f"Balance: {format_inr(coordinator.session.ledger.balance)}")
    return 0


def _show_statement(session: SessionManager, args: argparse.Namespace, config: BankConfig) -> int:
    view = build_dashboard(session, query=args.search, limit=args.limit, config=config)
    print(f"Balance: {view.balance_text}")
    print(f"Credit score: {view.credit.score} ({view.credit.label})")
    if view.empty_message:
        print(view.empty_message)
        return 0
    for line in view.statement:
        sign = "+" if line.entry_type == EntryType.DEPOSIT.value else "-"
        print(f"{line.timestamp:%Y-%m-%d %H:%M}  {line.entry_type:<8}  "
              f"{line.reference:<20}  {sign}{line.amount:>14}  {line.balance:>14}")
    return 0


def _show_profile(session: SessionManager, config: BankConfig) -> int:
    view = build_dashboard(session, limit=0, config=config)
    print(f"Name: {view.name}")
    print(f"Mobile: {view.mobile}")
    print(f"Account: {config.account_label} {view.account_number}")
    print(f"Balance: {view.balance_text}")
    print(f"Credit score: {view.credit.score} ({view.credit.label})")
    if view.previous_login:
        print(f"Last login: {view.previous_login:%Y-%m-%d %H:%M}")
    return 0


def main(argv: Optional[List[str]] = None, config: Optional[BankConfig] = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    config = config or get_config()
    if args.store:
        config = config.model_copy(update={"storage_path": args.store})

    setup_logging(
        level="DEBUG" if args.verbose else config.log_level,
        log_format=config.log_format,
        log_file=config.log_file
    )

    storage = create_storage(config)
    events = EventDispatcher()
    session = SessionManager(storage, config, event_dispatcher=events)
    session.resume()

    try:
        if args.command == "signup":
            user = session.signup(args.name, args.mobile, _pin(args.pin))
            print(f"Welcome, {user.name}. Account {session.account.account_number} is open.")
            return 0

        if args.command == "login":
            user = session.login(args.mobile, _pin(args.pin))
            print(f"Welcome back, {user.name}.")
            if session.previous_login:
                print(f"Last login: {session.previous_login:%Y-%m-%d %H:%M}")
            return 0

        if args.command in ("deposit", "withdraw", "transfer"):
            coordinator = ActionCoordinator(
                session,
                scheduler=BlockingScheduler(),
                confirm=(lambda entry_type, amount: True) if args.yes else _prompt_confirm,
                config=config,
                event_dispatcher=events
            )
            return _run_action(coordinator, args)

        if args.command == "statement":
            return _show_statement(session, args, config)

        if args.command == "profile":
            return _show_profile(session, config)

        if args.command == "rename":
            user = session.change_name(args.name)
            print(f"Name changed to {user.name}.")
            return 0

        if args.command == "change-pin":
            session.change_pin(_pin(args.current, "Current PIN: "), _pin(args.new, "New PIN: "))
            print("PIN changed.")
            return 0
    except BankError as e:
        _print_errors(e)
        return 1
    finally:
        storage.close()

    return 1


if __name__ == "__main__":
    sys.exit(main())
