# main.py

"""Entry point for the price_sync command line."""

import argparse
import logging
import sys

from src.config.logging_config import setup_logging

logger = logging.getLogger("price_sync.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="price_sync",
        description="Card market price tracker for collection holdings.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Refresh prices (all cards by default).")
    sync.add_argument(
        "--card",
        default=None,
        dest="card_id",
        help="Sync a single Scryfall card id instead of the whole working set.",
    )

    sub.add_parser("detect-alerts", help="Run one alert detection pass.")

    alerts = sub.add_parser("alerts", help="List an owner's price alerts.")
    alerts.add_argument("owner_id", type=int)
    alerts.add_argument(
        "--all",
        action="store_true",
        default=False,
        dest="include_dismissed",
        help="Include dismissed alerts.",
    )

    dismiss = sub.add_parser("dismiss", help="Dismiss a price alert.")
    dismiss.add_argument("alert_id", type=int)

    history = sub.add_parser("history", help="Show a card's price history.")
    history.add_argument("card_id")
    history.add_argument(
        "--period",
        choices=["7", "30", "90", "365", "all"],
        default="30",
        help="Days of history to show (default: 30).",
    )

    value = sub.add_parser("value", help="Value an owner's inventory.")
    value.add_argument("owner_id", type=int)
    value.add_argument(
        "--timeline",
        type=int,
        choices=[7, 30, 90],
        default=None,
        dest="timeline_days",
        help="Show the value of each day over the last N days.",
    )

    holding = sub.add_parser("add-holding", help="Add a card to a collection.")
    holding.add_argument("owner_id", type=int)
    holding.add_argument("card_id")
    holding.add_argument(
        "--wishlist",
        action="store_true",
        default=False,
        help="Add to the wishlist instead of the inventory.",
    )
    holding.add_argument("--treatment", default=None)
    holding.add_argument("--quantity", type=int, default=1)

    commanders = sub.add_parser(
        "commanders", help="Show EDHREC top commanders or a decklist.",
    )
    commanders.add_argument(
        "--decklist",
        default=None,
        dest="decklist_url",
        help="EDHREC commander URL whose average decklist to show.",
    )

    runs = sub.add_parser("runs", help="Show recent sync runs.")
    runs.add_argument("--limit", type=int, default=10)
    return parser


def _dispatch(args: argparse.Namespace) -> int:
    """Route parsed arguments to the matching runner command."""
    from src.cli import runner

    if args.command == "sync":
        return runner.run_sync(args.card_id)
    if args.command == "detect-alerts":
        return runner.run_detect_alerts()
    if args.command == "alerts":
        return runner.run_list_alerts(args.owner_id, args.include_dismissed)
    if args.command == "dismiss":
        return runner.run_dismiss_alert(args.alert_id)
    if args.command == "history":
        return runner.run_price_history(args.card_id, args.period)
    if args.command == "value":
        return runner.run_inventory_value(args.owner_id, args.timeline_days)
    if args.command == "add-holding":
        return runner.run_add_holding(
            args.owner_id,
            args.card_id,
            wishlist=args.wishlist,
            treatment=args.treatment,
            quantity=args.quantity,
        )
    if args.command == "commanders":
        return runner.run_commanders(args.decklist_url)
    return runner.run_sync_runs(args.limit)


def main() -> None:
    """Parse arguments, set up logging and run one command."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(run_name=args.command.replace("-", "_"))
    logger.info("price_sync %s starting, log file: %s", args.command, log_file)

    try:
        exit_code = _dispatch(args)
    except Exception:
        logger.critical("Fatal error during %s", args.command, exc_info=True)
        raise
    finally:
        logger.info("price_sync %s finished", args.command)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
