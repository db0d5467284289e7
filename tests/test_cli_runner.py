# tests/test_cli_runner.py

"""Tests for the headless CLI commands and argument parsing."""

import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

from main import _build_parser
from src.cli import runner
from src.models.collection_item import CollectionItem
from src.models.price_alert import PriceAlert
from src.models.price_observation import PriceSnapshot
from src.services.decklist_source import Commander
from src.services.errors import DecklistParseError, RateLimitError
from src.storage.price_history_db import PriceHistoryDB

DAY = datetime(2026, 2, 14, 2, 0)


class _CliTestCase(unittest.TestCase):
    """Commands share one store that stays open across calls."""

    def setUp(self) -> None:
        self.db_path = Path(tempfile.mkdtemp()) / "test.db"
        self.db = PriceHistoryDB(db_path=self.db_path)

    def tearDown(self) -> None:
        self.db.close()


class TestFormatting(unittest.TestCase):
    def test_format_minor_units(self) -> None:
        self.assertEqual(runner.format_minor_units(199), "$1.99")
        self.assertEqual(runner.format_minor_units(123450), "$1,234.50")
        self.assertEqual(runner.format_minor_units(None), "N/A")


class TestHoldingAndReportCommands(_CliTestCase):
    """Commands that only touch the local store."""

    def test_add_holding(self) -> None:
        code = runner.run_add_holding(
            7, "abc", treatment="Foil", quantity=2, db=self.db,
        )
        self.assertEqual(code, 0)
        items = self.db.collection_items_for(7)
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].quantity, 2)
        self.assertEqual(items[0].finish, "foil")

    def test_add_wishlist_holding(self) -> None:
        runner.run_add_holding(7, "abc", wishlist=True, db=self.db)
        self.assertEqual(
            self.db.collection_items_for(7)[0].collection_type, "wishlist",
        )

    def test_add_holding_rejects_bad_quantity(self) -> None:
        code = runner.run_add_holding(7, "abc", quantity=0, db=self.db)
        self.assertEqual(code, 1)
        self.assertEqual(self.db.collection_items_for(7), [])

    def test_history_without_data(self) -> None:
        self.assertEqual(runner.run_price_history("abc", db=self.db), 1)

    def test_history_with_data(self) -> None:
        self.db.create_price_observation("abc", 199, None, 1250, DAY)
        self.db.create_price_observation(
            "abc", 249, None, 1000, DAY + timedelta(days=1),
        )
        self.assertEqual(
            runner.run_price_history("abc", period="all", db=self.db), 0,
        )

    def test_history_period_hides_older_observations(self) -> None:
        now = datetime.now()
        self.db.create_price_observation(
            "abc", 199, None, None, now - timedelta(days=40),
        )
        self.assertEqual(runner.run_price_history("abc", db=self.db), 1)
        self.assertEqual(
            runner.run_price_history("abc", period="90", db=self.db), 0,
        )

    def test_history_rejects_unknown_period(self) -> None:
        with self.assertRaises(ValueError):
            runner.run_price_history("abc", period="14", db=self.db)

    def test_list_and_dismiss_alerts(self) -> None:
        alert = self.db.create_price_alert(PriceAlert(
            owner_id=7,
            card_id="abc",
            alert_kind="decrease",
            previous_price_minor_units=1000,
            new_price_minor_units=500,
            percent_change=-50.0,
            finish="normal",
            created_at=DAY,
        ))
        assert alert.id is not None
        self.assertEqual(runner.run_list_alerts(7, db=self.db), 0)
        self.assertEqual(runner.run_dismiss_alert(alert.id, db=self.db), 0)
        self.assertEqual(runner.run_dismiss_alert(alert.id, db=self.db), 1)
        self.assertEqual(
            runner.run_list_alerts(7, include_dismissed=True, db=self.db), 0,
        )

    def test_list_alerts_empty(self) -> None:
        self.assertEqual(runner.run_list_alerts(7, db=self.db), 0)

    def test_inventory_value(self) -> None:
        self.db.add_collection_item(CollectionItem(7, "abc", quantity=3))
        self.db.create_price_observation("abc", 199, None, None, DAY)
        self.assertEqual(runner.run_inventory_value(7, db=self.db), 0)

    def test_inventory_value_timeline(self) -> None:
        self.db.add_collection_item(CollectionItem(7, "abc", quantity=3))
        self.db.create_price_observation(
            "abc", 199, None, None, datetime.now() - timedelta(days=3),
        )
        for days in (7, 30, 90):
            with self.subTest(days=days):
                self.assertEqual(
                    runner.run_inventory_value(
                        7, timeline_days=days, db=self.db,
                    ),
                    0,
                )

    def test_inventory_value_timeline_rejects_unknown_period(self) -> None:
        self.assertEqual(
            runner.run_inventory_value(7, timeline_days=14, db=self.db), 1,
        )

    def test_detect_alerts(self) -> None:
        self.assertEqual(runner.run_detect_alerts(db=self.db), 0)

    def test_sync_runs(self) -> None:
        self.assertEqual(runner.run_sync_runs(db=self.db), 0)

    def test_commands_leave_caller_store_open(self) -> None:
        runner.run_add_holding(7, "abc", db=self.db)
        runner.run_list_alerts(7, db=self.db)
        runner.run_price_history("abc", db=self.db)
        runner.run_inventory_value(7, db=self.db)
        runner.run_inventory_value(7, timeline_days=7, db=self.db)
        runner.run_sync_runs(db=self.db)
        runner.run_detect_alerts(db=self.db)
        self.assertEqual(len(self.db.collection_items_for(7)), 1)

    @patch("src.cli.runner.PriceHistoryDB")
    def test_commands_close_store_they_open(
        self, mock_db_cls: MagicMock,
    ) -> None:
        mock_db_cls.return_value.list_alerts.return_value = []
        self.assertEqual(runner.run_list_alerts(7), 0)
        mock_db_cls.return_value.close.assert_called_once()


@patch("src.cli.runner.CardPriceService")
class TestSyncCommand(_CliTestCase):
    """run_sync wiring and exit codes."""

    def test_sync_success(self, mock_service_cls: MagicMock) -> None:
        mock_service_cls.return_value.fetch.return_value = PriceSnapshot(
            card_id="abc",
            base_price_minor_units=199,
            foil_price_minor_units=None,
            etched_price_minor_units=None,
            fetched_at=DAY,
        )
        self.db.add_collection_item(CollectionItem(7, "abc"))
        self.assertEqual(runner.run_sync(db=self.db), 0)

        self.assertEqual(len(self.db.get_price_history("abc")), 1)
        self.assertEqual(self.db.recent_sync_runs()[0].status, "success")
        mock_service_cls.return_value.close.assert_called_once()

    def test_sync_with_no_cards(self, mock_service_cls: MagicMock) -> None:
        self.assertEqual(runner.run_sync(db=self.db), 0)
        mock_service_cls.return_value.fetch.assert_not_called()

    def test_sync_aborted_by_rate_limit(
        self, mock_service_cls: MagicMock,
    ) -> None:
        mock_service_cls.return_value.fetch.side_effect = RateLimitError(
            "scryfall rate limit exceeded", "scryfall",
        )
        self.db.add_collection_item(CollectionItem(7, "abc"))
        self.assertEqual(runner.run_sync(db=self.db), 1)
        self.assertEqual(self.db.recent_sync_runs()[0].status, "failure")

    def test_single_card_sync(self, mock_service_cls: MagicMock) -> None:
        mock_service_cls.return_value.fetch.return_value = None
        self.assertEqual(runner.run_sync("ghost", db=self.db), 0)
        self.assertEqual(self.db.recent_sync_runs()[0].mode, "single")

    def test_pipeline_only_closes_store_it_opened(
        self, mock_service_cls: MagicMock,
    ) -> None:
        borrowed = runner.build_pipeline(self.db)
        self.assertFalse(borrowed.owns_db)
        borrowed.close()
        self.assertEqual(self.db.recent_sync_runs(), [])

        with patch("src.cli.runner.PriceHistoryDB") as mock_db_cls:
            owned = runner.build_pipeline()
            self.assertTrue(owned.owns_db)
            owned.close()
            mock_db_cls.return_value.close.assert_called_once()


@patch("src.cli.runner.CardNameResolver")
@patch("src.cli.runner.DecklistSource")
class TestCommandersCommand(unittest.TestCase):
    """run_commanders with the EDHREC source mocked out."""

    def test_top_commanders(
        self, mock_source_cls: MagicMock, mock_resolver_cls: MagicMock,
    ) -> None:
        mock_source_cls.return_value.fetch_top_commanders.return_value = [
            Commander("Atraxa", 1, "https://edhrec.com/commanders/atraxa"),
        ]
        self.assertEqual(runner.run_commanders(), 0)
        mock_source_cls.return_value.close.assert_called_once()
        mock_resolver_cls.return_value.close.assert_called_once()

    def test_decklist(
        self, mock_source_cls: MagicMock, mock_resolver_cls: MagicMock,
    ) -> None:
        mock_source_cls.return_value.fetch_commander_decklist.return_value = []
        url = "https://edhrec.com/commanders/atraxa"
        self.assertEqual(runner.run_commanders(url), 0)
        mock_source_cls.return_value.fetch_commander_decklist.assert_called_once_with(url)

    def test_parse_error_exit_code(
        self, mock_source_cls: MagicMock, mock_resolver_cls: MagicMock,
    ) -> None:
        mock_source_cls.return_value.fetch_top_commanders.side_effect = (
            DecklistParseError("layout changed")
        )
        self.assertEqual(runner.run_commanders(), 1)


class TestArgumentParser(unittest.TestCase):
    """main._build_parser subcommands."""

    def setUp(self) -> None:
        self.parser = _build_parser()

    def test_sync_defaults_to_batch(self) -> None:
        args = self.parser.parse_args(["sync"])
        self.assertEqual(args.command, "sync")
        self.assertIsNone(args.card_id)

    def test_sync_single_card(self) -> None:
        args = self.parser.parse_args(["sync", "--card", "abc"])
        self.assertEqual(args.card_id, "abc")

    def test_alerts_all(self) -> None:
        args = self.parser.parse_args(["alerts", "7", "--all"])
        self.assertEqual(args.owner_id, 7)
        self.assertTrue(args.include_dismissed)

    def test_add_holding(self) -> None:
        args = self.parser.parse_args([
            "add-holding", "7", "abc", "--wishlist", "--quantity", "3",
        ])
        self.assertTrue(args.wishlist)
        self.assertEqual(args.quantity, 3)
        self.assertIsNone(args.treatment)

    def test_history_period(self) -> None:
        self.assertEqual(self.parser.parse_args(["history", "abc"]).period, "30")
        args = self.parser.parse_args(["history", "abc", "--period", "all"])
        self.assertEqual(args.period, "all")
        with self.assertRaises(SystemExit):
            self.parser.parse_args(["history", "abc", "--period", "14"])

    def test_value_timeline(self) -> None:
        self.assertIsNone(self.parser.parse_args(["value", "7"]).timeline_days)
        args = self.parser.parse_args(["value", "7", "--timeline", "90"])
        self.assertEqual(args.timeline_days, 90)
        with self.assertRaises(SystemExit):
            self.parser.parse_args(["value", "7", "--timeline", "14"])

    def test_command_is_required(self) -> None:
        with self.assertRaises(SystemExit):
            self.parser.parse_args([])


if __name__ == "__main__":
    unittest.main()
