# src/services/price_sync.py

"""Orchestrates the daily price synchronization of every tracked card."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from src.config.settings import Settings
from src.models.price_alert import PriceAlert
from src.models.price_observation import PriceObservation
from src.models.sync_run import (
    STATUS_FAILURE,
    STATUS_PARTIAL,
    STATUS_SUCCESS,
    SyncRun,
)
from src.services.alert_detector import PriceChangeAlertDetector
from src.services.card_price_service import CardPriceService
from src.services.errors import NetworkError, RateLimitError
from src.storage.price_history_db import PriceHistoryDB

logger = logging.getLogger("price_sync.sync")

MODE_BATCH = "batch"
MODE_SINGLE = "single"


class ItemStatus(Enum):
    """How a single card's sync attempt ended."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FATAL = "fatal"


@dataclass(frozen=True)
class ItemOutcome:
    """Result of one card's fetch-and-store attempt.

    ``SKIPPED`` covers cards unknown to the API and per-card failures;
    ``FATAL`` means the service itself is unavailable and the run must
    stop so the scheduler can retry it later.
    """

    card_id: str
    status: ItemStatus
    observation: PriceObservation | None = None
    error: Exception | None = None

    @property
    def not_found(self) -> bool:
        return self.status is ItemStatus.SKIPPED and self.error is None


@dataclass
class SyncResult:
    """Counters for a completed (or aborted) synchronization."""

    mode: str
    total_cards: int = 0
    already_synced: int = 0
    processed: int = 0
    succeeded: int = 0
    not_found: int = 0
    failed: int = 0
    elapsed_seconds: float = 0.0
    alerts: list[PriceAlert] = field(
        default_factory=lambda: list[PriceAlert]()
    )
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )

    def record(self, outcome: ItemOutcome) -> None:
        """Fold one card's outcome into the counters."""
        self.processed += 1
        if outcome.status is ItemStatus.SUCCESS:
            self.succeeded += 1
        elif outcome.not_found:
            self.not_found += 1
        else:
            self.failed += 1
            self.errors.append(f"{outcome.card_id}: {outcome.error}")


class BatchSyncOrchestrator:
    """Brings every tracked card's price up to date for the current day.

    Single-threaded by design: one active sync per external service.
    A run aborted by a rate limit or network outage keeps what it wrote,
    and the next run skips every card already observed today.
    """

    def __init__(
        self,
        db: PriceHistoryDB,
        price_service: CardPriceService,
        alert_detector: PriceChangeAlertDetector | None = None,
        clock: Callable[[], datetime] = datetime.now,
        batch_size: int | None = None,
        batch_delay: float | None = None,
    ) -> None:
        self.settings = Settings()
        self.db = db
        self.price_service = price_service
        self.alert_detector = alert_detector or PriceChangeAlertDetector(
            db, clock=clock,
        )
        self._clock = clock
        self.batch_size: int = batch_size or self.settings.SYNC_BATCH_SIZE
        self.batch_delay: float = (
            batch_delay
            if batch_delay is not None
            else self.settings.SYNC_BATCH_DELAY
        )

    # ── Job entry point ──────────────────────────────────

    def run(self, card_id: str | None = None) -> SyncResult:
        """Sync one card, or all cards when ``card_id`` is ``None``.

        Records a sync run either way.  Errors are re-raised after the
        run record is closed so the job scheduler can retry.
        """
        mode = MODE_BATCH if card_id is None else MODE_SINGLE
        sync_run = self.db.start_sync_run(
            SyncRun(started_at=self._clock(), mode=mode)
        )
        result = SyncResult(mode=mode)
        try:
            if card_id is None:
                self.sync_all(result)
            else:
                self._run_single(card_id, result)
        except Exception as exc:
            self._close_run(sync_run, result, STATUS_FAILURE, str(exc))
            raise

        status = STATUS_PARTIAL if result.failed else STATUS_SUCCESS
        self._close_run(sync_run, result, status)
        return result

    # ── Single-card mode ─────────────────────────────────

    def sync_card(self, card_id: str) -> PriceObservation | None:
        """Fetch and persist one card's prices.

        Returns ``None`` when the API does not know the card.  Every
        fetch error propagates to the caller.
        """
        if card_id is None or not str(card_id).strip():
            logger.error("sync_card: card_id is required")
            raise ValueError("card_id is required")

        logger.info("Updating prices for card: %s", card_id)
        try:
            observation = self._fetch_and_store(card_id)
        except (RateLimitError, NetworkError) as exc:
            logger.error(
                "Failed to update prices for card %s: %s", card_id, exc,
            )
            raise
        except Exception as exc:
            logger.error(
                "Unexpected error updating prices for card %s: %s",
                card_id,
                exc,
                exc_info=True,
            )
            raise
        if observation is not None:
            logger.info("Successfully updated prices for card: %s", card_id)
        return observation

    def _run_single(self, card_id: str, result: SyncResult) -> None:
        start = time.monotonic()
        result.total_cards = 1
        observation = self.sync_card(card_id)
        result.record(ItemOutcome(
            card_id=card_id,
            status=(
                ItemStatus.SUCCESS
                if observation is not None
                else ItemStatus.SKIPPED
            ),
            observation=observation,
        ))
        result.elapsed_seconds = round(time.monotonic() - start, 2)

    # ── Batch mode ───────────────────────────────────────

    def sync_all(self, result: SyncResult | None = None) -> SyncResult:
        """Fetch prices for every card not yet observed today.

        Re-raises :class:`RateLimitError` and exhausted
        :class:`NetworkError`, aborting the remaining batches.
        """
        result = result or SyncResult(mode=MODE_BATCH)
        start = time.monotonic()

        all_card_ids = self._resolve_working_set()
        result.total_cards = len(all_card_ids)
        if not all_card_ids:
            logger.info("No cards found to update")
            return result

        logger.info(
            "Starting batch price update for %d unique cards",
            len(all_card_ids),
        )
        pending = self._filter_unprocessed(all_card_ids)
        result.already_synced = len(all_card_ids) - len(pending)
        if not pending:
            logger.info("All cards already processed today")
            return result

        logger.info(
            "Processing %d cards (%d already processed today)",
            len(pending),
            result.already_synced,
        )

        batches = [
            pending[i:i + self.batch_size]
            for i in range(0, len(pending), self.batch_size)
        ]
        for index, batch in enumerate(batches):
            for card_id in batch:
                outcome = self._attempt_item(card_id)
                if (
                    outcome.status is ItemStatus.FATAL
                    and outcome.error is not None
                ):
                    logger.error(
                        "Failed batch processing at card %s: %s",
                        card_id,
                        outcome.error,
                    )
                    result.elapsed_seconds = round(
                        time.monotonic() - start, 2
                    )
                    # Completed cards are skipped on retry by the same-day filter
                    raise outcome.error
                result.record(outcome)
                if result.processed % self.settings.SYNC_PROGRESS_INTERVAL == 0:
                    logger.info("Processed %d cards...", result.processed)

            if index < len(batches) - 1:
                self._sleep_between_batches()

        result.elapsed_seconds = round(time.monotonic() - start, 2)
        logger.info(
            "Completed price update in %.2f seconds: %d processed, "
            "%d updated, %d not found, %d failed",
            result.elapsed_seconds,
            result.processed,
            result.succeeded,
            result.not_found,
            result.failed,
        )

        result.alerts = self._detect_price_changes()
        return result

    def _resolve_working_set(self) -> list[str]:
        """Distinct card ids across all owners and collection types."""
        seen: set[str] = set()
        card_ids: list[str] = []
        for card_id in self.db.distinct_card_ids():
            if card_id not in seen:
                seen.add(card_id)
                card_ids.append(card_id)
        return card_ids

    def _filter_unprocessed(self, card_ids: list[str]) -> list[str]:
        """Drop cards that already have an observation today."""
        today = self._clock().date()
        done = self.db.card_ids_observed_on(card_ids, today)
        return [c for c in card_ids if c not in done]

    def _attempt_item(self, card_id: str) -> ItemOutcome:
        """Fetch and store one card, classifying the result."""
        try:
            observation = self._fetch_and_store(card_id)
        except (RateLimitError, NetworkError) as exc:
            return ItemOutcome(card_id, ItemStatus.FATAL, error=exc)
        except Exception as exc:
            logger.error(
                "Error processing card %s: %s",
                card_id,
                exc,
                exc_info=True,
            )
            return ItemOutcome(card_id, ItemStatus.SKIPPED, error=exc)
        if observation is None:
            return ItemOutcome(card_id, ItemStatus.SKIPPED)
        return ItemOutcome(
            card_id, ItemStatus.SUCCESS, observation=observation,
        )

    def _fetch_and_store(self, card_id: str) -> PriceObservation | None:
        """Fetch prices and append an observation (even if all null)."""
        snapshot = self.price_service.fetch(card_id)
        if snapshot is None:
            logger.info("Card %s not found in pricing API", card_id)
            return None
        return self.db.create_price_observation(
            card_id=card_id,
            base_price=snapshot.base_price_minor_units,
            foil_price=snapshot.foil_price_minor_units,
            etched_price=snapshot.etched_price_minor_units,
            observed_at=self._clock(),
        )

    def _sleep_between_batches(self) -> None:
        """Pause between batches to spread load."""
        time.sleep(self.batch_delay)

    def _detect_price_changes(self) -> list[PriceAlert]:
        """Run alert detection; failures are logged, never raised."""
        logger.info("Detecting price changes for alerts...")
        start = time.monotonic()
        try:
            alerts = self.alert_detector.detect_changes()
        except Exception as exc:
            logger.error(
                "Error detecting price changes: %s", exc, exc_info=True,
            )
            return []
        logger.info(
            "Created %d price alerts in %.2f seconds",
            len(alerts),
            time.monotonic() - start,
        )
        return alerts

    # ── Run bookkeeping ──────────────────────────────────

    def _close_run(
        self,
        sync_run: SyncRun,
        result: SyncResult,
        status: str,
        error: str = "",
    ) -> None:
        sync_run.finished_at = self._clock()
        sync_run.status = status
        sync_run.cards_attempted = result.processed
        sync_run.cards_succeeded = result.succeeded
        sync_run.cards_failed = result.failed
        sync_run.alerts_created = len(result.alerts)
        sync_run.error = error
        self.db.finish_sync_run(sync_run)
