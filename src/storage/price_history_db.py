# src/storage/price_history_db.py

"""SQLite-backed store for holdings, price history, alerts and sync runs.

Timestamps are naive local wall-clock times stored as ISO text, so text
order equals time order except across a daylight-saving fall-back, where
the repeated hour can order observations out of sequence.  Rows written
with the same timestamp are ordered by id.
"""

import logging
import sqlite3
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta
from pathlib import Path

from src.config.settings import Settings
from src.models.collection_item import (
    COLLECTION_INVENTORY,
    COLLECTION_TYPES,
    CollectionItem,
)
from src.models.price_alert import PriceAlert
from src.models.price_observation import PriceObservation
from src.models.sync_run import SyncRun

logger = logging.getLogger("price_sync.price_history")

# SQLite caps bound parameters per statement
_IN_CHUNK = 500

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS collection_items (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id        INTEGER NOT NULL,
    card_id         TEXT    NOT NULL,
    collection_type TEXT    NOT NULL,
    quantity        INTEGER NOT NULL DEFAULT 1,
    treatment       TEXT,
    UNIQUE (owner_id, card_id, collection_type)
);

CREATE TABLE IF NOT EXISTS price_observations (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    card_id      TEXT    NOT NULL,
    base_price   INTEGER,
    foil_price   INTEGER,
    etched_price INTEGER,
    observed_at  TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_observations_card_date
    ON price_observations(card_id, observed_at);

CREATE TABLE IF NOT EXISTS price_alerts (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    owner_id       INTEGER NOT NULL,
    card_id        TEXT    NOT NULL,
    alert_kind     TEXT    NOT NULL,
    previous_price INTEGER NOT NULL,
    new_price      INTEGER NOT NULL,
    percent_change REAL    NOT NULL,
    finish         TEXT    NOT NULL,
    created_at     TEXT    NOT NULL,
    dismissed      INTEGER NOT NULL DEFAULT 0,
    dismissed_at   TEXT
);

CREATE INDEX IF NOT EXISTS idx_alerts_owner_card_created
    ON price_alerts(owner_id, card_id, created_at);

CREATE TABLE IF NOT EXISTS sync_runs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    mode            TEXT    NOT NULL,
    started_at      TEXT    NOT NULL,
    finished_at     TEXT,
    status          TEXT,
    cards_attempted INTEGER NOT NULL DEFAULT 0,
    cards_succeeded INTEGER NOT NULL DEFAULT 0,
    cards_failed    INTEGER NOT NULL DEFAULT 0,
    alerts_created  INTEGER NOT NULL DEFAULT 0,
    error           TEXT    NOT NULL DEFAULT ''
);
"""

_OBSERVATION_COLUMNS = (
    "id, card_id, base_price, foil_price, etched_price, observed_at"
)

_ALERT_COLUMNS = (
    "id, owner_id, card_id, alert_kind, previous_price, new_price, "
    "percent_change, finish, created_at, dismissed, dismissed_at"
)

_RUN_COLUMNS = (
    "id, mode, started_at, finished_at, status, cards_attempted, "
    "cards_succeeded, cards_failed, alerts_created, error"
)


def _ts(value: datetime) -> str:
    """Serialise a timestamp so that text order equals time order."""
    return value.isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _day_bounds(day: date) -> tuple[str, str]:
    """Inclusive start / exclusive end of a calendar day as text."""
    start = datetime.combine(day, time.min)
    return _ts(start), _ts(start + timedelta(days=1))


def _chunks(values: list[str], size: int = _IN_CHUNK) -> Iterable[list[str]]:
    for i in range(0, len(values), size):
        yield values[i:i + size]


def _row_to_observation(r: tuple) -> PriceObservation:
    return PriceObservation(
        id=r[0],
        card_id=r[1],
        base_price_minor_units=r[2],
        foil_price_minor_units=r[3],
        etched_price_minor_units=r[4],
        observed_at=datetime.fromisoformat(r[5]),
    )


def _row_to_alert(r: tuple) -> PriceAlert:
    return PriceAlert(
        id=r[0],
        owner_id=r[1],
        card_id=r[2],
        alert_kind=r[3],
        previous_price_minor_units=r[4],
        new_price_minor_units=r[5],
        percent_change=r[6],
        finish=r[7],
        created_at=datetime.fromisoformat(r[8]),
        dismissed=bool(r[9]),
        dismissed_at=_parse_ts(r[10]),
    )


def _row_to_run(r: tuple) -> SyncRun:
    started = datetime.fromisoformat(r[2])
    return SyncRun(
        id=r[0],
        mode=r[1],
        started_at=started,
        finished_at=_parse_ts(r[3]),
        status=r[4],
        cards_attempted=r[5],
        cards_succeeded=r[6],
        cards_failed=r[7],
        alerts_created=r[8],
        error=r[9],
    )


class PriceHistoryDB:
    """SQLite store backing the sync pipeline.

    Price observations are append-only; alerts are only ever updated to
    mark them dismissed.
    """

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.PRICE_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        logger.debug("PriceHistoryDB opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # ── Holdings (working set) ───────────────────────────

    def add_collection_item(self, item: CollectionItem) -> None:
        """Insert a holding, or update quantity/treatment if present."""
        if item.collection_type not in COLLECTION_TYPES:
            raise ValueError(
                f"Unknown collection type: {item.collection_type!r}"
            )
        if item.quantity <= 0:
            raise ValueError("quantity must be positive")
        self._conn.execute(
            "INSERT INTO collection_items "
            "(owner_id, card_id, collection_type, quantity, treatment) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(owner_id, card_id, collection_type) DO UPDATE SET "
            "quantity=excluded.quantity, treatment=excluded.treatment",
            (
                item.owner_id,
                item.card_id,
                item.collection_type,
                item.quantity,
                item.treatment,
            ),
        )
        self._conn.commit()

    def distinct_card_ids(self) -> list[str]:
        """Every card id held by anyone, in first-added order."""
        rows = self._conn.execute(
            "SELECT card_id FROM collection_items "
            "GROUP BY card_id ORDER BY MIN(id)",
        ).fetchall()
        return [r[0] for r in rows]

    def inventory_card_ids(self) -> list[str]:
        """Distinct card ids held in any owner's inventory."""
        rows = self._conn.execute(
            "SELECT card_id FROM collection_items "
            "WHERE collection_type = ? "
            "GROUP BY card_id ORDER BY MIN(id)",
            (COLLECTION_INVENTORY,),
        ).fetchall()
        return [r[0] for r in rows]

    def inventory_holders(self, card_id: str) -> list[CollectionItem]:
        """Inventory rows (one per owner) holding ``card_id``."""
        rows = self._conn.execute(
            "SELECT owner_id, card_id, collection_type, quantity, treatment "
            "FROM collection_items "
            "WHERE card_id = ? AND collection_type = ? "
            "ORDER BY owner_id",
            (card_id, COLLECTION_INVENTORY),
        ).fetchall()
        return [CollectionItem(*r) for r in rows]

    def collection_items_for(
        self,
        owner_id: int,
        collection_type: str | None = None,
    ) -> list[CollectionItem]:
        """An owner's holdings, optionally limited to one collection."""
        sql = (
            "SELECT owner_id, card_id, collection_type, quantity, treatment "
            "FROM collection_items WHERE owner_id = ?"
        )
        params: list[object] = [owner_id]
        if collection_type is not None:
            sql += " AND collection_type = ?"
            params.append(collection_type)
        rows = self._conn.execute(sql + " ORDER BY id", params).fetchall()
        return [CollectionItem(*r) for r in rows]

    # ── Price observations ───────────────────────────────

    def create_price_observation(
        self,
        card_id: str,
        base_price: int | None,
        foil_price: int | None,
        etched_price: int | None,
        observed_at: datetime,
    ) -> PriceObservation:
        """Append one observation; all three prices may be ``None``."""
        cur = self._conn.execute(
            "INSERT INTO price_observations "
            "(card_id, base_price, foil_price, etched_price, observed_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (card_id, base_price, foil_price, etched_price, _ts(observed_at)),
        )
        self._conn.commit()
        return PriceObservation(
            id=cur.lastrowid,
            card_id=card_id,
            base_price_minor_units=base_price,
            foil_price_minor_units=foil_price,
            etched_price_minor_units=etched_price,
            observed_at=observed_at,
        )

    def latest_observations(
        self, card_id: str, limit: int = 2,
    ) -> list[PriceObservation]:
        """Most recent observations for a card, newest first."""
        rows = self._conn.execute(
            f"SELECT {_OBSERVATION_COLUMNS} FROM price_observations "
            "WHERE card_id = ? "
            "ORDER BY observed_at DESC, id DESC LIMIT ?",
            (card_id, limit),
        ).fetchall()
        return [_row_to_observation(r) for r in rows]

    def latest_observation(self, card_id: str) -> PriceObservation | None:
        """The newest observation for a card, if any."""
        latest = self.latest_observations(card_id, limit=1)
        return latest[0] if latest else None

    def observations_on_date(
        self, card_id: str, day: date,
    ) -> list[PriceObservation]:
        """Observations of a card made on the given calendar day."""
        start, end = _day_bounds(day)
        rows = self._conn.execute(
            f"SELECT {_OBSERVATION_COLUMNS} FROM price_observations "
            "WHERE card_id = ? AND observed_at >= ? AND observed_at < ? "
            "ORDER BY observed_at ASC, id ASC",
            (card_id, start, end),
        ).fetchall()
        return [_row_to_observation(r) for r in rows]

    def card_ids_observed_on(
        self, card_ids: list[str], day: date,
    ) -> set[str]:
        """Subset of ``card_ids`` with at least one observation on ``day``."""
        start, end = _day_bounds(day)
        seen: set[str] = set()
        for chunk in _chunks(card_ids):
            placeholders = ",".join("?" * len(chunk))
            rows = self._conn.execute(
                "SELECT DISTINCT card_id FROM price_observations "
                f"WHERE card_id IN ({placeholders}) "
                "AND observed_at >= ? AND observed_at < ?",
                (*chunk, start, end),
            ).fetchall()
            seen.update(r[0] for r in rows)
        return seen

    def latest_observation_before(
        self, card_id: str, cutoff: datetime,
    ) -> PriceObservation | None:
        """The newest observation made strictly before ``cutoff``."""
        row = self._conn.execute(
            f"SELECT {_OBSERVATION_COLUMNS} FROM price_observations "
            "WHERE card_id = ? AND observed_at < ? "
            "ORDER BY observed_at DESC, id DESC LIMIT 1",
            (card_id, _ts(cutoff)),
        ).fetchone()
        return _row_to_observation(row) if row else None

    def get_price_history(
        self, card_id: str, since: datetime | None = None,
    ) -> list[PriceObservation]:
        """Observations for a card, oldest first.

        With ``since``, only observations made at or after it are returned.
        """
        sql = (
            f"SELECT {_OBSERVATION_COLUMNS} FROM price_observations "
            "WHERE card_id = ?"
        )
        params: list[str] = [card_id]
        if since is not None:
            sql += " AND observed_at >= ?"
            params.append(_ts(since))
        rows = self._conn.execute(
            sql + " ORDER BY observed_at ASC, id ASC", params,
        ).fetchall()
        return [_row_to_observation(r) for r in rows]

    # ── Alerts ───────────────────────────────────────────

    def create_price_alert(self, alert: PriceAlert) -> PriceAlert:
        """Persist ``alert`` and return it with its id set."""
        cur = self._conn.execute(
            "INSERT INTO price_alerts "
            "(owner_id, card_id, alert_kind, previous_price, new_price, "
            " percent_change, finish, created_at, dismissed, dismissed_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                alert.owner_id,
                alert.card_id,
                alert.alert_kind,
                alert.previous_price_minor_units,
                alert.new_price_minor_units,
                alert.percent_change,
                alert.finish,
                _ts(alert.created_at),
                int(alert.dismissed),
                _ts(alert.dismissed_at) if alert.dismissed_at else None,
            ),
        )
        self._conn.commit()
        alert.id = cur.lastrowid
        return alert

    def recent_alert_exists(
        self,
        owner_id: int,
        card_id: str,
        within: timedelta,
        now: datetime | None = None,
    ) -> bool:
        """True if an undismissed alert for the pair is younger than ``within``."""
        current = now or datetime.now()
        row = self._conn.execute(
            "SELECT 1 FROM price_alerts "
            "WHERE owner_id = ? AND card_id = ? AND dismissed = 0 "
            "AND created_at >= ? AND created_at <= ? LIMIT 1",
            (owner_id, card_id, _ts(current - within), _ts(current)),
        ).fetchone()
        return row is not None

    def list_alerts(
        self,
        owner_id: int,
        include_dismissed: bool = False,
    ) -> list[PriceAlert]:
        """An owner's alerts, newest first."""
        sql = f"SELECT {_ALERT_COLUMNS} FROM price_alerts WHERE owner_id = ?"
        if not include_dismissed:
            sql += " AND dismissed = 0"
        rows = self._conn.execute(
            sql + " ORDER BY created_at DESC, id DESC", (owner_id,),
        ).fetchall()
        return [_row_to_alert(r) for r in rows]

    def dismiss_alert(
        self, alert_id: int, now: datetime | None = None,
    ) -> bool:
        """Mark an alert dismissed. Returns False if it does not exist."""
        cur = self._conn.execute(
            "UPDATE price_alerts SET dismissed = 1, dismissed_at = ? "
            "WHERE id = ? AND dismissed = 0",
            (_ts(now or datetime.now()), alert_id),
        )
        self._conn.commit()
        return cur.rowcount > 0

    # ── Sync runs ────────────────────────────────────────

    def start_sync_run(self, run: SyncRun) -> SyncRun:
        """Insert an unfinished run record."""
        cur = self._conn.execute(
            "INSERT INTO sync_runs (mode, started_at) VALUES (?, ?)",
            (run.mode, _ts(run.started_at)),
        )
        self._conn.commit()
        run.id = cur.lastrowid
        return run

    def finish_sync_run(self, run: SyncRun) -> None:
        """Write the outcome of a run started with :meth:`start_sync_run`."""
        self._conn.execute(
            "UPDATE sync_runs SET finished_at = ?, status = ?, "
            "cards_attempted = ?, cards_succeeded = ?, cards_failed = ?, "
            "alerts_created = ?, error = ? WHERE id = ?",
            (
                _ts(run.finished_at) if run.finished_at else None,
                run.status,
                run.cards_attempted,
                run.cards_succeeded,
                run.cards_failed,
                run.alerts_created,
                run.error,
                run.id,
            ),
        )
        self._conn.commit()

    def recent_sync_runs(self, limit: int = 10) -> list[SyncRun]:
        """Latest sync runs, newest first."""
        rows = self._conn.execute(
            f"SELECT {_RUN_COLUMNS} FROM sync_runs "
            "ORDER BY started_at DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [_row_to_run(r) for r in rows]
