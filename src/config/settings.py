# src/config/settings.py

"""Central configuration for the price_sync pipeline."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the price_sync pipeline."""

    # --- HTTP ---
    REQUEST_TIMEOUT: int = int(
        os.getenv("REQUEST_TIMEOUT", "10")
    )                                   # Seconds before a request times out
    USER_AGENT: str = (
        "mtg-price-sync/1.0 (+https://github.com/price-sync/mtg-price-sync)"
    )
    DEFAULT_HEADERS: dict[str, str] = {
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
    }
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"

    # --- External services ---
    SCRYFALL_API_BASE: str = "https://api.scryfall.com"
    EDHREC_BASE_URL: str = "https://edhrec.com"
    EDHREC_JSON_BASE: str = "https://json.edhrec.com/pages"

    # Minimum milliseconds between calls, keyed by service name
    RATE_LIMITS_MS: dict[str, int] = {
        "scryfall": 100,
        "edhrec": 2000,
    }

    # --- Resilience ---
    NETWORK_MAX_ATTEMPTS: int = 3       # Total tries on connection failures
    RATE_LIMIT_MAX_ATTEMPTS: int = 4    # Total tries on HTTP 429
    RATE_LIMIT_BASE_BACKOFF: float = 0.5  # Seconds, doubled per attempt

    # --- Price cache ---
    CARD_PRICE_CACHE_TTL: float = float(
        os.getenv("CARD_PRICE_CACHE_TTL", "86400")
    )

    # --- Batch sync ---
    SYNC_BATCH_SIZE: int = int(os.getenv("SYNC_BATCH_SIZE", "50"))
    SYNC_BATCH_DELAY: float = float(
        os.getenv("SYNC_BATCH_DELAY", "0.1")
    )
    SYNC_PROGRESS_INTERVAL: int = 100   # Log progress every N cards

    # --- Alerts ---
    ALERT_INCREASE_THRESHOLD: float = 20.0
    ALERT_DECREASE_THRESHOLD: float = -30.0
    ALERT_DEDUP_WINDOW_HOURS: int = 24

    # --- Decklists ---
    EDHREC_TOP_COMMANDER_COUNT: int = 20
    DECKLIST_SIZE: int = 100

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DATA_DIR: Path = BASE_DIR / "data"
    PRICE_DB_PATH: Path = Path(
        os.getenv("PRICE_DB_PATH", str(DATA_DIR / "price_history.db"))
    )
    LOGS_DIR: Path = BASE_DIR / "logs"
