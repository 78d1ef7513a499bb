"""
Persistent model price table.

Stores the price table as one JSON document in a small SQLite
key-value table. Reads degrade to an empty table rather than failing.
"""

import json
import sqlite3
from typing import Dict, Mapping, Optional

import structlog

from usage_telemetry.core.pricing import ModelPrice, normalize_model_prices

from .db import DEFAULT_DB_PATH, get_connection

logger = structlog.get_logger(__name__)

MODEL_PRICE_STORAGE_KEY = "model-prices-v2"


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the kv_store table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


def get_value(key: str, db_path: str = DEFAULT_DB_PATH) -> Optional[str]:
    """Read a raw value, or None if the key or the table is missing."""
    conn = get_connection(db_path)
    try:
        cursor = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None
    except sqlite3.OperationalError as e:
        if "no such table" in str(e).lower():
            return None
        raise
    finally:
        conn.close()


def set_value(key: str, value: str, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert or replace a raw value atomically."""
    initialize_schema(db_path)
    conn = get_connection(db_path)
    try:
        conn.execute(
            "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
            (key, value),
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


class ModelPriceStore:
    """Load and save the model price table.

    The table is read at startup and written on every edit; a missing
    store yields an empty table.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the store with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def load(self) -> Dict[str, ModelPrice]:
        """Load the price table, skipping malformed entries.

        Returns:
            Price table keyed by model name (empty on first run or when the
            stored document is not valid JSON)
        """
        raw = get_value(MODEL_PRICE_STORAGE_KEY, self.db_path)
        if not raw:
            return {}
        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.warning("Stored model prices are not valid JSON", db_path=self.db_path)
            return {}
        return normalize_model_prices(decoded)

    def save(self, prices: Mapping[str, ModelPrice]) -> None:
        """Persist the whole price table."""
        document = {model: price.to_dict() for model, price in prices.items()}
        set_value(MODEL_PRICE_STORAGE_KEY, json.dumps(document, sort_keys=True), self.db_path)
        logger.info("Saved model prices", models=len(document))

    def set_price(self, model: str, price: ModelPrice) -> Dict[str, ModelPrice]:
        """Add or replace one model's price and persist the table.

        Raises:
            ValueError: If the model name is empty
        """
        model = model.strip()
        if not model:
            raise ValueError("model is required and cannot be empty")
        prices = self.load()
        prices[model] = price
        self.save(prices)
        return prices

    def remove_price(self, model: str) -> bool:
        """Remove one model's price; returns False when it had none."""
        model = model.strip()
        prices = self.load()
        if model not in prices:
            return False
        del prices[model]
        self.save(prices)
        return True
