"""
Unit tests for storage layer.

Tests schema creation and the persisted model price table.
"""

import os
import tempfile

import pytest

from usage_telemetry.core.pricing import ModelPrice
from usage_telemetry.storage.db import get_connection
from usage_telemetry.storage.price_store import (
    MODEL_PRICE_STORAGE_KEY,
    ModelPriceStore,
    get_value,
    initialize_schema,
    set_value,
)


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify table is created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("PRAGMA table_info(kv_store)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == ["key", "value"]
            finally:
                conn.close()

    def test_schema_is_idempotent(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            initialize_schema(db_path)

    def test_creates_parent_directories(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "nested", "dir", "test.db")
            initialize_schema(db_path)
            assert os.path.exists(db_path)


class TestKeyValueStore:
    """Test raw value access."""

    def test_missing_table_reads_none(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            assert get_value("anything", os.path.join(temp_dir, "test.db")) is None

    def test_set_and_replace(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            set_value("a", "1", db_path)
            set_value("a", "2", db_path)
            assert get_value("a", db_path) == "2"
            assert get_value("b", db_path) is None


class TestModelPriceStore:
    """Test persisting the price table."""

    def test_first_run_is_empty(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            assert ModelPriceStore(os.path.join(temp_dir, "test.db")).load() == {}

    def test_save_and_load(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            store = ModelPriceStore(os.path.join(temp_dir, "test.db"))
            prices = {"gpt-x": ModelPrice(prompt=1.0, completion=2.0, cache=0.25)}
            store.save(prices)
            assert store.load() == prices

    def test_set_and_remove_price(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            store = ModelPriceStore(os.path.join(temp_dir, "test.db"))
            store.set_price("  gpt-x ", ModelPrice(prompt=1.0))
            store.set_price("gpt-y", ModelPrice(completion=3.0))

            assert set(store.load()) == {"gpt-x", "gpt-y"}
            assert store.remove_price("gpt-x") is True
            assert store.remove_price("gpt-x") is False
            assert set(store.load()) == {"gpt-y"}

    def test_remove_price_strips_model_name(self):
        """Whitespace around the name matches the trimmed name set_price stored."""
        with tempfile.TemporaryDirectory() as temp_dir:
            store = ModelPriceStore(os.path.join(temp_dir, "test.db"))
            store.set_price("gpt-x", ModelPrice(prompt=1.0))
            assert store.remove_price("  gpt-x ") is True
            assert store.load() == {}

    def test_empty_model_raises_error(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            store = ModelPriceStore(os.path.join(temp_dir, "test.db"))
            with pytest.raises(ValueError, match="model is required"):
                store.set_price("   ", ModelPrice())

    def test_corrupt_document_loads_empty(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            set_value(MODEL_PRICE_STORAGE_KEY, "{not json", db_path)
            assert ModelPriceStore(db_path).load() == {}

    def test_malformed_entries_are_skipped(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            set_value(MODEL_PRICE_STORAGE_KEY, '{"ok": {"prompt": 1}, "bad": "x"}', db_path)
            assert ModelPriceStore(db_path).load() == {"ok": ModelPrice(prompt=1.0, completion=0.0, cache=1.0)}
