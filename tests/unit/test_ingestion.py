"""
Unit Tests - Ingestion
"""
from datetime import date

import pytest
import polars as pl

from salesopt.exceptions import SchemaMismatch
from salesopt.ingestion.batch_loader import (
    TRANSACTION_COLUMNS,
    TRANSACTION_SCHEMA,
    LoadStatus,
    SampleStore,
    TransactionLoader,
)
from salesopt.quality.validators import check_ship_after_order


HEADER = ",".join(f"Column {i}" for i in range(len(TRANSACTION_COLUMNS)))


def _csv_line(**overrides) -> str:
    values = {
        "row_id": "1",
        "order_id": "EU-2012-1",
        "order_date": "2012-03-01",
        "ship_date": "2012-03-05",
        "ship_mode": "First Class",
        "customer_id": "AB-1",
        "customer_name": "Ann Baker",
        "segment": "Consumer",
        "city": "Paris",
        "state": "Ile-de-France",
        "country": "France",
        "market": "EU",
        "region": "Central",
        "product_id": "OFF-BI-1",
        "category": "Office Supplies",
        "subcategory": "Binders",
        "product_name": "Cardinal Binder",
        "sales": "120.50",
        "quantity": "3",
        "discount": "0.1",
        "profit": "-4.25",
        "shipping_cost": "9.80",
        "order_priority": "High",
    }
    values.update(overrides)
    return ",".join(values[c] for c in TRANSACTION_COLUMNS)


class TestTransactionLoader:
    """Tests for TransactionLoader"""

    def test_load_generated_extract(self, tmp_path, generated_df):
        """Test loading a CSV written from a typed frame"""
        path = tmp_path / "transactions.csv"
        generated_df.write_csv(path)

        df, result = TransactionLoader().load(path)

        assert result.status == LoadStatus.COMPLETED
        assert result.rows_loaded == generated_df.height
        assert result.file_hash is not None
        assert dict(df.schema) == TRANSACTION_SCHEMA
        assert df.get_column("sales").sum() == pytest.approx(generated_df.get_column("sales").sum())

    def test_header_labels_are_ignored(self, tmp_path):
        """Test columns are assigned by position, not by header label"""
        path = tmp_path / "transactions.csv"
        path.write_text(f"{HEADER}\n{_csv_line()}\n")

        df, _ = TransactionLoader().load(path)

        assert df.columns == TRANSACTION_COLUMNS
        assert df.row(0, named=True)["country"] == "France"

    def test_date_and_currency_normalization(self, tmp_path):
        """Test alternate date formats and currency symbols"""
        path = tmp_path / "transactions.csv"
        line = _csv_line(order_date="03/15/2012", ship_date="18/03/2012", sales='"$1,234.50"')
        path.write_text(f"{HEADER}\n{line}\n")

        df, _ = TransactionLoader().load(path)
        row = df.row(0, named=True)

        assert row["order_date"] == date(2012, 3, 15)
        assert row["ship_date"] == date(2012, 3, 18)
        assert row["sales"] == pytest.approx(1234.5)
        assert row["profit"] == pytest.approx(-4.25)

    def test_day_first_column_parsed_day_first(self, tmp_path):
        """Test one date format is chosen for the whole column"""
        path = tmp_path / "transactions.csv"
        lines = [
            _csv_line(row_id="1", order_date="13/01/2012", ship_date="14/01/2012"),
            _csv_line(row_id="2", order_date="05/01/2012", ship_date="14/01/2012"),
        ]
        path.write_text("\n".join([HEADER, *lines]) + "\n")

        df, _ = TransactionLoader().load(path)

        assert df.get_column("order_date").to_list() == [date(2012, 1, 13), date(2012, 1, 5)]
        assert check_ship_after_order(df).inconsistency_count == 0

    def test_mixed_date_orders_raise(self, tmp_path):
        """Test a column no single format can read aborts the load"""
        path = tmp_path / "transactions.csv"
        lines = [
            _csv_line(row_id="1", order_date="13/01/2012"),
            _csv_line(row_id="2", order_date="01/13/2012"),
        ]
        path.write_text("\n".join([HEADER, *lines]) + "\n")

        with pytest.raises(SchemaMismatch) as exc_info:
            TransactionLoader().load(path)

        assert any("order_date" in error for error in exc_info.value.details)

    def test_header_only_file_is_empty(self, tmp_path):
        """Test a file without data rows loads as an empty typed table"""
        path = tmp_path / "transactions.csv"
        path.write_text(f"{HEADER}\n")

        df, result = TransactionLoader().load(path)

        assert df.height == 0
        assert dict(df.schema) == TRANSACTION_SCHEMA
        assert result.rows_loaded == 0

    def test_header_only_file_with_wrong_width_raises(self, tmp_path):
        path = tmp_path / "transactions.csv"
        path.write_text("a,b,c\n")

        with pytest.raises(SchemaMismatch):
            TransactionLoader().load(path)

    def test_wrong_column_count_raises(self, tmp_path):
        """Test a short row layout aborts the load"""
        path = tmp_path / "transactions.csv"
        path.write_text("a,b,c\n1,2,3\n")

        with pytest.raises(SchemaMismatch):
            TransactionLoader().load(path)

    def test_uncastable_value_raises(self, tmp_path):
        """Test a non-numeric measure aborts the load"""
        path = tmp_path / "transactions.csv"
        path.write_text(f"{HEADER}\n{_csv_line(quantity='three')}\n")

        with pytest.raises(SchemaMismatch) as exc_info:
            TransactionLoader().load(path)

        assert any("quantity" in error for error in exc_info.value.details)

    def test_missing_file_raises(self, tmp_path):
        """Test a missing file is reported"""
        with pytest.raises(FileNotFoundError):
            TransactionLoader().load(tmp_path / "missing.csv")

    def test_load_frame_rejects_renamed_columns(self, generated_df):
        """Test in-memory frames must carry the declared columns"""
        renamed = generated_df.rename({"subcategory": "sub_category"})

        with pytest.raises(SchemaMismatch) as exc_info:
            TransactionLoader().load_frame(renamed)

        assert exc_info.value.details["missing"] == ["subcategory"]
        assert exc_info.value.details["unexpected"] == ["sub_category"]


class TestSampleStore:
    """Tests for SampleStore"""

    def test_sample_is_materialized_once(self, tmp_path, generated_df):
        """Test later requests return the stored rows"""
        store = SampleStore(staging_path=tmp_path, size=10, seed=1)

        first = store.get(generated_df)
        second = store.get(generated_df.reverse())

        assert store.path_for("transactions").exists()
        assert first.height == 10
        assert first.get_column("row_id").to_list() == second.get_column("row_id").to_list()

    def test_clear_draws_again(self, tmp_path, generated_df):
        """Test clearing removes the stored sample"""
        store = SampleStore(staging_path=tmp_path, size=5, seed=1)
        store.get(generated_df)

        store.clear()

        assert not store.path_for("transactions").exists()
