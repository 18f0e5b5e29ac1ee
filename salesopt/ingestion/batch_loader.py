"""
Batch Transaction Loader

Loads the flat transactions CSV into a typed Polars table.
Supports:
- Positional schema enforcement (header row skipped, labels not trusted)
- Multi-format date parsing
- Currency/thousands normalization of decimal columns
- Reproducible, materialized samples
- Load audit results
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
import hashlib

import polars as pl
import structlog
from pydantic import BaseModel

from salesopt.config import get_settings
from salesopt.exceptions import SchemaMismatch

logger = structlog.get_logger(__name__)
settings = get_settings()


# Declared column order of the transactions extract
TRANSACTION_SCHEMA: Dict[str, pl.DataType] = {
    "row_id": pl.Int64,
    "order_id": pl.Utf8,
    "order_date": pl.Date,
    "ship_date": pl.Date,
    "ship_mode": pl.Utf8,
    "customer_id": pl.Utf8,
    "customer_name": pl.Utf8,
    "segment": pl.Utf8,
    "city": pl.Utf8,
    "state": pl.Utf8,
    "country": pl.Utf8,
    "market": pl.Utf8,
    "region": pl.Utf8,
    "product_id": pl.Utf8,
    "category": pl.Utf8,
    "subcategory": pl.Utf8,
    "product_name": pl.Utf8,
    "sales": pl.Float64,
    "quantity": pl.Int16,
    "discount": pl.Float64,
    "profit": pl.Float64,
    "shipping_cost": pl.Float64,
    "order_priority": pl.Utf8,
}

TRANSACTION_COLUMNS: List[str] = list(TRANSACTION_SCHEMA)

MEASURE_COLUMNS: List[str] = ["sales", "quantity", "discount", "profit", "shipping_cost"]


class LoadStatus(str, Enum):
    """Batch load status"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TransactionFileConfig:
    """Configuration for loading the transactions file"""
    file_path: Union[str, Path]
    delimiter: str = field(default_factory=lambda: settings.data_lake.delimiter)
    encoding: str = field(default_factory=lambda: settings.data_lake.encoding)
    date_formats: List[str] = field(default_factory=lambda: list(settings.data_lake.date_formats))
    null_values: List[str] = field(default_factory=lambda: list(settings.data_lake.null_values))


class LoadResult(BaseModel):
    """Result of a batch load operation"""
    file_path: str
    status: LoadStatus
    rows_loaded: int = 0
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    file_hash: Optional[str] = None


class TransactionLoader:
    """
    Loader for the transactions extract.

    Reads every raw value as text, then casts column by column against
    TRANSACTION_SCHEMA. Any non-null value that does not survive the cast
    is a SchemaMismatch and aborts the load.

    Example:
        loader = TransactionLoader()
        df, result = loader.load("data/raw/Global-Superstore.csv")
    """

    def __init__(self, date_formats: Optional[List[str]] = None):
        self.date_formats = date_formats or list(settings.data_lake.date_formats)

    def _compute_file_hash(self, file_path: Path) -> str:
        """Compute MD5 hash of file for run auditing"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _read_csv(self, config: TransactionFileConfig) -> pl.DataFrame:
        """
        Read CSV file as text; row 1 is the header and is skipped.

        A file holding only the header row yields an empty frame with one
        column per header field, so the column count is still checked.
        """
        try:
            return pl.read_csv(
                config.file_path,
                has_header=False,
                skip_rows=1,
                separator=config.delimiter,
                encoding=config.encoding,
                null_values=config.null_values,
                infer_schema_length=0,
            )
        except pl.exceptions.NoDataError:
            logger.warning("Transactions file has no data rows", file=str(config.file_path))
        except pl.exceptions.ComputeError as e:
            raise SchemaMismatch(f"Unreadable transactions file: {e}") from e

        try:
            header = pl.read_csv(
                config.file_path,
                has_header=True,
                n_rows=0,
                separator=config.delimiter,
                encoding=config.encoding,
                infer_schema_length=0,
            )
        except (pl.exceptions.ComputeError, pl.exceptions.NoDataError) as e:
            raise SchemaMismatch(f"Unreadable transactions file: {e}") from e
        return pl.DataFrame(schema={f"column_{i + 1}": pl.Utf8 for i in range(header.width)})

    def _resolve_date_format(self, raw: pl.DataFrame, column: str, date_formats: List[str]) -> str:
        """
        First format that parses every non-null value of the column.

        One format per column, so day-first and month-first readings are
        never mixed within a column.

        Raises:
            SchemaMismatch: if no single format parses the whole column
        """
        text = pl.col(column).str.strip_chars()
        misses = raw.select([
            (text.is_not_null() & text.str.strptime(pl.Date, fmt, strict=False).is_null()).sum().alias(str(i))
            for i, fmt in enumerate(date_formats)
        ]).row(0)

        for fmt, missed in zip(date_formats, misses):
            if not missed:
                logger.debug(f"Date format resolved for {column}", format=fmt)
                return fmt

        errors = [f"Column {column}: no single date format in {date_formats} parses every value"]
        raise SchemaMismatch(f"Schema validation failed: {errors}", details=errors)

    def _cast_expression(self, column: str, dtype: pl.DataType, date_format: Optional[str] = None) -> pl.Expr:
        """Build the text -> declared type expression for one column"""
        raw = pl.col(column).str.strip_chars()

        if dtype == pl.Date:
            return raw.str.strptime(pl.Date, date_format, strict=False)
        if dtype == pl.Utf8:
            return raw
        return raw.str.replace_all(r"[$€£¥,]", "").cast(dtype, strict=False)

    def _coerce(self, raw: pl.DataFrame, date_formats: Optional[List[str]] = None) -> pl.DataFrame:
        """Cast a text frame with declared column names to the declared types"""
        formats = date_formats or self.date_formats
        expressions = {
            column: self._cast_expression(
                column,
                dtype,
                self._resolve_date_format(raw, column, formats) if dtype == pl.Date else None,
            )
            for column, dtype in TRANSACTION_SCHEMA.items()
        }

        # Values present in the raw text but lost by the cast
        failures = raw.select([
            (pl.col(column).is_not_null() & expr.is_null()).sum().alias(column)
            for column, expr in expressions.items()
        ]).row(0, named=True)

        errors = [
            f"Column {column}: {count} values not castable to {TRANSACTION_SCHEMA[column]}"
            for column, count in failures.items()
            if count
        ]
        if errors:
            raise SchemaMismatch(f"Schema validation failed: {errors}", details=errors)

        return raw.select([expr.alias(column) for column, expr in expressions.items()])

    def load_frame(self, frame: pl.DataFrame) -> pl.DataFrame:
        """
        Validate and type an in-memory frame carrying the declared column names.

        Raises:
            SchemaMismatch: if columns are missing, extra, out of order or uncastable
        """
        if frame.columns != TRANSACTION_COLUMNS:
            missing = [c for c in TRANSACTION_COLUMNS if c not in frame.columns]
            extra = [c for c in frame.columns if c not in TRANSACTION_COLUMNS]
            raise SchemaMismatch(
                f"Column mismatch: missing={missing}, unexpected={extra}",
                details={"missing": missing, "unexpected": extra},
            )

        as_text = frame.select([pl.col(c).cast(pl.Utf8) for c in frame.columns])
        return self._coerce(as_text)

    def load(self, file_path: Union[str, Path, TransactionFileConfig]) -> Tuple[pl.DataFrame, LoadResult]:
        """
        Load the transactions file.

        Args:
            file_path: Path to the CSV or a full TransactionFileConfig

        Returns:
            Typed DataFrame and the LoadResult audit record

        Raises:
            SchemaMismatch: column count or types do not match the declaration
            FileNotFoundError: the file does not exist
        """
        config = file_path if isinstance(file_path, TransactionFileConfig) else TransactionFileConfig(file_path)
        path = Path(config.file_path)
        started_at = datetime.utcnow()

        result = LoadResult(
            file_path=str(path),
            status=LoadStatus.RUNNING,
            started_at=started_at,
        )

        logger.info("Starting transactions load", file=str(path))

        try:
            if not path.exists():
                raise FileNotFoundError(f"File not found: {path}")

            result.file_hash = self._compute_file_hash(path)
            raw = self._read_csv(config)

            if raw.width != len(TRANSACTION_COLUMNS):
                raise SchemaMismatch(
                    f"Expected {len(TRANSACTION_COLUMNS)} columns, found {raw.width}",
                    details={"expected": len(TRANSACTION_COLUMNS), "found": raw.width},
                )

            raw = raw.rename(dict(zip(raw.columns, TRANSACTION_COLUMNS)))
            df = self._coerce(raw, config.date_formats)

        except (SchemaMismatch, FileNotFoundError) as e:
            logger.error(
                "Transactions load failed",
                status=LoadStatus.FAILED.value,
                error=str(e),
                file=str(path),
                file_hash=result.file_hash,
            )
            raise

        result.status = LoadStatus.COMPLETED
        result.rows_loaded = df.height
        result.completed_at = datetime.utcnow()
        result.load_duration_seconds = (result.completed_at - started_at).total_seconds()

        logger.info(
            "Transactions load completed",
            rows_loaded=df.height,
            duration_seconds=result.load_duration_seconds,
        )

        return df, result


class SampleStore:
    """
    Materialized, reproducible row samples.

    The first request draws a seeded sample and writes it to the staging
    zone; every later request returns the stored rows instead of drawing
    again.
    """

    def __init__(
        self,
        staging_path: Optional[Union[str, Path]] = None,
        size: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        self.staging_path = Path(staging_path or settings.data_lake.staging_path)
        self.size = size if size is not None else settings.analysis.sample_size
        self.seed = seed if seed is not None else settings.analysis.sample_seed

    def path_for(self, name: str) -> Path:
        return self.staging_path / f"{name}_sample.parquet"

    def get(self, df: pl.DataFrame, name: str = "transactions") -> pl.DataFrame:
        """Return the stored sample for name, materializing it on first use"""
        path = self.path_for(name)

        if path.exists():
            logger.debug("Reusing materialized sample", file=str(path))
            return pl.read_parquet(path)

        sample = df.sample(n=min(self.size, df.height), seed=self.seed)
        path.parent.mkdir(parents=True, exist_ok=True)
        sample.write_parquet(path)

        logger.info("Materialized sample", file=str(path), rows=sample.height)
        return sample

    def clear(self, name: str = "transactions") -> None:
        self.path_for(name).unlink(missing_ok=True)


def create_transaction_loader() -> TransactionLoader:
    """Create a configured TransactionLoader instance"""
    return TransactionLoader(date_formats=list(settings.data_lake.date_formats))
