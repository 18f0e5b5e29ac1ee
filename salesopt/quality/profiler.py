"""
Data Profiling Module

Column-level completeness and uniqueness profile of the transaction table,
with range statistics for numeric columns. Read-only.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


@dataclass
class FieldProfile:
    """Profile of a single column"""
    column_name: str
    data_type: str
    null_count: int
    distinct_count: int
    min: Optional[float] = None
    mean: Optional[float] = None
    max: Optional[float] = None

    @property
    def is_numeric(self) -> bool:
        return self.mean is not None or self.min is not None


class DataProfiler:
    """
    Computes null counts, distinct counts and numeric ranges.

    All statistics come from a single select over one frame, so null and
    distinct counts always describe the same snapshot.

    Example:
        profiles = DataProfiler().profile(df)
        profiles["profit"].min
    """

    def __init__(self, columns: Optional[List[str]] = None):
        self.columns = columns

    def profile(self, df: pl.DataFrame) -> Dict[str, FieldProfile]:
        columns = self.columns or df.columns
        numeric = [c for c in columns if df.schema[c].is_numeric()]

        # distinct counts include null as a value in polars; SQL does not
        stats = df.select(
            [pl.col(c).null_count().alias(f"{c}__nulls") for c in columns]
            + [pl.col(c).drop_nulls().n_unique().alias(f"{c}__distinct") for c in columns]
            + [pl.col(c).min().cast(pl.Float64).alias(f"{c}__min") for c in numeric]
            + [pl.col(c).mean().alias(f"{c}__mean") for c in numeric]
            + [pl.col(c).max().cast(pl.Float64).alias(f"{c}__max") for c in numeric]
        ).row(0, named=True)

        profiles = {}
        for column in columns:
            profiles[column] = FieldProfile(
                column_name=column,
                data_type=str(df.schema[column]),
                null_count=stats[f"{column}__nulls"],
                distinct_count=stats[f"{column}__distinct"],
                min=stats.get(f"{column}__min"),
                mean=stats.get(f"{column}__mean"),
                max=stats.get(f"{column}__max"),
            )

        logger.info(
            f"Profiled {len(columns)} columns over {df.height} rows",
            columns_with_nulls=sum(1 for p in profiles.values() if p.null_count),
        )
        return profiles

    def to_frame(self, profiles: Dict[str, FieldProfile]) -> pl.DataFrame:
        """Tabular profile summary, one row per column"""
        return pl.DataFrame(
            [asdict(p) for p in profiles.values()],
            schema={
                "column_name": pl.Utf8,
                "data_type": pl.Utf8,
                "null_count": pl.Int64,
                "distinct_count": pl.Int64,
                "min": pl.Float64,
                "mean": pl.Float64,
                "max": pl.Float64,
            },
        )


def profile_dataframe(df: pl.DataFrame) -> Dict[str, FieldProfile]:
    """Convenience function to profile every column of a DataFrame"""
    return DataProfiler().profile(df)
