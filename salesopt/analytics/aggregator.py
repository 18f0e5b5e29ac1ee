"""
Aggregation Module

Grouped statistics over the cleaned transaction table.
Includes:
- Grouped measures (sum, mean, count, percentile, std, coefficient of variation)
- Share-of-total within a partition or against the global total
- Year-over-year deltas with an explicit lag default
- Competition ranking within a partition
- Derived dimensions (discount band, delivery days, order year)

Every grouping key and measure is checked against the FieldRegistry;
excluded fields cannot be aggregated.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Union

import polars as pl
import structlog

from salesopt.config import get_settings
from salesopt.transformation.exclusions import FieldRegistry

logger = structlog.get_logger(__name__)
settings = get_settings()

Columns = Union[str, Sequence[str], None]

DISCOUNT_BAND_ORDER = ["No-Discount", "Low", "Medium", "High", "Aggressive"]
SHIP_MODE_ORDER = ["Same Day", "First Class", "Second Class", "Standard Class"]
SEGMENT_ORDER = ["Corporate", "Home Office", "Consumer"]


def _as_list(columns: Columns) -> List[str]:
    if columns is None:
        return []
    if isinstance(columns, str):
        return [columns]
    return list(columns)


def safe_divide(numerator: pl.Expr, denominator: pl.Expr) -> pl.Expr:
    """numerator / NULLIF(denominator, 0)"""
    return (
        pl.when(denominator != 0)
        .then(numerator.cast(pl.Float64) / denominator.cast(pl.Float64))
        .otherwise(None)
    )


def discount_band(column: str = "discount") -> pl.Expr:
    """Discount level bucket of a fractional discount"""
    return (
        pl.when(pl.col(column) > 0.50).then(pl.lit("Aggressive"))
        .when(pl.col(column) > 0.25).then(pl.lit("High"))
        .when(pl.col(column) > 0.10).then(pl.lit("Medium"))
        .when(pl.col(column) > 0).then(pl.lit("Low"))
        .otherwise(pl.lit("No-Discount"))
    )


def delivery_days(order_column: str = "order_date", ship_column: str = "ship_date") -> pl.Expr:
    return (pl.col(ship_column) - pl.col(order_column)).dt.total_days()


def order_year(column: str = "order_date") -> pl.Expr:
    return pl.col(column).dt.year()


def order_month(column: str = "order_date") -> pl.Expr:
    return pl.col(column).dt.truncate("1mo")


def ordinal(column: str, order: Sequence[str]) -> pl.Expr:
    """Sort key for a categorical column with a business order; unknown values sort last"""
    return pl.col(column).replace_strict(
        list(order), list(range(1, len(order) + 1)), default=len(order) + 1, return_dtype=pl.Int32
    )


class AggFunc(str, Enum):
    """Supported aggregation functions"""
    SUM = "sum"
    MEAN = "mean"
    COUNT = "count"
    COUNT_DISTINCT = "count_distinct"
    MIN = "min"
    MAX = "max"
    PERCENTILE = "percentile"
    STD = "std"
    CV = "cv"


@dataclass(frozen=True)
class Measure:
    """
    A measure to compute per group.

    column=None with COUNT counts rows; PERCENTILE needs quantile in [0, 1]
    and interpolates linearly like PERCENTILE_CONT.
    """
    func: AggFunc
    column: Optional[str] = None
    alias: Optional[str] = None
    quantile: Optional[float] = None

    @property
    def name(self) -> str:
        if self.alias:
            return self.alias
        if self.column is None:
            return f"{self.func.value}"
        return f"{self.column}_{self.func.value}"

    def expr(self) -> pl.Expr:
        if self.func == AggFunc.COUNT and self.column is None:
            return pl.len().alias(self.name)
        if self.column is None:
            raise ValueError(f"{self.func.value} needs a column")

        col = pl.col(self.column)
        if self.func == AggFunc.SUM:
            expr = col.sum()
        elif self.func == AggFunc.MEAN:
            expr = col.mean()
        elif self.func == AggFunc.COUNT:
            expr = col.count()
        elif self.func == AggFunc.COUNT_DISTINCT:
            expr = col.drop_nulls().n_unique()
        elif self.func == AggFunc.MIN:
            expr = col.min()
        elif self.func == AggFunc.MAX:
            expr = col.max()
        elif self.func == AggFunc.PERCENTILE:
            if self.quantile is None or not 0 <= self.quantile <= 1:
                raise ValueError(f"Percentile measure on {self.column} needs a quantile in [0, 1]")
            expr = col.quantile(self.quantile, interpolation="linear")
        elif self.func == AggFunc.STD:
            expr = col.std()
        elif self.func == AggFunc.CV:
            expr = safe_divide(col.std(), col.mean())
        else:
            raise ValueError(f"Unsupported aggregation: {self.func}")
        return expr.alias(self.name)


class Aggregator:
    """
    Grouped statistics with exclusion enforcement.

    Example:
        aggregator = Aggregator(registry)
        markets = aggregator.aggregate(
            df, by="market",
            measures=[Measure(AggFunc.SUM, "sales", "total_sales"), Measure(AggFunc.COUNT, alias="order_count")],
        )
        markets = aggregator.share_of_total(markets, "total_sales", alias="sales_pct")
    """

    def __init__(self, registry: Optional[FieldRegistry] = None, lag_default: Optional[float] = 0.0):
        self.registry = registry or FieldRegistry()
        self.lag_default = lag_default

    def aggregate(
        self,
        df: pl.DataFrame,
        by: Columns,
        measures: Sequence[Measure],
        sort_by: Columns = None,
    ) -> pl.DataFrame:
        """One row per distinct combination of the grouping columns"""
        keys = _as_list(by)
        self.registry.ensure_usable(keys, "grouping key")
        self.registry.ensure_usable([m.column for m in measures if m.column], "measure")

        exprs = [m.expr() for m in measures]
        if keys:
            result = df.group_by(keys).agg(exprs)
        else:
            result = df.select(exprs)

        order = _as_list(sort_by) or keys
        return result.sort(order) if order else result

    def share_of_total(
        self,
        df: pl.DataFrame,
        value: str,
        partition_by: Columns = None,
        alias: Optional[str] = None,
        reference: Optional[pl.DataFrame] = None,
    ) -> pl.DataFrame:
        """
        value / NULLIF(SUM(value) OVER (partition), 0).

        With a reference frame the denominator is taken from it instead,
        so shares of a filtered frame sum to less than one.
        """
        keys = _as_list(partition_by)
        self.registry.ensure_usable([value], "measure")
        self.registry.ensure_usable(keys, "partition key")
        alias = alias or f"{value}_share"

        if reference is None:
            total = pl.col(value).sum()
            total = total.over(keys) if keys else total
            return df.with_columns(safe_divide(pl.col(value), total).alias(alias))

        if keys:
            totals = reference.group_by(keys).agg(pl.col(value).sum().alias("__total"))
            return (
                df.join(totals, on=keys, how="left")
                .with_columns(safe_divide(pl.col(value), pl.col("__total")).alias(alias))
                .drop("__total")
            )
        total = reference.get_column(value).sum()
        return df.with_columns(safe_divide(pl.col(value), pl.lit(total)).alias(alias))

    def year_over_year(
        self,
        df: pl.DataFrame,
        value: str,
        group_by: Columns = None,
        period: str = "order_year",
        alias: Optional[str] = None,
        lag_default: Union[float, None, str] = "configured",
    ) -> pl.DataFrame:
        """
        (current - previous) / NULLIF(previous, 0) per group.

        previous is the value of the preceding row of the same group in
        period order (LAG semantics). A group's first period has no
        predecessor and falls back to lag_default, 0 unless configured
        otherwise, which makes its delta undefined (null); those rows
        carry is_first_period = True.
        """
        keys = _as_list(group_by)
        self.registry.ensure_usable([value], "measure")
        self.registry.ensure_usable(keys, "grouping key")
        alias = alias or f"{value}_yoy"
        default = self.lag_default if lag_default == "configured" else lag_default

        previous = pl.col(value).cast(pl.Float64).shift(1)
        position = pl.int_range(pl.len())
        if keys:
            previous = previous.over(keys)
            position = position.over(keys)
        if default is not None:
            previous = pl.when(position == 0).then(pl.lit(default, dtype=pl.Float64)).otherwise(previous)

        return (
            df.sort([*keys, period])
            .with_columns(
                previous.alias(f"previous_{value}"),
                (position == 0).alias("is_first_period"),
            )
            .with_columns(
                safe_divide(
                    pl.col(value) - pl.col(f"previous_{value}"),
                    pl.col(f"previous_{value}"),
                ).alias(alias)
            )
        )

    def rank_within(
        self,
        df: pl.DataFrame,
        value: str,
        partition_by: Columns = None,
        alias: str = "rank",
        descending: bool = True,
        tie_breaker: Columns = None,
    ) -> pl.DataFrame:
        """
        Rank rows by value within each partition.

        Without a tie breaker, equal values share a rank and the next rank
        skips (1, 1, 3). With one, ranks are strict and follow the tie
        breaker ascending among equal values.
        """
        keys = _as_list(partition_by)
        ties = _as_list(tie_breaker)
        self.registry.ensure_usable([value], "measure")
        self.registry.ensure_usable(keys, "partition key")
        self.registry.ensure_usable(ties, "tie breaker")

        if not ties:
            rank = pl.col(value).rank("min", descending=descending)
            rank = rank.over(keys) if keys else rank
            return df.with_columns(rank.cast(pl.Int64).alias(alias))

        ordered = df.sort(
            [value, *ties],
            descending=[descending] + [False] * len(ties),
            nulls_last=True,
        )
        rank = pl.int_range(1, pl.len() + 1)
        rank = rank.over(keys) if keys else rank
        return ordered.with_columns(rank.cast(pl.Int64).alias(alias))


def create_aggregator(registry: Optional[FieldRegistry] = None) -> Aggregator:
    """Create an Aggregator using the configured YoY lag default"""
    return Aggregator(registry=registry, lag_default=settings.analysis.yoy_lag_default)
