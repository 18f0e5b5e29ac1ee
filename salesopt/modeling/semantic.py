"""
Semantic Model Extracts

Star schema for the reporting dashboard, built from the corrected
transaction table:
- dim_product with per-subcategory performance band
- dim_country_market
- dim_segment
- dim_date (full calendar years covered by the orders)
- fact_sales keyed by date, segment, country and product

Surrogate keys are generated deterministically so extracts stay
compatible between runs.
"""

from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

import polars as pl
import structlog

from salesopt.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()

PRODUCT_KEY_OFFSET = 100000
COUNTRY_KEY_OFFSET = 1000

PERFORMANCE_HIGH = "High"
PERFORMANCE_MODERATE = "Moderate"
PERFORMANCE_LOW = "Low"


@dataclass
class SemanticModel:
    """Dimension and fact extracts of one run"""
    dim_product: pl.DataFrame
    dim_country_market: pl.DataFrame
    dim_segment: pl.DataFrame
    dim_date: pl.DataFrame
    fact_sales: pl.DataFrame

    def tables(self) -> Dict[str, pl.DataFrame]:
        """Extracts by table name, dimensions first"""
        return {
            "dim_product": self.dim_product,
            "dim_country_market": self.dim_country_market,
            "dim_segment": self.dim_segment,
            "dim_date": self.dim_date,
            "fact_sales": self.fact_sales,
        }


def _row_number(partition_by: str) -> pl.Expr:
    """1-based position inside the partition, following the frame order"""
    return pl.int_range(1, pl.len() + 1).over(partition_by)


def _single_parent(df: pl.DataFrame, child: str, parents: List[str], weight: str, table: str) -> pl.DataFrame:
    """
    Keep one parent combination per child value, the one with the largest
    weight. Extract tables require a unique child; a leftover hierarchy
    conflict is logged rather than duplicated.
    """
    conflicts = df.group_by(child).agg(pl.len().alias("parents")).filter(pl.col("parents") > 1)
    if conflicts.height:
        logger.warning(
            f"{table}: {conflicts.height} {child} values map to more than one parent, keeping the largest",
            examples=conflicts.get_column(child).head(5).to_list(),
        )
    return (
        df.sort([child, weight, *parents], descending=[False, True] + [False] * len(parents))
        .unique(subset=[child], keep="first", maintain_order=True)
    )


class SemanticModelBuilder:
    """
    Builds and writes the dashboard extracts.

    Example:
        builder = SemanticModelBuilder()
        model = builder.build(df)
        paths = builder.write_extracts(model)
    """

    def __init__(self, output_path: Optional[str] = None):
        self.output_path = Path(output_path or settings.data_lake.curated_path)

    def product_performance(self, df: pl.DataFrame) -> pl.DataFrame:
        """
        Average-sale band of each product against its subcategory:
        High at or above P75, Moderate at or above P50, else Low.
        Percentiles interpolate linearly (PERCENTILE_CONT).
        """
        products = df.group_by(["category", "subcategory", "product_name"]).agg(
            pl.col("sales").mean().alias("avg_sales"),
            pl.col("sales").sum().alias("total_sales"),
        )
        benchmarks = products.group_by("subcategory").agg(
            pl.col("avg_sales").quantile(0.25, interpolation="linear").alias("p25"),
            pl.col("avg_sales").quantile(0.50, interpolation="linear").alias("p50"),
            pl.col("avg_sales").quantile(0.75, interpolation="linear").alias("p75"),
        )
        return (
            products.join(benchmarks, on="subcategory", how="inner")
            .with_columns(
                pl.when(pl.col("avg_sales") >= pl.col("p75")).then(pl.lit(PERFORMANCE_HIGH))
                .when(pl.col("avg_sales") >= pl.col("p50")).then(pl.lit(PERFORMANCE_MODERATE))
                .otherwise(pl.lit(PERFORMANCE_LOW))
                .alias("performance")
            )
            .sort(["category", "avg_sales"], descending=[False, True])
        )

    def dim_product(self, df: pl.DataFrame, performance: Optional[pl.DataFrame] = None) -> pl.DataFrame:
        """
        product_key = UPPER(category[:3])-UPPER(subcategory[:2])-(n + 100000),
        n numbered within subcategory by category, then product name.
        """
        performance = performance if performance is not None else self.product_performance(df)
        products = _single_parent(
            performance, "product_name", ["category", "subcategory"], "total_sales", "dim_product"
        )
        return (
            products.sort(["subcategory", "category", "product_name"])
            .with_columns((_row_number("subcategory") + PRODUCT_KEY_OFFSET).alias("__n"))
            .with_columns(
                pl.concat_str(
                    [
                        pl.col("category").str.slice(0, 3).str.to_uppercase(),
                        pl.col("subcategory").str.slice(0, 2).str.to_uppercase(),
                        pl.col("__n").cast(pl.Utf8),
                    ],
                    separator="-",
                ).alias("product_key")
            )
            .select("product_key", "product_name", "performance", "subcategory", "category")
        )

    def dim_country_market(self, df: pl.DataFrame) -> pl.DataFrame:
        """country_key = UPPER(market)-(n + 1000), n numbered within market by country"""
        pairs = df.group_by(["country", "market"]).agg(pl.len().alias("order_count"))
        countries = _single_parent(pairs, "country", ["market"], "order_count", "dim_country_market")
        return (
            countries.sort(["market", "country"])
            .with_columns((_row_number("market") + COUNTRY_KEY_OFFSET).alias("__n"))
            .with_columns(
                pl.concat_str(
                    [pl.col("market").str.to_uppercase(), pl.col("__n").cast(pl.Utf8)],
                    separator="-",
                ).alias("country_key")
            )
            .select("country_key", "country", "market")
        )

    def dim_segment(self, df: pl.DataFrame) -> pl.DataFrame:
        return (
            df.select(pl.col("segment").drop_nulls().unique().sort())
            .with_columns(pl.int_range(1, pl.len() + 1).cast(pl.Int64).alias("segment_key"))
            .select("segment_key", "segment")
        )

    def dim_date(self, df: pl.DataFrame) -> pl.DataFrame:
        """Every day from 1 Jan of the first order year to 31 Dec of the last"""
        first, last = df.select(
            pl.col("order_date").min().dt.year().alias("first"),
            pl.col("order_date").max().dt.year().alias("last"),
        ).row(0)
        if first is None:
            return pl.DataFrame(
                schema={
                    "calendar_date": pl.Date,
                    "day": pl.Int8,
                    "month_no": pl.Int8,
                    "month_name": pl.Utf8,
                    "quarter_no": pl.Utf8,
                    "year": pl.Int32,
                }
            )

        days = pl.date_range(date(first, 1, 1), date(last, 12, 31), interval="1d", eager=True)
        return pl.DataFrame({"calendar_date": days}).with_columns(
            pl.col("calendar_date").dt.day().cast(pl.Int8).alias("day"),
            pl.col("calendar_date").dt.month().cast(pl.Int8).alias("month_no"),
            pl.col("calendar_date").dt.strftime("%b").alias("month_name"),
            pl.concat_str([pl.lit("Q"), pl.col("calendar_date").dt.quarter().cast(pl.Utf8)]).alias("quarter_no"),
            pl.col("calendar_date").dt.year().cast(pl.Int32).alias("year"),
        )

    def fact_sales(
        self,
        df: pl.DataFrame,
        dim_segment: pl.DataFrame,
        dim_country_market: pl.DataFrame,
        dim_product: pl.DataFrame,
    ) -> pl.DataFrame:
        """One row per transaction that resolves to every dimension"""
        fact = (
            df.join(dim_segment, on="segment", how="inner")
            .join(dim_country_market.select("country", "country_key"), on="country", how="inner")
            .join(dim_product.select("product_name", "product_key"), on="product_name", how="inner")
            .select(
                "order_date",
                "segment_key",
                "country_key",
                "product_key",
                "sales",
                "quantity",
                "discount",
                pl.when(pl.col("discount") > 0).then(pl.lit("Yes")).otherwise(pl.lit("No")).alias("discounted"),
                "profit",
            )
        )

        unmatched = df.height - fact.height
        if unmatched:
            logger.warning(f"fact_sales: {unmatched} transactions did not resolve to every dimension")
        return fact

    def build(self, df: pl.DataFrame) -> SemanticModel:
        performance = self.product_performance(df)
        dim_product = self.dim_product(df, performance)
        dim_country_market = self.dim_country_market(df)
        dim_segment = self.dim_segment(df)

        model = SemanticModel(
            dim_product=dim_product,
            dim_country_market=dim_country_market,
            dim_segment=dim_segment,
            dim_date=self.dim_date(df),
            fact_sales=self.fact_sales(df, dim_segment, dim_country_market, dim_product),
        )

        logger.info(
            "Semantic model built",
            rows={name: frame.height for name, frame in model.tables().items()},
        )
        return model

    def write_extracts(self, model: SemanticModel, output_path: Optional[str] = None) -> Dict[str, str]:
        """Write every extract to the curated zone as parquet, replacing the previous run"""
        target = Path(output_path) if output_path else self.output_path
        target.mkdir(parents=True, exist_ok=True)

        paths = {}
        for name, frame in model.tables().items():
            output_file = target / f"{name}.parquet"
            frame.write_parquet(output_file)
            logger.info(f"Written {len(frame)} rows to {output_file}")
            paths[name] = str(output_file)
        return paths


def build_semantic_model(df: pl.DataFrame) -> SemanticModel:
    """Convenience function to build the extracts of a corrected table"""
    return SemanticModelBuilder().build(df)
