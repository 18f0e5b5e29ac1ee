"""
Exploratory Analysis Sections

Named result sets used for the budget-allocation review:
- Demand concentration and market share
- Category mix per market
- Discount sensitivity
- Fulfillment / ship mode impact
- Segment contribution and over/under-indexing
- Revenue trend and volatility per market
- Discount exposure (organic vs promoted demand)

Each section is a pure function of the cleaned table; the market revenue
order is passed explicitly to the sections that sort by it.
"""

from typing import Dict, Optional, Sequence

import polars as pl
import structlog

from salesopt.analytics.aggregator import (
    DISCOUNT_BAND_ORDER,
    SEGMENT_ORDER,
    SHIP_MODE_ORDER,
    AggFunc,
    Aggregator,
    Measure,
    delivery_days,
    discount_band,
    order_month,
    order_year,
    ordinal,
    safe_divide,
)

logger = structlog.get_logger(__name__)


class SalesAnalysis:
    """
    Exploratory aggregate queries over the cleaned transaction table.

    Example:
        analysis = SalesAnalysis(aggregator)
        sections = analysis.run_all(df)
        sections["market_performance"]
    """

    def __init__(self, aggregator: Optional[Aggregator] = None):
        self.aggregator = aggregator or Aggregator()

    def _order_by_market(
        self,
        frame: pl.DataFrame,
        market_order: pl.DataFrame,
        then_by: Sequence[pl.Expr],
    ) -> pl.DataFrame:
        return (
            frame.join(market_order, on="market", how="left")
            .sort([pl.col("rank_order"), *then_by])
            .drop("rank_order")
        )

    # -------------------------------------------------------------------------
    # Demand concentration
    # -------------------------------------------------------------------------

    def market_performance(self, df: pl.DataFrame) -> pl.DataFrame:
        """Revenue, orders, AOV and global revenue share per market"""
        agg = self.aggregator
        markets = agg.aggregate(
            df,
            by="market",
            measures=[
                Measure(AggFunc.COUNT_DISTINCT, "country", "country_count"),
                Measure(AggFunc.SUM, "sales", "total_sales"),
                Measure(AggFunc.COUNT, "order_date", "order_count"),
            ],
        )
        markets = markets.with_columns(
            safe_divide(pl.col("total_sales"), pl.col("order_count")).alias("aov"),
            safe_divide(pl.col("total_sales"), pl.col("country_count")).alias("avg_country_revenue"),
            safe_divide(pl.col("order_count"), pl.col("country_count")).alias("avg_country_orders"),
        )
        markets = agg.share_of_total(markets, "total_sales", alias="sales_pct")
        markets = agg.share_of_total(markets, "order_count", alias="order_pct")
        markets = agg.rank_within(markets, "total_sales", alias="rank_order", tie_breaker="market")
        return markets.sort("rank_order")

    def market_revenue_order(self, df: pl.DataFrame) -> pl.DataFrame:
        """Strict market revenue rank, ties broken by market name"""
        totals = self.aggregator.aggregate(
            df, by="market", measures=[Measure(AggFunc.SUM, "sales", "total_sales")]
        )
        return (
            self.aggregator.rank_within(totals, "total_sales", alias="rank_order", tie_breaker="market")
            .select("market", "rank_order")
            .sort("rank_order")
        )

    # -------------------------------------------------------------------------
    # Product mix
    # -------------------------------------------------------------------------

    def category_mix(self, df: pl.DataFrame, market_order: Optional[pl.DataFrame] = None) -> pl.DataFrame:
        """Category revenue, rank and share inside each market"""
        agg = self.aggregator
        market_order = market_order if market_order is not None else self.market_revenue_order(df)

        mix = agg.aggregate(
            df,
            by=["market", "category"],
            measures=[Measure(AggFunc.SUM, "sales", "total_sales")],
        )
        mix = agg.rank_within(mix, "total_sales", partition_by="market", alias="rank_in_market")
        mix = agg.share_of_total(mix, "total_sales", partition_by="market", alias="category_share")
        return self._order_by_market(mix, market_order, [pl.col("rank_in_market"), pl.col("category")])

    # -------------------------------------------------------------------------
    # Pricing and discount sensitivity
    # -------------------------------------------------------------------------

    def discount_sensitivity(self, df: pl.DataFrame, market_order: Optional[pl.DataFrame] = None) -> pl.DataFrame:
        """Orders, order share and AOV per discount level in each market"""
        agg = self.aggregator
        market_order = market_order if market_order is not None else self.market_revenue_order(df)

        banded = df.with_columns(discount_band().alias("discount_level"))
        sensitivity = agg.aggregate(
            banded,
            by=["market", "discount_level"],
            measures=[
                Measure(AggFunc.COUNT, alias="order_count"),
                Measure(AggFunc.MEAN, "sales", "aov"),
            ],
        )
        sensitivity = agg.share_of_total(sensitivity, "order_count", partition_by="market", alias="order_pct")
        return self._order_by_market(
            sensitivity, market_order, [ordinal("discount_level", DISCOUNT_BAND_ORDER)]
        )

    def discount_exposure(self, df: pl.DataFrame) -> pl.DataFrame:
        """Share of orders placed at any discount, per market"""
        flagged = df.with_columns((pl.col("discount") > 0).cast(pl.Int64).alias("is_discounted"))
        exposure = self.aggregator.aggregate(
            flagged,
            by="market",
            measures=[
                Measure(AggFunc.COUNT, alias="order_count"),
                Measure(AggFunc.SUM, "is_discounted", "discounted_orders"),
            ],
        )
        return exposure.with_columns(
            safe_divide(pl.col("discounted_orders"), pl.col("order_count")).alias("discounted_order_pct")
        )

    # -------------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------------

    def shipping_performance(self, df: pl.DataFrame, market_order: Optional[pl.DataFrame] = None) -> pl.DataFrame:
        """Ship mode order share, cost, quantity, delivery time and revenue share per market"""
        agg = self.aggregator
        market_order = market_order if market_order is not None else self.market_revenue_order(df)

        shipped = df.with_columns(delivery_days().alias("delivery_days"))
        shipping = agg.aggregate(
            shipped,
            by=["market", "ship_mode"],
            measures=[
                Measure(AggFunc.COUNT, alias="order_count"),
                Measure(AggFunc.MEAN, "shipping_cost", "ship_cost_avg"),
                Measure(AggFunc.MEAN, "quantity", "quantity_avg"),
                Measure(AggFunc.SUM, "sales", "total_sales"),
                Measure(AggFunc.MIN, "delivery_days", "delivery_days_min"),
                Measure(AggFunc.MEAN, "delivery_days", "delivery_days_avg"),
                Measure(AggFunc.MAX, "delivery_days", "delivery_days_max"),
            ],
        )
        shipping = agg.share_of_total(shipping, "order_count", partition_by="market", alias="order_pct")
        shipping = agg.share_of_total(shipping, "total_sales", partition_by="market", alias="revenue_pct")
        return self._order_by_market(shipping, market_order, [ordinal("ship_mode", SHIP_MODE_ORDER)])

    # -------------------------------------------------------------------------
    # Segments
    # -------------------------------------------------------------------------

    def segment_contribution(self, df: pl.DataFrame, market_order: Optional[pl.DataFrame] = None) -> pl.DataFrame:
        """Segment AOV, revenue share and order share inside each market"""
        agg = self.aggregator
        market_order = market_order if market_order is not None else self.market_revenue_order(df)

        segments = agg.aggregate(
            df,
            by=["market", "segment"],
            measures=[
                Measure(AggFunc.MEAN, "sales", "aov"),
                Measure(AggFunc.SUM, "sales", "total_sales"),
                Measure(AggFunc.COUNT, alias="order_count"),
            ],
        )
        segments = agg.share_of_total(segments, "total_sales", partition_by="market", alias="sales_pct")
        segments = agg.share_of_total(segments, "order_count", partition_by="market", alias="order_pct")
        return self._order_by_market(segments, market_order, [ordinal("segment", SEGMENT_ORDER)])

    def segment_index(self, df: pl.DataFrame, contribution: Optional[pl.DataFrame] = None) -> pl.DataFrame:
        """
        Segment revenue share in a market divided by its global revenue share.
        Above 1 the market over-indexes on the segment, below 1 it under-indexes.
        """
        agg = self.aggregator
        contribution = contribution if contribution is not None else self.segment_contribution(df)

        overall = agg.aggregate(df, by="segment", measures=[Measure(AggFunc.SUM, "sales", "total_sales")])
        overall = agg.share_of_total(overall, "total_sales", alias="global_sales_pct")

        return (
            contribution.select("market", "segment", "sales_pct")
            .join(overall.select("segment", "global_sales_pct"), on="segment", how="left")
            .with_columns(safe_divide(pl.col("sales_pct"), pl.col("global_sales_pct")).alias("sales_index"))
            .sort("market", "segment")
        )

    # -------------------------------------------------------------------------
    # Trend and stability
    # -------------------------------------------------------------------------

    def market_trend(self, df: pl.DataFrame) -> pl.DataFrame:
        """Yearly revenue per market with year-over-year delta"""
        agg = self.aggregator
        yearly = agg.aggregate(
            df.with_columns(order_year().alias("order_year")),
            by=["market", "order_year"],
            measures=[
                Measure(AggFunc.SUM, "sales", "total_sales"),
                Measure(AggFunc.COUNT, alias="order_count"),
            ],
        )
        return agg.year_over_year(yearly, "total_sales", group_by="market", period="order_year", alias="sales_yoy")

    def market_volatility(self, df: pl.DataFrame) -> pl.DataFrame:
        """Mean, standard deviation and coefficient of variation of monthly revenue"""
        agg = self.aggregator
        monthly = agg.aggregate(
            df.with_columns(order_month().alias("order_month")),
            by=["market", "order_month"],
            measures=[Measure(AggFunc.SUM, "sales", "monthly_sales")],
        )
        return agg.aggregate(
            monthly,
            by="market",
            measures=[
                Measure(AggFunc.MEAN, "monthly_sales", "monthly_sales_mean"),
                Measure(AggFunc.STD, "monthly_sales", "monthly_sales_std"),
                Measure(AggFunc.CV, "monthly_sales", "monthly_sales_cv"),
                Measure(AggFunc.PERCENTILE, "monthly_sales", "monthly_sales_p50", quantile=0.5),
            ],
        )

    def run_all(self, df: pl.DataFrame) -> Dict[str, pl.DataFrame]:
        """Compute every section; returns named result sets"""
        market_order = self.market_revenue_order(df)
        contribution = self.segment_contribution(df, market_order)

        sections = {
            "market_performance": self.market_performance(df),
            "market_revenue_order": market_order,
            "category_mix": self.category_mix(df, market_order),
            "discount_sensitivity": self.discount_sensitivity(df, market_order),
            "discount_exposure": self.discount_exposure(df),
            "shipping_performance": self.shipping_performance(df, market_order),
            "segment_contribution": contribution,
            "segment_index": self.segment_index(df, contribution),
            "market_trend": self.market_trend(df),
            "market_volatility": self.market_volatility(df),
        }

        logger.info(
            "Analysis sections computed",
            sections=list(sections),
            rows={name: frame.height for name, frame in sections.items()},
        )
        return sections
