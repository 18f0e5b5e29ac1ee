"""
Database Models - Dashboard Star Schema

Tables receiving the semantic model extracts:

Fact Tables:
- FactSales: one row per transaction

Dimension Tables:
- DimProduct: product with category, subcategory and performance band
- DimCountryMarket: country and its market
- DimSegment: customer segment
- DimDate: calendar days

Audit:
- CorrectionLog: every field changed by a correction batch
"""

from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class DimDate(Base):
    """Calendar day dimension"""

    __tablename__ = "dim_date"

    calendar_date: Mapped[date] = mapped_column(Date, primary_key=True)
    day: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    month_no: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    month_name: Mapped[str] = mapped_column(String(30), nullable=False)
    quarter_no: Mapped[str] = mapped_column(String(30), nullable=False)
    year: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    __table_args__ = (
        Index("idx_dim_date_year_month", "year", "month_no"),
    )


class DimSegment(Base):
    """Customer segment dimension"""

    __tablename__ = "dim_segment"

    segment_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    segment: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)


class DimCountryMarket(Base):
    """Country with its market; country_key is MARKET-n"""

    __tablename__ = "dim_country_market"

    country_key: Mapped[str] = mapped_column(String(50), primary_key=True)
    country: Mapped[str] = mapped_column(String(70), unique=True, nullable=False)
    market: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_dim_country_market_market", "market"),
    )


class DimProduct(Base):
    """Product dimension; product_key is CAT-SU-n"""

    __tablename__ = "dim_product"

    product_key: Mapped[str] = mapped_column(String(150), primary_key=True)
    product_name: Mapped[str] = mapped_column(String(250), unique=True, nullable=False)
    performance: Mapped[str] = mapped_column(String(50), nullable=False)
    subcategory: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_dim_product_category", "category", "subcategory"),
    )


# =============================================================================
# FACT TABLES
# =============================================================================

class FactSales(Base):
    """Transaction fact keyed by date, segment, country and product"""

    __tablename__ = "fact_sales"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_date: Mapped[date] = mapped_column(ForeignKey("dim_date.calendar_date"), nullable=False)
    segment_key: Mapped[int] = mapped_column(ForeignKey("dim_segment.segment_key"), nullable=False)
    country_key: Mapped[str] = mapped_column(ForeignKey("dim_country_market.country_key"), nullable=False)
    product_key: Mapped[str] = mapped_column(ForeignKey("dim_product.product_key"), nullable=False)

    sales: Mapped[float] = mapped_column(Float, nullable=False)
    quantity: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    discount: Mapped[float] = mapped_column(Float, nullable=False)
    discounted: Mapped[str] = mapped_column(String(3), nullable=False)
    profit: Mapped[Optional[float]] = mapped_column(Float)

    __table_args__ = (
        Index("idx_fact_sales_date", "order_date"),
        Index("idx_fact_sales_country", "country_key"),
        Index("idx_fact_sales_product", "product_key"),
    )


# =============================================================================
# AUDIT
# =============================================================================

class CorrectionLog(Base):
    """One corrected field of one transaction"""

    __tablename__ = "correction_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule: Mapped[str] = mapped_column(String(100), nullable=False)
    row_id: Mapped[int] = mapped_column(Integer, nullable=False)
    column: Mapped[str] = mapped_column(String(50), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(String(250))
    new_value: Mapped[Optional[str]] = mapped_column(String(250))
    applied_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_correction_log_row", "row_id"),
    )
