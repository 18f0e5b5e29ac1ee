"""
Unit Tests - Extract Publishing
"""
import pytest
from sqlalchemy import func, select

from salesopt.database import (
    CorrectionLog,
    DimCountryMarket,
    DimDate,
    DimProduct,
    ExtractPublisher,
    FactSales,
)
from salesopt.modeling.semantic import build_semantic_model
from salesopt.transformation.corrections import correct_dataframe


async def _count(session, table) -> int:
    return (await session.execute(select(func.count()).select_from(table))).scalar_one()


@pytest.fixture
def corrected(misfiled_df):
    return correct_dataframe(misfiled_df)


class TestExtractPublisher:
    """Tests for ExtractPublisher"""

    async def test_publish_writes_every_table(self, test_db, corrected):
        """Test row counts match the extracts"""
        df, corrections = corrected
        model = build_semantic_model(df)

        counts = await ExtractPublisher().publish(test_db, model, corrections)

        assert counts["fact_sales"] == model.fact_sales.height
        assert await _count(test_db, FactSales) == model.fact_sales.height
        assert await _count(test_db, DimDate) == 366
        assert await _count(test_db, DimProduct) == model.dim_product.height
        assert counts["correction_log"] == len(corrections.records)

    async def test_publish_replaces_previous_extracts(self, test_db, corrected):
        """Test a second publish leaves the same extract counts"""
        df, corrections = corrected
        model = build_semantic_model(df)
        publisher = ExtractPublisher(chunk_size=2)

        await publisher.publish(test_db, model, corrections)
        await publisher.publish(test_db, model, corrections)

        assert await _count(test_db, FactSales) == model.fact_sales.height
        assert await _count(test_db, DimCountryMarket) == model.dim_country_market.height
        # the audit log is appended, never replaced
        assert await _count(test_db, CorrectionLog) == 2 * len(corrections.records)

    async def test_published_keys_resolve(self, test_db, corrected):
        """Test fact rows join back to their dimensions"""
        df, _ = corrected
        model = build_semantic_model(df)

        await ExtractPublisher().publish(test_db, model)

        joined = await test_db.execute(
            select(func.count())
            .select_from(FactSales)
            .join(DimProduct, FactSales.product_key == DimProduct.product_key)
            .join(DimCountryMarket, FactSales.country_key == DimCountryMarket.country_key)
        )
        assert joined.scalar_one() == model.fact_sales.height
        assert await _count(test_db, CorrectionLog) == 0

    async def test_audit_rows(self, test_db, corrected):
        df, corrections = corrected

        await ExtractPublisher().publish(test_db, build_semantic_model(df), corrections)

        rows = (await test_db.execute(
            select(CorrectionLog.row_id, CorrectionLog.new_value).where(CorrectionLog.rule == "austria_to_eu")
        )).all()
        assert [tuple(r) for r in rows] == [(2, "EU")]
