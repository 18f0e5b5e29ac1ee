"""
Extract Publisher

Replaces the dashboard tables with the extracts of the current run and
appends the correction audit log.
"""

from typing import Dict, List, Optional, Type

import polars as pl
import structlog
from sqlalchemy import delete, insert
from sqlalchemy.ext.asyncio import AsyncSession

from salesopt.config import get_settings
from salesopt.modeling.semantic import SemanticModel
from salesopt.transformation.corrections import CorrectionResult
from .models import Base, CorrectionLog, DimCountryMarket, DimDate, DimProduct, DimSegment, FactSales

logger = structlog.get_logger(__name__)
settings = get_settings()

# Insert order; deletes run in reverse so the fact goes first
EXTRACT_TABLES: Dict[str, Type[Base]] = {
    "dim_product": DimProduct,
    "dim_country_market": DimCountryMarket,
    "dim_segment": DimSegment,
    "dim_date": DimDate,
    "fact_sales": FactSales,
}


class ExtractPublisher:
    """
    Publishes a SemanticModel to the relational store.

    The caller owns the session and its transaction; a failure part way
    leaves the previous extracts in place once the session rolls back.

    Example:
        async with get_db() as db:
            counts = await ExtractPublisher().publish(db, model, corrections)
    """

    def __init__(self, chunk_size: Optional[int] = None):
        self.chunk_size = chunk_size or settings.database.insert_chunk_size

    async def _insert(self, session: AsyncSession, table: Type[Base], frame: pl.DataFrame) -> int:
        rows = frame.to_dicts()
        for start in range(0, len(rows), self.chunk_size):
            await session.execute(insert(table), rows[start:start + self.chunk_size])
        return len(rows)

    async def publish(
        self,
        session: AsyncSession,
        model: SemanticModel,
        corrections: Optional[CorrectionResult] = None,
    ) -> Dict[str, int]:
        """
        Returns:
            Rows written per table
        """
        extracts = model.tables()

        for name in reversed(list(EXTRACT_TABLES)):
            await session.execute(delete(EXTRACT_TABLES[name]))

        counts: Dict[str, int] = {}
        for name, table in EXTRACT_TABLES.items():
            frame = extracts[name]
            counts[name] = await self._insert(session, table, frame.select(self._columns(table)))

        if corrections is not None and corrections.records:
            counts["correction_log"] = await self._insert(session, CorrectionLog, corrections.to_frame())

        await session.flush()
        logger.info("Extracts published", rows=counts)
        return counts

    @staticmethod
    def _columns(table: Type[Base]) -> List[str]:
        """Frame columns that map onto the table, skipping generated keys"""
        return [
            column.key
            for column in table.__table__.columns
            if not (column.primary_key and column.autoincrement is True)
        ]
