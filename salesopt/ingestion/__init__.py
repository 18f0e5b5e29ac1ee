"""
Data Ingestion Module
"""
from .batch_loader import (
    TRANSACTION_COLUMNS,
    TRANSACTION_SCHEMA,
    LoadResult,
    SampleStore,
    TransactionFileConfig,
    TransactionLoader,
)

__all__ = [
    "TRANSACTION_COLUMNS",
    "TRANSACTION_SCHEMA",
    "LoadResult",
    "SampleStore",
    "TransactionFileConfig",
    "TransactionLoader",
]
