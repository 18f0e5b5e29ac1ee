"""
Database Module
"""
from .connection import init_database, close_database, get_db, get_engine
from .models import Base, CorrectionLog, DimCountryMarket, DimDate, DimProduct, DimSegment, FactSales
from .publisher import ExtractPublisher

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "get_engine",
    "Base",
    "CorrectionLog",
    "DimCountryMarket",
    "DimDate",
    "DimProduct",
    "DimSegment",
    "FactSales",
    "ExtractPublisher",
]
