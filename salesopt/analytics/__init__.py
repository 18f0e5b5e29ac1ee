"""
Analytics Module
"""
from .aggregator import AggFunc, Aggregator, Measure, create_aggregator, discount_band, safe_divide
from .reports import SalesAnalysis

__all__ = [
    "AggFunc",
    "Aggregator",
    "Measure",
    "create_aggregator",
    "discount_band",
    "safe_divide",
    "SalesAnalysis",
]
