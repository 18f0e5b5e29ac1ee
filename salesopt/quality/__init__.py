"""
Data Quality Module
"""
from .profiler import DataProfiler, FieldProfile
from .validators import ConsistencyValidator, ValidationResult, create_transactions_validator
from .anomaly_detector import ProfitAnomalyDetector, AnomalyReport, AnomalyResult

__all__ = [
    "DataProfiler",
    "FieldProfile",
    "ConsistencyValidator",
    "ValidationResult",
    "create_transactions_validator",
    "ProfitAnomalyDetector",
    "AnomalyReport",
    "AnomalyResult",
]
