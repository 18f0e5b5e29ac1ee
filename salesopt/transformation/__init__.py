"""
Data Transformation Module
"""
from .corrections import (
    CorrectionRecord,
    CorrectionResult,
    CorrectionRule,
    DataCorrector,
    SalesTable,
    correct_dataframe,
)
from .exclusions import ExclusionPolicy, FieldRegistry, FieldStatus

__all__ = [
    "CorrectionRecord",
    "CorrectionResult",
    "CorrectionRule",
    "DataCorrector",
    "SalesTable",
    "correct_dataframe",
    "ExclusionPolicy",
    "FieldRegistry",
    "FieldStatus",
]
