"""
Pipeline Exceptions

Error taxonomy shared by every stage of the batch run.
"""

from typing import Any, Optional


class SalesOptimizationError(Exception):
    """
    Base exception for the analytics pipeline.

    Attributes:
        message: Human-readable error message.
        details: Optional structured context (check result, offending rows, ...).
    """

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self):
        if self.details is not None and hasattr(self.details, "summary"):
            return f"{self.message}: {self.details.summary()}"
        return self.message


class SchemaMismatch(SalesOptimizationError):
    """Input shape or types do not match the declared schema. Aborts the load."""


class ConsistencyViolation(SalesOptimizationError):
    """A hierarchy or duplicate check found inconsistent rows. Reported, never auto-resolved."""


class UnresolvableAnomaly(SalesOptimizationError):
    """A field irregularity that no available field explains. Leads to exclusion."""

    def __init__(self, field: str, message: str, details: Optional[Any] = None):
        super().__init__(message, details)
        self.field = field


class CorrectionError(SalesOptimizationError):
    """A correction batch could not be planned or applied. The batch is rolled back."""


class ExcludedFieldError(SalesOptimizationError, ValueError):
    """An excluded field was used as a grouping key or measure."""
