"""
Field Exclusion Policy

Declarative registry of fields that cannot be reconciled. Excluded fields
stay in the table for ad-hoc inspection but may not be used as a grouping
key or measure by the aggregation layer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional

import structlog

from salesopt.exceptions import ExcludedFieldError
from salesopt.quality.anomaly_detector import AnomalyReport
from salesopt.quality.validators import ValidationResult, hierarchy_check_name

logger = structlog.get_logger(__name__)


class FieldStatus(str, Enum):
    """Analysis eligibility of a field"""
    INCLUDED = "included"
    EXCLUDED_AMBIGUOUS = "excluded-ambiguous"
    EXCLUDED_ANOMALOUS = "excluded-anomalous"


@dataclass
class FieldEntry:
    status: FieldStatus
    reason: Optional[str] = None


class FieldRegistry:
    """Status per field; unknown fields are included"""

    def __init__(self, entries: Optional[Dict[str, FieldEntry]] = None):
        self._entries: Dict[str, FieldEntry] = dict(entries or {})

    def exclude(self, field: str, status: FieldStatus, reason: str) -> "FieldRegistry":
        if status == FieldStatus.INCLUDED:
            raise ValueError("Use include() to mark a field as included")
        self._entries[field] = FieldEntry(status=status, reason=reason)
        logger.info(f"Field excluded from analysis: {field}", status=status.value, reason=reason)
        return self

    def include(self, field: str) -> "FieldRegistry":
        self._entries[field] = FieldEntry(status=FieldStatus.INCLUDED)
        return self

    def status(self, field: str) -> FieldStatus:
        entry = self._entries.get(field)
        return entry.status if entry else FieldStatus.INCLUDED

    def is_excluded(self, field: str) -> bool:
        return self.status(field) != FieldStatus.INCLUDED

    @property
    def excluded(self) -> Dict[str, FieldEntry]:
        return {f: e for f, e in self._entries.items() if e.status != FieldStatus.INCLUDED}

    def ensure_usable(self, fields: Iterable[str], role: str = "field") -> None:
        """
        Raises:
            ExcludedFieldError: if any field is excluded
        """
        blocked = [f for f in fields if self.is_excluded(f)]
        if blocked:
            reasons = {f: self._entries[f].reason for f in blocked}
            raise ExcludedFieldError(
                f"Excluded {role} used in aggregation: {blocked}",
                details=reasons,
            )


@dataclass(frozen=True)
class ExclusionRule:
    """Exclude `field` with `status` when the named check or anomaly fails"""
    field: str
    status: FieldStatus
    check: Optional[str] = None
    anomaly: Optional[str] = None
    reason: str = ""


DEFAULT_EXCLUSION_RULES: List[ExclusionRule] = [
    ExclusionRule(
        field="customer_name",
        status=FieldStatus.EXCLUDED_AMBIGUOUS,
        check=hierarchy_check_name("customer_id", "customer_name"),
        reason="customer_name maps to more than one customer_id",
    ),
    ExclusionRule(
        field="product_id",
        status=FieldStatus.EXCLUDED_AMBIGUOUS,
        check=hierarchy_check_name("product_id", "product_name"),
        reason="product_name maps to more than one product_id",
    ),
    ExclusionRule(
        field="region",
        status=FieldStatus.EXCLUDED_AMBIGUOUS,
        check="region_market_overlap",
        reason="region reuses market names as sub-markets",
    ),
    ExclusionRule(
        field="profit",
        status=FieldStatus.EXCLUDED_ANOMALOUS,
        anomaly="profit",
        reason="extreme, persistent negative profit with no explaining field",
    ),
]


class ExclusionPolicy:
    """
    Builds the FieldRegistry from validator and anomaly evidence.

    Example:
        registry = ExclusionPolicy().evaluate(validation, anomalies)
        registry.is_excluded("profit")
    """

    def __init__(self, rules: Optional[List[ExclusionRule]] = None):
        self.rules = list(rules if rules is not None else DEFAULT_EXCLUSION_RULES)

    def evaluate(
        self,
        validation: Optional[ValidationResult] = None,
        anomalies: Optional[AnomalyReport] = None,
        registry: Optional[FieldRegistry] = None,
    ) -> FieldRegistry:
        registry = registry or FieldRegistry()

        for rule in self.rules:
            triggered = False
            if rule.check and validation is not None:
                triggered = validation.failed(rule.check)
            if rule.anomaly and anomalies is not None:
                triggered = triggered or anomalies.is_anomalous(rule.anomaly)

            if triggered:
                registry.exclude(rule.field, rule.status, rule.reason)

        logger.info("Exclusion policy evaluated", excluded=sorted(registry.excluded))
        return registry
