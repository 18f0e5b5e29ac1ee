"""
Consistency Validation Module

Rule-based consistency checks over the transaction table.
Implements validation patterns inspired by Great Expectations.

Features:
- Hierarchy consistency (every child value maps to exactly one parent)
- Full-row duplicate detection
- Ship date / order date ordering
- Region values reusing market names

Checks only report. Nothing here modifies the table; corrections are
encoded by hand as rules in salesopt.transformation.corrections.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import polars as pl
import structlog

from salesopt.exceptions import ConsistencyViolation

logger = structlog.get_logger(__name__)


# (parent, child) pairs expected to be hierarchical
DEFAULT_HIERARCHIES: List[Tuple[str, str]] = [
    ("market", "country"),
    ("category", "subcategory"),
    ("subcategory", "product_name"),
    ("customer_id", "customer_name"),
    ("product_id", "product_name"),
]


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    VIOLATIONS = "violations"


@dataclass
class ConsistencyCheck:
    """Single consistency check result"""
    name: str
    passed: bool
    message: str
    inconsistency_count: int = 0
    details: Dict[str, Any] = field(default_factory=dict)
    offending_rows: Optional[pl.DataFrame] = None
    violation: Optional[ConsistencyViolation] = None

    def summary(self) -> str:
        return f"{self.name}: {self.inconsistency_count} inconsistent"


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    checks: List[ConsistencyCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def violations(self) -> List[ConsistencyViolation]:
        return [c.violation for c in self.checks if c.violation is not None]

    def get(self, name: str) -> Optional[ConsistencyCheck]:
        for check in self.checks:
            if check.name == name:
                return check
        return None

    def failed(self, name: str) -> bool:
        check = self.get(name)
        return check is not None and not check.passed


def hierarchy_check_name(parent: str, child: str) -> str:
    return f"hierarchy_{parent}_{child}"


def check_hierarchy(df: pl.DataFrame, parent: str, child: str) -> ConsistencyCheck:
    """
    Hierarchy consistency between parent and child columns.

    Consistent iff count_distinct(child) == count_distinct((parent, child)).
    The inconsistency count is the positive difference, and the offending rows
    are those whose child value appears under more than one parent.
    """
    name = hierarchy_check_name(parent, child)
    for column in (parent, child):
        if column not in df.columns:
            return ConsistencyCheck(
                name=name,
                passed=False,
                message=f"Column '{column}' not found",
            )

    scoped = df.filter(pl.col(child).is_not_null())
    counts = scoped.select(
        pl.col(child).n_unique().alias("child_distinct"),
        pl.struct([parent, child]).n_unique().alias("pair_distinct"),
    ).row(0, named=True) if scoped.height else {"child_distinct": 0, "pair_distinct": 0}

    inconsistency = max(counts["pair_distinct"] - counts["child_distinct"], 0)
    passed = inconsistency == 0

    offending = scoped.filter(pl.col(parent).n_unique().over(child) > 1)
    offending_children = offending.get_column(child).unique().sort().to_list()

    check = ConsistencyCheck(
        name=name,
        passed=passed,
        message=(
            f"{inconsistency} {parent}-{child} combinations beyond one {parent} per {child}"
            if not passed else f"Every {child} maps to exactly one {parent}"
        ),
        inconsistency_count=inconsistency,
        details={
            "parent": parent,
            "child": child,
            "child_distinct": counts["child_distinct"],
            "pair_distinct": counts["pair_distinct"],
            "offending_values": offending_children,
        },
        offending_rows=offending,
    )
    if not passed:
        check.violation = ConsistencyViolation(check.message, details=check)
    return check


def check_duplicates(df: pl.DataFrame) -> ConsistencyCheck:
    """Group by every column and flag groups seen more than once"""
    groups = (
        df.group_by(df.columns)
        .agg(pl.len().alias("duplicate_counter"))
        .filter(pl.col("duplicate_counter") > 1)
    )
    duplicate_rows = int(groups.get_column("duplicate_counter").sum()) if groups.height else 0
    passed = groups.height == 0

    check = ConsistencyCheck(
        name="duplicate_rows",
        passed=passed,
        message=f"{groups.height} row groups occur more than once" if not passed else "No duplicate rows",
        inconsistency_count=groups.height,
        details={"duplicate_groups": groups.height, "duplicate_rows": duplicate_rows},
        offending_rows=groups,
    )
    if not passed:
        check.violation = ConsistencyViolation(check.message, details=check)
    return check


def check_ship_after_order(
    df: pl.DataFrame,
    order_column: str = "order_date",
    ship_column: str = "ship_date",
) -> ConsistencyCheck:
    """Rows shipped before they were ordered"""
    offending = df.filter(pl.col(ship_column) < pl.col(order_column))
    passed = offending.height == 0

    check = ConsistencyCheck(
        name="ship_after_order",
        passed=passed,
        message=f"{offending.height} rows ship before their order date" if not passed else "Ship dates follow order dates",
        inconsistency_count=offending.height,
        offending_rows=offending,
    )
    if not passed:
        check.violation = ConsistencyViolation(check.message, details=check)
    return check


def check_region_market_overlap(
    df: pl.DataFrame,
    region_column: str = "region",
    market_column: str = "market",
) -> ConsistencyCheck:
    """Region values that are also market names (region reused as a sub-market)"""
    markets = df.get_column(market_column).drop_nulls().unique().to_list()
    overlap = (
        df.filter(pl.col(region_column).is_in(markets))
        .select(market_column, region_column)
        .unique()
        .sort(market_column, region_column)
    )
    passed = overlap.height == 0

    check = ConsistencyCheck(
        name="region_market_overlap",
        passed=passed,
        message=(
            f"{overlap.height} market-region pairs reuse a market name as region"
            if not passed else "Regions and markets are disjoint"
        ),
        inconsistency_count=overlap.height,
        details={"regions": sorted(overlap.get_column(region_column).unique().to_list())},
        offending_rows=overlap,
    )
    if not passed:
        check.violation = ConsistencyViolation(check.message, details=check)
    return check


class ConsistencyValidator:
    """
    Consistency check suite over the transaction table.

    Example:
        validator = ConsistencyValidator()
        validator.add_hierarchy_check("market", "country")
        result = validator.validate(df)
        result.failed("hierarchy_market_country")
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Raise on the first violation
        self._checks: List[Callable[[pl.DataFrame], ConsistencyCheck]] = []

    def add_hierarchy_check(self, parent: str, child: str) -> "ConsistencyValidator":
        self._checks.append(lambda df: check_hierarchy(df, parent, child))
        return self

    def add_duplicate_check(self) -> "ConsistencyValidator":
        self._checks.append(check_duplicates)
        return self

    def add_ship_date_check(self) -> "ConsistencyValidator":
        self._checks.append(check_ship_after_order)
        return self

    def add_region_market_check(self) -> "ConsistencyValidator":
        self._checks.append(check_region_market_overlap)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all consistency checks on DataFrame.

        Raises:
            ConsistencyViolation: only in strict mode, for the first failing check
        """
        started_at = datetime.utcnow()
        results = []

        logger.info(f"Running {len(self._checks)} consistency checks on {len(df)} rows")

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Consistency check failed: {result.name}",
                    message=result.message,
                    inconsistency_count=result.inconsistency_count,
                )
                if self.strict_mode and result.violation is not None:
                    raise result.violation

        passed_checks = sum(1 for r in results if r.passed)
        status = ValidationStatus.PASSED if passed_checks == len(results) else ValidationStatus.VIOLATIONS

        validation_result = ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            checks=results,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )

        logger.info(
            f"Validation complete: {status.value}",
            passed=passed_checks,
            violations=len(results) - passed_checks,
        )

        return validation_result


def create_transactions_validator(strict_mode: bool = False) -> ConsistencyValidator:
    """Create pre-configured validator for the transaction table"""
    validator = ConsistencyValidator(strict_mode=strict_mode)
    for parent, child in DEFAULT_HIERARCHIES:
        validator.add_hierarchy_check(parent, child)
    return (
        validator
        .add_duplicate_check()
        .add_ship_date_check()
        .add_region_market_check()
    )
