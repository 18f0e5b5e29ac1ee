"""
Data Correction Module

Hard-coded remediation rules for hierarchy violations found by the
consistency validator.
Handles:
- Market reassignment for countries filed under the wrong market
- Subcategory/category reassignment for mis-filed products
- Row-id targeted, all-or-nothing application
- Correction audit records

Rules are business decisions written by hand after reviewing the validator
output. They are never inferred from the data.
"""

from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import polars as pl
import structlog

from salesopt.exceptions import CorrectionError

logger = structlog.get_logger(__name__)

ROW_KEY = "row_id"


@dataclass(frozen=True)
class CorrectionRule:
    """
    One remediation rule.

    Rows where every `match` column equals its value and every `exclude`
    column differs from its value get the `assign` values.
    """
    name: str
    match: Mapping[str, Any]
    assign: Mapping[str, Any]
    exclude: Mapping[str, Any] = field(default_factory=dict)

    @property
    def columns(self) -> List[str]:
        return list(dict.fromkeys([*self.match, *self.exclude, *self.assign]))

    def predicate(self) -> pl.Expr:
        conditions = [pl.col(c) == v for c, v in self.match.items()]
        conditions += [pl.col(c) != v for c, v in self.exclude.items()]
        return pl.all_horizontal(conditions)


MARKET_COUNTRY_RULES: List[CorrectionRule] = [
    CorrectionRule(
        name="austria_to_eu",
        match={"country": "Austria", "market": "EMEA"},
        assign={"market": "EU"},
    ),
    CorrectionRule(
        name="mongolia_to_apac",
        match={"country": "Mongolia", "market": "EMEA"},
        assign={"market": "APAC"},
    ),
]

SUBCATEGORY_PRODUCT_RULES: List[CorrectionRule] = [
    CorrectionRule(
        name="staples_to_fasteners",
        match={"product_name": "Staples"},
        exclude={"subcategory": "Fasteners"},
        assign={"subcategory": "Fasteners", "category": "Office Supplies"},
    ),
]

DEFAULT_CORRECTION_RULES: List[CorrectionRule] = MARKET_COUNTRY_RULES + SUBCATEGORY_PRODUCT_RULES


@dataclass(frozen=True)
class CorrectionRecord:
    """A single field change, keyed by the immutable row id"""
    rule: str
    row_id: int
    column: str
    old_value: Any
    new_value: Any


@dataclass
class CorrectionResult:
    """Outcome of one correction batch"""
    records: List[CorrectionRecord]
    rules_applied: Dict[str, int]
    started_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def rows_changed(self) -> int:
        return len({r.row_id for r in self.records})

    def to_frame(self) -> pl.DataFrame:
        """Audit log of every change, values rendered as text"""
        return pl.DataFrame(
            [
                {**asdict(r), "old_value": _as_text(r.old_value), "new_value": _as_text(r.new_value)}
                for r in self.records
            ],
            schema={
                "rule": pl.Utf8,
                "row_id": pl.Int64,
                "column": pl.Utf8,
                "old_value": pl.Utf8,
                "new_value": pl.Utf8,
            },
        )


def _as_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class _Transaction:
    def __init__(self, frame: pl.DataFrame):
        self.frame = frame


class SalesTable:
    """
    The shared transaction table.

    All phases read it in strict order; writes go through transaction(),
    which commits the staged frame on success and discards it on any error.

    Example:
        table = SalesTable(df)
        with table.transaction() as tx:
            tx.frame = tx.frame.with_columns(...)
    """

    def __init__(self, frame: pl.DataFrame):
        self._frame = frame
        self.version = 0

    @property
    def frame(self) -> pl.DataFrame:
        return self._frame

    @contextmanager
    def transaction(self) -> Iterator[_Transaction]:
        tx = _Transaction(self._frame)
        try:
            yield tx
        except Exception as e:
            logger.error("Correction batch failed, rolling back", error=str(e), error_type=type(e).__name__)
            raise
        self._frame = tx.frame
        self.version += 1
        logger.debug("Correction batch committed", version=self.version)


class DataCorrector:
    """
    Applies an explicit allow-list of correction rules.

    The full match set of every rule is resolved against one snapshot before
    anything is written, then applied by row id inside a single transaction.
    Predicates test the uncorrected value, so re-running on a corrected table
    is a no-op.

    Example:
        corrector = DataCorrector()
        result = corrector.apply(table)
    """

    def __init__(self, rules: Optional[Sequence[CorrectionRule]] = None):
        self.rules = list(rules if rules is not None else DEFAULT_CORRECTION_RULES)

    def _check_row_keys(self, df: pl.DataFrame) -> None:
        if ROW_KEY not in df.columns:
            raise CorrectionError(f"Column '{ROW_KEY}' required to target corrections")
        keys = df.get_column(ROW_KEY)
        if keys.null_count() or keys.n_unique() != df.height:
            raise CorrectionError(f"Column '{ROW_KEY}' must be unique and non-null to target corrections")

    def plan(self, df: pl.DataFrame) -> List[CorrectionRecord]:
        """
        Resolve every rule against the same snapshot.

        Raises:
            CorrectionError: unknown columns, non-unique row ids, or two rules
                writing the same field of the same row
        """
        self._check_row_keys(df)

        records: List[CorrectionRecord] = []
        owners: Dict[Tuple[int, str], str] = {}

        for rule in self.rules:
            missing = [c for c in rule.columns if c not in df.columns]
            if missing:
                raise CorrectionError(f"Rule '{rule.name}' references unknown columns: {missing}")

            matched = df.filter(rule.predicate()).select([ROW_KEY, *rule.assign])

            for row in matched.iter_rows(named=True):
                for column, new_value in rule.assign.items():
                    if row[column] == new_value:
                        continue
                    key = (row[ROW_KEY], column)
                    if key in owners:
                        raise CorrectionError(
                            f"Rules '{owners[key]}' and '{rule.name}' both correct "
                            f"{column} of row {row[ROW_KEY]}"
                        )
                    owners[key] = rule.name
                    records.append(
                        CorrectionRecord(
                            rule=rule.name,
                            row_id=row[ROW_KEY],
                            column=column,
                            old_value=row[column],
                            new_value=new_value,
                        )
                    )

        return records

    def _apply_records(self, df: pl.DataFrame, records: Sequence[CorrectionRecord]) -> pl.DataFrame:
        by_column: Dict[str, Dict[int, Any]] = defaultdict(dict)
        for record in records:
            by_column[record.column][record.row_id] = record.new_value

        for column, updates in by_column.items():
            patch = pl.DataFrame(
                {ROW_KEY: list(updates), "__corrected": list(updates.values())},
                schema={ROW_KEY: df.schema[ROW_KEY], "__corrected": df.schema[column]},
            )
            df = (
                df.join(patch, on=ROW_KEY, how="left")
                .with_columns(pl.coalesce("__corrected", column).alias(column))
                .drop("__corrected")
            )
        return df

    def apply(self, table: SalesTable) -> CorrectionResult:
        """Plan and apply all rules as one all-or-nothing batch"""
        started_at = datetime.utcnow()

        with table.transaction() as tx:
            records = self.plan(tx.frame)
            tx.frame = self._apply_records(tx.frame, records)

        rules_applied = {rule.name: 0 for rule in self.rules}
        for record in records:
            rules_applied[record.rule] += 1

        result = CorrectionResult(
            records=records,
            rules_applied=rules_applied,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )

        logger.info(
            "Corrections applied",
            rows_changed=result.rows_changed,
            field_changes=len(records),
            rules=rules_applied,
        )
        return result


def correct_dataframe(
    df: pl.DataFrame,
    rules: Optional[Sequence[CorrectionRule]] = None,
) -> Tuple[pl.DataFrame, CorrectionResult]:
    """
    Convenience function to correct a DataFrame.

    Returns:
        Corrected DataFrame and the correction result
    """
    table = SalesTable(df)
    result = DataCorrector(rules).apply(table)
    return table.frame, result
