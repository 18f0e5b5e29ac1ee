"""
Decision Gate Evaluator

Pass/fail business rules applied to candidate allocation dimensions
(market, segment, category) using the named analysis result sets.

Gates:
- ScaleThresholdGate: revenue or order share above a threshold
- TrendStabilityGate: bounded number of negative YoY periods, never two in a row
- ConsistencyOfEffectGate: over/under-index direction holds across every member
- OrganicDemandGate: discounted-order share below a cutoff

Every gate is evaluated independently; a failing gate never stops the
others.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import polars as pl
import structlog

from salesopt.config import get_settings
from salesopt.exceptions import SalesOptimizationError

logger = structlog.get_logger(__name__)
settings = get_settings()


class GateOutcome(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"


class EffectDirection(str, Enum):
    """Direction an index must hold for the consistency gate"""
    OVER = "over"
    UNDER = "under"
    ANY = "any"


@dataclass
class GateResult:
    """Outcome of one gate for one dimension value, with its evidence"""
    gate: str
    dimension: str
    value: Any
    outcome: GateOutcome
    metric: str
    metric_value: Optional[float]
    evidence: Dict[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.outcome == GateOutcome.PASS


def _outcome(condition: bool) -> GateOutcome:
    return GateOutcome.PASS if condition else GateOutcome.FAIL


class DecisionGate(ABC):
    """Base class for gates reading one named result set"""

    name: str = "gate"

    def __init__(self, section: str, dimension: str, metric: str):
        self.section = section
        self.dimension = dimension
        self.metric = metric

    def _frame(self, sections: Mapping[str, pl.DataFrame]) -> pl.DataFrame:
        if self.section not in sections:
            raise SalesOptimizationError(
                f"Gate '{self.name}' needs result set '{self.section}'",
                details={"available": sorted(sections)},
            )
        frame = sections[self.section]
        missing = [c for c in (self.dimension, self.metric) if c not in frame.columns]
        if missing:
            raise SalesOptimizationError(
                f"Gate '{self.name}' cannot find columns {missing} in '{self.section}'"
            )
        return frame

    @abstractmethod
    def evaluate(self, sections: Mapping[str, pl.DataFrame]) -> List[GateResult]:
        """Return one result per dimension value"""


class _ThresholdGate(DecisionGate):
    """Compares one metric per dimension value against a threshold"""

    def __init__(self, threshold: float, section: str, dimension: str, metric: str):
        super().__init__(section, dimension, metric)
        self.threshold = threshold

    @abstractmethod
    def _holds(self, value: float) -> bool:
        ...

    def evaluate(self, sections: Mapping[str, pl.DataFrame]) -> List[GateResult]:
        frame = self._frame(sections)
        results = []
        for row in frame.select(self.dimension, self.metric).iter_rows(named=True):
            value = row[self.metric]
            evidence: Dict[str, Any] = {"threshold": self.threshold}
            if value is None:
                evidence["reason"] = "metric undefined"
                outcome = GateOutcome.FAIL
            else:
                outcome = _outcome(self._holds(value))
            results.append(
                GateResult(
                    gate=self.name,
                    dimension=self.dimension,
                    value=row[self.dimension],
                    outcome=outcome,
                    metric=self.metric,
                    metric_value=value,
                    evidence=evidence,
                )
            )
        return results


class ScaleThresholdGate(_ThresholdGate):
    """PASS when the share is strictly above the threshold"""

    name = "scale_threshold"

    def __init__(
        self,
        threshold: float = 0.05,
        section: str = "market_performance",
        dimension: str = "market",
        metric: str = "sales_pct",
    ):
        super().__init__(threshold, section, dimension, metric)

    def _holds(self, value: float) -> bool:
        return value > self.threshold


class OrganicDemandGate(_ThresholdGate):
    """PASS when the discounted-order share is strictly below the cutoff"""

    name = "organic_demand"

    def __init__(
        self,
        cutoff: float = 0.5,
        section: str = "discount_exposure",
        dimension: str = "market",
        metric: str = "discounted_order_pct",
    ):
        super().__init__(cutoff, section, dimension, metric)

    def _holds(self, value: float) -> bool:
        return value < self.threshold


def longest_negative_run(values: Sequence[Optional[float]]) -> int:
    """Length of the longest streak of consecutive negative values; None is not negative"""
    negative = np.asarray([v is not None and v < 0 for v in values], dtype=bool)
    if not negative.any():
        return 0
    # run lengths from the boundaries of the padded boolean mask
    edges = np.diff(np.concatenate(([0], negative.astype(int), [0])))
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1)
    return int((ends - starts).max())


class TrendStabilityGate(DecisionGate):
    """
    PASS when a dimension value has at most `max_negative` negative YoY
    periods and no two of them are consecutive.

    First periods have no predecessor and are not counted.
    """

    name = "trend_stability"

    def __init__(
        self,
        max_negative: int = 1,
        section: str = "market_trend",
        dimension: str = "market",
        metric: str = "sales_yoy",
        period: str = "order_year",
    ):
        super().__init__(section, dimension, metric)
        self.max_negative = max_negative
        self.period = period

    def evaluate(self, sections: Mapping[str, pl.DataFrame]) -> List[GateResult]:
        frame = self._frame(sections)

        results = []
        for key, group in frame.sort(self.dimension, self.period).group_by([self.dimension], maintain_order=True):
            value = key[0]
            # undefined deltas stay in the series and break a run of declines
            deltas = group.filter(~pl.col("is_first_period")) if "is_first_period" in group.columns else group
            yoy = deltas.get_column(self.metric).to_list()
            periods = deltas.get_column(self.period).to_list()

            negatives = [p for p, d in zip(periods, yoy) if d is not None and d < 0]
            run = longest_negative_run(yoy)
            outcome = _outcome(len(negatives) <= self.max_negative and run < 2)

            results.append(
                GateResult(
                    gate=self.name,
                    dimension=self.dimension,
                    value=value,
                    outcome=outcome,
                    metric="negative_periods",
                    metric_value=float(len(negatives)),
                    evidence={
                        "negative_periods": negatives,
                        "longest_decline": run,
                        "max_negative": self.max_negative,
                        "yoy": dict(zip(periods, yoy)),
                    },
                )
            )
        return results


class ConsistencyOfEffectGate(DecisionGate):
    """
    PASS when the index of a dimension value keeps the same direction across
    every member of the grouping.

    With direction OVER every index must be above 1, with UNDER below 1, and
    with ANY all indexes must fall on the same side of 1. An index of exactly
    1 holds no direction.
    """

    name = "consistency_of_effect"

    def __init__(
        self,
        direction: EffectDirection = EffectDirection.ANY,
        section: str = "segment_index",
        dimension: str = "segment",
        across: str = "market",
        metric: str = "sales_index",
    ):
        super().__init__(section, dimension, metric)
        self.direction = EffectDirection(direction)
        self.across = across

    def evaluate(self, sections: Mapping[str, pl.DataFrame]) -> List[GateResult]:
        frame = self._frame(sections)
        results = []
        for key, group in frame.sort(self.dimension, self.across).group_by([self.dimension], maintain_order=True):
            members = group.get_column(self.across).to_list()
            index = np.asarray(
                [np.nan if v is None else v for v in group.get_column(self.metric).to_list()],
                dtype=float,
            )
            over = index > 1
            under = index < 1
            count = len(index)

            over_share = float(over.sum()) / count if count else 0.0
            under_share = float(under.sum()) / count if count else 0.0
            if self.direction == EffectDirection.OVER:
                held = over_share
            elif self.direction == EffectDirection.UNDER:
                held = under_share
            else:
                held = max(over_share, under_share)

            results.append(
                GateResult(
                    gate=self.name,
                    dimension=self.dimension,
                    value=key[0],
                    outcome=_outcome(count > 0 and held == 1.0),
                    metric=f"{self.metric}_direction_share",
                    metric_value=held,
                    evidence={
                        "direction": self.direction.value,
                        "over": [m for m, flag in zip(members, over) if flag],
                        "under": [m for m, flag in zip(members, under) if flag],
                    },
                )
            )
        return results


@dataclass
class DecisionReport:
    """All gate results of one evaluation"""
    results: List[GateResult]
    evaluated_at: datetime = field(default_factory=datetime.utcnow)

    def for_gate(self, gate: str) -> List[GateResult]:
        return [r for r in self.results if r.gate == gate]

    def outcome(self, gate: str, value: Any) -> Optional[GateOutcome]:
        for result in self.results:
            if result.gate == gate and result.value == value:
                return result.outcome
        return None

    def market_labels(self, dimension: str = "market") -> Dict[Any, str]:
        """
        'core' when a value passes every gate evaluated on the dimension,
        'non-core' otherwise.
        """
        labels: Dict[Any, str] = {}
        for result in self.results:
            if result.dimension != dimension:
                continue
            if result.passed:
                labels.setdefault(result.value, "core")
            else:
                labels[result.value] = "non-core"
        return labels

    def to_frame(self) -> pl.DataFrame:
        return pl.DataFrame(
            [
                {
                    "gate": r.gate,
                    "dimension": r.dimension,
                    "value": str(r.value),
                    "outcome": r.outcome.value,
                    "metric": r.metric,
                    "metric_value": r.metric_value,
                }
                for r in self.results
            ],
            schema={
                "gate": pl.Utf8,
                "dimension": pl.Utf8,
                "value": pl.Utf8,
                "outcome": pl.Utf8,
                "metric": pl.Utf8,
                "metric_value": pl.Float64,
            },
        )


class DecisionGateEvaluator:
    """
    Runs every gate against the analysis result sets.

    Example:
        evaluator = DecisionGateEvaluator(create_default_gates())
        report = evaluator.evaluate(sections)
        report.market_labels()
    """

    def __init__(self, gates: Optional[Sequence[DecisionGate]] = None):
        self.gates = list(gates if gates is not None else create_default_gates())

    def evaluate(self, sections: Mapping[str, pl.DataFrame]) -> DecisionReport:
        results: List[GateResult] = []
        for gate in self.gates:
            gate_results = gate.evaluate(sections)
            failed = [r.value for r in gate_results if not r.passed]
            logger.info(
                f"Gate evaluated: {gate.name}",
                dimension=gate.dimension,
                evaluated=len(gate_results),
                failed=failed,
            )
            results.extend(gate_results)

        report = DecisionReport(results=results)
        logger.info("Decision gates complete", labels=report.market_labels())
        return report


def create_default_gates() -> List[DecisionGate]:
    """Market gates plus the segment consistency gate, thresholds from settings"""
    analysis = settings.analysis
    return [
        ScaleThresholdGate(threshold=analysis.scale_threshold),
        TrendStabilityGate(max_negative=analysis.max_negative_periods),
        OrganicDemandGate(cutoff=analysis.organic_demand_cutoff),
        ConsistencyOfEffectGate(direction=EffectDirection.ANY),
    ]
