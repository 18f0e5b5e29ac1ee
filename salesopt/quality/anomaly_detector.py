"""
Anomaly Assessment Module

Batch assessment of measure irregularities that cannot be corrected from the
data itself. Implements:
- Magnitude check (deep negative profit against the smallest sale)
- Persistence check (negative/positive profit ratio for every order year)
- Statistical outlier counts (Z-score)
- Explanation check (correlation with candidate explanatory fields)
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import polars as pl
from scipy import stats
import structlog

from salesopt.config import get_settings
from salesopt.exceptions import UnresolvableAnomaly

logger = structlog.get_logger(__name__)
settings = get_settings()


class AnomalyType(str, Enum):
    """Types of anomalies assessed"""
    EXTREME = "extreme"  # Magnitude far beyond the paired field
    PERSISTENT = "persistent"  # Present in every period
    OUTLIER = "outlier"  # Statistical outlier


class AnomalySeverity(str, Enum):
    """Severity levels for anomalies"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class AnomalyResult:
    """Assessment of one measure against its paired field"""
    metric_name: str
    paired_metric: str
    anomaly_types: List[AnomalyType]
    severity: AnomalySeverity
    detected_at: datetime
    value: float  # most negative value of the metric
    reference_value: float  # smallest value of the paired metric
    magnitude_ratio: Optional[float]
    outlier_count: int
    yearly_ratios: Dict[int, Optional[float]]
    correlations: Dict[str, Optional[float]]
    explained_by: Optional[str]
    message: str
    anomaly: Optional[UnresolvableAnomaly] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_unresolvable(self) -> bool:
        return self.anomaly is not None


@dataclass
class AnomalyReport:
    """Complete anomaly assessment report"""
    started_at: datetime
    completed_at: datetime
    metrics_checked: int
    results: List[AnomalyResult] = field(default_factory=list)

    @property
    def unresolvable(self) -> List[UnresolvableAnomaly]:
        return [r.anomaly for r in self.results if r.anomaly is not None]

    def is_anomalous(self, metric_name: str) -> bool:
        return any(a.field == metric_name for a in self.unresolvable)


def yearly_sign_ratios(
    df: pl.DataFrame,
    metric: str,
    date_column: str = "order_date",
) -> pl.DataFrame:
    """
    Negative and positive totals of a metric per year, with
    |negative| / positive as the persistence ratio.
    """
    return (
        df.group_by(pl.col(date_column).dt.year().alias("order_year"))
        .agg(
            pl.col(metric).filter(pl.col(metric) < 0).sum().alias("negative_total"),
            pl.col(metric).filter(pl.col(metric) > 0).sum().alias("positive_total"),
        )
        .with_columns(
            (
                pl.col("negative_total").abs()
                / pl.when(pl.col("positive_total") != 0).then(pl.col("positive_total"))
            ).alias("negative_positive_ratio")
        )
        .sort("order_year")
    )


class ProfitAnomalyDetector:
    """
    Flags a measure whose negative tail cannot be explained.

    A measure is an UnresolvableAnomaly when all of these hold:
    - |min(metric)| / min(paired) reaches magnitude_ratio
    - every order year has a negative/positive ratio of at least persistence_ratio
    - no explanatory field correlates with the metric at |r| >= explained_correlation

    Example:
        detector = ProfitAnomalyDetector()
        report = detector.assess(df)
        report.is_anomalous("profit")
    """

    def __init__(
        self,
        magnitude_ratio: Optional[float] = None,
        persistence_ratio: Optional[float] = None,
        z_threshold: Optional[float] = None,
        explained_correlation: Optional[float] = None,
        explanatory_fields: Sequence[str] = ("discount", "shipping_cost"),
    ):
        analysis = settings.analysis
        self.magnitude_ratio = magnitude_ratio if magnitude_ratio is not None else analysis.anomaly_magnitude_ratio
        self.persistence_ratio = (
            persistence_ratio if persistence_ratio is not None else analysis.anomaly_persistence_ratio
        )
        self.z_threshold = z_threshold if z_threshold is not None else analysis.anomaly_z_threshold
        self.explained_correlation = (
            explained_correlation if explained_correlation is not None
            else analysis.anomaly_explained_correlation
        )
        self.explanatory_fields = list(explanatory_fields)

    def _outlier_count(self, values: np.ndarray) -> int:
        if len(values) < 2 or np.std(values) == 0:
            return 0
        z_scores = np.abs(stats.zscore(values))
        return int(np.sum(z_scores > self.z_threshold))

    def _correlations(self, df: pl.DataFrame, metric: str) -> Dict[str, Optional[float]]:
        correlations: Dict[str, Optional[float]] = {}
        for column in self.explanatory_fields:
            if column not in df.columns:
                continue
            pairs = df.select(metric, column).drop_nulls()
            x = pairs.get_column(metric).cast(pl.Float64).to_numpy()
            y = pairs.get_column(column).cast(pl.Float64).to_numpy()
            if len(x) < 3 or np.std(x) == 0 or np.std(y) == 0:
                correlations[column] = None
                continue
            r, _ = stats.pearsonr(x, y)
            correlations[column] = float(r)
        return correlations

    def assess_metric(
        self,
        df: pl.DataFrame,
        metric: str = "profit",
        paired_metric: str = "sales",
    ) -> AnomalyResult:
        """Assess one metric against its paired metric"""
        values = df.get_column(metric).drop_nulls().cast(pl.Float64).to_numpy()
        min_value = float(values.min()) if len(values) else 0.0
        min_reference = df.get_column(paired_metric).min()
        min_reference = float(min_reference) if min_reference is not None else 0.0

        magnitude = abs(min_value) / min_reference if min_value < 0 and min_reference > 0 else None

        yearly = yearly_sign_ratios(df, metric)
        yearly_ratios = {
            row["order_year"]: row["negative_positive_ratio"]
            for row in yearly.iter_rows(named=True)
        }

        correlations = self._correlations(df, metric)
        explained_by = next(
            (
                column for column, r in correlations.items()
                if r is not None and abs(r) >= self.explained_correlation
            ),
            None,
        )

        anomaly_types: List[AnomalyType] = []
        if magnitude is not None and magnitude >= self.magnitude_ratio:
            anomaly_types.append(AnomalyType.EXTREME)
        if yearly_ratios and all(
            ratio is not None and ratio >= self.persistence_ratio for ratio in yearly_ratios.values()
        ):
            anomaly_types.append(AnomalyType.PERSISTENT)

        outliers = self._outlier_count(values)
        if outliers:
            anomaly_types.append(AnomalyType.OUTLIER)

        unresolvable = (
            AnomalyType.EXTREME in anomaly_types
            and AnomalyType.PERSISTENT in anomaly_types
            and explained_by is None
        )

        if unresolvable:
            severity = AnomalySeverity.CRITICAL
            message = (
                f"{metric} reaches {min_value:,.2f} against a minimum {paired_metric} of "
                f"{min_reference:,.2f} in every year, with no field explaining it"
            )
        elif anomaly_types:
            severity = AnomalySeverity.MEDIUM
            message = f"{metric} irregular ({', '.join(t.value for t in anomaly_types)})"
            if explained_by:
                message += f", explained by {explained_by}"
        else:
            severity = AnomalySeverity.LOW
            message = f"{metric} within expected range"

        result = AnomalyResult(
            metric_name=metric,
            paired_metric=paired_metric,
            anomaly_types=anomaly_types,
            severity=severity,
            detected_at=datetime.utcnow(),
            value=min_value,
            reference_value=min_reference,
            magnitude_ratio=magnitude,
            outlier_count=outliers,
            yearly_ratios=yearly_ratios,
            correlations=correlations,
            explained_by=explained_by,
            message=message,
        )
        if unresolvable:
            result.anomaly = UnresolvableAnomaly(metric, message, details=result.details)

        return result

    def assess(
        self,
        df: pl.DataFrame,
        pairs: Sequence[tuple] = (("profit", "sales"),),
    ) -> AnomalyReport:
        """Assess every (metric, paired metric) pair"""
        started_at = datetime.utcnow()
        results = [self.assess_metric(df, metric, paired) for metric, paired in pairs]

        for result in results:
            if result.is_unresolvable:
                logger.warning(
                    f"Unresolvable anomaly: {result.metric_name}",
                    message=result.message,
                    magnitude_ratio=result.magnitude_ratio,
                    outliers=result.outlier_count,
                )

        return AnomalyReport(
            started_at=started_at,
            completed_at=datetime.utcnow(),
            metrics_checked=len(results),
            results=results,
        )
