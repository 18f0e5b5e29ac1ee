"""
Sales Optimization Pipeline

Runs the batch phases in strict order over one shared transaction table:

    load -> profile -> validate -> correct -> re-validate
         -> anomaly / exclusion -> analysis -> decision gates -> extracts

Each phase hands an explicit named result to the next. A failed load or
correction aborts the run; nothing is retried.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union

import polars as pl
import structlog

from salesopt.analytics.aggregator import create_aggregator
from salesopt.analytics.reports import SalesAnalysis
from salesopt.decision.gates import DecisionGateEvaluator, DecisionReport
from salesopt.ingestion.batch_loader import (
    LoadResult,
    SampleStore,
    TransactionFileConfig,
    TransactionLoader,
    create_transaction_loader,
)
from salesopt.modeling.semantic import SemanticModel, SemanticModelBuilder
from salesopt.quality.anomaly_detector import AnomalyReport, ProfitAnomalyDetector
from salesopt.quality.profiler import DataProfiler
from salesopt.quality.validators import ConsistencyValidator, ValidationResult, create_transactions_validator
from salesopt.transformation.corrections import CorrectionResult, DataCorrector, SalesTable
from salesopt.transformation.exclusions import ExclusionPolicy, FieldRegistry

logger = structlog.get_logger(__name__)


@dataclass
class PipelineResult:
    """Every named intermediate result of one run"""
    table: pl.DataFrame
    profile: pl.DataFrame
    validation: ValidationResult
    corrections: CorrectionResult
    revalidation: ValidationResult
    anomalies: AnomalyReport
    registry: FieldRegistry
    sections: Dict[str, pl.DataFrame]
    decisions: DecisionReport
    model: SemanticModel
    started_at: datetime
    completed_at: Optional[datetime] = None
    load: Optional[LoadResult] = None
    sample: Optional[pl.DataFrame] = None
    extract_paths: Dict[str, str] = field(default_factory=dict)

    @property
    def market_labels(self) -> Dict[str, str]:
        return self.decisions.market_labels()


class SalesOptimizationPipeline:
    """
    End-to-end batch run.

    Example:
        pipeline = SalesOptimizationPipeline()
        result = pipeline.run("data/raw/Global-Superstore.csv")
        result.market_labels
    """

    def __init__(
        self,
        loader: Optional[TransactionLoader] = None,
        profiler: Optional[DataProfiler] = None,
        validator: Optional[ConsistencyValidator] = None,
        corrector: Optional[DataCorrector] = None,
        detector: Optional[ProfitAnomalyDetector] = None,
        policy: Optional[ExclusionPolicy] = None,
        evaluator: Optional[DecisionGateEvaluator] = None,
        builder: Optional[SemanticModelBuilder] = None,
        sample_store: Optional[SampleStore] = None,
        write_extracts: bool = False,
    ):
        self.loader = loader or create_transaction_loader()
        self.profiler = profiler or DataProfiler()
        self.validator = validator or create_transactions_validator()
        self.corrector = corrector or DataCorrector()
        self.detector = detector or ProfitAnomalyDetector()
        self.policy = policy or ExclusionPolicy()
        self.evaluator = evaluator or DecisionGateEvaluator()
        self.builder = builder or SemanticModelBuilder()
        self.sample_store = sample_store
        self.write_extracts = write_extracts

    def run(self, source: Union[str, Path, TransactionFileConfig]) -> PipelineResult:
        """Load the transactions file and run every phase"""
        df, load_result = self.loader.load(source)
        result = self.run_frame(df)
        result.load = load_result
        return result

    def run_frame(self, df: pl.DataFrame) -> PipelineResult:
        """Run every phase after loading on an already typed table"""
        started_at = datetime.utcnow()
        logger.info("Pipeline started", rows=df.height)

        sample = self.sample_store.get(df) if self.sample_store is not None else None

        profile = self.profiler.to_frame(self.profiler.profile(df))

        validation = self.validator.validate(df)

        table = SalesTable(df)
        corrections = self.corrector.apply(table)
        corrected = table.frame

        revalidation = self.validator.validate(corrected)

        anomalies = self.detector.assess(corrected)
        registry = self.policy.evaluate(revalidation, anomalies)

        analysis = SalesAnalysis(create_aggregator(registry))
        sections = analysis.run_all(corrected)

        decisions = self.evaluator.evaluate(sections)

        model = self.builder.build(corrected)
        extract_paths = self.builder.write_extracts(model) if self.write_extracts else {}

        result = PipelineResult(
            table=corrected,
            profile=profile,
            validation=validation,
            corrections=corrections,
            revalidation=revalidation,
            anomalies=anomalies,
            registry=registry,
            sections=sections,
            decisions=decisions,
            model=model,
            started_at=started_at,
            completed_at=datetime.utcnow(),
            sample=sample,
            extract_paths=extract_paths,
        )

        logger.info(
            "Pipeline completed",
            rows=corrected.height,
            corrected_rows=corrections.rows_changed,
            excluded_fields=sorted(registry.excluded),
            market_labels=result.market_labels,
            duration_seconds=(result.completed_at - started_at).total_seconds(),
        )
        return result
